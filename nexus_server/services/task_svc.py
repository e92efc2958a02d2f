import json
import time
from typing import List, Dict, Any, Optional

from nexus_server import config
from nexus_server.database.connection import get_db, execute_with_retry
from nexus_server.services.execution_svc import run_project, default_file_name
from nexus_server.utils.errors import NotFoundError
from nexus_server.utils.security import normalize_language
from nexus_server.utils.logger import server_logger as logger

DIFFICULTIES = ("easy", "medium", "hard")
PROGRESS_STATUSES = ("started", "completed")


def normalize_output(value: str) -> str:
    return (value or "").replace("\r\n", "\n").strip()


def _validate_task_fields(title, description, points, difficulty):
    if not title or not 3 <= len(title.strip()) <= 100:
        raise ValueError("Title must be between 3 and 100 characters")
    if not description or not 10 <= len(description.strip()) <= 5000:
        raise ValueError("Description must be between 10 and 5000 characters")
    if not isinstance(points, int) or not 1 <= points <= 1000:
        raise ValueError("Points must be between 1 and 1000")
    if difficulty not in DIFFICULTIES:
        raise ValueError(f"Difficulty must be one of: {', '.join(DIFFICULTIES)}")


def _clean_test_cases(test_cases) -> List[Dict[str, Any]]:
    cleaned = []
    for case in test_cases or []:
        if case.get("expectedOutput") is None:
            raise ValueError("Every test case needs an expectedOutput")
        cleaned.append({
            "input": case.get("input") or "",
            "expectedOutput": case["expectedOutput"],
            "isHidden": bool(case.get("isHidden", False)),
        })
    return cleaned


def task_to_dict(row, viewer: Optional[str] = None) -> Dict[str, Any]:
    """Serialize a task; hidden test cases are masked for everyone but the author."""
    test_cases = json.loads(row["test_cases"] or "[]")
    if viewer != row["created_by"]:
        test_cases = [
            {"input": "(hidden)", "expectedOutput": None, "isHidden": True} if case["isHidden"] else case
            for case in test_cases
        ]
    return {
        "id": row["id"],
        "title": row["title"],
        "description": row["description"],
        "points": row["points"],
        "difficulty": row["difficulty"],
        "language": row["language"],
        "starterCode": row["starter_code"] or "",
        "testCases": test_cases,
        "createdBy": row["created_by"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }


def progress_to_dict(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "userId": row["user_id"],
        "taskId": row["task_id"],
        "status": row["status"],
        "code": row["code"] or "",
        "startedAt": row["started_at"],
        "completedAt": row["completed_at"],
        "updatedAt": row["updated_at"],
        "pointsAwarded": row["points_awarded"] or 0,
    }


def _fetch_task(c, task_id):
    c.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
    row = c.fetchone()
    if row is None:
        raise NotFoundError("Task")
    return row


def create_task(author: str, title: str, description: str, points: int, difficulty: str,
                language: str = "python", starter_code: str = "", test_cases=None, db_path=None) -> Dict[str, Any]:
    _validate_task_fields(title, description, points, difficulty)
    language = normalize_language(language or "python")
    cases = _clean_test_cases(test_cases)

    conn, _ = get_db(db_path)
    try:
        now = time.time()
        cur = execute_with_retry(conn, """INSERT INTO tasks
                    (title, description, points, difficulty, language, starter_code, test_cases,
                     created_by, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                 (title.strip(), description.strip(), points, difficulty, language,
                  starter_code or "", json.dumps(cases), author, now, now))
        conn.commit()
        task_id = cur.lastrowid
        logger.info(f"Task '{title}' created by {author} (id: {task_id})")
        return task_to_dict(_fetch_task(conn.cursor(), task_id), viewer=author)
    finally:
        conn.close()


def list_tasks(viewer: str, difficulty: str = None, language: str = None, db_path=None) -> List[Dict[str, Any]]:
    query = "SELECT * FROM tasks WHERE 1=1"
    params = []
    if difficulty:
        query += " AND difficulty = ?"
        params.append(difficulty)
    if language:
        query += " AND language = ?"
        params.append(normalize_language(language))
    query += " ORDER BY created_at DESC, id DESC"

    conn, _ = get_db(db_path)
    try:
        c = conn.cursor()
        c.execute(query, params)
        return [task_to_dict(row, viewer) for row in c.fetchall()]
    finally:
        conn.close()


def get_task(task_id: int, viewer: str, db_path=None) -> Dict[str, Any]:
    conn, _ = get_db(db_path)
    try:
        return task_to_dict(_fetch_task(conn.cursor(), task_id), viewer)
    finally:
        conn.close()


def update_task(task_id: int, author: str, changes: Dict[str, Any], db_path=None) -> Dict[str, Any]:
    """Only the author can edit a task; to anyone else it does not exist."""
    conn, _ = get_db(db_path)
    try:
        c = conn.cursor()
        row = _fetch_task(c, task_id)
        if row["created_by"] != author:
            raise NotFoundError("Task")

        title = changes.get("title", row["title"])
        description = changes.get("description", row["description"])
        points = changes.get("points", row["points"])
        difficulty = changes.get("difficulty", row["difficulty"])
        _validate_task_fields(title, description, points, difficulty)
        language = normalize_language(changes["language"]) if changes.get("language") else row["language"]
        starter_code = changes.get("starterCode", row["starter_code"])
        test_cases = row["test_cases"]
        if changes.get("testCases") is not None:
            test_cases = json.dumps(_clean_test_cases(changes["testCases"]))

        execute_with_retry(conn, """UPDATE tasks SET title = ?, description = ?, points = ?, difficulty = ?,
                    language = ?, starter_code = ?, test_cases = ?, updated_at = ? WHERE id = ?""",
                 (title.strip(), description.strip(), points, difficulty, language,
                  starter_code or "", test_cases, time.time(), task_id))
        conn.commit()
        return task_to_dict(_fetch_task(c, task_id), viewer=author)
    finally:
        conn.close()


def delete_task(task_id: int, author: str, db_path=None) -> None:
    conn, _ = get_db(db_path)
    try:
        c = conn.cursor()
        row = _fetch_task(c, task_id)
        if row["created_by"] != author:
            raise NotFoundError("Task")
        execute_with_retry(conn, "DELETE FROM tasks WHERE id = ?", (task_id,))
        conn.commit()
        logger.info(f"Task {task_id} deleted")
    finally:
        conn.close()


# ---------------------------------------------------------------- progress

def _fetch_progress(c, user_id, task_id):
    c.execute("SELECT * FROM task_progress WHERE user_id = ? AND task_id = ?", (user_id, task_id))
    return c.fetchone()


def get_progress(user_id: str, task_id: int, db_path=None) -> Optional[Dict[str, Any]]:
    conn, _ = get_db(db_path)
    try:
        row = _fetch_progress(conn.cursor(), user_id, task_id)
        return progress_to_dict(row) if row else None
    finally:
        conn.close()


def my_progress(user_id: str, status: str = None, db_path=None) -> List[Dict[str, Any]]:
    """Progress records of a user, newest activity first, each with its task attached."""
    if status and status not in PROGRESS_STATUSES:
        raise ValueError(f"Status must be one of: {', '.join(PROGRESS_STATUSES)}")
    query = "SELECT * FROM task_progress WHERE user_id = ?"
    params = [user_id]
    if status:
        query += " AND status = ?"
        params.append(status)
    query += " ORDER BY updated_at DESC, id DESC"

    conn, _ = get_db(db_path)
    try:
        c = conn.cursor()
        c.execute(query, params)
        rows = c.fetchall()
        result = []
        for row in rows:
            item = progress_to_dict(row)
            c.execute("SELECT * FROM tasks WHERE id = ?", (row["task_id"],))
            task = c.fetchone()
            item["task"] = task_to_dict(task, user_id) if task else None
            result.append(item)
        return result
    finally:
        conn.close()


def start_task(user_id: str, task_id: int, db_path=None) -> Dict[str, Any]:
    """Start a task, or return the existing progress if already started."""
    conn, _ = get_db(db_path)
    try:
        c = conn.cursor()
        task = _fetch_task(c, task_id)
        row = _fetch_progress(c, user_id, task_id)
        if row is None:
            now = time.time()
            execute_with_retry(conn, """INSERT INTO task_progress
                        (user_id, task_id, status, code, started_at, updated_at)
                        VALUES (?, ?, 'started', ?, ?, ?)""",
                     (user_id, task_id, task["starter_code"] or "", now, now))
            conn.commit()
            row = _fetch_progress(c, user_id, task_id)
        return progress_to_dict(row)
    finally:
        conn.close()


def save_progress(user_id: str, task_id: int, code: str, db_path=None) -> Dict[str, Any]:
    conn, _ = get_db(db_path)
    try:
        cur = execute_with_retry(
            conn,
            "UPDATE task_progress SET code = ?, updated_at = ? WHERE user_id = ? AND task_id = ?",
            (code or "", time.time(), user_id, task_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError("Progress")
        conn.commit()
        return progress_to_dict(_fetch_progress(conn.cursor(), user_id, task_id))
    finally:
        conn.close()


def complete_task(user_id: str, task_id: int, code: str, db_path=None) -> Dict[str, Any]:
    conn, _ = get_db(db_path)
    try:
        now = time.time()
        cur = execute_with_retry(
            conn,
            "UPDATE task_progress SET status = 'completed', code = ?, completed_at = ?, updated_at = ? "
            "WHERE user_id = ? AND task_id = ?",
            (code or "", now, now, user_id, task_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError("Progress")
        conn.commit()
        return progress_to_dict(_fetch_progress(conn.cursor(), user_id, task_id))
    finally:
        conn.close()


def _record_completion(conn, user_id, task, code) -> bool:
    """Upsert the progress row as completed. Returns True on the first completion."""
    c = conn.cursor()
    existing = _fetch_progress(c, user_id, task["id"])
    first = existing is None or existing["status"] != "completed"
    now = time.time()

    if existing is None:
        execute_with_retry(conn, """INSERT INTO task_progress
                    (user_id, task_id, status, code, started_at, completed_at, updated_at, points_awarded)
                    VALUES (?, ?, 'completed', ?, ?, ?, ?, ?)""",
                 (user_id, task["id"], code, now, now, now, task["points"]))
    else:
        points = task["points"] if first else existing["points_awarded"]
        completed_at = now if first else existing["completed_at"]
        execute_with_retry(conn, """UPDATE task_progress
                    SET status = 'completed', code = ?, completed_at = ?, updated_at = ?, points_awarded = ?
                    WHERE id = ?""",
                 (code, completed_at, now, points, existing["id"]))
    conn.commit()
    return first


def run_tests(user_id: str, task_id: int, code: str, runner=None, db_path=None) -> Dict[str, Any]:
    """
    Grade code against every test case of a task.
    Hidden cases never reveal their input or the program's output.
    """
    if not code or not code.strip():
        raise ValueError("Code is required")

    conn, _ = get_db(db_path)
    try:
        task = _fetch_task(conn.cursor(), task_id)
    finally:
        conn.close()

    test_cases = json.loads(task["test_cases"] or "[]")
    if not test_cases:
        raise ValueError("No test cases defined for this task")

    language = task["language"]
    file_name = default_file_name(language, code)
    files = [{"name": file_name, "content": code}]

    results = []
    for index, case in enumerate(test_cases):
        hidden = case.get("isHidden", False)
        execution = run_project(files, file_name, language, stdin=case.get("input") or "",
                                timeout=config.RUN_TIMEOUT, runner=runner)

        ok = execution["status"] == "success"
        actual = execution["output"] if ok else (execution["error"] or execution["output"])
        passed = ok and normalize_output(actual) == normalize_output(case["expectedOutput"])

        results.append({
            "index": index,
            "passed": passed,
            "input": "(hidden)" if hidden else case.get("input", ""),
            "actualOutput": ("(correct)" if passed else "(incorrect)") if hidden else actual,
            "error": None if ok else (execution["error"] or f"Execution {execution['status']}"),
        })

    passed_count = sum(1 for r in results if r["passed"])
    first_completion = False
    points_awarded = 0

    if passed_count == len(results):
        conn, _ = get_db(db_path)
        try:
            first_completion = _record_completion(conn, user_id, task, code)
        finally:
            conn.close()
        if first_completion:
            points_awarded = task["points"]
            logger.info(f"Task {task_id} completed by {user_id} (+{points_awarded} points)")

    return {
        "total": len(results),
        "passed": passed_count,
        "results": results,
        "completed": first_completion,
        "pointsAwarded": points_awarded,
    }
