import time
from typing import List, Dict, Any, Optional

from nexus_server import config
from nexus_server.database.connection import get_db, execute_with_retry
from nexus_server.services.project_svc import fetch_owned_project
from nexus_server.utils.diff import diff_lines, summarize
from nexus_server.utils.errors import NotFoundError
from nexus_server.utils.logger import server_logger


def snapshot_to_dict(row, include_content: bool = True) -> Dict[str, Any]:
    data = {
        "id": row["id"],
        "projectId": row["project_id"],
        "fileId": row["file_id"],
        "fileName": row["file_name"],
        "message": row["message"],
        "createdAt": row["created_at"],
    }
    if include_content:
        data["content"] = row["content"]
    return data


def _latest_snapshot(c, project_id, file_id):
    c.execute("""
        SELECT * FROM file_snapshots
        WHERE project_id = ? AND file_id = ?
        ORDER BY created_at DESC, id DESC
        LIMIT 1
    """, (project_id, file_id))
    return c.fetchone()


def _check_size(content: str):
    if len(content) > config.MAX_CONTENT_SIZE:
        raise ValueError(f"File is too large ({len(content)/1024/1024:.1f}MB), limit is 10MB")


def cleanup_old_snapshots(conn, project_id, file_id, keep: int = None) -> int:
    """Keep only the newest `keep` snapshots of one file."""
    keep = config.FILE_SNAPSHOT_KEEP if keep is None else keep
    cur = execute_with_retry(conn, """
        DELETE FROM file_snapshots
        WHERE project_id = ? AND file_id = ? AND id NOT IN (
            SELECT id FROM file_snapshots
            WHERE project_id = ? AND file_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
        )
    """, (project_id, file_id, project_id, file_id, keep))
    return cur.rowcount


def _insert_snapshot(conn, project_id, file_id, file_name, content, message, owner) -> int:
    cur = execute_with_retry(conn, """INSERT INTO file_snapshots
                (project_id, file_id, file_name, content, message, created_by, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)""",
             (project_id, file_id, file_name, content, message, owner, time.time()))
    return cur.lastrowid


def create_snapshot(owner: str, project_id, file_id, file_name: str, content: str,
                    message: Optional[str] = None, db_path: Optional[str] = None) -> Dict[str, Any]:
    """Save one file snapshot, skipping it when the content matches the latest one."""
    if not project_id or not file_id or not file_name or content is None:
        raise ValueError("Missing required fields")
    _check_size(content)

    server_logger.debug(f"Snapshot requested: {file_name}")
    conn, _ = get_db(db_path)
    try:
        c = conn.cursor()
        fetch_owned_project(c, project_id, owner)

        # [Check Redundancy] identical to the previous version
        last = _latest_snapshot(c, project_id, file_id)
        if last is not None and last["content"] == content:
            server_logger.info(f"Content unchanged, snapshot skipped: {file_name} (Last ID: {last['id']})")
            return {"status": "skipped", "unchanged": True, "snapshot": snapshot_to_dict(last)}

        snapshot_id = _insert_snapshot(conn, project_id, file_id, file_name, content, message or "Auto-save", owner)
        removed = cleanup_old_snapshots(conn, project_id, file_id)
        conn.commit()
        server_logger.info(
            f"Created snapshot for file {file_name} in project {project_id} (id: {snapshot_id})",
            extra={"project_id": project_id, "file_id": file_id, "snapshot_id": snapshot_id},
        )
        if removed:
            server_logger.debug(f"Pruned {removed} old snapshots of file {file_id}")

        c.execute("SELECT * FROM file_snapshots WHERE id = ?", (snapshot_id,))
        return {"status": "success", "unchanged": False, "snapshot": snapshot_to_dict(c.fetchone())}
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def snapshot_all(owner: str, project_id, files: List[Dict[str, Any]], message: Optional[str] = None,
                 db_path: Optional[str] = None) -> Dict[str, Any]:
    """Snapshot several files of a project at once."""
    if not project_id or files is None or not isinstance(files, list):
        raise ValueError("Missing required fields")

    conn, _ = get_db(db_path)
    try:
        c = conn.cursor()
        fetch_owned_project(c, project_id, owner)

        results = []
        for f in files:
            file_id = f.get("fileId")
            file_name = f.get("fileName")
            content = f.get("content")
            if not file_id or not file_name or content is None:
                server_logger.warning(f"Skipping malformed snapshot entry in project {project_id}")
                continue
            _check_size(content)

            last = _latest_snapshot(c, project_id, file_id)
            if last is not None and last["content"] == content:
                results.append({"fileId": file_id, "fileName": file_name, "created": False})
                continue

            _insert_snapshot(conn, project_id, file_id, file_name, content, message or "Project snapshot", owner)
            cleanup_old_snapshots(conn, project_id, file_id)
            results.append({"fileId": file_id, "fileName": file_name, "created": True})

        conn.commit()
        created_count = sum(1 for r in results if r["created"])
        server_logger.info(f"Created {created_count} snapshots for project {project_id}")
        return {"status": "success", "results": results, "createdCount": created_count}
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def list_file_snapshots(owner: str, project_id, file_id, db_path: Optional[str] = None) -> List[Dict[str, Any]]:
    conn, _ = get_db(db_path)
    try:
        c = conn.cursor()
        fetch_owned_project(c, project_id, owner)
        c.execute("""
            SELECT id, project_id, file_id, file_name, message, created_at
            FROM file_snapshots
            WHERE project_id = ? AND file_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
        """, (project_id, file_id, config.FILE_SNAPSHOT_KEEP))
        return [snapshot_to_dict(row, include_content=False) for row in c.fetchall()]
    finally:
        conn.close()


def project_versions(owner: str, project_id, db_path: Optional[str] = None) -> List[Dict[str, Any]]:
    """Per-file history summary: {fileId, fileName, snapshotCount, lastModified, lastMessage}."""
    conn, _ = get_db(db_path)
    try:
        c = conn.cursor()
        fetch_owned_project(c, project_id, owner)
        c.execute("""
            SELECT s.file_id, s.file_name, s.message, s.created_at, counts.total
            FROM file_snapshots s
            JOIN (
                SELECT file_id, COUNT(*) AS total, MAX(id) AS latest_id
                FROM file_snapshots
                WHERE project_id = ?
                GROUP BY file_id
            ) counts ON counts.latest_id = s.id
            ORDER BY s.created_at DESC
        """, (project_id,))
        return [
            {
                "fileId": row["file_id"],
                "fileName": row["file_name"],
                "snapshotCount": row["total"],
                "lastModified": row["created_at"],
                "lastMessage": row["message"],
            }
            for row in c.fetchall()
        ]
    finally:
        conn.close()


def _fetch_owned_snapshot(c, snapshot_id, owner: str):
    c.execute("SELECT * FROM file_snapshots WHERE id = ?", (snapshot_id,))
    row = c.fetchone()
    if row is None:
        raise NotFoundError("Snapshot")
    fetch_owned_project(c, row["project_id"], owner)
    return row


def get_snapshot(owner: str, snapshot_id, db_path: Optional[str] = None) -> Dict[str, Any]:
    conn, _ = get_db(db_path)
    try:
        return snapshot_to_dict(_fetch_owned_snapshot(conn.cursor(), snapshot_id, owner))
    finally:
        conn.close()


def restore_snapshot(owner: str, snapshot_id, apply: bool = False, db_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Return a snapshot's content for the editor.
    With apply=True the live project file is overwritten as well (if it still exists).
    """
    conn, _ = get_db(db_path)
    try:
        c = conn.cursor()
        row = _fetch_owned_snapshot(c, snapshot_id, owner)
        server_logger.info(f"Restoring snapshot {snapshot_id} for file {row['file_name']}",
                           extra={"project_id": row["project_id"], "snapshot_id": snapshot_id, "apply": apply})

        applied = False
        if apply:
            cur = execute_with_retry(
                conn,
                "UPDATE project_files SET content = ?, updated_at = ? WHERE id = ? AND project_id = ?",
                (row["content"], time.time(), row["file_id"], row["project_id"]),
            )
            applied = cur.rowcount > 0
            if not applied:
                server_logger.warning(f"File {row['file_id']} no longer exists, snapshot {snapshot_id} not applied")
            conn.commit()

        return {
            "status": "success",
            "content": row["content"],
            "fileName": row["file_name"],
            "fileId": row["file_id"],
            "applied": applied,
        }
    finally:
        conn.close()


def diff_snapshots(owner: str, snapshot_id1, snapshot_id2, db_path: Optional[str] = None) -> Dict[str, Any]:
    """Line diff from snapshot 1 to snapshot 2."""
    conn, _ = get_db(db_path)
    try:
        c = conn.cursor()
        c.execute("SELECT * FROM file_snapshots WHERE id IN (?, ?)", (snapshot_id1, snapshot_id2))
        rows = {row["id"]: row for row in c.fetchall()}
        first = rows.get(int(snapshot_id1))
        second = rows.get(int(snapshot_id2))
        if first is None or second is None:
            raise NotFoundError("Snapshot")
        fetch_owned_project(c, first["project_id"], owner)
        if second["project_id"] != first["project_id"]:
            fetch_owned_project(c, second["project_id"], owner)

        diff = diff_lines(first["content"], second["content"])
        return {
            "status": "success",
            "diff": diff,
            "summary": summarize(diff),
            "snapshot1": {"id": first["id"], "createdAt": first["created_at"], "message": first["message"]},
            "snapshot2": {"id": second["id"], "createdAt": second["created_at"], "message": second["message"]},
        }
    finally:
        conn.close()
