import time
from typing import Dict, Any, List, Optional

from nexus_server import config
from nexus_server.database.connection import get_db, execute_with_retry
from nexus_server.services.project_svc import fetch_owned_project, load_project_files, infer_language
from nexus_server.utils.diff import diff_lines, summarize
from nexus_server.utils.errors import NotFoundError
from nexus_server.utils.logger import server_logger


class ProjectSnapshotService:
    """Named point-in-time bundles of every file in a project."""

    def __init__(self, owner: str, db_path: Optional[str] = None):
        self.owner = owner
        self.db_path = db_path

    def _fetch_snapshot(self, c, snapshot_id):
        c.execute("SELECT * FROM project_snapshots WHERE id = ?", (snapshot_id,))
        row = c.fetchone()
        if row is None:
            raise NotFoundError("Snapshot")
        project = fetch_owned_project(c, row["project_id"], self.owner)
        return row, project

    @staticmethod
    def _snapshot_files(c, snapshot_id) -> List[Dict[str, str]]:
        c.execute("""
            SELECT file_id, file_name, content
            FROM project_snapshot_files
            WHERE snapshot_id = ?
            ORDER BY id
        """, (snapshot_id,))
        return [{"fileId": r["file_id"], "fileName": r["file_name"], "content": r["content"]} for r in c.fetchall()]

    @staticmethod
    def _header(row, files_count: int) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "projectId": row["project_id"],
            "name": row["name"],
            "description": row["description"] or "",
            "createdAt": row["created_at"],
            "filesCount": files_count,
        }

    def cleanup_old_snapshots(self, conn, project_id, keep: int = None) -> int:
        keep = config.PROJECT_SNAPSHOT_KEEP if keep is None else keep
        cur = execute_with_retry(conn, """
            DELETE FROM project_snapshots
            WHERE project_id = ? AND id NOT IN (
                SELECT id FROM project_snapshots
                WHERE project_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
            )
        """, (project_id, project_id, keep))
        return cur.rowcount

    def create_snapshot(self, project_id, name: str, description: str = "",
                        files: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """
        Store a bundle of files under a name.
        files: [{"fileId": ..., "fileName": ..., "content": ...}]; None captures the project's live files.
        """
        if not project_id or not name or not name.strip():
            raise ValueError("Missing required fields")
        if files is not None and not isinstance(files, list):
            raise ValueError("files must be a list")

        conn, _ = get_db(self.db_path)
        c = conn.cursor()
        try:
            fetch_owned_project(c, project_id, self.owner)

            if files is None:
                files = [
                    {"fileId": str(f["id"]), "fileName": f["name"], "content": f["content"]}
                    for f in load_project_files(c, project_id)
                ]

            for f in files:
                if not f.get("fileId") or not f.get("fileName") or f.get("content") is None:
                    raise ValueError("Each file needs fileId, fileName and content")

            cur = execute_with_retry(
                conn,
                "INSERT INTO project_snapshots (project_id, name, description, created_by, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (project_id, name.strip(), description or "", self.owner, time.time()),
            )
            snapshot_id = cur.lastrowid

            for f in files:
                c.execute(
                    "INSERT INTO project_snapshot_files (snapshot_id, file_id, file_name, content) VALUES (?, ?, ?, ?)",
                    (snapshot_id, str(f["fileId"]), f["fileName"], f["content"]),
                )

            self.cleanup_old_snapshots(conn, project_id)
            conn.commit()
            server_logger.info(
                f"Created project snapshot \"{name}\" for project {project_id} with {len(files)} files"
            )

            row, _ = self._fetch_snapshot(c, snapshot_id)
            return self._header(row, len(files))
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def list_snapshots(self, project_id) -> List[Dict[str, Any]]:
        conn, _ = get_db(self.db_path)
        try:
            c = conn.cursor()
            fetch_owned_project(c, project_id, self.owner)
            c.execute("""
                SELECT s.*, COUNT(f.id) AS files_count
                FROM project_snapshots s
                LEFT JOIN project_snapshot_files f ON f.snapshot_id = s.id
                WHERE s.project_id = ?
                GROUP BY s.id
                ORDER BY s.created_at DESC, s.id DESC
            """, (project_id,))
            return [self._header(row, row["files_count"]) for row in c.fetchall()]
        finally:
            conn.close()

    def get_snapshot(self, snapshot_id) -> Dict[str, Any]:
        conn, _ = get_db(self.db_path)
        try:
            c = conn.cursor()
            row, _ = self._fetch_snapshot(c, snapshot_id)
            files = self._snapshot_files(c, snapshot_id)
            data = self._header(row, len(files))
            data["files"] = files
            return data
        finally:
            conn.close()

    def diff_snapshots(self, snapshot_id1, snapshot_id2) -> Dict[str, Any]:
        """Compare two bundles file by file (matched on fileId)."""
        conn, _ = get_db(self.db_path)
        try:
            c = conn.cursor()
            row1, _ = self._fetch_snapshot(c, snapshot_id1)
            row2, _ = self._fetch_snapshot(c, snapshot_id2)
            files1 = {f["fileId"]: f for f in self._snapshot_files(c, snapshot_id1)}
            files2 = {f["fileId"]: f for f in self._snapshot_files(c, snapshot_id2)}
        finally:
            conn.close()

        # Keep first-seen order: snapshot 1's files, then files only in snapshot 2
        all_ids = list(files1) + [fid for fid in files2 if fid not in files1]
        file_diffs = []
        for file_id in all_ids:
            old = files1.get(file_id)
            new = files2.get(file_id)

            if old is None:
                file_diffs.append({"fileId": file_id, "fileName": new["fileName"], "status": "added"})
            elif new is None:
                file_diffs.append({"fileId": file_id, "fileName": old["fileName"], "status": "removed"})
            elif old["content"] == new["content"]:
                file_diffs.append({"fileId": file_id, "fileName": old["fileName"], "status": "unchanged"})
            else:
                diff = diff_lines(old["content"], new["content"])
                file_diffs.append({
                    "fileId": file_id,
                    "fileName": new["fileName"],
                    "status": "modified",
                    "diff": diff,
                    "summary": summarize(diff),
                })

        return {
            "status": "success",
            "fileDiffs": file_diffs,
            "snapshot1": self._header(row1, len(files1)),
            "snapshot2": self._header(row2, len(files2)),
        }

    def delete_snapshot(self, snapshot_id) -> None:
        conn, _ = get_db(self.db_path)
        try:
            c = conn.cursor()
            self._fetch_snapshot(c, snapshot_id)
            execute_with_retry(conn, "DELETE FROM project_snapshots WHERE id = ?", (snapshot_id,))
            conn.commit()
            server_logger.info(f"Deleted project snapshot {snapshot_id}")
        finally:
            conn.close()

    def restore_snapshot(self, snapshot_id) -> Dict[str, Any]:
        """
        Write every file of the bundle back into the live project.
        Files are matched by id, then by name; anything missing is re-created.
        """
        conn, _ = get_db(self.db_path)
        c = conn.cursor()
        try:
            row, project = self._fetch_snapshot(c, snapshot_id)
            project_id = project["id"]
            files = self._snapshot_files(c, snapshot_id)
            live = load_project_files(c, project_id)
            by_id = {str(f["id"]): f for f in live}
            by_name = {f["name"]: f for f in live}

            now = time.time()
            restored = 0
            for f in files:
                target = by_id.get(f["fileId"]) or by_name.get(f["fileName"])
                if target is not None:
                    c.execute(
                        "UPDATE project_files SET content = ?, updated_at = ? WHERE id = ?",
                        (f["content"], now, target["id"]),
                    )
                else:
                    c.execute(
                        "INSERT INTO project_files (project_id, name, content, language, created_at, updated_at) "
                        "VALUES (?, ?, ?, ?, ?, ?)",
                        (project_id, f["fileName"], f["content"], infer_language(f["fileName"]), now, now),
                    )
                restored += 1

            execute_with_retry(conn, "UPDATE projects SET updated_at = ? WHERE id = ?", (now, project_id))
            conn.commit()
            server_logger.info(f"Restored project snapshot {snapshot_id} - {restored} files updated",
                               extra={"project_id": project_id, "snapshot_id": snapshot_id})
            return {"status": "success", "name": row["name"], "files": files, "restoredCount": restored}
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
