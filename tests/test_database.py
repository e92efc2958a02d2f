import sqlite3
from unittest.mock import patch

from nexus_server.database.connection import get_db


def _columns(conn, table):
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}


def test_fresh_database_has_full_task_progress_schema(tmp_path):
    conn, _ = get_db(str(tmp_path / "fresh.db"))
    try:
        assert "points_awarded" in _columns(conn, "task_progress")
    finally:
        conn.close()


def test_fresh_database_needs_no_migration(tmp_path):
    with patch("nexus_server.database.connection.server_logger") as logger:
        conn, _ = get_db(str(tmp_path / "fresh.db"))
        conn.close()

    messages = [call.args[0] for call in logger.info.call_args_list]
    assert not any("Schema Updated" in message for message in messages)


def test_older_database_gains_points_awarded(tmp_path):
    path = str(tmp_path / "old.db")
    old = sqlite3.connect(path)
    old.execute('''CREATE TABLE task_progress
                   (id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    task_id INTEGER NOT NULL,
                    status TEXT DEFAULT 'started',
                    code TEXT DEFAULT '',
                    started_at REAL,
                    completed_at REAL,
                    updated_at REAL,
                    UNIQUE (user_id, task_id))''')
    old.execute("INSERT INTO task_progress (user_id, task_id, status) VALUES ('student', 1, 'completed')")
    old.commit()
    old.close()

    conn, _ = get_db(path)
    try:
        assert "points_awarded" in _columns(conn, "task_progress")
        row = conn.execute("SELECT status, points_awarded FROM task_progress").fetchone()
        assert (row["status"], row["points_awarded"]) == ("completed", 0)
    finally:
        conn.close()
