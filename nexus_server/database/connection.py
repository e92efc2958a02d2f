import sqlite3
import os
import time

from nexus_server import config
from nexus_server.utils.logger import server_logger


def _get_existing_columns(cursor, table_name: str) -> set:
    """Read current column names through PRAGMA."""
    cursor.execute(f"PRAGMA table_info({table_name})")
    return {row[1] for row in cursor.fetchall()}


def _ensure_column(cursor, table_name: str, column_name: str, column_def: str, existing_columns: set):
    """Add the column when an older database does not have it yet."""
    if column_name not in existing_columns:
        try:
            cursor.execute(f"ALTER TABLE {table_name} ADD COLUMN {column_name} {column_def}")
            server_logger.info(f"DB Schema Updated: Added '{column_name}' column to '{table_name}'.")
        except sqlite3.OperationalError as e:
            server_logger.warning(f"Failed to add {column_name} column: {e}")


def get_db(db_path=None):
    """
    Open the database and return (connection, db_path).
    Also responsible for initialising the schema.
    """
    db_path = db_path or config.DB_PATH
    parent = os.path.dirname(os.path.abspath(db_path))
    os.makedirs(parent, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=5)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    c = conn.cursor()

    # Table 1: projects
    c.execute('''CREATE TABLE IF NOT EXISTS projects
                 (id INTEGER PRIMARY KEY AUTOINCREMENT,
                  name TEXT NOT NULL,
                  description TEXT DEFAULT '',
                  owner TEXT NOT NULL,
                  language TEXT DEFAULT 'python',
                  dependencies TEXT DEFAULT '{}',
                  created_at REAL,
                  updated_at REAL)''')

    # Table 2: project_files (live editor contents)
    c.execute('''CREATE TABLE IF NOT EXISTS project_files
                 (id INTEGER PRIMARY KEY AUTOINCREMENT,
                  project_id INTEGER NOT NULL,
                  name TEXT NOT NULL,
                  content TEXT DEFAULT '',
                  language TEXT DEFAULT 'python',
                  created_at REAL,
                  updated_at REAL,
                  FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE)''')

    # Table 3: file_snapshots (per-file history)
    c.execute('''CREATE TABLE IF NOT EXISTS file_snapshots
                 (id INTEGER PRIMARY KEY AUTOINCREMENT,
                  project_id INTEGER NOT NULL,
                  file_id INTEGER NOT NULL,
                  file_name TEXT NOT NULL,
                  content TEXT NOT NULL,
                  message TEXT,
                  created_by TEXT,
                  created_at REAL,
                  FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE)''')

    # Table 4: project_snapshots (whole-project bundles)
    c.execute('''CREATE TABLE IF NOT EXISTS project_snapshots
                 (id INTEGER PRIMARY KEY AUTOINCREMENT,
                  project_id INTEGER NOT NULL,
                  name TEXT NOT NULL,
                  description TEXT,
                  created_by TEXT,
                  created_at REAL,
                  FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE)''')

    # Table 5: project_snapshot_files (bundle contents)
    c.execute('''CREATE TABLE IF NOT EXISTS project_snapshot_files
                 (id INTEGER PRIMARY KEY AUTOINCREMENT,
                  snapshot_id INTEGER NOT NULL,
                  file_id TEXT NOT NULL,
                  file_name TEXT NOT NULL,
                  content TEXT NOT NULL,
                  FOREIGN KEY (snapshot_id) REFERENCES project_snapshots(id) ON DELETE CASCADE)''')

    # Table 6: tasks
    c.execute('''CREATE TABLE IF NOT EXISTS tasks
                 (id INTEGER PRIMARY KEY AUTOINCREMENT,
                  title TEXT NOT NULL,
                  description TEXT NOT NULL,
                  points INTEGER NOT NULL,
                  difficulty TEXT NOT NULL,
                  language TEXT DEFAULT 'python',
                  starter_code TEXT DEFAULT '',
                  test_cases TEXT DEFAULT '[]',
                  created_by TEXT NOT NULL,
                  created_at REAL,
                  updated_at REAL)''')

    # Table 7: task_progress (one row per user/task)
    c.execute('''CREATE TABLE IF NOT EXISTS task_progress
                 (id INTEGER PRIMARY KEY AUTOINCREMENT,
                  user_id TEXT NOT NULL,
                  task_id INTEGER NOT NULL,
                  status TEXT DEFAULT 'started',
                  code TEXT DEFAULT '',
                  started_at REAL,
                  completed_at REAL,
                  updated_at REAL,
                  points_awarded INTEGER DEFAULT 0,
                  UNIQUE (user_id, task_id),
                  FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE)''')

    # Schema Migration: databases created before points_awarded existed
    existing_cols = _get_existing_columns(c, "task_progress")
    _ensure_column(c, "task_progress", "points_awarded", "INTEGER DEFAULT 0", existing_cols)

    c.execute("CREATE INDEX IF NOT EXISTS idx_projects_owner ON projects (owner, name)")
    c.execute("CREATE INDEX IF NOT EXISTS idx_file_snapshots_file ON file_snapshots (project_id, file_id, created_at)")
    c.execute("CREATE INDEX IF NOT EXISTS idx_project_snapshots_project ON project_snapshots (project_id, created_at)")
    c.execute("CREATE INDEX IF NOT EXISTS idx_task_progress_user ON task_progress (user_id, status)")

    conn.commit()
    return conn, db_path


def execute_with_retry(conn, sql: str, params=(), attempts: int = 5):
    """Run a write statement, retrying while the database is locked."""
    for attempt in range(attempts):
        try:
            return conn.execute(sql, params)
        except sqlite3.OperationalError as e:
            if attempt < attempts - 1 and "locked" in str(e).lower():
                server_logger.warning(f"Database locked, retry {attempt + 1}/{attempts}")
                time.sleep(0.1)
            else:
                server_logger.error(f"Database operation failed: {e}")
                raise
