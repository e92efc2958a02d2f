"""Pytest configuration: make ``nexus_server`` importable and isolate the database.

Every test gets its own SQLite file under ``tmp_path``; logs go to a throwaway
directory so test runs never touch the server's real log file.
"""

import os
import sys
import tempfile

# Project root = parent directory of this tests/ folder
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("NEXUS_LOG_DIR", tempfile.mkdtemp(prefix="nexusquest-test-logs-"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from nexus_server import config  # noqa: E402
from nexus_server.main import app  # noqa: E402
from nexus_server.services.project_svc import ProjectService  # noqa: E402


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "nexusquest-test.db")
    monkeypatch.setattr(config, "DB_PATH", path)
    monkeypatch.setattr(config, "EXECUTION_BACKEND", "local")
    return path


@pytest.fixture
def project(db_path):
    """A python project owned by alice, seeded with main.py and requirements.txt."""
    return ProjectService(db_path).create_project("alice", "Demo", "demo project", "python")


@pytest.fixture
def client(db_path):
    return TestClient(app)
