import sqlite3
from datetime import datetime

from fastapi import APIRouter, Request

from nexus_server import config
from nexus_server.database.connection import get_db
from nexus_server.utils.logger import server_logger

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    version = getattr(request.app.state, 'app_version', 'unknown')

    database_ok = True
    try:
        conn, _ = get_db()
        conn.execute("SELECT 1")
        conn.close()
    except sqlite3.Error as e:
        server_logger.error(f"Health check database error: {e}")
        database_ok = False

    return {
        "status": "healthy" if database_ok else "degraded",
        "version": version,
        "timestamp": datetime.now().isoformat(),
        "features": {
            "file_snapshots": True,
            "project_snapshots": True,
            "code_execution": True,
            "error_markers": True,
            "tasks": True,
        },
        "database": {"available": database_ok},
        "execution": {"backend": config.EXECUTION_BACKEND},
    }
