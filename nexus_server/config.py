import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Single source of truth for the API version
APP_VERSION = "1.0.0"

SERVER_ROOT = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(SERVER_ROOT)


class NexusSettings(BaseSettings):
    """Runtime configuration sourced from NEXUS_* environment variables and an optional .env file."""

    model_config = SettingsConfigDict(env_prefix="NEXUS_", env_file=".env", env_file_encoding="utf-8", extra="ignore")

    db_path: str = os.path.join(PROJECT_ROOT, "nexusquest.db")
    log_dir: str = os.path.join(PROJECT_ROOT, "logs")
    host: str = "127.0.0.1"
    port: int = 9876
    allowed_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    log_level: str = "INFO"

    # "local" runs toolchains via subprocess, "remote" posts to a sandbox service
    execution_backend: str = "local"
    execution_url: str = "http://localhost:8500"
    run_timeout: float = Field(default=10, gt=0)
    project_timeout: float = Field(default=15, gt=0)
    max_output: int = Field(default=65536, gt=0)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError("NEXUS_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG")
        return normalized

    @field_validator("execution_backend")
    @classmethod
    def _normalize_backend(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"local", "remote"}:
            raise ValueError("NEXUS_EXECUTION_BACKEND must be 'local' or 'remote'")
        return normalized


_settings = NexusSettings()

DB_PATH = _settings.db_path
LOG_DIR = _settings.log_dir
LOG_LEVEL = _settings.log_level

HOST = _settings.host
PORT = _settings.port

ALLOWED_ORIGINS = [origin.strip() for origin in _settings.allowed_origins.split(",") if origin.strip()]

EXECUTION_BACKEND = _settings.execution_backend
EXECUTION_URL = _settings.execution_url
RUN_TIMEOUT = _settings.run_timeout
PROJECT_TIMEOUT = _settings.project_timeout
MAX_OUTPUT_CHARS = _settings.max_output

MAX_CODE_SIZE = 50000
MAX_CONTENT_SIZE = 10 * 1024 * 1024  # 10MB

FILE_SNAPSHOT_KEEP = 20
PROJECT_SNAPSHOT_KEEP = 50

SUPPORTED_LANGUAGES = ("python", "javascript", "java", "cpp")
