import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from datetime import datetime

from nexus_server import config

ROOT_LOGGER = "nexusquest"
LOG_FILE_NAME = "nexusquest_server.log"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 5

# Attributes every LogRecord has; anything else came in through `extra=`
_RECORD_FIELDS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _kv(value) -> str:
    raw = str(value)
    # One record per line: line breaks are escaped, never written
    text = (raw.replace("\\", "\\\\").replace('"', '\\"')
            .replace("\n", "\\n").replace("\r", "\\r"))
    if not raw or any(ch.isspace() for ch in raw) or "=" in raw:
        return f'"{text}"'
    return text


class KeyValueFormatter(logging.Formatter):
    """
    One `key=value` line per record for easy parsing.
    Context passed as `extra={...}` (project_id, snapshot_id, language, ...) is appended after the message.
    """

    def format(self, record):
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        parts = [
            f"timestamp={timestamp}",
            f"level={record.levelname}",
            f"logger={record.name}",
            f"message={_kv(record.getMessage())}",
        ]
        for key, value in vars(record).items():
            if key not in _RECORD_FIELDS and not key.startswith("_"):
                parts.append(f"{key}={_kv(value)}")

        if record.exc_info:
            parts.append(f"exception={_kv(f'{record.exc_info[0].__name__}: {record.exc_info[1]}')}")

        return " ".join(parts)


def _attach_handlers(root: logging.Logger):
    os.makedirs(config.LOG_DIR, exist_ok=True)

    file_handler = RotatingFileHandler(
        os.path.join(config.LOG_DIR, LOG_FILE_NAME),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding='utf-8'
    )
    file_handler.setFormatter(KeyValueFormatter())
    root.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(
        '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
        datefmt='%H:%M:%S'
    ))
    root.addHandler(console_handler)


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Loggers are children of "nexusquest" and share its handlers:
    key-value lines in a rotating file (5MB x 5) plus readable console output.
    """
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        root.setLevel(config.LOG_LEVEL)
        root.propagate = False
        _attach_handlers(root)

    if name == ROOT_LOGGER:
        return root
    return root.getChild(name)


# General server events (requests, storage)
server_logger = get_logger()
# Code runs; one line per execution with language, status and timing
execution_logger = get_logger("execution")
