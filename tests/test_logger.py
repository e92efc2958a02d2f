import logging

from nexus_server.utils.logger import KeyValueFormatter, get_logger, server_logger, execution_logger


def _record(message, **extra):
    record = logging.makeLogRecord({"name": "nexusquest.execution", "levelname": "INFO", "msg": message})
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_key_value_line_includes_extra_fields():
    line = KeyValueFormatter().format(_record("Execution finished", language="python", duration_ms=12))

    assert "level=INFO" in line
    assert "logger=nexusquest.execution" in line
    assert 'message="Execution finished"' in line
    assert "language=python" in line
    assert "duration_ms=12" in line


def test_values_with_spaces_or_quotes_are_quoted():
    line = KeyValueFormatter().format(_record('say "hi"', file_name="my file.py"))

    assert 'message="say \\"hi\\""' in line
    assert 'file_name="my file.py"' in line


def test_child_loggers_share_root_handlers():
    assert server_logger.name == "nexusquest"
    assert execution_logger.name == "nexusquest.execution"
    assert execution_logger.parent is server_logger
    assert get_logger("execution") is execution_logger
    assert not execution_logger.handlers
    assert any(isinstance(h.formatter, KeyValueFormatter) for h in server_logger.handlers)


def test_multiline_values_stay_on_one_line():
    error = 'Traceback (most recent call last):\r\n  File "main.py", line 1\nNameError: x'
    line = KeyValueFormatter().format(_record("line1\nline2", error=error, path="C:\\tmp"))

    assert "\n" not in line and "\r" not in line
    assert 'message="line1\\nline2"' in line
    assert 'error="Traceback (most recent call last):\\r\\n  File \\"main.py\\", line 1\\nNameError: x"' in line
    assert "path=C:\\\\tmp" in line
