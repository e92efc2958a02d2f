"""
Turn compiler / interpreter error output into editor line markers.

Every language gets its own set of regexes; the result is a list of
{"line": int, "message": str, "file": str | None}. When nothing can be
located but there is error text, a single marker on line 1 carries the
whole text so the editor still shows something.
"""
import os
import re
import sys
from typing import List, Dict, Any, Optional

PY_FRAME = re.compile(r'File\s+"(?P<file>[^"]+)",\s+line\s+(?P<line>\d+)')
# Frames from the interpreter itself are not the user's code
PY_LIBRARY_HINTS = ("site-packages", "dist-packages", "<frozen")
PY_INTERPRETER_PREFIXES = tuple(sorted({
    os.path.join(prefix, "")
    for prefix in (sys.prefix, sys.base_prefix, sys.exec_prefix)
    if prefix and os.path.dirname(prefix) != prefix
}))
# Standard library of an interpreter on another host, e.g. /usr/lib/python3.11/json/
PY_STDLIB_DIR = re.compile(r'[/\\]lib[/\\]python\d+(?:\.\d+)?[/\\]')

JAVA_COMPILE = re.compile(r'(?P<file>[\w$./\\-]*\.java):(?P<line>\d+):\s+error:')
JAVA_STACK = re.compile(r'\((?P<file>[A-Za-z0-9_$.]+\.java):(?P<line>\d+)\)')

JS_ANONYMOUS = re.compile(r'<anonymous>:(?P<line>\d+):\d+')
JS_FRAME = re.compile(r'(?P<file>[^\s():]+\.(?:js|mjs|cjs)):(?P<line>\d+)(?::\d+)?')
JS_ERROR_LINE = re.compile(r'^\w*Error:')

CPP_ERROR = re.compile(r'(?P<file>[^\s:]+\.(?:cpp|cc|cxx|h|hpp)):(?P<line>\d+):(?:\d+:)?\s*(?:fatal\s+)?error:')


class _MarkerList:
    def __init__(self):
        self.markers = []
        self._seen = set()

    def add(self, line, message: str, file: Optional[str] = None):
        try:
            line = int(line)
        except (TypeError, ValueError):
            return
        if line <= 0:
            return
        key = (file, line)
        if key in self._seen:
            return
        self._seen.add(key)
        self.markers.append({"line": line, "message": message, "file": file})


def _basename(path: str) -> str:
    return os.path.basename(path.replace("\\", "/"))


def _last_nonempty(lines: List[str]) -> str:
    for line in reversed(lines):
        if line.strip():
            return line.strip()
    return ""


def _is_library_frame(path: str) -> bool:
    return (
        any(hint in path for hint in PY_LIBRARY_HINTS)
        or path.startswith(PY_INTERPRETER_PREFIXES)
        or PY_STDLIB_DIR.search(path) is not None
    )


def _parse_python(lines, markers: _MarkerList, main_file):
    message = _last_nonempty(lines)
    for line in lines:
        m = PY_FRAME.search(line)
        if not m:
            continue
        path = m.group("file")
        if _is_library_frame(path):
            continue
        file = main_file if path.startswith("<") else _basename(path)
        markers.add(m.group("line"), message, file)


def _parse_java(lines, markers: _MarkerList, main_file):
    for line in lines:
        m = JAVA_COMPILE.search(line)
        if m:
            markers.add(m.group("line"), line.strip(), _basename(m.group("file")))
        m = JAVA_STACK.search(line)
        if m:
            markers.add(m.group("line"), line.strip(), _basename(m.group("file")))


def _parse_javascript(lines, markers: _MarkerList, main_file):
    error_line = next((line.strip() for line in lines if JS_ERROR_LINE.match(line)), None)
    for line in lines:
        m = JS_ANONYMOUS.search(line)
        if m:
            markers.add(m.group("line"), error_line or line.strip(), main_file)
            continue
        if "node:internal" in line or "internal/modules" in line:
            continue
        m = JS_FRAME.search(line)
        if m:
            markers.add(m.group("line"), error_line or line.strip(), _basename(m.group("file")))
    if error_line and not markers.markers:
        markers.add(1, error_line, main_file)


def _parse_cpp(lines, markers: _MarkerList, main_file):
    for line in lines:
        m = CPP_ERROR.search(line)
        if m:
            markers.add(m.group("line"), line.strip(), _basename(m.group("file")))


PARSERS = {
    "python": _parse_python,
    "java": _parse_java,
    "javascript": _parse_javascript,
    "cpp": _parse_cpp,
}


def parse_error_markers(error_text: str, language: str, main_file: Optional[str] = None) -> List[Dict[str, Any]]:
    """Extract {line, message, file} markers from error output."""
    if not error_text or not error_text.strip():
        return []

    markers = _MarkerList()
    lines = error_text.replace("\r\n", "\n").split("\n")
    parser = PARSERS.get(language)
    if parser is not None:
        parser(lines, markers, main_file)

    # Fallback: attach the whole error to the first line
    if not markers.markers:
        markers.add(1, error_text.strip(), main_file)

    return markers.markers
