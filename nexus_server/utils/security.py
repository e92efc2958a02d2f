import os
import re

from nexus_server import config

LANGUAGE_ALIASES = {
    "python": "python",
    "py": "python",
    "javascript": "javascript",
    "js": "javascript",
    "java": "java",
    "cpp": "cpp",
    "c++": "cpp",
}

# Sandbox isolation is the main defence; these only block the most obvious abuse
DANGEROUS_PATTERNS = [
    re.compile(r"import\s+subprocess", re.IGNORECASE),
    re.compile(r"import\s+socket", re.IGNORECASE),
    re.compile(r"exec\s*\(", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"__import__", re.IGNORECASE),
]


def normalize_language(language: str) -> str:
    """Map a language name or alias to its canonical form."""
    if not language or not isinstance(language, str):
        raise ValueError("Language is required")
    canonical = LANGUAGE_ALIASES.get(language.strip().lower())
    if canonical is None:
        supported = ", ".join(config.SUPPORTED_LANGUAGES)
        raise ValueError(f"Language '{language}' is not supported. Supported languages: {supported}")
    return canonical


def validate_file_name(file_name: str) -> str:
    """Check that a project-relative file name cannot escape the project directory."""
    if not file_name or not isinstance(file_name, str):
        raise ValueError("File name is required")

    candidate = file_name.replace("\\", "/")
    normalized = os.path.normpath(candidate)

    if os.path.isabs(normalized):
        raise ValueError(f"Absolute paths are not accepted: {file_name}")

    # A name must point at a file, not at the project root or a directory
    if normalized in ("", ".") or candidate.endswith("/"):
        raise ValueError(f"File name must name a file: {file_name}")

    # normpath still leading with a .. component means traversal
    if normalized == ".." or normalized.startswith("../"):
        raise ValueError(f"Illegal file name (path traversal): {file_name}")

    return normalized


def validate_project_name(name: str) -> str:
    if not name or not isinstance(name, str) or not name.strip():
        raise ValueError("Project name is required")
    name = name.strip()
    if len(name) > 100:
        raise ValueError("Project name cannot exceed 100 characters")
    return name


def validate_code(code: str, language: str) -> str:
    """Validate code submitted for a single-file run and return the canonical language."""
    if not code or not isinstance(code, str):
        raise ValueError("Code is required and must be a string")

    if len(code) > config.MAX_CODE_SIZE:
        raise ValueError(f"Code is too long (maximum {config.MAX_CODE_SIZE // 1000}KB allowed)")

    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(code):
            raise ValueError("Code contains potentially dangerous operations that are not allowed")

    return normalize_language(language)
