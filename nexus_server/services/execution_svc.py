import os
import re
import shlex
import signal
import subprocess
import sys
import tempfile
import time
from typing import List, Dict, Any, Optional

import requests

from nexus_server import config
from nexus_server.services.project_svc import ProjectService
from nexus_server.utils.error_markers import parse_error_markers
from nexus_server.utils.security import normalize_language, validate_code, validate_file_name
from nexus_server.utils.logger import execution_logger as logger

LANGUAGES = [
    {"name": "python", "version": "3", "extensions": [".py"], "supported": True},
    {"name": "javascript", "version": "20", "extensions": [".js"], "supported": True},
    {"name": "java", "version": "17", "extensions": [".java"], "supported": True},
    {"name": "cpp", "version": "C++20", "extensions": [".cpp"], "supported": True},
]

JAVA_CLASS = re.compile(r'public\s+class\s+(\w+)')

MANIFESTS = {
    "python": ("requirements.txt",),
    "javascript": ("package.json",),
    "java": ("pom.xml",),
    "cpp": ("conanfile.txt", "conanfile.py"),
}
CMAKE_FIND_PACKAGE = re.compile(r'find_package\s*\(\s*(\w+)')


def java_class_name(code: str, fallback: str = "Main") -> str:
    m = JAVA_CLASS.search(code or "")
    return m.group(1) if m else fallback


def default_file_name(language: str, code: str = "") -> str:
    if language == "python":
        return "main.py"
    if language == "javascript":
        return "main.js"
    if language == "cpp":
        return "main.cpp"
    if language == "java":
        return f"{java_class_name(code)}.java"
    return "code.txt"


def build_command(language: str, files: List[Dict[str, str]], main_file: str) -> List[str]:
    """Command that runs the project from inside its working directory."""
    if language == "python":
        return [sys.executable, "-u", main_file]

    if language == "javascript":
        return ["node", main_file]

    if language == "java":
        main_content = next((f["content"] for f in files if f["name"] == main_file), "")
        class_name = java_class_name(main_content, os.path.splitext(os.path.basename(main_file))[0])
        sources = " ".join(shlex.quote(f["name"]) for f in files if f["name"].endswith(".java"))
        return ["sh", "-c", f"javac -d . {sources} && java -cp . {shlex.quote(class_name)}"]

    if language == "cpp":
        sources = " ".join(shlex.quote(f["name"]) for f in files if f["name"].endswith(".cpp"))
        return ["sh", "-c", f"g++ -std=c++20 -I. {sources} -o a.out && ./a.out"]

    raise ValueError(f"Unsupported language: {language}")


def needs_network(language: str, dependencies: Optional[Dict[str, str]], files: List[Dict[str, str]]) -> bool:
    """Whether running the project would need to fetch dependencies."""
    if dependencies:
        return True
    names = {f["name"] for f in files or []}
    if any(manifest in names for manifest in MANIFESTS.get(language, ())):
        return True
    if language == "cpp":
        return any(f["name"] == "CMakeLists.txt" and CMAKE_FIND_PACKAGE.search(f["content"]) for f in files or [])
    return False


def _prompt_before(lines: List[str], marker: str, reader: re.Pattern) -> List[str]:
    prompts = []
    for i, line in enumerate(lines[:-1]):
        if marker in line and '"' in line and reader.search(lines[i + 1]):
            m = re.search(r'["\'](.*?)["\']', line)
            if m:
                prompts.append(m.group(1))
    return prompts


def detect_input_prompts(code: str, language: str) -> Dict[str, Any]:
    """Report whether the code reads stdin and which prompts it prints first."""
    code = code or ""
    if language == "python":
        needs_input = bool(re.search(r'input\s*\(', code))
        prompts = [m.group(1) or "Enter value" for m in re.finditer(r'input\s*\(\s*[\'"](.*?)[\'"]\s*\)', code)]
    elif language == "java":
        needs_input = bool(re.search(r'Scanner', code)) and bool(
            re.search(r'nextInt|nextLine|next\(|nextDouble|nextFloat|BufferedReader', code)
        )
        prompts = _prompt_before(code.split("\n"), "System.out.print", re.compile(r'next(Int|Line|Double|Float|\()'))
    elif language == "cpp":
        needs_input = bool(re.search(r'cin\s*>>', code))
        prompts = _prompt_before(code.split("\n"), "cout", re.compile(r'cin\s*>>'))
    elif language == "javascript":
        needs_input = bool(re.search(r'readline|stdin', code))
        prompts = _prompt_before(code.split("\n"), "console.log", re.compile(r'readline|stdin'))
    else:
        needs_input, prompts = False, []

    return {"needsInput": needs_input, "prompts": prompts, "expectedInputCount": len(prompts) or (1 if needs_input else 0)}


def resolve_stdin(stdin: Optional[str] = None, inputs: Optional[List[str]] = None) -> str:
    """Explicit stdin wins; otherwise queued inputs are fed one per line."""
    if stdin:
        return stdin if stdin.endswith("\n") else stdin + "\n"
    if inputs:
        return "\n".join(str(i) for i in inputs) + "\n"
    return ""


def _truncate(text: str) -> str:
    limit = config.MAX_OUTPUT_CHARS
    if text and len(text) > limit:
        return text[:limit] + f"\n... (output truncated at {limit} characters)"
    return text or ""


def _read_bounded(stream) -> str:
    """Decode at most enough bytes of a captured stream to fill the output limit."""
    stream.seek(0)
    # Up to 4 bytes per UTF-8 character; anything past the limit is cut by _truncate
    data = stream.read(config.MAX_OUTPUT_CHARS * 4 + 1)
    return data.decode('utf-8', errors='replace')


class LocalRunner:
    """Runs a project with the toolchains installed on this host."""

    def _kill(self, process):
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except (AttributeError, ProcessLookupError, PermissionError):
            process.kill()

    def run(self, language: str, files: List[Dict[str, str]], main_file: str, stdin: str, timeout: float) -> Dict[str, Any]:
        with tempfile.TemporaryDirectory(prefix="nexusquest-run-") as work_dir:
            for f in files:
                target = os.path.join(work_dir, validate_file_name(f["name"]))
                os.makedirs(os.path.dirname(target), exist_ok=True)
                with open(target, 'w', encoding='utf-8') as fh:
                    fh.write(f["content"])

            env = dict(os.environ)
            env.update({"PYTHONPATH": work_dir, "PYTHONIOENCODING": "utf-8", "PYTHONDONTWRITEBYTECODE": "1"})
            command = build_command(language, files, main_file)

            # Streams go to unnamed temp files so a chatty program cannot fill server memory
            with tempfile.TemporaryFile() as out_file, tempfile.TemporaryFile() as err_file:
                try:
                    process = subprocess.Popen(
                        command,
                        cwd=work_dir,
                        env=env,
                        stdin=subprocess.PIPE,
                        stdout=out_file,
                        stderr=err_file,
                        start_new_session=True,
                    )
                except FileNotFoundError:
                    logger.error(f"Runtime for {language} not found: {command[0]}")
                    return {"output": "", "error": f"Runtime for {language} is not available on this server",
                            "exit_code": None, "timed_out": False, "infra_error": True}

                try:
                    process.communicate(input=stdin.encode('utf-8'), timeout=timeout)
                    timed_out = False
                except subprocess.TimeoutExpired:
                    self._kill(process)
                    process.communicate()
                    timed_out = True

                output = _read_bounded(out_file)
                error = _read_bounded(err_file)

            return {
                "output": output,
                "error": error,
                "exit_code": process.returncode,
                "timed_out": timed_out,
                "infra_error": False,
            }


class RemoteRunner:
    """
    Client for a sandboxed execution service.
    POST {base_url}/execute with {language, files, mainFile, stdin, timeout}
    and expects {output, error, exitCode, timedOut}.
    """

    def __init__(self, base_url: str = None):
        self.base_url = (base_url or config.EXECUTION_URL).rstrip("/")

    def run(self, language: str, files: List[Dict[str, str]], main_file: str, stdin: str, timeout: float) -> Dict[str, Any]:
        payload = {
            "language": language,
            "files": [{"name": f["name"], "content": f["content"]} for f in files],
            "mainFile": main_file,
            "stdin": stdin,
            "timeout": timeout,
        }
        try:
            response = requests.post(f"{self.base_url}/execute", json=payload, timeout=timeout + 5)
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.ConnectionError:
            logger.error(f"Could not connect to execution service at {self.base_url}")
            return {"output": "", "error": "Execution service is not reachable",
                    "exit_code": None, "timed_out": False, "infra_error": True}
        except requests.exceptions.Timeout:
            return {"output": "", "error": f"Execution timeout ({timeout:g} seconds)",
                    "exit_code": None, "timed_out": True, "infra_error": False}
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Execution service error: {e}")
            return {"output": "", "error": f"Execution service error: {e}",
                    "exit_code": None, "timed_out": False, "infra_error": True}

        return {
            "output": result.get("output", ""),
            "error": result.get("error", ""),
            "exit_code": result.get("exitCode"),
            "timed_out": bool(result.get("timedOut", False)),
            "infra_error": False,
        }


def get_runner():
    if config.EXECUTION_BACKEND == "remote":
        return RemoteRunner()
    return LocalRunner()


def run_project(files: List[Dict[str, str]], main_file: str, language: str, stdin: Optional[str] = None,
                inputs: Optional[List[str]] = None, timeout: Optional[float] = None, runner=None) -> Dict[str, Any]:
    """
    Run a multi-file project and parse its errors into editor markers.
    Returns {status: success|failed|timeout|error, output, error, exitCode, executionTime, markers}.
    """
    language = normalize_language(language)
    if not files or not isinstance(files, list):
        raise ValueError("Missing required fields: files array")
    if not main_file:
        raise ValueError("Missing required fields: mainFile")
    if main_file not in {f["name"] for f in files}:
        raise ValueError(f"Main file '{main_file}' is not part of the project")
    total_size = sum(len(f["content"]) for f in files)
    if total_size > config.MAX_CONTENT_SIZE:
        raise ValueError("Project is too large to run (limit 10MB)")

    timeout = timeout or config.PROJECT_TIMEOUT
    runner = runner or get_runner()

    logger.info(f"Executing {language} project ({len(files)} files, main: {main_file})")
    started = time.perf_counter()
    raw = runner.run(language, files, main_file, resolve_stdin(stdin, inputs), timeout)
    execution_time = int((time.perf_counter() - started) * 1000)

    output = _truncate(raw["output"])
    error = _truncate(raw["error"])

    if raw.get("infra_error"):
        status = "error"
        markers = []
    elif raw.get("timed_out"):
        status = "timeout"
        error = error or f"Execution timeout ({timeout:g} seconds)"
        markers = []
    elif raw.get("exit_code") == 0:
        status = "success"
        markers = []
    else:
        status = "failed"
        markers = parse_error_markers(error or output, language, main_file)

    logger.info(
        f"Execution finished: {status} (exit code: {raw.get('exit_code')}, {execution_time}ms)",
        extra={"language": language, "status": status, "exit_code": raw.get("exit_code"), "duration_ms": execution_time},
    )
    return {
        "status": status,
        "output": output,
        "error": error,
        "exitCode": raw.get("exit_code"),
        "executionTime": execution_time,
        "markers": markers,
    }


def run_code(code: str, language: str = "python", stdin: Optional[str] = None,
             inputs: Optional[List[str]] = None, runner=None) -> Dict[str, Any]:
    """Run a single snippet (playground / editor)."""
    language = validate_code(code, language)
    file_name = default_file_name(language, code)
    result = run_project([{"name": file_name, "content": code}], file_name, language,
                         stdin=stdin, inputs=inputs, timeout=config.RUN_TIMEOUT, runner=runner)
    result["inputInfo"] = detect_input_prompts(code, language)
    return result


def run_saved_project(project_id: int, owner: str, main_file: Optional[str] = None, stdin: Optional[str] = None,
                      inputs: Optional[List[str]] = None, runner=None, db_path: Optional[str] = None) -> Dict[str, Any]:
    """Load a stored project and run it; the main file defaults to the language's entry point."""
    project = ProjectService(db_path).get_project(project_id, owner)
    files = [{"name": f["name"], "content": f["content"]} for f in project["files"]]
    language = project["language"]

    if not main_file:
        main_content = next((f["content"] for f in files if f["name"].endswith(".java")), "")
        main_file = default_file_name(language, main_content)

    result = run_project(files, main_file, language, stdin=stdin, inputs=inputs, runner=runner)
    result["needsNetwork"] = needs_network(language, project["dependencies"], files)
    return result
