import json
import os
import time
from typing import List, Dict, Any, Optional

from nexus_server import config
from nexus_server.database.connection import get_db, execute_with_retry
from nexus_server.utils.errors import NotFoundError
from nexus_server.utils.security import normalize_language, validate_project_name, validate_file_name
from nexus_server.utils.logger import server_logger as logger

EXTENSION_LANGUAGES = {
    ".py": "python",
    ".js": "javascript",
    ".ts": "typescript",
    ".java": "java",
    ".cpp": "cpp",
}

DEFAULT_MAIN_FILES = {
    "python": (
        "main.py",
        '# Main Python file\ndef main():\n    print("Hello, World!")\n\nif __name__ == "__main__":\n    main()\n',
    ),
    "javascript": (
        "main.js",
        '// Main JavaScript file\nfunction main() {\n    console.log("Hello, World!");\n}\n\nmain();\n',
    ),
    "java": (
        "Main.java",
        'public class Main {\n    public static void main(String[] args) {\n        System.out.println("Hello, World!");\n    }\n}\n',
    ),
    "cpp": (
        "main.cpp",
        '#include <iostream>\n\nint main() {\n    std::cout << "Hello, World!" << std::endl;\n    return 0;\n}\n',
    ),
}


def infer_language(file_name: str) -> str:
    """Guess an editor language from the file extension."""
    _, ext = os.path.splitext(file_name or "")
    return EXTENSION_LANGUAGES.get(ext.lower(), "plaintext")


def default_files(project_name: str, language: str, description: str = "") -> List[Dict[str, str]]:
    """Starter files for a new project: the main file plus the language's manifest."""
    main_name, main_content = DEFAULT_MAIN_FILES[language]
    files = [{"name": main_name, "content": main_content, "language": language}]
    safe_name = project_name.lower().replace(" ", "-")

    if language == "javascript":
        package_json = {
            "name": safe_name,
            "version": "1.0.0",
            "description": description or "A NexusQuest JavaScript project",
            "main": main_name,
            "scripts": {"start": f"node {main_name}", "dev": f"node {main_name}"},
            "keywords": [],
            "author": "",
            "license": "ISC",
            "dependencies": {},
        }
        files.append({"name": "package.json", "content": json.dumps(package_json, indent=2), "language": "json"})

    elif language == "python":
        files.append({
            "name": "requirements.txt",
            "content": "# Python dependencies\n# Add your dependencies here, one per line\n# Example: requests==2.31.0\n",
            "language": "python",
        })

    elif language == "cpp":
        files.append({
            "name": "CMakeLists.txt",
            "content": (
                "cmake_minimum_required(VERSION 3.15)\n"
                "project(NexusQuestProject CXX)\n"
                "set(CMAKE_CXX_STANDARD 20)\n"
                'file(GLOB SOURCES "*.cpp")\n'
                "add_executable(main ${SOURCES})"
            ),
            "language": "cmake",
        })

    elif language == "java":
        files.append({
            "name": "pom.xml",
            "content": (
                '<?xml version="1.0" encoding="UTF-8"?>\n'
                '<project xmlns="http://maven.apache.org/POM/4.0.0">\n'
                "    <modelVersion>4.0.0</modelVersion>\n"
                "    <groupId>com.nexusquest</groupId>\n"
                f"    <artifactId>{safe_name}</artifactId>\n"
                "    <version>1.0.0</version>\n"
                "    <properties>\n"
                "        <maven.compiler.source>17</maven.compiler.source>\n"
                "        <maven.compiler.target>17</maven.compiler.target>\n"
                "    </properties>\n"
                "</project>"
            ),
            "language": "xml",
        })

    return files


def fetch_owned_project(c, project_id, owner: str):
    """Return the project row or raise NotFoundError when missing or owned by someone else."""
    c.execute("SELECT * FROM projects WHERE id = ? AND owner = ?", (project_id, owner))
    row = c.fetchone()
    if row is None:
        raise NotFoundError("Project")
    return row


def file_to_dict(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "projectId": row["project_id"],
        "name": row["name"],
        "content": row["content"],
        "language": row["language"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }


def project_to_dict(row, files=None) -> Dict[str, Any]:
    data = {
        "id": row["id"],
        "name": row["name"],
        "description": row["description"] or "",
        "owner": row["owner"],
        "language": row["language"],
        "dependencies": json.loads(row["dependencies"] or "{}"),
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }
    if files is not None:
        data["files"] = [file_to_dict(f) for f in files]
    return data


def load_project_files(c, project_id) -> list:
    c.execute("SELECT * FROM project_files WHERE project_id = ? ORDER BY id", (project_id,))
    return c.fetchall()


class ProjectService:
    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path

    def list_projects(self, owner: str) -> List[Dict[str, Any]]:
        conn, _ = get_db(self.db_path)
        try:
            c = conn.cursor()
            c.execute("SELECT * FROM projects WHERE owner = ? ORDER BY updated_at DESC, id DESC", (owner,))
            return [project_to_dict(row, load_project_files(c, row["id"])) for row in c.fetchall()]
        finally:
            conn.close()

    def get_project(self, project_id: int, owner: str) -> Dict[str, Any]:
        conn, _ = get_db(self.db_path)
        try:
            c = conn.cursor()
            row = fetch_owned_project(c, project_id, owner)
            return project_to_dict(row, load_project_files(c, project_id))
        finally:
            conn.close()

    def create_project(self, owner: str, name: str, description: str = "", language: str = "python") -> Dict[str, Any]:
        """Create a project seeded with the language's default files."""
        name = validate_project_name(name)
        description = (description or "").strip()
        if len(description) > 500:
            raise ValueError("Description cannot exceed 500 characters")
        language = normalize_language(language or "python")

        conn, _ = get_db(self.db_path)
        try:
            c = conn.cursor()
            now = time.time()
            c.execute(
                "INSERT INTO projects (name, description, owner, language, dependencies, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, '{}', ?, ?)",
                (name, description, owner, language, now, now),
            )
            project_id = c.lastrowid
            for f in default_files(name, language, description):
                c.execute(
                    "INSERT INTO project_files (project_id, name, content, language, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (project_id, f["name"], f["content"], f["language"], now, now),
                )
            conn.commit()
            logger.info(f"Created project '{name}' ({language}) for {owner} (id: {project_id})")
            return project_to_dict(fetch_owned_project(c, project_id, owner), load_project_files(c, project_id))
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def update_project(self, project_id: int, owner: str, name=None, description=None,
                       language=None, dependencies=None) -> Dict[str, Any]:
        conn, _ = get_db(self.db_path)
        try:
            c = conn.cursor()
            row = fetch_owned_project(c, project_id, owner)

            new_name = validate_project_name(name) if name is not None else row["name"]
            new_description = description if description is not None else row["description"]
            if new_description and len(new_description) > 500:
                raise ValueError("Description cannot exceed 500 characters")
            new_language = normalize_language(language) if language is not None else row["language"]
            new_dependencies = row["dependencies"]
            if dependencies is not None:
                new_dependencies = json.dumps(dependencies if isinstance(dependencies, dict) else {})

            execute_with_retry(
                conn,
                "UPDATE projects SET name = ?, description = ?, language = ?, dependencies = ?, updated_at = ? "
                "WHERE id = ?",
                (new_name, new_description, new_language, new_dependencies, time.time(), project_id),
            )
            conn.commit()
            return project_to_dict(fetch_owned_project(c, project_id, owner), load_project_files(c, project_id))
        finally:
            conn.close()

    def delete_project(self, project_id: int, owner: str) -> None:
        """Delete a project; files and snapshots go with it through ON DELETE CASCADE."""
        conn, _ = get_db(self.db_path)
        try:
            c = conn.cursor()
            fetch_owned_project(c, project_id, owner)
            execute_with_retry(conn, "DELETE FROM projects WHERE id = ?", (project_id,))
            conn.commit()
            logger.info(f"Deleted project {project_id}")
        finally:
            conn.close()

    def add_file(self, project_id: int, owner: str, name: str, content: str = "", language: str = None) -> Dict[str, Any]:
        name = validate_file_name(name)
        conn, _ = get_db(self.db_path)
        try:
            c = conn.cursor()
            project = fetch_owned_project(c, project_id, owner)
            now = time.time()
            cur = execute_with_retry(
                conn,
                "INSERT INTO project_files (project_id, name, content, language, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (project_id, name, content or "", language or project["language"], now, now),
            )
            file_id = cur.lastrowid
            execute_with_retry(conn, "UPDATE projects SET updated_at = ? WHERE id = ?", (now, project_id))
            conn.commit()
            c.execute("SELECT * FROM project_files WHERE id = ?", (file_id,))
            return file_to_dict(c.fetchone())
        finally:
            conn.close()

    def update_file(self, project_id: int, file_id: int, owner: str, name=None, content=None, language=None) -> Dict[str, Any]:
        if content is not None and len(content) > config.MAX_CONTENT_SIZE:
            raise ValueError("File is too large (limit 10MB)")
        conn, _ = get_db(self.db_path)
        try:
            c = conn.cursor()
            fetch_owned_project(c, project_id, owner)
            c.execute("SELECT * FROM project_files WHERE id = ? AND project_id = ?", (file_id, project_id))
            row = c.fetchone()
            if row is None:
                raise NotFoundError("File")

            now = time.time()
            execute_with_retry(
                conn,
                "UPDATE project_files SET name = ?, content = ?, language = ?, updated_at = ? WHERE id = ?",
                (
                    validate_file_name(name) if name is not None else row["name"],
                    content if content is not None else row["content"],
                    language if language is not None else row["language"],
                    now,
                    file_id,
                ),
            )
            execute_with_retry(conn, "UPDATE projects SET updated_at = ? WHERE id = ?", (now, project_id))
            conn.commit()
            c.execute("SELECT * FROM project_files WHERE id = ?", (file_id,))
            return file_to_dict(c.fetchone())
        finally:
            conn.close()

    def delete_file(self, project_id: int, file_id: int, owner: str) -> None:
        conn, _ = get_db(self.db_path)
        try:
            c = conn.cursor()
            fetch_owned_project(c, project_id, owner)
            cur = execute_with_retry(
                conn, "DELETE FROM project_files WHERE id = ? AND project_id = ?", (file_id, project_id)
            )
            if cur.rowcount == 0:
                raise NotFoundError("File")
            execute_with_retry(conn, "UPDATE projects SET updated_at = ? WHERE id = ?", (time.time(), project_id))
            conn.commit()
        finally:
            conn.close()
