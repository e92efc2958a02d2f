"""End-to-end checks of the HTTP surface through FastAPI's TestClient."""

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


def _create_project(client, name="Demo", language="python"):
    response = client.post("/api/projects", json={"name": name, "language": language}, headers=ALICE)
    assert response.status_code == 201
    return response.json()["project"]


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"]["available"] is True
    assert data["execution"]["backend"] == "local"


def test_user_header_is_required(client):
    assert client.get("/api/projects").status_code == 401


# ---------------------------------------------------------------- projects

def test_project_crud(client):
    project = _create_project(client, language="js")
    assert project["language"] == "javascript"
    assert [f["name"] for f in project["files"]] == ["main.js", "package.json"]

    listed = client.get("/api/projects", headers=ALICE).json()["projects"]
    assert [p["id"] for p in listed] == [project["id"]]
    assert client.get("/api/projects", headers=BOB).json()["projects"] == []
    assert client.get(f"/api/projects/{project['id']}", headers=BOB).status_code == 404

    updated = client.put(f"/api/projects/{project['id']}", json={"description": "renamed"}, headers=ALICE)
    assert updated.json()["project"]["description"] == "renamed"

    assert client.delete(f"/api/projects/{project['id']}", headers=ALICE).status_code == 200
    assert client.get(f"/api/projects/{project['id']}", headers=ALICE).status_code == 404


def test_project_validation_errors(client):
    response = client.post("/api/projects", json={"name": "Demo", "language": "cobol"}, headers=ALICE)
    assert response.status_code == 400
    assert "not supported" in response.json()["detail"]

    assert client.post("/api/projects", json={"language": "python"}, headers=ALICE).status_code == 422


def test_project_files(client):
    project = _create_project(client)
    pid = project["id"]

    created = client.post(f"/api/projects/{pid}/files", json={"name": "utils.py", "content": "X = 1"}, headers=ALICE)
    assert created.status_code == 201
    file_id = created.json()["file"]["id"]
    assert created.json()["file"]["language"] == "python"

    updated = client.put(f"/api/projects/{pid}/files/{file_id}", json={"content": "X = 2"}, headers=ALICE)
    assert updated.json()["file"]["content"] == "X = 2"

    assert client.post(f"/api/projects/{pid}/files", json={"name": "../evil.py"}, headers=ALICE).status_code == 400
    assert client.post(f"/api/projects/{pid}/files", json={"name": "."}, headers=ALICE).status_code == 400
    assert client.post(f"/api/projects/{pid}/files", json={"name": "src/"}, headers=ALICE).status_code == 400
    assert client.delete(f"/api/projects/{pid}/files/{file_id}", headers=ALICE).status_code == 200
    assert client.delete(f"/api/projects/{pid}/files/{file_id}", headers=ALICE).status_code == 404


def test_run_saved_project(client):
    project = _create_project(client)
    response = client.post(f"/api/projects/{project['id']}/run", json={}, headers=ALICE)

    assert response.status_code == 200
    assert response.json()["output"] == "Hello, World!\n"


# ---------------------------------------------------------------- versions

def test_file_snapshot_flow(client):
    project = _create_project(client)
    pid = project["id"]
    main = project["files"][0]
    body = {"projectId": pid, "fileId": main["id"], "fileName": "main.py", "content": "v1 = 1"}

    first = client.post("/api/versions/snapshot", json=body, headers=ALICE).json()
    assert first["status"] == "success"
    again = client.post("/api/versions/snapshot", json=body, headers=ALICE).json()
    assert again["status"] == "skipped"
    second = client.post("/api/versions/snapshot", json={**body, "content": "v2 = 2"}, headers=ALICE).json()

    history = client.get(f"/api/versions/file/{pid}/{main['id']}", headers=ALICE).json()["snapshots"]
    assert len(history) == 2

    summary = client.get(f"/api/versions/project/{pid}", headers=ALICE).json()["files"]
    assert summary[0]["snapshotCount"] == 2

    first_id = first["snapshot"]["id"]
    diff = client.get(f"/api/versions/diff/{first_id}/{second['snapshot']['id']}", headers=ALICE).json()
    assert diff["summary"] == {"added": 1, "removed": 1, "unchanged": 0}

    restored = client.post(f"/api/versions/restore/{first_id}?apply=true", headers=ALICE).json()
    assert restored["applied"] is True
    live = client.get(f"/api/projects/{pid}", headers=ALICE).json()["project"]["files"][0]
    assert live["content"] == "v1 = 1"

    assert client.get(f"/api/versions/snapshot/{first_id}", headers=BOB).status_code == 404


def test_snapshot_all(client):
    project = _create_project(client)
    files = [{"fileId": f["id"], "fileName": f["name"], "content": f["content"]} for f in project["files"]]

    result = client.post("/api/versions/snapshot-all", json={"projectId": project["id"], "files": files},
                         headers=ALICE).json()
    assert result["createdCount"] == 2


def test_project_snapshot_flow(client):
    project = _create_project(client)
    pid = project["id"]

    created = client.post("/api/versions/project-snapshot", json={"projectId": pid, "name": "Start"}, headers=ALICE)
    assert created.status_code == 200
    first = created.json()["snapshot"]
    assert first["filesCount"] == 2

    custom = [{"fileId": project["files"][0]["id"], "fileName": "main.py", "content": "print('v2')"}]
    second = client.post("/api/versions/project-snapshot",
                         json={"projectId": pid, "name": "Second", "files": custom}, headers=ALICE).json()["snapshot"]

    listed = client.get(f"/api/versions/project-snapshots/{pid}", headers=ALICE).json()["snapshots"]
    assert [s["name"] for s in listed] == ["Second", "Start"]

    detail = client.get(f"/api/versions/project-snapshot/{first['id']}", headers=ALICE).json()["snapshot"]
    assert len(detail["files"]) == 2

    diff = client.get(f"/api/versions/project-snapshot-diff/{first['id']}/{second['id']}", headers=ALICE).json()
    assert sorted(d["status"] for d in diff["fileDiffs"]) == ["modified", "removed"]

    restored = client.post(f"/api/versions/project-snapshot-restore/{second['id']}", headers=ALICE).json()
    assert restored["restoredCount"] == 1

    assert client.delete(f"/api/versions/project-snapshot/{second['id']}", headers=BOB).status_code == 404
    assert client.delete(f"/api/versions/project-snapshot/{second['id']}", headers=ALICE).status_code == 200
    assert client.get(f"/api/versions/project-snapshot/{second['id']}", headers=ALICE).status_code == 404


# ---------------------------------------------------------------- execution

def test_execution_run(client):
    response = client.post("/api/execution/run", json={"code": "print(input() * 2)", "input": "ab"})
    assert response.status_code == 200
    assert response.json()["output"] == "abab\n"

    blocked = client.post("/api/execution/run", json={"code": "import subprocess", "language": "python"})
    assert blocked.status_code == 400


def test_execution_project(client):
    body = {
        "files": [
            {"name": "main.py", "content": "import helper\nhelper.fail()\n"},
            {"name": "helper.py", "content": "def fail():\n    return 1 / 0\n"},
        ],
        "mainFile": "main.py",
        "language": "python",
    }
    data = client.post("/api/execution/project", json=body).json()

    assert data["status"] == "failed"
    assert {(m["file"], m["line"]) for m in data["markers"]} == {("main.py", 2), ("helper.py", 2)}


def test_analyze_parse_errors_and_languages(client):
    analysis = client.post("/api/execution/analyze", json={"code": 'n = input("Number: ")'}).json()
    assert analysis["needsInput"] is True
    assert analysis["prompts"] == ["Number: "]

    parsed = client.post("/api/execution/parse-errors",
                         json={"error": "main.cpp:4:3: error: boom", "language": "c++"}).json()
    assert parsed["markers"] == [{"line": 4, "message": "main.cpp:4:3: error: boom", "file": "main.cpp"}]

    languages = client.get("/api/execution/languages").json()["languages"]
    assert [lang["name"] for lang in languages] == ["python", "javascript", "java", "cpp"]


# ---------------------------------------------------------------- tasks

def test_task_endpoints(client):
    instructor = {"X-User-Id": "instructor"}
    body = {
        "title": "Echo",
        "description": "Print the line you read.",
        "points": 20,
        "difficulty": "easy",
        "testCases": [{"input": "hi", "expectedOutput": "hi"}, {"input": "yo", "expectedOutput": "yo", "isHidden": True}],
    }
    created = client.post("/api/tasks", json=body, headers=instructor)
    assert created.status_code == 201
    task_id = created.json()["task"]["id"]

    student_view = client.get(f"/api/tasks/{task_id}", headers=ALICE).json()["task"]
    assert student_view["testCases"][1]["expectedOutput"] is None

    assert client.put(f"/api/tasks/{task_id}", json={"points": 1}, headers=ALICE).status_code == 404
    assert client.put(f"/api/tasks/{task_id}", json={"points": 30}, headers=instructor).json()["task"]["points"] == 30

    assert client.post(f"/api/task-progress/{task_id}/start", headers=ALICE).json()["progress"]["status"] == "started"

    graded = client.post(f"/api/tasks/{task_id}/run-tests", json={"code": "print(input())"}, headers=ALICE).json()
    assert graded["data"]["passed"] == 2
    assert graded["data"]["pointsAwarded"] == 30

    mine = client.get("/api/task-progress/my-progress?status=completed", headers=ALICE).json()["progress"]
    assert [p["taskId"] for p in mine] == [task_id]

    assert client.post(f"/api/tasks/{task_id}/run-tests", json={"code": ""}, headers=ALICE).status_code == 400
    assert client.put(f"/api/task-progress/{task_id}/save", json={"code": "x"}, headers=BOB).status_code == 404
