import pytest

from nexus_server import config
from nexus_server.services import task_svc
from nexus_server.utils.errors import NotFoundError

DOUBLE = "print(int(input()) * 2)\n"


@pytest.fixture
def task(db_path):
    return task_svc.create_task(
        "instructor", "Double it", "Read a number and print twice its value.", 50, "easy",
        language="python",
        starter_code="# read a number\n",
        test_cases=[
            {"input": "2", "expectedOutput": "4"},
            {"input": "5", "expectedOutput": "10", "isHidden": True},
        ],
    )


def test_task_validation(db_path):
    with pytest.raises(ValueError):
        task_svc.create_task("instructor", "No", "Long enough description", 10, "easy")
    with pytest.raises(ValueError):
        task_svc.create_task("instructor", "Valid title", "short", 10, "easy")
    with pytest.raises(ValueError):
        task_svc.create_task("instructor", "Valid title", "Long enough description", 0, "easy")
    with pytest.raises(ValueError):
        task_svc.create_task("instructor", "Valid title", "Long enough description", 10, "extreme")


def test_hidden_cases_are_masked_for_students(task):
    student_view = task_svc.get_task(task["id"], "student")
    assert student_view["testCases"][0] == {"input": "2", "expectedOutput": "4", "isHidden": False}
    assert student_view["testCases"][1] == {"input": "(hidden)", "expectedOutput": None, "isHidden": True}

    author_view = task_svc.get_task(task["id"], "instructor")
    assert author_view["testCases"][1]["expectedOutput"] == "10"


def test_list_filters(task, db_path):
    task_svc.create_task("instructor", "Hard one", "A much harder exercise.", 300, "hard", language="javascript")

    assert [t["title"] for t in task_svc.list_tasks("student", difficulty="hard")] == ["Hard one"]
    assert [t["title"] for t in task_svc.list_tasks("student", language="py")] == ["Double it"]
    assert len(task_svc.list_tasks("student")) == 2


def test_only_author_can_update_or_delete(task):
    with pytest.raises(NotFoundError):
        task_svc.update_task(task["id"], "student", {"title": "Hijacked"})
    with pytest.raises(NotFoundError):
        task_svc.delete_task(task["id"], "student")

    updated = task_svc.update_task(task["id"], "instructor", {"points": 75, "starterCode": "pass\n"})
    assert updated["points"] == 75
    assert updated["starterCode"] == "pass\n"
    assert updated["title"] == "Double it"

    task_svc.delete_task(task["id"], "instructor")
    with pytest.raises(NotFoundError):
        task_svc.get_task(task["id"], "instructor")


def test_progress_lifecycle(task):
    assert task_svc.get_progress("student", task["id"]) is None

    started = task_svc.start_task("student", task["id"])
    assert started["status"] == "started"
    assert started["code"] == "# read a number\n"
    assert task_svc.start_task("student", task["id"])["id"] == started["id"]

    saved = task_svc.save_progress("student", task["id"], "x = 1")
    assert saved["code"] == "x = 1"
    assert saved["status"] == "started"

    done = task_svc.complete_task("student", task["id"], DOUBLE)
    assert done["status"] == "completed"
    assert done["completedAt"] is not None

    mine = task_svc.my_progress("student")
    assert len(mine) == 1
    assert mine[0]["task"]["title"] == "Double it"
    assert task_svc.my_progress("student", "started") == []
    with pytest.raises(ValueError):
        task_svc.my_progress("student", "abandoned")


def test_save_without_start_is_not_found(task):
    with pytest.raises(NotFoundError):
        task_svc.save_progress("student", task["id"], "code")
    with pytest.raises(NotFoundError):
        task_svc.complete_task("student", task["id"], "code")
    with pytest.raises(NotFoundError):
        task_svc.start_task("student", 9999)


def test_run_tests_awards_points_once(task):
    result = task_svc.run_tests("student", task["id"], DOUBLE)

    assert result["total"] == 2
    assert result["passed"] == 2
    assert result["completed"] is True
    assert result["pointsAwarded"] == 50
    assert result["results"][0]["actualOutput"] == "4\n"
    assert result["results"][1]["input"] == "(hidden)"
    assert result["results"][1]["actualOutput"] == "(correct)"

    progress = task_svc.get_progress("student", task["id"])
    assert progress["status"] == "completed"
    assert progress["pointsAwarded"] == 50
    assert progress["code"] == DOUBLE

    again = task_svc.run_tests("student", task["id"], DOUBLE)
    assert again["passed"] == 2
    assert again["completed"] is False
    assert again["pointsAwarded"] == 0


def test_run_tests_reports_failures(task):
    result = task_svc.run_tests("student", task["id"], "print(int(input()) + 2)\n")

    assert result["passed"] == 1
    assert result["completed"] is False
    assert result["results"][1]["passed"] is False
    assert result["results"][1]["actualOutput"] == "(incorrect)"
    assert task_svc.get_progress("student", task["id"]) is None


def test_run_tests_reports_runtime_errors(task):
    result = task_svc.run_tests("student", task["id"], "raise SystemExit(3)\n")

    assert result["passed"] == 0
    assert result["results"][0]["error"] == "Execution failed"


def test_run_tests_requires_code_and_cases(task, db_path):
    with pytest.raises(ValueError):
        task_svc.run_tests("student", task["id"], "   ")

    empty = task_svc.create_task("instructor", "Empty task", "No test cases at all here.", 5, "easy")
    with pytest.raises(ValueError):
        task_svc.run_tests("student", empty["id"], DOUBLE)


class RecordingRunner:
    """Answers every case correctly and remembers the timeout it was given."""

    def __init__(self):
        self.timeouts = []

    def run(self, language, files, main_file, stdin, timeout):
        self.timeouts.append(timeout)
        return {"output": f"{int(stdin) * 2}\n", "error": "", "exit_code": 0,
                "timed_out": False, "infra_error": False}


def test_each_test_case_gets_the_single_run_timeout(task, monkeypatch):
    monkeypatch.setattr(config, "RUN_TIMEOUT", 3)
    monkeypatch.setattr(config, "PROJECT_TIMEOUT", 30)
    runner = RecordingRunner()

    result = task_svc.run_tests("student", task["id"], DOUBLE, runner=runner)

    assert result["passed"] == 2
    assert runner.timeouts == [3, 3]
