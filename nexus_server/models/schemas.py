from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Request bodies use camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- projects

class CreateProjectRequest(ApiModel):
    name: str
    description: str = ""
    language: str = "python"


class UpdateProjectRequest(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    dependencies: Optional[Dict[str, str]] = None


class CreateFileRequest(ApiModel):
    name: str
    content: str = ""
    language: Optional[str] = None


class UpdateFileRequest(ApiModel):
    name: Optional[str] = None
    content: Optional[str] = None
    language: Optional[str] = None


# ---- versions

class SnapshotRequest(ApiModel):
    project_id: int
    file_id: int
    file_name: str
    content: str
    message: Optional[str] = None


class SnapshotAllItem(ApiModel):
    file_id: int
    file_name: str
    content: str


class SnapshotAllRequest(ApiModel):
    project_id: int
    files: List[SnapshotAllItem]
    message: Optional[str] = None


class ProjectSnapshotFile(ApiModel):
    file_id: Union[int, str]
    file_name: str
    content: str


class ProjectSnapshotRequest(ApiModel):
    project_id: int
    name: str
    description: str = ""
    files: Optional[List[ProjectSnapshotFile]] = None


# ---- execution

class RunCodeRequest(ApiModel):
    code: str
    language: str = "python"
    stdin: Optional[str] = Field(None, alias="input")
    inputs: Optional[List[str]] = None


class RunFile(ApiModel):
    name: str
    content: str


class RunProjectRequest(ApiModel):
    files: List[RunFile]
    main_file: str
    language: str
    stdin: Optional[str] = Field(None, alias="input")
    inputs: Optional[List[str]] = None


class RunSavedProjectRequest(ApiModel):
    main_file: Optional[str] = None
    stdin: Optional[str] = Field(None, alias="input")
    inputs: Optional[List[str]] = None


class AnalyzeCodeRequest(ApiModel):
    code: str
    language: str = "python"


class ParseErrorsRequest(ApiModel):
    error: str
    language: str
    main_file: Optional[str] = None


# ---- tasks

class TaskTestCase(ApiModel):
    input: str = ""
    expected_output: str
    is_hidden: bool = False


class CreateTaskRequest(ApiModel):
    title: str
    description: str
    points: int
    difficulty: str
    language: str = "python"
    starter_code: str = ""
    test_cases: List[TaskTestCase] = []


class UpdateTaskRequest(ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    points: Optional[int] = None
    difficulty: Optional[str] = None
    language: Optional[str] = None
    starter_code: Optional[str] = None
    test_cases: Optional[List[TaskTestCase]] = None


class CodeRequest(ApiModel):
    code: str = ""
