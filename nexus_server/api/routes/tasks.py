import asyncio
from typing import Optional

from fastapi import APIRouter, Depends

from nexus_server.api.deps import get_current_user, service_errors
from nexus_server.models.schemas import CreateTaskRequest, UpdateTaskRequest, CodeRequest
from nexus_server.services import task_svc

router = APIRouter()
progress_router = APIRouter()


@router.get("")
async def list_tasks(difficulty: Optional[str] = None, language: Optional[str] = None,
                     user: str = Depends(get_current_user)):
    with service_errors("fetch tasks"):
        return {"status": "success", "tasks": task_svc.list_tasks(user, difficulty, language)}


@router.post("", status_code=201)
async def create_task(req: CreateTaskRequest, user: str = Depends(get_current_user)):
    with service_errors("create task"):
        task = task_svc.create_task(
            user, req.title, req.description, req.points, req.difficulty,
            language=req.language,
            starter_code=req.starter_code,
            test_cases=[case.model_dump(by_alias=True) for case in req.test_cases],
        )
        return {"status": "success", "task": task}


@router.get("/{task_id}")
async def get_task(task_id: int, user: str = Depends(get_current_user)):
    with service_errors("fetch task"):
        return {"status": "success", "task": task_svc.get_task(task_id, user)}


@router.put("/{task_id}")
async def update_task(task_id: int, req: UpdateTaskRequest, user: str = Depends(get_current_user)):
    with service_errors("update task"):
        changes = req.model_dump(by_alias=True, exclude_unset=True)
        return {"status": "success", "task": task_svc.update_task(task_id, user, changes)}


@router.delete("/{task_id}")
async def delete_task(task_id: int, user: str = Depends(get_current_user)):
    with service_errors("delete task"):
        task_svc.delete_task(task_id, user)
        return {"status": "success", "message": "Task deleted successfully"}


@router.post("/{task_id}/run-tests")
async def run_tests(task_id: int, req: CodeRequest, user: str = Depends(get_current_user)):
    """Grade code against all test cases; marks the task completed when everything passes."""
    with service_errors("run tests"):
        result = await asyncio.to_thread(task_svc.run_tests, user, task_id, req.code)
        return {"status": "success", "data": result}


# ---------------------------------------------------------------- progress

@progress_router.get("/my-progress")
async def my_progress(status: Optional[str] = None, user: str = Depends(get_current_user)):
    with service_errors("fetch progress"):
        return {"status": "success", "progress": task_svc.my_progress(user, status)}


@progress_router.get("/{task_id}")
async def get_progress(task_id: int, user: str = Depends(get_current_user)):
    with service_errors("fetch progress"):
        return {"status": "success", "progress": task_svc.get_progress(user, task_id)}


@progress_router.post("/{task_id}/start")
async def start_task(task_id: int, user: str = Depends(get_current_user)):
    with service_errors("start task"):
        return {"status": "success", "progress": task_svc.start_task(user, task_id)}


@progress_router.put("/{task_id}/save")
async def save_progress(task_id: int, req: CodeRequest, user: str = Depends(get_current_user)):
    with service_errors("save progress"):
        return {"status": "success", "progress": task_svc.save_progress(user, task_id, req.code)}


@progress_router.put("/{task_id}/complete")
async def complete_task(task_id: int, req: CodeRequest, user: str = Depends(get_current_user)):
    with service_errors("complete task"):
        return {"status": "success", "progress": task_svc.complete_task(user, task_id, req.code)}
