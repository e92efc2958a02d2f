import asyncio

from fastapi import APIRouter, Depends

from nexus_server.api.deps import get_current_user, service_errors
from nexus_server.models.schemas import (
    CreateProjectRequest,
    UpdateProjectRequest,
    CreateFileRequest,
    UpdateFileRequest,
    RunSavedProjectRequest,
)
from nexus_server.services.project_svc import ProjectService
from nexus_server.services.execution_svc import run_saved_project

router = APIRouter()
svc = ProjectService()


@router.get("")
async def list_projects(user: str = Depends(get_current_user)):
    with service_errors("fetch projects"):
        return {"status": "success", "projects": svc.list_projects(user)}


@router.post("", status_code=201)
async def create_project(req: CreateProjectRequest, user: str = Depends(get_current_user)):
    """Create a project seeded with starter files for its language."""
    with service_errors("create project"):
        return {"status": "success", "project": svc.create_project(user, req.name, req.description, req.language)}


@router.get("/{project_id}")
async def get_project(project_id: int, user: str = Depends(get_current_user)):
    with service_errors("fetch project"):
        return {"status": "success", "project": svc.get_project(project_id, user)}


@router.put("/{project_id}")
async def update_project(project_id: int, req: UpdateProjectRequest, user: str = Depends(get_current_user)):
    with service_errors("update project"):
        project = svc.update_project(
            project_id, user,
            name=req.name,
            description=req.description,
            language=req.language,
            dependencies=req.dependencies,
        )
        return {"status": "success", "project": project}


@router.delete("/{project_id}")
async def delete_project(project_id: int, user: str = Depends(get_current_user)):
    with service_errors("delete project"):
        svc.delete_project(project_id, user)
        return {"status": "success", "message": "Project deleted successfully"}


@router.post("/{project_id}/files", status_code=201)
async def add_file(project_id: int, req: CreateFileRequest, user: str = Depends(get_current_user)):
    with service_errors("add file"):
        return {"status": "success", "file": svc.add_file(project_id, user, req.name, req.content, req.language)}


@router.put("/{project_id}/files/{file_id}")
async def update_file(project_id: int, file_id: int, req: UpdateFileRequest, user: str = Depends(get_current_user)):
    with service_errors("update file"):
        updated = svc.update_file(project_id, file_id, user, name=req.name, content=req.content, language=req.language)
        return {"status": "success", "file": updated}


@router.delete("/{project_id}/files/{file_id}")
async def delete_file(project_id: int, file_id: int, user: str = Depends(get_current_user)):
    with service_errors("delete file"):
        svc.delete_file(project_id, file_id, user)
        return {"status": "success", "message": "File deleted successfully"}


@router.post("/{project_id}/run")
async def run_project(project_id: int, req: RunSavedProjectRequest, user: str = Depends(get_current_user)):
    """Run the stored files of a project."""
    with service_errors("run project"):
        result = await asyncio.to_thread(
            run_saved_project, project_id, user, req.main_file, req.stdin, req.inputs
        )
        return result
