from fastapi import APIRouter, Depends

from nexus_server.api.deps import get_current_user, service_errors
from nexus_server.models.schemas import SnapshotRequest, SnapshotAllRequest, ProjectSnapshotRequest
from nexus_server.services import snapshot_svc
from nexus_server.services.project_snapshot_svc import ProjectSnapshotService

router = APIRouter()


# ---------------------------------------------------------------- file snapshots

@router.post("/snapshot")
async def api_create_snapshot(req: SnapshotRequest, user: str = Depends(get_current_user)):
    """Snapshot a single file (called on save)."""
    with service_errors("create snapshot"):
        return snapshot_svc.create_snapshot(user, req.project_id, req.file_id, req.file_name, req.content, req.message)


@router.post("/snapshot-all")
async def api_snapshot_all(req: SnapshotAllRequest, user: str = Depends(get_current_user)):
    with service_errors("create snapshots"):
        files = [f.model_dump(by_alias=True) for f in req.files]
        return snapshot_svc.snapshot_all(user, req.project_id, files, req.message)


@router.get("/file/{project_id}/{file_id}")
async def api_file_snapshots(project_id: int, file_id: int, user: str = Depends(get_current_user)):
    with service_errors("get snapshots"):
        return {"status": "success", "snapshots": snapshot_svc.list_file_snapshots(user, project_id, file_id)}


@router.get("/project/{project_id}")
async def api_project_versions(project_id: int, user: str = Depends(get_current_user)):
    with service_errors("get project snapshots"):
        return {"status": "success", "files": snapshot_svc.project_versions(user, project_id)}


@router.get("/snapshot/{snapshot_id}")
async def api_get_snapshot(snapshot_id: int, user: str = Depends(get_current_user)):
    with service_errors("get snapshot"):
        return {"status": "success", "snapshot": snapshot_svc.get_snapshot(user, snapshot_id)}


@router.post("/restore/{snapshot_id}")
async def api_restore_snapshot(snapshot_id: int, apply: bool = False, user: str = Depends(get_current_user)):
    with service_errors("restore snapshot"):
        return snapshot_svc.restore_snapshot(user, snapshot_id, apply=apply)


@router.get("/diff/{snapshot_id1}/{snapshot_id2}")
async def api_diff_snapshots(snapshot_id1: int, snapshot_id2: int, user: str = Depends(get_current_user)):
    with service_errors("compare snapshots"):
        return snapshot_svc.diff_snapshots(user, snapshot_id1, snapshot_id2)


# ---------------------------------------------------------------- project snapshots

@router.post("/project-snapshot")
async def api_create_project_snapshot(req: ProjectSnapshotRequest, user: str = Depends(get_current_user)):
    """Bundle every file of a project under a name."""
    with service_errors("create project snapshot"):
        files = None if req.files is None else [f.model_dump(by_alias=True) for f in req.files]
        snapshot = ProjectSnapshotService(user).create_snapshot(req.project_id, req.name, req.description, files)
        return {"status": "success", "snapshot": snapshot}


@router.get("/project-snapshots/{project_id}")
async def api_list_project_snapshots(project_id: int, user: str = Depends(get_current_user)):
    with service_errors("get project snapshots"):
        return {"status": "success", "snapshots": ProjectSnapshotService(user).list_snapshots(project_id)}


@router.get("/project-snapshot/{snapshot_id}")
async def api_get_project_snapshot(snapshot_id: int, user: str = Depends(get_current_user)):
    with service_errors("get project snapshot"):
        return {"status": "success", "snapshot": ProjectSnapshotService(user).get_snapshot(snapshot_id)}


@router.get("/project-snapshot-diff/{snapshot_id1}/{snapshot_id2}")
async def api_diff_project_snapshots(snapshot_id1: int, snapshot_id2: int, user: str = Depends(get_current_user)):
    with service_errors("compare project snapshots"):
        return ProjectSnapshotService(user).diff_snapshots(snapshot_id1, snapshot_id2)


@router.delete("/project-snapshot/{snapshot_id}")
async def api_delete_project_snapshot(snapshot_id: int, user: str = Depends(get_current_user)):
    with service_errors("delete snapshot"):
        ProjectSnapshotService(user).delete_snapshot(snapshot_id)
        return {"status": "success", "message": "Snapshot deleted"}


@router.post("/project-snapshot-restore/{snapshot_id}")
async def api_restore_project_snapshot(snapshot_id: int, user: str = Depends(get_current_user)):
    with service_errors("restore project snapshot"):
        return ProjectSnapshotService(user).restore_snapshot(snapshot_id)
