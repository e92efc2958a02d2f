import asyncio

from fastapi import APIRouter

from nexus_server.api.deps import service_errors
from nexus_server.models.schemas import RunCodeRequest, RunProjectRequest, AnalyzeCodeRequest, ParseErrorsRequest
from nexus_server.services.execution_svc import (
    LANGUAGES,
    run_code,
    run_project,
    detect_input_prompts,
)
from nexus_server.utils.error_markers import parse_error_markers
from nexus_server.utils.security import normalize_language

router = APIRouter()


@router.post("/run")
async def api_run_code(req: RunCodeRequest):
    """Run a single snippet and return output plus editor error markers."""
    with service_errors("execute code"):
        return await asyncio.to_thread(run_code, req.code, req.language, req.stdin, req.inputs)


@router.post("/project")
async def api_run_project(req: RunProjectRequest):
    """Run an unsaved multi-file project straight from the editor."""
    with service_errors("execute project"):
        files = [f.model_dump() for f in req.files]
        return await asyncio.to_thread(run_project, files, req.main_file, req.language, req.stdin, req.inputs)


@router.post("/analyze")
async def api_analyze_code(req: AnalyzeCodeRequest):
    """Tell the editor whether the code waits for input before running it."""
    with service_errors("analyze code"):
        return detect_input_prompts(req.code, normalize_language(req.language))


@router.post("/parse-errors")
async def api_parse_errors(req: ParseErrorsRequest):
    with service_errors("parse errors"):
        markers = parse_error_markers(req.error, normalize_language(req.language), req.main_file)
        return {"status": "success", "markers": markers}


@router.get("/languages")
async def api_languages():
    return {"languages": LANGUAGES}
