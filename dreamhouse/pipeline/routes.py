"""
FastAPI routes for the design pipeline.

Design Endpoints:
  POST /designs                 — Start a pipeline run (descriptions → images)
  GET  /designs/{run_id}        — Get pipeline run status

Project Endpoints:
  GET    /projects                              — Committed projects, newest first
  GET    /projects/active                       — Latest snapshot of the active project
  GET    /projects/{id}                         — Latest snapshot of a project
  DELETE /projects/{id}                         — Discard a project
  POST   /projects/{id}/rooms/{index}/video     — Start a fly-through video
  POST   /projects/{id}/rooms/{index}/recolor   — Recolor a room image

Capability / misc:
  GET  /capability, POST /capability/probe, POST /capability/grant
  GET  /activity, GET /presets, GET /media/videos/{name}
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from .. import presets
from ..studio import DesignStudio
from .errors import (
    CapabilityUnavailableError,
    ProjectNotFoundError,
    RecolorBusyError,
    RecolorFailure,
    ValidationFailure,
)
from .models import GrantRequest, PipelineStatusResponse, Preferences, Project, RecolorRequest
from .recolor import resolve_directive

logger = logging.getLogger(__name__)

# ── Singleton studio (lazy) ──────────────────────────────────────────────────

_studio: Optional[DesignStudio] = None


def get_studio() -> DesignStudio:
    """Lazy-init the process-wide studio."""
    global _studio
    if _studio is None:
        _studio = DesignStudio()
    return _studio


def set_studio(studio: Optional[DesignStudio]):
    """Install a studio (app startup, tests). ``None`` resets to lazy init."""
    global _studio
    _studio = studio


def _project_payload(studio: DesignStudio, project: Project) -> dict:
    payload = project.model_dump(mode="json", by_alias=True)
    payload["recoloring_index"] = studio.recolor.recoloring_index(project.id)
    payload["committed"] = studio.store.is_committed(project.id)
    return payload


# ═════════════════════════════════════════════════════════════════════════════
# Design Router
# ═════════════════════════════════════════════════════════════════════════════

design_router = APIRouter(prefix="/designs", tags=["designs"])


@design_router.post("", response_model=PipelineStatusResponse, status_code=202)
async def start_design(preferences: Preferences):
    """Start descriptions + images in the background. Poll the returned run id."""
    studio = get_studio()
    run_id = studio.pipeline.submit_background(preferences)
    return studio.pipeline.get_status(run_id)


@design_router.get("/{run_id}", response_model=PipelineStatusResponse)
async def get_design_status(run_id: str):
    status = get_studio().pipeline.get_status(run_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return status


# ═════════════════════════════════════════════════════════════════════════════
# Project Router
# ═════════════════════════════════════════════════════════════════════════════

project_router = APIRouter(prefix="/projects", tags=["projects"])


@project_router.get("")
async def list_projects():
    studio = get_studio()
    return [_project_payload(studio, p) for p in studio.store.list_projects()]


@project_router.get("/active")
async def get_active_project():
    studio = get_studio()
    project = studio.pipeline.active_project
    if project is None:
        raise HTTPException(status_code=404, detail="No active project")
    return _project_payload(studio, project)


@project_router.get("/{project_id}")
async def get_project(project_id: str):
    studio = get_studio()
    try:
        return _project_payload(studio, studio.store.get(project_id))
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@project_router.delete("/{project_id}", status_code=204)
async def discard_project(project_id: str):
    if not get_studio().discard_project(project_id):
        raise HTTPException(status_code=404, detail=f"Project {project_id} not found")


@project_router.post("/{project_id}/rooms/{index}/video", status_code=202)
async def start_room_video(project_id: str, index: int):
    """
    Start a Veo fly-through for one room.

    Errors:
      - 400: Room has no image yet / already generating
      - 403: Video capability not granted
      - 404: Unknown project
    """
    studio = get_studio()
    try:
        await studio.animator.start(project_id, index)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CapabilityUnavailableError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValidationFailure as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _project_payload(studio, studio.store.get(project_id))


@project_router.post("/{project_id}/rooms/{index}/recolor")
async def recolor_room(project_id: str, index: int, request: RecolorRequest):
    """
    Recolor one room's image.

    Errors:
      - 400: No READY image, bad directive/palette, undecodable image
      - 404: Unknown project
      - 409: Another recolor is in flight for this project
      - 502: The generation service failed; the old image is kept
    """
    studio = get_studio()
    try:
        directive = resolve_directive(request.directive, request.palette)
        project = await studio.recolor.recolor(project_id, index, directive)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RecolorBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationFailure as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RecolorFailure as e:
        logger.error(f"Recolor failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return _project_payload(studio, project)


# ═════════════════════════════════════════════════════════════════════════════
# Capability / Activity / Media
# ═════════════════════════════════════════════════════════════════════════════

capability_router = APIRouter(prefix="/capability", tags=["capability"])


@capability_router.get("")
async def get_capability():
    return {"state": get_studio().gate.state.value}


@capability_router.post("/probe")
async def probe_capability():
    state = await get_studio().gate.probe()
    return {"state": state.value}


@capability_router.post("/grant")
async def grant_capability(request: GrantRequest):
    """Run the key-selection flow. The key is verified on first video use."""
    studio = get_studio()
    state = await studio.gate.request_grant(request.api_key)
    studio.activity.record("Video API key selected.")
    return {"state": state.value}


misc_router = APIRouter(tags=["misc"])


@misc_router.get("/activity")
async def get_activity():
    return {"entries": get_studio().activity.entries()}


@misc_router.get("/presets")
async def get_presets():
    return presets.get_catalog()


@misc_router.get("/media/videos/{filename}")
async def get_video(filename: str):
    path = get_studio().video_store.resolve(filename)
    if path is None:
        raise HTTPException(status_code=404, detail="Video not found")
    return FileResponse(path, media_type="video/mp4")
