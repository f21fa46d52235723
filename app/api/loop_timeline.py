"""Loop timeline API endpoints"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from app.infra.supabase.client import get_supabase_client
from app.models.loop_timeline import LoopMarker, LoopTimelineState
from app.services.loop_timeline import LoopTimelineService, LoopTimelineView, MarkerNotFoundError
from app.utils.loop_time import resolve_timezone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/loop-timeline", tags=["loop-timeline"])


def get_loop_timeline_service(request: Request) -> LoopTimelineService:
    """Service bound to the shared Supabase client and the app's engine registry"""
    registry = getattr(request.app.state, "loop_engines", None)
    return LoopTimelineService(get_supabase_client(), registry)


class UpdateSettingsRequest(BaseModel):
    duration_minutes: Optional[int] = None
    start_minute: Optional[int] = None


class CreateMarkerRequest(BaseModel):
    text: str
    offset_minutes: int = 0


class UpdateMarkerRequest(BaseModel):
    text: Optional[str] = None
    offset_minutes: Optional[int] = None


class LoopStateResponse(BaseModel):
    state: LoopTimelineState


class MarkerResponse(BaseModel):
    marker: LoopMarker


class MarkerListResponse(BaseModel):
    markers: List[LoopMarker]
    count: int


class DeleteResponse(BaseModel):
    success: bool
    message: str


def _to_http_error(action: str, e: Exception) -> HTTPException:
    if isinstance(e, MarkerNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    logger.error(f"Error during loop timeline {action}: {e}")
    return HTTPException(status_code=500, detail=f"Failed to {action}: {str(e)}")


@router.get("/{user_id}", response_model=LoopTimelineView)
async def get_loop_timeline(user_id: str, service: LoopTimelineService = Depends(get_loop_timeline_service)):
    """Get the loop with its markers and current position"""
    try:
        return await service.get_view(user_id)
    except Exception as e:
        raise _to_http_error("fetch loop timeline", e)


@router.put("/{user_id}/settings", response_model=LoopStateResponse)
async def update_settings(
    user_id: str,
    request: UpdateSettingsRequest,
    service: LoopTimelineService = Depends(get_loop_timeline_service),
):
    """Change the cycle length and/or the minute a deferred start waits for"""
    try:
        state = await service.update_settings(user_id, request.duration_minutes, request.start_minute)
        return {"state": state}
    except Exception as e:
        raise _to_http_error("update loop settings", e)


@router.post("/{user_id}/start", response_model=LoopStateResponse)
async def start_loop(
    user_id: str,
    immediate: bool = False,
    tz: Optional[str] = None,
    service: LoopTimelineService = Depends(get_loop_timeline_service),
):
    """
    Start the loop.

    Without immediate the loop waits for the next occurrence of the start
    minute, read on the wall clock of tz (IANA name, default UTC). A paused
    loop always resumes right away.
    """
    try:
        state = await service.start(user_id, immediate=immediate, tz=resolve_timezone(tz))
        return {"state": state}
    except Exception as e:
        raise _to_http_error("start loop", e)


@router.post("/{user_id}/pause", response_model=LoopStateResponse)
async def pause_loop(user_id: str, service: LoopTimelineService = Depends(get_loop_timeline_service)):
    """Pause a running loop, keeping its elapsed time"""
    try:
        state = await service.pause(user_id)
        return {"state": state}
    except Exception as e:
        raise _to_http_error("pause loop", e)


@router.post("/{user_id}/resume", response_model=LoopStateResponse)
async def resume_loop(user_id: str, service: LoopTimelineService = Depends(get_loop_timeline_service)):
    """Resume a paused loop"""
    try:
        state = await service.resume(user_id)
        return {"state": state}
    except Exception as e:
        raise _to_http_error("resume loop", e)


@router.post("/{user_id}/stop", response_model=LoopStateResponse)
async def stop_loop(user_id: str, service: LoopTimelineService = Depends(get_loop_timeline_service)):
    """Stop the loop"""
    try:
        state = await service.stop(user_id)
        return {"state": state}
    except Exception as e:
        raise _to_http_error("stop loop", e)


@router.get("/{user_id}/markers", response_model=MarkerListResponse)
async def list_markers(user_id: str, service: LoopTimelineService = Depends(get_loop_timeline_service)):
    """List markers ordered along the loop"""
    try:
        markers = await service.list_markers(user_id)
        return {"markers": markers, "count": len(markers)}
    except Exception as e:
        raise _to_http_error("list markers", e)


@router.post("/{user_id}/markers", response_model=MarkerResponse)
async def create_marker(
    user_id: str,
    request: CreateMarkerRequest,
    service: LoopTimelineService = Depends(get_loop_timeline_service),
):
    """Pin a marker on the loop"""
    try:
        marker = await service.add_marker(user_id, request.text, request.offset_minutes)
        return {"marker": marker}
    except Exception as e:
        raise _to_http_error("create marker", e)


@router.patch("/{user_id}/markers/{marker_id}", response_model=MarkerResponse)
async def update_marker(
    user_id: str,
    marker_id: int,
    request: UpdateMarkerRequest,
    service: LoopTimelineService = Depends(get_loop_timeline_service),
):
    """Edit a marker"""
    try:
        marker = await service.update_marker(user_id, marker_id, request.text, request.offset_minutes)
        return {"marker": marker}
    except Exception as e:
        raise _to_http_error("update marker", e)


@router.delete("/{user_id}/markers/{marker_id}", response_model=DeleteResponse)
async def delete_marker(
    user_id: str,
    marker_id: int,
    service: LoopTimelineService = Depends(get_loop_timeline_service),
):
    """Delete a marker"""
    try:
        await service.delete_marker(user_id, marker_id)
        return {"success": True, "message": f"Marker {marker_id} deleted"}
    except Exception as e:
        raise _to_http_error("delete marker", e)
