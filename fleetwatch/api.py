"""HTTP API for the fleet dashboard enrichment service."""

from typing import Any, List, Tuple, Union

from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel

from .app_types import Progress
from .dashboard import FleetDashboardController
from .domain import ChecklistStats, DefectCounts, TaskType, VesselRecord, VoyageStatus
from .enrichment import EnrichmentFlushedError, EnrichmentPipeline, coerce_task_type
from .session_manager import get_registry
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="fleetwatch/api")

router = APIRouter()


class ProgressResponse(BaseModel):
    """Background loading indicator; an empty label means idle."""
    current_step_label: str = ""
    percent_complete: int = 0
    running: bool = False
    queued: int = 0


class SessionResponse(BaseModel):
    session_id: str


class VesselListRequest(BaseModel):
    """Primary vessel list, as delivered by the upstream vessel service."""
    vessels: List[VesselRecord]


class FilterRequest(BaseModel):
    voyage_status: VoyageStatus


class FleetViewResponse(BaseModel):
    """Visible rows under the active filter plus loading state."""
    session_id: str
    voyage_status: VoyageStatus
    vessels: List[VesselRecord]
    version: int
    progress: ProgressResponse


class EnrichmentResponse(BaseModel):
    task_type: str
    key: str
    cached: bool
    value: Union[DefectCounts, ChecklistStats, int]


def _progress_response(controller: FleetDashboardController) -> ProgressResponse:
    pipeline = controller.pipeline
    progress: Progress = controller.progress
    return ProgressResponse(
        current_step_label=progress.current_step_label,
        percent_complete=progress.percent_complete,
        running=pipeline.processor.running,
        queued=len(pipeline.queue),
    )


def _view(session_id: str, controller: FleetDashboardController) -> FleetViewResponse:
    return FleetViewResponse(
        session_id=session_id,
        voyage_status=controller.filter_context.voyage_status,
        vessels=controller.rows,
        version=controller.pipeline.merger.version,
        progress=_progress_response(controller),
    )


async def _lookup(pipeline: EnrichmentPipeline, task_type: TaskType, key: str) -> Tuple[Any, bool]:
    """Return (value, was_cached). A lookup flushed by a concurrent refresh answers with the default."""
    cached = pipeline.peek_cached(task_type, key)
    if cached is not None:
        return cached, True
    try:
        return await pipeline.get_cached_or_fetch(task_type, key), False
    except EnrichmentFlushedError:
        logger.info(f"{task_type.value} lookup for {key!r} flushed by refresh; returning default")
        return pipeline.adapters[task_type].default, False


async def _require_controller(session_id: str) -> FleetDashboardController:
    controller = await get_registry().get(session_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="Unknown session ID")
    return controller


@router.post("/dashboard/session", response_model=SessionResponse)
async def start_session():
    """Open a dashboard session with its own enrichment caches and queue."""
    session_id = get_registry().create()
    return SessionResponse(session_id=session_id)


@router.delete("/dashboard/session/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(session_id: str):
    """Tear the session down; pending enrichment is dropped."""
    if not await get_registry().close(session_id):
        raise HTTPException(status_code=404, detail="Unknown session ID")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/dashboard/session/{session_id}/vessels", response_model=FleetViewResponse)
async def load_vessels(session_id: str, req: VesselListRequest):
    """Replace the primary vessel list; rows render now and enrich in the background."""
    controller = await _require_controller(session_id)
    controller.load_vessels(req.vessels)
    logger.debug(f"Session {session_id} loaded {len(req.vessels)} vessels")
    return _view(session_id, controller)


@router.get("/dashboard/session/{session_id}/vessels", response_model=FleetViewResponse)
async def get_vessels(session_id: str):
    """Return the rows as enriched so far."""
    controller = await _require_controller(session_id)
    return _view(session_id, controller)


@router.put("/dashboard/session/{session_id}/filter", response_model=FleetViewResponse)
async def set_filter(session_id: str, req: FilterRequest):
    """Switch the voyage filter and return the re-rendered rows."""
    controller = await _require_controller(session_id)
    controller.set_voyage_filter(req.voyage_status)
    return _view(session_id, controller)


@router.get("/dashboard/session/{session_id}/progress", response_model=ProgressResponse)
async def get_progress(session_id: str):
    controller = await _require_controller(session_id)
    return _progress_response(controller)


@router.post("/dashboard/session/{session_id}/refresh", response_model=FleetViewResponse)
async def refresh(session_id: str):
    """Drop every cached enrichment value and request the visible ones again."""
    controller = await _require_controller(session_id)
    queued = controller.refresh()
    logger.info(f"Session {session_id} refreshed; {queued} tasks queued")
    return _view(session_id, controller)


@router.get("/dashboard/session/{session_id}/enrichment/{task_type}/{key}", response_model=EnrichmentResponse)
async def get_enrichment(session_id: str, task_type: str, key: str):
    """Cached value for one key, or fetch it through the queue and wait."""
    controller = await _require_controller(session_id)
    resolved = coerce_task_type(task_type)
    if resolved is None or resolved not in controller.pipeline.adapters:
        raise HTTPException(status_code=404, detail=f"Unknown task type: {task_type}")

    pipeline = controller.pipeline
    value, cached = await _lookup(pipeline, resolved, key)
    return EnrichmentResponse(
        task_type=resolved.value,
        key=pipeline.adapters[resolved].cache_key(key),
        cached=cached,
        value=value,
    )
