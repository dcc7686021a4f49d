"""Forge pipeline REST endpoints and the pipeline state WebSocket."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Optional, Set, get_args

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from worldforge.app import manager
from worldforge.config import get_settings
from worldforge.forge.errors import PipelineStateError
from worldforge.forge.gateway import EntityStore, SqlEntityStore
from worldforge.forge.generator import ContentGenerator, GeminiForgeGenerator
from worldforge.forge.orchestrator import ForgePipeline
from worldforge.forge.resolver import DiscoveryPatch
from worldforge.schemas import (
    CommitDecisions,
    CommitResult,
    ConflictResolution,
    ForgeInput,
    ForgeType,
    GenerateResult,
    PipelineState,
)
from worldforge.utils.logging_config import get_logger

logger = get_logger("worldforge.routers.forge")

router = APIRouter()

FORGE_TYPES = frozenset(get_args(ForgeType))


class PipelineRegistry:
    """In-process pipelines by id. Every state change is pushed to the pipeline's WebSocket channel.

    Pipelines not looked up for ``ttl_seconds`` are evicted on the next
    create or lookup, unless a run is in flight.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._pipelines: Dict[str, ForgePipeline] = {}
        self._touched: Dict[str, float] = {}
        self._tasks: Set[asyncio.Task] = set()
        self.ttl_seconds = get_settings().pipeline_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock

    def create(self, store: EntityStore, generator: ContentGenerator, campaign_id: str,
               forge_type: str, stub_id: Optional[str] = None) -> ForgePipeline:
        self.evict_stale()
        pipeline = ForgePipeline(store, generator, campaign_id, forge_type, stub_id=stub_id)
        pipeline.subscribe(lambda state, pid=pipeline.id: self._push(pid, state))
        self._pipelines[pipeline.id] = pipeline
        self._touched[pipeline.id] = self._clock()
        logger.info("pipeline created", extra={"pipeline_id": pipeline.id, "campaign_id": campaign_id})
        return pipeline

    def find(self, pipeline_id: str) -> Optional[ForgePipeline]:
        self.evict_stale()
        pipeline = self._pipelines.get(pipeline_id)
        if pipeline is not None:
            self._touched[pipeline_id] = self._clock()
        return pipeline

    def get(self, pipeline_id: str) -> ForgePipeline:
        pipeline = self.find(pipeline_id)
        if pipeline is None:
            raise HTTPException(status_code=404, detail="Pipeline not found")
        return pipeline

    def remove(self, pipeline_id: str) -> None:
        pipeline = self.get(pipeline_id)
        pipeline.reset()
        del self._pipelines[pipeline_id]
        self._touched.pop(pipeline_id, None)

    def evict_stale(self) -> int:
        cutoff = self._clock() - self.ttl_seconds
        stale = [
            pid for pid, pipeline in self._pipelines.items()
            if self._touched.get(pid, 0) < cutoff and not pipeline.busy
        ]
        for pid in stale:
            del self._pipelines[pid]
            self._touched.pop(pid, None)
            logger.info("pipeline evicted", extra={"pipeline_id": pid})
        return len(stale)

    def __len__(self) -> int:
        return len(self._pipelines)

    def _push(self, pipeline_id: str, state: PipelineState) -> None:
        if pipeline_id not in manager.active_connections:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(manager.broadcast(pipeline_id, state_message(pipeline_id, state)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


registry = PipelineRegistry()


def get_registry() -> PipelineRegistry:
    return registry


def get_store() -> EntityStore:
    return SqlEntityStore()


def get_generator() -> ContentGenerator:
    return GeminiForgeGenerator()


def state_message(pipeline_id: str, state: PipelineState) -> dict:
    return {"type": "state", "pipeline_id": pipeline_id, "state": state.model_dump(mode="json")}


# ============================================================================
#                           REQUEST / RESPONSE MODELS
# ============================================================================

class CreatePipelineRequest(BaseModel):
    stub_id: Optional[str] = None


class PipelineView(BaseModel):
    pipeline_id: str
    campaign_id: str
    forge_type: str
    state: PipelineState


class GenerateResponse(BaseModel):
    result: GenerateResult
    pipeline: PipelineView


class ConflictUpdateRequest(BaseModel):
    resolution: ConflictResolution


class CommitResponse(BaseModel):
    result: CommitResult
    pipeline: PipelineView


def _view(pipeline: ForgePipeline) -> PipelineView:
    return PipelineView(
        pipeline_id=pipeline.id,
        campaign_id=pipeline.campaign_id,
        forge_type=pipeline.forge_type,
        state=pipeline.state,
    )


# ============================================================================
#                           ENDPOINTS
# ============================================================================

@router.post("/campaigns/{campaign_id}/forge/{forge_type}", response_model=PipelineView, status_code=201)
async def create_pipeline(
    campaign_id: str,
    forge_type: str,
    request: Optional[CreatePipelineRequest] = None,
    store: EntityStore = Depends(get_store),
    generator: ContentGenerator = Depends(get_generator),
    pipelines: PipelineRegistry = Depends(get_registry),
):
    if forge_type not in FORGE_TYPES:
        raise HTTPException(status_code=404, detail=f"Unknown forge type: {forge_type}")
    stub_id = request.stub_id if request else None
    pipeline = pipelines.create(store, generator, campaign_id, forge_type, stub_id=stub_id)
    return _view(pipeline)


@router.get("/forge/{pipeline_id}", response_model=PipelineView)
async def get_pipeline(pipeline_id: str, pipelines: PipelineRegistry = Depends(get_registry)):
    return _view(pipelines.get(pipeline_id))


@router.post("/forge/{pipeline_id}/generate", response_model=GenerateResponse)
async def generate(pipeline_id: str, request: ForgeInput, pipelines: PipelineRegistry = Depends(get_registry)):
    pipeline = pipelines.get(pipeline_id)
    result = await pipeline.generate(request)
    if result.reason == "busy":
        raise HTTPException(status_code=409, detail=f"Pipeline is busy ({pipeline.state.status})")
    return GenerateResponse(result=result, pipeline=_view(pipeline))


@router.post("/forge/{pipeline_id}/proceed", response_model=GenerateResponse)
async def proceed_anyway(pipeline_id: str, pipelines: PipelineRegistry = Depends(get_registry)):
    pipeline = pipelines.get(pipeline_id)
    result = await pipeline.proceed_anyway()
    if result.reason == "busy":
        raise HTTPException(status_code=409, detail=f"Cannot proceed while {pipeline.state.status}")
    return GenerateResponse(result=result, pipeline=_view(pipeline))


@router.patch("/forge/{pipeline_id}/discoveries/{discovery_id}", response_model=PipelineView)
async def update_discovery(
    pipeline_id: str,
    discovery_id: str,
    patch: DiscoveryPatch,
    pipelines: PipelineRegistry = Depends(get_registry),
):
    pipeline = pipelines.get(pipeline_id)
    scan = pipeline.state.scan_result
    if scan is None or not any(d.id == discovery_id for d in scan.discoveries):
        raise HTTPException(status_code=404, detail="Discovery not found")
    try:
        pipeline.update_discovery(discovery_id, patch.model_dump(exclude_unset=True))
    except PipelineStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _view(pipeline)


@router.patch("/forge/{pipeline_id}/conflicts/{conflict_id}", response_model=PipelineView)
async def update_conflict(
    pipeline_id: str,
    conflict_id: str,
    request: ConflictUpdateRequest,
    pipelines: PipelineRegistry = Depends(get_registry),
):
    pipeline = pipelines.get(pipeline_id)
    pre = pipeline.state.pre_validation
    if pre is None or not any(c.id == conflict_id for c in pre.conflicts + pre.warnings):
        raise HTTPException(status_code=404, detail="Conflict not found")
    try:
        pipeline.update_conflict(conflict_id, request.resolution)
    except PipelineStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _view(pipeline)


@router.post("/forge/{pipeline_id}/commit", response_model=CommitResponse)
async def commit(
    pipeline_id: str,
    decisions: Optional[CommitDecisions] = None,
    pipelines: PipelineRegistry = Depends(get_registry),
):
    pipeline = pipelines.get(pipeline_id)
    result = await pipeline.commit(decisions)
    if not result.success:
        if pipeline.state.status == "error":
            raise HTTPException(status_code=502, detail=result.error)
        raise HTTPException(status_code=409, detail=result.error)
    return CommitResponse(result=result, pipeline=_view(pipeline))


@router.post("/forge/{pipeline_id}/reset", response_model=PipelineView)
async def reset(pipeline_id: str, pipelines: PipelineRegistry = Depends(get_registry)):
    pipeline = pipelines.get(pipeline_id)
    pipeline.reset()
    return _view(pipeline)


@router.delete("/forge/{pipeline_id}")
async def delete_pipeline(pipeline_id: str, pipelines: PipelineRegistry = Depends(get_registry)):
    pipelines.remove(pipeline_id)
    return {"message": "Pipeline discarded"}


@router.websocket("/ws/forge/{pipeline_id}")
async def pipeline_socket(
    websocket: WebSocket,
    pipeline_id: str,
    pipelines: PipelineRegistry = Depends(get_registry),
):
    await manager.connect(websocket, pipeline_id)
    try:
        pipeline = pipelines.find(pipeline_id)
        if pipeline is None:
            await manager.send_json({"type": "error", "message": "Pipeline not found"}, websocket)
            await websocket.close()
            return

        await manager.send_json(state_message(pipeline.id, pipeline.state), websocket)
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await manager.send_json({"type": "pong"}, websocket)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket, pipeline_id)
