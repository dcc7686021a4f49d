"""Quest objective endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from worldforge.forge.errors import InvalidTransition, ObjectiveNotFound, ObjectivePersistenceFailed
from worldforge.forge.gateway import EntityStore
from worldforge.quests.objectives import ObjectiveTracker
from worldforge.routers.forge import get_store
from worldforge.schemas import Objective, ObjectiveTransitionRequest, ObjectiveTransitionResponse

router = APIRouter()


async def _load_tracker(entity_id: str, store: EntityStore) -> ObjectiveTracker:
    try:
        return await ObjectiveTracker.load(store, entity_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Entity not found")


@router.get("/entities/{entity_id}/objectives", response_model=List[Objective])
async def list_objectives(entity_id: str, store: EntityStore = Depends(get_store)):
    tracker = await _load_tracker(entity_id, store)
    return tracker.objectives


@router.post(
    "/entities/{entity_id}/objectives/{objective_id}/transition",
    response_model=ObjectiveTransitionResponse,
)
async def transition_objective(
    entity_id: str,
    objective_id: str,
    request: ObjectiveTransitionRequest,
    store: EntityStore = Depends(get_store),
):
    tracker = await _load_tracker(entity_id, store)
    try:
        unlocked = await tracker.transition(objective_id, request.new_state)
    except ObjectiveNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ObjectivePersistenceFailed as e:
        raise HTTPException(status_code=502, detail=str(e))
    return ObjectiveTransitionResponse(objectives=tracker.objectives, unlocked=unlocked)
