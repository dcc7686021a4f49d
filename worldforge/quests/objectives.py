"""Quest objective unlock engine.

The pure functions operate on a quest's full objective list and return a new
list; unlocking is cross-referential, so objectives are never transitioned in
isolation. ``ObjectiveTracker`` wraps them with optimistic persistence: the
local list changes first and is restored if the store write fails.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from worldforge.forge.errors import InvalidTransition, ObjectiveNotFound, ObjectivePersistenceFailed
from worldforge.forge.gateway import EntityStore
from worldforge.schemas import HistoryEntry, Objective
from worldforge.utils.logging_config import get_logger
from worldforge.utils.text_matching import fuzzy_match

_logger = get_logger("worldforge.objectives")

# Ids shorter than this are too likely to appear by accident inside condition text
MIN_ID_MATCH_LEN = 3


def _index_of(objectives: list[Objective], objective_id: str) -> int:
    for i, obj in enumerate(objectives):
        if obj.id == objective_id:
            return i
    raise ObjectiveNotFound(f"Objective {objective_id!r} not found")


def condition_met(condition: str, completed: Objective) -> bool:
    """Does ``condition`` refer to the just-completed objective?"""
    if fuzzy_match(condition, completed.title):
        return True
    return len(completed.id) >= MIN_ID_MATCH_LEN and completed.id.lower() in condition.lower()


def complete_objective(objectives: list[Objective], objective_id: str) -> tuple[list[Objective], list[Objective]]:
    """Mark ``objective_id`` completed and unlock what it gates.

    Returns ``(new_list, unlocked)``. A locked objective unlocks when its
    parent is the completed one, or when its unlock condition matches the
    completed objective's title or id.
    """
    idx = _index_of(objectives, objective_id)
    done = objectives[idx].model_copy(update={"state": "completed"})

    result: list[Objective] = []
    unlocked: list[Objective] = []
    for i, obj in enumerate(objectives):
        if i == idx:
            result.append(done)
            continue
        if obj.state == "locked" and (
            obj.parent_id == done.id
            or (obj.unlock_condition and condition_met(obj.unlock_condition, done))
        ):
            obj = obj.model_copy(update={"state": "active"})
            unlocked.append(obj)
        result.append(obj)
    return result, unlocked


def activate_objective(objectives: list[Objective], objective_id: str) -> list[Objective]:
    """Set ``objective_id`` active; children not yet completed go back to locked."""
    idx = _index_of(objectives, objective_id)
    result = []
    for i, obj in enumerate(objectives):
        if i == idx:
            obj = obj.model_copy(update={"state": "active"})
        elif obj.parent_id == objective_id and obj.state != "completed":
            obj = obj.model_copy(update={"state": "locked"})
        result.append(obj)
    return result


def fail_objective(objectives: list[Objective], objective_id: str) -> list[Objective]:
    idx = _index_of(objectives, objective_id)
    result = list(objectives)
    result[idx] = result[idx].model_copy(update={"state": "failed"})
    return result


def apply_transition(
    objectives: list[Objective],
    objective_id: str,
    new_state: str,
) -> tuple[list[Objective], list[Objective]]:
    if new_state == "completed":
        return complete_objective(objectives, objective_id)
    if new_state == "active":
        return activate_objective(objectives, objective_id), []
    if new_state == "failed":
        return fail_objective(objectives, objective_id), []
    raise InvalidTransition(f"Objectives cannot be moved to {new_state!r}")


def normalize_objectives(objectives: Iterable[Objective]) -> list[Objective]:
    """Initial states: gated objectives start locked, ungated required ones active."""
    result = []
    for obj in objectives:
        if obj.is_gated:
            obj = obj.model_copy(update={"state": "locked"})
        elif obj.type == "required":
            obj = obj.model_copy(update={"state": "active"})
        result.append(obj)
    return result


def parse_objectives(raw: Any) -> list[Objective]:
    """Objectives from generated JSON; malformed entries are skipped, missing ids filled in."""
    if not isinstance(raw, list):
        return []
    parsed = []
    for i, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            continue
        data = {k: v for k, v in item.items() if v is not None}
        data.setdefault("id", f"obj_{i}")
        data.setdefault("title", data.get("description") or f"Objective {i}")
        data["id"] = str(data["id"])
        try:
            parsed.append(Objective.model_validate(data))
        except ValidationError as exc:
            _logger.warning("skipping malformed objective %s: %s", data.get("id"), exc)
    return parsed


UnlockListener = Callable[[list[Objective]], None]


class ObjectiveTracker:
    """Objective list of one quest entity, kept in sync with the entity store."""

    def __init__(self, store: EntityStore, entity_id: str, objectives: list[Objective]):
        self.store = store
        self.entity_id = entity_id
        self._objectives = list(objectives)
        self._listeners: list[UnlockListener] = []

    @classmethod
    async def load(cls, store: EntityStore, entity_id: str) -> "ObjectiveTracker":
        entity = await store.get_entity(entity_id)
        if entity is None:
            raise LookupError(f"Entity {entity_id} not found")
        return cls(store, entity_id, parse_objectives(entity.attributes.get("objectives")))

    @property
    def objectives(self) -> list[Objective]:
        return list(self._objectives)

    def on_unlock(self, callback: UnlockListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def transition(self, objective_id: str, new_state: str) -> list[Objective]:
        """Apply a transition, persist it, and return the newly unlocked objectives.

        Raises ObjectivePersistenceFailed (after restoring the previous list)
        when the store write fails.
        """
        snapshot = self._objectives
        updated, unlocked = apply_transition(snapshot, objective_id, new_state)
        self._objectives = updated

        try:
            await self._persist(objective_id, new_state)
        except Exception as exc:
            self._objectives = snapshot
            _logger.error(
                "objective update rolled back | %s -> %s: %s", objective_id, new_state, exc,
                extra={"entity_id": self.entity_id},
            )
            raise ObjectivePersistenceFailed(f"Could not save objective change: {exc}") from exc

        _logger.info(
            "objective %s -> %s (%d unlocked)", objective_id, new_state, len(unlocked),
            extra={"entity_id": self.entity_id, "status": new_state},
        )
        if unlocked:
            for listener in list(self._listeners):
                try:
                    listener(list(unlocked))
                except Exception:
                    _logger.exception("unlock listener failed", extra={"entity_id": self.entity_id})
        return unlocked

    async def _persist(self, objective_id: str, new_state: str) -> None:
        entity = await self.store.get_entity(self.entity_id)
        if entity is None:
            raise LookupError(f"Entity {self.entity_id} not found")

        attributes = copy.deepcopy(entity.attributes)
        attributes["objectives"] = [o.model_dump() for o in self._objectives]
        history = list(attributes.get("history") or [])
        history.append(HistoryEntry(
            event="objective_changed",
            note=f"{objective_id} -> {new_state}",
        ).model_dump(exclude_none=True))
        attributes["history"] = history
        await self.store.update_entity(self.entity_id, {"attributes": attributes})


