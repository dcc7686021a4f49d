"""
Quest objective schemas.

Objectives live inside a quest entity's ``attributes.objectives`` list and are
only ever created or removed by full-entity edits; the unlock engine changes
their ``state``.
"""
from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


ObjectiveType = Literal["required", "optional", "hidden"]

ObjectiveState = Literal["locked", "active", "completed", "failed"]


class Objective(BaseModel):
    """One step of a quest.

    Frontend expects: {id, title, description, type, state, parent_id?, unlock_condition?, hints}
    """

    id: str = Field(..., description="Objective id, unique within the quest")
    title: str
    description: str = ""
    type: ObjectiveType = "required"
    state: ObjectiveState = "active"
    parent_id: Optional[str] = Field(
        default=None,
        description="Objective whose completion unlocks this one",
    )
    unlock_condition: Optional[str] = Field(
        default=None,
        description="Free text describing the event that should unlock this objective",
    )
    hints: List[str] = Field(default_factory=list)

    @property
    def is_gated(self) -> bool:
        return bool(self.parent_id or self.unlock_condition)


class ObjectiveTransitionRequest(BaseModel):
    new_state: Literal["active", "completed", "failed"]


class ObjectiveTransitionResponse(BaseModel):
    objectives: List[Objective]
    unlocked: List[Objective] = Field(default_factory=list)
