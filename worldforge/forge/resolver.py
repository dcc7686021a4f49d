"""Review-time edits to discoveries and conflicts.

Both functions return a new list with exactly one element replaced by id; the
input list and every other element are left as they were. An unknown id
returns an equal list.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from worldforge.schemas import Conflict, ConflictResolution, Discovery, DiscoveryStatus, EntityType


class DiscoveryPatch(BaseModel):
    """The fields a reviewer may change on a discovery."""
    model_config = ConfigDict(extra="forbid")

    status: Optional[DiscoveryStatus] = None
    linked_entity_id: Optional[str] = None
    suggested_type: Optional[EntityType] = None


def update_discovery(discoveries: list[Discovery], discovery_id: str, patch: dict[str, Any]) -> list[Discovery]:
    """Apply ``patch`` to the discovery with ``discovery_id``.

    Raises ``ValueError`` for keys other than status / linked_entity_id /
    suggested_type or for values outside their enums.
    """
    try:
        changes = DiscoveryPatch(**patch).model_dump(exclude_unset=True)
    except ValidationError as exc:
        raise ValueError(f"Invalid discovery patch: {exc}") from exc
    # Only the link may be cleared
    changes = {k: v for k, v in changes.items() if v is not None or k == "linked_entity_id"}

    return [
        d.model_copy(update=changes) if d.id == discovery_id else d
        for d in discoveries
    ]


def update_conflict(conflicts: list[Conflict], conflict_id: str, resolution: ConflictResolution) -> list[Conflict]:
    if resolution not in ("unset", "proceed", "rename", "cancel"):
        raise ValueError(f"Unknown resolution: {resolution!r}")
    return [
        c.model_copy(update={"resolution": resolution}) if c.id == conflict_id else c
        for c in conflicts
    ]
