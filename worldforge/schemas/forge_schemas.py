"""
Forge Schema Definitions

Pydantic models for everything that flows through the generation-reconciliation
pipeline: the caller's input, the generated payload envelope, discoveries and
conflicts surfaced for review, and the pipeline state snapshot itself.

Usage:
    from worldforge.schemas import Discovery, PipelineState

    d = Discovery(id="disc-1", text="the Thieves' Guild", suggested_type="faction")
    d_dict = d.model_dump()
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


ForgeType = Literal["npc", "location", "item", "faction", "quest", "encounter", "creature"]

EntityType = Literal["npc", "location", "item", "faction", "quest", "encounter", "creature", "other"]

ForgeStatus = Literal[
    "idle", "validating", "generating", "scanning", "review", "saving", "saved", "error",
]

DiscoveryStatus = Literal["pending", "create_stub", "link_existing", "ignore"]

DiscoveryAction = Literal["link_existing", "create_stub"]

ConflictKind = Literal[
    "duplicate_name",     # same-type entity already carries this name
    "deceased_entity",    # same-type entity with this name is dead
    "similar_name",       # near-miss name in the campaign
    "location_missing",   # free-text location is not in the campaign
    "missing_reference",  # referenced entity id does not exist
    "type_mismatch",      # referenced entity has the wrong type for the field
    "role_conflict",      # leadership role already filled in the faction
    "codex",              # naming / theme / safety notes from the campaign codex
]

ConflictSeverity = Literal["error", "warning"]

ConflictResolution = Literal["unset", "proceed", "rename", "cancel"]

# Resolutions that let a blocking conflict stop blocking.
NON_DESTRUCTIVE_RESOLUTIONS = frozenset({"proceed", "rename"})


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Store records
# ---------------------------------------------------------------------------

class EntityRecord(BaseModel):
    """A campaign entity as seen through the entity store."""

    id: str
    campaign_id: str
    name: str
    entity_type: str
    sub_type: Optional[str] = None
    status: str = "active"
    summary: Optional[str] = None
    description: Optional[str] = None
    importance_tier: str = "minor"
    visibility: str = "dm_only"
    source_forge: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_stub(self) -> bool:
        return bool(self.attributes.get("is_stub"))


class RelationshipRecord(BaseModel):
    id: str
    campaign_id: str
    source_id: str
    target_id: str
    relationship_type: str
    description: Optional[str] = None


class HistoryEntry(BaseModel):
    """Provenance log entry stored in ``attributes.history``."""

    event: Literal["forged", "stub_created", "edited", "objective_changed"]
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    note: Optional[str] = None
    timestamp: str = Field(default_factory=_utcnow_iso)


# ---------------------------------------------------------------------------
# Pipeline input / output
# ---------------------------------------------------------------------------

class ForgeInput(BaseModel):
    """What the host typed into a forge form.

    Entity-type specific fields not listed here (race, rarity, quest giver ...)
    are accepted and passed through untouched.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    name: Optional[str] = Field(default=None, description="Name hint for the new entity")
    concept: Optional[str] = Field(default=None, description="Free-text concept / prompt")
    sub_type: Optional[str] = None
    location: Optional[str] = Field(default=None, description="Free-text location name")
    role: Optional[str] = None
    faction: Optional[str] = Field(default=None, description="Free-text faction name")
    location_id: Optional[str] = None
    faction_id: Optional[str] = None
    owner_id: Optional[str] = None
    reference_ids: List[str] = Field(default_factory=list)


class GeneratedPayload(BaseModel):
    """Typed envelope around the generated JSON.

    Only ``name``, ``text`` and ``list_candidates`` are inspected by the
    pipeline; ``raw`` is the untouched service response.
    """

    name: Optional[str] = None
    text: str = ""
    list_candidates: Dict[str, List[str]] = Field(default_factory=dict)
    raw: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Review records
# ---------------------------------------------------------------------------

class Discovery(BaseModel):
    """A candidate reference to another entity found in generated content."""

    id: str
    text: str = Field(..., description="Span exactly as it appears in the payload")
    suggested_type: EntityType = "npc"
    context: str = ""
    source_field: Optional[str] = Field(
        default=None,
        description="Payload field path the candidate came from; None for free text",
    )
    status: DiscoveryStatus = "pending"
    linked_entity_id: Optional[str] = None
    suggested_action: DiscoveryAction = "create_stub"
    matched_entity_id: Optional[str] = None
    matched_entity_name: Optional[str] = None
    over_limit: bool = Field(
        default=False,
        description="Past the per-type or total cap on new free-text discoveries",
    )


class Conflict(BaseModel):
    """A pre-generation issue. Errors block until resolved; warnings never block."""

    id: str
    kind: ConflictKind
    description: str
    severity: ConflictSeverity = "warning"
    resolution: ConflictResolution = "unset"
    existing_entity_id: Optional[str] = None
    existing_entity_name: Optional[str] = None
    suggestions: List[str] = Field(default_factory=list)

    @property
    def blocks(self) -> bool:
        return self.severity == "error" and self.resolution not in NON_DESTRUCTIVE_RESOLUTIONS


class PreValidationResult(BaseModel):
    conflicts: List[Conflict] = Field(default_factory=list)
    warnings: List[Conflict] = Field(default_factory=list)
    can_proceed: bool = True

    @classmethod
    def build(cls, conflicts: List[Conflict], warnings: List[Conflict]) -> "PreValidationResult":
        return cls(
            conflicts=conflicts,
            warnings=warnings,
            can_proceed=not any(c.blocks for c in conflicts),
        )

    @property
    def has_issues(self) -> bool:
        return bool(self.conflicts or self.warnings)


class EntityMention(BaseModel):
    """An existing entity referenced by the generated text."""

    id: str
    name: str
    entity_type: str
    text: str


class ScanResult(BaseModel):
    discoveries: List[Discovery] = Field(default_factory=list)
    existing_mentions: List[EntityMention] = Field(default_factory=list)
    canon_score: Literal["high", "medium", "low"] = "high"


# ---------------------------------------------------------------------------
# Commit records
# ---------------------------------------------------------------------------

class StubEntity(BaseModel):
    """A placeholder entity minted from an approved discovery."""

    discovery_id: str
    entity_id: str
    name: str
    entity_type: str


class MintResult(BaseModel):
    stubs: List[StubEntity] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class PersistedEntity(BaseModel):
    entity: EntityRecord
    relationships: List[RelationshipRecord] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class CommitMetadata(BaseModel):
    owner_id: Optional[str] = None
    location_id: Optional[str] = None
    faction_id: Optional[str] = None


class CommitDecisions(BaseModel):
    """Final review decisions. Omitted collections fall back to the pipeline state."""

    discoveries: Optional[List[Discovery]] = None
    conflicts: Optional[List[Conflict]] = None
    metadata: Optional[CommitMetadata] = None


class GenerateResult(BaseModel):
    success: bool
    reason: Optional[Literal["validation_failed", "needs_review", "busy", "error"]] = None


class CommitResult(BaseModel):
    success: bool
    entity: Optional[EntityRecord] = None
    stubs: List[StubEntity] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Pipeline state
# ---------------------------------------------------------------------------

class PipelineState(BaseModel):
    """Snapshot of one forge run. ``output`` is set only while scanning, in review, saving or saved."""

    status: ForgeStatus = "idle"
    input: Optional[ForgeInput] = None
    output: Optional[GeneratedPayload] = None
    pre_validation: Optional[PreValidationResult] = None
    scan_result: Optional[ScanResult] = None
    error: Optional[str] = None
