# Forge pipeline schema definitions
from .forge_schemas import (
    ForgeType,
    EntityType,
    ForgeStatus,
    DiscoveryStatus,
    DiscoveryAction,
    ConflictKind,
    ConflictSeverity,
    ConflictResolution,
    NON_DESTRUCTIVE_RESOLUTIONS,
    # Store records
    EntityRecord,
    RelationshipRecord,
    HistoryEntry,
    # Pipeline input / output
    ForgeInput,
    GeneratedPayload,
    # Review records
    Discovery,
    Conflict,
    PreValidationResult,
    EntityMention,
    ScanResult,
    # Commit records
    StubEntity,
    MintResult,
    PersistedEntity,
    CommitMetadata,
    CommitDecisions,
    GenerateResult,
    CommitResult,
    # Pipeline state
    PipelineState,
)

# Quest objectives
from .quest_schemas import (
    ObjectiveType,
    ObjectiveState,
    Objective,
    ObjectiveTransitionRequest,
    ObjectiveTransitionResponse,
)

__all__ = [
    "ForgeType",
    "EntityType",
    "ForgeStatus",
    "DiscoveryStatus",
    "DiscoveryAction",
    "ConflictKind",
    "ConflictSeverity",
    "ConflictResolution",
    "NON_DESTRUCTIVE_RESOLUTIONS",
    # Store records
    "EntityRecord",
    "RelationshipRecord",
    "HistoryEntry",
    # Pipeline input / output
    "ForgeInput",
    "GeneratedPayload",
    # Review records
    "Discovery",
    "Conflict",
    "PreValidationResult",
    "EntityMention",
    "ScanResult",
    # Commit records
    "StubEntity",
    "MintResult",
    "PersistedEntity",
    "CommitMetadata",
    "CommitDecisions",
    "GenerateResult",
    "CommitResult",
    # Pipeline state
    "PipelineState",
    # Quest objectives
    "ObjectiveType",
    "ObjectiveState",
    "Objective",
    "ObjectiveTransitionRequest",
    "ObjectiveTransitionResponse",
]
