"""Entity minter.

Creates stub entities for approved discoveries and persists the forged entity
with its relationships. Stub and relationship failures are collected and
reported, not rolled back: partial success is preferred over losing the
forged entity. Only a failed insert of the forged entity itself aborts.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, NamedTuple, Optional, Union

from worldforge.forge.errors import CommitFailed
from worldforge.forge.gateway import EntityStore, new_id
from worldforge.forge.payload import get_path
from worldforge.quests.objectives import normalize_objectives, parse_objectives
from worldforge.schemas import (
    CommitMetadata,
    Discovery,
    EntityRecord,
    GeneratedPayload,
    HistoryEntry,
    MintResult,
    PersistedEntity,
    RelationshipRecord,
    StubEntity,
)
from worldforge.utils.logging_config import get_logger

_logger = get_logger("worldforge.minter")

_STUB_SUMMARY_CONTEXT = 100


def build_npc_description(raw: dict[str, Any]) -> str:
    parts = []
    for key, label in (("appearance", "Appearance"), ("personality", "Personality"), ("motivation", "Motivation")):
        if raw.get(key):
            parts.append(f"**{label}:** {raw[key]}")
    return "\n\n".join(parts)


class RecordFields(NamedTuple):
    """Where the top-level entity columns come from in a generated payload."""

    sub_type: tuple[str, ...]
    summary: tuple[str, ...]
    description: Union[tuple[str, ...], Callable[[dict[str, Any]], str]]


# Paths are tried in order; the first non-empty value wins
RECORD_FIELDS: dict[str, RecordFields] = {
    "npc": RecordFields(("race",), ("dm_slug", "summary"), build_npc_description),
    "item": RecordFields(("item_type",), ("public_description", "summary"), ("secret_description", "description")),
    "location": RecordFields(("location_type", "soul.location_type"), ("summary", "soul.summary"), ("description", "soul.description")),
    "faction": RecordFields(("faction_type", "soul.faction_type"), ("summary", "soul.summary"), ("description", "soul.description")),
    "quest": RecordFields(("quest_type",), ("summary",), ("description",)),
    "encounter": RecordFields(("encounter_type",), ("summary",), ("description",)),
    "creature": RecordFields(("creature_type",), ("summary",), ("description",)),
}

# Top-level keys that become columns rather than attributes
_COLUMN_KEYS = frozenset({"name", "summary", "description"})


def _first_value(raw: dict[str, Any], paths: tuple[str, ...]) -> Optional[str]:
    for path in paths:
        values = get_path(raw, path)
        if values and values[0] not in (None, ""):
            return str(values[0])
    return None


def build_entity_record(
    campaign_id: str,
    forge_type: str,
    name: str,
    raw: dict[str, Any],
    history: list[dict[str, Any]],
) -> EntityRecord:
    fields = RECORD_FIELDS.get(forge_type, RecordFields((), ("summary",), ("description",)))
    if callable(fields.description):
        description = fields.description(raw) or None
    else:
        description = _first_value(raw, fields.description)

    attributes = {k: copy.deepcopy(v) for k, v in raw.items() if k not in _COLUMN_KEYS}
    if forge_type == "quest":
        objectives = normalize_objectives(parse_objectives(raw.get("objectives")))
        attributes["objectives"] = [o.model_dump() for o in objectives]
    attributes["history"] = list(attributes.get("history") or []) + history

    return EntityRecord(
        id=new_id(),
        campaign_id=campaign_id,
        name=name,
        entity_type=forge_type,
        sub_type=_first_value(raw, fields.sub_type),
        summary=_first_value(raw, fields.summary),
        description=description,
        status="active",
        importance_tier="minor",
        visibility="dm_only",
        source_forge=forge_type,
        attributes=attributes,
    )


def stub_name(text: str) -> str:
    """"the Thieves' Guild" -> "Thieves' Guild"; a capitalized article is part of the name."""
    text = text.strip()
    return text[4:].strip() if text.startswith("the ") else text


async def mint_stub_entities(
    store: EntityStore,
    campaign_id: str,
    discoveries: list[Discovery],
    forge_type: str,
    source: Optional[dict[str, str]] = None,
) -> MintResult:
    """Insert one stub per discovery marked ``create_stub``.

    ``source`` may carry ``entity_id`` / ``entity_name`` of the forged entity
    when it already exists; otherwise ``save_forged_entity`` backfills them.
    """
    source = source or {}
    result = MintResult()

    for discovery in discoveries:
        if discovery.status != "create_stub":
            continue
        note = (
            f"Discovered in {source['entity_name']}" if source.get("entity_name")
            else f"Auto-created from {forge_type} forge"
        )
        record = EntityRecord(
            id=new_id(),
            campaign_id=campaign_id,
            name=stub_name(discovery.text),
            entity_type=discovery.suggested_type,
            summary=f'Stub entity - needs details. Context: "{discovery.context[:_STUB_SUMMARY_CONTEXT]}..."',
            status="active",
            importance_tier="background",
            visibility="dm_only",
            source_forge=forge_type,
            attributes={
                "is_stub": True,
                "needs_review": True,
                "stub_context": discovery.context,
                "source_entity_id": source.get("entity_id"),
                "source_entity_name": source.get("entity_name"),
                "source_discovery_id": discovery.id,
                "source_field": discovery.source_field,
                "history": [HistoryEntry(event="stub_created", note=note).model_dump(exclude_none=True)],
            },
        )
        try:
            saved = await store.insert_entity(record)
        except Exception as exc:
            _logger.error(
                "stub creation failed | %r: %s", discovery.text, exc,
                extra={"campaign_id": campaign_id, "forge_type": forge_type},
            )
            result.errors.append(f'Failed to create stub for "{discovery.text}": {exc}')
            continue
        result.stubs.append(StubEntity(
            discovery_id=discovery.id,
            entity_id=saved.id,
            name=saved.name,
            entity_type=saved.entity_type,
        ))

    _logger.info(
        "minted %d stubs (%d failed)", len(result.stubs), len(result.errors),
        extra={"campaign_id": campaign_id, "forge_type": forge_type},
    )
    return result


@dataclass
class CommitContext:
    discoveries: list[Discovery] = field(default_factory=list)
    stubs: list[StubEntity] = field(default_factory=list)
    metadata: Optional[CommitMetadata] = None


# Metadata field -> relationship from the forged entity
METADATA_RELATIONSHIPS = (
    ("owner_id", "owned_by", "owner"),
    ("location_id", "located_in", "location"),
    ("faction_id", "member_of", "faction"),
)


async def save_forged_entity(
    store: EntityStore,
    campaign_id: str,
    forge_type: str,
    payload: GeneratedPayload,
    context: CommitContext,
) -> PersistedEntity:
    """Persist the forged entity, point this commit's stubs at it, and link everything.

    Raises CommitFailed when the forged entity cannot be inserted. Stub
    backfill and relationship failures end up in ``errors``.
    """
    name = payload.name or payload.raw.get("name")
    if not name:
        raise CommitFailed("Generated content has no name")

    history = [HistoryEntry(event="forged", note=f"Created via {forge_type} forge").model_dump(exclude_none=True)]
    record = build_entity_record(campaign_id, forge_type, str(name), payload.raw, history)

    try:
        entity = await store.insert_entity(record)
    except Exception as exc:
        _logger.error(
            "forged entity insert failed | %r: %s", name, exc,
            extra={"campaign_id": campaign_id, "forge_type": forge_type},
        )
        raise CommitFailed(f'Could not save "{name}": {exc}') from exc

    persisted = PersistedEntity(entity=entity)

    for stub in context.stubs:
        try:
            await _backfill_source(store, stub, entity)
        except Exception as exc:
            _logger.warning(
                "stub source backfill failed | %s: %s", stub.entity_id, exc,
                extra={"campaign_id": campaign_id, "entity_id": stub.entity_id},
            )
            persisted.errors.append(f'Could not link stub "{stub.name}" back to "{entity.name}": {exc}')

    links: list[tuple[str, str, str]] = []
    for discovery in context.discoveries:
        if discovery.status != "link_existing":
            continue
        target = discovery.linked_entity_id or discovery.matched_entity_id
        if target:
            links.append((target, "related_to", f"Mentioned in {forge_type} description"))
    for stub in context.stubs:
        links.append((stub.entity_id, "related_to", f"Discovered via {forge_type} forge"))
    if context.metadata:
        for attr, rel_type, label in METADATA_RELATIONSHIPS:
            target = getattr(context.metadata, attr)
            if target:
                links.append((target, rel_type, f"Assigned {label} from {forge_type} forge"))

    for target_id, rel_type, description in links:
        try:
            rel = await store.insert_relationship(campaign_id, entity.id, target_id, rel_type, description)
        except Exception as exc:
            _logger.warning(
                "relationship insert failed | %s -> %s (%s): %s", entity.id, target_id, rel_type, exc,
                extra={"campaign_id": campaign_id, "entity_id": entity.id},
            )
            persisted.errors.append(f"Could not create {rel_type} relationship to {target_id}: {exc}")
            continue
        persisted.relationships.append(rel)

    _logger.info(
        "forged entity saved | %s %r, %d relationships, %d errors",
        forge_type, entity.name, len(persisted.relationships), len(persisted.errors),
        extra={"campaign_id": campaign_id, "entity_id": entity.id, "forge_type": forge_type},
    )
    return persisted


async def _backfill_source(store: EntityStore, stub: StubEntity, entity: EntityRecord) -> None:
    current = await store.get_entity(stub.entity_id)
    if current is None:
        raise LookupError(f"Stub {stub.entity_id} not found")
    attributes = copy.deepcopy(current.attributes)
    attributes["source_entity_id"] = entity.id
    attributes["source_entity_name"] = entity.name
    history = attributes.get("history") or []
    for entry in history:
        if entry.get("event") == "stub_created":
            entry["entity_id"] = entity.id
            entry["entity_name"] = entity.name
            entry["note"] = f"Discovered in {entity.name}"
    await store.update_entity(stub.entity_id, {"attributes": attributes})


async def add_history_entry(store: EntityStore, entity_id: str, entry: HistoryEntry) -> None:
    """Append ``entry`` to the entity's ``attributes.history``."""
    entity = await store.get_entity(entity_id)
    if entity is None:
        raise LookupError(f"Entity {entity_id} not found")
    attributes = copy.deepcopy(entity.attributes)
    attributes["history"] = list(attributes.get("history") or []) + [entry.model_dump(exclude_none=True)]
    await store.update_entity(entity_id, {"attributes": attributes})
