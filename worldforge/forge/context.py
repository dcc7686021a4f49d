"""Prompt context for forge generation.

Gathers the campaign codex and the entities a forge input points at, and
renders them into the system / user prompts sent to the generative service.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from worldforge.forge.gateway import EntityStore
from worldforge.schemas import EntityRecord, ForgeInput

# Expected JSON shape per forge type; field names line up with the minter's
# column table and the discovery field table.
RESPONSE_SHAPES: dict[str, dict[str, Any]] = {
    "npc": {
        "name": "string", "race": "string", "gender": "string", "dm_slug": "one-line DM summary",
        "appearance": "string", "personality": "string", "voice": "string",
        "motivation": "string", "secret": "string", "plot_hook": "string",
        "connection_hooks": ["string"],
    },
    "location": {
        "name": "string", "location_type": "string", "summary": "string", "description": "string",
        "brain": {"contains": ["sub-location name"], "inhabitants": [{"name": "string", "role": "string"}]},
        "atmosphere": "string", "secrets": ["string"],
    },
    "faction": {
        "name": "string", "faction_type": "string", "summary": "string", "description": "string",
        "brain": {"goals": ["string"], "key_members": ["Name - role"]},
        "mechanics": {"territory": ["place name"], "resources": ["string"]},
    },
    "item": {
        "name": "string", "item_type": "string", "rarity": "string",
        "public_description": "string", "secret_description": "string", "origin_history": "string",
    },
    "quest": {
        "name": "string", "quest_type": "string", "summary": "string", "description": "string",
        "objectives": [{
            "id": "obj_1", "title": "string", "description": "string",
            "type": "required|optional|hidden", "state": "active|locked",
            "parent_id": None, "unlock_condition": "string or null", "hints": ["string"],
        }],
        "npcs": [{"name": "string", "role": "string", "objective_id": "obj_1"}],
        "rewards": {"xp": 0, "gold": 0, "items": [{"name": "string"}], "reputation": [{"faction": "string", "change": "+1"}]},
    },
    "encounter": {
        "name": "string", "encounter_type": "string", "summary": "string", "description": "string",
        "difficulty": "string", "tactics": "string",
    },
    "creature": {
        "name": "string", "creature_type": "string", "summary": "string", "description": "string",
        "habitat": "string", "behavior": "string",
    },
}

_MAX_RELATED = 8


@dataclass
class RelatedEntity:
    id: str
    name: str
    entity_type: str
    summary: Optional[str] = None
    relationship: str = "referenced"


@dataclass
class PromptContext:
    codex: Optional[dict[str, Any]] = None
    related_entities: list[RelatedEntity] = field(default_factory=list)


def _related(entity: EntityRecord, relationship: str) -> RelatedEntity:
    return RelatedEntity(
        id=entity.id,
        name=entity.name,
        entity_type=entity.entity_type,
        summary=entity.summary or entity.description,
        relationship=relationship,
    )


async def build_prompt_context(store: EntityStore, campaign_id: str, input: ForgeInput) -> PromptContext:
    context = PromptContext(codex=await store.get_codex(campaign_id))
    seen: set[str] = set()

    def add(entity: Optional[EntityRecord], relationship: str) -> None:
        if entity is None or entity.id in seen or entity.campaign_id != campaign_id:
            return
        seen.add(entity.id)
        context.related_entities.append(_related(entity, relationship))

    if input.location_id:
        add(await store.get_entity(input.location_id), "location")
    elif input.location:
        add(await store.find_by_name(campaign_id, "location", input.location), "location")

    if input.faction_id:
        add(await store.get_entity(input.faction_id), "faction")
    elif input.faction:
        matches = await store.search_by_name(campaign_id, input.faction)
        add(next((m for m in matches if m.entity_type == "faction"), None), "faction")

    if input.owner_id:
        add(await store.get_entity(input.owner_id), "owner")

    for ref_id in input.reference_ids:
        add(await store.get_entity(ref_id), "referenced")

    context.related_entities = context.related_entities[:_MAX_RELATED]
    return context


def format_codex(codex: Optional[dict[str, Any]]) -> str:
    if not codex:
        return ""
    lines = []
    if codex.get("setting"):
        lines.append(f"Setting: {codex['setting']}")
    if codex.get("tone"):
        lines.append(f"Tone: {codex['tone']}")
    if codex.get("themes"):
        lines.append(f"Themes: {', '.join(codex['themes'])}")
    naming = codex.get("naming_conventions") or {}
    if naming.get("notes"):
        examples = f" (e.g. {', '.join(naming['examples'])})" if naming.get("examples") else ""
        lines.append(f"Naming conventions: {naming['notes']}{examples}")
    if codex.get("safety_presets"):
        lines.append(f"Avoid: {', '.join(codex['safety_presets'])}")
    return "\n".join(lines)


def format_related_entities(related: list[RelatedEntity]) -> str:
    if not related:
        return ""
    blocks = []
    for entity in related:
        blocks.append(
            f"=== {entity.relationship.upper()}: {entity.name} ===\n"
            f"Type: {entity.entity_type}\n"
            f"Summary: {entity.summary or 'No summary'}"
        )
    return (
        "## REFERENCED ENTITIES (keep the new content consistent with these)\n\n"
        + "\n\n".join(blocks)
    )


def build_prompts(forge_type: str, input: ForgeInput, context: PromptContext) -> tuple[str, str]:
    """Return ``(system_prompt, user_prompt)``."""
    shape = RESPONSE_SHAPES.get(forge_type, {"name": "string", "summary": "string", "description": "string"})
    system_parts = [
        f"You are a worldbuilding assistant for a tabletop RPG campaign. Create one {forge_type}.",
        "Respond with a single JSON object and nothing else, using exactly this shape:",
        json.dumps(shape, indent=2),
    ]
    codex_text = format_codex(context.codex)
    if codex_text:
        system_parts.append("## CAMPAIGN CODEX\n" + codex_text)

    request = input.model_dump(exclude_none=True, exclude_defaults=True)
    user_parts = ["## REQUEST", json.dumps(request, indent=2, default=str)]
    related_text = format_related_entities(context.related_entities)
    if related_text:
        user_parts.append(related_text)

    return "\n\n".join(system_parts), "\n\n".join(user_parts)
