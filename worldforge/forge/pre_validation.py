"""Pre-generation validation.

Checks forge input against the campaign before any content is generated.
Only exact same-type name collisions block; everything else is a warning the
host may acknowledge and proceed past. Read-only: no store writes.
"""

from __future__ import annotations

from typing import Any, Optional

from worldforge.forge.blocklist import KIND_WORDS
from worldforge.forge.codex_validator import validate_against_codex
from worldforge.forge.gateway import EntityStore
from worldforge.schemas import Conflict, EntityRecord, ForgeInput, PreValidationResult
from worldforge.utils.logging_config import get_logger
from worldforge.utils.text_matching import contains_either_way, fuzzy_match

_logger = get_logger("worldforge.pre_validation")

# Input reference field -> entity types it may point at
REFERENCE_FIELD_TYPES: dict[str, tuple[str, ...]] = {
    "location_id": ("location",),
    "faction_id": ("faction",),
    "owner_id": ("npc", "faction"),
}

LEADERSHIP_ROLES = (
    "leader", "guild master", "guildmaster", "chief", "king", "queen", "lord",
    "lady", "captain", "commander", "high priest", "high priestess", "archon",
    "elder", "chairman", "chairwoman", "president", "director",
)

_MAX_SIMILAR = 5


def _same_name(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


def _check_duplicates(
    name: str,
    entity_type: str,
    entities: list[EntityRecord],
    stub_id: Optional[str],
) -> tuple[list[Conflict], list[Conflict]]:
    conflicts: list[Conflict] = []
    warnings: list[Conflict] = []

    exact = next(
        (e for e in entities if e.entity_type == entity_type and _same_name(e.name, name) and e.id != stub_id),
        None,
    )
    if exact is not None:
        deceased = exact.status == "deceased"
        conflicts.append(Conflict(
            id=f"dup-{exact.id}",
            kind="deceased_entity" if deceased else "duplicate_name",
            severity="error",
            description=(
                f'"{exact.name}" exists but is marked as deceased. Create a successor or retcon?'
                if deceased else f'An entity named "{exact.name}" already exists.'
            ),
            existing_entity_id=exact.id,
            existing_entity_name=exact.name,
            suggestions=(
                ["Create successor", "Retcon death", "Use different name"]
                if deceased else ["Edit existing", "Create anyway", "Use different name"]
            ),
        ))

    similar = [
        e for e in entities
        if e.id != stub_id
        and not (e.entity_type == entity_type and _same_name(e.name, name))
        and (contains_either_way(name, e.name) or fuzzy_match(name, e.name, ignore=KIND_WORDS))
    ][:_MAX_SIMILAR]
    if similar:
        warnings.append(Conflict(
            id=f"similar-{name.strip().lower()}",
            kind="similar_name",
            description=f"Similar names exist: {', '.join(e.name for e in similar)}",
            existing_entity_id=similar[0].id,
            existing_entity_name=similar[0].name,
            suggestions=["Use different name", "Proceed anyway"],
        ))
    return conflicts, warnings


async def _check_references(store: EntityStore, campaign_id: str, input: ForgeInput) -> list[Conflict]:
    refs: list[tuple[str, str, tuple[str, ...]]] = []
    for field_name, expected in REFERENCE_FIELD_TYPES.items():
        value = getattr(input, field_name)
        if value:
            refs.append((field_name, value, expected))
    refs.extend(("reference_ids", ref_id, ()) for ref_id in input.reference_ids)

    conflicts = []
    for field_name, ref_id, expected in refs:
        entity = await store.get_entity(ref_id)
        if entity is None or entity.campaign_id != campaign_id:
            conflicts.append(Conflict(
                id=f"ref-{field_name}-{ref_id}",
                kind="missing_reference",
                description=f"{field_name} points at an entity that does not exist ({ref_id}).",
                suggestions=["Choose existing", "Proceed anyway"],
            ))
        elif expected and entity.entity_type not in expected:
            conflicts.append(Conflict(
                id=f"ref-{field_name}-{ref_id}",
                kind="type_mismatch",
                description=(
                    f'{field_name} expects {" or ".join(expected)}, but "{entity.name}" '
                    f"is a {entity.entity_type}."
                ),
                existing_entity_id=entity.id,
                existing_entity_name=entity.name,
                suggestions=["Choose existing", "Proceed anyway"],
            ))
    return conflicts


def _is_leadership(role: str) -> bool:
    role = role.lower()
    return any(r in role for r in LEADERSHIP_ROLES)


def _find_current_leader(faction: str, npcs: list[EntityRecord]) -> Optional[EntityRecord]:
    faction = faction.lower()
    for npc in npcs:
        npc_faction = str(npc.attributes.get("faction") or "").lower()
        npc_role = str(npc.attributes.get("role") or "")
        if npc_faction and faction in npc_faction and _is_leadership(npc_role):
            return npc
    return None


async def validate_pre_generation(
    store: EntityStore,
    campaign_id: str,
    forge_type: str,
    input: ForgeInput,
    options: Optional[dict[str, Any]] = None,
) -> PreValidationResult:
    """Collect conflicts and warnings for a forge input.

    ``options["stub_id"]`` names a stub being fleshed out; it never collides
    with itself.
    """
    options = options or {}
    stub_id = options.get("stub_id")
    conflicts: list[Conflict] = []
    warnings: list[Conflict] = []

    entities = await store.list_entities(campaign_id)

    # 1. Duplicate / similar names
    if input.name and input.name.strip():
        dup_conflicts, similar_warnings = _check_duplicates(input.name, forge_type, entities, stub_id)
        conflicts.extend(dup_conflicts)
        warnings.extend(similar_warnings)

    # 2. Free-text location must exist
    if input.location and input.location.strip():
        location = await store.find_by_name(campaign_id, "location", input.location)
        if location is None:
            conflicts.append(Conflict(
                id=f"loc-missing-{input.location.strip().lower()}",
                kind="location_missing",
                description=f'Location "{input.location}" doesn\'t exist in your world.',
                suggestions=["Create location", "Choose existing", "Proceed anyway"],
            ))

    # 3. Referenced ids exist and have the right type
    conflicts.extend(await _check_references(store, campaign_id, input))

    # 4. Leadership roles already filled
    if forge_type == "npc" and input.role and input.faction and _is_leadership(input.role):
        npcs = [e for e in entities if e.entity_type == "npc" and e.id != stub_id]
        leader = _find_current_leader(input.faction, npcs)
        if leader is not None:
            conflicts.append(Conflict(
                id=f"role-{leader.id}",
                kind="role_conflict",
                description=f"{leader.name} is already a leader of {input.faction}.",
                existing_entity_id=leader.id,
                existing_entity_name=leader.name,
                suggestions=["Replace existing leader", "Make co-leaders", "Create rival faction", "Change role"],
            ))

    # 5. Codex
    codex = await store.get_codex(campaign_id)
    if codex:
        warnings.extend(_codex_warnings(input, codex))

    result = PreValidationResult.build(conflicts, warnings)
    _logger.info(
        "pre-validation | %d conflicts, %d warnings, can_proceed=%s",
        len(conflicts), len(warnings), result.can_proceed,
        extra={"campaign_id": campaign_id, "forge_type": forge_type},
    )
    return result


def _codex_warnings(input: ForgeInput, codex: dict[str, Any]) -> list[Conflict]:
    warnings: list[Conflict] = []

    known_factions = codex.get("factions") or []
    if input.faction and known_factions:
        names = {str(f.get("name", "")).lower() for f in known_factions if isinstance(f, dict)}
        if input.faction.strip().lower() not in names:
            warnings.append(Conflict(
                id="codex-faction",
                kind="codex",
                description=f'Faction "{input.faction}" is not in the codex. Consider adding it.',
            ))

    report = validate_against_codex(input.model_dump(exclude_none=True), codex)
    for i, message in enumerate(report.warnings):
        warnings.append(Conflict(
            id=f"codex-{i}",
            kind="codex",
            description=message,
            suggestions=list(report.suggestions),
        ))
    return warnings
