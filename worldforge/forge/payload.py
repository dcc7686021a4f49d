"""Generated payload envelope.

Turns the raw JSON returned by the generative service into a
:class:`GeneratedPayload`: the display name, the free-text blob that gets
scanned, and the structured list fields whose entries are discovery candidates
on their own. The raw dict is carried along untouched.

Which list field produces which kind of stub is decided here, per forge type,
and nowhere else.
"""

from __future__ import annotations

import re
from typing import Any, Iterator

from worldforge.schemas import GeneratedPayload

# forge type -> field path -> entity type of the stub a candidate would become.
# ``[]`` walks a list of objects, e.g. ``brain.inhabitants[].name``.
DISCOVERY_FIELD_TYPES: dict[str, dict[str, str]] = {
    "faction": {
        "brain.key_members": "npc",
        "mechanics.territory": "location",
    },
    "location": {
        "brain.contains": "location",
        "brain.inhabitants[].name": "npc",
    },
    "quest": {
        "npcs[].name": "npc",
        "rewards.items[].name": "item",
        "rewards.reputation[].faction": "faction",
    },
    "npc": {},
    "item": {},
    "encounter": {},
    "creature": {},
}

# Keys whose string values are labels/enums, not prose worth scanning
_NON_PROSE_KEYS = frozenset({
    "id", "type", "state", "sub_type", "rarity", "difficulty", "timeline",
    "danger_level", "quest_type", "recommended_level", "parent_id", "objective_id",
})

_MIN_PROSE_LEN = 10
_MAX_DEPTH = 5

# Trailing descriptions the model sometimes appends to list entries
_LIST_ENTRY_SPLIT_RE = re.compile(r"\s*(?::|\(|\s[-–—]\s)")


def get_path(data: Any, path: str) -> list[Any]:
    """Resolve a dotted path; ``seg[]`` fans out over a list."""
    values = [data]
    for segment in path.split("."):
        fan_out = segment.endswith("[]")
        key = segment[:-2] if fan_out else segment
        next_values: list[Any] = []
        for value in values:
            if not isinstance(value, dict) or key not in value:
                continue
            item = value[key]
            if fan_out:
                if isinstance(item, list):
                    next_values.extend(item)
            else:
                next_values.append(item)
        values = next_values
    # A path ending on a plain list field yields its entries
    flattened: list[Any] = []
    for value in values:
        if isinstance(value, list):
            flattened.extend(value)
        else:
            flattened.append(value)
    return flattened


def clean_list_entry(value: Any) -> str:
    """"Lord Varen - the ruthless leader" -> "Lord Varen"."""
    if not isinstance(value, str):
        return ""
    return _LIST_ENTRY_SPLIT_RE.split(value, maxsplit=1)[0].strip()


def extract_list_candidates(forge_type: str, raw: dict[str, Any]) -> dict[str, list[str]]:
    candidates: dict[str, list[str]] = {}
    for path in DISCOVERY_FIELD_TYPES.get(forge_type, {}):
        names = [n for n in (clean_list_entry(v) for v in get_path(raw, path)) if n]
        if names:
            candidates[path] = names
    return candidates


def _iter_prose(obj: Any, depth: int = 0) -> Iterator[str]:
    if depth > _MAX_DEPTH:
        return
    if isinstance(obj, str):
        if len(obj) > _MIN_PROSE_LEN:
            yield obj
    elif isinstance(obj, list):
        for item in obj:
            yield from _iter_prose(item, depth + 1)
    elif isinstance(obj, dict):
        for key, value in obj.items():
            if key in _NON_PROSE_KEYS:
                continue
            yield from _iter_prose(value, depth + 1)


def extract_text_for_scanning(raw: dict[str, Any]) -> str:
    """Every prose string in the payload, joined by blank lines."""
    return "\n\n".join(_iter_prose(raw))


def extract_display_name(raw: dict[str, Any]) -> str | None:
    name = raw.get("name")
    if not name and isinstance(raw.get("soul"), dict):
        name = raw["soul"].get("title")
    return str(name).strip() if name else None


def build_generated_payload(forge_type: str, raw: dict[str, Any]) -> GeneratedPayload:
    return GeneratedPayload(
        name=extract_display_name(raw),
        text=extract_text_for_scanning(raw),
        list_candidates=extract_list_candidates(forge_type, raw),
        raw=raw,
    )
