"""Post-generation discovery scanner.

Finds candidate references to other entities in generated content and matches
each one against the campaign's existing entities. Pure rule-based detection;
recall is preferred over precision because every discovery is reviewed by the
host before anything is written.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from worldforge.config import get_settings
from worldforge.forge.blocklist import (
    FACTION_CONTEXT,
    FACTION_WORDS,
    ITEM_CONTEXT,
    ITEM_WORDS,
    KIND_WORDS,
    LOCATION_CONTEXT,
    LOCATION_WORDS,
    NPC_TITLES,
    QUEST_WORDS,
    SKIP_WORDS,
    is_generic,
    should_ignore_term,
)
from worldforge.forge.errors import ScanFailed
from worldforge.forge.gateway import EntityStore
from worldforge.forge.payload import DISCOVERY_FIELD_TYPES
from worldforge.schemas import Discovery, EntityMention, EntityRecord, ScanResult
from worldforge.utils.logging_config import get_logger
from worldforge.utils.text_matching import (
    contains_either_way,
    fuzzy_match,
    is_subset_of,
    normalize_name,
    significant_words,
)

_logger = get_logger("worldforge.scanner")

# Per-type caps on new free-text discoveries; the excess is flagged, not dropped
TYPE_LIMITS = {
    "npc": 7,
    "location": 4,
    "faction": 3,
    "item": 3,
    "creature": 3,
    "quest": 2,
    "encounter": 2,
    "other": 3,
}

_CONNECTORS = ("of", "the", "and", "de", "von", "van")
_ARTICLES = frozenset({"the", "The"})

# A capitalized word, optionally with an inner or trailing apostrophe (Thieves', O'Brien)
_WORD = r"[A-Z][A-Za-z-]*(?:['’][A-Za-z]*)?"
_PHRASE_RE = re.compile(
    rf"(?<![\w'’])(?:[Tt]he[ \t]+)?{_WORD}"
    rf"(?:[ \t]+(?:(?:{'|'.join(_CONNECTORS)})[ \t]+)*{_WORD})*"
)
_QUOTED_RE = re.compile(r"[\"“]([A-Z][^\"“”\n]{2,60})[\"”]")
_TOKEN_RE = re.compile(r"\S+")
_POSSESSIVE_RE = re.compile(r"['’]s$")
_SENTENCE_START_RE = re.compile(r"(?:^|[.!?:]\s+|\n\s*)$")

_MAX_QUOTED_WORDS = 6


@dataclass
class _Candidate:
    text: str
    context: str = ""
    start: int = -1
    source_field: Optional[str] = None
    suggested_type: Optional[str] = None


# ---------------------------------------------------------------------------
# Candidate extraction
# ---------------------------------------------------------------------------

def _at_sentence_start(text: str, index: int) -> bool:
    return _SENTENCE_START_RE.search(text[:index]) is not None


def _context(text: str, start: int, end: int, width: int) -> str:
    return text[max(0, start - width):min(len(text), end + width)]


def _trim_span(text: str, start: int, end: int) -> Optional[tuple[int, int]]:
    """Drop leading skip words and a trailing possessive; None if nothing meaningful remains."""
    tokens = [(start + m.start(), start + m.end(), m.group()) for m in _TOKEN_RE.finditer(text[start:end])]

    while tokens and tokens[0][2] in SKIP_WORDS and tokens[0][2] not in _ARTICLES:
        tokens.pop(0)
    # "The" is kept only when it introduces a name ("The Drowned Rat")
    while len(tokens) > 1 and tokens[0][2] in _ARTICLES and tokens[1][2] in SKIP_WORDS:
        tokens = tokens[2:]
    while tokens and (tokens[-1][2] in _CONNECTORS or tokens[-1][2] in SKIP_WORDS):
        tokens.pop()

    meaningful = [t for t in tokens if t[2] not in SKIP_WORDS and t[2] not in _CONNECTORS]
    if not meaningful:
        return None

    span_start, span_end = tokens[0][0], tokens[-1][1]
    possessive = _POSSESSIVE_RE.search(text[span_start:span_end])
    if possessive:
        span_end = span_start + possessive.start()
    return span_start, span_end


def _is_candidate_text(span: str) -> bool:
    if len(span) < 3:
        return False
    if should_ignore_term(span) or should_ignore_term(normalize_name(span)):
        return False
    return not is_generic(span)


def extract_candidates(text: str, context_chars: int = 50) -> list[_Candidate]:
    """Capitalized phrases and quoted names from free text, first-seen order."""
    found: list[_Candidate] = []
    if not text:
        return found

    for match in _PHRASE_RE.finditer(text):
        trimmed = _trim_span(text, match.start(), match.end())
        if trimmed is None:
            continue
        start, end = trimmed
        span = text[start:end]
        # Lone capitalized words at sentence start are ordinary sentence openers
        if " " not in span and _at_sentence_start(text, start):
            continue
        if not _is_candidate_text(span):
            continue
        found.append(_Candidate(text=span, context=_context(text, start, end, context_chars), start=start))

    seen_starts = {c.start for c in found}
    for match in _QUOTED_RE.finditer(text):
        span = match.group(1).strip()
        if len(span.split()) > _MAX_QUOTED_WORDS or not _is_candidate_text(span):
            continue
        start = match.start(1)
        if start in seen_starts:
            continue
        found.append(_Candidate(
            text=span,
            context=_context(text, start, start + len(span), context_chars),
            start=start,
        ))

    found.sort(key=lambda c: c.start)
    return found


def structured_candidates(list_candidates: dict[str, list[str]], forge_type: Optional[str]) -> list[_Candidate]:
    field_types = DISCOVERY_FIELD_TYPES.get(forge_type or "", {})
    found = []
    for path, names in list_candidates.items():
        for name in names:
            name = name.strip()
            if name:
                found.append(_Candidate(text=name, source_field=path, suggested_type=field_types.get(path)))
    return found


def dedupe_candidates(candidates: list[_Candidate], current_entity_name: Optional[str]) -> list[_Candidate]:
    """First-seen wins; a structured duplicate lends its field to the earlier candidate."""
    by_key: dict[str, _Candidate] = {}
    result: list[_Candidate] = []
    for cand in candidates:
        if current_entity_name and (
            normalize_name(cand.text) == normalize_name(current_entity_name)
            or is_subset_of(cand.text, current_entity_name)
        ):
            continue
        key = normalize_name(cand.text)
        earlier = by_key.get(key)
        if earlier is None:
            by_key[key] = cand
            result.append(cand)
        elif cand.source_field and not earlier.source_field:
            earlier.source_field = cand.source_field
            earlier.suggested_type = cand.suggested_type or earlier.suggested_type
    return result


# ---------------------------------------------------------------------------
# Type guess
# ---------------------------------------------------------------------------

def guess_entity_type(text: str, context: str = "") -> str:
    words = [w.strip("'’") for w in re.sub(r"[^\w\s'’-]", " ", text.lower()).split()]
    words = [w for w in words if w and w not in _CONNECTORS]
    if not words:
        return "npc"

    head = words[-1]
    for table, kind in ((FACTION_WORDS, "faction"), (LOCATION_WORDS, "location"),
                        (ITEM_WORDS, "item"), (QUEST_WORDS, "quest")):
        if head in table:
            return kind

    if words[0] in NPC_TITLES:
        return "npc"

    for table, kind in ((FACTION_WORDS, "faction"), (LOCATION_WORDS, "location"), (ITEM_WORDS, "item")):
        if any(w in table for w in words):
            return kind

    lower_context = context.lower()
    if any(phrase in lower_context for phrase in FACTION_CONTEXT):
        return "faction"
    if any(phrase in lower_context for phrase in LOCATION_CONTEXT):
        return "location"
    if any(phrase in lower_context for phrase in ITEM_CONTEXT):
        return "item"
    return "npc"


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

def match_existing(candidate: str, entities: list[EntityRecord]) -> Optional[EntityRecord]:
    """Exact (case-insensitive), then containment either way, then fuzzy words."""
    key = normalize_name(candidate)
    for entity in entities:
        if normalize_name(entity.name) == key:
            return entity
    for entity in entities:
        if contains_either_way(candidate, entity.name):
            return entity
    if not significant_words(candidate, KIND_WORDS):
        return None
    for entity in entities:
        if fuzzy_match(candidate, entity.name, ignore=KIND_WORDS):
            return entity
    return None


def flag_over_limit(discoveries: list[Discovery], max_total: int) -> list[Discovery]:
    """Mark new free-text discoveries past the per-type and total caps.

    Longer spans are more specific and stay under the cap first. Every
    discovery is returned, in input order; the excess ones carry
    ``over_limit=True`` so the reviewer can still link, stub or ignore them.
    Matches to existing entities and structured-field candidates are never
    flagged.
    """
    capped = [d for d in discoveries if d.source_field is None and d.suggested_action == "create_stub"]
    ranked = sorted(capped, key=lambda d: len(d.text), reverse=True)

    counts: dict[str, int] = {}
    within: set[str] = set()
    for d in ranked:
        counts[d.suggested_type] = counts.get(d.suggested_type, 0) + 1
        if counts[d.suggested_type] > TYPE_LIMITS.get(d.suggested_type, 5):
            continue
        if len(within) >= max_total:
            break
        within.add(d.id)

    excess = {d.id for d in capped} - within
    if excess:
        _logger.info("%d discoveries over the scan limit", len(excess))
    return [d.model_copy(update={"over_limit": True}) if d.id in excess else d for d in discoveries]


def calculate_canon_score(new_count: int, existing_count: int) -> str:
    """High when the content leans on existing lore, low when it invents a lot."""
    total = new_count + existing_count
    if total == 0:
        return "high"
    existing_ratio = existing_count / total
    if existing_ratio >= 0.7 and new_count <= 2:
        return "high"
    if existing_ratio >= 0.4 or new_count <= 4:
        return "medium"
    return "low"


async def scan_generated_content(
    store: EntityStore,
    campaign_id: str,
    text: str,
    options: Optional[dict[str, Any]] = None,
) -> ScanResult:
    """Turn generated content into reviewable discoveries.

    ``options``:
        current_entity_name -- name of the entity being forged; never a discovery
        list_candidates     -- field path -> names from structured payload fields
        forge_type          -- selects the field -> entity type table
    """
    options = options or {}
    settings = get_settings()
    current_name = options.get("current_entity_name")
    forge_type = options.get("forge_type")

    candidates = extract_candidates(text, settings.scan_context_chars)
    candidates += structured_candidates(options.get("list_candidates") or {}, forge_type)
    candidates = dedupe_candidates(candidates, current_name)

    try:
        entities = await store.list_entities(campaign_id)
    except Exception as exc:
        raise ScanFailed(f"Could not load campaign entities: {exc}") from exc

    discoveries: list[Discovery] = []
    mentions: list[EntityMention] = []
    for cand in candidates:
        suggested_type = cand.suggested_type or guess_entity_type(cand.text, cand.context)
        existing = match_existing(cand.text, entities)
        discovery = Discovery(
            id=f"disc-{uuid.uuid4().hex[:12]}",
            text=cand.text,
            suggested_type=suggested_type,
            context=cand.context,
            source_field=cand.source_field,
        )
        if existing is not None:
            discovery.suggested_action = "link_existing"
            discovery.matched_entity_id = existing.id
            discovery.matched_entity_name = existing.name
            mentions.append(EntityMention(
                id=existing.id, name=existing.name, entity_type=existing.entity_type, text=cand.text,
            ))
        discoveries.append(discovery)

    discoveries = flag_over_limit(discoveries, settings.scan_max_discoveries)
    new_count = sum(1 for d in discoveries if d.suggested_action == "create_stub")
    canon_score = calculate_canon_score(new_count, len(mentions))

    _logger.info(
        "scan complete | %d candidates, %d discoveries, %d existing mentions, canon=%s",
        len(candidates), len(discoveries), len(mentions), canon_score,
        extra={"campaign_id": campaign_id, "forge_type": forge_type},
    )
    return ScanResult(discoveries=discoveries, existing_mentions=mentions, canon_score=canon_score)
