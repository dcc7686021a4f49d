"""
Robust JSON extraction for generated entity payloads.

The model is asked for a bare JSON object but sometimes wraps it in a fenced
code block or surrounds it with prose. Strategies, in order:

    1. The whole response parses as a JSON object.
    2. The first ``\\`\\`\\`json ... \\`\\`\\``` fenced block.
    3. The first balanced ``{...}`` block that parses.
"""
import json
import logging
from typing import Optional, Sequence

logger = logging.getLogger("worldforge.json_extractor")


def extract_json_object(
    text: str,
    required_keys: Sequence[str] = ("name",),
) -> Optional[dict]:
    """
    Extract the entity JSON object from model output.

    Returns the parsed ``dict`` or ``None`` when nothing parseable is found or
    a required key is missing.
    """
    if not text or not text.strip():
        logger.warning("json_extract_failed | strategy=empty_text")
        return None

    raw = _whole_text(text) or _extract_from_code_block(text) or _extract_by_brace_scan(text)

    if raw is None:
        logger.warning(
            "json_extract_failed | strategy=none_matched | text_len=%d | head=%.200s",
            len(text), text[:200],
        )
        return None

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning(
            "json_extract_failed | strategy=parse_error | error=%s | raw_head=%.500s",
            exc, raw[:500],
        )
        return None

    if not isinstance(parsed, dict):
        logger.warning("json_extract_failed | strategy=not_a_dict | type=%s", type(parsed).__name__)
        return None

    missing = [k for k in required_keys if not parsed.get(k)]
    if missing:
        logger.warning("json_extract_failed | strategy=missing_keys | missing=%s | keys=%s", missing, list(parsed))
        return None

    return parsed


# ---------------------------------------------------------------------------
# Extraction strategies
# ---------------------------------------------------------------------------

def _whole_text(text: str) -> Optional[str]:
    candidate = text.strip()
    if not candidate.startswith("{"):
        return None
    try:
        json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return candidate


def _extract_from_code_block(text: str) -> Optional[str]:
    marker = "```json"
    idx = text.find(marker)
    if idx == -1:
        return None

    start = idx + len(marker)
    end = text.find("```", start)
    if end == -1:
        # Unclosed code block, take everything after the marker.
        candidate = text[start:].strip()
    else:
        candidate = text[start:end].strip()

    return candidate or None


def _extract_by_brace_scan(text: str) -> Optional[str]:
    """
    Find the first balanced ``{…}`` block in *text* that parses as valid JSON.

    Scans forward so the outermost object wins over nested ones.
    """
    search_from = 0

    while True:
        open_idx = text.find("{", search_from)
        if open_idx == -1:
            return None

        close_idx = _find_matching_brace(text, open_idx)
        if close_idx is not None:
            candidate = text[open_idx : close_idx + 1]
            try:
                json.loads(candidate)
                return candidate
            except json.JSONDecodeError:
                pass

        search_from = open_idx + 1


def _find_matching_brace(text: str, start: int) -> Optional[int]:
    """
    Return the index of the ``}`` that balances the ``{`` at *start*,
    respecting JSON string literals so embedded braces don't confuse the count.
    """
    depth = 0
    in_string = False
    escape = False

    for i in range(start, len(text)):
        ch = text[i]

        if escape:
            escape = False
            continue

        if ch == "\\":
            if in_string:
                escape = True
            continue

        if ch == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i

    return None
