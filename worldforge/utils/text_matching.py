"""Permissive word-level text matching.

Shared by the discovery scanner (candidate span vs. existing entity name) and
the objective unlock engine (unlock condition vs. completed objective title).
The heuristic favours false positives: a human always reviews the outcome.
"""

from __future__ import annotations

import re
from typing import AbstractSet

# Words to ignore when comparing phrases
STOPWORDS = frozenset({
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "can", "shall", "must", "need",
    "to", "of", "in", "for", "on", "with", "at", "by", "from", "as",
    "into", "through", "during", "before", "after", "above", "below",
    "between", "under", "over", "about", "against", "among", "within",
    "and", "but", "or", "nor", "not", "no", "so", "yet", "both",
    "that", "this", "these", "those", "it", "its", "he", "his", "her",
    "she", "him", "they", "them", "their", "who", "whom", "which",
    "what", "when", "where", "how", "why", "if", "then", "than",
    "more", "most", "very", "also", "just", "even", "only", "some",
    "any", "each", "every", "all", "own", "other", "such", "same",
    "once", "until", "upon", "onto", "out", "off", "up", "down",
})

# Words shorter than this are dropped before comparison
MIN_WORD_LEN = 3

# Root heuristic: words of at least this length match on a shared prefix
ROOT_MIN_LEN = 4
ROOT_PREFIX_LEN = 5

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def significant_words(text: str, ignore: AbstractSet[str] = frozenset()) -> list[str]:
    """Lowercase, strip punctuation, split, and drop stop-words / short words.

    Order is preserved and duplicates removed.
    """
    if not text:
        return []
    cleaned = _PUNCTUATION_RE.sub("", text.lower())
    seen: list[str] = []
    for word in cleaned.split():
        if len(word) < MIN_WORD_LEN or word in STOPWORDS or word in ignore:
            continue
        if word not in seen:
            seen.append(word)
    return seen


def words_match(a: str, b: str) -> bool:
    """Equal, one contains the other, or (both >= 4 chars) same 5-char root."""
    if a == b or a in b or b in a:
        return True
    if len(a) >= ROOT_MIN_LEN and len(b) >= ROOT_MIN_LEN:
        return a[:ROOT_PREFIX_LEN] == b[:ROOT_PREFIX_LEN]
    return False


def fuzzy_match(a: str, b: str, ignore: AbstractSet[str] = frozenset()) -> bool:
    """True when any significant word of ``a`` matches any significant word of ``b``.

    ``ignore`` adds caller-specific noise words (e.g. "guild", "lord") to the
    stop-word set for this comparison.
    """
    words_a = significant_words(a, ignore)
    if not words_a:
        return False
    words_b = significant_words(b, ignore)
    return any(words_match(x, y) for x in words_a for y in words_b)


def normalize_name(name: str) -> str:
    """Case/whitespace-insensitive key for a name; a leading article is dropped."""
    key = _WHITESPACE_RE.sub(" ", name.strip().lower())
    if key.startswith("the "):
        key = key[4:]
    return key


def contains_either_way(a: str, b: str) -> bool:
    """Whole-name containment in either direction, on word boundaries of normalized names."""
    na, nb = normalize_name(a), normalize_name(b)
    if not na or not nb:
        return False
    return _contains_phrase(na, nb) or _contains_phrase(nb, na)


def _contains_phrase(outer: str, inner: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(inner)}(?!\w)", outer) is not None


def is_subset_of(candidate: str, name: str) -> bool:
    """True when every significant word of ``candidate`` also appears in ``name``.

    Used to recognise self-references such as "Gareth" inside an entity named
    "Gareth Blackwood".
    """
    cand_words = significant_words(candidate)
    if not cand_words:
        return False
    name_words = set(significant_words(name))
    return all(w in name_words for w in cand_words)

