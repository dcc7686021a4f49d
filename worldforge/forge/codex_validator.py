"""
Campaign Codex Validator

Checks forge input against the campaign codex (naming conventions, themes,
safety presets). Every finding is advisory: it becomes a ``codex`` warning on
the pre-validation result and never blocks generation.

Usage:
    from worldforge.forge.codex_validator import validate_against_codex

    report = validate_against_codex({"name": "Bjorn"}, codex)
    for warning in report.warnings: ...
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


NORDIC_ENDINGS = ("son", "sson", "dottir", "heim", "fjord", "vik")
CELTIC_PREFIXES = ("mac", "mc", "o'", "fitz")

DARK_THEMES = ("dark", "gritty", "horror", "grimdark")
LIGHT_THEMES = ("heroic", "high fantasy", "lighthearted", "comedy")
DARK_WORDS = ("grim", "bleak", "hopeless", "cruel", "torture")
LIGHT_WORDS = ("whimsical", "silly", "comical", "cheerful")

# Safety preset topic -> keywords that suggest the content touches it
SAFETY_TOPIC_KEYWORDS: Dict[str, List[str]] = {
    "violence": ["gore", "torture", "mutilation", "graphic"],
    "sexual": ["seductive", "intimate", "romance"],
    "drugs": ["addiction", "intoxicated", "substance"],
    "slavery": ["slave", "enslaved", "bondage", "servitude"],
    "child harm": ["child", "orphan", "young"],
    "real-world politics": ["election", "political party", "president"],
    "real-world religion": ["christian", "muslim", "jewish", "buddhist"],
}


@dataclass
class CodexReport:
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.warnings


def validate_against_codex(content: Dict[str, Any], codex: Optional[Dict[str, Any]]) -> CodexReport:
    """
    Validate forge input (or generated content) against a campaign codex.

    Args:
        content: Input fields, e.g. ``ForgeInput.model_dump()``
        codex: The campaign codex content, or None

    Returns:
        CodexReport with human-readable warnings and suggestions
    """
    report = CodexReport()
    if not codex:
        return report

    naming = codex.get("naming_conventions") or {}
    name = content.get("name")
    if naming.get("notes") and name:
        matches, suggestion = check_naming_convention(
            str(name), naming["notes"], naming.get("examples") or []
        )
        if not matches:
            report.warnings.append(
                f'Name "{name}" may not match your naming conventions: {naming["notes"]}'
            )
            if suggestion:
                report.suggestions.append(suggestion)

    themes = codex.get("themes") or []
    if themes:
        report.warnings.extend(check_theme_consistency(content, themes))

    presets = codex.get("safety_presets") or []
    if presets:
        report.warnings.extend(
            f"Content may touch on safety preset: {v}" for v in check_safety_presets(content, presets)
        )

    return report


def check_naming_convention(name: str, notes: str, examples: List[str]) -> tuple[bool, Optional[str]]:
    lower_notes = notes.lower()
    lower_name = name.lower()

    if "nordic" in lower_notes or "norse" in lower_notes:
        nordic = lower_name.endswith(NORDIC_ENDINGS) or re.search(r"[^aeiou\s]{2,}", lower_name)
        if not nordic:
            return False, f"Consider Nordic-style names like: {', '.join(examples) or 'Bjorn, Astrid, Thorvald'}"

    if "celtic" in lower_notes or "irish" in lower_notes:
        celtic = lower_name.startswith(CELTIC_PREFIXES) or re.search(r"[aeiou]{2,}", lower_name)
        if not celtic:
            return False, f"Consider Celtic-style names like: {', '.join(examples) or 'Brennan, Siobhan, Cormac'}"

    return True, None


def _content_text(content: Dict[str, Any]) -> str:
    return json.dumps(content, default=str).lower()


def check_theme_consistency(content: Dict[str, Any], themes: List[str]) -> List[str]:
    text = _content_text(content)
    lowered = [t.lower() for t in themes]
    dark_campaign = any(d in t for t in lowered for d in DARK_THEMES)
    light_campaign = any(l in t for t in lowered for l in LIGHT_THEMES)

    warnings = []
    if light_campaign and any(w in text for w in DARK_WORDS):
        warnings.append("Content may be darker than your campaign's lighthearted tone")
    if dark_campaign and any(w in text for w in LIGHT_WORDS):
        warnings.append("Content may be lighter than your campaign's dark tone")
    return warnings


def check_safety_presets(content: Dict[str, Any], presets: List[str]) -> List[str]:
    text = _content_text(content)
    violations = []
    for preset in presets:
        preset_lower = preset.lower()
        for topic, keywords in SAFETY_TOPIC_KEYWORDS.items():
            if topic not in preset_lower:
                continue
            hits = [k for k in keywords if k in text]
            if hits:
                violations.append(f"{topic} (found: {', '.join(hits)})")
    return violations
