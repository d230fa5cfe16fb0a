"""Read-only pharmacological knowledge lookups for the analysis engine.

The table is plain configuration data (``knowledge.toml`` bundled with the
package, or a user-supplied override). It is loaded once per path and
exposed through immutable mappings, so one KnowledgeBase can be shared by
every analysis run and swapped out in tests.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from dosefold.models import CATEGORIES, Effects

logger = logging.getLogger(__name__)

EFFECT_FLAGS = ("lowers_bp", "lowers_hr", "diuretic")


class KnowledgeError(ValueError):
    """Raised when a knowledge file is malformed."""


@dataclass(frozen=True)
class CategoryInfo:
    """Display name and context template for one medication category."""

    display_name: str
    context_message: str | None = None


@dataclass(frozen=True)
class KnowledgeBase:
    """Name -> effects, category -> display/template, known diuretic names."""

    effects: Mapping[str, Effects] = field(default_factory=lambda: MappingProxyType({}))
    categories: Mapping[str, CategoryInfo] = field(default_factory=lambda: MappingProxyType({}))
    effect_messages: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    diuretic_names: frozenset[str] = frozenset()

    def effects_for(self, medication_name: str) -> Effects | None:
        """Find effects by name, case-insensitive.

        Exact match wins; otherwise the longest table key contained in the
        name ("Lasix (furosemide) 40mg" -> "furosemide"). None if unknown.
        """
        normalized = medication_name.strip().lower()
        if not normalized:
            return None
        if normalized in self.effects:
            return self.effects[normalized]

        best = None
        for drug_name in self.effects:
            if drug_name in normalized and (best is None or len(drug_name) > len(best)):
                best = drug_name
        return self.effects[best] if best is not None else None

    def is_known_diuretic(self, medication_name: str) -> bool:
        normalized = medication_name.strip().lower()
        if not normalized:
            return False
        if normalized in self.diuretic_names:
            return True
        return any(name in normalized for name in self.diuretic_names)

    def category_display_name(self, category: str | None) -> str | None:
        if category is None:
            return None
        info = self.categories.get(category)
        return info.display_name if info else category

    def context_message(self, category: str | None, medication_name: str) -> str | None:
        """Patient-facing context for a change.

        Uses the category template when a category is known, otherwise
        falls back to a template chosen from the medication's effects.
        """
        if category is not None:
            info = self.categories.get(category)
            if info is not None:
                return info.context_message

        effects = self.effects_for(medication_name)
        if effects is None:
            return None
        if effects.lowers_hr and effects.lowers_bp:
            return self.effect_messages.get("bp_and_hr")
        if effects.lowers_hr:
            return self.effect_messages.get("hr")
        if effects.lowers_bp:
            return self.effect_messages.get("bp")
        return None


DEFAULT_KNOWLEDGE_PATH = Path(__file__).parent / "knowledge.toml"


def _parse_effects(name: str, flags) -> Effects:
    if not isinstance(flags, list):
        raise KnowledgeError(f"Effects for '{name}' must be a list, got {type(flags).__name__}")
    unknown = [f for f in flags if f not in EFFECT_FLAGS]
    if unknown:
        raise KnowledgeError(
            f"Unknown effect flag(s) {unknown} for '{name}'. Expected any of {list(EFFECT_FLAGS)}"
        )
    return Effects(
        lowers_bp="lowers_bp" in flags,
        lowers_hr="lowers_hr" in flags,
        diuretic="diuretic" in flags,
    )


def knowledge_from_dict(raw: dict) -> KnowledgeBase:
    """Build a KnowledgeBase from parsed TOML (or an equivalent dict)."""
    effects = {
        name.strip().lower(): _parse_effects(name, flags)
        for name, flags in raw.get("effects", {}).items()
    }

    categories = {}
    for tag, entry in raw.get("categories", {}).items():
        if tag not in CATEGORIES:
            logger.warning("Ignoring unknown medication category '%s' in knowledge table", tag)
            continue
        categories[tag] = CategoryInfo(
            display_name=entry.get("display_name", tag),
            context_message=entry.get("context_message"),
        )

    return KnowledgeBase(
        effects=MappingProxyType(effects),
        categories=MappingProxyType(categories),
        effect_messages=MappingProxyType(dict(raw.get("effect_messages", {}))),
        diuretic_names=frozenset(n.strip().lower() for n in raw.get("diuretic_names", [])),
    )


@lru_cache(maxsize=None)
def _load_cached(path: str) -> KnowledgeBase:
    with open(path, "rb") as f:
        try:
            raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise KnowledgeError(f"Cannot parse knowledge file '{path}': {e}") from e
    kb = knowledge_from_dict(raw)
    logger.debug(
        "Loaded knowledge table %s: %d medications, %d categories",
        path, len(kb.effects), len(kb.categories),
    )
    return kb


def load_knowledge(path: str | Path | None = None) -> KnowledgeBase:
    """Load the knowledge table once per path (bundled table by default)."""
    resolved = Path(path) if path else DEFAULT_KNOWLEDGE_PATH
    if not resolved.exists():
        raise KnowledgeError(f"Knowledge file not found: {resolved}")
    return _load_cached(str(resolved.resolve()))
