"""
Canonical schema resolution.

Turns whatever section list a caller provides (names, dicts, JSON text or
models) into an ordered, de-duplicated list of canonical sections with
"Future plans" last, and builds a lookup that maps spelling variants of a
section name ("Pipe Works", "Controls & settings") onto the canonical name.
"""

import json
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .types import CanonicalSection

logger = logging.getLogger(__name__)

FUTURE_PLANS_SECTION = "Future plans"
FUTURE_PLANS_DESCRIPTION = "Notes about any future work or follow-on visits."
LEGACY_SECTION_NAMES = {"arse_cover_notes"}
NAME_KEYS = ("name", "section", "title", "heading")

NON_ALNUM_PATTERN = re.compile(r"[^a-z0-9]+")
AMPERSAND_PATTERN = re.compile(r"&")

DATA_DIR = Path(__file__).parent.parent / "data"


def normalise_key(name: str) -> str:
    """Lowercase, '&' -> 'and', non-alphanumerics -> space, collapse whitespace."""
    lowered = AMPERSAND_PATTERN.sub(" and ", (name or "").lower())
    return " ".join(NON_ALNUM_PATTERN.sub(" ", lowered).split())


def _singular(word: str) -> str:
    if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def variant_keys(name: str) -> List[str]:
    """
    Return the lookup keys for a section name.

    The normalized key, its singular form, its "and"-stripped form and the
    singular "and"-stripped form, each also with the spaces removed so
    "Pipework" and "Pipe work" meet. No duplicates.
    """
    key = normalise_key(name)
    if not key:
        return []
    words = key.split()
    singular = [_singular(w) for w in words]
    without_and = [w for w in words if w != "and"]
    singular_without_and = [w for w in singular if w != "and"]

    spaced = [" ".join(c) for c in (words, singular, without_and, singular_without_and)]
    keys: List[str] = []
    for candidate in spaced + [s.replace(" ", "") for s in spaced]:
        if candidate and candidate not in keys:
            keys.append(candidate)
    return keys


@lru_cache(maxsize=1)
def _load_default_entries() -> Tuple[Tuple[str, str, int], ...]:
    path = DATA_DIR / "depot_schema.json"
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return tuple((s["name"], s.get("description", ""), int(s.get("order", i + 1))) for i, s in enumerate(data["sections"]))


def default_sections() -> List[CanonicalSection]:
    """Return the built-in canonical schema."""
    return [CanonicalSection(name=name, description=description, order=order) for name, description, order in _load_default_entries()]


class CanonicalSchema:
    """
    Ordered canonical sections plus a variant-aware name lookup.

    Attributes:
        sections: Canonical sections in report order
    """

    def __init__(self, sections: List[CanonicalSection], aliases: Optional[Dict[str, str]] = None):
        self.sections = sections
        self._lookup: Dict[str, str] = {}
        for section in sections:
            self._register(section.name, section.name)
        for alias, canonical in (aliases or {}).items():
            self._register(alias, canonical)

    def _register(self, name: str, canonical: str) -> None:
        for key in variant_keys(name):
            self._lookup.setdefault(key, canonical)

    @property
    def names(self) -> List[str]:
        return [s.name for s in self.sections]

    def resolve(self, name: Optional[str]) -> Optional[str]:
        """
        Resolve any spelling of a section name to its canonical name.

        Args:
            name: Raw section name

        Returns:
            Canonical section name, or None if nothing matches
        """
        if not name:
            return None
        for key in variant_keys(str(name)):
            if key in self._lookup:
                return self._lookup[key]
        return None


def _coerce_entries(raw: Any) -> List[Tuple[str, str, Optional[float]]]:
    """Pull (name, description, order) triples out of any accepted input shape."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Schema source is not valid JSON; using default schema")
            return []
    if isinstance(raw, dict):
        raw = raw.get("sections", [])
    if not isinstance(raw, (list, tuple)):
        return []

    entries = []
    for item in raw:
        name: Any = None
        description: Any = ""
        order: Any = None
        if isinstance(item, str):
            name = item
        elif isinstance(item, CanonicalSection):
            name, description, order = item.name, item.description, item.order or None
        elif isinstance(item, dict):
            name = next((item[k] for k in NAME_KEYS if isinstance(item.get(k), str) and item[k].strip()), None)
            description = item.get("description") or ""
            order = item.get("order")
        if not isinstance(name, str) or not name.strip():
            continue
        if not isinstance(order, (int, float)) or isinstance(order, bool):
            order = None
        entries.append((name.strip(), str(description).strip(), order))
    return entries


def _order_entries(entries: List[Tuple[str, str, Optional[float]]]) -> List[Tuple[str, str]]:
    indexed = list(enumerate(entries))
    indexed.sort(key=lambda pair: (0, pair[1][2], pair[0]) if pair[1][2] is not None else (1, pair[0], pair[0]))
    return [(name, description) for _, (name, description, _) in indexed]


def resolve_schema(raw: Any = None) -> CanonicalSchema:
    """
    Resolve raw section definitions into a canonical schema.

    Legacy names are dropped, entries are sorted by explicit order (ties by
    original position), duplicates are collapsed keeping the first occurrence
    and "Future plans" is moved to the end. Empty or malformed input yields
    the built-in default schema.

    Args:
        raw: Section definitions in any accepted shape

    Returns:
        CanonicalSchema
    """
    entries = [e for e in _coerce_entries(raw) if e[0].lower() not in LEGACY_SECTION_NAMES]
    if not entries:
        return CanonicalSchema(default_sections())

    seen_keys: Dict[str, str] = {}
    aliases: Dict[str, str] = {}
    kept: List[Tuple[str, str]] = []
    future: Optional[Tuple[str, str]] = None
    future_keys = set(variant_keys(FUTURE_PLANS_SECTION))

    for name, description in _order_entries(entries):
        keys = variant_keys(name)
        earlier = next((seen_keys[k] for k in keys if k in seen_keys), None)
        if earlier is not None:
            if earlier != name:
                aliases[name] = earlier
            continue
        if future_keys.intersection(keys):
            future = (FUTURE_PLANS_SECTION, description)
            if name != FUTURE_PLANS_SECTION:
                aliases[name] = FUTURE_PLANS_SECTION
        else:
            kept.append((name, description))
        for key in keys:
            seen_keys.setdefault(key, name)

    future_name, future_description = future or (FUTURE_PLANS_SECTION, "")
    kept.append((future_name, future_description or FUTURE_PLANS_DESCRIPTION))

    sections = [CanonicalSection(name=name, description=description, order=i) for i, (name, description) in enumerate(kept, start=1)]
    return CanonicalSchema(sections, aliases)
