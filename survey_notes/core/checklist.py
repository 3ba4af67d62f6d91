"""
Checklist matching and materials.

A checklist item is satisfied when the caller marks it checked or when its
label is clearly dictated in a statement (fuzzy match with rapidfuzz). A
satisfied item contributes its canned notes to its section and its materials
to the materials list.
"""

import logging
from typing import Iterable, List, Set, Tuple

from rapidfuzz import fuzz

from .dedupe import normalise_for_comparison
from .router import RoutedStatement
from .schema import CanonicalSchema
from .types import ChecklistItem, MaterialItem

logger = logging.getLogger(__name__)

LABEL_MATCH_THRESHOLD = 90
MIN_LABEL_LENGTH = 4


def label_matches(label: str, statement: str, threshold: int = LABEL_MATCH_THRESHOLD) -> bool:
    """
    Check whether a checklist label is mentioned in a statement.

    Args:
        label: Checklist item label
        statement: Normalized statement
        threshold: Minimum rapidfuzz partial_ratio score (0-100)

    Returns:
        True if the label fuzzily appears in the statement
    """
    norm_label = normalise_for_comparison(label)
    norm_statement = normalise_for_comparison(statement)
    if len(norm_label) < MIN_LABEL_LENGTH or not norm_statement:
        return False
    if len(norm_statement) < len(norm_label):
        return fuzz.ratio(norm_label, norm_statement) >= threshold
    return fuzz.partial_ratio(norm_label, norm_statement) >= threshold


def satisfied_items(items: Iterable[ChecklistItem], statements: List[str], checked_ids: Iterable[str] = ()) -> List[ChecklistItem]:
    """Return satisfied checklist items in checklist order."""
    explicit: Set[str] = {str(i) for i in checked_ids}
    result = []
    for item in items:
        if item.id in explicit or any(label_matches(item.label, s) for s in statements):
            result.append(item)
    return result


def seed_sections(items: Iterable[ChecklistItem], schema: CanonicalSchema) -> List[RoutedStatement]:
    """
    Turn satisfied items into routed content for their sections.

    Items whose section is not in the canonical schema are dropped.
    """
    seeded = []
    for item in items:
        section = schema.resolve(item.section)
        if section is None:
            logger.debug(f"Checklist item {item.id} targets unknown section {item.section!r}")
            continue
        text = item.plain_text.strip() or item.label.strip()
        prose = item.natural_language.strip() or text
        if text:
            seeded.append(RoutedStatement(section, text, prose, "checklist", item.label))
    return seeded


def dedupe_materials(materials: Iterable[MaterialItem]) -> List[MaterialItem]:
    """Drop blank materials and exact (category, item, notes) duplicates, keeping the first."""
    result: List[MaterialItem] = []
    seen: Set[Tuple[str, str, str]] = set()
    for material in materials:
        key = _material_key(material)
        if not material.item.strip() or key in seen:
            continue
        seen.add(key)
        result.append(material)
    return result


def collect_materials(items: Iterable[ChecklistItem]) -> List[MaterialItem]:
    """Collect materials from satisfied items."""
    return dedupe_materials(m for item in items for m in item.materials)


def _material_key(material: MaterialItem) -> Tuple[str, str, str]:
    return (material.category.strip().lower(), material.item.strip().lower(), material.notes.strip().lower())
