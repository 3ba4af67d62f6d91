"""
Near-duplicate detection and merging for section content.

Surveyors repeat themselves and rephrase as they walk around a property, so
every line and sentence that reaches a section is compared against what is
already there. Two items are equivalent if their normalized forms are equal,
one contains the other, or their content-token Jaccard similarity reaches the
threshold. The longest variant of each group is kept, in the position of the
group's first occurrence.
"""

import re
from typing import Iterable, List, Optional, Set

from .types import SectionNote

DEFAULT_THRESHOLD = 0.6

PLACEHOLDER_TEXT = "No additional notes"
PLACEHOLDER_SENTENCE = "No additional notes."

STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from",
        "has", "he", "in", "is", "it", "its", "of", "on", "that", "the",
        "to", "was", "will", "with", "have", "this", "but", "they", "been",
    }
)

NON_WORD_PATTERN = re.compile(r"[^\w\s]")
WHITESPACE_PATTERN = re.compile(r"\s+")
PLACEHOLDER_PATTERN = re.compile(r"^no\s+additional\s+notes\b", re.IGNORECASE)
BULLET_PATTERN = re.compile(r"^[\s•\-\*✅✔]+")
TRAILING_SEMICOLON_PATTERN = re.compile(r"[\s;]+$")
LINE_SPLIT_PATTERN = re.compile(r";\s*\n|\n+|;")
SENTENCE_SPLIT_PATTERN = re.compile(r"(?<=[.!?])\s+|\n+")


def normalise_for_comparison(text: str) -> str:
    """Lowercase, replace punctuation with spaces and collapse whitespace."""
    return WHITESPACE_PATTERN.sub(" ", NON_WORD_PATTERN.sub(" ", (text or "").lower())).strip()


def content_tokens(text: str) -> Set[str]:
    """Tokens longer than two characters that are not stop-words."""
    return {t for t in normalise_for_comparison(text).split() if len(t) > 2 and t not in STOP_WORDS}


def jaccard_similarity(a: str, b: str) -> float:
    """
    Jaccard similarity of the content tokens of two strings.

    Two empty token sets are identical (1.0); exactly one empty set is
    completely dissimilar (0.0).
    """
    tokens_a = content_tokens(a)
    tokens_b = content_tokens(b)
    if not tokens_a and not tokens_b:
        return 1.0
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def is_placeholder(text: str) -> bool:
    return bool(PLACEHOLDER_PATTERN.match(BULLET_PATTERN.sub("", text or "").strip()))


def are_equivalent(a: str, b: str, threshold: float = DEFAULT_THRESHOLD) -> bool:
    """
    Check whether two items say the same thing.

    Placeholders are only equivalent to identical placeholders.

    Args:
        a: First item
        b: Second item
        threshold: Minimum Jaccard similarity

    Returns:
        True if the items are duplicates of each other
    """
    norm_a = normalise_for_comparison(a)
    norm_b = normalise_for_comparison(b)
    if norm_a == norm_b:
        return True
    if is_placeholder(a) or is_placeholder(b):
        return False
    if not norm_a or not norm_b:
        return False
    if norm_a in norm_b or norm_b in norm_a:
        return True
    return jaccard_similarity(a, b) >= threshold


def drop_placeholders(items: List[str]) -> List[str]:
    """Remove placeholder items when any real content is present."""
    real = [item for item in items if not is_placeholder(item)]
    return real if real else items


def dedupe(items: Iterable[str], threshold: float = DEFAULT_THRESHOLD) -> List[str]:
    """
    Collapse near-duplicates, keeping the longest variant of each group.

    Each unprocessed item opens a group containing every later unprocessed
    item equivalent to it; the group is represented by its longest member
    at the position of its first member.
    """
    lines = [item.strip() for item in items if item and item.strip()]
    processed = [False] * len(lines)
    result: List[str] = []

    for i, current in enumerate(lines):
        if processed[i]:
            continue
        processed[i] = True
        best = current
        for j in range(i + 1, len(lines)):
            if processed[j]:
                continue
            if are_equivalent(current, lines[j], threshold):
                processed[j] = True
                if len(lines[j]) > len(best):
                    best = lines[j]
        result.append(best)

    return drop_placeholders(result)


def merge_items(existing: Iterable[str], incoming: Iterable[str], threshold: float = DEFAULT_THRESHOLD) -> List[str]:
    """
    Merge incoming items into existing ones.

    An incoming item identical (after normalization) to an existing item is
    skipped; one equivalent to an existing item replaces it in place only if
    longer; anything else is appended. merge_items(x, x) == x.
    """
    result = [item.strip() for item in existing if item and item.strip()]

    for item in incoming:
        item = (item or "").strip()
        if not item:
            continue
        normalised = normalise_for_comparison(item)
        if any(normalise_for_comparison(r) == normalised for r in result):
            continue
        index = next((k for k, r in enumerate(result) if are_equivalent(r, item, threshold)), None)
        if index is None:
            result.append(item)
        elif len(item) > len(result[index]):
            result[index] = item

    return drop_placeholders(result)


def split_plain_lines(plain_text: str) -> List[str]:
    """Split bullet text into bare clauses (bullets and trailing semicolons removed)."""
    lines = []
    for line in LINE_SPLIT_PATTERN.split(plain_text or ""):
        cleaned = TRAILING_SEMICOLON_PATTERN.sub("", BULLET_PATTERN.sub("", line)).strip()
        if cleaned:
            lines.append(cleaned)
    return lines


def join_plain_lines(lines: Iterable[str]) -> str:
    return "\n".join(f"• {line};" for line in lines)


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in SENTENCE_SPLIT_PATTERN.split(text or "") if s and s.strip()]


def dedupe_plain_text(plain_text: str, threshold: float = DEFAULT_THRESHOLD) -> str:
    """Deduplicate the lines of a bullet block."""
    return join_plain_lines(dedupe(split_plain_lines(plain_text), threshold))


def dedupe_prose(text: str, threshold: float = DEFAULT_THRESHOLD) -> str:
    """Deduplicate the sentences of a prose block."""
    return " ".join(dedupe(split_sentences(text), threshold))


def clean_section_content(note: SectionNote, threshold: float = DEFAULT_THRESHOLD) -> SectionNote:
    """Return a copy of a section note with duplicate lines and sentences removed."""
    return SectionNote(
        section=note.section,
        plain_text=dedupe_plain_text(note.plain_text, threshold),
        natural_language=dedupe_prose(note.natural_language, threshold),
    )


def merge_section_notes(existing: Optional[SectionNote], incoming: SectionNote, threshold: float = DEFAULT_THRESHOLD) -> SectionNote:
    """
    Merge an incoming note for a section into what was captured before.

    The incoming note is cleaned first, then merged line by line and
    sentence by sentence with merge_items. The result keeps the incoming
    section name.
    """
    cleaned = clean_section_content(incoming, threshold)
    plain = split_plain_lines(existing.plain_text) if existing is not None else []
    prose = split_sentences(existing.natural_language) if existing is not None else []
    return SectionNote(
        section=incoming.section,
        plain_text=join_plain_lines(merge_items(plain, split_plain_lines(cleaned.plain_text), threshold)),
        natural_language=" ".join(merge_items(prose, split_sentences(cleaned.natural_language), threshold)),
    )
