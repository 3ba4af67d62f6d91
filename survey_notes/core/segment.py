"""
Statement segmentation for normalized transcripts.

Dictation rarely has clean sentence breaks, so besides terminal punctuation
the segmenter also splits where a comma or spaced dash is followed by a word
that usually opens a new instruction ("so", "then", "we'll", ...).
"""

import re
from typing import List

LEAD_WORDS = (
    "so",
    "which",
    "we'll",
    "we will",
    "then",
    "need to",
    "needs to",
    "also",
    "plus",
    "but",
)

HARD_BOUNDARY_PATTERN = re.compile(r"(?<=[.!?])\s+|\n+")
SOFT_BOUNDARY_PATTERN = re.compile(
    r"(?:\s*,|\s+[-–—])\s*(?=(?:" + "|".join(re.escape(w) for w in LEAD_WORDS) + r")\b)",
    re.IGNORECASE,
)
EDGE_PUNCTUATION_PATTERN = re.compile(r"^[\s,;:\-–—]+|[\s.!?,;:\-–—]+$")


def _clean(statement: str) -> str:
    return EDGE_PUNCTUATION_PATTERN.sub("", statement)


def segment(text: str) -> List[str]:
    """
    Split normalized text into ordered, non-empty, trimmed statements.

    Args:
        text: Normalized transcript

    Returns:
        Statements in transcript order
    """
    statements: List[str] = []
    for sentence in HARD_BOUNDARY_PATTERN.split(text or ""):
        for piece in SOFT_BOUNDARY_PATTERN.split(sentence):
            cleaned = _clean(piece)
            if cleaned:
                statements.append(cleaned)
    return statements
