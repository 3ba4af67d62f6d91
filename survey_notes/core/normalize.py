"""
Text normalization for dictated survey transcripts.

Applies ordered, case-insensitive ASR correction rules (brand names, trade
terms, pipe sizes and boiler ratings) before any routing happens, and flags
boiler power ratings that look implausible after correction.
"""

import logging
import re
from functools import lru_cache
from typing import List, Optional, Pattern, Sequence, Tuple

logger = logging.getLogger(__name__)

# JavaScript-style back-references ($1) used by remote configs
JS_BACKREF_PATTERN = re.compile(r"\$(\d+)")
WHITESPACE_PATTERN = re.compile(r"[ \t]+")
CURLY_APOSTROPHE_PATTERN = re.compile(r"[‘’]")
KW_RATING_PATTERN = re.compile(r"\b(\d{1,3})kW\b")

MIN_PLAUSIBLE_KW = 12
MAX_PLAUSIBLE_KW = 45


def _convert_replacement(replacement: str) -> str:
    return JS_BACKREF_PATTERN.sub(lambda m: f"\\g<{m.group(1)}>", replacement)


@lru_cache(maxsize=64)
def compile_rules(rules: Tuple[Tuple[str, str], ...]) -> List[Tuple[Pattern[str], str]]:
    """
    Compile (pattern, replacement) rules, skipping malformed patterns.

    Args:
        rules: Ordered rules as a hashable tuple

    Returns:
        Compiled rules in the original order
    """
    compiled = []
    for pattern, replacement in rules:
        try:
            compiled.append((re.compile(pattern, re.IGNORECASE), _convert_replacement(replacement)))
        except re.error as e:
            logger.debug(f"Skipping malformed ASR rule {pattern!r}: {e}")
    return compiled


def normalise(text: Optional[str], rules: Sequence[Tuple[str, str]] = ()) -> str:
    """
    Apply ASR correction rules to a transcript.

    Each rule is applied once across the whole text, in list order, so a
    later rule sees the output of earlier ones.

    Args:
        text: Raw transcript (None is treated as empty)
        rules: Ordered (pattern, replacement) pairs

    Returns:
        Corrected transcript
    """
    if not text:
        return ""

    result = CURLY_APOSTROPHE_PATTERN.sub("'", str(text))
    for pattern, replacement in compile_rules(tuple((str(p), str(r)) for p, r in rules)):
        try:
            result = pattern.sub(replacement, result)
        except (re.error, IndexError) as e:
            logger.debug(f"Skipping ASR rule {pattern.pattern!r} with bad replacement: {e}")

    return WHITESPACE_PATTERN.sub(" ", result).strip()


def sanity_notes(text: str) -> List[str]:
    """
    Flag boiler power ratings outside the plausible domestic range.

    Args:
        text: Normalized transcript

    Returns:
        One note per distinct implausible rating, in order of appearance
    """
    notes: List[str] = []
    for match in KW_RATING_PATTERN.finditer(text or ""):
        rating = int(match.group(1))
        if MIN_PLAUSIBLE_KW <= rating <= MAX_PLAUSIBLE_KW:
            continue
        note = f"Unusual boiler power rating: {rating}kW (expected {MIN_PLAUSIBLE_KW}-{MAX_PLAUSIBLE_KW}kW)"
        if note not in notes:
            notes.append(note)
    return notes
