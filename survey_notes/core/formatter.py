"""
Section formatting.

Turns the statements routed to a section into terse bullet clauses. Pipe
work is split along the route it describes ("from the meter", "under the
floor", "up into the kitchen"); every other section is split on list
punctuation. Dictation lead-ins ("then", "we'll", "please") are removed.
"""

import re
from typing import List

from .schema import variant_keys

PIPE_SECTION_KEY = "pipework"

PIPE_ROUTE_CUES = (
    "from ",
    "off the ",
    "pick up ",
    "drop to ",
    "under ",
    "behind ",
    "through ",
    "along ",
    "across ",
    "continue ",
    "then ",
    "past ",
    "to ",
    "into ",
    "up ",
    "come up ",
    "rise in ",
    "down ",
    "fall to ",
)
PIPE_CUE_WORDS = {cue.strip() for cue in PIPE_ROUTE_CUES}

PIPE_HARD_SPLIT_PATTERN = re.compile(r"\s*(?:;|,|—|–|\s-\s)\s*")
# Longer cues first so "come up" wins over "up"
PIPE_CUE_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(c) for c in sorted(PIPE_ROUTE_CUES, key=len, reverse=True)) + r")",
    re.IGNORECASE,
)
GENERAL_SPLIT_PATTERN = re.compile(r"\s*(?:[\n;]+|,|\s+and then\s+|\s+and also\s+|\s+plus\s+)\s*", re.IGNORECASE)
LEADING_AND_PATTERN = re.compile(r"^(?:and|&)\s+", re.IGNORECASE)

SEQUENCING_PREAMBLE = re.compile(r"^(?:then|next|first|second|after|before|finally|so)\b[\s,]*", re.IGNORECASE)
ACTOR_PREAMBLE = re.compile(
    r"^(?:we'll|we will|i'll|expert will|installer will|we need to|need to|we can|we should)\b[\s,]*",
    re.IGNORECASE,
)
COURTESY_PREAMBLE = re.compile(r"^(?:please|note|recommend(?:ed)?\s+to)\b[\s,:]*", re.IGNORECASE)
WILL_NEED_TO_PATTERN = re.compile(r"\bwill need to\b", re.IGNORECASE)
EDGE_PUNCTUATION_PATTERN = re.compile(r"^[\s,;:.\-–—]+|[\s,;:.\-–—]+$")


def strip_sequencing_preamble(text: str) -> str:
    """
    Remove dictation lead-ins from the start of a clause.

    Sequencing words, then actor phrases, then courtesy words are removed
    (one pass each); "will need to" becomes "required to".
    """
    result = (text or "").strip()
    result = SEQUENCING_PREAMBLE.sub("", result)
    result = ACTOR_PREAMBLE.sub("", result)
    result = COURTESY_PREAMBLE.sub("", result)
    result = WILL_NEED_TO_PATTERN.sub("required to", result)
    return EDGE_PUNCTUATION_PATTERN.sub("", result)


def split_pipe_route(text: str) -> List[str]:
    """Split a pipe-route description into one clause per leg of the route."""
    bits: List[str] = []
    for segment in PIPE_HARD_SPLIT_PATTERN.split(text or ""):
        current = ""
        for chunk in PIPE_CUE_PATTERN.split(segment):
            if not chunk:
                continue
            is_cue = chunk.strip().lower() in PIPE_CUE_WORDS
            # a bare cue ("up") is kept and joined to the leg that follows it
            if is_cue and current.strip() and current.strip().lower() not in PIPE_CUE_WORDS:
                bits.append(current.strip())
                current = chunk
            else:
                current += chunk
        if current.strip():
            bits.append(current.strip())
    return [LEADING_AND_PATTERN.sub("", b).strip() for b in bits if b.strip()]


def split_general_clauses(text: str) -> List[str]:
    """Split section text on newlines, semicolons, commas and joining phrases."""
    return [LEADING_AND_PATTERN.sub("", c).strip() for c in GENERAL_SPLIT_PATTERN.split(text or "") if c and c.strip()]


def _capitalise(text: str) -> str:
    return text[:1].upper() + text[1:] if text else text


def is_pipe_section(section: str) -> bool:
    """True for any spelling of the pipe work section ("Pipe Works", "Pipework")."""
    return PIPE_SECTION_KEY in variant_keys(section)


def format_clauses(section: str, text: str) -> List[str]:
    """
    Format routed text for a section into bare clauses.

    Args:
        section: Canonical section name
        text: Routed statement text

    Returns:
        Cleaned, capitalised clauses (without bullets)
    """
    pieces = split_pipe_route(text) if is_pipe_section(section) else split_general_clauses(text)
    clauses = []
    for piece in pieces:
        cleaned = strip_sequencing_preamble(piece)
        if cleaned:
            clauses.append(_capitalise(cleaned))
    return clauses


def to_sentence(text: str) -> str:
    """Capitalise a statement and make sure it ends with terminal punctuation."""
    sentence = (text or "").strip()
    if not sentence:
        return ""
    sentence = _capitalise(sentence)
    if sentence[-1] not in ".!?":
        sentence += "."
    return sentence
