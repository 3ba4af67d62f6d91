"""
Section reconciliation.

Assembles the final ordered section list from routed content and the notes
captured so far, fills sections without content with a placeholder, and
derives the customer summary and the open questions.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .dedupe import DEFAULT_THRESHOLD, PLACEHOLDER_SENTENCE, is_placeholder, join_plain_lines, merge_section_notes, split_plain_lines, split_sentences
from .formatter import format_clauses, to_sentence
from .router import RoutedStatement
from .schema import CanonicalSchema
from .types import MissingInfoQuestion, SectionNote

FILLER_OPENER_PATTERN = re.compile(
    r"^(?:(?:okay|ok|right|so|um|erm|uh|test|testing|hello|hi|yeah|yes|alright|well)\b[\s,.\-]*)+",
    re.IGNORECASE,
)
MIN_SUMMARY_WORDS = 3

CONTROLS_KEYWORDS = re.compile(r"\b(?:controls?|thermostats?|stats?|hive|nest|tado|programmer|timer|trvs?|smart)\b", re.IGNORECASE)
CONDENSATE_KEYWORDS = re.compile(r"\bcondensate\b", re.IGNORECASE)

CONTROLS_QUESTION = MissingInfoQuestion(
    target="customer",
    question="Which heating controls would you like with the new boiler (for example a smart thermostat or TRVs)?",
    key="controls",
)
CONDENSATE_QUESTION = MissingInfoQuestion(
    target="expert",
    question="How will the condensate be routed and where will it discharge?",
    key="condensate",
)


@dataclass
class SectionDraft:
    """Bullet clauses and prose sentences gathered for one section."""

    plain: List[str] = field(default_factory=list)
    prose: List[str] = field(default_factory=list)

    def to_note(self, section: str) -> SectionNote:
        return SectionNote(section=section, plain_text=join_plain_lines(self.plain), natural_language=" ".join(self.prose))


def placeholder_note(section: str) -> SectionNote:
    return SectionNote(section=section, plain_text="", natural_language=PLACEHOLDER_SENTENCE)


def has_content(note: SectionNote) -> bool:
    """True if the note carries anything other than placeholders."""
    lines = split_plain_lines(note.plain_text) + split_sentences(note.natural_language)
    return any(not is_placeholder(line) for line in lines)


def build_drafts(routed: Iterable[RoutedStatement]) -> Dict[str, SectionNote]:
    """Format routed statements into one raw note per section, in routing order."""
    drafts: Dict[str, SectionDraft] = {}
    for item in routed:
        draft = drafts.setdefault(item.section, SectionDraft())
        draft.plain.extend(format_clauses(item.section, item.text))
        for sentence in split_sentences(item.prose):
            formatted = to_sentence(sentence)
            if formatted:
                draft.prose.append(formatted)
    return {section: draft.to_note(section) for section, draft in drafts.items()}


def reconcile_sections(
    schema: CanonicalSchema,
    incoming: Dict[str, SectionNote],
    already_captured: Iterable[SectionNote] = (),
    force_structured: bool = False,
    threshold: float = DEFAULT_THRESHOLD,
) -> List[SectionNote]:
    """
    Merge new content into captured notes and emit sections in schema order.

    When any section has content, every canonical section is emitted and
    empty ones get a placeholder. When nothing has content, the full
    placeholder skeleton is returned if force_structured is set, else [].

    Args:
        schema: Canonical schema
        incoming: Canonical section name -> new content for that section
        already_captured: Notes from earlier submissions (names may be variants)
        force_structured: Always return the full skeleton
        threshold: Near-duplicate similarity threshold

    Returns:
        Section notes in schema order
    """
    captured: Dict[str, SectionNote] = {}
    for note in already_captured:
        section = schema.resolve(note.section)
        if section is None:
            continue
        captured[section] = merge_section_notes(captured.get(section), note, threshold)

    notes: List[SectionNote] = []
    for name in schema.names:
        merged = merge_section_notes(captured.get(name), incoming.get(name) or SectionNote(section=name), threshold)
        note = SectionNote(section=name, plain_text=merged.plain_text, natural_language=merged.natural_language)
        notes.append(note if has_content(note) else placeholder_note(name))

    if any(has_content(note) for note in notes) or force_structured:
        return notes
    return []


def customer_summary(statements: Iterable[str]) -> str:
    """
    Return the first substantive statement as a one-sentence summary.

    Leading fillers ("okay", "so", "test") are stripped; a statement needs at
    least three remaining words to count.
    """
    for statement in statements:
        remainder = FILLER_OPENER_PATTERN.sub("", statement).strip()
        if len(remainder.split()) >= MIN_SUMMARY_WORDS:
            return to_sentence(remainder)
    return ""


def missing_info(transcript: str, notes: Iterable[SectionNote] = ()) -> List[MissingInfoQuestion]:
    """
    Derive open questions from what the transcript and notes do not mention.

    Args:
        transcript: Normalized transcript
        notes: Captured and new section notes

    Returns:
        Customer and expert questions, in that order
    """
    corpus = " ".join([transcript] + [f"{n.plain_text} {n.natural_language}" for n in notes])
    questions: List[MissingInfoQuestion] = []
    if not CONTROLS_KEYWORDS.search(corpus):
        questions.append(CONTROLS_QUESTION.model_copy())
    if not CONDENSATE_KEYWORDS.search(corpus):
        questions.append(CONDENSATE_QUESTION.model_copy())
    return questions

