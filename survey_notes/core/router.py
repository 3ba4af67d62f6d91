"""
Intent routing for survey statements.

Each statement is assigned to at most one canonical section:

1. an explicit "<Section name>: ..." label wins;
2. then exact phrase overrides (caller hints before config overrides);
3. then data-defined topic rules, tried in a fixed priority order.

Statements that match nothing are dropped rather than misfiled. Power-flush
mentions are replaced by one fixed disruption clause so they collapse to a
single note. Flue statements are split afterwards and any embedded clause
about heights, office matters or access is moved to its own section.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional, Pattern, Tuple

from .schema import CanonicalSchema
from .types import RoutingConfig

logger = logging.getLogger(__name__)

TOPIC_PRIORITY = (
    "controls",
    "pipework",
    "flue",
    "heights",
    "office",
    "access_restriction",
    "assistance",
    "disruption",
    "replacement",
    "disruption_general",
    "hazards",
    "delivery",
    "customer_actions",
    "future",
    "system",
    "needs",
)

DISRUPTION_TOPIC = "disruption"
DISRUPTION_CLAUSE = "Power flush to be carried out (heating and hot water off during the flush)"
DISRUPTION_SENTENCE = "A power flush will be carried out, so the heating and hot water will be off while the system is cleaned."

# Source topic -> topics whose clauses are moved out of it, in check order
REROUTE_TOPICS: Dict[str, Tuple[str, ...]] = {
    "flue": ("heights", "office", "access_restriction"),
}

SECTION_LABEL_PATTERN = re.compile(r"^\s*(?P<name>[A-Za-z][A-Za-z&/' ]{1,60}?)\s*(?::|\s[-–—])\s*(?P<body>.+)$", re.DOTALL)
CLAUSE_SPLIT_PATTERN = re.compile(r"\s*(?:[,;]|\s[-–—]\s|\band\b|\bbut\b|\bwhile\b)\s*", re.IGNORECASE)


@dataclass
class RoutedStatement:
    """
    A piece of content assigned to a canonical section.

    Attributes:
        section: Canonical section name
        text: Text used for the bullet form
        prose: Text used for the prose form
        topic: Topic that matched, or "label"/"override"/"checklist"
        statement: Original statement
    """

    section: str
    text: str
    prose: str
    topic: str
    statement: str


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Optional[Pattern[str]]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        logger.debug(f"Skipping malformed topic pattern {pattern!r}: {e}")
        return None


def _phrase_pattern(phrase: str) -> Optional[Pattern[str]]:
    return _compile(r"(?<!\w)" + re.escape(phrase.strip()) + r"(?!\w)")


class IntentRouter:
    """
    Routes statements to canonical sections using data-defined rules.

    All topic rules are evaluated by one generic matcher; the priority order
    is fixed, with topics that only exist in a loaded config tried last.
    """

    def __init__(self, schema: CanonicalSchema, routing_config: RoutingConfig, section_hints: Optional[Dict[str, str]] = None):
        """
        Initialize the router.

        Args:
            schema: Canonical schema used to resolve section names
            routing_config: Topic patterns, topic sections and phrase overrides
            section_hints: Caller phrase -> section hints, checked before config overrides
        """
        self.schema = schema
        self.config = routing_config
        self.topic_order = [t for t in TOPIC_PRIORITY if t in routing_config.intents]
        self.topic_order += [t for t in routing_config.intents if t not in TOPIC_PRIORITY]
        self.overrides = self._ordered_overrides(section_hints or {}, routing_config.phrase_overrides)

    @staticmethod
    def _ordered_overrides(hints: Dict[str, str], overrides: Dict[str, str]) -> List[Tuple[str, str]]:
        ordered: List[Tuple[str, str]] = []
        for source in (hints, overrides):
            pairs = [(p, s) for p, s in source.items() if isinstance(p, str) and p.strip()]
            ordered += sorted(pairs, key=lambda pair: len(pair[0]), reverse=True)
        return ordered

    def topic_section(self, topic: str) -> Optional[str]:
        """Resolve the canonical section for a topic, or None if it is not in the schema."""
        return self.schema.resolve(self.config.topic_sections.get(topic, topic))

    def matches_topic(self, topic: str, text: str) -> bool:
        """Return True if any pattern of the topic matches the text."""
        for pattern in self.config.intents.get(topic, []):
            compiled = _compile(pattern)
            if compiled is not None and compiled.search(text):
                return True
        return False

    def match_topic(self, text: str) -> Optional[str]:
        """Return the highest-priority topic matching the text."""
        return next((t for t in self.topic_order if self.matches_topic(t, text)), None)

    def route(self, statement: str) -> Optional[RoutedStatement]:
        """
        Route a single statement.

        Args:
            statement: Normalized statement

        Returns:
            RoutedStatement, or None if the statement matches nothing routable
        """
        label_match = SECTION_LABEL_PATTERN.match(statement)
        if label_match:
            section = self.schema.resolve(label_match.group("name"))
            body = label_match.group("body").strip()
            if section and body:
                return self._routed(section, body, "label", statement)

        for phrase, target in self.overrides:
            pattern = _phrase_pattern(phrase)
            if pattern is not None and pattern.search(statement):
                section = self.schema.resolve(target)
                if section:
                    return self._routed(section, statement, "override", statement)
                logger.debug(f"Phrase override {phrase!r} targets unknown section {target!r}")

        topic = self.match_topic(statement)
        if topic is None:
            return None
        section = self.topic_section(topic)
        if section is None:
            return None
        return self._routed(section, statement, topic, statement)

    def _routed(self, section: str, text: str, topic: str, statement: str) -> RoutedStatement:
        # Any power-flush mention bound for the disruption section becomes the fixed clause
        if section == self.topic_section(DISRUPTION_TOPIC) and self.matches_topic(DISRUPTION_TOPIC, text):
            return RoutedStatement(section, DISRUPTION_CLAUSE, DISRUPTION_SENTENCE, topic, statement)
        return RoutedStatement(section, text, text, topic, statement)

    def reroute(self, routed: RoutedStatement) -> List[RoutedStatement]:
        """
        Move embedded clauses out of an over-broad topic.

        Clauses matching the original topic stay; clauses matching one of the
        topic's reroute targets move to that target's section; anything else
        stays.
        """
        targets = REROUTE_TOPICS.get(routed.topic)
        if not targets:
            return [routed]

        clauses = [c for c in CLAUSE_SPLIT_PATTERN.split(routed.text) if c and c.strip()]
        if len(clauses) < 2:
            return [routed]

        kept: List[str] = []
        moved: List[RoutedStatement] = []
        for clause in clauses:
            clause = clause.strip()
            if self.matches_topic(routed.topic, clause):
                kept.append(clause)
                continue
            target = next((t for t in targets if self.matches_topic(t, clause)), None)
            section = self.topic_section(target) if target else None
            if section is None:
                kept.append(clause)
            else:
                moved.append(RoutedStatement(section, clause, clause, target, routed.statement))

        if not moved:
            return [routed]
        result = []
        if kept:
            remainder = ", ".join(kept)
            result.append(RoutedStatement(routed.section, remainder, remainder, routed.topic, routed.statement))
        return result + moved

    def route_all(self, statements: List[str]) -> Tuple[List[RoutedStatement], List[Dict[str, Optional[str]]]]:
        """
        Route every statement and move embedded clauses out of flue statements.

        Returns:
            Tuple of (routed statements in transcript order, per-statement decisions)
        """
        routed: List[RoutedStatement] = []
        decisions: List[Dict[str, Optional[str]]] = []
        for statement in statements:
            result = self.route(statement)
            if result is None:
                decisions.append({"statement": statement, "topic": None, "section": None})
                continue
            pieces = self.reroute(result)
            for piece in pieces:
                decisions.append(
                    {"statement": statement, "topic": piece.topic, "section": piece.section, "text": piece.text}
                )
            routed.extend(pieces)
        return routed, decisions
