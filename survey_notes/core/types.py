"""
Type definitions for Survey Notes.

This module defines the data structures exchanged with callers: the canonical
schema, the per-section notes, checklist items and materials, the routing
configuration and the final structured result. Wire names are camelCase; the
models accept snake_case field names as well.
"""

from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class CanonicalSection(BaseModel):
    """
    A named report section from the canonical schema.

    Attributes:
        name: Unique display name of the section
        description: Short description of what belongs in the section
        order: 1-based position in the report
    """

    name: str = Field(..., description="Section display name")
    description: str = Field(default="", description="What belongs in this section")
    order: int = Field(default=0, description="1-based position in the report")


class SectionNote(BaseModel):
    """Notes captured for one canonical section."""

    model_config = ConfigDict(populate_by_name=True)

    section: str = Field(..., description="Canonical section name")
    plain_text: str = Field(default="", alias="plainText", description="Newline-joined '• clause;' bullets")
    natural_language: str = Field(default="", alias="naturalLanguage", description="Prose form of the same content")


class MaterialItem(BaseModel):
    """A material line derived from a satisfied checklist item."""

    category: str = Field(default="Other", description="Material category")
    item: str = Field(default="", description="Material description")
    qty: Union[int, float] = Field(default=1, description="Quantity")
    notes: str = Field(default="", description="Free-text notes")


class ChecklistItem(BaseModel):
    """
    A survey checklist item.

    When satisfied, its plain/prose text is seeded into its section and its
    materials are added to the materials list.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Stable checklist item identifier")
    label: str = Field(default="", description="Label shown to the surveyor")
    section: str = Field(default="", validation_alias=AliasChoices("section", "depotSection"), description="Section the item's notes belong to")
    plain_text: str = Field(default="", alias="plainText")
    natural_language: str = Field(default="", alias="naturalLanguage")
    materials: List[MaterialItem] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)


class MissingInfoQuestion(BaseModel):
    """An open question that the notes could not answer."""

    target: Literal["customer", "expert"] = Field(..., description="Who should answer")
    question: str = Field(..., description="Question text")
    key: Optional[str] = Field(default=None, description="Stable key for the question")


class RoutingConfig(BaseModel):
    """
    Data-defined routing rules.

    Attributes:
        asr_normalise: Ordered (pattern, replacement) ASR correction rules
        phrase_overrides: Exact phrase -> section name
        intents: Topic -> list of regex patterns
        topic_sections: Topic -> section name
    """

    model_config = ConfigDict(populate_by_name=True)

    asr_normalise: List[Tuple[str, str]] = Field(default_factory=list, alias="asrNormalise")
    phrase_overrides: Dict[str, str] = Field(default_factory=dict, alias="phraseOverrides")
    intents: Dict[str, List[str]] = Field(default_factory=dict)
    topic_sections: Dict[str, str] = Field(default_factory=dict, alias="topicSections")

    @field_validator("asr_normalise", mode="before")
    @classmethod
    def _coerce_rules(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        rules = []
        for entry in value:
            if isinstance(entry, dict):
                rules.append((entry.get("pattern", ""), entry.get("replacement", "")))
            else:
                rules.append(entry)
        return rules

    @field_validator("intents", mode="before")
    @classmethod
    def _coerce_intents(cls, value: Any) -> Any:
        # A single pattern string is accepted in place of a list
        if isinstance(value, dict):
            return {topic: [patterns] if isinstance(patterns, str) else patterns for topic, patterns in value.items()}
        return value


class StructureOptions(BaseModel):
    """Optional inputs for a structuring call."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    expected_sections: List[str] = Field(default_factory=list, alias="expectedSections")
    section_hints: Dict[str, str] = Field(default_factory=dict, alias="sectionHints")
    already_captured: List[SectionNote] = Field(default_factory=list, alias="alreadyCaptured")
    force_structured: bool = Field(default=False, alias="forceStructured")
    routing_config: Optional[RoutingConfig] = Field(default=None, alias="routingConfig")
    depot_sections: Optional[Any] = Field(default=None, alias="depotSections")
    checklist_items: List[ChecklistItem] = Field(default_factory=list, alias="checklistItems")
    checked_item_ids: List[str] = Field(default_factory=list, alias="checkedItemIds")
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0, alias="similarityThreshold")


class StructuredNotesResult(BaseModel):
    """Result of one structuring call, recomputed from scratch each time."""

    model_config = ConfigDict(populate_by_name=True)

    sections: List[SectionNote] = Field(default_factory=list)
    customer_summary: str = Field(default="", alias="customerSummary")
    missing_info: List[MissingInfoQuestion] = Field(default_factory=list, alias="missingInfo")
    materials: List[MaterialItem] = Field(default_factory=list)
    checked_items: List[str] = Field(default_factory=list, alias="checkedItems")
    sanity_notes: List[str] = Field(default_factory=list, alias="sanityNotes")

    def section(self, name: str) -> Optional[SectionNote]:
        """Return the note for a canonical section name, if present."""
        for note in self.sections:
            if note.section == name:
                return note
        return None
