"""
Transcript structuring for Survey Notes.

This module orchestrates the full pipeline that turns a dictated transcript
into canonical section notes:

1. Normalize ASR errors
2. Segment into statements
3. Route statements to sections and split over-broad flue statements
4. Seed satisfied checklist items
5. Format, deduplicate and merge with what was already captured
6. Reconcile into the final ordered section list

An alternative LLM path produces raw sections from a chat model and pushes
them through the same merge and reconciliation steps.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from .checklist import collect_materials, dedupe_materials, satisfied_items, seed_sections
from .config import ConfigError, config
from .debug_log import get_debug_logger, timer
from .dedupe import merge_section_notes
from .llm_handler import LLMHandler, LLMHandlerError, get_llm_handler
from .normalize import normalise, sanity_notes
from .progress import reporter
from .prompt import StructuringPrompt
from .reconcile import build_drafts, customer_summary, missing_info, reconcile_sections
from .router import IntentRouter
from .routing import RoutingConfigCache, merge_routing_configs
from .schema import CanonicalSchema, resolve_schema
from .segment import segment
from .types import MaterialItem, MissingInfoQuestion, RoutingConfig, SectionNote, StructuredNotesResult, StructureOptions

logger = logging.getLogger(__name__)

OptionsInput = Union[StructureOptions, Dict[str, Any], None]

MODEL_TARGET_ALIASES = {"engineer": "expert", "installer": "expert", "surveyor": "expert"}


class StructuringError(Exception):
    """Raised when the LLM structuring path fails."""

    pass


def coerce_options(options: OptionsInput) -> StructureOptions:
    """
    Turn caller options into StructureOptions.

    Invalid options are logged and replaced by defaults.
    """
    if options is None:
        return StructureOptions()
    if isinstance(options, StructureOptions):
        return options
    try:
        return StructureOptions.model_validate(options)
    except ValidationError as e:
        logger.warning(f"Ignoring invalid structuring options: {e}")
        get_debug_logger().log_validation_error(e, options, context="options")
        return StructureOptions()


class NotesStructurer:
    """
    Turns transcripts into structured section notes.

    Owns the routing config cache; every call recomputes the result from the
    transcript and the notes captured so far.
    """

    def __init__(self, routing_cache: Optional[RoutingConfigCache] = None, project_root: str = "."):
        """
        Initialize the structurer.

        Args:
            routing_cache: Routing config cache; default-only when None
            project_root: Project root for debug logs and LLM handler
        """
        self.routing_cache = routing_cache or RoutingConfigCache(project_root=project_root)
        self.project_root = project_root

    def _prepare(self, transcript: Any, options: StructureOptions) -> Tuple[CanonicalSchema, RoutingConfig, str, List[str], float]:
        schema = resolve_schema(options.depot_sections or options.expected_sections or None)
        routing_config = self.routing_cache.get()
        if options.routing_config is not None:
            routing_config = merge_routing_configs(routing_config, options.routing_config)
        threshold = options.similarity_threshold if options.similarity_threshold is not None else config.similarity_threshold
        text = normalise("" if transcript is None else str(transcript), routing_config.asr_normalise)
        return schema, routing_config, text, segment(text), threshold

    @timer
    def structure(self, transcript: Any, options: OptionsInput = None) -> StructuredNotesResult:
        """
        Structure a transcript with the rule-based pipeline.

        Never raises: unexpected failures are logged and an empty result (or
        the placeholder skeleton when forceStructured is set) is returned.

        Args:
            transcript: Raw transcript text
            options: StructureOptions or an equivalent dict (camelCase or snake_case)

        Returns:
            StructuredNotesResult
        """
        opts = coerce_options(options)
        try:
            return self._structure(transcript, opts)
        except Exception:
            logger.exception("Structuring failed; returning fallback result")
            return self._fallback_result(opts)

    def _structure(self, transcript: Any, options: StructureOptions) -> StructuredNotesResult:
        reporter.step("Normalizing and segmenting transcript…")
        schema, routing_config, text, statements, threshold = self._prepare(transcript, options)

        reporter.step(f"Routing {len(statements)} statements…")
        router = IntentRouter(schema, routing_config, options.section_hints)
        routed, decisions = router.route_all(statements)
        get_debug_logger(self.project_root).log_routing(text, decisions)

        satisfied = satisfied_items(options.checklist_items, statements, options.checked_item_ids)
        routed += seed_sections(satisfied, schema)

        reporter.step("Merging with captured notes…")
        drafts = build_drafts(routed)
        sections = reconcile_sections(schema, drafts, options.already_captured, options.force_structured, threshold)
        reporter.complete_sub_step(f"Routed {len(routed)} items into {len(drafts)} sections")

        return StructuredNotesResult(
            sections=sections,
            customer_summary=customer_summary(statements),
            missing_info=missing_info(text, sections) if statements else [],
            materials=collect_materials(satisfied),
            checked_items=[item.id for item in satisfied],
            sanity_notes=sanity_notes(text),
        )

    def _fallback_result(self, options: StructureOptions) -> StructuredNotesResult:
        if not options.force_structured:
            return StructuredNotesResult()
        try:
            schema = resolve_schema(options.depot_sections or options.expected_sections or None)
        except Exception:
            logger.exception("Schema resolution failed; using default schema")
            schema = resolve_schema(None)
        return StructuredNotesResult(sections=reconcile_sections(schema, {}, (), force_structured=True))

    def structure_with_llm(self, transcript: Any, options: OptionsInput = None, handler: Optional[LLMHandler] = None) -> StructuredNotesResult:
        """
        Structure a transcript with the chat model.

        The model output is reconciled with the same placeholder, dedup and
        merge rules as the rule-based path.

        Args:
            transcript: Raw transcript text
            options: StructureOptions or an equivalent dict
            handler: LLM handler; the global handler is used when None

        Returns:
            StructuredNotesResult

        Raises:
            StructuringError: If the model call fails
        """
        opts = coerce_options(options)
        schema, _, text, statements, threshold = self._prepare(transcript, opts)

        reporter.step("Calling the structuring model…")
        messages = StructuringPrompt(schema).messages(
            text,
            already_captured=opts.already_captured,
            section_hints=opts.section_hints,
            checklist_items=opts.checklist_items,
            force_structured=opts.force_structured,
        )
        try:
            handler = handler or get_llm_handler(self.project_root)
            data = handler.make_structuring_request(messages)
        except (LLMHandlerError, ConfigError) as e:
            raise StructuringError(f"LLM structuring failed: {e}") from e
        reporter.complete_sub_step("Received response from structuring model")

        return self._result_from_model(data, schema, opts, text, statements, threshold)

    def _result_from_model(
        self,
        data: Dict[str, Any],
        schema: CanonicalSchema,
        options: StructureOptions,
        text: str,
        statements: List[str],
        threshold: float,
    ) -> StructuredNotesResult:
        debug_logger = get_debug_logger(self.project_root)

        incoming: Dict[str, SectionNote] = {}
        raw_sections = data.get("sections")
        for raw in raw_sections if isinstance(raw_sections, list) else []:
            if not isinstance(raw, dict):
                continue
            section = schema.resolve(raw.get("section") or raw.get("name"))
            if section is None:
                logger.debug(f"Dropping model section outside the schema: {raw.get('section')!r}")
                continue
            note = SectionNote(section=section, plain_text=str(raw.get("plainText") or ""), natural_language=str(raw.get("naturalLanguage") or ""))
            incoming[section] = merge_section_notes(incoming.get(section), note, threshold)

        sections = reconcile_sections(schema, incoming, options.already_captured, options.force_structured, threshold)

        materials: List[MaterialItem] = []
        raw_materials = data.get("materials")
        for raw in raw_materials if isinstance(raw_materials, list) else []:
            try:
                materials.append(MaterialItem.model_validate(raw))
            except ValidationError as e:
                debug_logger.log_validation_error(e, raw, context="material")

        questions: List[MissingInfoQuestion] = []
        raw_questions = data.get("missingInfo")
        for raw in raw_questions if isinstance(raw_questions, list) else []:
            if not isinstance(raw, dict) or not str(raw.get("question") or "").strip():
                continue
            target = str(raw.get("target") or "expert").strip().lower()
            target = MODEL_TARGET_ALIASES.get(target, target)
            questions.append(
                MissingInfoQuestion(target=target if target in ("customer", "expert") else "expert", question=str(raw["question"]).strip(), key=str(raw["key"]) if raw.get("key") else None)
            )

        raw_checked = data.get("checkedItems")
        checked = [str(i) for i in raw_checked] if isinstance(raw_checked, list) else []
        summary = data.get("customerSummary")

        return StructuredNotesResult(
            sections=sections,
            customer_summary=summary.strip() if isinstance(summary, str) else customer_summary(statements),
            missing_info=questions,
            materials=dedupe_materials(materials),
            checked_items=list(dict.fromkeys(checked)),
            sanity_notes=sanity_notes(text),
        )


def structure(transcript: Any, options: OptionsInput = None) -> StructuredNotesResult:
    """
    Structure a transcript with the built-in routing config.

    Convenience wrapper around NotesStructurer.structure; never raises.

    Args:
        transcript: Raw transcript text
        options: StructureOptions or an equivalent dict

    Returns:
        StructuredNotesResult
    """
    return NotesStructurer().structure(transcript, options)
