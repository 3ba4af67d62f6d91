"""
Prompt contract for the LLM structuring path.

Builds the system prompt and the JSON user payload sent to the chat model,
and defines the response shape the model must return. The model's output is
normalized afterwards by the same reconciliation rules as the rule path, so
the prompt only needs to get content into roughly the right sections.
"""

import json
from typing import Any, Dict, List, Optional

from .schema import CanonicalSchema
from .types import ChecklistItem, SectionNote

RESPONSE_SHAPE = """{
  "checkedItems": ["<checklistId>", ...],
  "sections": [
    {
      "section": "<one of the expected section names>",
      "plainText": "Short clauses, each ending with a semicolon;",
      "naturalLanguage": "Full sentences describing the same content."
    }
  ],
  "materials": [
    {"category": "Boiler | Cylinder | Flue | Controls | System clean | Filter | Misc", "item": "Exact part description", "qty": 1, "notes": "Optional short note"}
  ],
  "missingInfo": [
    {"target": "expert | customer", "question": "Short question if anything important is unclear."}
  ],
  "customerSummary": "2-4 sentence summary suitable to show the customer."
}"""


class StructuringPrompt:
    """
    Builds chat messages for a structuring request.

    The system prompt is fixed; the user message is a JSON document carrying
    the transcript and everything the model needs to place content.
    """

    def __init__(self, schema: CanonicalSchema):
        self.schema = schema

    def system_prompt(self, force_structured: bool = False) -> str:
        prompt = f"""You are a heating survey note-builder for a boiler installation surveyor.

You receive a JSON document with:
- transcript: what was dictated during the survey (already ASR-corrected)
- alreadyCaptured: notes captured from earlier parts of the same survey
- expectedSections: the section names you may use, in report order
- sectionHints: phrase -> section hints that override your own judgement
- checklistItems: known checklist items with ids
- depotSections: section names and descriptions

Your job is to:
1. Write NEW notes grouped into the expected section names only.
2. Never repeat anything already captured, even if rephrased.
3. Decide which checklist ids are clearly satisfied by the transcript.
4. Suggest a small list of materials/parts.
5. List anything important that is still unclear.
6. Write a short customer-friendly summary of the job.

Respond with ONLY valid JSON matching this shape:

{RESPONSE_SHAPE}

If something isn't mentioned, leave it out rather than guessing.
Always preserve boiler and cylinder make and model exactly as spoken."""
        if force_structured:
            prompt += "\nReturn an entry for every expected section, even when it has nothing new."
        return prompt

    def user_payload(
        self,
        transcript: str,
        already_captured: Optional[List[SectionNote]] = None,
        section_hints: Optional[Dict[str, str]] = None,
        checklist_items: Optional[List[ChecklistItem]] = None,
        force_structured: bool = False,
    ) -> Dict[str, Any]:
        return {
            "transcript": transcript,
            "alreadyCaptured": [n.model_dump(by_alias=True) for n in already_captured or []],
            "expectedSections": self.schema.names,
            "sectionHints": dict(section_hints or {}),
            "forceStructured": force_structured,
            "checklistItems": [
                {"id": item.id, "label": item.label, "section": item.section} for item in checklist_items or []
            ],
            "depotSections": [s.model_dump() for s in self.schema.sections],
        }

    def messages(self, transcript: str, **kwargs: Any) -> List[Dict[str, str]]:
        """
        Build the chat messages for a structuring request.

        Args:
            transcript: Normalized transcript
            **kwargs: Passed to user_payload

        Returns:
            System and user messages
        """
        payload = self.user_payload(transcript, **kwargs)
        return [
            {"role": "system", "content": self.system_prompt(kwargs.get("force_structured", False))},
            {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
        ]
