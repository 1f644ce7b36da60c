"""
Field value synthesis for the selected request type.

Asks the completion service for a value for every declared field in a
single call. When the answer cannot be used, only summary and description
fields are filled; callers must tolerate a partially filled map. Required
summary and description fields the model leaves blank are filled the same
way.
"""

import logging
from typing import Any

from .errors import UpstreamError
from .llm_client import CompletionClient
from .models import FieldSpec, FieldType, Transcript
from .parsing import parse_json_object


logger = logging.getLogger(__name__)


SYNTHESIS_TEMPERATURE = 0.3

SUMMARY_PREFIX = "AI Voicemail: "

PLACEHOLDER_VALUES = frozenset({"n/a", "na", "none", "null", "-", "tbd", "unknown"})


SYSTEM_PROMPT = """You are an AI assistant that fills service desk request fields based on a voicemail transcript.
Given the voicemail transcript and summary, provide intelligent values for ALL fields, both required and optional.
Output ONLY valid JSON in the format:
{"fieldId1": "value1", "fieldId2": "value2", ... }
Use the field ids exactly as listed. For fields with allowed values, pick one of them.
For multi-value fields, use a JSON array.
Do NOT leave any field as "N/A" or blank. Make each value meaningful based on the transcript."""


def build_fields_prompt(transcript: Transcript, summary: str, fields: list[FieldSpec]) -> str:
    """Build the user prompt listing every field to fill."""
    lines = []
    for spec in fields:
        line = (
            f"- {spec.display_name or spec.field_id} "
            f"(id: {spec.field_id}, type: {spec.type.value}, required: {str(spec.required).lower()})"
        )
        if spec.options:
            line += f" allowed values: {', '.join(spec.options)}"
        lines.append(line)
    
    fields_block = "\n".join(lines)
    return f"""Voicemail transcript:
{transcript.text}

Summary:
{summary}

Fields to fill:
{fields_block}"""


def is_meaningful(value: Any) -> bool:
    """Check that a synthesized value is neither blank nor a placeholder."""
    if value is None:
        return False
    if isinstance(value, str):
        stripped = value.strip()
        return bool(stripped) and stripped.lower() not in PLACEHOLDER_VALUES
    if isinstance(value, (list, tuple)):
        return any(is_meaningful(item) for item in value)
    if isinstance(value, dict):
        return bool(value)
    return True


def coerce_value(spec: FieldSpec, value: Any) -> Any:
    """Shape a value to match the field's declared type."""
    if spec.type is FieldType.MULTI_VALUE:
        if isinstance(value, list):
            return value
        if isinstance(value, tuple):
            return list(value)
        return [value]
    return value


class FieldValueSynthesizer:
    """Generate values for every field a request type declares."""
    
    def __init__(self, completion: CompletionClient):
        self._completion = completion
    
    def fallback_values(
        self,
        transcript: Transcript,
        summary: str,
        fields: list[FieldSpec],
    ) -> dict[str, Any]:
        """
        Fill summary and description fields only.
        
        Every other field, required or not, stays unset.
        """
        values: dict[str, Any] = {}
        for spec in fields:
            if spec.mentions("summary"):
                values[spec.field_id] = coerce_value(spec, f"{SUMMARY_PREFIX}{summary}")
            elif spec.mentions("description"):
                values[spec.field_id] = coerce_value(spec, transcript.text)
        return values
    
    def _collect(self, answer: dict[str, Any], fields: list[FieldSpec]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for spec in fields:
            value = answer.get(spec.field_id)
            if not is_meaningful(value):
                continue
            values[spec.field_id] = coerce_value(spec, value)
        
        unknown = set(answer) - {spec.field_id for spec in fields}
        if unknown:
            logger.debug(f"Ignoring undeclared fields in model answer: {sorted(unknown)}")
        return values
    
    async def synthesize(
        self,
        transcript: Transcript,
        summary: str,
        fields: list[FieldSpec],
    ) -> dict[str, Any]:
        """
        Generate a field value map.
        
        Args:
            transcript: Full voicemail transcript.
            summary: One-sentence summary.
            fields: Field specs of the selected request type.
        
        Returns:
            Mapping of field id to value. Empty, without a completion call,
            when no fields are declared.
        """
        if not fields:
            return {}
        
        try:
            response = await self._completion.complete(
                build_fields_prompt(transcript, summary, fields),
                system_prompt=SYSTEM_PROMPT,
                temperature=SYNTHESIS_TEMPERATURE,
            )
        except UpstreamError as e:
            logger.warning(f"Field synthesis call failed, using fallback values: {e}")
            return self.fallback_values(transcript, summary, fields)
        
        parsed = parse_json_object(response)
        if not parsed.ok:
            logger.warning(f"Failed to parse field values, using fallback values: {parsed.error}")
            return self.fallback_values(transcript, summary, fields)
        
        values = self._collect(parsed.value, fields)
        fallback = self.fallback_values(transcript, summary, fields)
        for spec in fields:
            if not spec.required or spec.field_id in values:
                continue
            if spec.field_id in fallback:
                logger.info(f"Filled required field '{spec.field_id}' from fallback")
                values[spec.field_id] = fallback[spec.field_id]
            else:
                logger.warning(f"No usable value generated for required field '{spec.field_id}'")
        
        logger.info(f"Generated values for {len(values)}/{len(fields)} fields")
        return values
