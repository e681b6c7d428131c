"""
Response Schemas - Strict Decoding of Model Service Output

The model service is asked for JSON; these Pydantic models define what an
acceptable answer looks like. Anything else is an ExtractionParseError.

Decoding Steps:
    1. Strip surrounding whitespace and one enclosing markdown code fence
    2. Validate the JSON text against the schema (TypeAdapter.validate_json)
    3. Convert to domain models (AuditEntry, Prediction)

Both the domain field names and the names used in the prompts
("mrn", "primary_icd", "cpt_codes", ...) are accepted.

Author: Shubham Singh
Date: October 2026
"""

import re
from typing import Any, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from coding_prompt_eval.core.exceptions import ExtractionParseError
from coding_prompt_eval.core.models import AuditEntry, Prediction


_FENCE_PATTERN = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)


def _code_list(value: Any) -> List[str]:
    """Null becomes an empty list; numeric codes become strings."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    return value


# =============================================================================
# STAGE 1: PAYLOAD MODELS
# =============================================================================


class AuditEntryPayload(BaseModel):
    """
    One encounter as returned by audit PDF extraction.

    A missing identifier is allowed; the case repository skips such entries.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    identifier: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("mrn", "identifier"),
        description="Patient record number",
    )
    source_filename_reference: str = Field(
        default="",
        validation_alias=AliasChoices("audit_filename_ref", "source_filename_reference"),
    )
    primary_code: str = Field(default="", validation_alias=AliasChoices("primary_icd", "primary_code"))
    secondary_codes: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("secondary_icds", "secondary_codes")
    )
    procedure_codes: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("cpt_codes", "procedure_codes")
    )
    notes: str = Field(default="", validation_alias=AliasChoices("auditor_notes", "notes"))

    @field_validator("identifier", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        """Record numbers sometimes come back as JSON numbers."""
        if v is None:
            return None
        if isinstance(v, (int, str)) and not isinstance(v, bool):
            text = str(v).strip()
            return text or None
        return v

    @field_validator("source_filename_reference", "primary_code", "notes", mode="before")
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("secondary_codes", "procedure_codes", mode="before")
    @classmethod
    def coerce_codes(cls, v: Any) -> Any:
        return _code_list(v)

    def to_domain(self) -> AuditEntry:
        return AuditEntry(
            identifier=self.identifier,
            source_filename_reference=self.source_filename_reference,
            primary_code=self.primary_code.strip(),
            secondary_codes=tuple(self.secondary_codes),
            procedure_codes=tuple(self.procedure_codes),
            notes=self.notes,
        )


class CodingPredictionPayload(BaseModel):
    """The coding model's answer for one clinical note. A primary code is required."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    primary_code: str = Field(validation_alias=AliasChoices("primary_icd", "primary_code"))
    secondary_codes: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("secondary_icds", "secondary_codes")
    )
    procedure_codes: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("cpt_codes", "procedure_codes")
    )
    reasoning: str = ""

    @field_validator("primary_code", mode="before")
    @classmethod
    def coerce_primary(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("secondary_codes", "procedure_codes", mode="before")
    @classmethod
    def coerce_codes(cls, v: Any) -> Any:
        return _code_list(v)

    @field_validator("reasoning", mode="before")
    @classmethod
    def null_reasoning(cls, v: Any) -> Any:
        return "" if v is None else v

    def to_domain(self) -> Prediction:
        return Prediction(
            primary_code=self.primary_code.strip(),
            secondary_codes=tuple(self.secondary_codes),
            procedure_codes=tuple(self.procedure_codes),
            reasoning=self.reasoning,
        )


_AUDIT_ENTRIES = TypeAdapter(List[AuditEntryPayload])
_PREDICTION = TypeAdapter(CodingPredictionPayload)


# =============================================================================
# STAGE 2: DECODING
# =============================================================================


def strip_code_fence(text: str) -> str:
    """Remove one enclosing ```json ... ``` fence, if present."""
    stripped = (text or "").strip()
    match = _FENCE_PATTERN.match(stripped)
    return match.group(1).strip() if match else stripped


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
    return f"{first.get('msg', 'invalid')} at {location} ({error.error_count()} error(s))"


def parse_audit_entries(text: str) -> List[AuditEntry]:
    """
    Decode an audit extraction response.

    Raises:
        ExtractionParseError: If the body is not a JSON array of entry objects
    """
    body = strip_code_fence(text)
    if not body:
        raise ExtractionParseError("audit entry array", "empty response", raw_text=text or "")
    try:
        payloads = _AUDIT_ENTRIES.validate_json(body)
    except ValidationError as e:
        raise ExtractionParseError("audit entry array", _describe(e), raw_text=text) from e
    return [payload.to_domain() for payload in payloads]


def parse_prediction(text: str) -> Prediction:
    """
    Decode a coding response.

    Raises:
        ExtractionParseError: If the body is not a JSON object with a primary code
    """
    body = strip_code_fence(text)
    if not body:
        raise ExtractionParseError("coding prediction", "empty response", raw_text=text or "")
    try:
        payload = _PREDICTION.validate_json(body)
    except ValidationError as e:
        raise ExtractionParseError("coding prediction", _describe(e), raw_text=text) from e
    return payload.to_domain()
