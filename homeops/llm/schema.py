"""
homeops/llm/schema.py
Strict validation of the classifier's structured output.

The raw model output is never trusted: it is decoded, checked against the
closed enumerations, and turned into a ClassificationResult — or a
ClassificationFailure. Nothing in between.
"""

import json
import logging
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from homeops.errors import ClassificationFailure
from homeops.models.record import EFFORT_LEVELS, KINDS, ClassificationResult

logger = logging.getLogger(__name__)

MAX_LABEL_LEN = 80


class ClassificationPayload(BaseModel):
    """Accepts our field names and the short names older prompts used."""
    model_config = ConfigDict(extra='ignore')

    kind:           Literal[KINDS] = Field(
        validation_alias=AliasChoices('kind', 'type'))
    activity_label: str = Field(
        default='', validation_alias=AliasChoices('activity_label', 'activity'))
    effort_level:   Literal[EFFORT_LEVELS] = Field(
        validation_alias=AliasChoices('effort_level', 'effort'))
    confidence:     float = Field(ge=0.0, le=1.0)

    @field_validator('kind', 'effort_level', mode='before')
    @classmethod
    def _normalize_enum(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator('activity_label', mode='before')
    @classmethod
    def _normalize_label(cls, v: Any) -> Any:
        if v is None:
            return ''
        if isinstance(v, str):
            return ' '.join(v.split())[:MAX_LABEL_LEN]
        return v

    @field_validator('confidence', mode='before')
    @classmethod
    def _reject_bool(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError('confidence must be a number, not a boolean')
        return v

    @model_validator(mode='after')
    def _label_required_for_activities(self) -> 'ClassificationPayload':
        if self.kind != 'none' and not self.activity_label:
            raise ValueError('activity_label is required when kind is not none')
        return self


def _strip_fences(text: str) -> str:
    """Models sometimes wrap JSON in markdown fences despite JSON mode."""
    clean = text.strip()
    if clean.startswith('```'):
        parts = clean.split('```')
        if len(parts) >= 2:
            clean = parts[1]
            if clean.startswith('json'):
                clean = clean[4:]
    return clean.strip()


def parse_classification(text: str) -> ClassificationResult:
    """Decode and validate. Raises ClassificationFailure on any malformed input."""
    try:
        data = json.loads(_strip_fences(text or ''))
    except json.JSONDecodeError as e:
        raise ClassificationFailure(f"Classifier output is not JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise ClassificationFailure(
            f"Classifier output must be an object, got {type(data).__name__}"
        )

    try:
        payload = ClassificationPayload.model_validate(data)
    except ValidationError as e:
        fields = ', '.join(
            '.'.join(str(p) for p in err['loc']) or 'payload' for err in e.errors()
        )
        raise ClassificationFailure(f"Classifier output failed validation: {fields}") from e

    return ClassificationResult(
        kind           = payload.kind,
        activity_label = payload.activity_label,
        effort_level   = payload.effort_level,
        confidence     = float(payload.confidence),
    )
