"""Lenient result models for model output.

Every field is optional with a default, so a partial or malformed answer
still decodes into a usable result instead of failing the request.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_CONTAMINATION_LEVEL = 50
MIN_CONTAMINATION_LEVEL = 1
MAX_CONTAMINATION_LEVEL = 100


def coerce_points(value: Any) -> List[str]:
    """Keep non-empty string-like entries of a list; anything else becomes []."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    points: List[str] = []
    for item in value:
        if isinstance(item, (str, int, float)) and not isinstance(item, bool):
            text = str(item).strip()
            if text:
                points.append(text)
    return points


def coerce_contamination_level(value: Any) -> int:
    """Return an int in [1, 100]; unparseable input yields the neutral default."""
    if isinstance(value, bool) or value is None:
        return DEFAULT_CONTAMINATION_LEVEL
    try:
        level = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_CONTAMINATION_LEVEL
    return max(MIN_CONTAMINATION_LEVEL, min(MAX_CONTAMINATION_LEVEL, level))


class DiagnosisResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    diagnosis_points: List[str] = []
    treatment_points: List[str] = []
    description: str = ""
    contamination_level: int = DEFAULT_CONTAMINATION_LEVEL

    @field_validator("diagnosis_points", "treatment_points", mode="before")
    @classmethod
    def _points(cls, value: Any) -> List[str]:
        return coerce_points(value)

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, value: Any) -> str:
        return value.strip() if isinstance(value, str) else ""

    @field_validator("contamination_level", mode="before")
    @classmethod
    def _level(cls, value: Any) -> int:
        return coerce_contamination_level(value)


class TreatmentPlan(BaseModel):
    model_config = ConfigDict(extra="ignore")

    treatment_points: List[str] = []

    @field_validator("treatment_points", mode="before")
    @classmethod
    def _points(cls, value: Any) -> List[str]:
        return coerce_points(value)


def parse_diagnosis(arguments: Dict[str, Any]) -> DiagnosisResult:
    """Decode diagnosis arguments; never raises on bad model output."""
    try:
        return DiagnosisResult.model_validate(arguments or {})
    except ValidationError as exc:
        logger.warning("Diagnosis output failed validation, using defaults: %s", exc)
        return DiagnosisResult()


def parse_treatment(arguments: Dict[str, Any]) -> TreatmentPlan:
    try:
        return TreatmentPlan.model_validate(arguments or {})
    except ValidationError as exc:
        logger.warning("Treatment output failed validation, using defaults: %s", exc)
        return TreatmentPlan()
