"""Structural validation of the inference service reply."""

from __future__ import annotations

import json
import re
from typing import Any

from errors import EmptyField, InvalidEnum, MalformedResponse, MissingField, OutOfRange
from models import AnalysisResult, Classification, Language

REQUIRED_FIELDS = ("classification", "confidence", "language", "explanation")

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?|\n?\s*```$")


def strip_code_fences(raw_text: str) -> str:
    """Remove a leading ```json / ``` marker and a trailing ``` marker."""
    return _FENCE_RE.sub("", raw_text.strip()).strip()


def _enum_value(enum_cls: Any, field: str, value: Any) -> Any:
    if not isinstance(value, str):
        raise InvalidEnum(field, value)
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidEnum(field, value) from None


def validate_response(raw_text: str) -> AnalysisResult:
    try:
        data = json.loads(strip_code_fences(raw_text))
    except (ValueError, RecursionError) as exc:
        raise MalformedResponse(f"reply is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedResponse(f"reply is not a JSON object: {type(data).__name__}")

    for name in REQUIRED_FIELDS:
        if name not in data:
            raise MissingField(name)

    classification = _enum_value(Classification, "classification", data["classification"])

    confidence = data["confidence"]
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise OutOfRange("confidence", confidence)
    if not 0.0 <= confidence <= 1.0:
        raise OutOfRange("confidence", confidence)

    language = _enum_value(Language, "language", data["language"])

    explanation = data["explanation"]
    if not isinstance(explanation, str) or not explanation.strip():
        raise EmptyField("explanation")

    return AnalysisResult(
        classification=classification,
        confidence=float(confidence),
        language=language,
        explanation=explanation,
    )
