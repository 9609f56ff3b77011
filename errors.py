"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

from typing import Any, Optional, Sequence

from models import ClassifiedError, InvocationAttempt

DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
CONFIGURATION_MISSING = "CONFIGURATION_MISSING"
INSUFFICIENT_SPEECH = "INSUFFICIENT_SPEECH"
ALL_CANDIDATES_FAILED = "ALL_CANDIDATES_FAILED"

MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
MISSING_FIELD = "MISSING_FIELD"
INVALID_ENUM = "INVALID_ENUM"
OUT_OF_RANGE = "OUT_OF_RANGE"
EMPTY_FIELD = "EMPTY_FIELD"

UNAUTHORIZED = "UNAUTHORIZED"
QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
UNKNOWN = "UNKNOWN"

ERROR_MESSAGES = {
    DEVICE_UNAVAILABLE: "Microphone access denied or not supported.",
    CONFIGURATION_MISSING: "API key not configured. Set it from the tray menu or GEMINI_API_KEY.",
    INSUFFICIENT_SPEECH: "Could not transcribe audio. Please speak clearly and try again.",
    ALL_CANDIDATES_FAILED: "Analysis failed.",
    UNAUTHORIZED: "Invalid API key. Please check your configuration.",
    QUOTA_EXCEEDED: "API quota exceeded. Please try again later.",
    MODEL_NOT_FOUND: "Your API key doesn't have access to the configured models.",
    MALFORMED_RESPONSE: "The model reply was not valid JSON.",
    MISSING_FIELD: "The model reply is missing a required field.",
    INVALID_ENUM: "The model reply contains an unexpected value.",
    OUT_OF_RANGE: "The model reply contains an out-of-range confidence.",
    EMPTY_FIELD: "The model reply contains an empty explanation.",
}


class AnalyzerError(RuntimeError):
    """Base class for failures scoped to a single session."""

    code = UNKNOWN


class DeviceUnavailable(AnalyzerError):
    code = DEVICE_UNAVAILABLE


class ConfigurationMissing(AnalyzerError):
    code = CONFIGURATION_MISSING


class InsufficientSpeech(AnalyzerError):
    code = INSUFFICIENT_SPEECH


class AllCandidatesFailed(AnalyzerError):
    """Every candidate model failed; carries the last candidate's failure."""

    code = ALL_CANDIDATES_FAILED

    def __init__(
        self,
        message: str,
        reason: str = UNKNOWN,
        last_error: Optional[BaseException] = None,
        attempts: Sequence[InvocationAttempt] = (),
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.last_error = last_error
        self.attempts = list(attempts)


class ResponseValidationError(AnalyzerError):
    """The service replied, but not with a usable analysis."""

    code = MALFORMED_RESPONSE


class MalformedResponse(ResponseValidationError):
    code = MALFORMED_RESPONSE


class MissingField(ResponseValidationError):
    code = MISSING_FIELD

    def __init__(self, name: str) -> None:
        super().__init__(f"missing field: {name}")
        self.field = name


class InvalidEnum(ResponseValidationError):
    code = INVALID_ENUM

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(f"invalid value for {field}: {value!r}")
        self.field = field
        self.value = value


class OutOfRange(ResponseValidationError):
    code = OUT_OF_RANGE

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(f"{field} out of range: {value!r}")
        self.field = field
        self.value = value


class EmptyField(ResponseValidationError):
    code = EMPTY_FIELD

    def __init__(self, field: str) -> None:
        super().__init__(f"empty field: {field}")
        self.field = field


def classify_failure(exc: BaseException) -> str:
    """Map an SDK/network exception to a sub-reason code."""
    status = getattr(exc, "status_code", None)
    if status in (401, 403):
        return UNAUTHORIZED
    if status == 429:
        return QUOTA_EXCEEDED
    if status == 404:
        return MODEL_NOT_FOUND

    low = str(exc).lower()
    if "api key" in low or "api_key" in low or "unauthorized" in low or "401" in low:
        return UNAUTHORIZED
    if "quota" in low or "rate limit" in low or "429" in low:
        return QUOTA_EXCEEDED
    if "not found" in low or "404" in low:
        return MODEL_NOT_FOUND
    return UNKNOWN


def to_classified_error(exc: AnalyzerError) -> ClassifiedError:
    """Build the operator-facing error for a session failure."""
    if isinstance(exc, AllCandidatesFailed):
        reason = exc.reason
        if reason == UNKNOWN:
            message = f"Analysis failed. Error: {exc}"
        else:
            message = ERROR_MESSAGES[reason]
        return ClassifiedError(code=ALL_CANDIDATES_FAILED, message=message, reason=reason)
    if isinstance(exc, ResponseValidationError):
        message = f"{ERROR_MESSAGES[exc.code]} ({exc})"
        return ClassifiedError(code=ALL_CANDIDATES_FAILED, message=message, reason=exc.code)
    return ClassifiedError(code=exc.code, message=ERROR_MESSAGES.get(exc.code, str(exc)))
