"""Core data models for the analyzer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from transcript import TranscriptAccumulator


class SessionState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    AWAITING_TRANSCRIPT = "AWAITING_TRANSCRIPT"
    INVOKING = "INVOKING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


class LanguageHint(str, Enum):
    AUTO = "Auto"
    ENGLISH = "English"
    TAMIL = "Tamil"
    HINDI = "Hindi"
    MALAYALAM = "Malayalam"
    TELUGU = "Telugu"

    @property
    def asr_code(self) -> str:
        """Language code for the recognizer, empty for auto-detect."""
        return _ASR_CODES.get(self, "")


_ASR_CODES = {
    LanguageHint.ENGLISH: "en",
    LanguageHint.TAMIL: "ta",
    LanguageHint.HINDI: "hi",
    LanguageHint.MALAYALAM: "ml",
    LanguageHint.TELUGU: "te",
}


class Classification(str, Enum):
    HUMAN_GENERATED = "Human-generated"
    AI_GENERATED = "AI-generated"


class Language(str, Enum):
    ENGLISH = "English"
    TAMIL = "Tamil"
    HINDI = "Hindi"
    MALAYALAM = "Malayalam"
    TELUGU = "Telugu"
    UNKNOWN = "Unknown"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass(frozen=True)
class AnalysisResult:
    classification: Classification
    confidence: float
    language: Language
    explanation: str


@dataclass(frozen=True)
class ClassifiedError:
    """A failure reason surfaced to the operator."""

    code: str
    message: str
    reason: str = ""


@dataclass
class InvocationAttempt:
    model: str
    success: bool
    response_text: Optional[str] = None
    error: str = ""


@dataclass
class Session:
    state: SessionState = SessionState.IDLE
    language_hint: LanguageHint = LanguageHint.AUTO
    transcript: TranscriptAccumulator = field(default_factory=TranscriptAccumulator)
    result: Optional[AnalysisResult] = None
    error: Optional[ClassifiedError] = None
    attempt_id: int = 0
    capture_handle: object = field(default=None, repr=False)


@dataclass(frozen=True)
class SessionView:
    """Read-only snapshot of the live session."""

    state: SessionState
    language_hint: LanguageHint
    transcript: str
    result: Optional[AnalysisResult]
    error: Optional[ClassifiedError]
