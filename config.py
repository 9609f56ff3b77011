"""Simple JSON-based config store and runtime settings."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

from models import LanguageHint

DEFAULT_CANDIDATES: Tuple[str, ...] = (
    "gemini-1.5-flash-latest",
    "gemini-1.5-flash",
    "gemini-flash-1.5",
    "models/gemini-1.5-flash-latest",
)
GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_GRACE_PERIOD_S = 0.5
# The last speech segment is recognized after the microphone closes, so the
# desktop grace period has to cover one full ASR round trip.
ASR_REQUEST_TIMEOUT_S = 5.0
GRACE_MARGIN_S = 1.0
DEFAULT_MIN_TRANSCRIPT_CHARS = 3


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voice_analyzer" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "") or os.getenv("GEMINI_API_KEY", ""))

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_asr_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("asr_api_key", "") or os.getenv("DASHSCOPE_API_KEY", ""))

    def set_asr_api_key(self, key: str) -> None:
        self._set("asr_api_key", key)

    def get_hotkey(self) -> str:
        data = self._read_all()
        return str(data.get("hotkey", "Key.alt_l"))

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def get_language_hint(self) -> LanguageHint:
        data = self._read_all()
        try:
            return LanguageHint(data.get("language_hint", LanguageHint.AUTO.value))
        except ValueError:
            return LanguageHint.AUTO

    def set_language_hint(self, hint: LanguageHint) -> None:
        self._set("language_hint", hint.value)

    def get_candidates(self) -> Tuple[str, ...]:
        data = self._read_all()
        value = data.get("candidates")
        if not isinstance(value, list) or not value:
            return DEFAULT_CANDIDATES
        return tuple(str(item) for item in value)

    def get_grace_period_s(self) -> float:
        return self._get_number("grace_period_s", ASR_REQUEST_TIMEOUT_S + GRACE_MARGIN_S)

    def get_min_transcript_chars(self) -> int:
        return int(self._get_number("min_transcript_chars", DEFAULT_MIN_TRANSCRIPT_CHARS))

    def _get_number(self, key: str, default: float) -> float:
        value = self._read_all().get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            return default
        return value

    def _set(self, key: str, value: object) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


@dataclass(frozen=True)
class AnalyzerSettings:
    """
    Runtime settings for one controller.

    Attributes:
        api_key: Inference service credential; empty means not configured.
        candidates: Model identifiers in priority order.
        grace_period_s: Delay after capture stop before the transcript is frozen.
        min_transcript_chars: Shortest trimmed transcript worth analyzing.
        base_url: OpenAI-compatible endpoint of the inference service.
        request_timeout_s: Per-attempt HTTP timeout.
    """

    api_key: str
    candidates: Tuple[str, ...] = DEFAULT_CANDIDATES
    grace_period_s: float = DEFAULT_GRACE_PERIOD_S
    min_transcript_chars: int = DEFAULT_MIN_TRANSCRIPT_CHARS
    base_url: str = GEMINI_OPENAI_BASE_URL
    request_timeout_s: float = 30.0

    @classmethod
    def from_store(cls, store: JsonConfigStore) -> "AnalyzerSettings":
        return cls(
            api_key=store.get_api_key().strip(),
            candidates=store.get_candidates(),
            grace_period_s=store.get_grace_period_s(),
            min_transcript_chars=store.get_min_transcript_chars(),
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)
