"""Protocol interfaces used by SessionController."""

from __future__ import annotations

from queue import Queue
from typing import Callable, Protocol

from models import AudioFrame, LanguageHint

FragmentCallback = Callable[[str], None]


class Recorder(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...


class Transcriber(Protocol):
    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_fragment: FragmentCallback,
    ) -> None: ...

    def stop(self) -> None: ...


class CaptureSource(Protocol):
    def start(self, on_fragment: FragmentCallback, language_hint: LanguageHint) -> object: ...

    def stop(self, handle: object) -> None: ...

    def cancel(self, handle: object) -> None: ...


class InferenceService(Protocol):
    def complete(self, model: str, prompt: str) -> str: ...


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_s: float, fn: Callable[[], None]) -> Cancellable: ...

    def submit(self, fn: Callable[[], None]) -> None: ...

