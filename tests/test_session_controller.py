from __future__ import annotations

import json
import threading
import time
from typing import Callable
from unittest.mock import patch

import pytest

from config import AnalyzerSettings
from errors import (
    ALL_CANDIDATES_FAILED,
    CONFIGURATION_MISSING,
    DEVICE_UNAVAILABLE,
    INSUFFICIENT_SPEECH,
    INVALID_ENUM,
    MALFORMED_RESPONSE,
    QUOTA_EXCEEDED,
    UNKNOWN,
    DeviceUnavailable,
)
from invoker import ResilientInvoker
from models import (
    AnalysisResult,
    Classification,
    ClassifiedError,
    Language,
    LanguageHint,
    SessionState,
)
from session_controller import SessionController, ThreadScheduler

VALID_REPLY = json.dumps(
    {
        "classification": "Human-generated",
        "confidence": 0.91,
        "language": "English",
        "explanation": "Filler words and self-correction.",
    }
)


class FakeCapture:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.on_fragment: Callable[[str], None] | None = None
        self.language_hint: LanguageHint | None = None
        self.started = 0
        self.stopped = 0
        self.cancelled = 0

    def start(self, on_fragment, language_hint):  # noqa: ANN001, ANN201
        if self.fail:
            raise DeviceUnavailable("no microphone")
        self.started += 1
        self.on_fragment = on_fragment
        self.language_hint = language_hint
        return f"stream-{self.started}"

    def stop(self, handle) -> None:  # noqa: ANN001
        self.stopped += 1

    def cancel(self, handle) -> None:  # noqa: ANN001
        self.cancelled += 1

    def emit(self, text: str) -> None:
        assert self.on_fragment is not None
        self.on_fragment(text)


class FakeService:
    def __init__(self, replies: dict[str, object] | None = None, default: object = VALID_REPLY) -> None:
        self.replies = replies or {}
        self.default = default
        self.calls: list[tuple[str, str]] = []

    def complete(self, model: str, prompt: str) -> str:
        self.calls.append((model, prompt))
        reply = self.replies.get(model, self.default)
        if isinstance(reply, Exception):
            raise reply
        return str(reply)


class _Handle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Holds timers and jobs until the test fires them."""

    def __init__(self) -> None:
        self.timers: list[tuple[float, Callable[[], None], _Handle]] = []
        self.jobs: list[Callable[[], None]] = []

    def call_later(self, delay_s: float, fn: Callable[[], None]) -> _Handle:
        handle = _Handle()
        self.timers.append((delay_s, fn, handle))
        return handle

    def submit(self, fn: Callable[[], None]) -> None:
        self.jobs.append(fn)

    def fire_timers(self) -> None:
        timers, self.timers = self.timers, []
        for _, fn, handle in timers:
            if not handle.cancelled:
                fn()

    def run_jobs(self) -> None:
        jobs, self.jobs = self.jobs, []
        for fn in jobs:
            fn()


def _make_controller(
    capture: FakeCapture | None = None,
    service: FakeService | None = None,
    scheduler: ManualScheduler | None = None,
    api_key: str = "test-key",
    candidates: tuple[str, ...] = ("model-a", "model-b", "model-c"),
    **callbacks,  # noqa: ANN003
) -> SessionController:
    return SessionController(
        capture=capture or FakeCapture(),
        invoker=ResilientInvoker(service or FakeService()),
        settings=AnalyzerSettings(api_key=api_key, candidates=candidates),
        scheduler=scheduler or ManualScheduler(),
        **callbacks,
    )


def test_happy_path_reaches_complete_then_reset_clears() -> None:
    capture = FakeCapture()
    service = FakeService()
    scheduler = ManualScheduler()
    transitions: list[tuple[SessionState, SessionState]] = []
    results: list[AnalysisResult] = []

    controller = _make_controller(
        capture,
        service,
        scheduler,
        on_state_change=lambda f, t: transitions.append((f, t)),
        on_result=results.append,
    )

    controller.start_session(LanguageHint.ENGLISH)
    capture.emit("um yeah so I think")
    capture.emit("it's fine")
    controller.stop_session()
    assert controller.state == SessionState.AWAITING_TRANSCRIPT
    assert scheduler.timers[0][0] == 0.5

    scheduler.fire_timers()
    assert controller.state == SessionState.INVOKING

    scheduler.run_jobs()
    view = controller.view
    assert view.state == SessionState.COMPLETE
    assert view.transcript == "um yeah so I think it's fine"
    assert view.result == AnalysisResult(
        classification=Classification.HUMAN_GENERATED,
        confidence=0.91,
        language=Language.ENGLISH,
        explanation="Filler words and self-correction.",
    )
    assert view.error is None
    assert results == [view.result]
    assert [model for model, _ in service.calls] == ["model-a"]
    assert 'Transcription: "um yeah so I think it\'s fine"' in service.calls[0][1]
    assert capture.language_hint is LanguageHint.ENGLISH
    assert capture.stopped == 1
    assert capture.cancelled == 1

    controller.reset_session()
    view = controller.view
    assert view.state == SessionState.IDLE
    assert view.transcript == ""
    assert view.result is None
    assert view.error is None
    assert transitions == [
        (SessionState.IDLE, SessionState.RECORDING),
        (SessionState.RECORDING, SessionState.AWAITING_TRANSCRIPT),
        (SessionState.AWAITING_TRANSCRIPT, SessionState.INVOKING),
        (SessionState.INVOKING, SessionState.COMPLETE),
        (SessionState.COMPLETE, SessionState.IDLE),
    ]


def test_stop_while_idle_is_noop() -> None:
    capture = FakeCapture()
    scheduler = ManualScheduler()
    transitions: list[tuple[SessionState, SessionState]] = []
    controller = _make_controller(
        capture, scheduler=scheduler, on_state_change=lambda f, t: transitions.append((f, t))
    )

    controller.stop_session()

    assert controller.state == SessionState.IDLE
    assert transitions == []
    assert capture.stopped == 0
    assert scheduler.timers == []


def test_reset_while_idle_is_noop() -> None:
    transitions: list[tuple[SessionState, SessionState]] = []
    controller = _make_controller(on_state_change=lambda f, t: transitions.append((f, t)))

    controller.reset_session()

    assert controller.state == SessionState.IDLE
    assert transitions == []


def test_start_outside_idle_is_noop() -> None:
    capture = FakeCapture()
    controller = _make_controller(capture)

    controller.start_session()
    controller.start_session()

    assert capture.started == 1
    assert controller.state == SessionState.RECORDING


def test_short_transcript_fails_without_invocation() -> None:
    capture = FakeCapture()
    service = FakeService()
    scheduler = ManualScheduler()
    errors: list[ClassifiedError] = []
    controller = _make_controller(capture, service, scheduler, on_error=errors.append)

    controller.start_session()
    capture.emit(" hi ")
    controller.stop_session()
    scheduler.fire_timers()

    assert controller.state == SessionState.FAILED
    assert controller.view.error is not None
    assert controller.view.error.code == INSUFFICIENT_SPEECH
    assert controller.view.result is None
    assert scheduler.jobs == []
    assert service.calls == []
    assert errors == [controller.view.error]


def test_empty_transcript_fails_with_insufficient_speech() -> None:
    scheduler = ManualScheduler()
    controller = _make_controller(scheduler=scheduler)

    controller.start_session()
    controller.stop_session()
    scheduler.fire_timers()

    assert controller.state == SessionState.FAILED
    assert controller.view.error.code == INSUFFICIENT_SPEECH


def test_trailing_fragment_during_grace_period_is_kept() -> None:
    capture = FakeCapture()
    scheduler = ManualScheduler()
    controller = _make_controller(capture, scheduler=scheduler)

    controller.start_session()
    capture.emit("hello there")
    controller.stop_session()
    capture.emit("general")
    scheduler.fire_timers()

    assert controller.state == SessionState.INVOKING
    assert controller.view.transcript == "hello there general"


def test_fragment_after_invocation_began_is_ignored() -> None:
    capture = FakeCapture()
    service = FakeService()
    scheduler = ManualScheduler()
    controller = _make_controller(capture, service, scheduler)

    controller.start_session()
    capture.emit("hello there")
    controller.stop_session()
    scheduler.fire_timers()
    capture.emit("late words")

    assert controller.view.transcript == "hello there"
    scheduler.run_jobs()
    assert controller.state == SessionState.COMPLETE
    assert controller.view.transcript == "hello there"


def test_missing_api_key_fails_fast_before_capture() -> None:
    capture = FakeCapture()
    errors: list[ClassifiedError] = []
    controller = _make_controller(capture, api_key="", on_error=errors.append)

    controller.start_session()

    assert controller.state == SessionState.IDLE
    assert capture.started == 0
    assert [e.code for e in errors] == [CONFIGURATION_MISSING]


def test_device_unavailable_returns_to_idle() -> None:
    errors: list[ClassifiedError] = []
    controller = _make_controller(FakeCapture(fail=True), on_error=errors.append)

    controller.start_session()

    assert controller.state == SessionState.IDLE
    assert [e.code for e in errors] == [DEVICE_UNAVAILABLE]


def test_all_candidates_failed_surfaces_last_error() -> None:
    capture = FakeCapture()
    service = FakeService(
        replies={
            "model-a": RuntimeError("404 model not found"),
            "model-b": RuntimeError("connection reset"),
            "model-c": RuntimeError("429 quota exceeded for project"),
        }
    )
    scheduler = ManualScheduler()
    controller = _make_controller(capture, service, scheduler)

    controller.start_session()
    capture.emit("this is a real sentence")
    controller.stop_session()
    scheduler.fire_timers()
    scheduler.run_jobs()

    error = controller.view.error
    assert controller.state == SessionState.FAILED
    assert error is not None
    assert error.code == ALL_CANDIDATES_FAILED
    assert error.reason == QUOTA_EXCEEDED
    assert controller.view.result is None


def test_invalid_reply_fails_with_validator_reason() -> None:
    capture = FakeCapture()
    reply = '{"classification":"Maybe","confidence":0.5,"language":"English","explanation":"x"}'
    service = FakeService(default=reply)
    scheduler = ManualScheduler()
    controller = _make_controller(capture, service, scheduler)

    controller.start_session()
    capture.emit("this is a real sentence")
    controller.stop_session()
    scheduler.fire_timers()
    scheduler.run_jobs()

    assert controller.state == SessionState.FAILED
    assert controller.view.error.code == ALL_CANDIDATES_FAILED
    assert controller.view.error.reason == INVALID_ENUM
    # validation failures never fall back to the next candidate
    assert [model for model, _ in service.calls] == ["model-a"]


@pytest.mark.parametrize("reply", ["9" * 5000, "[" * 100_000 + "]" * 100_000])
def test_unparseable_reply_fails_instead_of_hanging(reply: str) -> None:
    capture = FakeCapture()
    scheduler = ManualScheduler()
    errors: list[ClassifiedError] = []
    controller = _make_controller(capture, FakeService(default=reply), scheduler, on_error=errors.append)

    controller.start_session()
    capture.emit("this is a real sentence")
    controller.stop_session()
    scheduler.fire_timers()
    scheduler.run_jobs()

    assert controller.state == SessionState.FAILED
    assert controller.view.error.code == ALL_CANDIDATES_FAILED
    assert controller.view.error.reason == MALFORMED_RESPONSE
    assert errors == [controller.view.error]


def test_unexpected_worker_exception_fails_with_unknown_reason() -> None:
    capture = FakeCapture()
    scheduler = ManualScheduler()
    controller = _make_controller(capture, scheduler=scheduler)

    controller.start_session()
    capture.emit("this is a real sentence")
    controller.stop_session()
    scheduler.fire_timers()
    with patch("session_controller.validate_response", side_effect=TypeError("boom")):
        scheduler.run_jobs()

    assert controller.state == SessionState.FAILED
    assert controller.view.error.code == ALL_CANDIDATES_FAILED
    assert controller.view.error.reason == UNKNOWN

    controller.reset_session()
    assert controller.state == SessionState.IDLE


def test_reset_during_recording_releases_capture() -> None:
    capture = FakeCapture()
    controller = _make_controller(capture)

    controller.start_session()
    capture.emit("half a sentence")
    controller.reset_session()

    assert controller.state == SessionState.IDLE
    assert capture.cancelled == 1
    assert capture.stopped == 0
    assert controller.view.transcript == ""


def test_reset_during_grace_period_cancels_timer() -> None:
    capture = FakeCapture()
    service = FakeService()
    scheduler = ManualScheduler()
    controller = _make_controller(capture, service, scheduler)

    controller.start_session()
    capture.emit("hello there")
    controller.stop_session()
    handle = scheduler.timers[0][2]
    controller.reset_session()
    scheduler.fire_timers()

    assert handle.cancelled is True
    assert controller.state == SessionState.IDLE
    assert service.calls == []
    # the trailing segment still being recognized is abandoned too
    assert capture.stopped == 1
    assert capture.cancelled == 1


def test_late_result_after_reset_is_discarded() -> None:
    capture = FakeCapture()
    scheduler = ManualScheduler()
    controller = _make_controller(capture, scheduler=scheduler)

    controller.start_session()
    capture.emit("first attempt words")
    controller.stop_session()
    scheduler.fire_timers()
    assert controller.state == SessionState.INVOKING
    stale_jobs = list(scheduler.jobs)
    scheduler.jobs.clear()

    controller.reset_session()
    controller.start_session()
    capture.emit("second attempt")

    for job in stale_jobs:
        job()

    view = controller.view
    assert view.state == SessionState.RECORDING
    assert view.result is None
    assert view.transcript == "second attempt"


def test_late_fragment_from_previous_session_is_ignored() -> None:
    capture = FakeCapture()
    controller = _make_controller(capture)

    controller.start_session()
    old_callback = capture.on_fragment
    controller.reset_session()
    controller.start_session()
    assert old_callback is not None
    old_callback("stale words")

    assert controller.view.transcript == ""


def test_transcript_callback_receives_running_snapshot() -> None:
    capture = FakeCapture()
    partials: list[str] = []
    controller = _make_controller(capture, on_transcript=partials.append)

    controller.start_session()
    capture.emit("hello")
    capture.emit("world")

    assert partials == ["hello", "hello world"]


def test_thread_scheduler_end_to_end() -> None:
    capture = FakeCapture()
    done = threading.Event()
    controller = SessionController(
        capture=capture,
        invoker=ResilientInvoker(FakeService()),
        settings=AnalyzerSettings(api_key="k", candidates=("model-a",), grace_period_s=0.05),
        scheduler=ThreadScheduler(),
        on_result=lambda _r: done.set(),
    )

    controller.start_session()

    def speak() -> None:
        time.sleep(0.02)
        capture.emit("um yeah so I think it's fine")

    worker = threading.Thread(target=speak, daemon=True)
    worker.start()
    worker.join()
    controller.stop_session()

    assert done.wait(timeout=2.0)
    assert controller.state == SessionState.COMPLETE
    assert controller.view.result.classification is Classification.HUMAN_GENERATED
