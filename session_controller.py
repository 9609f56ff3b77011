"""State-machine based session orchestration."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Callable, Optional

from config import AnalyzerSettings
from errors import (
    UNKNOWN,
    AllCandidatesFailed,
    AnalyzerError,
    ConfigurationMissing,
    DeviceUnavailable,
    InsufficientSpeech,
    to_classified_error,
)
from interfaces import CaptureSource, Cancellable, Scheduler
from invoker import ResilientInvoker
from models import (
    AnalysisResult,
    ClassifiedError,
    LanguageHint,
    Session,
    SessionState,
    SessionView,
)
from prompt_builder import build_prompt
from validator import validate_response

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
TranscriptCallback = Callable[[str], None]
ResultCallback = Callable[[AnalysisResult], None]
ErrorCallback = Callable[[ClassifiedError], None]


class ThreadScheduler:
    """Runs the grace timer and the inference call off the caller's thread."""

    def call_later(self, delay_s: float, fn: Callable[[], None]) -> Cancellable:
        timer = threading.Timer(delay_s, fn)
        timer.daemon = True
        timer.start()
        return timer

    def submit(self, fn: Callable[[], None]) -> None:
        threading.Thread(target=fn, daemon=True).start()


# ------------------------------------------------------------------
# Events
# ------------------------------------------------------------------


@dataclass(frozen=True)
class _Start:
    language_hint: LanguageHint


@dataclass(frozen=True)
class _Stop:
    pass


@dataclass(frozen=True)
class _Reset:
    pass


@dataclass(frozen=True)
class _Fragment:
    attempt_id: int
    text: str


@dataclass(frozen=True)
class _GraceElapsed:
    attempt_id: int


@dataclass(frozen=True)
class _Settled:
    attempt_id: int
    result: Optional[AnalysisResult] = None
    error: Optional[AnalyzerError] = None


class SessionController:
    def __init__(
        self,
        capture: CaptureSource,
        invoker: ResilientInvoker,
        settings: AnalyzerSettings,
        scheduler: Optional[Scheduler] = None,
        on_state_change: Optional[StateCallback] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._capture = capture
        self._invoker = invoker
        self._settings = settings
        self._scheduler = scheduler or ThreadScheduler()
        self._on_state_change = on_state_change
        self._on_transcript = on_transcript
        self._on_result = on_result
        self._on_error = on_error

        self._lock = threading.RLock()
        self._events: Queue[object] = Queue()
        self._draining = False
        self._session = Session()
        self._grace_timer: Optional[Cancellable] = None

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def settings(self) -> AnalyzerSettings:
        return self._settings

    @property
    def view(self) -> SessionView:
        with self._lock:
            session = self._session
            return SessionView(
                state=session.state,
                language_hint=session.language_hint,
                transcript=self._session.transcript.snapshot(),
                result=session.result,
                error=session.error,
            )

    # ------------------------------------------------------------------
    # Operator surface
    # ------------------------------------------------------------------

    def start_session(self, language_hint: LanguageHint = LanguageHint.AUTO) -> None:
        self._post(_Start(language_hint))

    def stop_session(self) -> None:
        self._post(_Stop())

    def reset_session(self) -> None:
        self._post(_Reset())

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    def _post(self, event: object) -> None:
        self._events.put(event)
        with self._lock:
            if self._draining:
                return
            self._draining = True
            try:
                while True:
                    try:
                        next_event = self._events.get_nowait()
                    except Empty:
                        break
                    self._dispatch(next_event)
            finally:
                self._draining = False

    def _dispatch(self, event: object) -> None:
        if isinstance(event, _Start):
            self._handle_start(event.language_hint)
        elif isinstance(event, _Stop):
            self._handle_stop()
        elif isinstance(event, _Reset):
            self._handle_reset()
        elif isinstance(event, _Fragment):
            self._handle_fragment(event)
        elif isinstance(event, _GraceElapsed):
            self._handle_grace_elapsed(event)
        elif isinstance(event, _Settled):
            self._handle_settled(event)

    def _is_current(self, attempt_id: int, expected: SessionState) -> bool:
        if attempt_id == self._session.attempt_id and self._session.state == expected:
            return True
        logger.debug(
            "Dropping stale event for attempt %d (current %d, state %s)",
            attempt_id,
            self._session.attempt_id,
            self._session.state.value,
        )
        return False

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _handle_start(self, language_hint: LanguageHint) -> None:
        if self._session.state != SessionState.IDLE:
            return
        if not self._settings.configured:
            self._report(ConfigurationMissing("inference API key is not configured"))
            return

        attempt_id = self._session.attempt_id + 1
        self._session = Session(language_hint=language_hint, attempt_id=attempt_id)

        def on_fragment(text: str) -> None:
            self._post(_Fragment(attempt_id, text))

        try:
            handle = self._capture.start(on_fragment, language_hint)
        except DeviceUnavailable as exc:
            self._report(exc)
            return
        self._session.capture_handle = handle
        self._transition(SessionState.RECORDING)

    def _handle_stop(self) -> None:
        if self._session.state != SessionState.RECORDING:
            return
        self._stop_capture()
        self._transition(SessionState.AWAITING_TRANSCRIPT)
        attempt_id = self._session.attempt_id
        self._grace_timer = self._scheduler.call_later(
            self._settings.grace_period_s,
            lambda: self._post(_GraceElapsed(attempt_id)),
        )

    def _handle_reset(self) -> None:
        from_state = self._session.state
        if from_state == SessionState.IDLE:
            return
        self._cancel_capture()
        self._cancel_grace_timer()
        self._session = Session(attempt_id=self._session.attempt_id + 1)
        self._notify(from_state, SessionState.IDLE)

    def _handle_fragment(self, event: _Fragment) -> None:
        if event.attempt_id != self._session.attempt_id or self._session.state not in (
            SessionState.RECORDING,
            SessionState.AWAITING_TRANSCRIPT,
        ):
            logger.debug("Dropping late transcript fragment for attempt %d", event.attempt_id)
            return
        self._session.transcript.append(event.text)
        if self._on_transcript:
            self._on_transcript(self._session.transcript.snapshot())

    def _handle_grace_elapsed(self, event: _GraceElapsed) -> None:
        if not self._is_current(event.attempt_id, SessionState.AWAITING_TRANSCRIPT):
            return
        self._grace_timer = None
        self._cancel_capture()
        self._session.transcript.freeze()
        transcript = self._session.transcript.snapshot()
        if len(transcript) < self._settings.min_transcript_chars:
            self._fail(InsufficientSpeech(f"transcript too short: {transcript!r}"))
            return

        self._transition(SessionState.INVOKING)
        prompt = build_prompt(transcript, self._session.language_hint)
        candidates = tuple(self._settings.candidates)
        attempt_id = self._session.attempt_id
        self._scheduler.submit(lambda: self._analyze(attempt_id, prompt, candidates))

    def _handle_settled(self, event: _Settled) -> None:
        if not self._is_current(event.attempt_id, SessionState.INVOKING):
            return
        if event.error is not None:
            self._fail(event.error)
            return
        self._session.result = event.result
        self._transition(SessionState.COMPLETE)
        if self._on_result and event.result is not None:
            self._on_result(event.result)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _analyze(self, attempt_id: int, prompt: str, candidates: tuple[str, ...]) -> None:
        """Invoke and validate outside the lock, then post the outcome."""
        try:
            raw_text = self._invoker.invoke(prompt, candidates)
            result = validate_response(raw_text)
        except AnalyzerError as exc:
            self._post(_Settled(attempt_id, error=exc))
            return
        except Exception as exc:
            logger.exception("Analysis worker failed for attempt %d", attempt_id)
            error = AllCandidatesFailed(f"{type(exc).__name__}: {exc}", reason=UNKNOWN, last_error=exc)
            self._post(_Settled(attempt_id, error=error))
            return
        self._post(_Settled(attempt_id, result=result))

    def _fail(self, exc: AnalyzerError) -> None:
        self._session.error = to_classified_error(exc)
        self._transition(SessionState.FAILED)
        logger.warning("Session %d failed: %s", self._session.attempt_id, self._session.error.message)
        if self._on_error:
            self._on_error(self._session.error)

    def _report(self, exc: AnalyzerError) -> None:
        """Surface a failure that leaves the session in IDLE."""
        error = to_classified_error(exc)
        logger.warning("Cannot start recording: %s (%s)", error.message, exc)
        if self._on_error:
            self._on_error(error)

    def _stop_capture(self) -> None:
        """Close the microphone; the handle is kept so trailing recognition can still be abandoned."""
        handle = self._session.capture_handle
        if handle is None:
            return
        try:
            self._capture.stop(handle)
        except Exception:
            logger.exception("Failed to release capture device")

    def _cancel_capture(self) -> None:
        """Close the microphone and abandon any recognition still pending."""
        handle = self._session.capture_handle
        if handle is None:
            return
        self._session.capture_handle = None
        try:
            self._capture.cancel(handle)
        except Exception:
            logger.exception("Failed to cancel capture")

    def _cancel_grace_timer(self) -> None:
        if self._grace_timer is not None:
            self._grace_timer.cancel()
            self._grace_timer = None

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._session.state
        if from_state == to_state:
            return
        self._session.state = to_state
        self._notify(from_state, to_state)

    def _notify(self, from_state: SessionState, to_state: SessionState) -> None:
        logger.debug("Session %d: %s -> %s", self._session.attempt_id, from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
