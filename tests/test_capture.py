from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

import capture as capture_module
import config
from capture import CaptureHandle, MicrophoneCapture
from config import AnalyzerSettings, JsonConfigStore
from errors import DeviceUnavailable
from invoker import ResilientInvoker
from models import AudioFrame, LanguageHint, SessionState
from session_controller import SessionController, ThreadScheduler


class FakeRecorder:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.queue = None
        self.stopped = False

    def start(self, audio_queue) -> None:  # noqa: ANN001
        if self.error is not None:
            raise self.error
        self.queue = audio_queue

    def stop(self) -> None:
        self.stopped = True


class FakeTranscriber:
    def __init__(self, hint: LanguageHint) -> None:
        self.hint = hint
        self.queue = None
        self.on_fragment = None
        self.stopped = False

    def start(self, audio_queue, on_fragment) -> None:  # noqa: ANN001
        self.queue = audio_queue
        self.on_fragment = on_fragment

    def stop(self) -> None:
        self.stopped = True


def _capture(recorder: FakeRecorder, transcribers: list[FakeTranscriber]) -> MicrophoneCapture:
    def make_transcriber(hint: LanguageHint) -> FakeTranscriber:
        transcriber = FakeTranscriber(hint)
        transcribers.append(transcriber)
        return transcriber

    return MicrophoneCapture(recorder_factory=lambda: recorder, transcriber_factory=make_transcriber)


def test_start_wires_recorder_and_transcriber_to_one_queue() -> None:
    recorder = FakeRecorder()
    transcribers: list[FakeTranscriber] = []
    fragments: list[str] = []

    handle = _capture(recorder, transcribers).start(fragments.append, LanguageHint.HINDI)

    assert isinstance(handle, CaptureHandle)
    transcriber = transcribers[0]
    assert transcriber.hint is LanguageHint.HINDI
    assert recorder.queue is transcriber.queue is handle.audio_queue
    transcriber.on_fragment("namaste")
    assert fragments == ["namaste"]


def test_stop_releases_recorder_but_lets_transcriber_flush() -> None:
    recorder = FakeRecorder()
    transcribers: list[FakeTranscriber] = []
    capture = _capture(recorder, transcribers)

    handle = capture.start(lambda _t: None, LanguageHint.AUTO)
    capture.stop(handle)

    assert recorder.stopped is True
    assert transcribers[0].stopped is False


def test_cancel_abandons_recognition_and_releases_recorder() -> None:
    recorder = FakeRecorder()
    transcribers: list[FakeTranscriber] = []
    capture = _capture(recorder, transcribers)

    handle = capture.start(lambda _t: None, LanguageHint.AUTO)
    capture.cancel(handle)

    assert recorder.stopped is True
    assert transcribers[0].stopped is True


def test_device_failure_stops_transcriber_and_raises() -> None:
    transcribers: list[FakeTranscriber] = []
    capture = _capture(FakeRecorder(DeviceUnavailable("busy")), transcribers)

    with pytest.raises(DeviceUnavailable):
        capture.start(lambda _t: None, LanguageHint.AUTO)
    assert transcribers[0].stopped is True


def test_unexpected_recorder_error_maps_to_device_unavailable() -> None:
    transcribers: list[FakeTranscriber] = []
    capture = _capture(FakeRecorder(OSError("PortAudio not initialized")), transcribers)

    with pytest.raises(DeviceUnavailable, match="PortAudio"):
        capture.start(lambda _t: None, LanguageHint.AUTO)


class OneSecondRecorder:
    """Queues one second of audio on start and the sentinel on stop."""

    def __init__(self) -> None:
        self.queue = None

    def start(self, audio_queue) -> None:  # noqa: ANN001
        self.queue = audio_queue
        audio_queue.put(AudioFrame(pcm16_bytes=b"\x00\x00" * 16000))

    def stop(self) -> None:
        self.queue.put(None)


class JsonReplyService:
    def complete(self, model: str, prompt: str) -> str:
        return json.dumps(
            {
                "classification": "Human-generated",
                "confidence": 0.8,
                "language": "English",
                "explanation": "Hesitations.",
            }
        )


@patch("recognizer.dashscope")
def test_default_grace_period_waits_for_slow_trailing_segment(
    mock_ds: MagicMock, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(config, "ASR_REQUEST_TIMEOUT_S", 1.0)
    monkeypatch.setattr(config, "GRACE_MARGIN_S", 0.5)
    monkeypatch.setattr(capture_module, "ASR_REQUEST_TIMEOUT_S", 1.0)

    def slow_call(**kwargs):  # noqa: ANN003, ANN202
        time.sleep(0.8)
        return {"output": {"choices": [{"message": {"content": [{"text": "um yeah so I think it's fine"}]}}]}}

    mock_ds.MultiModalConversation.call.side_effect = slow_call

    store = JsonConfigStore(path=tmp_path / "config.json")
    store.set_api_key("k")
    settings = AnalyzerSettings.from_store(store)
    done = threading.Event()
    controller = SessionController(
        capture=MicrophoneCapture(asr_api_key="asr", recorder_factory=OneSecondRecorder),
        invoker=ResilientInvoker(JsonReplyService()),
        settings=settings,
        scheduler=ThreadScheduler(),
        on_result=lambda _r: done.set(),
        on_error=lambda _e: done.set(),
    )

    controller.start_session()
    controller.stop_session()

    assert done.wait(timeout=5.0)
    assert settings.grace_period_s == 1.5
    assert controller.state == SessionState.COMPLETE
    assert controller.view.transcript == "um yeah so I think it's fine"
    assert mock_ds.MultiModalConversation.call.call_args.kwargs["timeout"] == 1.0
