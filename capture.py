"""Microphone + speech-to-text capture collaborator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from queue import Queue
from typing import Callable, Optional

from config import ASR_REQUEST_TIMEOUT_S
from errors import DeviceUnavailable
from interfaces import FragmentCallback, Recorder, Transcriber
from models import AudioFrame, LanguageHint
from recognizer import DashscopeTranscriber
from recorder import SoundDeviceRecorder

logger = logging.getLogger(__name__)

RecorderFactory = Callable[[], Recorder]
TranscriberFactory = Callable[[LanguageHint], Transcriber]


@dataclass
class CaptureHandle:
    recorder: Recorder
    transcriber: Transcriber
    audio_queue: Queue


class MicrophoneCapture:
    """
    Owns one microphone stream and one transcriber per recording.

    ``stop`` releases the microphone right away; the transcriber keeps
    running until it has flushed the audio already captured, so trailing
    fragments can still arrive after the stream is closed. ``cancel`` closes
    the stream and drops whatever has not been recognized yet.
    """

    def __init__(
        self,
        asr_api_key: str = "",
        recorder_factory: Optional[RecorderFactory] = None,
        transcriber_factory: Optional[TranscriberFactory] = None,
        queue_maxsize: int = 200,
    ) -> None:
        self._recorder_factory = recorder_factory or SoundDeviceRecorder
        self._transcriber_factory = transcriber_factory or (
            lambda hint: DashscopeTranscriber(
                api_key=asr_api_key,
                language=hint.asr_code,
                request_timeout_s=ASR_REQUEST_TIMEOUT_S,
            )
        )
        self._queue_maxsize = queue_maxsize

    def start(self, on_fragment: FragmentCallback, language_hint: LanguageHint) -> CaptureHandle:
        audio_queue: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
        recorder = self._recorder_factory()
        transcriber = self._transcriber_factory(language_hint)
        transcriber.start(audio_queue, on_fragment)
        try:
            recorder.start(audio_queue)
        except DeviceUnavailable:
            transcriber.stop()
            raise
        except Exception as exc:
            transcriber.stop()
            raise DeviceUnavailable(str(exc)) from exc
        logger.debug("Capture started (language=%s)", language_hint.value)
        return CaptureHandle(recorder=recorder, transcriber=transcriber, audio_queue=audio_queue)

    def stop(self, handle: CaptureHandle) -> None:
        handle.recorder.stop()
        logger.debug("Capture stopped")

    def cancel(self, handle: CaptureHandle) -> None:
        handle.transcriber.stop()
        handle.recorder.stop()
        logger.debug("Capture cancelled")
