"""Speech-to-text adapter using DashScope qwen3-asr-flash.

The qwen3-asr-flash model accepts complete audio (file path, URL, or base64)
rather than a live stream.  We cut the incoming PCM frames into fixed-length
segments, convert each one to a WAV payload and recognize the segments one
after another, so transcript fragments arrive in speaking order while the
operator is still talking.  Whatever audio is left when the recorder sends
its end-of-stream marker is flushed as a final segment.
"""

from __future__ import annotations

import base64
import io
import logging
import os
import threading
import wave
from queue import Empty, Queue
from typing import Callable, Optional

from models import AudioFrame

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)


def _pcm_to_wav_base64(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    """Convert raw PCM bytes to a base64-encoded WAV string."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    wav_bytes = buf.getvalue()
    return base64.b64encode(wav_bytes).decode("ascii")


class DashscopeTranscriber:
    def __init__(
        self,
        api_key: str,
        language: str = "",
        model: str = "qwen3-asr-flash",
        segment_ms: int = 3000,
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._language = language
        self._model = model
        self._segment_ms = segment_ms
        self._request_timeout_s = request_timeout_s
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._audio_queue: Optional[Queue[AudioFrame | None]] = None
        self._on_fragment: Optional[Callable[[str], None]] = None

    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_fragment: Callable[[str], None],
    ) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._audio_queue = audio_queue
        self._on_fragment = on_fragment
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Abandon recognition; pending segments are discarded."""
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        """Consume audio frames until Sentinel, recognizing full segments."""
        if self._audio_queue is None or self._on_fragment is None:
            return

        pcm = bytearray()
        sample_rate = 16000
        channels = 1

        while not self._stop_event.is_set():
            try:
                frame = self._audio_queue.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:  # Sentinel
                break
            pcm.extend(frame.pcm16_bytes)
            sample_rate = frame.sample_rate
            channels = frame.channels
            segment_bytes = sample_rate * channels * 2 * self._segment_ms // 1000
            if len(pcm) >= segment_bytes:
                self._recognize_segment(bytes(pcm), sample_rate, channels)
                pcm.clear()

        if self._stop_event.is_set() or not pcm:
            return
        self._recognize_segment(bytes(pcm), sample_rate, channels)

    def _recognize_segment(self, pcm: bytes, sample_rate: int, channels: int) -> None:
        try:
            text = self._recognize(_pcm_to_wav_base64(pcm, sample_rate, channels))
        except Exception as exc:
            logger.warning("Speech recognition failed for segment: %s", exc)
            return
        if text.strip() and not self._stop_event.is_set() and self._on_fragment:
            self._on_fragment(text.strip())

    def _recognize(self, wav_base64: str) -> str:
        """Send one WAV segment to dashscope and return the recognized text."""
        if dashscope is None:
            raise RuntimeError("dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise RuntimeError("No speech-to-text API key configured")

        asr_options: dict = {"enable_itn": False}
        if self._language:
            asr_options["language"] = self._language

        response = dashscope.MultiModalConversation.call(
            api_key=api_key,
            model=self._model,
            messages=[
                {"role": "system", "content": [{"text": ""}]},
                {"role": "user", "content": [{"audio": wav_base64}]},
            ],
            result_format="message",
            asr_options=asr_options,
            timeout=self._request_timeout_s,
        )
        status = getattr(response, "status_code", 200)
        if status != 200:
            raise RuntimeError(f"{status} {getattr(response, 'message', '')}".strip())
        return self._extract_text(response)

    def _extract_text(self, response: object) -> str:
        """Pull text from a dashscope response dict."""
        if isinstance(response, dict):
            output = response.get("output", {})
        else:
            output = getattr(response, "output", None) or {}
        choices = output.get("choices", []) if isinstance(output, dict) else []
        if not choices:
            return ""
        message = choices[0].get("message", {})
        content = message.get("content", [])
        if not content:
            return ""
        value = content[0]
        if isinstance(value, dict):
            return str(value.get("text", ""))
        return ""
