"""Running transcript buffer fed by the speech-to-text collaborator."""

from __future__ import annotations


class TranscriptAccumulator:
    def __init__(self) -> None:
        self._buffer = ""
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def append(self, fragment: str) -> None:
        if self._frozen:
            raise RuntimeError("transcript is frozen")
        self._buffer += fragment + " "

    def snapshot(self) -> str:
        return self._buffer.strip()

    def freeze(self) -> None:
        self._frozen = True

    def reset(self) -> None:
        self._buffer = ""
        self._frozen = False
