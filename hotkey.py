"""Push-to-talk hotkey based on pynput."""

from __future__ import annotations

import threading
from typing import Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore


class PushToTalkHotkey:
    """Calls ``on_press`` once when the key goes down and ``on_release`` when it comes up.

    Key repeat while held is swallowed, so a long recording produces a single
    start/stop pair.
    """

    def __init__(self, hotkey_name: str = "Key.alt_l") -> None:
        self._hotkey_name = hotkey_name
        self._listener: Optional[object] = None
        self._held = False
        self._lock = threading.Lock()

    def start(self, on_press: Callable[[], None], on_release: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")

        def _on_press(key: object) -> None:
            if self._matches(key) and self._set_held(True):
                on_press()

        def _on_release(key: object) -> None:
            if self._matches(key) and self._set_held(False):
                on_release()

        self._listener = keyboard.Listener(on_press=_on_press, on_release=_on_release)
        self._listener.start()

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None

    def _matches(self, key: object) -> bool:
        return str(key) == self._hotkey_name

    def _set_held(self, held: bool) -> bool:
        """Record the key state; False when it did not change."""
        with self._lock:
            if self._held == held:
                return False
            self._held = held
            return True
