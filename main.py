"""Application entrypoint."""

from __future__ import annotations

import logging
import sys

from capture import MicrophoneCapture
from config import AnalyzerSettings, JsonConfigStore
from errors import CONFIGURATION_MISSING, ERROR_MESSAGES
from hotkey import PushToTalkHotkey
from inference import OpenAIInferenceService
from invoker import ResilientInvoker
from models import AnalysisResult, ClassifiedError, LanguageHint, SessionState
from overlay import OverlayWindow
from session_controller import SessionController

try:
    from PySide6.QtCore import QObject, Signal, QSize
    from PySide6.QtGui import QAction, QActionGroup, QIcon, QPixmap, QPainter, QColor, QBrush
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_COLORS = {
    SessionState.IDLE: "#888888",
    SessionState.RECORDING: "#FF4444",
    SessionState.AWAITING_TRANSCRIPT: "#4477FF",
    SessionState.INVOKING: "#4477FF",
    SessionState.COMPLETE: "#44BB66",
    SessionState.FAILED: "#FF8800",
}

TOOLTIPS = {
    SessionState.IDLE: "Voice Analyzer — Ready",
    SessionState.RECORDING: "Voice Analyzer — Recording...",
    SessionState.AWAITING_TRANSCRIPT: "Voice Analyzer — Finishing transcript...",
    SessionState.INVOKING: "Voice Analyzer — Analyzing...",
    SessionState.COMPLETE: "Voice Analyzer — Done",
    SessionState.FAILED: "Voice Analyzer — Failed",
}


class UIBridge(QObject):
    transcript_signal = Signal(str)
    result_signal = Signal(object)
    error_signal = Signal(object)
    state_signal = Signal(str, str)  # from_state, to_state


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        self.language_hint = self.config_store.get_language_hint()
        self.overlay = OverlayWindow()
        self.ui = UIBridge()
        self.ui.transcript_signal.connect(self._on_transcript_ui)
        self.ui.result_signal.connect(self._on_result_ui)
        self.ui.error_signal.connect(self._on_error_ui)
        self.ui.state_signal.connect(self._on_state_change_ui)

        settings = AnalyzerSettings.from_store(self.config_store)
        self.controller = SessionController(
            capture=MicrophoneCapture(asr_api_key=self.config_store.get_asr_api_key()),
            invoker=self._build_invoker(settings),
            settings=settings,
            on_state_change=self._on_state_change,
            on_transcript=self.ui.transcript_signal.emit,
            on_result=self.ui.result_signal.emit,
            on_error=self.ui.error_signal.emit,
        )
        self.hotkey = PushToTalkHotkey(hotkey_name=self.config_store.get_hotkey())

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_COLORS[SessionState.IDLE]))
        self.tray.setToolTip(TOOLTIPS[SessionState.IDLE])
        self._setup_menu()
        self.tray.show()

    @staticmethod
    def _build_invoker(settings: AnalyzerSettings) -> ResilientInvoker:
        service = OpenAIInferenceService(
            api_key=settings.api_key,
            base_url=settings.base_url,
            request_timeout_s=settings.request_timeout_s,
        )
        return ResilientInvoker(service)

    def _setup_menu(self) -> None:
        menu = QMenu()

        reset_action = QAction("New Analysis", menu)
        reset_action.triggered.connect(self.controller.reset_session)
        menu.addAction(reset_action)

        language_menu = menu.addMenu("Detection Language")
        group = QActionGroup(language_menu)
        group.setExclusive(True)
        for hint in LanguageHint:
            action = QAction(hint.value, language_menu, checkable=True)
            action.setChecked(hint is self.language_hint)
            action.triggered.connect(lambda _checked=False, h=hint: self._set_language(h))
            group.addAction(action)
            language_menu.addAction(action)

        menu.addSeparator()
        api_action = QAction("Set Gemini API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        asr_action = QAction("Set Speech API Key", menu)
        asr_action.triggered.connect(self._set_asr_api_key)
        menu.addAction(asr_action)

        hotkey_action = QAction("Set Hotkey", menu)
        hotkey_action.triggered.connect(self._set_hotkey)
        menu.addAction(hotkey_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _set_language(self, hint: LanguageHint) -> None:
        self.language_hint = hint
        self.config_store.set_language_hint(hint)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "Gemini API Key")
        if not ok:
            return
        self.config_store.set_api_key(value.strip())
        settings = AnalyzerSettings.from_store(self.config_store)
        self.controller = self._rebuild_controller(settings)
        QMessageBox.information(None, "Saved", "API Key saved and applied.")

    def _set_asr_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_asr_api_key(value.strip())
        self.controller = self._rebuild_controller(self.controller.settings)
        QMessageBox.information(None, "Saved", "Speech API Key saved and applied.")

    def _rebuild_controller(self, settings: AnalyzerSettings) -> SessionController:
        self.controller.reset_session()
        return SessionController(
            capture=MicrophoneCapture(asr_api_key=self.config_store.get_asr_api_key()),
            invoker=self._build_invoker(settings),
            settings=settings,
            on_state_change=self._on_state_change,
            on_transcript=self.ui.transcript_signal.emit,
            on_result=self.ui.result_signal.emit,
            on_error=self.ui.error_signal.emit,
        )

    def _set_hotkey(self) -> None:
        value, ok = QInputDialog.getText(
            None, "Hotkey", "Use pynput key format, e.g. Key.alt_l"
        )
        if not ok or not value:
            return
        self.config_store.set_hotkey(value)
        QMessageBox.information(None, "Saved", "Hotkey saved. Restart app to apply.")

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_transcript_ui(self, text: str) -> None:
        self.overlay.set_text(f"🎙️ {text}")

    def _on_result_ui(self, result: AnalysisResult) -> None:
        self.overlay.show_result(result)

    def _on_error_ui(self, error: ClassifiedError) -> None:
        self.overlay.show_error(error)

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        state = SessionState(to_state)
        self.tray.setIcon(_create_icon(ICON_COLORS[state]))
        self.tray.setToolTip(TOOLTIPS[state])
        if state == SessionState.RECORDING:
            self.overlay.set_text("🎙️ Recording... Speak naturally.")
        elif state == SessionState.INVOKING:
            self.overlay.set_text("Analyzing voice patterns...")
        elif state == SessionState.IDLE:
            self.overlay.hide_with_delay(400)

    # ------------------------------------------------------------------
    # Hotkey handlers
    # ------------------------------------------------------------------

    def _on_hotkey_press(self) -> None:
        if self.controller.state in (SessionState.COMPLETE, SessionState.FAILED):
            self.controller.reset_session()
        self.controller.start_session(self.language_hint)

    def _on_hotkey_release(self) -> None:
        self.controller.stop_session()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        if not self.controller.settings.configured:
            self.overlay.show_error(ERROR_MESSAGES[CONFIGURATION_MISSING])
        try:
            self.hotkey.start(
                on_press=self._on_hotkey_press,
                on_release=self._on_hotkey_release,
            )
        except Exception as exc:
            logger.error("Hotkey disabled: %s", exc)
            self.overlay.show_error(f"Hotkey disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.reset_session()
        self.app.quit()


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
