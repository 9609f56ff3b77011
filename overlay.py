"""Overlay window showing the live transcript and the analysis verdict."""

from __future__ import annotations

from models import AnalysisResult, Classification, ClassifiedError

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtWidgets import QApplication, QLabel, QWidget, QVBoxLayout
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QWidget = object  # type: ignore
    QVBoxLayout = object  # type: ignore

_BASE_STYLE = "font-size: 16px; padding: 16px; border-radius: 12px;"
STYLE_NEUTRAL = "color: white; background: rgba(0,0,0,190);" + _BASE_STYLE
STYLE_ERROR = "color: #FF6B6B; background: rgba(0,0,0,210);" + _BASE_STYLE
STYLE_HUMAN = "color: #7CFC9A; background: rgba(0,0,0,210);" + _BASE_STYLE
STYLE_AI = "color: #FFB347; background: rgba(0,0,0,210);" + _BASE_STYLE


def format_result(result: AnalysisResult) -> str:
    """Plain-text summary of a verdict."""
    return (
        f"{result.classification.value} ({result.confidence:.0%} confidence)\n"
        f"Language: {result.language.value}\n\n"
        f"{result.explanation}"
    )


class OverlayWindow(QWidget):
    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(
            Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool
        )
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setFixedWidth(600)

        self._label = QLabel("")
        self._label.setWordWrap(True)
        self._label.setStyleSheet(STYLE_NEUTRAL)

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._label)
        self.setLayout(layout)

        self._hide_timer: QTimer | None = None

    def _center_top(self) -> None:
        """Position the window at the top center of the primary screen."""
        if QApplication is None:
            return
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        x = geom.x() + (geom.width() - self.width()) // 2
        y = geom.y() + 40
        self.move(x, y)

    def set_text(self, text: str, style: str = STYLE_NEUTRAL) -> None:
        """Update overlay text and show at screen top center."""
        self._cancel_hide_timer()
        self._label.setStyleSheet(style)
        self._label.setText(text)
        self._center_top()
        self.show()

    def show_result(self, result: AnalysisResult, hide_after_ms: int = 15000) -> None:
        style = STYLE_HUMAN if result.classification is Classification.HUMAN_GENERATED else STYLE_AI
        self.set_text(format_result(result), style)
        self.hide_with_delay(hide_after_ms)

    def show_error(self, error: ClassifiedError | str, hide_after_ms: int = 5000) -> None:
        """Show an error message and auto-hide after given ms."""
        message = error.message if isinstance(error, ClassifiedError) else error
        self.set_text(f"⚠️ {message}", STYLE_ERROR)
        self.hide_with_delay(hide_after_ms)

    def hide_with_delay(self, delay_ms: int = 400) -> None:
        """Hide the overlay window after a short delay."""
        self._cancel_hide_timer()
        if QTimer is not None:
            self._hide_timer = QTimer()
            self._hide_timer.setSingleShot(True)
            self._hide_timer.timeout.connect(self.hide)
            self._hide_timer.start(delay_ms)

    def _cancel_hide_timer(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.stop()
            self._hide_timer = None
