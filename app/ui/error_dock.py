import time
from datetime import datetime

from PyQt6.QtWidgets import QDockWidget, QTextEdit


class ErrorDock(QDockWidget):
    def __init__(self, repeat_window_sec: float = 2.0) -> None:
        super().__init__('Errors')
        self.setObjectName('ErrorDock')
        self._repeat_window_sec = repeat_window_sec
        self._last_message: str = ""
        self._last_message_at: float = 0.0

        self.text = QTextEdit()
        self.text.setReadOnly(True)
        self.text.setPlaceholderText('Chart and benchmark fetch errors will appear here.')
        self.setWidget(self.text)

    def append_error(self, message: str) -> bool:
        # The 1D poll retries every 15 s; collapse identical failures that arrive back to back.
        now = time.monotonic()
        if message == self._last_message and (now - self._last_message_at) < self._repeat_window_sec:
            return False
        self._last_message = message
        self._last_message_at = now
        self.text.append(f'[{datetime.now():%H:%M:%S}] {message}')
        return True

    def clear(self) -> None:
        self.text.clear()
        self._last_message = ""
        self._last_message_at = 0.0
