"""Qt helpers that marshal work onto the GUI thread."""

from __future__ import annotations

import logging

from qtpy import QtCore

from keysync.shared.scheduling import DEFAULT_TICK_MS, Task

logger = logging.getLogger(__name__)


class CallProxy(QtCore.QObject):
    """Queue callables onto the GUI thread via Qt signals."""

    call = QtCore.Signal(object)

    def __init__(self, parent=None) -> None:  # type: ignore[no-untyped-def]
        super().__init__(parent)
        self.call.connect(self._on_call, QtCore.Qt.QueuedConnection)

    def _on_call(self, fn) -> None:  # type: ignore[no-untyped-def]
        if not callable(fn):
            return
        try:
            fn()
        except Exception:
            logger.exception("GUI-thread task failed")


class QtMainThreadScheduler:
    """``MainThreadScheduler`` backed by the Qt event loop."""

    def __init__(self, proxy: CallProxy | None = None, *, tick_ms: int = DEFAULT_TICK_MS) -> None:
        self._proxy = proxy or CallProxy()
        self._tick_ms = max(0, int(tick_ms))

    @property
    def tick_ms(self) -> int:
        return self._tick_ms

    def run_on_main_thread(self, task: Task) -> None:
        self._proxy.call.emit(task)

    def run_after_delay(self, ticks: int, task: Task) -> None:
        delay_ms = max(0, int(ticks)) * self._tick_ms
        proxy = self._proxy
        proxy.call.emit(lambda: QtCore.QTimer.singleShot(delay_ms, lambda: proxy._on_call(task)))


__all__ = ["CallProxy", "QtMainThreadScheduler"]
