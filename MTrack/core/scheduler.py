"""Cancellable one-shot timers used to debounce automatic backups."""
import logging
from typing import Callable, Optional

from PySide6 import QtCore


class TimerHandle:
    """A scheduled call that can be cancelled before it fires."""

    def __init__(self, timer: QtCore.QTimer) -> None:
        self._timer = timer

    @property
    def active(self) -> bool:
        return self._timer is not None and self._timer.isActive()

    def cancel(self) -> None:
        if self._timer is None:
            return
        self._timer.stop()
        self._timer.deleteLater()
        self._timer = None


class QtScheduler:
    """Schedules callbacks on the Qt event loop of the calling thread."""

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        self.parent = parent

    def schedule(self, delay_ms: int, fn: Callable[[], None]) -> TimerHandle:
        """Call fn once after delay_ms milliseconds."""
        timer = QtCore.QTimer(self.parent)
        timer.setSingleShot(True)
        timer.setInterval(max(0, int(delay_ms)))
        handle = TimerHandle(timer)

        def _fire() -> None:
            handle.cancel()
            fn()

        timer.timeout.connect(_fire)
        timer.start()
        logging.debug(f'Scheduled call in {delay_ms}ms.')
        return handle
