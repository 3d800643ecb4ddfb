"""Root logger configuration for MTrack.

Everything logs through the root ``logging`` functions. :func:`setup_logging` sends
records to stdout and to a bounded in-memory :class:`TankHandler`. The UI reads the
tank for its log viewer. Qt's own warnings are routed through the same handlers.
"""
import collections
import logging
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

from ..ui.actions import signals

LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

# Oldest records are dropped first
TANK_CAPACITY = 2000

VALID_LEVELS = (
    logging.DEBUG,
    logging.INFO,
    logging.WARNING,
    logging.ERROR,
    logging.CRITICAL,
)

QT_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}


def set_logging_level(level):
    """
    Change the level of the root logger and of every installed handler.

    Raises:
        ValueError: If level is not one of VALID_LEVELS.
    """
    if not isinstance(level, int) or level not in VALID_LEVELS:
        raise ValueError(f'Invalid logging level {level!r}, expected one of {VALID_LEVELS}.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    """Log a Qt message under the 'Qt' logger. A fatal Qt message exits the process."""
    level = QT_LEVELS.get(mode, logging.WARNING)
    logging.getLogger('Qt').log(level, message.strip())
    if mode == QtMsgType.QtFatalMsg:
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=LOG_LEVEL):
    """
    Replace the root logger's handlers with MTrack's.

    Args:
        enable_stream_handler (bool): Echo records to stdout.
        enable_qt_handler (bool): Install :func:`qt_message_handler`.
        log_level (int): Level for the root logger and its handlers.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    handlers = [TankHandler()]
    if enable_stream_handler:
        handlers.insert(0, logging.StreamHandler(sys.stdout))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        root_logger.addHandler(handler)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank():
    """Return the root logger's TankHandler, or None before setup_logging() ran."""
    return next((h for h in logging.getLogger().handlers if isinstance(h, TankHandler)), None)


class TankHandler(logging.Handler):
    """
    Keeps the most recent formatted records in memory.

    Sync failures are logged from worker threads, so an ERROR or worse record asks
    the UI to open the log viewer through ``signals.showLogs``.

    Attributes:
        tank (collections.deque[tuple[int, str]]): (level, message) pairs, oldest first.
    """

    def __init__(self, capacity=TANK_CAPACITY):
        super().__init__()
        self.tank = collections.deque(maxlen=capacity)

    def emit(self, record):
        try:
            self.tank.append((record.levelno, self.format(record)))
        except Exception:
            self.handleError(record)
            return
        if record.levelno >= logging.ERROR:
            signals.showLogs.emit()

    def get_logs(self, level=logging.NOTSET):
        """Messages at or above level, oldest first."""
        return [msg for lvl, msg in self.tank if lvl >= level]

    def clear_logs(self):
        self.tank.clear()
