"""Application-wide Qt signals shared between the core and the presentation layer.

This module provides:
    - Signals: the notification hub the UI connects to for errors, transient
      success messages, configuration changes and log display requests.
"""
import logging

from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for configuration, notification and UI events."""
    configSectionChanged = QtCore.Signal(str)

    themeChanged = QtCore.Signal(str)
    monthChanged = QtCore.Signal(object)

    showLogs = QtCore.Signal()

    # Transient user-facing messages
    error = QtCore.Signal(str)
    notification = QtCore.Signal(str)

    def __init__(self):
        super().__init__()
        self._connect_signals()

    def _connect_signals(self):
        self.notification.connect(lambda msg: logging.info(f'Notification: {msg}'))


signals = Signals()
