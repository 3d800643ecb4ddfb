"""
MTrack: personal finance tracker with local persistence and Google Drive backup.

This package provides:

- :mod:`MTrack.core` – Local store, application state, Google Drive backup adapter and the sync coordinator.
- :mod:`MTrack.data` – pandas analytics for the dashboard, reports and search views.
- :mod:`MTrack.settings` – Settings schema, persistence and Google client configuration.
- :mod:`MTrack.status` – Error kinds and the exceptions raised by the services.
- :mod:`MTrack.log` – Logging setup and the in-memory log tank.
- :mod:`MTrack.ui` – The signal hub the presentation layer connects to.

Create a :class:`MTrack.core.context.AppContext` and call its ``initialize()`` to load the data.
"""

import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('MTrack requires Python 3.11 or higher.')

__version__ = '0.1.0'
__description__ = 'MTrack: personal finance tracker with Google Drive backup.'

from .log import log

log.setup_logging()
