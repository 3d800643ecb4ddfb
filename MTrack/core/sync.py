"""Sync coordinator between the local store and the Google Drive backup.

The coordinator is the only component that talks to :class:`~MTrack.core.drive.DriveBackupAPI`.
Every remote call runs on an :class:`AsyncWorker` thread while the calling thread spins
a local ``QEventLoop``, so the UI keeps painting during uploads. Because events are
processed during that loop, a second push or pull could be requested while one is in
flight; the ``is_syncing`` flag rejects it.

Local edits reach the coordinator through the state store's change signals. While
connected, each change restarts a debounce timer and a single push runs once the edits
have settled.
"""
import logging
from typing import Any, Callable, Optional

from PySide6 import QtCore

from . import models
from .drive import DriveBackupAPI
from .scheduler import QtScheduler, TimerHandle
from ..status import status


class AsyncWorker(QtCore.QThread):
    """
    Worker thread running one blocking function.

    Signals:
        resultReady (object): Emitted with the function's result on success.
        errorOccurred (object): Emitted with the exception on failure.
    """
    resultReady = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(object)

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self.func = func
        self.args = args
        self.kwargs = kwargs
        self.result: Any = None
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            self.result = self.func(*self.args, **self.kwargs)
            self.resultReady.emit(self.result)
        except Exception as ex:
            self.error = ex
            self.errorOccurred.emit(ex)


def start_asynchronous(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """
    Run func on a worker thread and wait for it in a local event loop.

    Returns:
        The result of the function.

    Raises:
        Exception: Whatever func raised, re-raised on the calling thread.
    """
    worker = AsyncWorker(func, *args, **kwargs)
    loop = QtCore.QEventLoop()
    # Queued so a worker that finishes before exec() still ends the loop
    worker.finished.connect(loop.quit, QtCore.Qt.QueuedConnection)

    worker.start()
    loop.exec()
    worker.wait()

    if worker.error is not None:
        raise worker.error
    return worker.result


class SyncAPI(QtCore.QObject):
    """Push and pull the full dataset to and from Google Drive.

    Signals:
        connectionChanged (bool): The user connected or disconnected the backup.
        syncingChanged (bool): A push or pull started or finished.
        lastSyncChanged (object): New last sync timestamp in epoch milliseconds.
        syncFinished (str, bool): 'push' or 'pull', and whether it succeeded.
    """
    connectionChanged = QtCore.Signal(bool)
    syncingChanged = QtCore.Signal(bool)
    lastSyncChanged = QtCore.Signal(object)
    syncFinished = QtCore.Signal(str, bool)

    def __init__(self, settings, store, state_store=None, drive: Optional[DriveBackupAPI] = None,
                 scheduler=None, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.settings = settings
        self.store = store
        self.state_store = state_store
        self.drive = drive or DriveBackupAPI(settings)
        self.scheduler = scheduler or QtScheduler(self)

        self._is_connected = False
        self._is_syncing = False
        self._last_sync: Optional[int] = store.get_last_sync()
        self._pending_push: Optional[TimerHandle] = None
        self._disconnect_requested = False

        self._connect_signals()

    def _connect_signals(self) -> None:
        if self.state_store is None:
            return
        self.state_store.transactionsChanged.connect(self.schedule_push)
        self.state_store.banksChanged.connect(self.schedule_push)

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    @property
    def last_sync(self) -> Optional[int]:
        return self._last_sync

    @property
    def is_available(self) -> bool:
        return self.drive.is_available()

    @property
    def has_pending_push(self) -> bool:
        return self._pending_push is not None

    @property
    def state(self) -> models.SyncState:
        return models.SyncState(
            last_sync=self._last_sync,
            is_connected=self._is_connected,
            is_syncing=self._is_syncing,
        )

    def _set_connected(self, value: bool) -> None:
        if self._is_connected == value:
            return
        self._is_connected = value
        logging.debug(f'Google Drive connected: {value}')
        self.connectionChanged.emit(value)

    def _set_syncing(self, value: bool) -> None:
        if self._is_syncing == value:
            return
        self._is_syncing = value
        self.syncingChanged.emit(value)

    def _publish_last_sync(self, timestamp: int) -> None:
        self._last_sync = timestamp
        self.lastSyncChanged.emit(timestamp)

    def _begin_sync(self, name: str) -> bool:
        if self._is_syncing:
            logging.info(f'A sync is already in progress, {name} skipped.')
            return False
        self._set_syncing(True)
        return True

    def _end_sync(self) -> None:
        self._set_syncing(False)
        if self._disconnect_requested:
            self._disconnect_requested = False
            self._sign_out()

    def _cancel_pending_push(self) -> None:
        if self._pending_push is not None:
            self._pending_push.cancel()
            self._pending_push = None

    def _ensure_signed_in(self) -> None:
        if not self.drive.is_signed_in():
            start_asynchronous(self.drive.sign_in)

    def _sign_out(self) -> None:
        if not self.drive.is_available():
            return
        try:
            start_asynchronous(self.drive.sign_out)
        except status.BaseStatusException as ex:
            logging.warning(f'Sign out did not complete cleanly: {ex}')

    def check_status(self) -> bool:
        """Initialize the backup adapter and restore a cached session.

        Never raises.

        Returns:
            bool: True if a cached session was restored.
        """
        try:
            self.drive.init()
            connected = self.drive.restore_session()
        except status.BaseStatusException as ex:
            logging.warning(f'Google Drive backup unavailable: {ex}')
            connected = False
        self._set_connected(connected)
        return connected

    def connect_drive(self) -> bool:
        """Sign in and upload the current data.

        The coordinator only becomes connected when both steps succeed.

        Returns:
            bool: False if another sync was in progress and nothing was done.
        """
        if not self._begin_sync('connect'):
            return False
        try:
            self.drive.init()
            start_asynchronous(self.drive.sign_in)
            start_asynchronous(self.drive.upload_to_drive, self.store.export_data())
        except Exception:
            self._set_connected(False)
            self.syncFinished.emit('push', False)
            raise
        finally:
            # A disconnect requested mid-upload wins over the connect
            cancelled = self._disconnect_requested
            self._end_sync()

        now = models.now_ms()
        self.store.set_last_sync(now)
        self._publish_last_sync(now)
        self.syncFinished.emit('push', True)
        if cancelled:
            logging.info('Disconnected while connecting; staying disconnected.')
            return True

        self._set_connected(True)

        from ..ui.actions import signals
        signals.notification.emit('Connected to Google Drive.')
        return True

    def disconnect_drive(self) -> None:
        """Sign out of Google Drive.

        The coordinator is disconnected afterwards even if the sign out fails. If a
        sync is in flight the sign out runs once it finishes.
        """
        self._cancel_pending_push()
        self._set_connected(False)
        if self._is_syncing:
            self._disconnect_requested = True
            return
        self._sign_out()

        from ..ui.actions import signals
        signals.notification.emit('Disconnected from Google Drive.')

    def push_to_remote(self) -> bool:
        """Upload the local snapshot, replacing the remote backup.

        Returns:
            bool: True if uploaded, False if another sync was in progress.

        Raises:
            status.AuthError, status.NetworkError: If the upload fails. Local data is kept.
        """
        if not self._begin_sync('push'):
            return False
        try:
            self._ensure_signed_in()
            snapshot = self.store.export_data()
            start_asynchronous(self.drive.upload_to_drive, snapshot)
        except Exception:
            self.syncFinished.emit('push', False)
            raise
        finally:
            self._end_sync()

        now = models.now_ms()
        self.store.set_last_sync(now)
        self._publish_last_sync(now)
        self.syncFinished.emit('push', True)
        logging.info(f'Pushed {len(snapshot.transactions)} transaction(s) to Google Drive.')
        return True

    def pull_from_remote(self) -> bool:
        """Replace local data with the remote backup.

        Returns:
            bool: True if restored, False if another sync was in progress.

        Raises:
            status.NotFoundError: If there is no backup. Local data is unchanged.
            status.StorageError: If the local store rejects the snapshot.
        """
        if not self._begin_sync('pull'):
            return False
        try:
            self._ensure_signed_in()
            snapshot = start_asynchronous(self.drive.download_from_drive)
            self.store.import_data(snapshot)
            if self.state_store is not None:
                self.state_store.reload()
        except Exception:
            self.syncFinished.emit('pull', False)
            raise
        finally:
            self._end_sync()

        # Reloading emits change signals; the pulled data must not be pushed back.
        self._cancel_pending_push()
        self._publish_last_sync(self.store.get_last_sync() or models.now_ms())
        self.syncFinished.emit('pull', True)

        from ..ui.actions import signals
        signals.notification.emit('Data restored from Google Drive.')
        return True

    def schedule_push(self, *args) -> None:
        """Restart the debounce timer for an automatic push."""
        if not self._is_connected:
            return
        config = self.settings.get_section('sync')
        if not config['auto_sync']:
            return
        self._cancel_pending_push()
        self._pending_push = self.scheduler.schedule(config['debounce_ms'], self._on_debounce_timeout)

    def _on_debounce_timeout(self) -> None:
        self._pending_push = None
        if not self._is_connected:
            return
        if self._is_syncing:
            logging.debug('Sync in progress, automatic push rescheduled.')
            self.schedule_push()
            return

        from ..ui.actions import signals
        try:
            if not self.drive.is_signed_in():
                raise status.AuthError('Google session expired. Reconnect to resume backups.')
            self.push_to_remote()
        except status.AuthError as ex:
            logging.error(f'Automatic backup failed: {ex}')
            self._set_connected(False)
        except status.BaseStatusException as ex:
            logging.error(f'Automatic backup failed: {ex}')
        except Exception as ex:
            logging.exception(f'Automatic backup failed: {ex}')
            signals.error.emit(f'Automatic backup failed: {ex}')
