"""
Local key-value store for transactions, banks and the last sync timestamp.

The store is a single SQLite table of string keys and JSON string values. Reads never
raise: missing or corrupt values degrade to empty defaults and are logged. Writes of
transactions and banks raise :class:`~MTrack.status.status.StorageError` so callers
never commit in-memory state the disk did not accept.
"""

import enum
import json
import logging
import pathlib
import sqlite3
from typing import Dict, Iterable, List, Optional

from . import models
from ..status import status

TRANSACTIONS_KEY = 'm-track-transactions'
BANKS_KEY = 'm-track-banks'
LAST_SYNC_KEY = 'm-track-last-sync'

DATA_KEYS = (TRANSACTIONS_KEY, BANKS_KEY, LAST_SYNC_KEY)


class Table(enum.StrEnum):
    """Enum for database tables."""
    KeyValue = 'keyvalue'


class QuotaExceededError(Exception):
    """Raised internally when a write would exceed the storage quota."""
    pass


def _decode_list(key: str, raw: Optional[str], factory) -> list:
    if raw is None:
        return []
    try:
        items = json.loads(raw)
        if not isinstance(items, list):
            raise ValueError(f'expected a list, got {type(items).__name__}')
        return [factory(item) for item in items]
    except (ValueError, TypeError) as ex:
        logging.error(f'Error reading "{key}" from the local store, treating it as empty: {ex}')
        return []


def _decode_timestamp(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw)
    except (ValueError, TypeError):
        logging.warning(f'Invalid last sync timestamp in the local store: {raw!r}')
        return None


class LocalStore:
    """Durable key-value persistence for the user's dataset."""

    def __init__(self, path: pathlib.Path, quota_bytes: Optional[int] = None) -> None:
        """
        Args:
            path: SQLite database file.
            quota_bytes: Maximum total size of stored keys and values. None disables the check.
        """
        self.path = pathlib.Path(path)
        self.quota_bytes = quota_bytes
        self._initialize_schema_if_needed()

    def connection(self) -> sqlite3.Connection:
        """Return a new connection to the store database."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path), timeout=2.0)
        conn.set_progress_handler(lambda: logging.debug('Waiting on DB lock…'), 1000)
        return conn

    def _initialize_schema_if_needed(self, _retry: bool = True) -> None:
        """
        Ensures the key-value table exists. A file that is not a readable database is
        removed and recreated.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(
                f'CREATE TABLE IF NOT EXISTS {Table.KeyValue.value} '
                f'("key" TEXT PRIMARY KEY, "value" TEXT NOT NULL)'
            )
            conn.commit()
        except sqlite3.Error as ex:
            logging.error(f'SQLite error during store initialization: {ex}', exc_info=True)
            if conn:
                conn.close()
                conn = None
            if not _retry:
                raise status.StorageError(f'Unrecoverable local store error: {ex}') from ex
            logging.warning(f'Removing unreadable local store at {self.path} and starting empty.')
            try:
                self.path.unlink(missing_ok=True)
            except OSError as os_ex:
                raise status.StorageError(f'Could not remove unreadable store {self.path}: {os_ex}') from os_ex
            self._initialize_schema_if_needed(_retry=False)
        finally:
            if conn:
                conn.close()

    def _read(self, keys: Iterable[str]) -> Dict[str, str]:
        keys = list(keys)
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            placeholders = ','.join('?' * len(keys))
            rows = conn.execute(
                f'SELECT "key", "value" FROM {Table.KeyValue.value} WHERE "key" IN ({placeholders})',
                keys
            ).fetchall()
            return {k: v for k, v in rows}
        except sqlite3.Error as ex:
            logging.error(f'Error reading {keys} from the local store: {ex}')
            return {}
        finally:
            if conn:
                conn.close()

    def _write(self, items: Dict[str, str]) -> None:
        """Write all items in a single transaction.

        Raises:
            sqlite3.Error: If the database rejects the write.
            QuotaExceededError: If the stored data would exceed the quota.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            if self.quota_bytes is not None:
                placeholders = ','.join('?' * len(items))
                row = conn.execute(
                    f'SELECT COALESCE(SUM(LENGTH(CAST("key" AS BLOB)) + LENGTH(CAST("value" AS BLOB))), 0) '
                    f'FROM {Table.KeyValue.value} WHERE "key" NOT IN ({placeholders})',
                    list(items.keys())
                ).fetchone()
                size = row[0] + sum(len(k.encode('utf-8')) + len(v.encode('utf-8')) for k, v in items.items())
                if size > self.quota_bytes:
                    raise QuotaExceededError(f'{size} bytes would exceed the {self.quota_bytes} byte quota')

            conn.executemany(
                f'INSERT OR REPLACE INTO {Table.KeyValue.value} ("key", "value") VALUES (?, ?)',
                list(items.items())
            )
            conn.commit()
        except (sqlite3.Error, QuotaExceededError):
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

    def get_item(self, key: str) -> Optional[str]:
        """Return the raw string stored under key, or None."""
        return self._read([key]).get(key)

    def set_item(self, key: str, value: str) -> None:
        """Store a raw string under key.

        Raises:
            status.StorageError: If the write is rejected.
        """
        try:
            self._write({key: value})
        except (sqlite3.Error, QuotaExceededError) as ex:
            raise status.StorageError(f'Could not write "{key}": {ex}') from ex

    def remove_item(self, key: str) -> None:
        """Remove key from the store. Missing keys are ignored."""
        self._delete([key])

    def _delete(self, keys: List[str]) -> None:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            placeholders = ','.join('?' * len(keys))
            conn.execute(f'DELETE FROM {Table.KeyValue.value} WHERE "key" IN ({placeholders})', keys)
            conn.commit()
        except sqlite3.Error as ex:
            if conn:
                conn.rollback()
            raise status.StorageError(f'Could not remove {keys}: {ex}') from ex
        finally:
            if conn:
                conn.close()

    def get_transactions(self) -> List[models.Transaction]:
        """Return all stored transactions, or an empty list if absent or corrupt."""
        return _decode_list(TRANSACTIONS_KEY, self.get_item(TRANSACTIONS_KEY), models.Transaction.from_dict)

    def save_transactions(self, transactions: List[models.Transaction]) -> None:
        """Replace the stored transactions.

        Raises:
            status.StorageError: If the write is rejected. Nothing is written in that case.
        """
        payload = json.dumps([t.to_dict() for t in transactions])
        try:
            self._write({TRANSACTIONS_KEY: payload})
        except (sqlite3.Error, QuotaExceededError) as ex:
            raise status.StorageError(f'Failed to save transactions: {ex}') from ex
        logging.debug(f'Saved {len(transactions)} transaction(s).')

    def get_banks(self) -> List[models.Bank]:
        """Return all stored banks, or an empty list if absent or corrupt."""
        return _decode_list(BANKS_KEY, self.get_item(BANKS_KEY), models.Bank.from_dict)

    def save_banks(self, banks: List[models.Bank]) -> None:
        """Replace the stored banks.

        Raises:
            status.StorageError: If the write is rejected. Nothing is written in that case.
        """
        payload = json.dumps([b.to_dict() for b in banks])
        try:
            self._write({BANKS_KEY: payload})
        except (sqlite3.Error, QuotaExceededError) as ex:
            raise status.StorageError(f'Failed to save banks: {ex}') from ex
        logging.debug(f'Saved {len(banks)} bank(s).')

    def get_last_sync(self) -> Optional[int]:
        """Return the last successful sync as epoch milliseconds, or None."""
        return _decode_timestamp(self.get_item(LAST_SYNC_KEY))

    def set_last_sync(self, timestamp: int) -> None:
        """Persist the last sync timestamp. Failures are logged, not raised."""
        try:
            self._write({LAST_SYNC_KEY: str(int(timestamp))})
        except (sqlite3.Error, QuotaExceededError) as ex:
            logging.warning(f'Error saving last sync timestamp: {ex}')

    def export_data(self) -> models.Snapshot:
        """Read transactions, banks and the last sync time together."""
        raw = self._read(DATA_KEYS)
        return models.Snapshot(
            transactions=_decode_list(TRANSACTIONS_KEY, raw.get(TRANSACTIONS_KEY), models.Transaction.from_dict),
            banks=_decode_list(BANKS_KEY, raw.get(BANKS_KEY), models.Bank.from_dict),
            last_sync=_decode_timestamp(raw.get(LAST_SYNC_KEY)),
        )

    def import_data(self, snapshot: models.Snapshot) -> None:
        """Overwrite transactions and banks with the snapshot, then stamp the sync time.

        Local data is replaced, never merged.

        Raises:
            status.StorageError: If the write is rejected. Local data is left as it was.
        """
        items = {
            TRANSACTIONS_KEY: json.dumps([t.to_dict() for t in snapshot.transactions]),
            BANKS_KEY: json.dumps([b.to_dict() for b in snapshot.banks]),
        }
        try:
            self._write(items)
        except (sqlite3.Error, QuotaExceededError) as ex:
            raise status.StorageError(f'Failed to import data: {ex}') from ex
        logging.info(
            f'Imported {len(snapshot.transactions)} transaction(s) and {len(snapshot.banks)} bank(s).'
        )
        self.set_last_sync(models.now_ms())

    def clear_all(self) -> None:
        """Remove transactions, banks and the last sync timestamp."""
        self._delete(list(DATA_KEYS))
        logging.info('Local store cleared.')
