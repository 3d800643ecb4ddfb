"""Google Drive backup adapter.

Stores the whole dataset as a single JSON file in the application-private
``appDataFolder`` of the user's Drive. All calls block; the sync coordinator runs
them on a worker thread.

States:

    Uninitialized --init()--> Ready --sign_in()--> Authenticated --sign_out()--> Ready

A missing Google client configuration moves the adapter to ``Disabled`` for the rest
of the process.
"""

import contextlib
import enum
import io
import json
import logging
import socket
import ssl
from typing import Any, Dict, Iterator, Optional

import google.auth.exceptions
import google_auth_httplib2
import google_auth_oauthlib.flow
import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from . import models
from .auth import AuthManager
from ..status import status

APP_DATA_FOLDER = 'appDataFolder'
MIME_TYPE = 'application/json'
FILE_FIELDS = 'id, name, mimeType, modifiedTime'


class AdapterState(enum.StrEnum):
    Uninitialized = enum.auto()
    Ready = enum.auto()
    Authenticated = enum.auto()
    Disabled = enum.auto()


def _to_drive_file(item: Dict[str, Any]) -> models.DriveFile:
    return models.DriveFile(
        id=item['id'],
        name=item.get('name', ''),
        mime_type=item.get('mimeType', ''),
        modified_time=item.get('modifiedTime'),
    )


class DriveBackupAPI:
    """Reads and writes the backup file in Google Drive."""

    def __init__(self, settings, auth: Optional[AuthManager] = None) -> None:
        self.settings = settings
        self.auth = auth or AuthManager(settings)
        self.state = AdapterState.Uninitialized
        self._has_client = False
        self._service: Any = None

    @property
    def filename(self) -> str:
        return self.settings.get_section('sync')['backup_filename']

    @property
    def http_timeout(self) -> int:
        return self.settings.get_section('sync')['http_timeout']

    def init(self) -> None:
        """
        Load the client configuration. Calling it again has no effect.

        Raises:
            status.InitError: If a client configuration exists but is invalid. The
                adapter is disabled.
        """
        if self.state != AdapterState.Uninitialized:
            return

        try:
            config = self.settings.client_config()
            if config:
                google_auth_oauthlib.flow.InstalledAppFlow.from_client_config(config, scopes=self.auth.scopes)
        except (status.ConfigInvalidError, ValueError) as ex:
            # Configured but unusable
            self._has_client = True
            self.state = AdapterState.Disabled
            raise status.InitError(f'Invalid Google client configuration: {ex}') from ex

        if not config:
            logging.info('No Google client configured; Drive backup is disabled.')
            self.state = AdapterState.Disabled
            return

        self._has_client = True
        self.state = AdapterState.Ready
        logging.debug('Drive backup adapter initialized.')

    def is_available(self) -> bool:
        return self.state in (AdapterState.Ready, AdapterState.Authenticated)

    def is_signed_in(self) -> bool:
        """Return True if a token is cached. Makes no network call."""
        return self.state == AdapterState.Authenticated and self.auth.has_token()

    def restore_session(self) -> bool:
        """
        Become Authenticated from cached credentials only.

        Returns:
            bool: True if a cached session was found.
        """
        self.init()
        if not self.is_available():
            return False
        if self.auth.load_cached(refresh=False) is None:
            return False
        self.state = AdapterState.Authenticated
        logging.debug('Restored cached Google session.')
        return True

    def sign_in(self) -> None:
        """
        Sign in, reusing cached credentials when possible.

        Raises:
            status.ClientNotConfiguredError: If no Google client is configured.
            status.InitError: If the adapter could not be initialized.
            status.AuthError: If the consent flow fails.
        """
        self.init()
        if not self._has_client:
            raise status.ClientNotConfiguredError
        if not self.is_available():
            raise status.InitError('Drive backup adapter is disabled.')

        if self.is_signed_in():
            return
        if self.auth.load_cached() is None:
            self.auth.authenticate()
        self._service = None
        self.state = AdapterState.Authenticated

    def sign_out(self) -> None:
        """Revoke and forget the cached token."""
        self.auth.revoke()
        self._service = None
        if self.state == AdapterState.Authenticated:
            self.state = AdapterState.Ready
        logging.info('Signed out of Google.')

    def _drop_session(self) -> None:
        self.auth.clear()
        self._service = None
        if self.state == AdapterState.Authenticated:
            self.state = AdapterState.Ready

    def get_service(self) -> Any:
        """
        Builds (or returns the cached) Drive v3 service client.

        Raises:
            status.AuthError: If not signed in.
        """
        if not self.is_signed_in():
            raise status.AuthError('Not signed in to Google Drive.')
        creds = self.auth.get_valid_credentials()
        if self._service is None:
            http = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http(timeout=self.http_timeout))
            self._service = build('drive', 'v3', http=http, cache_discovery=False)
            logging.debug('Google Drive service client created successfully.')
        return self._service

    @contextlib.contextmanager
    def _translate_errors(self, action: str) -> Iterator[None]:
        """Re-raise Google API and transport failures as status exceptions."""
        try:
            yield
        except HttpError as ex:
            code = int(ex.resp.status)
            if code == 401:
                self._drop_session()
                raise status.AuthError(f'{action}: access token rejected.') from ex
            raise status.NetworkError(f'{action}: HTTP {code}.', http_status=code) from ex
        except google.auth.exceptions.RefreshError as ex:
            self._drop_session()
            raise status.AuthError(f'{action}: token refresh failed: {ex}') from ex
        except google.auth.exceptions.TransportError as ex:
            raise status.NetworkError(f'{action}: {ex}') from ex
        except (socket.timeout, ssl.SSLError, httplib2.HttpLib2Error, OSError) as ex:
            raise status.NetworkError(f'{action}: {ex}') from ex

    def find_file(self) -> Optional[models.DriveFile]:
        """
        Find the backup file in appDataFolder.

        Returns:
            The most recently modified match, or None.
        """
        name = self.filename.replace('\\', '\\\\').replace("'", "\\'")
        with self._translate_errors('Searching for the backup file'):
            response = self.get_service().files().list(
                q=f"name='{name}' and trashed=false",
                spaces=APP_DATA_FOLDER,
                fields=f'files({FILE_FIELDS})',
                orderBy='modifiedTime desc',
                pageSize=10,
            ).execute()

        files = response.get('files', [])
        if not files:
            return None
        if len(files) > 1:
            logging.warning(f'Found {len(files)} backup files named "{self.filename}", using the newest.')
        return _to_drive_file(files[0])

    def upload_to_drive(self, snapshot: models.Snapshot) -> models.DriveFile:
        """
        Write the snapshot, updating the existing backup file in place.

        Returns:
            The handle of the written file.
        """
        payload = json.dumps(snapshot.to_dict(), indent=2).encode('utf-8')
        existing = self.find_file()

        with self._translate_errors('Uploading the backup'):
            files = self.get_service().files()
            media = MediaIoBaseUpload(io.BytesIO(payload), mimetype=MIME_TYPE, resumable=False)
            if existing:
                result = files.update(fileId=existing.id, media_body=media, fields=FILE_FIELDS).execute()
            else:
                metadata = {'name': self.filename, 'parents': [APP_DATA_FOLDER], 'mimeType': MIME_TYPE}
                result = files.create(body=metadata, media_body=media, fields=FILE_FIELDS).execute()

        logging.info(f'Uploaded {len(payload)} bytes to Google Drive.')
        return _to_drive_file(result)

    def download_from_drive(self) -> models.Snapshot:
        """
        Read the backup file.

        Raises:
            status.NotFoundError: If there is no backup file.
            status.BackupInvalidError: If the file is not a valid snapshot.
        """
        file = self.find_file()
        if file is None:
            raise status.NotFoundError(f'"{self.filename}" does not exist in Google Drive.')

        with self._translate_errors('Downloading the backup'):
            content = self.get_service().files().get_media(fileId=file.id).execute()

        try:
            if isinstance(content, bytes):
                content = content.decode('utf-8')
            snapshot = models.Snapshot.from_dict(json.loads(content))
        except (ValueError, TypeError) as ex:
            raise status.BackupInvalidError(str(ex)) from ex

        logging.info(
            f'Downloaded {len(snapshot.transactions)} transaction(s) and {len(snapshot.banks)} bank(s).'
        )
        return snapshot
