"""
Google OAuth2 authentication and credential management.

:class:`AuthManager` owns the cached credentials used by the Drive backup adapter. The
credentials are kept in memory and in the ``auth/creds.json`` file of the config
directory. The consent flow blocks, so callers run :meth:`AuthManager.authenticate`
off the GUI thread.
"""

import json
import logging
import pathlib
import threading
import urllib.parse
from typing import Any, Dict, Optional

import google.auth.exceptions
import google.auth.transport.requests
import google.oauth2.credentials
import google_auth_oauthlib.flow

from ..status import status

DRIVE_SCOPES = ['https://www.googleapis.com/auth/drive.appdata', ]
REVOKE_URI = 'https://oauth2.googleapis.com/revoke'


class AuthManager:
    """Manages OAuth2 credentials with thread-safe loading, refresh and revocation."""

    def __init__(self, settings, scopes=None):
        """
        Args:
            settings (MTrack.settings.lib.SettingsAPI): Provides the client config, the
                creds path and the auth timeout.
            scopes (list, optional): OAuth scopes to request. Defaults to DRIVE_SCOPES.
        """
        self.settings = settings
        self.scopes = list(scopes or DRIVE_SCOPES)
        self._lock = threading.Lock()
        self._creds: Optional[google.oauth2.credentials.Credentials] = None

    @property
    def creds_path(self) -> pathlib.Path:
        return self.settings.creds_path

    @property
    def credentials(self) -> Optional[google.oauth2.credentials.Credentials]:
        return self._creds

    def client_config(self) -> Optional[Dict[str, Any]]:
        """Return the configured OAuth client, or None if there is none."""
        return self.settings.client_config()

    def has_token(self) -> bool:
        """Return True if credentials are held in memory. Makes no network call."""
        return self._creds is not None

    def load_cached(self, refresh: bool = True) -> Optional[google.oauth2.credentials.Credentials]:
        """
        Load credentials from creds.json.

        Args:
            refresh: Refresh expired credentials that carry a refresh token.

        Returns:
            The cached credentials, or None if there are none usable.
        """
        with self._lock:
            if self._creds is not None:
                creds = self._creds
            else:
                if not self.creds_path.exists():
                    logging.debug('No cached credentials found.')
                    return None
                try:
                    logging.debug(f'Loading credentials from {self.creds_path}...')
                    creds = google.oauth2.credentials.Credentials.from_authorized_user_file(
                        str(self.creds_path)
                    )
                except (ValueError, json.JSONDecodeError) as ex:
                    logging.error(f'Failed to load credentials, deleting {self.creds_path}: {ex}')
                    self.creds_path.unlink(missing_ok=True)
                    return None

                if not set(self.scopes).issubset(set(creds.scopes or [])):
                    logging.debug('Cached credentials have mismatched scopes; clearing.')
                    self.creds_path.unlink(missing_ok=True)
                    return None

            if refresh and creds.expired and creds.refresh_token:
                logging.debug('Cached credentials expired; attempting refresh.')
                try:
                    creds.refresh(google.auth.transport.requests.Request())
                except google.auth.exceptions.RefreshError as ex:
                    logging.error(f'Refresh failed: {ex}; interactive sign-in required.')
                    self._creds = None
                    self.creds_path.unlink(missing_ok=True)
                    return None
                self._save_creds(creds)

            self._creds = creds
            return creds

    def authenticate(self) -> google.oauth2.credentials.Credentials:
        """
        Run the interactive consent flow and save the resulting credentials.

        Returns:
            google.oauth2.credentials.Credentials: The authenticated credentials.

        Raises:
            status.ClientNotConfiguredError: If no OAuth client is configured.
            status.AuthError: If the flow fails, times out or consent is denied.
        """
        client_config = self.client_config()
        if not client_config:
            raise status.ClientNotConfiguredError

        timeout = self.settings.get_section('sync')['auth_timeout']
        flow = google_auth_oauthlib.flow.InstalledAppFlow.from_client_config(client_config, scopes=self.scopes)

        logging.debug('Starting OAuth flow...')
        with self._lock:
            try:
                creds = flow.run_local_server(port=0, timeout_seconds=timeout)
            except Exception as ex:
                raise status.AuthError(f'OAuth flow failed: {ex}') from ex

            if not creds or not creds.token:
                raise status.AuthError('Authentication was cancelled or no credentials obtained.')

            self._save_creds(creds)
            self._creds = creds

        logging.info('Signed in to Google.')
        return creds

    def get_valid_credentials(self) -> google.oauth2.credentials.Credentials:
        """
        Return the in-memory credentials, refreshing them if they expired.

        Raises:
            status.AuthError: If there are no credentials.
            google.auth.exceptions.RefreshError: If the refresh is rejected.
        """
        with self._lock:
            if self._creds is None:
                raise status.AuthError('Not signed in to Google.')
            if self._creds.expired and self._creds.refresh_token:
                self._creds.refresh(google.auth.transport.requests.Request())
                self._save_creds(self._creds)
            return self._creds

    def _save_creds(self, creds: google.oauth2.credentials.Credentials) -> None:
        self.creds_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.creds_path, 'w', encoding='utf-8') as token_file:
            token_file.write(creds.to_json())
        logging.debug(f'Credentials saved to {self.creds_path}.')

    def revoke(self) -> None:
        """Revoke the token with Google, then clear it. Revocation is best effort."""
        creds = self._creds
        token = (creds.refresh_token or creds.token) if creds else None
        if token:
            request = google.auth.transport.requests.Request()
            try:
                response = request(
                    url=REVOKE_URI,
                    method='POST',
                    body=urllib.parse.urlencode({'token': token}),
                    headers={'content-type': 'application/x-www-form-urlencoded'},
                )
                if response.status != 200:
                    logging.warning(f'Token revocation returned HTTP {response.status}.')
                else:
                    logging.debug('Token revoked.')
            except google.auth.exceptions.TransportError as ex:
                logging.warning(f'Token revocation failed: {ex}')
        self.clear()

    def clear(self) -> None:
        """Drop the in-memory credentials and delete creds.json."""
        with self._lock:
            self._creds = None
            if self.creds_path.exists():
                logging.debug(f'Deleting {self.creds_path}...')
                self.creds_path.unlink()
