import json
from unittest import mock

import google.auth.exceptions

from MTrack.core import auth
from MTrack.status import status
from tests.base import BaseTestCase, mute_ui_signals

AUTHORIZED_USER = {
    'token': 'access-token',
    'refresh_token': 'refresh-token',
    'client_id': 'dummy.apps.googleusercontent.com',
    'client_secret': 'dummy',
    'token_uri': 'https://oauth2.googleapis.com/token',
    'scopes': auth.DRIVE_SCOPES,
    'expiry': '2099-01-01T00:00:00Z',
}


class TestAuthManager(BaseTestCase):
    """Unit tests for the AuthManager behavior."""

    def setUp(self) -> None:
        super().setUp()
        self.manager = auth.AuthManager(self.settings)

    def write_creds(self, data) -> None:
        self.settings.creds_path.write_text(
            data if isinstance(data, str) else json.dumps(data), encoding='utf-8'
        )

    def test_missing_credentials_return_none(self):
        self.assertIsNone(self.manager.load_cached())
        self.assertFalse(self.manager.has_token())

    def test_invalid_credentials_file_is_deleted(self):
        self.write_creds('not a json')
        self.assertIsNone(self.manager.load_cached())
        self.assertFalse(self.settings.creds_path.exists())

    def test_mismatched_scopes_are_discarded(self):
        self.write_creds({**AUTHORIZED_USER, 'scopes': ['https://www.googleapis.com/auth/spreadsheets']})
        self.assertIsNone(self.manager.load_cached())
        self.assertFalse(self.settings.creds_path.exists())

    def test_cached_credentials_are_loaded(self):
        self.write_creds(AUTHORIZED_USER)
        creds = self.manager.load_cached()
        self.assertIsNotNone(creds)
        self.assertEqual(creds.token, 'access-token')
        self.assertTrue(self.manager.has_token())

    def test_expired_credentials_are_refreshed_and_saved(self):
        self.write_creds({**AUTHORIZED_USER, 'expiry': '2000-01-01T00:00:00Z'})
        with mock.patch('google.auth.transport.requests.Request'), \
                mock.patch('google.oauth2.credentials.Credentials.refresh') as refresh:
            creds = self.manager.load_cached()
        refresh.assert_called_once()
        self.assertIsNotNone(creds)
        self.assertTrue(self.settings.creds_path.exists())

    def test_failed_refresh_clears_credentials(self):
        self.write_creds({**AUTHORIZED_USER, 'expiry': '2000-01-01T00:00:00Z'})
        error = google.auth.exceptions.RefreshError('invalid_grant')
        with mock.patch('google.auth.transport.requests.Request'), \
                mock.patch('google.oauth2.credentials.Credentials.refresh', side_effect=error):
            self.assertIsNone(self.manager.load_cached())
        self.assertFalse(self.manager.has_token())
        self.assertFalse(self.settings.creds_path.exists())

    def test_restore_without_refresh_makes_no_request(self):
        self.write_creds({**AUTHORIZED_USER, 'expiry': '2000-01-01T00:00:00Z'})
        with mock.patch('google.oauth2.credentials.Credentials.refresh') as refresh:
            self.assertIsNotNone(self.manager.load_cached(refresh=False))
        refresh.assert_not_called()

    def test_authenticate_without_client_raises_before_flow(self):
        with mock.patch('google_auth_oauthlib.flow.InstalledAppFlow.from_client_config') as from_config:
            with mute_ui_signals():
                with self.assertRaises(status.AuthError) as ctx:
                    self.manager.authenticate()
        self.assertIsInstance(ctx.exception, status.ClientNotConfiguredError)
        from_config.assert_not_called()

    def test_authenticate_saves_credentials(self):
        self.write_client_secret()
        creds = mock.MagicMock(token='new-token')
        creds.to_json.return_value = json.dumps(AUTHORIZED_USER)
        flow = mock.MagicMock()
        flow.run_local_server.return_value = creds

        with mock.patch('google_auth_oauthlib.flow.InstalledAppFlow.from_client_config', return_value=flow):
            result = self.manager.authenticate()

        self.assertIs(result, creds)
        self.assertTrue(self.manager.has_token())
        self.assertTrue(self.settings.creds_path.exists())
        _, kwargs = flow.run_local_server.call_args
        self.assertEqual(kwargs['timeout_seconds'], self.settings.get_section('sync')['auth_timeout'])

    def test_denied_consent_raises_auth_error(self):
        self.write_client_secret()
        flow = mock.MagicMock()
        flow.run_local_server.side_effect = Exception('access_denied')

        with mock.patch('google_auth_oauthlib.flow.InstalledAppFlow.from_client_config', return_value=flow):
            with mute_ui_signals():
                with self.assertRaises(status.AuthError):
                    self.manager.authenticate()
        self.assertFalse(self.manager.has_token())

    def test_revoke_posts_token_and_clears(self):
        self.write_creds(AUTHORIZED_USER)
        self.manager.load_cached(refresh=False)

        request = mock.MagicMock()
        request.return_value.status = 200
        with mock.patch('google.auth.transport.requests.Request', return_value=request):
            self.manager.revoke()

        _, kwargs = request.call_args
        self.assertEqual(kwargs['url'], auth.REVOKE_URI)
        self.assertIn('refresh-token', kwargs['body'])
        self.assertFalse(self.manager.has_token())
        self.assertFalse(self.settings.creds_path.exists())

    def test_revoke_failure_still_clears(self):
        self.write_creds(AUTHORIZED_USER)
        self.manager.load_cached(refresh=False)

        request = mock.MagicMock(side_effect=google.auth.exceptions.TransportError('offline'))
        with mock.patch('google.auth.transport.requests.Request', return_value=request):
            self.manager.revoke()

        self.assertFalse(self.manager.has_token())
        self.assertFalse(self.settings.creds_path.exists())

    def test_get_valid_credentials_requires_sign_in(self):
        with mute_ui_signals():
            with self.assertRaises(status.AuthError):
                self.manager.get_valid_credentials()
