# tests/test_settings.py
"""
Unit tests for MTrack.settings.lib
(covers the schema validator, ConfigPaths and SettingsAPI).

Run with:
    python -m unittest tests.test_settings
"""

import json
import os

from MTrack.settings import lib
from MTrack.settings.lib import SETTINGS_SCHEMA, SettingsAPI, _validate_section, default_settings
from MTrack.status import status
from MTrack.ui.actions import signals
from tests.base import BaseTestCase, DUMMY_SECRET, mute_ui_signals


class ValidateSectionTests(BaseTestCase):

    def test_defaults_are_valid(self):
        for section, data in default_settings().items():
            _validate_section(section, data)

    def test_rejects_unknown_section_and_keys(self):
        with self.assertRaises(ValueError):
            _validate_section('spreadsheet', {})
        with self.assertRaises(ValueError):
            _validate_section('sync', {**default_settings()['sync'], 'extra': 1})

    def test_rejects_wrong_types(self):
        sync = default_settings()['sync']
        for key, value in (('debounce_ms', True), ('debounce_ms', '5000'), ('auto_sync', 1),
                           ('backup_filename', 3)):
            with self.subTest(key=key, value=value):
                with self.assertRaises(TypeError):
                    _validate_section('sync', {**sync, key: value})

    def test_rejects_out_of_range_and_empty(self):
        sync = default_settings()['sync']
        with self.assertRaises(ValueError):
            _validate_section('sync', {**sync, 'debounce_ms': -1})
        with self.assertRaises(ValueError):
            _validate_section('sync', {**sync, 'backup_filename': ''})


class ConfigPathsTests(BaseTestCase):

    def test_directories_exist(self):
        paths = lib.ConfigPaths()
        for d in (paths.config_dir, paths.auth_dir, paths.db_dir):
            self.assertTrue(d.is_dir())
        self.assertEqual(paths.store_path.name, 'store.db')
        self.assertEqual(paths.creds_path.parent, paths.auth_dir)


class SettingsAPITests(BaseTestCase):

    def test_missing_file_is_created_with_defaults(self):
        self.assertTrue(self.settings.settings_path.exists())
        with self.settings.settings_path.open('r', encoding='utf-8') as f:
            self.assertEqual(json.load(f), default_settings())
        self.assertEqual(self.settings.get_section('sync')['debounce_ms'], 5000)
        self.assertEqual(self.settings.get_section('storage')['quota_bytes'], 5 * 1024 * 1024)

    def test_partial_file_is_merged_with_defaults(self):
        with self.settings.settings_path.open('w', encoding='utf-8') as f:
            json.dump({'sync': {'debounce_ms': 250}}, f)
        api = SettingsAPI()
        self.assertEqual(api.get_section('sync')['debounce_ms'], 250)
        self.assertEqual(api.get_section('sync')['backup_filename'], 'm-track-data.json')

    def test_invalid_file_raises(self):
        for content in ('{not json', json.dumps({'sync': {'debounce_ms': 'soon'}}), json.dumps([1])):
            with self.subTest(content=content):
                self.settings.settings_path.write_text(content, encoding='utf-8')
                with mute_ui_signals():
                    with self.assertRaises(status.ConfigInvalidError):
                        self.settings.load_settings()

    def test_set_section_persists_and_notifies(self):
        changed = []

        def _slot(section: str) -> None:
            changed.append(section)

        signals.configSectionChanged.connect(_slot)
        try:
            self.settings.set_section('sync', {'auto_sync': False})
        finally:
            signals.configSectionChanged.disconnect(_slot)

        self.assertEqual(changed, ['sync'])
        self.assertFalse(SettingsAPI().get_section('sync')['auto_sync'])

    def test_set_section_rejects_invalid_values(self):
        with self.assertRaises(TypeError):
            self.settings.set_section('sync', {'http_timeout': 'long'})
        with self.assertRaises(ValueError):
            self.settings.set_section('metadata', {})
        self.assertEqual(self.settings.get_section('sync'), default_settings()['sync'])

    def test_get_section_returns_copy(self):
        section = self.settings.get_section('sync')
        section['debounce_ms'] = 1
        self.assertEqual(self.settings.get_section('sync')['debounce_ms'], 5000)

    def test_schema_defines_every_default(self):
        self.assertEqual(set(SETTINGS_SCHEMA), set(default_settings()))


class ClientConfigTests(BaseTestCase):

    def test_no_client_configured(self):
        self.assertIsNone(self.settings.client_config())

    def test_client_secret_file(self):
        self.write_client_secret()
        self.assertEqual(self.settings.client_config(), DUMMY_SECRET)

    def test_environment_variables(self):
        os.environ[lib.CLIENT_ID_ENV_KEY] = 'env-id'
        os.environ[lib.CLIENT_SECRET_ENV_KEY] = 'env-secret'
        config = self.settings.client_config()
        self.assertEqual(config['installed']['client_id'], 'env-id')
        self.assertEqual(config['installed']['token_uri'], lib.GOOGLE_TOKEN_URI)
        self.assertEqual(self.settings.validate_client_secret(config), 'installed')

    def test_environment_needs_both_values(self):
        os.environ[lib.CLIENT_ID_ENV_KEY] = 'env-id'
        self.assertIsNone(self.settings.client_config())

    def test_file_takes_precedence(self):
        os.environ[lib.CLIENT_ID_ENV_KEY] = 'env-id'
        os.environ[lib.CLIENT_SECRET_ENV_KEY] = 'env-secret'
        self.write_client_secret()
        self.assertEqual(self.settings.client_config()['installed']['client_id'],
                         DUMMY_SECRET['installed']['client_id'])

    def test_incomplete_client_secret(self):
        with mute_ui_signals():
            with self.assertRaises(status.ConfigInvalidError):
                self.settings.validate_client_secret({'installed': {'client_id': 'x'}})
            with self.assertRaises(status.ConfigInvalidError):
                self.settings.validate_client_secret({'other': {}})

    def test_set_client_secret_writes_file(self):
        self.settings.set_client_secret(DUMMY_SECRET)
        self.assertTrue(self.settings.client_secret_path.exists())
        self.assertEqual(SettingsAPI().client_config(), DUMMY_SECRET)
