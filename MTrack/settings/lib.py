"""Settings library for sync, storage and Google client configuration.

Provides:
    - Schema validation and defaults for the settings.json structure.
    - Loading, saving and updating application settings sections.
    - Google OAuth client configuration from client_secret.json or the environment.
    - Application file paths resolved through QStandardPaths.
"""

import copy
import json
import logging
import os
import pathlib
from typing import Dict, Any, Optional, List

from PySide6 import QtCore

from ..status import status

app_name: str = 'MTrack'

CLIENT_ID_ENV_KEY: str = 'MTRACK_GOOGLE_CLIENT_ID'
CLIENT_SECRET_ENV_KEY: str = 'MTRACK_GOOGLE_CLIENT_SECRET'

GOOGLE_AUTH_URI: str = 'https://accounts.google.com/o/oauth2/auth'
GOOGLE_TOKEN_URI: str = 'https://oauth2.googleapis.com/token'

SETTINGS_SCHEMA: Dict[str, Dict[str, Dict[str, Any]]] = {
    'sync': {
        'debounce_ms': {'type': int, 'default': 5000, 'min': 0},
        'backup_filename': {'type': str, 'default': 'm-track-data.json'},
        'auto_sync': {'type': bool, 'default': True},
        'http_timeout': {'type': int, 'default': 60, 'min': 1},
        'auth_timeout': {'type': int, 'default': 60, 'min': 1},
    },
    'storage': {
        'quota_bytes': {'type': int, 'default': 5 * 1024 * 1024, 'min': 1},
    },
}


def default_settings() -> Dict[str, Dict[str, Any]]:
    """Build the default settings document from the schema.

    Returns:
        dict: A fresh settings dictionary with every section and key set to its default.
    """
    return {
        section: {key: rule['default'] for key, rule in keys.items()}
        for section, keys in SETTINGS_SCHEMA.items()
    }


def _validate_section(section_name: str, data: Dict[str, Any]) -> None:
    """Validate one settings section against SETTINGS_SCHEMA.

    Args:
        section_name: Name of the section, must be defined in the schema.
        data: Section data to validate.

    Raises:
        ValueError: If the section or one of its keys is unknown, or a value is out of range.
        TypeError: If the section is not a dict or a value has the wrong type.
    """
    if section_name not in SETTINGS_SCHEMA:
        raise ValueError(f'Unknown settings section: "{section_name}"')
    if not isinstance(data, dict):
        raise TypeError(f'Section "{section_name}" must be a dict, got {type(data)}.')

    rules = SETTINGS_SCHEMA[section_name]
    unknown = set(data.keys()) - set(rules.keys())
    if unknown:
        raise ValueError(f'Unknown keys in section "{section_name}": {sorted(unknown)}')

    for key, rule in rules.items():
        if key not in data:
            raise ValueError(f'Missing key "{key}" in section "{section_name}".')
        value = data[key]
        _type = rule['type']
        # bool is a subclass of int
        if _type is int and isinstance(value, bool):
            raise TypeError(f'"{section_name}.{key}" must be {_type}, got {type(value)}.')
        if not isinstance(value, _type):
            raise TypeError(f'"{section_name}.{key}" must be {_type}, got {type(value)}.')
        if 'min' in rule and value < rule['min']:
            raise ValueError(f'"{section_name}.{key}" must be >= {rule["min"]}, got {value}.')
        if _type is str and not value.strip():
            raise ValueError(f'"{section_name}.{key}" must not be empty.')


class ConfigPaths:
    """Manage application file paths and ensure the required directories exist."""

    def __init__(self) -> None:
        QtCore.QCoreApplication.setApplicationName(app_name)
        QtCore.QCoreApplication.setOrganizationName('')
        logging.debug(f'Setting application name: {app_name}')

        p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
        app_data_dir = pathlib.Path(p)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.auth_dir: pathlib.Path = self.config_dir / 'auth'
        self.db_dir: pathlib.Path = self.config_dir / 'db'

        self.settings_path: pathlib.Path = self.config_dir / 'settings.json'
        self.client_secret_path: pathlib.Path = self.config_dir / 'client_secret.json'
        self.creds_path: pathlib.Path = self.auth_dir / 'creds.json'
        self.store_path: pathlib.Path = self.db_dir / 'store.db'

        self._prepare()

    def _prepare(self) -> None:
        for d in (self.config_dir, self.auth_dir, self.db_dir):
            if not d.exists():
                logging.debug(f'Creating directory: {d}')
                d.mkdir(parents=True, exist_ok=True)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/save settings.json sections and to resolve the
    Google OAuth client configuration.
    """
    required_client_secret_keys: List[str] = ['client_id', 'client_secret', 'auth_uri', 'token_uri']

    def __init__(self, settings_path: Optional[str] = None, client_secret_path: Optional[str] = None) -> None:
        """Initialize SettingsAPI and load settings and client_secret data.

        Args:
            settings_path: Optional path to a custom settings.json file.
            client_secret_path: Optional path to a custom client_secret.json file.
        """
        super().__init__()

        self.settings_path: pathlib.Path = pathlib.Path(settings_path) if settings_path else self.settings_path
        self.client_secret_path: pathlib.Path = (
            pathlib.Path(client_secret_path)
            if client_secret_path
            else self.client_secret_path
        )

        self.settings_data: Dict[str, Any] = default_settings()
        self.client_secret_data: Dict[str, Any] = {}

        self.init_data()

    def init_data(self) -> None:
        """Reload settings and client_secret data from disk."""
        self.load_settings()
        self.load_client_secret()

    def load_settings(self) -> Dict[str, Any]:
        """Load settings.json from disk, filling in missing keys with defaults.

        A missing file is created with the default settings.

        Returns:
            The loaded settings dictionary.

        Raises:
            status.ConfigInvalidError: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading settings from "{self.settings_path}"')
        if not self.settings_path.exists():
            self.settings_data = default_settings()
            self.save_all()
            return self.settings_data

        try:
            with self.settings_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            if not isinstance(data, dict):
                raise TypeError('settings.json must contain an object.')

            merged = default_settings()
            for section, values in data.items():
                if section not in merged:
                    raise ValueError(f'Unknown settings section: "{section}"')
                if not isinstance(values, dict):
                    raise TypeError(f'Section "{section}" must be a dict.')
                merged[section].update(values)

            for section, values in merged.items():
                _validate_section(section, values)
        except (ValueError, TypeError) as ex:
            raise status.ConfigInvalidError(f'{self.settings_path}: {ex}') from ex

        self.settings_data = merged
        return self.settings_data

    def load_client_secret(self) -> Dict[str, Any]:
        """Load client_secret.json from disk.

        The file is optional: Google Drive backup is simply unavailable without it.

        Returns:
            The loaded client secret data dictionary, empty when the file is absent.

        Raises:
            status.ConfigInvalidError: If the file is not valid JSON.
        """
        if not self.client_secret_path.exists():
            logging.debug(f'No client_secret found at "{self.client_secret_path}"')
            self.client_secret_data = {}
            return self.client_secret_data

        logging.debug(f'Loading client_secret from "{self.client_secret_path}"')
        try:
            with self.client_secret_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
        except (ValueError, json.JSONDecodeError) as ex:
            raise status.ConfigInvalidError(f'{self.client_secret_path}: {ex}') from ex
        self.client_secret_data = data if isinstance(data, dict) else {}
        return self.client_secret_data

    def validate_client_secret(self, data: Optional[Dict[str, Any]] = None) -> str:
        """Validate that the client configuration contains required OAuth credentials.

        Args:
            data (dict, optional): Client secret data to validate. Defaults to loaded client_secret_data.

        Returns:
            str: Section key used ('installed' or 'web').

        Raises:
            status.ConfigInvalidError: If no valid section exists or required fields are missing.
        """
        if data is None:
            data = self.client_secret_data

        key = next((k for k in ('installed', 'web') if k in data), None)
        if not key:
            raise status.ConfigInvalidError('Missing "installed" or "web" section in client_secret.')

        config_section: Dict[str, Any] = data[key]
        missing: List[str] = [k for k in self.required_client_secret_keys if not config_section.get(k)]
        if missing:
            raise status.ConfigInvalidError(
                f'Missing required fields in the \'{key}\' section: {missing}.'
            )
        return key

    def client_config(self) -> Optional[Dict[str, Any]]:
        """Resolve the Google OAuth client configuration.

        client_secret.json takes precedence; otherwise the client id and secret are
        read from the MTRACK_GOOGLE_CLIENT_ID and MTRACK_GOOGLE_CLIENT_SECRET
        environment variables.

        Returns:
            A client config dict accepted by google_auth_oauthlib, or None when no
            client is configured.

        Raises:
            status.ConfigInvalidError: If client_secret.json exists but is incomplete.
        """
        if self.client_secret_data:
            self.validate_client_secret()
            return copy.deepcopy(self.client_secret_data)

        client_id = os.environ.get(CLIENT_ID_ENV_KEY, '').strip()
        if not client_id:
            return None

        client_secret = os.environ.get(CLIENT_SECRET_ENV_KEY, '').strip()
        if not client_secret:
            logging.warning(f'{CLIENT_ID_ENV_KEY} is set but {CLIENT_SECRET_ENV_KEY} is missing.')
            return None

        return {
            'installed': {
                'client_id': client_id,
                'client_secret': client_secret,
                'auth_uri': GOOGLE_AUTH_URI,
                'token_uri': GOOGLE_TOKEN_URI,
                'redirect_uris': ['http://localhost'],
            }
        }

    def set_client_secret(self, data: Dict[str, Any]) -> None:
        """Validate, store and persist a new client_secret.json.

        Args:
            data: Google client secret document.
        """
        self.validate_client_secret(data)
        self.client_secret_data = copy.deepcopy(data)
        with self.client_secret_path.open('w', encoding='utf-8') as f:
            json.dump(self.client_secret_data, f, indent=4, ensure_ascii=False)

        from ..ui.actions import signals
        signals.configSectionChanged.emit('client_secret')

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of a settings section.

        Args:
            section_name: Section name from SETTINGS_SCHEMA.

        Returns:
            A copied dict of the requested section data.

        Raises:
            KeyError: If section_name is unknown.
        """
        return self.settings_data[section_name].copy()

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace and persist a settings section.

        Keys missing from new_data keep their current values.

        Args:
            section_name: Section to update.
            new_data: New data dict for the section.

        Raises:
            ValueError: If section_name or a key is unknown, or a value is out of range.
            TypeError: If a value has the wrong type.
        """
        if section_name not in self.settings_data:
            msg: str = f'Unknown section_name for set: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        merged = self.get_section(section_name)
        merged.update(new_data)
        try:
            _validate_section(section_name, merged)
        except (ValueError, TypeError) as e:
            logging.error(f'Validation error on set_section("{section_name}"): {e}')
            raise

        self.settings_data[section_name] = merged
        self.save_section(section_name)

        from ..ui.actions import signals
        signals.configSectionChanged.emit(section_name)

    def save_section(self, section_name: str) -> None:
        """Persist a single settings section to settings.json.

        Args:
            section_name: The section to save.

        Raises:
            ValueError: If section_name is not recognized.
        """
        if section_name not in self.settings_data:
            msg: str = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        on_disk: Dict[str, Any] = {}
        if self.settings_path.exists():
            try:
                with self.settings_path.open('r', encoding='utf-8') as f:
                    on_disk = json.load(f)
            except (ValueError, json.JSONDecodeError) as ex:
                logging.warning(f'Overwriting unreadable settings file: {ex}')
                on_disk = {}

        on_disk[section_name] = self.settings_data[section_name]
        with self.settings_path.open('w', encoding='utf-8') as f:
            json.dump(on_disk, f, indent=4, ensure_ascii=False)

    def save_all(self) -> None:
        """Write every settings section to settings.json."""
        logging.debug(f'Saving all settings to "{self.settings_path}"')
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        with self.settings_path.open('w', encoding='utf-8') as f:
            json.dump(self.settings_data, f, indent=4, ensure_ascii=False)
