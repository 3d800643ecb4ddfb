"""Application context created once at startup.

:class:`AppContext` builds the settings, the local store, the state store and the
sync coordinator, and hands them to the presentation layer by reference. It also
holds the app-wide view state: the colour theme and the month being browsed.
"""
import datetime
import enum
import logging
from typing import Optional

from .state import StateStore
from .store import LocalStore
from .sync import SyncAPI
from ..settings import lib
from ..status import status

THEME_KEY = 'm-track-theme'


class Theme(enum.StrEnum):
    Light = 'light'
    Dark = 'dark'


DEFAULT_THEME = Theme.Dark


class AppContext:
    """Owns the application's services and shared view state."""

    def __init__(self, settings: Optional[lib.SettingsAPI] = None, store: Optional[LocalStore] = None,
                 state: Optional[StateStore] = None, sync: Optional[SyncAPI] = None) -> None:
        self.settings = settings or lib.SettingsAPI()
        self.store = store or LocalStore(
            self.settings.store_path,
            quota_bytes=self.settings.get_section('storage')['quota_bytes'],
        )
        self.state = state or StateStore(self.store)
        self.sync = sync or SyncAPI(self.settings, self.store, state_store=self.state)

        self._theme = self._load_theme()
        self.current_date: datetime.date = datetime.date.today().replace(day=1)

    def initialize(self) -> None:
        """Load local data and probe the backup connection."""
        self.state.reload()
        self.sync.check_status()

        from ..ui.actions import signals
        signals.themeChanged.emit(str(self._theme))
        signals.monthChanged.emit(self.current_date)

    def _load_theme(self) -> Theme:
        value = self.store.get_item(THEME_KEY)
        try:
            return Theme(value)
        except ValueError:
            return DEFAULT_THEME

    @property
    def theme(self) -> Theme:
        return self._theme

    def set_theme(self, theme: str) -> None:
        """
        Raises:
            ValueError: If theme is not 'light' or 'dark'.
        """
        theme = Theme(theme)
        try:
            self.store.set_item(THEME_KEY, str(theme))
        except status.StorageError as ex:
            logging.warning(f'Theme not persisted: {ex}')
        self._theme = theme

        from ..ui.actions import signals
        signals.themeChanged.emit(str(theme))

    def toggle_theme(self) -> Theme:
        self.set_theme(Theme.Light if self._theme == Theme.Dark else Theme.Dark)
        return self._theme

    @property
    def current_month(self) -> str:
        """The browsed month as 'YYYY-MM'."""
        return self.current_date.strftime('%Y-%m')

    def change_month(self, offset: int) -> datetime.date:
        """Move the browsed month by offset months."""
        index = self.current_date.year * 12 + (self.current_date.month - 1) + int(offset)
        self.current_date = datetime.date(index // 12, index % 12 + 1, 1)

        from ..ui.actions import signals
        signals.monthChanged.emit(self.current_date)
        return self.current_date
