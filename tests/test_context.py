"""
Tests for MTrack.core.context
(covers startup wiring, the persisted theme and month navigation).

Run:
    python -m unittest tests.test_context
"""
import datetime

from MTrack.core import context
from MTrack.core.drive import AdapterState
from MTrack.ui.actions import signals
from tests.base import BaseTestCase, make_transaction


class AppContextTests(BaseTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.ctx = context.AppContext(settings=self.settings, store=self.store)

    def test_initialize_loads_data_without_remote(self):
        tx = make_transaction()
        self.store.save_transactions([tx])

        self.ctx.initialize()

        self.assertEqual(self.ctx.state.transactions, [tx])
        self.assertFalse(self.ctx.sync.is_connected)
        self.assertFalse(self.ctx.sync.is_available)
        self.assertEqual(self.ctx.sync.drive.state, AdapterState.Disabled)

    def test_services_share_the_store(self):
        self.assertIs(self.ctx.state.store, self.store)
        self.assertIs(self.ctx.sync.store, self.store)
        self.assertIs(self.ctx.sync.state_store, self.ctx.state)

    def test_theme_defaults_to_dark(self):
        self.assertEqual(self.ctx.theme, context.Theme.Dark)

    def test_toggle_theme_persists(self):
        themes = []

        def _slot(theme: str) -> None:
            themes.append(theme)

        signals.themeChanged.connect(_slot)
        try:
            self.assertEqual(self.ctx.toggle_theme(), context.Theme.Light)
        finally:
            signals.themeChanged.disconnect(_slot)

        self.assertEqual(themes, ['light'])
        self.assertEqual(self.store.get_item(context.THEME_KEY), 'light')
        self.assertEqual(context.AppContext(settings=self.settings, store=self.store).theme, context.Theme.Light)

    def test_invalid_stored_theme_falls_back(self):
        self.store.set_item(context.THEME_KEY, 'sepia')
        self.assertEqual(context.AppContext(settings=self.settings, store=self.store).theme, context.Theme.Dark)
        with self.assertRaises(ValueError):
            self.ctx.set_theme('sepia')

    def test_change_month_wraps_years(self):
        self.ctx.current_date = datetime.date(2024, 1, 1)
        self.assertEqual(self.ctx.change_month(-1), datetime.date(2023, 12, 1))
        self.assertEqual(self.ctx.current_month, '2023-12')
        self.assertEqual(self.ctx.change_month(13), datetime.date(2025, 1, 1))

    def test_current_date_starts_at_first_of_month(self):
        today = datetime.date.today()
        self.assertEqual(self.ctx.current_date, today.replace(day=1))
