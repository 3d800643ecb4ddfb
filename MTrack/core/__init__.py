"""
Core package.

- :mod:`MTrack.core.models` – Transaction, bank and snapshot entities.
- :mod:`MTrack.core.store` – SQLite-backed local key-value store.
- :mod:`MTrack.core.auth` – Google OAuth credentials.
- :mod:`MTrack.core.drive` – Google Drive backup adapter.
- :mod:`MTrack.core.scheduler` – Cancellable one-shot timers.
- :mod:`MTrack.core.sync` – Push, pull and debounced auto-push coordination.
- :mod:`MTrack.core.state` – In-memory application state.
- :mod:`MTrack.core.context` – Application wiring, theme and month selection.
"""
