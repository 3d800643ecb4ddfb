"""
MTrack data package.

- :mod:`MTrack.data.data` – pandas helpers for monthly totals, expenses per payment mode and transaction search.
"""
