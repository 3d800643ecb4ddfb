"""
Logging subsystem.

Modules:

- :mod:`MTrack.log.log` – Root logger setup, Qt message bridge and the in-memory log tank.
"""
