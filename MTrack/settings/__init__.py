"""
Settings package.

- :mod:`MTrack.settings.lib` – settings.json schema, defaults and persistence, plus Google client configuration.
"""
