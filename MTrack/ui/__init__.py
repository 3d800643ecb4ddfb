"""
Presentation-layer collaborator surface.

Rendering lives outside this package. The presentation layer connects to:

- :mod:`MTrack.ui.actions` – the shared signal hub for errors, notifications and configuration changes.
"""
