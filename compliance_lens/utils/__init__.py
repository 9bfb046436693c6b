"""Utility modules for configuration, logging, errors, and AWS integration."""

from .geometry import map_to_overlay, OverlayBox, ViolationSelection

__all__ = [
    'map_to_overlay',
    'OverlayBox',
    'ViolationSelection'
]
