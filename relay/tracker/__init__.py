"""
Relay Tracker

Task-tracker adapters. Currently Asana only.
"""

from .asana import AsanaAdapter, DEFAULT_PROJECT

__all__ = [
    "AsanaAdapter",
    "DEFAULT_PROJECT",
]
