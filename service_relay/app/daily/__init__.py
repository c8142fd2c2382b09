"""
Recording provider integration for the Relay service.
"""

from .client import DailyClient, room_slug

__all__ = ["DailyClient", "room_slug"]
