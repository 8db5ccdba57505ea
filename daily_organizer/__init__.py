"""Google Calendar and Tasks integration for the daily organizer."""

from daily_organizer.calendar_client import CalendarClient
from daily_organizer.config import OrganizerConfig, load_config
from daily_organizer.oauth2 import Token, TokenManager
from daily_organizer.storage import JsonFileStore, MemoryStore

__all__ = [
    "CalendarClient",
    "JsonFileStore",
    "MemoryStore",
    "OrganizerConfig",
    "Token",
    "TokenManager",
    "load_config",
]
