"""Configuration handling for the daily organizer Google integration."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml  # type: ignore
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# Load environment variables from .env file if it exists
load_dotenv()

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

DEFAULT_REDIRECT_URI = "http://localhost:8080/auth/callback"
DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/tasks",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]
DEFAULT_STATE_PATH = "~/.config/daily-organizer/state.json"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class OAuth2Config:
    """OAuth2 client credential used to start the consent flow."""

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: List[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))
    refresh_buffer_seconds: int = 300
    sign_out_on_revoked: bool = True

    def __post_init__(self):
        if self.refresh_buffer_seconds < 0:
            raise ValueError(
                f"refresh_buffer_seconds must be >= 0, got {self.refresh_buffer_seconds}"
            )
        if not self.scopes:
            raise ValueError("At least one OAuth scope is required")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OAuth2Config":
        """Create OAuth2 configuration from dictionary."""
        # Client credentials can be specified in environment variables
        client_id = data.get("client_id") or os.environ.get("GOOGLE_CLIENT_ID", "")
        client_secret = data.get("client_secret") or os.environ.get(
            "GOOGLE_CLIENT_SECRET", ""
        )
        redirect_uri = data.get("redirect_uri") or os.environ.get(
            "GOOGLE_REDIRECT_URI", DEFAULT_REDIRECT_URI
        )

        return cls(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scopes=data.get("scopes") or list(DEFAULT_SCOPES),
            refresh_buffer_seconds=int(data.get("refresh_buffer_seconds", 300)),
            sign_out_on_revoked=_as_bool(data.get("sign_out_on_revoked", True)),
        )


@dataclass
class CalendarConfig:
    """Calendar and Tasks API defaults."""

    default_calendar_id: str = "primary"
    max_results: int = 250

    def __post_init__(self):
        if not 1 <= self.max_results <= 2500:
            raise ValueError(
                f"max_results must be between 1 and 2500, got {self.max_results}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalendarConfig":
        return cls(
            default_calendar_id=data.get("default_calendar_id", "primary"),
            max_results=int(data.get("max_results", 250)),
        )


@dataclass
class StorageConfig:
    """Where the credential and token are persisted."""

    path: str = DEFAULT_STATE_PATH

    @property
    def state_path(self) -> Path:
        return Path(self.path).expanduser()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StorageConfig":
        return cls(
            path=data.get("path")
            or os.environ.get("ORGANIZER_STATE_PATH", DEFAULT_STATE_PATH),
        )


@dataclass
class OrganizerConfig:
    """Top-level configuration."""

    oauth2: OAuth2Config = field(default_factory=OAuth2Config)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log_level: str = "INFO"

    def __post_init__(self):
        self.log_level = self.log_level.upper()
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid log_level '{self.log_level}'. Must be one of {', '.join(_LOG_LEVELS)}."
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrganizerConfig":
        """Create configuration from dictionary."""
        return cls(
            oauth2=OAuth2Config.from_dict(data.get("oauth2") or {}),
            calendar=CalendarConfig.from_dict(data.get("calendar") or {}),
            storage=StorageConfig.from_dict(data.get("storage") or {}),
            log_level=data.get("log_level")
            or os.environ.get("ORGANIZER_LOG_LEVEL", "INFO"),
        )


def load_config(config_path: Optional[str] = None) -> OrganizerConfig:
    """Load configuration from file and environment variables.

    Args:
        config_path: Path to configuration file

    Returns:
        Organizer configuration

    Raises:
        ValueError: If configuration is invalid
    """
    default_locations = [
        Path("config/config.yaml"),
        Path("config.yaml"),
        Path("~/.config/daily-organizer/config.yaml"),
    ]

    config_data: Dict[str, Any] = {}

    if config_path:
        try:
            with open(Path(config_path).expanduser(), "r") as f:
                config_data = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {config_path}")
        except FileNotFoundError:
            logger.warning(f"Configuration file not found: {config_path}")
    else:
        for path in default_locations:
            expanded_path = path.expanduser()
            if expanded_path.exists():
                with open(expanded_path, "r") as f:
                    config_data = yaml.safe_load(f) or {}
                logger.info(f"Loaded configuration from {expanded_path}")
                break

    if not config_data:
        logger.info("No configuration file found, using environment variables")

    if not isinstance(config_data, dict):
        raise ValueError("Configuration file must contain a mapping")

    return OrganizerConfig.from_dict(config_data)
