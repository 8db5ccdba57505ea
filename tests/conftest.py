"""Pytest fixtures for the Google integration tests."""

import logging
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from daily_organizer.calendar_client import CalendarClient
from daily_organizer.config import CalendarConfig, OAuth2Config
from daily_organizer.oauth2 import Token, TokenManager
from daily_organizer.storage import (
    CLIENT_ID_KEY,
    CLIENT_SECRET_KEY,
    TOKENS_KEY,
    MemoryStore,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

NOW = 1_700_000_000.0


class FakeClock:
    """Settable replacement for time.time."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def fake_response(
    status_code: int = 200,
    payload: Optional[Dict[str, Any]] = None,
    text: Optional[str] = None,
) -> MagicMock:
    """Create a requests.Response stand-in."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.text = text if text is not None else str(payload or "")
    return response


def make_http_error(status: int, body: bytes = b'{"error": "boom"}') -> HttpError:
    return HttpError(httplib2.Response({"status": status}), body)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep developer credentials in the environment out of the tests."""
    for name in (
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
        "GOOGLE_REDIRECT_URI",
        "ORGANIZER_STATE_PATH",
        "ORGANIZER_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def response_factory():
    return fake_response


@pytest.fixture
def http_error_factory():
    return make_http_error


@pytest.fixture
def oauth2_config():
    return OAuth2Config(redirect_uri="http://localhost:8080/auth/callback")


@pytest.fixture
def store():
    """A store that already holds the client credential."""
    return MemoryStore({CLIENT_ID_KEY: "abc", CLIENT_SECRET_KEY: "shh"})


@pytest.fixture
def mock_http():
    return MagicMock()


@pytest.fixture
def token_manager(store, oauth2_config, mock_http, clock):
    return TokenManager(store, oauth2_config, http=mock_http, clock=clock)


@pytest.fixture
def store_token(store, clock):
    """Store a token expiring ``expires_in`` seconds from the fake now."""

    def _store(
        access_token: str = "tok1",
        refresh_token: Optional[str] = "ref1",
        expires_in: int = 3600,
    ) -> Token:
        token = Token(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=clock.now + expires_in,
            expires_in=expires_in,
        )
        store.set(TOKENS_KEY, token.to_dict())
        return token

    return _store


@pytest.fixture
def mock_calendar_service():
    """Create a mock Calendar API service with common responses."""
    service = MagicMock()
    events = service.events()

    events.list().execute.return_value = {
        "items": [
            {
                "id": "evt123",
                "summary": "Mock Event",
                "start": {"dateTime": "2024-01-01T10:00:00Z"},
                "end": {"dateTime": "2024-01-01T11:00:00Z"},
            }
        ]
    }
    events.insert().execute.return_value = {
        "id": "new_evt_123",
        "htmlLink": "https://calendar.google.com/event?id=new_evt_123",
    }
    service.freebusy().query().execute.return_value = {
        "calendars": {
            "primary": {
                "busy": [
                    {"start": "2024-01-01T12:00:00Z", "end": "2024-01-01T13:00:00Z"}
                ]
            }
        }
    }
    return service


@pytest.fixture
def mock_tasks_service():
    """Create a mock Tasks API service with two task lists."""
    service = MagicMock()
    service.tasklists().list().execute.return_value = {
        "items": [{"id": "list1", "title": "Work"}, {"id": "list2", "title": "Home"}]
    }

    tasks_by_list = {
        "list1": {"items": [{"id": "t1", "title": "Write report"}]},
        "list2": {"items": [{"id": "t2", "title": "Buy milk"}, {"id": "t3"}]},
    }

    def list_tasks(tasklist):
        request = MagicMock()
        request.execute.return_value = tasks_by_list[tasklist]
        return request

    service.tasks().list.side_effect = list_tasks
    return service


@pytest.fixture
def service_factory(mock_calendar_service, mock_tasks_service):
    services = {"calendar": mock_calendar_service, "tasks": mock_tasks_service}
    return MagicMock(side_effect=lambda api, version, credentials: services[api])


@pytest.fixture
def calendar_client(token_manager, service_factory, store_token):
    store_token()
    return CalendarClient(
        token_manager, CalendarConfig(), service_factory=service_factory
    )
