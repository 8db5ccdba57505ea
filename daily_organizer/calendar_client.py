"""Google Calendar and Tasks client for the daily organizer."""

import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from daily_organizer.config import CalendarConfig
from daily_organizer.errors import ApiRequestError
from daily_organizer.oauth2 import TokenManager

logger = logging.getLogger(__name__)

OUT_OF_OFFICE = "outOfOffice"

ServiceFactory = Callable[..., Any]


def build_service(api: str, version: str, credentials: Credentials) -> Any:
    """Build a discovery service from the bundled discovery documents."""
    return build(api, version, credentials=credentials, cache_discovery=False)


def _error_body(error: HttpError) -> str:
    content = error.content
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    return str(content)


class CalendarClient:
    """Client for the Google Calendar v3 and Tasks v1 APIs.

    Holds no token of its own: every call asks the token manager for a valid
    access token and issues a single request with it. Nothing is retried or
    cached, and a non-2xx answer surfaces as ``ApiRequestError``.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        config: Optional[CalendarConfig] = None,
        service_factory: Optional[ServiceFactory] = None,
    ):
        self.token_manager = token_manager
        self.config: CalendarConfig = config or CalendarConfig()
        self.service_factory: ServiceFactory = service_factory or build_service

    def _service(self, api: str, version: str) -> Any:
        access_token = self.token_manager.get_valid_access_token()
        creds = Credentials(token=access_token)
        return self.service_factory(api, version, credentials=creds)

    def _calendar(self) -> Any:
        return self._service("calendar", "v3")

    def _tasks(self) -> Any:
        return self._service("tasks", "v1")

    def _execute(self, request: Any) -> Any:
        try:
            return request.execute()
        except HttpError as e:
            status = int(e.resp.status)
            logger.error(f"Google API request failed: {status}")
            raise ApiRequestError(status_code=status, body=_error_body(e)) from e

    def _calendar_id(self, calendar_id: Optional[str]) -> str:
        return calendar_id or self.config.default_calendar_id

    # Calendars

    def get_calendar_list(self) -> Dict[str, Any]:
        return self._execute(self._calendar().calendarList().list())

    def create_calendar(
        self, summary: str, description: Optional[str] = None
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"summary": summary}
        if description is not None:
            body["description"] = description
        return self._execute(self._calendar().calendars().insert(body=body))

    # Events

    def _list_events(
        self,
        calendar_id: Optional[str],
        time_min: Optional[str],
        time_max: Optional[str],
        max_results: int,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "calendarId": self._calendar_id(calendar_id),
            "maxResults": max_results,
            "singleEvents": True,
            "orderBy": "startTime",
        }
        if time_min:
            params["timeMin"] = time_min
        if time_max:
            params["timeMax"] = time_max

        return self._execute(self._calendar().events().list(**params))

    def get_events(
        self,
        calendar_id: Optional[str] = None,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> Dict[str, Any]:
        """List single (expanded) events ordered by start time.

        Args:
            calendar_id: Calendar ID, defaults to the configured calendar
            time_min: RFC3339 lower bound (exclusive end time of events)
            time_max: RFC3339 upper bound (exclusive start time of events)
            max_results: Page size, defaults to the configured value
        """
        return self._list_events(
            calendar_id, time_min, time_max, max_results or self.config.max_results
        )

    def create_event(
        self, event: Dict[str, Any], calendar_id: Optional[str] = None
    ) -> Dict[str, Any]:
        created = self._execute(
            self._calendar()
            .events()
            .insert(calendarId=self._calendar_id(calendar_id), body=event)
        )
        logger.info(f"Created event: {created.get('htmlLink')}")
        return created

    def update_event(
        self,
        event_id: str,
        event: Dict[str, Any],
        calendar_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Replace an event with the given resource."""
        return self._execute(
            self._calendar()
            .events()
            .update(
                calendarId=self._calendar_id(calendar_id), eventId=event_id, body=event
            )
        )

    def delete_event(self, event_id: str, calendar_id: Optional[str] = None) -> None:
        self._execute(
            self._calendar()
            .events()
            .delete(calendarId=self._calendar_id(calendar_id), eventId=event_id)
        )

    def quick_add_event(
        self, text: str, calendar_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create an event from free text such as "Lunch with Ana tomorrow 1pm"."""
        return self._execute(
            self._calendar()
            .events()
            .quickAdd(calendarId=self._calendar_id(calendar_id), text=text)
        )

    def create_meeting_with_conference(
        self, event: Dict[str, Any], calendar_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create an event with a freshly generated Google Meet link."""
        body = dict(event)
        body["conferenceData"] = {
            "createRequest": {
                "requestId": f"meet-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}",
                "conferenceSolutionKey": {"type": "hangoutsMeet"},
            }
        }

        created = self._execute(
            self._calendar()
            .events()
            .insert(
                calendarId=self._calendar_id(calendar_id),
                body=body,
                conferenceDataVersion=1,
            )
        )
        logger.info(f"Created meeting: {created.get('htmlLink')}")
        return created

    # Out of office

    def create_out_of_office_event(
        self, event: Dict[str, Any], calendar_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create an out-of-office block.

        ``eventType``, ``transparency`` and ``visibility`` are always
        overwritten; Google rejects out-of-office events with other values.
        """
        body = dict(event)
        body["eventType"] = OUT_OF_OFFICE
        body["transparency"] = "opaque"
        body["visibility"] = "public"

        return self._execute(
            self._calendar()
            .events()
            .insert(calendarId=self._calendar_id(calendar_id), body=body)
        )

    def get_out_of_office_events(
        self,
        calendar_id: Optional[str] = None,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
    ) -> Dict[str, Any]:
        # The events endpoint has no eventType filter, so filter locally.
        response = self._list_events(calendar_id, time_min, time_max, 250)
        items = [
            event
            for event in response.get("items", [])
            if event.get("eventType") == OUT_OF_OFFICE
        ]
        return {"items": items}

    # Free/busy

    def get_free_busy(
        self,
        time_min: str,
        time_max: str,
        calendars: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Check availability using the freebusy endpoint."""
        body = {
            "timeMin": time_min,
            "timeMax": time_max,
            "items": [{"id": cal_id} for cal_id in (calendars or ["primary"])],
        }
        return self._execute(self._calendar().freebusy().query(body=body))

    # Tasks

    def get_task_lists(self) -> Dict[str, Any]:
        return self._execute(self._tasks().tasklists().list())

    def create_task_list(self, title: str) -> Dict[str, Any]:
        return self._execute(self._tasks().tasklists().insert(body={"title": title}))

    def get_tasks(self, task_list_id: str) -> Dict[str, Any]:
        return self._execute(self._tasks().tasks().list(tasklist=task_list_id))

    def get_all_tasks(self, strict: bool = False) -> Dict[str, Any]:
        """Collect the tasks of every task list.

        Without ``strict`` any failure is logged and reported as no tasks at
        all; with ``strict`` the first failure propagates.
        """
        try:
            all_tasks: List[Dict[str, Any]] = []
            for task_list in self.get_task_lists().get("items", []):
                tasks_response = self.get_tasks(task_list["id"])
                all_tasks.extend(tasks_response.get("items", []))
            return {"items": all_tasks}
        except Exception as e:
            if strict:
                raise
            logger.error(f"Failed to get all tasks: {e}")
            return {"items": []}

    def create_task(self, task_list_id: str, task: Dict[str, Any]) -> Dict[str, Any]:
        return self._execute(
            self._tasks().tasks().insert(tasklist=task_list_id, body=task)
        )

    def update_task(
        self, task_list_id: str, task_id: str, task: Dict[str, Any]
    ) -> Dict[str, Any]:
        return self._execute(
            self._tasks().tasks().update(tasklist=task_list_id, task=task_id, body=task)
        )

    def delete_task(self, task_list_id: str, task_id: str) -> None:
        self._execute(self._tasks().tasks().delete(tasklist=task_list_id, task=task_id))
