"""
Microsoft Graph calendar authorization.

Decides whether a user may enter a room right now by reading the room
mailbox's calendar with an app-only (client credentials) token. Two modes:

- exact-booking: events overlapping now +/- 15 minutes where the user is an
  attendee.
- active-meeting: events in [now, now + 8h] that are in progress now and have
  the user as organizer or attendee.

A matched event gets a check-in note appended to its body; failing to write
that note never changes the decision. Network, authentication and response
format problems come back as an ``upstream-error`` result, never as an
exception.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests

from room_access.config.config_manager import (
    ACTIVE_MEETING_MODE,
    EXACT_BOOKING_MODE,
    GraphConfig,
)
from room_access.shared.logger import app_logger
from room_access.shared.time_utils import utc_now

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
LOGIN_BASE_URL = "https://login.microsoftonline.com"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

BOOKING_WINDOW = timedelta(minutes=15)
MEETING_LOOKAHEAD = timedelta(hours=8)
TOKEN_EXPIRY_MARGIN = 60  # seconds

_UTC_ZONE_NAMES = {"", "utc", "etc/utc", "gmt", "z"}


class CalendarStatus(str, Enum):
    AUTHORIZED = "authorized"
    NO_MATCHING_EVENT = "no-matching-event"
    USER_UNAUTHORIZED = "event-found-but-user-unauthorized"
    UPSTREAM_ERROR = "upstream-error"


class CalendarUpstreamError(Exception):
    """Graph could not be reached, refused us, or answered nonsense"""


@dataclass(frozen=True)
class CalendarCheckResult:
    status: CalendarStatus
    mode: str
    reason: str
    event_id: Optional[str] = None
    event_subject: Optional[str] = None
    meeting_start: Optional[datetime] = None
    meeting_end: Optional[datetime] = None
    checked_in: Optional[bool] = None
    error: Optional[str] = None

    @property
    def authorized(self) -> bool:
        return self.status == CalendarStatus.AUTHORIZED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "authorized": self.authorized,
            "mode": self.mode,
            "reason": self.reason,
            "eventId": self.event_id,
            "eventSubject": self.event_subject,
            "meetingStart": self.meeting_start.isoformat() if self.meeting_start else None,
            "meetingEnd": self.meeting_end.isoformat() if self.meeting_end else None,
            "checkedIn": self.checked_in,
            "error": self.error,
        }


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    subject: str
    start: datetime
    end: datetime
    organizer: Optional[str]
    attendees: List[str]
    body_content: str
    body_type: str

    def has_attendee(self, email: str) -> bool:
        return email.casefold() in self.attendees

    def is_organizer(self, email: str) -> bool:
        return self.organizer is not None and self.organizer == email.casefold()


def parse_graph_datetime(value: Dict[str, Any]) -> datetime:
    """A Graph ``dateTimeTimeZone`` as a UTC instant with second precision"""
    if not isinstance(value, dict) or not value.get("dateTime"):
        raise CalendarUpstreamError(f"Malformed event time: {value!r}")

    raw = str(value["dateTime"]).strip()
    zone_name = str(value.get("timeZone") or "").strip()

    if raw.endswith("Z"):
        raw = raw[:-1]
        zone_name = "UTC"
    base = raw.split(".", 1)[0]

    try:
        parsed = datetime.fromisoformat(base)
    except ValueError as e:
        raise CalendarUpstreamError(f"Malformed event time {raw!r}: {e}") from e

    if parsed.tzinfo is None:
        if zone_name.lower() in _UTC_ZONE_NAMES:
            parsed = parsed.replace(tzinfo=timezone.utc)
        else:
            try:
                parsed = parsed.replace(tzinfo=ZoneInfo(zone_name))
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise CalendarUpstreamError(f"Unknown event time zone {zone_name!r}") from e

    return parsed.astimezone(timezone.utc).replace(microsecond=0)


def _object(value: Any, what: str) -> Dict[str, Any]:
    """A JSON object from a Graph payload; missing values read as empty"""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise CalendarUpstreamError(f"Malformed {what}: expected an object, got {value!r}")
    return value


def _text(value: Any, what: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise CalendarUpstreamError(f"Malformed {what}: expected a string, got {value!r}")
    return value


def _email_address(value: Any, what: str) -> str:
    return _text(_object(_object(value, what).get("emailAddress"), what).get("address"), what)


def _parse_event(raw: Dict[str, Any]) -> CalendarEvent:
    if not isinstance(raw, dict) or not raw.get("id"):
        raise CalendarUpstreamError(f"Malformed calendar event: {raw!r}")

    raw_attendees = raw.get("attendees") or []
    if not isinstance(raw_attendees, list):
        raise CalendarUpstreamError(f"Malformed event attendees: {raw_attendees!r}")

    attendees = []
    for attendee in raw_attendees:
        address = _email_address(attendee, "event attendee")
        if address:
            attendees.append(address.casefold())

    organizer = _email_address(raw.get("organizer"), "event organizer")
    body = _object(raw.get("body"), "event body")

    return CalendarEvent(
        id=raw["id"],
        subject=_text(raw.get("subject"), "event subject"),
        start=parse_graph_datetime(raw.get("start")),
        end=parse_graph_datetime(raw.get("end")),
        organizer=organizer.casefold() if organizer else None,
        attendees=attendees,
        body_content=_text(body.get("content"), "event body"),
        body_type=(_text(body.get("contentType"), "event body") or "text").lower(),
    )


def _graph_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


class GraphCalendarService:
    """Calendar authorization against room mailboxes in Microsoft 365"""

    def __init__(
        self,
        config: GraphConfig,
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.mode = config.auth_mode
        self.timeout = config.timeout
        self.session = session or requests.Session()
        self._clock = clock
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _get_access_token(self) -> str:
        """App-only token, reused until shortly before it expires"""
        if not self.config.is_configured:
            raise CalendarUpstreamError("Microsoft Graph credentials are not configured")

        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            url = f"{LOGIN_BASE_URL}/{self.config.tenant_id}/oauth2/v2.0/token"
            response = self.session.post(
                url,
                data={
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "scope": GRAPH_SCOPE,
                    "grant_type": "client_credentials",
                },
                timeout=self.timeout,
            )

            try:
                payload = response.json()
            except ValueError:
                payload = {}
            if not isinstance(payload, dict):
                payload = {}

            if response.status_code != 200 or not payload.get("access_token"):
                description = payload.get("error_description") or payload.get("error") or (
                    f"HTTP {response.status_code}"
                )
                raise CalendarUpstreamError(
                    f"Microsoft Graph authentication failed: {description}"
                )

            try:
                expires_in = int(payload.get("expires_in", 3599))
            except (TypeError, ValueError) as e:
                raise CalendarUpstreamError(
                    f"Microsoft Graph token has an invalid expiry: {payload.get('expires_in')!r}"
                ) from e
            if not isinstance(payload["access_token"], str):
                raise CalendarUpstreamError("Microsoft Graph token response is malformed")
            self._token = payload["access_token"]
            self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
            app_logger.info("Graph API access token acquired")
            return self._token

    def _graph_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        token = self._get_access_token()
        response = self.session.request(
            method,
            f"{GRAPH_BASE_URL}{path}",
            params=params,
            json=json_body,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Prefer": 'outlook.timezone="UTC"',
            },
            timeout=self.timeout,
        )

        if response.status_code == 401:
            # Token revoked or expired early; the next call fetches a new one
            with self._token_lock:
                self._token = None

        if not 200 <= response.status_code < 300:
            preview = (response.text or "").strip()[:500]
            raise CalendarUpstreamError(
                f"Graph API error {response.status_code}: {preview}"
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            payload = response.json()
        except ValueError as e:
            raise CalendarUpstreamError(f"Graph API returned invalid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise CalendarUpstreamError(
                f"Graph API returned {type(payload).__name__} instead of an object"
            )
        return payload

    def _list_room_events(
        self, room_email: str, window_start: datetime, window_end: datetime
    ) -> List[CalendarEvent]:
        app_logger.info(
            f"Graph API: events for {room_email} between "
            f"{_graph_time(window_start)} and {_graph_time(window_end)}"
        )
        payload = self._graph_request(
            "GET",
            f"/users/{room_email}/calendar/events",
            params={
                "$filter": (
                    f"start/dateTime le '{_graph_time(window_end)}' "
                    f"and end/dateTime ge '{_graph_time(window_start)}'"
                ),
                "$select": "id,subject,start,end,attendees,organizer,body",
                "$top": "50",
            },
        )

        values = payload.get("value")
        if not isinstance(values, list):
            raise CalendarUpstreamError("Graph API response has no event list")

        events = [_parse_event(item) for item in values]
        # Keep only true overlaps in case the server filter was looser
        return [e for e in events if e.start <= window_end and e.end >= window_start]

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def check_access(
        self, user_email: str, room_email: str, mode: Optional[str] = None
    ) -> CalendarCheckResult:
        """Authorize with the deployment's mode unless one is given"""
        mode = mode or self.mode
        if mode == EXACT_BOOKING_MODE:
            return self.check_existing_booking(user_email, room_email)
        if mode == ACTIVE_MEETING_MODE:
            return self.check_active_meeting(user_email, room_email)
        raise ValueError(f"Unknown calendar authorization mode: {mode}")

    def check_existing_booking(self, user_email: str, room_email: str) -> CalendarCheckResult:
        now = self._clock()
        mode = EXACT_BOOKING_MODE
        try:
            events = self._list_room_events(room_email, now - BOOKING_WINDOW, now + BOOKING_WINDOW)
        except (requests.exceptions.RequestException, CalendarUpstreamError, ValueError) as e:
            return self._upstream_error(mode, user_email, room_email, e)

        if not events:
            app_logger.info(f"No existing bookings found for {room_email} around {now.isoformat()}")
            return CalendarCheckResult(
                CalendarStatus.NO_MATCHING_EVENT, mode, "No existing booking found"
            )

        for event in events:
            if event.has_attendee(user_email):
                checked_in = self._check_in(room_email, event, user_email, now)
                app_logger.info(
                    f"✓ {user_email} authorized for booking '{event.subject}' in {room_email}"
                )
                return CalendarCheckResult(
                    CalendarStatus.AUTHORIZED,
                    mode,
                    "User authorized for existing booking",
                    event_id=event.id,
                    event_subject=event.subject,
                    meeting_start=event.start,
                    checked_in=checked_in,
                )

        app_logger.info(f"{user_email} is not an attendee of any booking in {room_email}")
        return CalendarCheckResult(
            CalendarStatus.USER_UNAUTHORIZED, mode, "User not authorized for existing booking"
        )

    def check_active_meeting(self, user_email: str, room_email: str) -> CalendarCheckResult:
        now = self._clock()
        mode = ACTIVE_MEETING_MODE
        try:
            events = self._list_room_events(room_email, now, now + MEETING_LOOKAHEAD)
        except (requests.exceptions.RequestException, CalendarUpstreamError, ValueError) as e:
            return self._upstream_error(mode, user_email, room_email, e)

        in_progress = [event for event in events if event.start <= now <= event.end]
        if not in_progress:
            app_logger.info(f"No active meeting in {room_email} at {now.isoformat()}")
            return CalendarCheckResult(
                CalendarStatus.NO_MATCHING_EVENT, mode, "No active meeting found"
            )

        for event in in_progress:
            if event.is_organizer(user_email) or event.has_attendee(user_email):
                checked_in = self._check_in(room_email, event, user_email, now)
                app_logger.info(
                    f"✓ Active meeting for {user_email}: '{event.subject}' "
                    f"until {event.end.isoformat()}"
                )
                return CalendarCheckResult(
                    CalendarStatus.AUTHORIZED,
                    mode,
                    "User is organizer or attendee of the active meeting",
                    event_id=event.id,
                    event_subject=event.subject,
                    meeting_start=event.start,
                    meeting_end=event.end,
                    checked_in=checked_in,
                )

        app_logger.info(f"{user_email} is not part of the active meeting in {room_email}")
        return CalendarCheckResult(
            CalendarStatus.USER_UNAUTHORIZED,
            mode,
            "User is neither organizer nor attendee of the active meeting",
        )

    def _upstream_error(
        self, mode: str, user_email: str, room_email: str, error: Exception
    ) -> CalendarCheckResult:
        app_logger.error(
            f"Graph API check failed for {user_email} in {room_email}: {error}"
        )
        return CalendarCheckResult(
            CalendarStatus.UPSTREAM_ERROR,
            mode,
            f"Error checking calendar: {error}",
            error=str(error),
        )

    def _check_in(
        self, room_email: str, event: CalendarEvent, user_email: str, now: datetime
    ) -> bool:
        """Append a check-in note to the event body; best effort"""
        note = f"✓ Auto check-in via face recognition at {now.isoformat()} for {user_email}"
        if event.body_type == "html":
            content = f"{event.body_content}<p>{note}</p>"
        else:
            content = f"{event.body_content}\n\n{note}" if event.body_content else note

        try:
            self._graph_request(
                "PATCH",
                f"/users/{room_email}/calendar/events/{event.id}",
                json_body={"body": {"contentType": event.body_type, "content": content}},
            )
        except (requests.exceptions.RequestException, CalendarUpstreamError, ValueError) as e:
            app_logger.warning(f"Auto check-in failed for event {event.id}: {e}")
            return False

        return True

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def test_connection(self) -> Dict[str, Any]:
        try:
            self._get_access_token()
        except (requests.exceptions.RequestException, CalendarUpstreamError) as e:
            return {"success": False, "message": f"Microsoft Graph connection failed: {e}"}
        return {"success": True, "message": "Microsoft Graph connection successful"}
