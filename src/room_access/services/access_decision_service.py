"""
Access decision pipeline.

received -> normalized -> user resolved -> room resolved -> calendar checked
-> door commanded (only when authorized) -> logged -> responded.

Every event that reaches resolution produces exactly one access log row.
"""

import math
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from room_access.config.config_manager import ACTIVE_MEETING_MODE
from room_access.models import AccessDecision, DeviceEvent
from room_access.models.access_decision import (
    ACTIVE_MEETING_ACCESS,
    CALENDAR_ERROR,
    NO_ACTIVE_MEETING,
    NO_BOOKING,
    ROOM_NOT_MAPPED,
    UNAUTHORIZED,
    USER_NOT_MAPPED,
    VALID_BOOKING,
)
from room_access.repositories.access_log_repository import AccessLogRepository
from room_access.services.calendar_service import (
    CalendarCheckResult,
    CalendarStatus,
    GraphCalendarService,
)
from room_access.services.device_service import DahuaDeviceService, DoorControlResult
from room_access.services.mapping_resolver import MappingResolver
from room_access.shared.logger import app_logger
from room_access.shared.time_utils import utc_now


def justification_for(result: CalendarCheckResult) -> str:
    """Audit reason code for a calendar outcome in its mode"""
    if result.status == CalendarStatus.UPSTREAM_ERROR:
        return CALENDAR_ERROR
    if result.status == CalendarStatus.USER_UNAUTHORIZED:
        return UNAUTHORIZED

    active = result.mode == ACTIVE_MEETING_MODE
    if result.status == CalendarStatus.AUTHORIZED:
        return ACTIVE_MEETING_ACCESS if active else VALID_BOOKING
    return NO_ACTIVE_MEETING if active else NO_BOOKING


class AccessDecisionService:
    """Turns one device event into one access decision"""

    def __init__(
        self,
        resolver: MappingResolver,
        calendar: GraphCalendarService,
        device: DahuaDeviceService,
        access_logs: AccessLogRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.resolver = resolver
        self.calendar = calendar
        self.device = device
        self.access_logs = access_logs
        self._clock = clock

    def process_event(self, event: DeviceEvent) -> Dict[str, Any]:
        """Decide, actuate and audit; returns the webhook response body"""
        now = self._clock()
        response: Dict[str, Any] = {
            "success": True,
            "accessGranted": False,
            "reason": "Event processed",
            "timestamp": now.isoformat(),
        }

        if not event.triggers_decision:
            app_logger.info(
                f"[WEBHOOK] Ignoring {event.kind}/{event.action} event on channel {event.channel_index}"
            )
            return response

        user_id = event.user_identity
        door = event.door_identity
        app_logger.info(
            f"[WEBHOOK] {event.kind} event: user {user_id}, door {door}"
            + (f" (fallback: {event.fallback_reason})" if event.is_fallback else "")
        )

        metadata: Dict[str, Any] = {
            "eventData": event.raw,
            "normalizedEvent": event.to_dict(),
            "source": event.source,
        }

        user = self.resolver.resolve_user(user_id)
        if user is None:
            app_logger.warning(f"User ID {user_id} not mapped to any email address")
            response["reason"] = "User not mapped"
            self._record(
                AccessDecision(
                    external_user_id=user_id,
                    door_channel=door,
                    event_kind=event.kind,
                    granted=False,
                    justification_code=USER_NOT_MAPPED,
                    justification_detail=f"No active mapping for user {user_id}",
                    occurred_at=now,
                ),
                metadata,
            )
            return response

        room = self.resolver.resolve_room(door)
        if room is None:
            app_logger.warning(f"Door {door} not mapped to any room email")
            response["reason"] = "Room not mapped"
            self._record(
                AccessDecision(
                    external_user_id=user_id,
                    door_channel=door,
                    event_kind=event.kind,
                    granted=False,
                    justification_code=ROOM_NOT_MAPPED,
                    justification_detail=f"No active mapping for door {door}",
                    occurred_at=now,
                    resolved_user_email=user.email,
                ),
                metadata,
            )
            return response

        response["userEmail"] = user.email
        response["roomEmail"] = room.room_email

        calendar_result = self._check_calendar(user.email, room.room_email)
        metadata["calendar"] = calendar_result.to_dict()
        code = justification_for(calendar_result)

        if not calendar_result.authorized:
            response["reason"] = self._denial_reason(calendar_result, user.email, room.room_email)
            app_logger.info(
                f"✗ Access denied for {user.email} in {room.room_email}: {code}"
            )
            self._record(
                AccessDecision(
                    external_user_id=user_id,
                    door_channel=door,
                    event_kind=event.kind,
                    granted=False,
                    justification_code=code,
                    justification_detail=calendar_result.reason,
                    occurred_at=now,
                    resolved_user_email=user.email,
                    resolved_room_email=room.room_email,
                ),
                metadata,
            )
            return response

        door_result = self._open_door(door, room.room_email, calendar_result, now)
        metadata["doorResult"] = door_result.to_dict()
        if not door_result.success:
            app_logger.error(
                f"Access granted for {user.email} but door {door} did not open: {door_result.message}"
            )

        response["accessGranted"] = True
        response["eventId"] = calendar_result.event_id
        response["meetingDetails"] = calendar_result.to_dict()
        if calendar_result.mode == ACTIVE_MEETING_MODE and calendar_result.meeting_end:
            response["reason"] = (
                f"Active meeting access - door open until {calendar_result.meeting_end.isoformat()}"
            )
        else:
            response["reason"] = f"Valid booking access - {calendar_result.event_subject}"

        app_logger.info(
            f"✓ Access granted for {user.email} in {room.room_email} "
            f"({calendar_result.event_subject})"
        )
        self._record(
            AccessDecision(
                external_user_id=user_id,
                door_channel=door,
                event_kind=event.kind,
                granted=True,
                justification_code=code,
                justification_detail=calendar_result.reason,
                occurred_at=now,
                resolved_user_email=user.email,
                resolved_room_email=room.room_email,
                related_calendar_event_id=calendar_result.event_id,
            ),
            metadata,
        )
        return response

    def _check_calendar(self, user_email: str, room_email: str) -> CalendarCheckResult:
        try:
            return self.calendar.check_access(user_email, room_email)
        except Exception as e:
            app_logger.error(f"Calendar check crashed for {user_email}: {e}", exc_info=True)
            return CalendarCheckResult(
                status=CalendarStatus.UPSTREAM_ERROR,
                mode=getattr(self.calendar, "mode", ACTIVE_MEETING_MODE),
                reason=f"Error checking calendar: {e}",
                error=str(e),
            )

    def _open_door(
        self, door: int, room_email: str, calendar_result: CalendarCheckResult, now: datetime
    ) -> DoorControlResult:
        duration: Optional[int] = None
        if calendar_result.mode == ACTIVE_MEETING_MODE and calendar_result.meeting_end:
            duration = max(1, math.ceil((calendar_result.meeting_end - now).total_seconds()))

        try:
            return self.device.open_door(door, room_email, duration=duration)
        except Exception as e:
            app_logger.error(f"Door command crashed for door {door}: {e}", exc_info=True)
            return DoorControlResult(False, f"Door command failed: {e}", action="open")

    @staticmethod
    def _denial_reason(result: CalendarCheckResult, user_email: str, room_email: str) -> str:
        if result.status == CalendarStatus.UPSTREAM_ERROR:
            return f"Calendar check failed: {result.error or result.reason}"
        if result.status == CalendarStatus.USER_UNAUTHORIZED:
            return f"{user_email} is not part of the meeting in {room_email}"
        if result.mode == ACTIVE_MEETING_MODE:
            return f"No active meeting found for {user_email} in {room_email}"
        return f"No valid booking found for {user_email} in {room_email}"

    def _record(self, decision: AccessDecision, metadata: Dict[str, Any]):
        self.access_logs.append(decision.to_access_log(metadata))
