"""
Access decision threaded through the pipeline, and its justification codes
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from room_access.models.access_log import AccessLog

USER_NOT_MAPPED = "user-not-mapped"
ROOM_NOT_MAPPED = "room-not-mapped"
ACTIVE_MEETING_ACCESS = "active-meeting-access"
NO_ACTIVE_MEETING = "no-active-meeting"
VALID_BOOKING = "valid-booking"
NO_BOOKING = "no-booking"
UNAUTHORIZED = "unauthorized"
CALENDAR_ERROR = "calendar-error"


@dataclass(frozen=True)
class AccessDecision:
    """One grant/deny outcome for one event"""

    external_user_id: str
    door_channel: int
    event_kind: str
    granted: bool
    justification_code: str
    justification_detail: str
    occurred_at: datetime
    resolved_user_email: Optional[str] = None
    resolved_room_email: Optional[str] = None
    related_calendar_event_id: Optional[str] = None

    def to_access_log(self, metadata: Optional[Dict[str, Any]] = None) -> AccessLog:
        return AccessLog(
            dahua_user_id=self.external_user_id,
            user_email=self.resolved_user_email,
            door_channel=self.door_channel,
            room_email=self.resolved_room_email,
            event_type=self.event_kind,
            access_granted=self.granted,
            reason=self.justification_code,
            detail=self.justification_detail,
            event_id=self.related_calendar_event_id,
            timestamp=self.occurred_at,
            metadata=metadata or {},
        )
