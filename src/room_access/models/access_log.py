"""
Access log model
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from room_access.models.user_mapping import serialize_datetime


@dataclass
class AccessLog:
    """Append-only audit record of one access decision"""

    id: Optional[str] = None
    dahua_user_id: Optional[str] = None
    user_email: Optional[str] = None
    door_channel: Optional[int] = None
    room_email: Optional[str] = None
    event_type: str = ""  # FaceRecognition, AccessControl
    access_granted: bool = False
    reason: str = ""  # justification code, e.g. active-meeting-access, user-not-mapped
    detail: Optional[str] = None
    event_id: Optional[str] = None  # calendar event id when a booking matched
    timestamp: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self):
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "dahuaUserId": self.dahua_user_id,
            "userEmail": self.user_email,
            "doorChannel": self.door_channel,
            "roomEmail": self.room_email,
            "eventType": self.event_type,
            "accessGranted": self.access_granted,
            "reason": self.reason,
            "detail": self.detail,
            "eventId": self.event_id,
            "timestamp": serialize_datetime(self.timestamp),
            "metadata": self.metadata,
        }
