"""
Room mapping model
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from room_access.models.user_mapping import serialize_datetime


@dataclass
class RoomMapping:
    """Links a controller door channel to a room resource mailbox"""

    id: Optional[str] = None
    door_channel: int = 0
    room_email: str = ""
    room_name: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    def to_dict(self):
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "doorChannel": self.door_channel,
            "roomEmail": self.room_email,
            "roomName": self.room_name,
            "isActive": self.is_active,
            "createdAt": serialize_datetime(self.created_at),
        }

    @staticmethod
    def from_dict(data: dict) -> "RoomMapping":
        """Create RoomMapping instance from a request body"""
        return RoomMapping(
            id=data.get("id"),
            door_channel=int(data.get("doorChannel", 0)),
            room_email=data.get("roomEmail", "").strip(),
            room_name=data.get("roomName"),
            is_active=data.get("isActive", True),
        )
