"""
User mapping model
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


def serialize_datetime(dt):
    """Serialize datetime to ISO format string"""
    if dt is None:
        return None
    if isinstance(dt, str):
        return dt
    if isinstance(dt, datetime):
        return dt.isoformat()
    return str(dt)


@dataclass
class UserMapping:
    """Links a device-side user id to the person's mailbox"""

    id: Optional[str] = None
    external_user_id: str = ""
    email: str = ""
    name: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    def to_dict(self):
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "dahuaUserId": self.external_user_id,
            "email": self.email,
            "name": self.name,
            "isActive": self.is_active,
            "createdAt": serialize_datetime(self.created_at),
        }

    @staticmethod
    def from_dict(data: dict) -> "UserMapping":
        """Create UserMapping instance from a request body"""
        return UserMapping(
            id=data.get("id"),
            external_user_id=str(data.get("dahuaUserId", "")).strip(),
            email=data.get("email", "").strip(),
            name=data.get("name"),
            is_active=data.get("isActive", True),
        )
