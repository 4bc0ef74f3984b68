from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from room_access.models.user_mapping import serialize_datetime

HEALTH_STATUSES = ("online", "offline", "warning")


@dataclass
class SystemHealth:
    """Last known state of one upstream dependency"""

    service: str  # dahua, microsoft-graph, server
    status: str = "warning"
    last_check: Optional[datetime] = None
    details: Optional[str] = None
    id: Optional[str] = None

    def to_dict(self):
        return {
            "id": self.id,
            "service": self.service,
            "status": self.status,
            "lastCheck": serialize_datetime(self.last_check),
            "details": self.details,
        }
