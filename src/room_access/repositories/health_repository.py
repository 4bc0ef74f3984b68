import uuid
from typing import List, Optional

from room_access.database.connection import DatabaseManager
from room_access.models import SystemHealth
from room_access.models.system_health import HEALTH_STATUSES
from room_access.shared.time_utils import parse_timestamp, utc_now

MONITORED_SERVICES = ("dahua", "microsoft-graph", "server")


class SystemHealthRepository:
    """Health records keyed by service name"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def upsert(self, service: str, status: str, details: Optional[str] = None) -> SystemHealth:
        """Overwrite the record for a service, creating it on first probe"""
        if status not in HEALTH_STATUSES:
            raise ValueError(f"Unknown health status {status!r}")

        existing = self.get(service)
        record_id = existing.id if existing else str(uuid.uuid4())
        if details is None and existing:
            details = existing.details

        self.db.execute_query(
            """
            INSERT OR REPLACE INTO system_health (service, id, status, last_check, details)
            VALUES (?, ?, ?, ?, ?)
            """,
            (service, record_id, status, utc_now().isoformat(), details or ""),
        )
        return self.get(service)

    def get(self, service: str) -> Optional[SystemHealth]:
        row = self.db.fetch_one("SELECT * FROM system_health WHERE service = ?", (service,))
        return self._row_to_health(row) if row else None

    def get_all(self) -> List[SystemHealth]:
        rows = self.db.fetch_all("SELECT * FROM system_health ORDER BY service")
        return [self._row_to_health(row) for row in rows]

    def initialize_defaults(self):
        """Seed a record for every monitored service that has none yet"""
        for service in MONITORED_SERVICES:
            if not self.get(service):
                self.upsert(service, "warning", "Not checked yet")

    def _row_to_health(self, row) -> SystemHealth:
        return SystemHealth(
            id=row["id"],
            service=row["service"],
            status=row["status"],
            last_check=parse_timestamp(row["last_check"]),
            details=row["details"],
        )
