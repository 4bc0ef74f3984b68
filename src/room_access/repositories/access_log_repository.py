"""
Access log repository: append and read only
"""

import json
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from room_access.database.connection import DatabaseManager
from room_access.models import AccessLog
from room_access.shared.time_utils import parse_timestamp, utc_now


class AccessLogRepository:
    """Access log database operations"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def append(self, log: AccessLog) -> AccessLog:
        """Append a new access log entry"""
        log_id = str(uuid.uuid4())
        timestamp = (log.timestamp or utc_now()).astimezone(timezone.utc).replace(microsecond=0)

        self.db.execute_query(
            """
            INSERT INTO access_logs (
                id, dahua_user_id, user_email, door_channel, room_email, event_type,
                access_granted, reason, detail, event_id, timestamp, metadata
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                log_id,
                log.dahua_user_id,
                log.user_email,
                log.door_channel,
                log.room_email,
                log.event_type,
                1 if log.access_granted else 0,
                log.reason,
                log.detail,
                log.event_id,
                timestamp.isoformat(),
                json.dumps(log.metadata or {}, default=str),
            ),
        )

        return self.get_by_id(log_id)

    def get_by_id(self, log_id: str) -> Optional[AccessLog]:
        row = self.db.fetch_one("SELECT * FROM access_logs WHERE id = ?", (log_id,))
        return self._row_to_log(row) if row else None

    def get_recent(self, limit: Optional[int] = 50) -> List[AccessLog]:
        """Most recent first, optionally capped"""
        query = "SELECT * FROM access_logs ORDER BY timestamp DESC, rowid DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (max(int(limit), 0),)

        rows = self.db.fetch_all(query, params)
        return [self._row_to_log(row) for row in rows]

    def get_since(self, since: datetime) -> List[AccessLog]:
        """All entries at or after an instant, most recent first"""
        rows = self.db.fetch_all(
            """
            SELECT * FROM access_logs
            WHERE timestamp >= ?
            ORDER BY timestamp DESC, rowid DESC
            """,
            (since.astimezone(timezone.utc).replace(microsecond=0).isoformat(),),
        )
        return [self._row_to_log(row) for row in rows]

    def count(self) -> int:
        row = self.db.fetch_one("SELECT COUNT(*) AS count FROM access_logs")
        return row["count"] if row else 0

    def _row_to_log(self, row) -> AccessLog:
        return AccessLog(
            id=row["id"],
            dahua_user_id=row["dahua_user_id"],
            user_email=row["user_email"],
            door_channel=row["door_channel"],
            room_email=row["room_email"],
            event_type=row["event_type"],
            access_granted=bool(row["access_granted"]),
            reason=row["reason"],
            detail=row["detail"],
            event_id=row["event_id"],
            timestamp=parse_timestamp(row["timestamp"]),
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        )
