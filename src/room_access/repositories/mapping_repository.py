"""
User and room mapping repositories
"""

import sqlite3
import uuid
from typing import List, Optional

from room_access.database.connection import DatabaseManager
from room_access.models import RoomMapping, UserMapping
from room_access.shared.logger import app_logger
from room_access.shared.time_utils import parse_timestamp, utc_now


class DuplicateMappingError(ValueError):
    """An active mapping already exists for the same device-side key"""


class UserMappingRepository:
    """User mapping database operations"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def create(self, mapping: UserMapping) -> UserMapping:
        """Create new user mapping"""
        mapping_id = str(uuid.uuid4())
        try:
            self.db.execute_query(
                """
                INSERT INTO user_mappings (id, dahua_user_id, email, name, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    mapping_id,
                    mapping.external_user_id,
                    mapping.email,
                    mapping.name,
                    1 if mapping.is_active else 0,
                    utc_now().isoformat(),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateMappingError(
                f"User {mapping.external_user_id} is already mapped"
            ) from e

        return self.get_by_id(mapping_id)

    def get_by_id(self, mapping_id: str) -> Optional[UserMapping]:
        row = self.db.fetch_one("SELECT * FROM user_mappings WHERE id = ?", (mapping_id,))
        return self._row_to_mapping(row) if row else None

    def get_all(self) -> List[UserMapping]:
        """All user mappings, deactivated ones included"""
        rows = self.db.fetch_all("SELECT * FROM user_mappings ORDER BY created_at")
        return [self._row_to_mapping(row) for row in rows]

    def get_active(self) -> List[UserMapping]:
        """Get all active user mappings"""
        rows = self.db.fetch_all(
            "SELECT * FROM user_mappings WHERE is_active = 1 ORDER BY created_at"
        )
        return [self._row_to_mapping(row) for row in rows]

    def get_by_external_id(self, external_user_id: str) -> Optional[UserMapping]:
        """Active mapping for a device user id, if any"""
        row = self.db.fetch_one(
            "SELECT * FROM user_mappings WHERE dahua_user_id = ? AND is_active = 1",
            (external_user_id,),
        )
        return self._row_to_mapping(row) if row else None

    def deactivate(self, mapping_id: str) -> bool:
        """Soft delete: the row stays for history"""
        with self.db.get_cursor() as cursor:
            cursor.execute(
                "UPDATE user_mappings SET is_active = 0 WHERE id = ? AND is_active = 1",
                (mapping_id,),
            )
            success = cursor.rowcount > 0

        app_logger.info(f"UserMappingRepository: deactivate {mapping_id} -> {success}")
        return success

    def _row_to_mapping(self, row) -> UserMapping:
        return UserMapping(
            id=row["id"],
            external_user_id=row["dahua_user_id"],
            email=row["email"],
            name=row["name"],
            is_active=bool(row["is_active"]),
            created_at=parse_timestamp(row["created_at"]),
        )


class RoomMappingRepository:
    """Room mapping database operations"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def create(self, mapping: RoomMapping) -> RoomMapping:
        """Create new room mapping"""
        mapping_id = str(uuid.uuid4())
        try:
            self.db.execute_query(
                """
                INSERT INTO room_mappings (id, door_channel, room_email, room_name, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    mapping_id,
                    mapping.door_channel,
                    mapping.room_email,
                    mapping.room_name,
                    1 if mapping.is_active else 0,
                    utc_now().isoformat(),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateMappingError(
                f"Door channel {mapping.door_channel} is already mapped"
            ) from e

        return self.get_by_id(mapping_id)

    def get_by_id(self, mapping_id: str) -> Optional[RoomMapping]:
        row = self.db.fetch_one("SELECT * FROM room_mappings WHERE id = ?", (mapping_id,))
        return self._row_to_mapping(row) if row else None

    def get_all(self) -> List[RoomMapping]:
        rows = self.db.fetch_all("SELECT * FROM room_mappings ORDER BY door_channel, created_at")
        return [self._row_to_mapping(row) for row in rows]

    def get_active(self) -> List[RoomMapping]:
        """Get all active room mappings"""
        rows = self.db.fetch_all(
            "SELECT * FROM room_mappings WHERE is_active = 1 ORDER BY door_channel"
        )
        return [self._row_to_mapping(row) for row in rows]

    def get_by_channel(self, door_channel: int) -> Optional[RoomMapping]:
        """Active mapping for a door channel, if any"""
        row = self.db.fetch_one(
            "SELECT * FROM room_mappings WHERE door_channel = ? AND is_active = 1",
            (door_channel,),
        )
        return self._row_to_mapping(row) if row else None

    def deactivate(self, mapping_id: str) -> bool:
        """Soft delete: the row stays for history"""
        with self.db.get_cursor() as cursor:
            cursor.execute(
                "UPDATE room_mappings SET is_active = 0 WHERE id = ? AND is_active = 1",
                (mapping_id,),
            )
            success = cursor.rowcount > 0

        app_logger.info(f"RoomMappingRepository: deactivate {mapping_id} -> {success}")
        return success

    def _row_to_mapping(self, row) -> RoomMapping:
        return RoomMapping(
            id=row["id"],
            door_channel=row["door_channel"],
            room_email=row["room_email"],
            room_name=row["room_name"],
            is_active=bool(row["is_active"]),
            created_at=parse_timestamp(row["created_at"]),
        )
