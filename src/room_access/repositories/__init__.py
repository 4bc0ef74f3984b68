from room_access.repositories.mapping_repository import (
    DuplicateMappingError,
    RoomMappingRepository,
    UserMappingRepository,
)
from room_access.repositories.access_log_repository import AccessLogRepository
from room_access.repositories.health_repository import SystemHealthRepository

__all__ = [
    "DuplicateMappingError",
    "UserMappingRepository",
    "RoomMappingRepository",
    "AccessLogRepository",
    "SystemHealthRepository",
]
