from typing import Optional

from room_access.models import RoomMapping, UserMapping
from room_access.repositories.mapping_repository import (
    RoomMappingRepository,
    UserMappingRepository,
)


class MappingResolver:
    """Looks up active user and room mappings; inactive counts as absent"""

    def __init__(self, user_repo: UserMappingRepository, room_repo: RoomMappingRepository):
        self.user_repo = user_repo
        self.room_repo = room_repo

    def resolve_user(self, external_user_id: str) -> Optional[UserMapping]:
        if external_user_id is None:
            return None
        return self.user_repo.get_by_external_id(str(external_user_id))

    def resolve_room(self, door_channel: int) -> Optional[RoomMapping]:
        try:
            channel = int(door_channel)
        except (TypeError, ValueError):
            return None
        return self.room_repo.get_by_channel(channel)
