from room_access.models.user_mapping import UserMapping
from room_access.models.room_mapping import RoomMapping
from room_access.models.access_log import AccessLog
from room_access.models.system_health import SystemHealth
from room_access.models.device_endpoint import DeviceEndpoint
from room_access.models.device_event import DeviceEvent
from room_access.models.access_decision import AccessDecision

__all__ = [
    "UserMapping",
    "RoomMapping",
    "AccessLog",
    "SystemHealth",
    "DeviceEndpoint",
    "DeviceEvent",
    "AccessDecision",
]
