import json
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from room_access.config.settings import strtobool
from room_access.models import DeviceEndpoint

ACTIVE_MEETING_MODE = "active-meeting"
EXACT_BOOKING_MODE = "exact-booking"
AUTH_MODES = (ACTIVE_MEETING_MODE, EXACT_BOOKING_MODE)


@dataclass(frozen=True)
class GraphConfig:
    """Client-credentials settings for the Microsoft Graph calendar"""

    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    timeout: float = 5.0
    auth_mode: str = ACTIVE_MEETING_MODE

    @property
    def is_configured(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)


@dataclass(frozen=True)
class DeviceConfig:
    """Default controller plus the per-room controller table"""

    default: DeviceEndpoint
    rooms: Mapping[str, DeviceEndpoint] = field(
        default_factory=lambda: MappingProxyType({})
    )
    timeout: float = 5.0
    verify_tls: bool = False

    def endpoint_for_room(self, room_email: Optional[str]) -> Optional[DeviceEndpoint]:
        if not room_email:
            return None
        return self.rooms.get(room_email.casefold())


@dataclass(frozen=True)
class AppConfig:
    """Everything the services need, built once at startup"""

    device: DeviceConfig
    graph: GraphConfig
    db_path: str = ":memory:"
    mappings_file: Optional[str] = None
    health_check_interval: int = 0
    sentry_dsn: Optional[str] = None
    port: int = 5000


def _parse_device_table(raw: str, default: DeviceEndpoint) -> Dict[str, DeviceEndpoint]:
    try:
        entries = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"DAHUA_DEVICES is not valid JSON: {e}") from e

    if not isinstance(entries, list):
        raise ValueError("DAHUA_DEVICES must be a JSON list of device entries")

    rooms: Dict[str, DeviceEndpoint] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValueError(f"Device entry must be an object: {entry!r}")
        endpoint = DeviceEndpoint.from_dict(entry, default)
        key = endpoint.room_email.casefold()
        if key in rooms:
            raise ValueError(f"Room {endpoint.room_email} has more than one device")
        rooms[key] = endpoint
    return rooms


def _read_device_table(environ: Mapping[str, str]) -> Optional[str]:
    inline = environ.get("DAHUA_DEVICES")
    if inline:
        return inline

    path = environ.get("DAHUA_DEVICES_FILE")
    if path:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    return None


def load_config(environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build the application config from environment variables"""
    env = os.environ if environ is None else environ

    default_endpoint = DeviceEndpoint(
        host=env.get("DAHUA_HOST", "192.168.1.108"),
        port=int(env.get("DAHUA_PORT", "80")),
        username=env.get("DAHUA_USER", "admin"),
        password=env.get("DAHUA_PASS", ""),
    )

    raw_table = _read_device_table(env)
    rooms = _parse_device_table(raw_table, default_endpoint) if raw_table else {}

    device = DeviceConfig(
        default=default_endpoint,
        rooms=MappingProxyType(rooms),
        timeout=float(env.get("DAHUA_TIMEOUT", "5")),
        verify_tls=bool(strtobool(env.get("DAHUA_VERIFY_TLS", "false"))),
    )

    auth_mode = env.get("CALENDAR_AUTH_MODE", ACTIVE_MEETING_MODE).strip().lower()
    if auth_mode not in AUTH_MODES:
        raise ValueError(
            f"CALENDAR_AUTH_MODE must be one of {', '.join(AUTH_MODES)}, got {auth_mode!r}"
        )

    graph = GraphConfig(
        tenant_id=env.get("AZURE_TENANT_ID", ""),
        client_id=env.get("AZURE_CLIENT_ID", ""),
        client_secret=env.get("AZURE_CLIENT_SECRET", ""),
        timeout=float(env.get("GRAPH_TIMEOUT", "5")),
        auth_mode=auth_mode,
    )

    return AppConfig(
        device=device,
        graph=graph,
        db_path=env.get("ROOM_ACCESS_DB_PATH", ":memory:"),
        mappings_file=env.get("MAPPINGS_FILE") or None,
        health_check_interval=int(env.get("HEALTH_CHECK_INTERVAL", "0")),
        sentry_dsn=env.get("SENTRY_DSN") or None,
        port=int(env.get("PORT", "5000")),
    )


def load_mappings_file(path: str) -> Dict[str, List[Dict[str, Any]]]:
    """Read the optional seed file with userMappings and roomMappings"""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Mappings file {path} must contain a JSON object")

    return {
        "userMappings": list(data.get("userMappings", [])),
        "roomMappings": list(data.get("roomMappings", [])),
    }
