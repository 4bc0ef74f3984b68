from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class DeviceEndpoint:
    """Address and credentials of one Dahua access controller"""

    host: str
    port: int = 80
    username: str = "admin"
    password: str = ""
    room_email: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.host}:{self.port}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses (credentials omitted)"""
        return {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "roomEmail": self.room_email,
        }

    @staticmethod
    def from_dict(data: dict, default: "DeviceEndpoint") -> "DeviceEndpoint":
        """Create a room endpoint, inheriting missing fields from the default controller"""
        host = data.get("host")
        if not host:
            raise ValueError(f"Device entry is missing 'host': {data!r}")
        room_email = data.get("roomEmail") or data.get("room_email")
        if not room_email:
            raise ValueError(f"Device entry is missing 'roomEmail': {data!r}")

        return DeviceEndpoint(
            host=host,
            port=int(data.get("port") or default.port),
            username=data.get("username") or default.username,
            password=data.get("password") or default.password,
            room_email=room_email,
        )
