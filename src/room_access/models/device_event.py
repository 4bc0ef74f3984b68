"""
Canonical form of a webhook event pushed by the controller
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

FACE_RECOGNITION = "FaceRecognition"
ACCESS_CONTROL = "AccessControl"
RECOGNIZED_KINDS = (FACE_RECOGNITION, ACCESS_CONTROL)
ACTION_START = "Start"

# Never matches a real mapping, so a fallback event always ends as user-not-mapped
UNRESOLVED_USER = "unresolved"


@dataclass(frozen=True)
class DeviceEvent:
    """Normalized webhook event"""

    kind: str
    action: str
    channel_index: int
    user_identity: str
    door_identity: int
    raw: Any = None
    fallback_reason: Optional[str] = None
    source: str = "webhook"

    @property
    def is_fallback(self) -> bool:
        return self.fallback_reason is not None

    @property
    def triggers_decision(self) -> bool:
        """Only recognition start events go through the access pipeline"""
        return self.action == ACTION_START and self.kind in RECOGNIZED_KINDS

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "code": self.kind,
            "action": self.action,
            "index": self.channel_index,
            "userId": self.user_identity,
            "door": self.door_identity,
            "source": self.source,
        }
        if self.fallback_reason:
            data["fallbackReason"] = self.fallback_reason
        return data


def default_event(reason: str, raw: Any = None, source: str = "webhook") -> DeviceEvent:
    """Face recognition start on channel 1 with no known user"""
    return DeviceEvent(
        kind=FACE_RECOGNITION,
        action=ACTION_START,
        channel_index=1,
        user_identity=UNRESOLVED_USER,
        door_identity=1,
        raw=raw,
        fallback_reason=reason,
        source=source,
    )
