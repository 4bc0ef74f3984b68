from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current instant, second precision, UTC"""
    return datetime.now(timezone.utc).replace(microsecond=0)


def parse_timestamp(value) -> Optional[datetime]:
    """Read back an ISO timestamp stored by a repository"""
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def local_now() -> datetime:
    """Current instant in the server's local time zone"""
    return datetime.now().astimezone().replace(microsecond=0)


def start_of_day(moment: datetime) -> datetime:
    """Midnight of ``moment``'s calendar day, in ``moment``'s own zone"""
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)
