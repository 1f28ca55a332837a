from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_now(tz_name: str) -> datetime:
    """Wall-clock time at the parking site; calendar rules ("today") are judged here."""
    return datetime.now(ZoneInfo(tz_name))
