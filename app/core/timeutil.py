from datetime import datetime, timezone


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def epoch_seconds(dt: datetime | None = None) -> int:
    return int((dt or now_utc()).timestamp())


def epoch_millis(dt: datetime | None = None) -> int:
    return int((dt or now_utc()).timestamp() * 1000)


def iso_z(dt: datetime | None = None) -> str:
    """ISO-8601 UTC with millisecond precision and a trailing ``Z``."""
    dt = (dt or now_utc()).astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
