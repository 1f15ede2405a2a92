from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def as_utc_naive(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are taken as UTC already."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_iso(ts: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into naive UTC."""
    if not ts:
        return None
    return as_utc_naive(datetime.fromisoformat(ts.strip().replace("Z", "+00:00")))


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return as_utc_naive(value).isoformat(timespec="seconds") + "Z"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utcnow_iso() -> str:
    return utcnow().isoformat(timespec="seconds") + "Z"


def day_window(day: date, tz: str) -> tuple[datetime, datetime]:
    """Half-open [local midnight, next local midnight) for ``day``, in naive UTC."""
    zone = ZoneInfo(tz)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return as_utc_naive(start), as_utc_naive(end)


def format_local(value: datetime | None, tz: str, fmt: str = "%Y/%m/%d %H:%M") -> str:
    if value is None:
        return ""
    aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return aware.astimezone(ZoneInfo(tz)).strftime(fmt)


def local_date(value: datetime, tz: str) -> date:
    """Calendar date in ``tz`` of a naive-UTC (or aware) instant."""
    aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return aware.astimezone(ZoneInfo(tz)).date()
