# dates.py
from datetime import datetime, date, timezone, timedelta
from typing import Any, Optional


def parse_datetime(value: Any) -> Optional[datetime]:
    """ISO strings (with 'Z' or offset), dates and datetimes -> aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        s = str(value).strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            try:
                dt = datetime.strptime(s[:10], "%Y-%m-%d")
            except ValueError:
                return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_now() -> str:
    return utcnow().isoformat().replace("+00:00", "Z")


def format_date(value: Any, fmt: str = "%b %d, %Y") -> str:
    dt = parse_datetime(value)
    return dt.strftime(fmt) if dt else "—"


def format_datetime(value: Any) -> str:
    return format_date(value, "%b %d, %Y %H:%M")


def format_date_for_input(value: Any) -> str:
    """Value for <input type="date">."""
    dt = parse_datetime(value)
    return dt.strftime("%Y-%m-%d") if dt else ""


def is_date_expired(value: Any, now: Optional[datetime] = None) -> bool:
    """True once the moment has passed."""
    dt = parse_datetime(value)
    if dt is None:
        return False
    return dt < (parse_datetime(now) or utcnow())


def days_from_now(days: int, now: Optional[datetime] = None) -> str:
    return format_date_for_input((parse_datetime(now) or utcnow()) + timedelta(days=days))
