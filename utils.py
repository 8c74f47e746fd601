from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from fastapi import Header

import db

Accessor = Callable[[Any], Any]


def dig(source: Any, *path: str) -> Any:
    """Follow attribute/key names through models and dicts. Missing steps give None."""
    value = source
    for name in path:
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(name)
        else:
            value = getattr(value, name, None)
    return value


def pluck(*path: str) -> Accessor:
    return lambda source: dig(source, *path)


def first_of(source: Any, accessors: Iterable[Accessor], default: Any = None) -> Any:
    """Evaluate accessors in order and return the first truthy value."""
    for accessor in accessors:
        value = accessor(source)
        if value:
            return value
    return default


def text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(text(v) for v in value)
    return str(value)


def format_time(time24: Optional[str]) -> str:
    """'14:30' -> '2:30 PM'. Unparseable input is returned as is."""
    if not time24:
        return "Not set"
    try:
        hours, minutes = time24.split(":")[:2]
        hour = int(hours)
    except (ValueError, AttributeError):
        return time24
    ampm = "PM" if hour >= 12 else "AM"
    hour12 = hour % 12 or 12
    return f"{hour12}:{minutes} {ampm}"


def format_date(value: Optional[datetime], default: str = "N/A") -> str:
    if not isinstance(value, datetime):
        return default
    return value.strftime("%b %d, %Y")


def format_datetime(value: Optional[datetime], default: str = "N/A") -> str:
    if not isinstance(value, datetime):
        return default
    return value.strftime("%b %d, %Y %I:%M %p")


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def admin_actor(x_admin_actor: Optional[str] = Header(None)) -> str:
    """
    Name recorded as the author of admin writes.
    Authentication happens upstream; the proxy may pass the admin's name along.
    """
    if x_admin_actor and x_admin_actor.strip():
        return x_admin_actor.strip()
    return db.admin_actor
