"""Small mapping helpers shared by resource definitions."""

from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

# Resources that shape other users' visibility are written only with this
ADMIN_WRITE_PERMISSIONS = ("admin:write:any",)


def iso(value: Any) -> Any:
    """Datetimes/dates as ISO strings; anything else unchanged."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def pick(source: Mapping[str, Any], names: Iterable[str]) -> dict:
    """Copy only the keys present in ``source``, so patches stay partial."""
    return {name: source[name] for name in names if name in source}


def strip_text(payload: dict, *names: str) -> dict:
    for name in names:
        if isinstance(payload.get(name), str):
            payload[name] = payload[name].strip()
    return payload
