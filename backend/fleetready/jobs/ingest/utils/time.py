from datetime import date, datetime, timezone
from typing import Optional

import pytz

from fleetready.core.errors import FormatError

# Tried in order after ISO 8601
_VENDOR_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%Y%m%d",
    "%d-%b-%Y",
    "%d %b %Y",
)


def parse_vendor_timestamp(value, vendor_tz: str = "UTC") -> Optional[datetime]:
    """
    Parse a vendor timestamp into an aware UTC datetime.
    Naive values are read as wall-clock time in vendor_tz. Returns None for blank.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        raw = str(value).strip()
        if not raw:
            return None
        dt = _parse_text(raw)

    if dt.tzinfo is None:
        try:
            tz = pytz.timezone(vendor_tz)
        except pytz.UnknownTimeZoneError:
            raise FormatError(f"Unknown vendor timezone: {vendor_tz}")
        dt = tz.localize(dt)
    return dt.astimezone(timezone.utc)


def _parse_text(raw: str) -> datetime:
    iso = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        return datetime.fromisoformat(iso)
    except ValueError:
        pass
    for fmt in _VENDOR_FORMATS:
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    raise FormatError(f"Bad timestamp value: {raw!r}")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
