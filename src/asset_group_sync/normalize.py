"""Field and timestamp normalization for asset extract ingestion.

Two textual timestamp forms exist:
  extract form:   'MM/dd/yyyy hh:mm:ss AM|PM' (12-hour clock), used in the
                  extract and accepted as the legacy checkpoint form.
  canonical form: 'YYYY-MM-DDTHH:MM:SS', unzoned local time, written to the
                  checkpoint file.

The AM/PM marker is matched literally rather than through strptime's %p,
which is locale-dependent.
"""

from __future__ import annotations

import re
from datetime import datetime

CANONICAL_TS_FORMAT = "%Y-%m-%dT%H:%M:%S"

_EXTRACT_TS_RE = re.compile(
    r"^(\d{2})/(\d{2})/(\d{4}) (\d{2}):(\d{2}):(\d{2}) ([AaPp][Mm])$"
)


class TimestampParseError(ValueError):
    """Raised when a non-empty timestamp field does not match the expected form."""


def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


def parse_extract_ts(value: str) -> datetime:
    """Parse 'MM/dd/yyyy hh:mm:ss AM|PM'.

    Raises TimestampParseError on any deviation, including an hour outside
    01-12 or an impossible calendar date.
    """
    m = _EXTRACT_TS_RE.match(value.strip())
    if not m:
        raise TimestampParseError(
            f"invalid timestamp {value!r}; expected MM/dd/yyyy hh:mm:ss AM|PM"
        )
    month, day, year, hour, minute, second = (int(g) for g in m.groups()[:6])
    marker = m.group(7).upper()
    if not 1 <= hour <= 12:
        raise TimestampParseError(f"invalid 12-hour clock value in {value!r}")
    hour = hour % 12
    if marker == "PM":
        hour += 12
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError as exc:
        raise TimestampParseError(f"invalid timestamp {value!r}: {exc}") from exc


def parse_optional_extract_ts(value: str | None) -> datetime | None:
    """Empty or missing field → None; anything else must parse."""
    v = trim(value)
    if v is None:
        return None
    return parse_extract_ts(v)


def format_extract_ts(ts: datetime) -> str:
    hour = ts.hour % 12 or 12
    marker = "AM" if ts.hour < 12 else "PM"
    return (
        f"{ts.month:02d}/{ts.day:02d}/{ts.year:04d} "
        f"{hour:02d}:{ts.minute:02d}:{ts.second:02d} {marker}"
    )


def format_canonical_ts(ts: datetime) -> str:
    return ts.strftime(CANONICAL_TS_FORMAT)


def parse_any_ts(value: str) -> datetime:
    """Parse the canonical form, falling back to the legacy 12-hour form."""
    v = value.strip()
    try:
        return datetime.strptime(v, CANONICAL_TS_FORMAT)
    except ValueError:
        pass
    return parse_extract_ts(v)
