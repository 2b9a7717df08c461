"""Date/time collaborator: current instant, monotonic time, and token formatting.

Route templates and entry timestamps use Luxon-style format tokens
(``yyyy-MM-dd'T'HH:mm:ss.SSSZZ``).  ``format_date`` translates those tokens
directly instead of mapping them onto ``strftime`` so millisecond and offset
tokens behave the same on every platform.  It returns ``None`` rather than
raising when the value or the format cannot be handled.
"""

from __future__ import annotations

import re
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any

DATE_FORMAT_DAY = "yyyy-MM-dd"
DATE_FORMAT_TIMESTAMP = "yyyy-MM-dd'T'HH:mm:ss.SSSZZ"
LOG_TIMESTAMP_FORMAT = "yyyyMMddHHmmssSSS"
ISO_FALLBACK_TIMESTAMP = "1970-01-01T00:00:00.000Z"
ISO_FALLBACK_DATE = "1970-01-01"
FALLBACK_FILE_TIMESTAMP = "19700101000000000"

LEGACY_FORMAT_ALIASES: dict[str, str] = {
    "YYYY-MM-DD": DATE_FORMAT_DAY,
    "DD-MM-YYYY": "dd-MM-yyyy",
}

_TOKEN_PATTERN = re.compile(
    r"'[^']*'|yyyy|yy|MM|M|dd|d|HH|H|hh|h|mm|m|ss|s|SSS|ZZZ|ZZ|Z|a|."
)


def normalize_date_format(fmt: str) -> str:
    """Map legacy moment-style aliases onto their canonical token format."""
    trimmed = fmt.strip()
    return LEGACY_FORMAT_ALIASES.get(trimmed, trimmed)


def _offset(dt: datetime, style: str) -> str:
    offset = dt.utcoffset() or timedelta(0)
    total_minutes = int(offset.total_seconds() // 60)
    sign = "-" if total_minutes < 0 else "+"
    hours, minutes = divmod(abs(total_minutes), 60)
    if style == "ZZ":
        return f"{sign}{hours:02d}:{minutes:02d}"
    if style == "ZZZ":
        return f"{sign}{hours:02d}{minutes:02d}"
    return f"{sign}{hours}" if not minutes else f"{sign}{hours}:{minutes:02d}"


def _render_token(token: str, dt: datetime) -> str:
    if token.startswith("'") and token.endswith("'") and len(token) >= 2:
        return token[1:-1]
    hour12 = dt.hour % 12 or 12
    renderers = {
        "yyyy": lambda: f"{dt.year:04d}",
        "yy": lambda: f"{dt.year % 100:02d}",
        "MM": lambda: f"{dt.month:02d}",
        "M": lambda: str(dt.month),
        "dd": lambda: f"{dt.day:02d}",
        "d": lambda: str(dt.day),
        "HH": lambda: f"{dt.hour:02d}",
        "H": lambda: str(dt.hour),
        "hh": lambda: f"{hour12:02d}",
        "h": lambda: str(hour12),
        "mm": lambda: f"{dt.minute:02d}",
        "m": lambda: str(dt.minute),
        "ss": lambda: f"{dt.second:02d}",
        "s": lambda: str(dt.second),
        "SSS": lambda: f"{dt.microsecond // 1000:03d}",
        "a": lambda: "AM" if dt.hour < 12 else "PM",
    }
    if token in ("Z", "ZZ", "ZZZ"):
        return _offset(dt, token)
    render = renderers.get(token)
    return render() if render else token


def to_datetime(value: Any) -> datetime | None:
    """Coerce datetimes, dates, ISO strings, and epoch milliseconds to UTC-aware datetimes."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.isdigit():
            return to_datetime(int(text))
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return to_datetime(parsed)
    return None


def format_date(value: Any, fmt: str) -> str | None:
    """Format *value* with Luxon-style tokens; ``None`` signals failure."""
    if not isinstance(fmt, str) or not fmt.strip():
        return None
    dt = to_datetime(value)
    if dt is None:
        return None
    return "".join(_render_token(tok, dt) for tok in _TOKEN_PATTERN.findall(fmt))


class Clock:
    """Source of wall-clock instants and monotonic seconds.

    Tests substitute a subclass with a controllable ``now`` and ``monotonic``.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    def format(self, value: Any, fmt: str) -> str | None:
        return format_date(value, fmt)
