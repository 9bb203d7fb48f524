"""Value formatting shared by the SQL and CSV dump writers.

Both formats render the same value the same way except for syntax:

    value            SQL dump            CSV dump
    -------------    ----------------    ------------
    None             NULL                (empty)
    datetime/date    '2024-01-31 09:00:00'   2024-01-31 09:00:00
    zero instant     NULL                (empty)
    bool             1 / 0               true / false
    int/Decimal      canonical text      canonical text
    str/bytes        escaped, quoted     verbatim
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Optional

__all__ = [
    "DATETIME_FORMAT",
    "escape_sql_string",
    "format_csv_value",
    "format_sql_value",
]

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Order matters: backslash first so later escapes are not doubled
_SQL_ESCAPES = (
    ("\\", "\\\\"),
    ("'", "\\'"),
    ("\n", "\\n"),
    ("\r", "\\r"),
    ("\x00", "\\0"),
    ("\x1a", "\\Z"),
)


def escape_sql_string(text: str) -> str:
    for raw, escaped in _SQL_ESCAPES:
        text = text.replace(raw, escaped)
    return text


def _decode(value: Any) -> str:
    # surrogateescape keeps non-UTF-8 bytes intact through to the file
    return bytes(value).decode("utf-8", errors="surrogateescape")


def _is_zero_instant(value: date) -> bool:
    if (value.year, value.month, value.day) != (1, 1, 1):
        return False
    if isinstance(value, datetime):
        return value.time() == time(0, 0)
    return True


def _format_temporal(value: Any) -> Optional[str]:
    """Render date/time values; ``None`` for the zero instant."""
    if isinstance(value, datetime):
        if _is_zero_instant(value):
            return None
        return value.strftime(DATETIME_FORMAT)
    if isinstance(value, date):
        if _is_zero_instant(value):
            return None
        return datetime.combine(value, time(0, 0)).strftime(DATETIME_FORMAT)
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if isinstance(value, timedelta):
        # TIME columns can come back as a duration
        seconds = int(value.total_seconds())
        sign = "-" if seconds < 0 else ""
        hours, rest = divmod(abs(seconds), 3600)
        minutes, secs = divmod(rest, 60)
        return f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}"
    raise TypeError(f"not a temporal value: {type(value).__name__}")


def _format_number(value: Any) -> str:
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, float):
        return repr(value)
    return str(value)


def format_sql_value(value: Any) -> str:
    """Render one value as a MySQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float, Decimal)):
        return _format_number(value)
    if isinstance(value, (datetime, date, time, timedelta)):
        text = _format_temporal(value)
        return "NULL" if text is None else f"'{text}'"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"'{escape_sql_string(_decode(value))}'"
    return f"'{escape_sql_string(str(value))}'"


def format_csv_value(value: Any) -> str:
    """Render one value as a CSV field (quoting is left to the csv writer)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return _format_number(value)
    if isinstance(value, (datetime, date, time, timedelta)):
        return _format_temporal(value) or ""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _decode(value)
    return str(value)
