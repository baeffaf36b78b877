"""Date normalization for ``date``-typed fields.

``convert_date(value)`` returns the canonical text form of a timestamp:
RFC 3339 with up to nanosecond precision, trailing fractional zeros
trimmed, and ``Z`` for a zero UTC offset::

    2016-10-25T05:33:52.504876Z
    2017-04-05T18:15:01+08:00

Accepted inputs:

- integer epoch values (``int``, integral ``Decimal``, or digit-only text);
  the unit is inferred from the number of digits:

      <= 10 digits    seconds
      11 - 13         milliseconds
      14 - 16         microseconds
      >= 17           finer than microseconds, truncated to 16 digits
                      (nanoseconds for current-era 19-digit values)

  Epoch values are rendered in UTC at microsecond resolution.
- ``YYYY/MM/DD HH:MM:SS[.f…]`` and ``YYYY-MM-DD HH:MM:SS[.f…]``; text
  without an offset is taken as UTC.
- RFC 3339 / ISO 8601 text with ``T`` separator and ``Z`` or ``±HH:MM``.
- ``datetime`` objects (naive ones are taken as UTC).

A canonical string passes through unchanged.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

_TEXT_RE = re.compile(
    r"""
    (?P<year>\d{4})[-/](?P<month>\d{2})[-/](?P<day>\d{2})
    [T ]
    (?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2})
    (?:\.(?P<fraction>\d{1,9}))?
    \s*
    (?P<offset>Z|z|[+-]\d{2}:?\d{2})?
    """,
    re.VERBOSE,
)

_DIGITS_RE = re.compile(r"\d+")


class DateFormatError(ValueError):
    """The value cannot be interpreted as a timestamp."""


def convert_date(value: object) -> str:
    """Return *value* as canonical RFC 3339 text; raises :class:`DateFormatError`."""
    if isinstance(value, bool):
        raise DateFormatError(f"boolean is not a timestamp: {value!r}")
    if isinstance(value, int):
        return _from_epoch(value)
    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise DateFormatError(f"fractional epoch value: {value}")
        return _from_epoch(int(value))
    if isinstance(value, datetime):
        return _format_datetime(value)
    if isinstance(value, str):
        text = value.strip()
        if _DIGITS_RE.fullmatch(text):
            return _from_epoch(int(text))
        return _from_text(text)
    raise DateFormatError(f"unsupported date value {value!r} ({type(value).__name__})")


def _from_epoch(value: int) -> str:
    if value < 0:
        raise DateFormatError(f"negative epoch value: {value}")
    digits = len(str(value))
    if digits <= 10:
        micros = value * 1_000_000
    elif digits <= 13:
        micros = value * 1_000
    elif digits <= 16:
        micros = value
    else:
        micros = value // 10 ** (digits - 16)
    try:
        instant = _EPOCH + timedelta(microseconds=micros)
    except OverflowError as exc:
        raise DateFormatError(f"epoch value out of range: {value}") from exc
    return _format_datetime(instant)


def _from_text(text: str) -> str:
    m = _TEXT_RE.fullmatch(text)
    if m is None:
        raise DateFormatError(f"unrecognised date format: {text!r}")

    offset_minutes = _offset_minutes(m["offset"])
    try:
        # Validates the calendar fields; the fraction is kept as text so
        # nanosecond digits survive.
        datetime(
            int(m["year"]),
            int(m["month"]),
            int(m["day"]),
            int(m["hour"]),
            int(m["minute"]),
            int(m["second"]),
            tzinfo=timezone(timedelta(minutes=offset_minutes)),
        )
    except ValueError as exc:
        raise DateFormatError(f"invalid date {text!r}: {exc}") from exc

    return (
        f"{m['year']}-{m['month']}-{m['day']}T{m['hour']}:{m['minute']}:{m['second']}"
        f"{_fraction(m['fraction'] or '')}{_format_offset(offset_minutes)}"
    )


def _format_datetime(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    offset = dt.utcoffset()
    assert offset is not None  # aware by construction above
    return (
        dt.strftime("%Y-%m-%dT%H:%M:%S")
        + _fraction(f"{dt.microsecond:06d}")
        + _format_offset(int(offset.total_seconds()) // 60)
    )


def _offset_minutes(offset: str | None) -> int:
    if offset is None or offset in ("Z", "z"):
        return 0
    sign = -1 if offset[0] == "-" else 1
    digits = offset[1:].replace(":", "")
    minutes = int(digits[:2]) * 60 + int(digits[2:])
    if minutes >= 24 * 60:
        raise DateFormatError(f"utc offset out of range: {offset}")
    return sign * minutes


def _format_offset(minutes: int) -> str:
    if minutes == 0:
        return "Z"
    sign = "-" if minutes < 0 else "+"
    hours, mins = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}:{mins:02d}"


def _fraction(digits: str) -> str:
    digits = digits.rstrip("0")
    return f".{digits}" if digits else ""
