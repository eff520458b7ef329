# poolcrm/timeutils.py
"""Conversions between stored UTC instants and the business timezone.

The calendar UI speaks local wall-clock time (``YYYY-MM-DDTHH:mm`` form
inputs, whole-day viewports) while everything persisted is UTC.  All-day
events are the exception: they keep their calendar date and are never run
through a timezone conversion.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, has_app_context

from poolcrm.errors import ValidationError

UTC = timezone.utc
FALLBACK_TIMEZONE = 'America/New_York'

LOCAL_INPUT_FORMAT = '%Y-%m-%dT%H:%M'
_LOCAL_INPUT_RE = re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2})?$')
_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')

DATE_FORMATS = {
    'full': '%A, %B %-d, %Y',
    'full_with_time': '%A, %B %-d, %Y at %-I:%M %p',
    'medium': '%b %-d, %Y',
    'medium_with_time': '%b %-d, %Y at %-I:%M %p',
    'short': '%-m/%-d/%Y',
    'time': '%-I:%M %p',
    'time24': '%H:%M',
    'weekday': '%A',
    'input_date': '%Y-%m-%d',
    'input_datetime': LOCAL_INPUT_FORMAT,
}


def default_timezone() -> str:
    if has_app_context():
        return current_app.config.get('DEFAULT_TIMEZONE') or FALLBACK_TIMEZONE
    return FALLBACK_TIMEZONE


def get_zone(tz: str | None = None) -> ZoneInfo:
    name = tz or default_timezone()
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f'Unknown timezone: {name}')


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values read back from storage."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_datetime(value) -> datetime:
    """Parse an ISO-8601 instant into an aware UTC datetime.

    Naive inputs are rejected: an instant without an offset is ambiguous.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith('Z') or text.endswith('z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f'Invalid datetime: {value}')
    else:
        raise ValidationError(f'Invalid datetime: {value!r}')
    if dt.tzinfo is None:
        raise ValidationError(f'Datetime must include a UTC offset: {value}')
    return dt.astimezone(UTC)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return ensure_utc(value).isoformat().replace('+00:00', 'Z')


def to_local_time(utc_value, tz: str | None = None) -> datetime:
    return parse_datetime(utc_value).astimezone(get_zone(tz))


def to_utc(local_value: datetime, tz: str | None = None) -> datetime:
    """Interpret a naive wall-clock value in ``tz`` and return UTC.

    Ambiguous fall-back times resolve to their first occurrence (``fold=0``).
    """
    if local_value.tzinfo is not None:
        return local_value.astimezone(UTC)
    return local_value.replace(tzinfo=get_zone(tz), fold=0).astimezone(UTC)


def local_to_utc_string(local_datetime: str, tz: str | None = None) -> str:
    """``"2024-06-01T10:00"`` in the business timezone -> ISO UTC string."""
    if not isinstance(local_datetime, str) or not _LOCAL_INPUT_RE.match(local_datetime):
        raise ValidationError(f'Invalid datetime: {local_datetime}')
    try:
        naive = datetime.fromisoformat(local_datetime)
    except ValueError:
        raise ValidationError(f'Invalid datetime: {local_datetime}')
    return to_iso(to_utc(naive, tz))


def utc_to_local_string(utc_string: str, tz: str | None = None) -> str:
    """ISO UTC string -> ``"YYYY-MM-DDTHH:mm"`` for a form input."""
    return to_local_time(utc_string, tz).strftime(LOCAL_INPUT_FORMAT)


def start_of_day_utc(day: date, tz: str | None = None) -> datetime:
    return to_utc(datetime.combine(day, time.min), tz)


def end_of_day_utc(day: date, tz: str | None = None) -> datetime:
    """Exclusive end of ``day``: the next local midnight, in UTC."""
    return start_of_day_utc(day + timedelta(days=1), tz)


def _as_local_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and _DATE_RE.match(value):
        return date.fromisoformat(value)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value).date()
        except ValueError:
            pass
    raise ValidationError(f'Invalid date: {value}')


def get_calendar_range_utc(local_start, local_end, tz: str | None = None) -> dict:
    """UTC bounds of a calendar viewport given as local days.

    ``local_start``/``local_end`` are the first and last visible days (dates,
    naive datetimes or ISO strings).  The end bound is exclusive, so a single
    day is 23 or 25 hours long across DST changes.
    """
    first = _as_local_date(local_start)
    last = _as_local_date(local_end)
    if last < first:
        raise ValidationError('Calendar range end must not be before its start')
    return {
        'start': to_iso(start_of_day_utc(first, tz)),
        'end': to_iso(end_of_day_utc(last, tz)),
    }


def _calendar_date(value) -> date:
    """The calendar date as written by the caller, offset ignored."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if _DATE_RE.match(text):
            return date.fromisoformat(text)
        if text.endswith('Z') or text.endswith('z'):
            text = text[:-1] + '+00:00'
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    raise ValidationError(f'Invalid date: {value}')


def all_day_bounds(start, end) -> tuple[datetime, datetime]:
    """Normalise all-day input to UTC midnight boundaries.

    The start keeps its written calendar date.  An end at midnight of a later
    date is already exclusive; any other end covers its whole date.
    """
    first = _calendar_date(start)
    last_value = end if end is not None else start
    last = _calendar_date(last_value)
    end_is_midnight = (
        isinstance(last_value, datetime) and last_value.time() == time.min
    ) or (
        isinstance(last_value, str) and (
            _DATE_RE.match(last_value.strip()) is None
            and _calendar_time(last_value) == time.min
        )
    )
    if last < first:
        raise ValidationError('End time must not be before start time')
    if end_is_midnight and last > first:
        exclusive = last
    else:
        exclusive = last + timedelta(days=1)
    return (
        datetime.combine(first, time.min, tzinfo=UTC),
        datetime.combine(exclusive, time.min, tzinfo=UTC),
    )


def _calendar_time(value: str) -> time | None:
    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text).time()
    except ValueError:
        return None


def all_day_dates(start: datetime, end: datetime) -> tuple[date, date]:
    """First and last (inclusive) calendar dates of a stored all-day event."""
    first = ensure_utc(start).date()
    exclusive = ensure_utc(end).date()
    return first, max(first, exclusive - timedelta(days=1))


def format_date_time(utc_value, fmt: str = 'medium_with_time', tz: str | None = None) -> str:
    try:
        local = to_local_time(utc_value, tz)
    except ValidationError:
        return 'Invalid date'
    return local.strftime(DATE_FORMATS.get(fmt, fmt))


def format_time_range(start, end, tz: str | None = None) -> str:
    return f"{format_date_time(start, 'time', tz)} - {format_date_time(end, 'time', tz)}"


def format_date_range(start, end, tz: str | None = None) -> str:
    if to_local_time(start, tz).date() == to_local_time(end, tz).date():
        return f"{format_date_time(start, 'medium', tz)} • {format_time_range(start, end, tz)}"
    return f"{format_date_time(start, 'medium_with_time', tz)} - {format_date_time(end, 'medium_with_time', tz)}"


def get_event_duration(start, end) -> int:
    """Duration in whole minutes."""
    delta = parse_datetime(end) - parse_datetime(start)
    return int(delta.total_seconds() // 60)


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f'{minutes}m'
    hours, rem = divmod(minutes, 60)
    return f'{hours}h' if rem == 0 else f'{hours}h {rem}m'


def get_default_event_times(tz: str | None = None, now: datetime | None = None) -> dict:
    """Next half-hour slot, one hour long."""
    local_now = (now or utcnow()).astimezone(get_zone(tz))
    minutes = local_now.minute + local_now.second / 60 + local_now.microsecond / 60_000_000
    bump = math.ceil(minutes / 30) * 30 - local_now.minute
    start_local = local_now.replace(second=0, microsecond=0) + timedelta(minutes=bump)
    start = start_local.astimezone(UTC)
    return {'start': to_iso(start), 'end': to_iso(start + timedelta(hours=1))}


def get_timezone_abbreviation(tz: str | None = None, at: datetime | None = None) -> str:
    return (at or utcnow()).astimezone(get_zone(tz)).tzname() or ''
