from __future__ import annotations

"""Single place that turns datetimes into Discord <t:...> tags and local wall-clock times.

Discord renders a <t:unix:style> tag in each reader's own locale and timezone, so
announcements never carry a hard-coded timezone in their text.
"""

from datetime import date as date_value
from datetime import datetime
from datetime import timedelta
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError


DISCORD_TIMESTAMP_STYLES = {"t", "T", "d", "D", "f", "F", "R"}


def _validate_style(style: str) -> str:
    clean = str(style or "").strip() or "f"
    if clean not in DISCORD_TIMESTAMP_STYLES:
        raise ValueError(f"Invalid Discord timestamp style: {clean}")
    return clean


def validate_weekday(weekday: int) -> int:
    try:
        out = int(weekday)
    except Exception as exc:
        raise ValueError(f"Invalid weekday: {weekday}") from exc
    if out < 0 or out > 6:
        raise ValueError(f"Invalid weekday: {weekday} (expected 0..6)")
    return out


def validate_hour_minute(hour: int, minute: int) -> tuple[int, int]:
    try:
        hh = int(hour)
        mm = int(minute)
    except Exception as exc:
        raise ValueError(f"Invalid hour/minute: {hour}:{minute}") from exc
    if hh < 0 or hh > 23:
        raise ValueError(f"Invalid hour: {hour} (expected 0..23)")
    if mm < 0 or mm > 59:
        raise ValueError(f"Invalid minute: {minute} (expected 0..59)")
    return hh, mm


def _require_aware_datetime(value: datetime, *, arg_name: str) -> datetime:
    if not isinstance(value, datetime):
        raise ValueError(f"{arg_name} must be a datetime")
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{arg_name} must be timezone-aware")
    return value


def require_timezone(timezone_name: str) -> ZoneInfo:
    clean = str(timezone_name or "").strip()
    if not clean:
        raise ValueError("Unknown timezone_name: ''")
    try:
        return ZoneInfo(clean)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Unknown timezone_name: {clean}") from exc


def resolve_timezone(timezone_name: str | None) -> ZoneInfo:
    try:
        return require_timezone(timezone_name or "UTC")
    except ValueError:
        print(f"[CFG] unknown timezone {timezone_name!r}; falling back to UTC")
        return ZoneInfo("UTC")


def format_discord_timestamp(dt: datetime, style: str = "f") -> str:
    aware = _require_aware_datetime(dt, arg_name="dt")
    style_clean = _validate_style(style)
    return f"<t:{int(aware.timestamp())}:{style_clean}>"


def local_wall_time(day: date_value, hour: int, minute: int, tz: ZoneInfo) -> datetime:
    if not isinstance(day, date_value):
        raise ValueError("day must be a datetime.date")
    hh, mm = validate_hour_minute(hour, minute)
    return datetime(day.year, day.month, day.day, hh, mm, tzinfo=tz)


def next_weekday_time(
    weekday: int,
    hour: int,
    minute: int,
    tz: ZoneInfo,
    now: datetime,
) -> datetime:
    """
    Return the next upcoming occurrence of weekday + local time in tz.

    If the target time today is still in the future, return today.
    Otherwise, return the same weekday in the following week.
    """
    wd = validate_weekday(weekday)
    now_local = _require_aware_datetime(now, arg_name="now").astimezone(tz)
    days_ahead = (wd - now_local.weekday()) % 7
    candidate = local_wall_time(now_local.date() + timedelta(days=days_ahead), hour, minute, tz)
    if candidate <= now_local:
        candidate = local_wall_time(candidate.date() + timedelta(days=7), hour, minute, tz)
    return candidate


def week_start_local(now: datetime, tz: ZoneInfo) -> datetime:
    """Monday 00:00 of the calendar week containing now, in tz."""
    now_local = _require_aware_datetime(now, arg_name="now").astimezone(tz)
    monday = now_local.date() - timedelta(days=now_local.weekday())
    return local_wall_time(monday, 0, 0, tz)
