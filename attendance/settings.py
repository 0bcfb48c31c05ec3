from __future__ import annotations

from dataclasses import dataclass
from zoneinfo import ZoneInfo

from attendance.templates import TemplateStore
from config.defaults import DEFAULT_CHANNEL_NAME
from config.defaults import DEFAULT_CUTOFF_HOUR
from config.defaults import DEFAULT_LEAD_TIME_HOURS
from config.defaults import DEFAULT_TIMEZONE
from misc.discord_timestamps import resolve_timezone


@dataclass(frozen=True)
class AttendanceSettings:
    # None means: take it from the templates file, then fall back to the defaults.
    timezone_name: str | None = None
    default_channel_name: str | None = None
    lead_time_hours: float = DEFAULT_LEAD_TIME_HOURS
    cutoff_hour: int = DEFAULT_CUTOFF_HOUR

    def tz(self, templates: TemplateStore | None = None) -> ZoneInfo:
        name = self.timezone_name
        if not name and templates is not None:
            name = templates.config().timezone
        return resolve_timezone(name or DEFAULT_TIMEZONE)

    def channel_name(self, templates: TemplateStore | None = None) -> str:
        name = self.default_channel_name
        if not name and templates is not None:
            name = templates.config().channel_name
        return (name or DEFAULT_CHANNEL_NAME).strip() or DEFAULT_CHANNEL_NAME
