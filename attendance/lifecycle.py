from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Awaitable
from typing import Callable
from typing import TypeVar

from attendance.models import ChannelRef
from attendance.models import Event
from attendance.models import FixedTrainingTime
from attendance.models import GuildMetadata
from attendance.models import REACTION_SYMBOLS
from attendance.render import render_event_message
from attendance.settings import AttendanceSettings
from attendance.store import get_or_create_metadata_sync
from attendance.store import insert_event_sync
from attendance.store import list_events_sync
from attendance.templates import TemplateStore
from misc.discord_timestamps import local_wall_time
from misc.discord_timestamps import week_start_local


T = TypeVar("T")


async def find_or_create(fetch: Callable[[], Awaitable[T | None]], create: Callable[[], Awaitable[T]]) -> T:
    found = await fetch()
    if found is not None:
        return found
    return await create()


def channel_slug(name: str) -> str:
    # Discord lowercases text channel names and turns whitespace into dashes.
    return re.sub(r"\s+", "-", (name or "").strip().lower())


def is_event_open(event: Event, metadata: GuildMetadata) -> bool:
    if metadata.last_week_reset is None:
        return True
    return event.start_at >= metadata.last_week_reset


class EventLifecycleManager:
    def __init__(
        self,
        *,
        db_lock,
        db_conn,
        platform,
        templates: TemplateStore,
        settings: AttendanceSettings,
    ) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.platform = platform
        self.templates = templates
        self.settings = settings

    def candidate_times(self, template: FixedTrainingTime, now: datetime) -> tuple[datetime, datetime]:
        tz = self.settings.tz(self.templates)
        today = now.astimezone(tz).date()
        start = local_wall_time(today, template.start_hour, template.start_minute, tz)
        end = local_wall_time(today, template.end_hour, template.end_minute, tz)
        if end <= start:
            end = local_wall_time(today + timedelta(days=1), template.end_hour, template.end_minute, tz)
        return start, end

    def is_too_early(self, now: datetime, start: datetime) -> bool:
        now_local = now.astimezone(start.tzinfo)
        lead = timedelta(hours=float(self.settings.lead_time_hours))
        return now_local.hour < int(self.settings.cutoff_hour) and (start - now_local) > lead

    def week_window_start(self, metadata: GuildMetadata, now: datetime) -> datetime:
        week_start = week_start_local(now, self.settings.tz(self.templates))
        if metadata.last_week_reset is None:
            return week_start
        return max(week_start, metadata.last_week_reset)

    def matches_template(self, event: Event, template: FixedTrainingTime) -> bool:
        local_start = event.start_at.astimezone(self.settings.tz(self.templates))
        return (
            event.name == template.name
            and local_start.weekday() == template.weekday
            and local_start.hour == template.start_hour
            and local_start.minute == template.start_minute
        )

    async def metadata(self, guild_id: int) -> GuildMetadata:
        async with self.db_lock:
            return await asyncio.to_thread(
                get_or_create_metadata_sync,
                self.db_conn,
                guild_id,
                default_channel_name=self.settings.channel_name(self.templates),
            )

    async def ensure_channel(self, guild_id: int, channel_name: str) -> ChannelRef:
        wanted = channel_slug(channel_name)

        async def _fetch() -> ChannelRef | None:
            for ch in await self.platform.list_channels(guild_id):
                if channel_slug(ch.name) == wanted:
                    return ch
            return None

        async def _create() -> ChannelRef:
            print(f"[Events] creating channel #{wanted} guild={guild_id}")
            return await self.platform.create_channel(guild_id, wanted)

        return await find_or_create(_fetch, _create)

    async def create_event(
        self,
        guild_id: int,
        *,
        name: str,
        description: str,
        location: str,
        start_at: datetime,
        end_at: datetime,
        source: str = "template",
        metadata: GuildMetadata | None = None,
    ) -> Event:
        metadata = metadata or await self.metadata(guild_id)
        channel = await self.ensure_channel(guild_id, metadata.channel_name)
        draft = Event(
            id=0,
            guild_id=guild_id,
            channel_id=channel.id,
            message_id=0,
            name=name,
            description=description,
            location=location,
            start_at=start_at.astimezone(timezone.utc),
            end_at=end_at.astimezone(timezone.utc),
            source=source,
        )
        message_id = await self.platform.send_message(channel.id, render_event_message(draft, []))
        for symbol in REACTION_SYMBOLS:
            try:
                await self.platform.add_reaction(channel.id, message_id, symbol)
            except Exception as e:
                print(f"[Events] could not add {symbol} to message={message_id}: {e}")

        async with self.db_lock:
            event = await asyncio.to_thread(
                insert_event_sync,
                self.db_conn,
                guild_id=guild_id,
                channel_id=channel.id,
                message_id=message_id,
                name=name,
                description=description,
                location=location,
                start_at=draft.start_at,
                end_at=draft.end_at,
                source=source,
            )
        print(f"[Events] created event={event.id} name={event.name!r} guild={guild_id} source={source}")
        return event

    async def ensure_recurring_events(self, guild_id: int, now: datetime | None = None) -> list[Event]:
        """Create today's announcements that are due and not yet posted. Safe to call every tick."""
        now = now or datetime.now(timezone.utc)
        tz = self.settings.tz(self.templates)
        now_local = now.astimezone(tz)
        due = [t for t in self.templates.training_times() if t.weekday == now_local.weekday()]
        if not due:
            return []

        metadata = await self.metadata(guild_id)
        window_start = self.week_window_start(metadata, now)
        async with self.db_lock:
            existing = await asyncio.to_thread(list_events_sync, self.db_conn, guild_id, start_from=window_start)

        created: list[Event] = []
        for template in due:
            try:
                start, end = self.candidate_times(template, now)
                if start < now_local:
                    continue
                if self.is_too_early(now, start):
                    continue
                if any(self.matches_template(e, template) for e in existing):
                    continue
                event = await self.create_event(
                    guild_id,
                    name=template.name,
                    description=template.description,
                    location=template.location,
                    start_at=start,
                    end_at=end,
                    source="template",
                    metadata=metadata,
                )
                existing.append(event)
                created.append(event)
            except Exception as e:
                print(f"[Events] template {template.name!r} failed guild={guild_id}: {e}")
        return created
