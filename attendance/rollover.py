from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from attendance.lifecycle import EventLifecycleManager
from attendance.models import Answer
from attendance.models import Event
from attendance.models import GuildMetadata
from attendance.render import chunk_text
from attendance.render import render_week_summary
from attendance.store import fetch_answers_sync
from attendance.store import list_events_sync
from attendance.store import mark_week_reset_sync


ROLLOVER_WEEKDAY = 0  # Monday
ROLLOVER_MIN_ELAPSED = timedelta(days=7) - timedelta(hours=1)


def rollover_due(metadata: GuildMetadata, now: datetime, tz) -> bool:
    """Monday, and at least 7 days minus one hour since the last reset.

    The hour of slack lets a tick firing just before the exact 7-day mark still
    roll over; the Monday gate keeps it to one firing per week.
    """
    if now.astimezone(tz).weekday() != ROLLOVER_WEEKDAY:
        return False
    if metadata.last_week_reset is None:
        return True
    return now - metadata.last_week_reset >= ROLLOVER_MIN_ELAPSED


class WeeklyRolloverScheduler:
    def __init__(self, *, db_lock, db_conn, platform, lifecycle: EventLifecycleManager) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.platform = platform
        self.lifecycle = lifecycle

    def summary_window_start(self, metadata: GuildMetadata, now: datetime) -> datetime:
        if metadata.last_week_reset is None:
            return now - timedelta(days=7)
        return metadata.last_week_reset

    async def week_events(self, guild_id: int, start: datetime, end: datetime) -> tuple[list[Event], dict[int, list[Answer]]]:
        async with self.db_lock:
            events = await asyncio.to_thread(
                list_events_sync, self.db_conn, guild_id, start_from=start, start_before=end
            )
            answers = {}
            for event in events:
                answers[event.id] = await asyncio.to_thread(fetch_answers_sync, self.db_conn, event.id)
        return events, answers

    async def build_summary(self, guild_id: int, metadata: GuildMetadata, now: datetime) -> str:
        window_start = self.summary_window_start(metadata, now)
        events, answers = await self.week_events(guild_id, window_start, now)
        try:
            eligible = await self.platform.count_eligible_members(guild_id)
        except Exception as e:
            print(f"[Rollover] member count unavailable guild={guild_id}: {e}")
            eligible = 0
        return render_week_summary(events, answers, eligible_members=eligible, window_start=window_start)

    async def _send_summary(self, guild_id: int, metadata: GuildMetadata, text: str) -> None:
        try:
            channel = await self.lifecycle.ensure_channel(guild_id, metadata.channel_name)
            for part in chunk_text(text):
                await self.platform.send_message(channel.id, part)
        except Exception as e:
            print(f"[Rollover] summary send failed guild={guild_id}: {e}")

    async def maybe_rollover(self, guild_id: int, now: datetime | None = None, *, force: bool = False) -> bool:
        now = now or datetime.now(timezone.utc)
        metadata = await self.lifecycle.metadata(guild_id)
        if not force and not rollover_due(metadata, now, self.lifecycle.settings.tz(self.lifecycle.templates)):
            return False
        if metadata.last_week_reset is not None and now <= metadata.last_week_reset:
            print(f"[Rollover] refusing non-increasing reset guild={guild_id}")
            return False

        summary = await self.build_summary(guild_id, metadata, now)
        await self._send_summary(guild_id, metadata, summary)

        async with self.db_lock:
            ok = await asyncio.to_thread(
                mark_week_reset_sync,
                self.db_conn,
                guild_id,
                expected_previous=metadata.last_week_reset,
                reset_at=now,
            )
        if ok:
            print(f"[Rollover] week reset guild={guild_id} at={now.isoformat()}")
        else:
            print(f"[Rollover] reset skipped guild={guild_id}: metadata changed concurrently")
        return ok
