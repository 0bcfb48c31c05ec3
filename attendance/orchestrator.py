from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from attendance.lifecycle import EventLifecycleManager
from attendance.lifecycle import is_event_open
from attendance.models import AnswerChoice
from attendance.models import Answer
from attendance.models import classify_reaction
from attendance.reconciler import AttendanceReconciler
from attendance.rollover import WeeklyRolloverScheduler
from attendance.store import list_events_sync
from attendance.store import list_guild_ids_sync


class AttendanceOrchestrator:
    """Wires the attendance components to Discord events and the periodic tick.

    Holds the bot's own user id (set once at ready time) so reactions the bot
    adds as affordances are never counted as answers.
    """

    def __init__(
        self,
        *,
        db_lock,
        db_conn,
        lifecycle: EventLifecycleManager,
        reconciler: AttendanceReconciler,
        rollover: WeeklyRolloverScheduler,
    ) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.lifecycle = lifecycle
        self.reconciler = reconciler
        self.rollover = rollover
        self.self_user_id: int | None = None
        self.guild_ids: list[int] = []
        self._tick_lock = asyncio.Lock()

    def add_guild(self, guild_id: int) -> None:
        if int(guild_id) not in self.guild_ids:
            self.guild_ids.append(int(guild_id))

    async def prepare_guild(self, guild_id: int) -> None:
        metadata = await self.lifecycle.metadata(guild_id)
        await self.lifecycle.ensure_channel(guild_id, metadata.channel_name)

    async def sweep_guild(self, guild_id: int, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        metadata = await self.lifecycle.metadata(guild_id)
        window_start = self.lifecycle.week_window_start(metadata, now)
        async with self.db_lock:
            events = await asyncio.to_thread(list_events_sync, self.db_conn, guild_id, start_from=window_start)
        replayed = 0
        for event in events:
            if is_event_open(event, metadata):
                replayed += await self.reconciler.sweep_event_reactions(event, self_user_id=self.self_user_id)
        return replayed

    async def on_ready(self, self_user_id: int, guild_ids: list[int]) -> None:
        self.self_user_id = int(self_user_id)
        async with self.db_lock:
            known = await asyncio.to_thread(list_guild_ids_sync, self.db_conn)
        visible = [int(g) for g in guild_ids]
        for guild_id in visible:
            self.add_guild(guild_id)
        stale = [g for g in known if g not in visible]
        if stale:
            print(f"[Orchestrator] {len(stale)} stored guild(s) not visible; skipping them")

        for guild_id in visible:
            try:
                await self.prepare_guild(guild_id)
                replayed = await self.sweep_guild(guild_id)
                if replayed:
                    print(f"[Orchestrator] replayed {replayed} pending reaction(s) guild={guild_id}")
            except Exception as e:
                print(f"[Orchestrator] startup reconcile failed guild={guild_id}: {e}")

    async def check_guild(self, guild_id: int, now: datetime | None = None, *, force_rollover: bool = False) -> bool:
        """One lifecycle + rollover pass for a guild. Returns whether a rollover happened."""
        now = now or datetime.now(timezone.utc)
        async with self._tick_lock:
            await self.lifecycle.ensure_recurring_events(guild_id, now)
            return await self.rollover.maybe_rollover(guild_id, now, force=force_rollover)

    async def force_rollover(self, guild_id: int, now: datetime | None = None) -> bool:
        async with self._tick_lock:
            return await self.rollover.maybe_rollover(guild_id, now, force=True)

    async def run_tick(self, now: datetime | None = None) -> None:
        now = now or datetime.now(timezone.utc)
        async with self._tick_lock:
            for guild_id in list(self.guild_ids):
                try:
                    await self.lifecycle.ensure_recurring_events(guild_id, now)
                    await self.rollover.maybe_rollover(guild_id, now)
                except Exception as e:
                    print(f"[Orchestrator] tick failed guild={guild_id}: {e}")

    async def handle_reaction(
        self,
        *,
        guild_id: int | None,
        message_id: int,
        member_id: int,
        symbol: str,
        display_name: str | None = None,
        member_is_bot: bool = False,
    ) -> Answer | None:
        if guild_id is None or member_is_bot:
            return None
        if self.self_user_id is not None and int(member_id) == self.self_user_id:
            return None
        if classify_reaction(symbol) is AnswerChoice.UNRECOGNIZED:
            return None
        try:
            return await self.reconciler.record_answer(
                int(guild_id), int(message_id), int(member_id), symbol, display_name=display_name
            )
        except Exception as e:
            print(f"[Orchestrator] reaction failed guild={guild_id} message={message_id}: {e}")
            return None
