from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from attendance.lifecycle import is_event_open
from attendance.models import Answer
from attendance.models import AnswerChoice
from attendance.models import Event
from attendance.models import REACTION_SYMBOLS
from attendance.models import classify_reaction
from attendance.render import render_event_message
from attendance.store import fetch_answers_sync
from attendance.store import fetch_event_by_message_sync
from attendance.store import fetch_metadata_sync
from attendance.store import record_answer_sync


class AttendanceReconciler:
    """Folds single reaction clicks into one canonical answer per (event, member)."""

    def __init__(self, *, db_lock, db_conn, platform) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.platform = platform

    async def refresh_event_message(self, event: Event) -> bool:
        async with self.db_lock:
            answers = await asyncio.to_thread(fetch_answers_sync, self.db_conn, event.id)
        event.answers = answers
        try:
            await self.platform.edit_message(event.channel_id, event.message_id, render_event_message(event, answers))
            return True
        except Exception as e:
            print(f"[Attendance] edit failed guild={event.guild_id} event={event.id}: {e}")
            return False

    async def record_answer(
        self,
        guild_id: int,
        message_id: int,
        member_id: int,
        symbol: str,
        *,
        display_name: str | None = None,
        now: datetime | None = None,
    ) -> Answer | None:
        choice = classify_reaction(symbol)
        if choice is AnswerChoice.UNRECOGNIZED:
            return None

        async with self.db_lock:
            event = await asyncio.to_thread(fetch_event_by_message_sync, self.db_conn, guild_id, message_id)
            metadata = await asyncio.to_thread(fetch_metadata_sync, self.db_conn, guild_id) if event else None
        if event is None:
            return None
        if metadata is not None and not is_event_open(event, metadata):
            print(f"[Attendance] ignoring reaction on closed event={event.id} member={member_id}")
            return None

        if not display_name:
            try:
                display_name = await self.platform.resolve_user(guild_id, member_id)
            except Exception as e:
                print(f"[Attendance] could not resolve member={member_id} guild={guild_id}: {e}")
                return None

        try:
            async with self.db_lock:
                answer = await asyncio.to_thread(
                    record_answer_sync,
                    self.db_conn,
                    event_id=event.id,
                    guild_id=guild_id,
                    member_id=member_id,
                    display_name=display_name or "",
                    choice=choice,
                    answered_at=now or datetime.now(timezone.utc),
                )
        except Exception as e:
            print(f"[Attendance] answer write failed event={event.id} member={member_id}: {e}")
            return None

        print(f"[Attendance] event={event.id} member={member_id} answer={answer.choice.value}")
        await self.refresh_event_message(event)
        try:
            await self.platform.remove_user_reaction(event.channel_id, event.message_id, symbol, member_id)
        except Exception as e:
            print(f"[Attendance] could not remove reaction event={event.id} member={member_id}: {e}")
        return answer

    async def sweep_event_reactions(self, event: Event, *, self_user_id: int | None) -> int:
        """Replay reactions left on an announcement while the bot was not listening."""
        replayed = 0
        for symbol in REACTION_SYMBOLS:
            try:
                user_ids = await self.platform.list_reaction_users(event.channel_id, event.message_id, symbol)
            except Exception as e:
                print(f"[Attendance] could not list {symbol} reactions event={event.id}: {e}")
                continue
            for user_id in user_ids:
                if self_user_id is not None and int(user_id) == int(self_user_id):
                    continue
                if await self.record_answer(event.guild_id, event.message_id, int(user_id), symbol) is not None:
                    replayed += 1
        return replayed
