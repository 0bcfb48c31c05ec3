from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone

from discord.ext import commands

from attendance.models import AnswerChoice
from attendance.store import fetch_answers_sync
from attendance.store import list_events_sync
from attendance.store import set_channel_name_sync
from attendance.templates import parse_hhmm
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.discord_timestamps import format_discord_timestamp
from misc.discord_timestamps import local_wall_time
from misc.discord_timestamps import next_weekday_time


EVENT_USAGE = "Usage: `!event <name> | <YYYY-MM-DD HH:MM> | <end HH:MM> [| location [| description]]`"
DEFAULT_ADHOC_NAME = "Training"


def parse_event_args(raw: str, *, now: datetime, tz) -> dict | None:
    """Parse `!event` arguments into create_event kwargs; None when malformed.

    With no arguments the event starts at the next full local hour and lasts one hour.
    """
    text = (raw or "").strip()
    if not text:
        start = now.astimezone(tz).replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
        return {
            "name": DEFAULT_ADHOC_NAME,
            "description": "",
            "location": "",
            "start_at": start,
            "end_at": start + timedelta(hours=1),
        }

    parts = [p.strip() for p in text.split("|")]
    if len(parts) < 3 or not parts[0]:
        return None
    m = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})\s+(\d{1,2}:\d{2})", parts[1])
    if not m:
        return None
    try:
        day = datetime(int(m.group(1)), int(m.group(2)), int(m.group(3))).date()
        start = local_wall_time(day, *parse_hhmm(m.group(4)), tz)
        end = local_wall_time(day, *parse_hhmm(parts[2]), tz)
    except ValueError:
        return None
    if end <= start:
        end = end + timedelta(days=1)
    return {
        "name": parts[0],
        "description": parts[4] if len(parts) > 4 else "",
        "location": parts[3] if len(parts) > 3 else "",
        "start_at": start,
        "end_at": end,
    }


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    async def require_admin(ctx: commands.Context) -> bool:
        if getattr(ctx, "guild", None) is None:
            return False
        if gates.user_is_admin(ctx.author):
            return True
        await ctx.send("This command is admin-only.")
        return False

    @bot.command(name="event")
    async def cmd_event(ctx: commands.Context, *, raw: str = ""):
        if not await require_admin(ctx):
            return
        lifecycle = deps.orchestrator.lifecycle
        args = parse_event_args(raw, now=datetime.now(timezone.utc), tz=lifecycle.settings.tz(lifecycle.templates))
        if args is None:
            await ctx.send(EVENT_USAGE)
            return
        try:
            event = await lifecycle.create_event(int(ctx.guild.id), source="adhoc", **args)
        except Exception as e:
            print(f"[Commands] !event failed guild={ctx.guild.id}: {e}")
            return
        await ctx.send(f"Event **{event.name}** posted in <#{event.channel_id}>.")

    @bot.command(name="check")
    async def cmd_check(ctx: commands.Context):
        if not await require_admin(ctx):
            return
        try:
            rolled = await deps.orchestrator.check_guild(int(ctx.guild.id))
        except Exception as e:
            print(f"[Commands] !check failed guild={ctx.guild.id}: {e}")
            return
        await ctx.send("Check done." + (" Week rolled over." if rolled else ""))

    @bot.command(name="resetWeek")
    async def cmd_reset_week(ctx: commands.Context):
        if not await require_admin(ctx):
            return
        try:
            rolled = await deps.orchestrator.force_rollover(int(ctx.guild.id))
        except Exception as e:
            print(f"[Commands] !resetWeek failed guild={ctx.guild.id}: {e}")
            return
        await ctx.send("Week reset." if rolled else "Week was not reset.")

    @bot.command(name="channel")
    async def cmd_channel(ctx: commands.Context, *, name: str = ""):
        if not await require_admin(ctx):
            return
        name = (name or "").strip().lstrip("#")
        if not name:
            await ctx.send("Usage: `!channel <name>`")
            return
        guild_id = int(ctx.guild.id)
        await deps.orchestrator.lifecycle.metadata(guild_id)
        async with deps.db_lock:
            meta = await asyncio.to_thread(set_channel_name_sync, deps.db_conn, guild_id, name)
        await ctx.send(f"Announcements will go to #{meta.channel_name if meta else name}.")

    @bot.command(name="attendance")
    async def cmd_attendance(ctx: commands.Context):
        if not await require_admin(ctx):
            return
        lifecycle = deps.orchestrator.lifecycle
        now = datetime.now(timezone.utc)
        guild_id = int(ctx.guild.id)
        metadata = await lifecycle.metadata(guild_id)
        window_start = lifecycle.week_window_start(metadata, now)
        async with deps.db_lock:
            events = await asyncio.to_thread(list_events_sync, deps.db_conn, guild_id, start_from=window_start)
            answers = {e.id: await asyncio.to_thread(fetch_answers_sync, deps.db_conn, e.id) for e in events}

        lines = [f"This week (since {format_discord_timestamp(window_start, 'D')}):"]
        if not events:
            lines.append("- no events yet")
        for event in events:
            counts = {c: 0 for c in (AnswerChoice.YES, AnswerChoice.NO, AnswerChoice.MAYBE)}
            for a in answers.get(event.id, []):
                counts[a.choice] += 1
            lines.append(
                f"- {event.name} {format_discord_timestamp(event.start_at, 'f')}: "
                f"{counts[AnswerChoice.YES]} yes / {counts[AnswerChoice.NO]} no / {counts[AnswerChoice.MAYBE]} maybe"
            )

        tz = lifecycle.settings.tz(lifecycle.templates)
        upcoming = sorted(
            (next_weekday_time(t.weekday, t.start_hour, t.start_minute, tz, now), t.name)
            for t in lifecycle.templates.training_times()
        )
        if upcoming:
            lines.append("Upcoming:")
            lines.extend(f"- {name} {format_discord_timestamp(when, 'R')}" for when, name in upcoming)
        await deps.send_chunked(ctx.channel, "\n".join(lines))
