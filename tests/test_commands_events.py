from __future__ import annotations

import asyncio
import unittest
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

try:
    import discord
    from discord.ext import commands
except ModuleNotFoundError:
    discord = None
    commands = None

if commands is not None:
    from attendance.store import fetch_metadata_sync
    from attendance.store import list_events_sync
    from attendance_fakes import GUILD_ID
    from attendance_fakes import make_stack
    from misc.commands.command_deps import CommandDeps
    from misc.commands.command_deps import CommandGates
    from misc.commands.commands_events import DEFAULT_ADHOC_NAME
    from misc.commands.commands_events import EVENT_USAGE
    from misc.commands.commands_events import parse_event_args
    from misc.commands.commands_events import register as register_events


class FakeChannel:
    id = 10

    def __init__(self):
        self.sent: list[str] = []

    async def send(self, text):
        self.sent.append(text)


class FakeAuthor:
    id = 99


class FakeGuild:
    id = 500


class FakeCtx:
    def __init__(self, *, guild=True):
        self.channel = FakeChannel()
        self.author = FakeAuthor()
        self.guild = FakeGuild() if guild else None
        self.sent: list[str] = []

    async def send(self, text):
        self.sent.append(text)


@unittest.skipIf(commands is None, "discord.py not installed")
class ParseEventArgsTests(unittest.TestCase):
    def test_no_args_defaults_to_next_full_hour(self):
        now = datetime(2024, 1, 1, 16, 20, tzinfo=timezone.utc)
        args = parse_event_args("", now=now, tz=ZoneInfo("UTC"))
        self.assertEqual(args["name"], DEFAULT_ADHOC_NAME)
        self.assertEqual(args["start_at"], datetime(2024, 1, 1, 17, 0, tzinfo=timezone.utc))
        self.assertEqual(args["end_at"] - args["start_at"], timedelta(hours=1))

    def test_full_form(self):
        tz = ZoneInfo("Europe/Berlin")
        args = parse_event_args(
            "Sprint session | 2024-06-03 18:30 | 20:00 | Track | Bring spikes",
            now=datetime(2024, 6, 1, tzinfo=timezone.utc),
            tz=tz,
        )
        self.assertEqual(args["name"], "Sprint session")
        self.assertEqual(args["start_at"], datetime(2024, 6, 3, 18, 30, tzinfo=tz))
        self.assertEqual(args["end_at"], datetime(2024, 6, 3, 20, 0, tzinfo=tz))
        self.assertEqual(args["location"], "Track")
        self.assertEqual(args["description"], "Bring spikes")

    def test_end_before_start_rolls_to_next_day(self):
        tz = ZoneInfo("UTC")
        args = parse_event_args("Night | 2024-06-03 23:00 | 01:00", now=datetime(2024, 6, 1, tzinfo=timezone.utc), tz=tz)
        self.assertEqual(args["end_at"], datetime(2024, 6, 4, 1, 0, tzinfo=tz))

    def test_malformed_args(self):
        now = datetime(2024, 6, 1, tzinfo=timezone.utc)
        for raw in ("Only a name", "Name | tomorrow | 20:00", "Name | 2024-13-01 18:00 | 20:00", " | 2024-06-03 18:00 | 20:00"):
            self.assertIsNone(parse_event_args(raw, now=now, tz=ZoneInfo("UTC")), raw)


@unittest.skipIf(commands is None, "discord.py not installed")
class EventCommandsTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.conn, self.platform, self.orchestrator = make_stack()
        self.sent_chunks: list[str] = []

    async def asyncTearDown(self):
        self.conn.close()

    def _bot(self, *, admin: bool):
        async def send_chunked(channel, text):
            self.sent_chunks.append(text)

        bot = commands.Bot(command_prefix="!", intents=discord.Intents.none())
        register_events(
            bot,
            deps=CommandDeps(
                db_lock=asyncio.Lock(),
                db_conn=self.conn,
                send_chunked=send_chunked,
                orchestrator=self.orchestrator,
            ),
            gates=CommandGates(user_is_admin=lambda user: admin),
        )
        return bot

    async def test_admin_commands_blocked_for_members(self):
        bot = self._bot(admin=False)
        for name in ("event", "check", "resetWeek", "channel", "attendance"):
            cmd = bot.get_command(name)
            self.assertIsNotNone(cmd, name)
            ctx = FakeCtx()
            await cmd.callback(ctx)
            self.assertTrue(any("admin-only" in s for s in ctx.sent), f"missing admin gate for {name}")
        self.assertEqual(self.platform.sent, [])
        self.assertIsNone(fetch_metadata_sync(self.conn, GUILD_ID))

    async def test_commands_ignored_in_dms(self):
        bot = self._bot(admin=True)
        ctx = FakeCtx(guild=False)
        await bot.get_command("resetWeek").callback(ctx)
        self.assertEqual(ctx.sent, [])

    async def test_event_command_posts_announcement(self):
        bot = self._bot(admin=True)
        ctx = FakeCtx()
        await bot.get_command("event").callback(ctx, raw="Hill repeats | 2030-05-06 18:00 | 19:00 | Park")
        events = list_events_sync(self.conn, GUILD_ID)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].source, "adhoc")
        self.assertEqual(events[0].location, "Park")
        self.assertTrue(ctx.sent[-1].startswith("Event **Hill repeats** posted in <#"))

    async def test_event_command_usage_on_bad_input(self):
        bot = self._bot(admin=True)
        ctx = FakeCtx()
        await bot.get_command("event").callback(ctx, raw="nope")
        self.assertEqual(ctx.sent, [EVENT_USAGE])
        self.assertEqual(self.platform.sent, [])

    async def test_reset_week_forces_rollover(self):
        bot = self._bot(admin=True)
        ctx = FakeCtx()
        await bot.get_command("resetWeek").callback(ctx)
        self.assertEqual(ctx.sent, ["Week reset."])
        self.assertIsNotNone(fetch_metadata_sync(self.conn, GUILD_ID).last_week_reset)
        self.assertTrue(any("Weekly attendance" in text for _, text in self.platform.sent))

    async def test_check_runs_a_pass(self):
        bot = self._bot(admin=True)
        ctx = FakeCtx()
        await bot.get_command("check").callback(ctx)
        self.assertTrue(ctx.sent[-1].startswith("Check done."))

    async def test_channel_command_updates_metadata(self):
        bot = self._bot(admin=True)
        ctx = FakeCtx()
        await bot.get_command("channel").callback(ctx, name="#Team Training")
        self.assertEqual(fetch_metadata_sync(self.conn, GUILD_ID).channel_name, "Team Training")
        self.assertEqual(ctx.sent, ["Announcements will go to #Team Training."])

        ctx = FakeCtx()
        await bot.get_command("channel").callback(ctx, name="  ")
        self.assertEqual(ctx.sent, ["Usage: `!channel <name>`"])

    async def test_attendance_lists_week(self):
        bot = self._bot(admin=True)
        ctx = FakeCtx()
        await bot.get_command("attendance").callback(ctx)
        self.assertEqual(len(self.sent_chunks), 1)
        self.assertIn("This week", self.sent_chunks[0])


if __name__ == "__main__":
    unittest.main()
