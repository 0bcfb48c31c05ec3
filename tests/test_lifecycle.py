from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from attendance.lifecycle import channel_slug
from attendance.lifecycle import is_event_open
from attendance.models import ChannelRef
from attendance.models import GuildMetadata
from attendance.settings import AttendanceSettings
from attendance.store import count_answers_sync
from attendance.store import list_events_sync
from attendance_fakes import GUILD_ID
from attendance_fakes import FakePlatform
from attendance_fakes import make_stack
from attendance_fakes import monday_training


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# 2024-01-01 is a Monday.
MONDAY = (2024, 1, 1)


class RecurringEventTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.conn, self.platform, orchestrator = make_stack(training_times=[monday_training()])
        self.lifecycle = orchestrator.lifecycle

    async def asyncTearDown(self):
        self.conn.close()

    async def test_not_posted_before_cutoff_and_outside_lead_time(self):
        created = await self.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 8, 0))
        self.assertEqual(created, [])
        self.assertEqual(self.platform.sent, [])

    async def test_posted_once_the_cutoff_has_passed(self):
        created = await self.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 10, 0))
        self.assertEqual(len(created), 1)
        self.assertEqual(created[0].start_at, _utc(*MONDAY, 18, 0))
        self.assertEqual(created[0].end_at, _utc(*MONDAY, 20, 0))

    async def test_posted_with_reactions_in_announcement_channel(self):
        created = await self.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 17, 0))
        self.assertEqual(len(created), 1)
        event = created[0]
        self.assertEqual(self.platform.created_channels, ["general"])
        self.assertEqual(
            [r[2] for r in self.platform.reactions_added if r[1] == event.message_id],
            ["✅", "❌", "❔"],
        )
        body = self.platform.messages[event.message_id]
        self.assertIn("**Monday Training**", body)
        self.assertIn("Location: Main hall", body)

    async def test_repeated_ticks_create_one_event(self):
        await self.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 17, 0))
        await self.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 17, 1))
        await self.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 17, 30))
        self.assertEqual(len(list_events_sync(self.conn, GUILD_ID)), 1)
        self.assertEqual(len(self.platform.sent), 1)

    async def test_started_event_is_not_posted(self):
        created = await self.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 18, 30))
        self.assertEqual(created, [])

    async def test_other_weekday_is_not_posted(self):
        created = await self.lifecycle.ensure_recurring_events(GUILD_ID, _utc(2024, 1, 2, 17, 0))
        self.assertEqual(created, [])

    async def test_next_week_gets_a_new_event(self):
        await self.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 17, 0))
        created = await self.lifecycle.ensure_recurring_events(GUILD_ID, _utc(2024, 1, 8, 17, 0))
        self.assertEqual(len(created), 1)
        self.assertEqual(len(list_events_sync(self.conn, GUILD_ID)), 2)


class LeadTimeTests(unittest.IsolatedAsyncioTestCase):
    async def test_early_event_posted_within_lead_time_before_cutoff(self):
        conn, platform, orchestrator = make_stack(
            training_times=[monday_training(start_hour=8, start_minute=30, end_hour=9, end_minute=30)]
        )
        created = await orchestrator.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 7, 0))
        self.assertEqual(len(created), 1)
        conn.close()

    async def test_thresholds_are_configurable(self):
        conn, platform, orchestrator = make_stack(
            training_times=[monday_training()],
            settings=AttendanceSettings(timezone_name="UTC", lead_time_hours=1, cutoff_hour=17),
        )
        self.assertEqual(await orchestrator.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 16, 0)), [])
        created = await orchestrator.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 17, 0))
        self.assertEqual(len(created), 1)
        conn.close()

    async def test_local_timezone_wall_clock(self):
        conn, platform, orchestrator = make_stack(
            training_times=[monday_training()],
            settings=AttendanceSettings(timezone_name="Europe/Berlin"),
        )
        created = await orchestrator.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 12, 0))
        self.assertEqual(len(created), 1)
        # 18:00 in Berlin during winter is 17:00 UTC.
        self.assertEqual(created[0].start_at, _utc(*MONDAY, 17, 0))
        conn.close()


class LifecycleFailureTests(unittest.IsolatedAsyncioTestCase):
    async def test_one_failing_template_does_not_block_others(self):
        platform = FakePlatform()
        platform.fail_send_containing = "Broken"
        conn, platform, orchestrator = make_stack(
            training_times=[
                monday_training(name="Broken Session"),
                monday_training(name="Evening Session", start_hour=19, end_hour=21),
            ],
            platform=platform,
        )
        created = await orchestrator.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 12, 0))
        self.assertEqual([e.name for e in created], ["Evening Session"])
        self.assertEqual(len(list_events_sync(conn, GUILD_ID)), 1)
        conn.close()

    async def test_existing_channel_is_reused(self):
        platform = FakePlatform(channels=[ChannelRef(id=77, name="General")])
        conn, platform, orchestrator = make_stack(training_times=[monday_training()], platform=platform)
        created = await orchestrator.lifecycle.ensure_recurring_events(GUILD_ID, _utc(*MONDAY, 12, 0))
        self.assertEqual(created[0].channel_id, 77)
        self.assertEqual(platform.created_channels, [])
        conn.close()


class LifecycleHelperTests(unittest.TestCase):
    def test_channel_slug(self):
        self.assertEqual(channel_slug(" Training Times "), "training-times")

    def test_event_open_until_reset(self):
        meta = GuildMetadata(id=1, guild_id=GUILD_ID, last_week_reset=None, channel_name="general")
        event = SimpleNamespace(start_at=_utc(*MONDAY, 18, 0))
        self.assertTrue(is_event_open(event, meta))
        meta.last_week_reset = _utc(2024, 1, 8, 10, 0)
        self.assertFalse(is_event_open(event, meta))


class HistoricalEventTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.conn, self.platform, self.orchestrator = make_stack(platform=FakePlatform(members={42: "Alice"}))

    async def asyncTearDown(self):
        self.conn.close()

    async def _event(self, start: datetime):
        return await self.orchestrator.lifecycle.create_event(
            GUILD_ID,
            name="Wednesday Training",
            description="",
            location="",
            start_at=start,
            end_at=start + timedelta(hours=2),
        )

    async def test_reaction_after_rollover_is_ignored(self):
        event = await self._event(_utc(2024, 1, 3, 18, 0))
        self.assertTrue(await self.orchestrator.rollover.maybe_rollover(GUILD_ID, _utc(2024, 1, 8, 10, 0)))
        edits_before = list(self.platform.edits)

        out = await self.orchestrator.handle_reaction(
            guild_id=GUILD_ID, message_id=event.message_id, member_id=42, symbol="✅", display_name="Alice"
        )
        self.assertIsNone(out)
        self.assertEqual(count_answers_sync(self.conn, event.id), 0)
        self.assertEqual(self.platform.edits, edits_before)
        self.assertEqual(self.platform.reactions_removed, [])

    async def test_event_after_rollover_still_accepts_answers(self):
        self.assertTrue(await self.orchestrator.rollover.maybe_rollover(GUILD_ID, _utc(2024, 1, 8, 10, 0)))
        event = await self._event(_utc(2024, 1, 10, 18, 0))
        out = await self.orchestrator.handle_reaction(
            guild_id=GUILD_ID, message_id=event.message_id, member_id=42, symbol="✅", display_name="Alice"
        )
        self.assertEqual(out.choice.value, "yes")
        self.assertEqual(count_answers_sync(self.conn, event.id), 1)


if __name__ == "__main__":
    unittest.main()
