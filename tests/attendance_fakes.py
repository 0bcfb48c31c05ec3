from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path

from attendance.lifecycle import EventLifecycleManager
from attendance.models import ChannelRef
from attendance.models import FixedTrainingTime
from attendance.orchestrator import AttendanceOrchestrator
from attendance.reconciler import AttendanceReconciler
from attendance.rollover import WeeklyRolloverScheduler
from attendance.settings import AttendanceSettings
from attendance.templates import TemplateConfig
from db.migrate import apply_sqlite_migrations


SELF_USER_ID = 1
GUILD_ID = 500


def _migrations_dir() -> str:
    return str(Path(__file__).resolve().parents[1] / "migrations")


def make_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.execute("PRAGMA foreign_keys=ON;")
    apply_sqlite_migrations(conn, _migrations_dir())
    return conn


class StaticTemplates:
    def __init__(self, training_times: list[FixedTrainingTime] | None = None, *, timezone: str = "UTC"):
        self._config = TemplateConfig(timezone=timezone, channel_name=None, training_times=list(training_times or []))

    def config(self, force_reload: bool = False) -> TemplateConfig:
        return self._config

    def training_times(self) -> list[FixedTrainingTime]:
        return list(self._config.training_times)


class FakePlatform:
    """Records every outbound call; message ids and channel ids are handed out in order."""

    def __init__(self, *, channels: list[ChannelRef] | None = None, members: dict[int, str] | None = None):
        self.channels: dict[int, list[ChannelRef]] = {GUILD_ID: list(channels or [])}
        self.members = dict(members or {})
        self.eligible = len(self.members)
        self.messages: dict[int, str] = {}
        self.sent: list[tuple[int, str]] = []
        self.edits: list[tuple[int, int, str]] = []
        self.reactions_added: list[tuple[int, int, str]] = []
        self.reactions_removed: list[tuple[int, int, str, int]] = []
        self.reaction_users: dict[tuple[int, str], list[int]] = {}
        self.created_channels: list[str] = []
        self.fail_send_containing: str | None = None
        self.fail_resolve = False
        self._next_id = 9000

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    def guild_ids(self) -> list[int]:
        return list(self.channels)

    async def send_message(self, channel_id: int, text: str) -> int:
        if self.fail_send_containing and self.fail_send_containing in text:
            raise RuntimeError("send refused")
        message_id = self._id()
        self.messages[message_id] = text
        self.sent.append((channel_id, text))
        return message_id

    async def edit_message(self, channel_id: int, message_id: int, text: str) -> None:
        self.messages[message_id] = text
        self.edits.append((channel_id, message_id, text))

    async def add_reaction(self, channel_id: int, message_id: int, symbol: str) -> None:
        self.reactions_added.append((channel_id, message_id, symbol))

    async def list_reaction_users(self, channel_id: int, message_id: int, symbol: str) -> list[int]:
        return list(self.reaction_users.get((message_id, symbol), []))

    async def remove_user_reaction(self, channel_id: int, message_id: int, symbol: str, user_id: int) -> None:
        self.reactions_removed.append((channel_id, message_id, symbol, user_id))

    async def list_channels(self, guild_id: int) -> list[ChannelRef]:
        return list(self.channels.get(guild_id, []))

    async def create_channel(self, guild_id: int, name: str) -> ChannelRef:
        ch = ChannelRef(id=self._id(), name=name)
        self.channels.setdefault(guild_id, []).append(ch)
        self.created_channels.append(name)
        return ch

    async def resolve_user(self, guild_id: int, user_id: int) -> str:
        if self.fail_resolve or int(user_id) not in self.members:
            raise LookupError(f"unknown member {user_id}")
        return self.members[int(user_id)]

    async def count_eligible_members(self, guild_id: int) -> int:
        return self.eligible


def make_stack(
    *,
    training_times: list[FixedTrainingTime] | None = None,
    platform: FakePlatform | None = None,
    settings: AttendanceSettings | None = None,
    conn: sqlite3.Connection | None = None,
):
    conn = conn or make_conn()
    platform = platform or FakePlatform()
    db_lock = asyncio.Lock()
    lifecycle = EventLifecycleManager(
        db_lock=db_lock,
        db_conn=conn,
        platform=platform,
        templates=StaticTemplates(training_times),
        settings=settings or AttendanceSettings(timezone_name="UTC", default_channel_name="general"),
    )
    reconciler = AttendanceReconciler(db_lock=db_lock, db_conn=conn, platform=platform)
    rollover = WeeklyRolloverScheduler(db_lock=db_lock, db_conn=conn, platform=platform, lifecycle=lifecycle)
    orchestrator = AttendanceOrchestrator(
        db_lock=db_lock,
        db_conn=conn,
        lifecycle=lifecycle,
        reconciler=reconciler,
        rollover=rollover,
    )
    return conn, platform, orchestrator


def monday_training(**overrides) -> FixedTrainingTime:
    values = dict(
        weekday=0,
        start_hour=18,
        start_minute=0,
        end_hour=20,
        end_minute=0,
        name="Monday Training",
        description="All levels",
        location="Main hall",
    )
    values.update(overrides)
    return FixedTrainingTime(**values)
