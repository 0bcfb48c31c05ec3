from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any
from typing import Callable
from typing import TypeVar

from attendance.models import Answer
from attendance.models import AnswerChoice
from attendance.models import Event
from attendance.models import GuildMetadata
from attendance.models import Member


T = TypeVar("T")

EVENT_COLUMNS = (
    "id, guild_id, channel_id, message_id, name, description, location, "
    "start_at_utc, end_at_utc, source"
)


def to_utc_iso(dt: datetime | None = None) -> str:
    # Second precision keeps stored values lexically ordered for range queries.
    dt = dt or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")


def from_utc_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def find_or_create_sync(fetch: Callable[[], T | None], create: Callable[[], Any]) -> T:
    """Shared create-if-absent contract for store rows.

    `create` must be a conflict-tolerant insert (ON CONFLICT DO NOTHING or an
    IntegrityError-safe equivalent) so two racing callers end up reading the same row.
    """
    row = fetch()
    if row is not None:
        return row
    create()
    row = fetch()
    if row is None:
        raise RuntimeError("find_or_create: row missing after insert")
    return row


# ---- metadata ----

def _row_to_metadata(row) -> GuildMetadata | None:
    if row is None:
        return None
    return GuildMetadata(
        id=int(row[0]),
        guild_id=int(row[1]),
        last_week_reset=from_utc_iso(row[2]),
        channel_name=str(row[3] or "general"),
    )


def fetch_metadata_sync(conn: sqlite3.Connection, guild_id: int) -> GuildMetadata | None:
    cur = conn.execute(
        """
        SELECT id, guild_id, last_week_reset_utc, channel_name
        FROM guild_metadata
        WHERE guild_id = ?
        LIMIT 1
        """,
        (int(guild_id),),
    )
    return _row_to_metadata(cur.fetchone())


def get_or_create_metadata_sync(
    conn: sqlite3.Connection,
    guild_id: int,
    *,
    default_channel_name: str = "general",
) -> GuildMetadata:
    def _create() -> None:
        now = to_utc_iso()
        with conn:
            conn.execute(
                """
                INSERT INTO guild_metadata (guild_id, last_week_reset_utc, channel_name, created_at_utc, updated_at_utc)
                VALUES (?, NULL, ?, ?, ?)
                ON CONFLICT(guild_id) DO NOTHING
                """,
                (int(guild_id), (default_channel_name or "general").strip() or "general", now, now),
            )

    return find_or_create_sync(lambda: fetch_metadata_sync(conn, guild_id), _create)


def set_channel_name_sync(conn: sqlite3.Connection, guild_id: int, channel_name: str) -> GuildMetadata | None:
    with conn:
        conn.execute(
            "UPDATE guild_metadata SET channel_name = ?, updated_at_utc = ? WHERE guild_id = ?",
            ((channel_name or "").strip() or "general", to_utc_iso(), int(guild_id)),
        )
    return fetch_metadata_sync(conn, guild_id)


def mark_week_reset_sync(
    conn: sqlite3.Connection,
    guild_id: int,
    *,
    expected_previous: datetime | None,
    reset_at: datetime,
) -> bool:
    """Compare-and-set of last_week_reset in one statement.

    Returns False when another writer moved the value first or when reset_at
    would not move it forward.
    """
    new_iso = to_utc_iso(reset_at)
    if expected_previous is not None and new_iso <= to_utc_iso(expected_previous):
        return False
    with conn:
        if expected_previous is None:
            cur = conn.execute(
                """
                UPDATE guild_metadata
                SET last_week_reset_utc = ?, updated_at_utc = ?
                WHERE guild_id = ? AND last_week_reset_utc IS NULL
                """,
                (new_iso, to_utc_iso(), int(guild_id)),
            )
        else:
            cur = conn.execute(
                """
                UPDATE guild_metadata
                SET last_week_reset_utc = ?, updated_at_utc = ?
                WHERE guild_id = ? AND last_week_reset_utc = ?
                """,
                (new_iso, to_utc_iso(), int(guild_id), to_utc_iso(expected_previous)),
            )
    return cur.rowcount > 0


def list_guild_ids_sync(conn: sqlite3.Connection) -> list[int]:
    cur = conn.execute("SELECT guild_id FROM guild_metadata ORDER BY id ASC")
    return [int(r[0]) for r in cur.fetchall()]


# ---- members ----

def _row_to_member(row) -> Member | None:
    if row is None:
        return None
    return Member(id=int(row[0]), guild_id=int(row[1]), member_id=int(row[2]), display_name=str(row[3] or ""))


def fetch_member_sync(conn: sqlite3.Connection, guild_id: int, member_id: int) -> Member | None:
    cur = conn.execute(
        """
        SELECT id, guild_id, member_id, display_name
        FROM members
        WHERE guild_id = ? AND member_id = ?
        LIMIT 1
        """,
        (int(guild_id), int(member_id)),
    )
    return _row_to_member(cur.fetchone())


def _get_or_create_member_tx(conn: sqlite3.Connection, guild_id: int, member_id: int, display_name: str) -> Member:
    now = to_utc_iso()

    def _create() -> None:
        conn.execute(
            """
            INSERT INTO members (guild_id, member_id, display_name, created_at_utc, updated_at_utc)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(guild_id, member_id) DO NOTHING
            """,
            (int(guild_id), int(member_id), display_name, now, now),
        )

    member = find_or_create_sync(lambda: fetch_member_sync(conn, guild_id, member_id), _create)
    if display_name and member.display_name != display_name:
        conn.execute(
            "UPDATE members SET display_name = ?, updated_at_utc = ? WHERE id = ?",
            (display_name, now, member.id),
        )
        member.display_name = display_name
    return member


def list_members_sync(conn: sqlite3.Connection, guild_id: int) -> list[Member]:
    cur = conn.execute(
        """
        SELECT id, guild_id, member_id, display_name
        FROM members
        WHERE guild_id = ?
        ORDER BY id ASC
        """,
        (int(guild_id),),
    )
    return [m for m in (_row_to_member(r) for r in cur.fetchall()) if m is not None]


# ---- events ----

def _row_to_event(row) -> Event | None:
    if row is None:
        return None
    return Event(
        id=int(row[0]),
        guild_id=int(row[1]),
        channel_id=int(row[2]),
        message_id=int(row[3]),
        name=str(row[4] or ""),
        description=str(row[5] or ""),
        location=str(row[6] or ""),
        start_at=from_utc_iso(row[7]),
        end_at=from_utc_iso(row[8]),
        source=str(row[9] or "template"),
    )


def fetch_event_by_id_sync(conn: sqlite3.Connection, event_id: int) -> Event | None:
    cur = conn.execute(f"SELECT {EVENT_COLUMNS} FROM events WHERE id = ? LIMIT 1", (int(event_id),))
    return _row_to_event(cur.fetchone())


def fetch_event_by_message_sync(conn: sqlite3.Connection, guild_id: int, message_id: int) -> Event | None:
    cur = conn.execute(
        f"SELECT {EVENT_COLUMNS} FROM events WHERE guild_id = ? AND message_id = ? LIMIT 1",
        (int(guild_id), int(message_id)),
    )
    return _row_to_event(cur.fetchone())


def insert_event_sync(
    conn: sqlite3.Connection,
    *,
    guild_id: int,
    channel_id: int,
    message_id: int,
    name: str,
    description: str,
    location: str,
    start_at: datetime,
    end_at: datetime,
    source: str = "template",
) -> Event:
    with conn:
        cur = conn.execute(
            """
            INSERT INTO events (
                guild_id, channel_id, message_id, name, description, location,
                start_at_utc, end_at_utc, source, created_at_utc
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(guild_id),
                int(channel_id),
                int(message_id),
                (name or "").strip(),
                (description or "").strip(),
                (location or "").strip(),
                to_utc_iso(start_at),
                to_utc_iso(end_at),
                source,
                to_utc_iso(),
            ),
        )
    event = fetch_event_by_id_sync(conn, int(cur.lastrowid))
    if event is None:
        raise RuntimeError("Failed to create/fetch event")
    return event


def list_events_sync(
    conn: sqlite3.Connection,
    guild_id: int,
    *,
    start_from: datetime | None = None,
    start_before: datetime | None = None,
) -> list[Event]:
    clauses = ["guild_id = ?"]
    params: list[Any] = [int(guild_id)]
    if start_from is not None:
        clauses.append("start_at_utc >= ?")
        params.append(to_utc_iso(start_from))
    if start_before is not None:
        clauses.append("start_at_utc < ?")
        params.append(to_utc_iso(start_before))
    cur = conn.execute(
        f"SELECT {EVENT_COLUMNS} FROM events WHERE {' AND '.join(clauses)} ORDER BY start_at_utc ASC, id ASC",
        tuple(params),
    )
    return [e for e in (_row_to_event(r) for r in cur.fetchall()) if e is not None]


# ---- answers ----

def _row_to_answer(row) -> Answer | None:
    if row is None:
        return None
    return Answer(
        id=int(row[0]),
        event_id=int(row[1]),
        user_id=int(row[2]),
        choice=AnswerChoice(row[3]),
        updated_at=from_utc_iso(row[4]),
        member_id=int(row[5]) if len(row) > 5 and row[5] is not None else None,
        display_name=str(row[6] or "") if len(row) > 6 else "",
    )


def fetch_answer_sync(conn: sqlite3.Connection, event_id: int, user_id: int) -> Answer | None:
    cur = conn.execute(
        """
        SELECT a.id, a.event_id, a.user_id, a.choice, a.updated_at_utc, m.member_id, m.display_name
        FROM answers AS a
        JOIN members AS m ON m.id = a.user_id
        WHERE a.event_id = ? AND a.user_id = ?
        LIMIT 1
        """,
        (int(event_id), int(user_id)),
    )
    return _row_to_answer(cur.fetchone())


def fetch_answers_sync(conn: sqlite3.Connection, event_id: int) -> list[Answer]:
    cur = conn.execute(
        """
        SELECT a.id, a.event_id, a.user_id, a.choice, a.updated_at_utc, m.member_id, m.display_name
        FROM answers AS a
        JOIN members AS m ON m.id = a.user_id
        WHERE a.event_id = ?
        ORDER BY a.id ASC
        """,
        (int(event_id),),
    )
    return [a for a in (_row_to_answer(r) for r in cur.fetchall()) if a is not None]


def count_answers_sync(conn: sqlite3.Connection, event_id: int, user_id: int | None = None) -> int:
    if user_id is None:
        cur = conn.execute("SELECT COUNT(*) FROM answers WHERE event_id = ?", (int(event_id),))
    else:
        cur = conn.execute(
            "SELECT COUNT(*) FROM answers WHERE event_id = ? AND user_id = ?",
            (int(event_id), int(user_id)),
        )
    return int(cur.fetchone()[0])


def _write_answer_tx(
    conn: sqlite3.Connection,
    *,
    event_id: int,
    user_id: int,
    choice: AnswerChoice,
    updated_at_iso: str,
    exists: bool,
) -> None:
    update_sql = "UPDATE answers SET choice = ?, updated_at_utc = ? WHERE event_id = ? AND user_id = ?"
    update_params = (choice.value, updated_at_iso, int(event_id), int(user_id))
    if exists:
        conn.execute(update_sql, update_params)
        return
    try:
        conn.execute(
            """
            INSERT INTO answers (event_id, user_id, choice, updated_at_utc)
            VALUES (?, ?, ?, ?)
            """,
            (int(event_id), int(user_id), choice.value, updated_at_iso),
        )
    except sqlite3.IntegrityError:
        # A concurrent writer inserted the same (event, user) pair first.
        conn.execute(update_sql, update_params)


def record_answer_sync(
    conn: sqlite3.Connection,
    *,
    event_id: int,
    guild_id: int,
    member_id: int,
    display_name: str,
    choice: AnswerChoice,
    answered_at: datetime | None = None,
) -> Answer:
    """Find-or-create the member and upsert their answer in one transaction."""
    if choice is AnswerChoice.UNRECOGNIZED:
        raise ValueError("Unrecognized choices cannot be stored")
    with conn:
        member = _get_or_create_member_tx(conn, guild_id, member_id, (display_name or "").strip())
        existing = fetch_answer_sync(conn, event_id, member.id)
        _write_answer_tx(
            conn,
            event_id=event_id,
            user_id=member.id,
            choice=choice,
            updated_at_iso=to_utc_iso(answered_at),
            exists=existing is not None,
        )
    answer = fetch_answer_sync(conn, event_id, member.id)
    if answer is None:
        raise RuntimeError("Failed to upsert answer")
    return answer
