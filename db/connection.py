from __future__ import annotations

import os
import sqlite3

from db.migrate import apply_sqlite_migrations
from db.migrate import list_schema_migrations_sync


REQUIRED_COLUMNS: dict[str, list[str]] = {
    "guild_metadata": ["guild_id", "last_week_reset_utc", "channel_name"],
    "members": ["guild_id", "member_id", "display_name"],
    "events": ["guild_id", "channel_id", "message_id", "name", "start_at_utc", "end_at_utc", "source"],
    "answers": ["event_id", "user_id", "choice", "updated_at_utc"],
}


def default_migrations_dir() -> str:
    repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(repo_root, "migrations")


def _table_columns(conn: sqlite3.Connection, table: str) -> list[str]:
    # rows: (cid, name, type, notnull, dflt_value, pk)
    return [r[1] for r in conn.execute(f"PRAGMA table_info({table})").fetchall()]


def verify_schema(conn: sqlite3.Connection) -> dict[str, list[str]]:
    """Return the missing columns per table; an empty dict means the schema is complete."""
    missing: dict[str, list[str]] = {}
    for table, required in REQUIRED_COLUMNS.items():
        cols = set(_table_columns(conn, table))
        gaps = [c for c in required if c not in cols]
        if gaps:
            missing[table] = gaps
    return missing


def init_db(db_path: str, migrations_dir: str | None = None) -> sqlite3.Connection:
    # check_same_thread=False because discord.py event loop + to_thread usage
    conn = sqlite3.connect(db_path, check_same_thread=False)
    if db_path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")

    apply_sqlite_migrations(conn, migrations_dir or default_migrations_dir())

    missing = verify_schema(conn)
    for table in REQUIRED_COLUMNS:
        print(f"[DB] {table} schema OK={table not in missing} missing={missing.get(table, [])}")
    latest = list_schema_migrations_sync(conn, limit=1)
    if latest:
        version, name, applied_at = latest[0]
        print(f"[DB] schema version={version}_{name} applied_at={applied_at}")
    return conn
