from __future__ import annotations

import hashlib
import importlib.util
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path


MIGRATION_RE = re.compile(r"^(\d{4})_([a-zA-Z0-9_]+)\.(sql|py)$")


@dataclass(frozen=True, slots=True)
class MigrationFile:
    version: str
    name: str
    ext: str
    path: Path

    @property
    def label(self) -> str:
        return f"{self.version}_{self.name}.{self.ext}"

    def checksum(self) -> str:
        return hashlib.sha256(self.path.read_bytes()).hexdigest()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ensure_migration_table(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at_utc TEXT NOT NULL
        )
        """
    )
    conn.commit()


def _load_applied(conn: sqlite3.Connection) -> dict[str, tuple[str, str]]:
    cur = conn.execute("SELECT version, name, checksum FROM schema_migrations")
    return {str(version): (str(name), str(checksum)) for version, name, checksum in cur.fetchall()}


def discover_migrations(migrations_dir: str) -> list[MigrationFile]:
    base = Path(migrations_dir)
    if not base.exists():
        raise RuntimeError(f"Migrations directory not found: {migrations_dir}")
    found: list[MigrationFile] = []
    for p in sorted(base.iterdir()):
        if not p.is_file():
            continue
        m = MIGRATION_RE.match(p.name)
        if m:
            found.append(MigrationFile(version=m.group(1), name=m.group(2), ext=m.group(3), path=p))
    return found


def _run_sql(conn: sqlite3.Connection, path: Path) -> None:
    conn.executescript(path.read_text(encoding="utf-8"))


def _run_py(conn: sqlite3.Connection, path: Path) -> None:
    spec = importlib.util.spec_from_file_location(f"rollcall_migration_{path.stem}", str(path))
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Could not load migration module: {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    upgrade = getattr(module, "upgrade", None)
    if not callable(upgrade):
        raise RuntimeError(f"Python migration missing upgrade(conn): {path}")
    upgrade(conn)


def apply_sqlite_migrations(conn: sqlite3.Connection, migrations_dir: str) -> list[str]:
    """Apply every pending migration in version order and return the labels applied.

    A migration whose version was already recorded must still match the recorded
    name and checksum; editing an applied migration is refused.
    """
    _ensure_migration_table(conn)
    applied = _load_applied(conn)
    ran: list[str] = []

    for mig in discover_migrations(migrations_dir):
        checksum = mig.checksum()
        existing = applied.get(mig.version)
        if existing:
            old_name, old_checksum = existing
            if old_name != mig.name or old_checksum != checksum:
                raise RuntimeError(
                    f"Migration version {mig.version} already applied with different content "
                    f"(existing name={old_name}, file name={mig.name})."
                )
            continue

        print(f"[DB] Applying migration {mig.label}")
        try:
            if mig.ext == "sql":
                _run_sql(conn, mig.path)
            else:
                _run_py(conn, mig.path)
            conn.execute(
                """
                INSERT INTO schema_migrations (version, name, checksum, applied_at_utc)
                VALUES (?, ?, ?, ?)
                """,
                (mig.version, mig.name, checksum, _utc_now_iso()),
            )
            conn.commit()
        except Exception as e:
            conn.rollback()
            raise RuntimeError(f"Migration {mig.label} failed: {e}") from e
        ran.append(mig.label)
    return ran


def list_schema_migrations_sync(conn: sqlite3.Connection, limit: int = 50) -> list[tuple[str, str, str]]:
    try:
        cur = conn.execute(
            """
            SELECT version, name, applied_at_utc
            FROM schema_migrations
            ORDER BY version DESC
            LIMIT ?
            """,
            (max(1, min(int(limit), 500)),),
        )
        return cur.fetchall()
    except sqlite3.OperationalError:
        return []
