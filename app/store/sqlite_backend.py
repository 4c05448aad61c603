"""LocalSQLiteStore — aiosqlite-based async key and event store.

Uses aiosqlite EXCLUSIVELY; the stdlib sqlite3 synchronous API is not used.

Features:
  - WAL mode: PRAGMA journal_mode=WAL (concurrent reads while writing)
  - Schema version guard: PRAGMA user_version=1 — RuntimeError on mismatch
  - Long-lived connection: opened in initialize(), closed in close()
  - access_keys.code UNIQUE — create_many() is all-or-nothing and raises
    DuplicateKeyCodeError on a collision
  - One asyncio.Lock around write transactions so concurrent requests sharing
    the connection never commit each other's partial work
  - Implements both the KeyStore and EventStore protocols
"""

from __future__ import annotations

import asyncio
import json
import os
import re
from datetime import datetime, timezone
from typing import Optional, Sequence

import aiosqlite

from app.errors import DuplicateKeyCodeError
from app.models.event import Event, EventDraft, SportCategory
from app.models.keys import AccessKey, KeyStatus, NewAccessKey
from app.utils.logger import get_logger
from app.utils.ulid import generate_ulid

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS events (
    event_id            TEXT PRIMARY KEY,
    name                TEXT NOT NULL,
    type                TEXT NOT NULL CHECK(type IN ('single', 'multi')),
    status              TEXT NOT NULL DEFAULT 'upcoming',
    sports              TEXT NOT NULL,
    location_city       TEXT NOT NULL,
    location_venue      TEXT,
    location_timezone   TEXT NOT NULL,
    start_date          TEXT NOT NULL,
    end_date            TEXT NOT NULL,
    max_participants    INTEGER NOT NULL,
    used_keys           INTEGER NOT NULL DEFAULT 0,
    total_keys          INTEGER NOT NULL DEFAULT 0,
    visibility          TEXT NOT NULL CHECK(visibility IN ('public', 'private')),
    logo_url            TEXT,
    sponsor_logos       TEXT,
    created_at          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS access_keys (
    id              TEXT PRIMARY KEY,
    code            TEXT NOT NULL UNIQUE,
    event_id        TEXT NOT NULL REFERENCES events(event_id) ON DELETE CASCADE,
    sport_id        TEXT NOT NULL,
    sport_name      TEXT NOT NULL,
    sport_emoji     TEXT NOT NULL DEFAULT '',
    status          TEXT NOT NULL CHECK(status IN ('AVAILABLE', 'CLAIMED', 'REVOKED')),
    claimed_by_id   TEXT,
    claimed_at      TEXT,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_keys_event_created
    ON access_keys(event_id, created_at DESC);

CREATE INDEX IF NOT EXISTS idx_events_created
    ON events(created_at DESC);
"""

_SCHEMA_VERSION = 1

_EVENT_ID_RE = re.compile(r"^EVT-(\d+)$")


def _utcnow_iso() -> str:
    # Fixed microsecond precision keeps ISO strings lexicographically sortable
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


# ─── Row deserialisers ────────────────────────────────────────────────────────


def _row_to_access_key(row: aiosqlite.Row) -> AccessKey:
    claimed_at: Optional[str] = row["claimed_at"]
    return AccessKey(
        id=row["id"],
        code=row["code"],
        event_id=row["event_id"],
        sport_id=row["sport_id"],
        sport_name=row["sport_name"],
        sport_emoji=row["sport_emoji"],
        status=KeyStatus(row["status"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        claimed_by_id=row["claimed_by_id"],
        claimed_at=datetime.fromisoformat(claimed_at) if claimed_at else None,
    )


def _row_to_event(row: aiosqlite.Row) -> Event:
    sports_raw = json.loads(row["sports"]) if row["sports"] else []
    sponsors_raw: Optional[str] = row["sponsor_logos"]
    return Event(
        event_id=row["event_id"],
        name=row["name"],
        type=row["type"],
        status=row["status"],
        sports=[SportCategory(**sport) for sport in sports_raw],
        location_city=row["location_city"],
        location_venue=row["location_venue"],
        location_timezone=row["location_timezone"],
        start_date=datetime.fromisoformat(row["start_date"]),
        end_date=datetime.fromisoformat(row["end_date"]),
        max_participants=row["max_participants"],
        used_keys=row["used_keys"],
        total_keys=row["total_keys"],
        visibility=row["visibility"],
        logo_url=row["logo_url"],
        sponsor_logos=json.loads(sponsors_raw) if sponsors_raw else [],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


# ─── LocalSQLiteStore ─────────────────────────────────────────────────────────


class LocalSQLiteStore:
    """Async SQLite store for events and access keys.

    Default path: ~/.eventdesk/eventdesk.db (config: store.path,
    env: EVENTDESK_DB_PATH). Pass db_path explicitly in tests.

    Usage:
        store = LocalSQLiteStore(path)
        await store.initialize()   # raises RuntimeError on schema version mismatch
        event = await store.create_event(draft)
        await store.create_many(rows)
        await store.close()
    """

    def __init__(self, db_path: str = "~/.eventdesk/eventdesk.db") -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection, enable WAL + foreign keys, create/verify schema.

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
                          The FastAPI lifespan lets this abort startup.
        """
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("PRAGMA journal_mode=WAL;")
        await self._db.execute("PRAGMA foreign_keys=ON;")

        cursor = await self._db.execute("PRAGMA user_version;")
        row = await cursor.fetchone()
        current_version: int = row[0] if row else 0

        if current_version == 0:
            await self._db.executescript(_CREATE_SCHEMA_SQL)
            # executescript may not honour PRAGMA in all SQLite builds;
            # set user_version separately after the script.
            await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
            await self._db.commit()
            logger.info("store_schema_created", db_path=self._db_path, schema_version=_SCHEMA_VERSION)
        elif current_version == _SCHEMA_VERSION:
            logger.info("store_schema_ok", db_path=self._db_path, schema_version=current_version)
        else:
            await self._db.close()
            self._db = None
            raise RuntimeError(
                f"Unsupported store schema version: {current_version}. "
                f"Delete {self._db_path} to reset."
            )

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("store_closed", db_path=self._db_path)

    async def health_check(self) -> bool:
        """Returns True if a trivial query succeeds. Must not raise."""
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                await cursor.fetchone()
            return True
        except Exception as exc:
            logger.warning("store_health_check_failed", error=str(exc))
            return False

    @property
    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("LocalSQLiteStore used before initialize()")
        return self._db

    # ── KeyStore ──────────────────────────────────────────────────────────────

    async def create_many(self, rows: Sequence[NewAccessKey]) -> int:
        if not rows:
            return 0
        now = _utcnow_iso()
        params = [
            (
                generate_ulid(),
                row.code,
                row.event_id,
                row.sport_id,
                row.sport_name,
                row.sport_emoji,
                row.status.value,
                now,
            )
            for row in rows
        ]
        async with self._write_lock:
            try:
                await self._conn.executemany(
                    "INSERT INTO access_keys "
                    "(id, code, event_id, sport_id, sport_name, sport_emoji, status, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    params,
                )
                await self._conn.commit()
            except aiosqlite.IntegrityError as exc:
                await self._conn.rollback()
                if "access_keys.code" in str(exc):
                    raise DuplicateKeyCodeError("Duplicate access key code in batch") from exc
                raise
            except Exception:
                await self._conn.rollback()
                raise
        return len(params)

    async def find_by_event(self, event_id: str) -> list[AccessKey]:
        async with self._conn.execute(
            "SELECT * FROM access_keys WHERE event_id = ? "
            "ORDER BY created_at DESC, rowid DESC",
            (event_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_access_key(row) for row in rows]

    async def get_key(self, key_id: str) -> Optional[AccessKey]:
        async with self._conn.execute(
            "SELECT * FROM access_keys WHERE id = ?", (key_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_access_key(row) if row is not None else None

    async def update_status(self, key_id: str, status: KeyStatus) -> bool:
        async with self._write_lock:
            cursor = await self._conn.execute(
                "UPDATE access_keys SET status = ? WHERE id = ?",
                (status.value, key_id),
            )
            await self._conn.commit()
        return cursor.rowcount > 0

    async def delete_key(self, key_id: str) -> bool:
        async with self._write_lock:
            cursor = await self._conn.execute(
                "DELETE FROM access_keys WHERE id = ?", (key_id,)
            )
            await self._conn.commit()
        return cursor.rowcount > 0

    # ── EventStore ────────────────────────────────────────────────────────────

    async def find_by_event_id(self, event_id: str) -> Optional[Event]:
        async with self._conn.execute(
            "SELECT * FROM events WHERE event_id = ?", (event_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_event(row) if row is not None else None

    async def list_events(self) -> list[Event]:
        async with self._conn.execute(
            "SELECT * FROM events ORDER BY created_at DESC, rowid DESC"
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_event(row) for row in rows]

    async def next_event_id(self) -> str:
        async with self._conn.execute("SELECT event_id FROM events") as cursor:
            rows = await cursor.fetchall()
        highest = 0
        for row in rows:
            match = _EVENT_ID_RE.match(row["event_id"])
            if match:
                highest = max(highest, int(match.group(1)))
        return f"EVT-{highest + 1:03d}"

    async def create_event(self, draft: EventDraft) -> Event:
        async with self._write_lock:
            event_id = await self.next_event_id()
            created_at = _utcnow_iso()
            try:
                await self._conn.execute(
                    "INSERT INTO events (event_id, name, type, status, sports, location_city, "
                    "location_venue, location_timezone, start_date, end_date, max_participants, "
                    "used_keys, total_keys, visibility, logo_url, sponsor_logos, created_at) "
                    "VALUES (?, ?, ?, 'upcoming', ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, NULL, NULL, ?)",
                    (
                        event_id,
                        draft.name,
                        draft.type,
                        json.dumps(
                            [{"id": s.id, "label": s.label, "emoji": s.emoji} for s in draft.sports]
                        ),
                        draft.location_city,
                        draft.location_venue,
                        draft.location_timezone,
                        draft.start_date.isoformat(),
                        draft.end_date.isoformat(),
                        draft.max_participants,
                        draft.total_keys,
                        draft.visibility,
                        created_at,
                    ),
                )
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise

        event = await self.find_by_event_id(event_id)
        if event is None:
            raise RuntimeError(f"Event {event_id} missing immediately after insert")
        return event

    async def set_logo_urls(
        self,
        event_id: str,
        logo_url: Optional[str],
        sponsor_logos: Sequence[dict[str, str]],
    ) -> None:
        async with self._write_lock:
            await self._conn.execute(
                "UPDATE events SET logo_url = ?, sponsor_logos = ? WHERE event_id = ?",
                (logo_url, json.dumps(list(sponsor_logos)) if sponsor_logos else None, event_id),
            )
            await self._conn.commit()

    async def delete_event(self, event_id: str) -> bool:
        async with self._write_lock:
            try:
                await self._conn.execute(
                    "DELETE FROM access_keys WHERE event_id = ?", (event_id,)
                )
                cursor = await self._conn.execute(
                    "DELETE FROM events WHERE event_id = ?", (event_id,)
                )
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise
        return cursor.rowcount > 0
