"""Persisted key/value state and audit trail, backed by SQLite via aiosqlite."""

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from .init_db import SCHEMA

logger = logging.getLogger("tasko_focus.state_store")


class StateStore:
    """JSON values under string keys, plus an append-only events table.

    Every call opens its own connection; writes commit before returning.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    async def init(self):
        """Create tables. Safe to call on every startup."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            for statement in SCHEMA:
                await db.execute(statement)
            await db.commit()

    # ── Key/value ──────────────────────────────────────────────

    async def load(self, prefix: str = "") -> dict[str, Any]:
        """Return decoded values whose key starts with prefix.

        Rows that fail to decode are skipped so callers see them as missing.
        """
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT key, value FROM focus_state WHERE key LIKE ? ORDER BY key",
                (f"{prefix}%",)
            )
            rows = await cursor.fetchall()

        values = {}
        for key, raw in rows:
            try:
                values[key] = json.loads(raw)
            except (json.JSONDecodeError, TypeError) as e:
                logger.warning(f"State: dropping undecodable value for {key}: {e}")
        return values

    async def save(self, values: dict[str, Any]):
        """Upsert all values in one transaction."""
        if not values:
            return
        now = datetime.now().isoformat()
        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany(
                """INSERT INTO focus_state (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = excluded.updated_at""",
                [(key, json.dumps(value), now) for key, value in values.items()]
            )
            await db.commit()

    # ── Events ─────────────────────────────────────────────────

    async def log_event(self, event_type: str, details: Optional[dict] = None):
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT INTO events (event_type, details, created_at) VALUES (?, ?, ?)",
                (event_type, json.dumps(details) if details else None, datetime.now().isoformat())
            )
            await db.commit()

    async def recent_events(self, limit: int = 50) -> list[dict]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM events ORDER BY id DESC LIMIT ?",
                (limit,)
            )
            rows = await cursor.fetchall()

        events = []
        for row in rows:
            event = dict(row)
            if event.get("details"):
                try:
                    event["details"] = json.loads(event["details"])
                except json.JSONDecodeError:
                    pass
            events.append(event)
        return events

    async def purge_events(self, older_than_days: int = 30) -> int:
        """Delete events older than the cutoff. Returns rows deleted."""
        cutoff = (datetime.now() - timedelta(days=older_than_days)).isoformat()
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "DELETE FROM events WHERE created_at < ?",
                (cutoff,)
            )
            deleted = cursor.rowcount
            await db.commit()
        return deleted
