#!/usr/bin/env python3
"""
Initialize the SQLite database used by the focus service.
Run this script standalone or let the service initialize on startup.
"""

import sqlite3
import sys
from pathlib import Path

# Key/value table holding the timer.* and ledger.* keys (JSON-encoded values)
FOCUS_STATE_TABLE = """
    CREATE TABLE IF NOT EXISTS focus_state (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

# Audit trail of timer transitions and reward unlocks
EVENTS_TABLE = """
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_type TEXT NOT NULL,
        details TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

EVENTS_INDEX = "CREATE INDEX IF NOT EXISTS idx_events_time ON events(created_at DESC)"

SCHEMA = (FOCUS_STATE_TABLE, EVENTS_TABLE, EVENTS_INDEX)


def init_database(db_path: Path) -> None:
    """Create the focus tables if they do not exist."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.cursor()

        # WAL mode is persistent in the database file
        cursor.execute("PRAGMA journal_mode=WAL")

        for statement in SCHEMA:
            cursor.execute(statement)

        conn.commit()
    finally:
        conn.close()


if __name__ == "__main__":
    from .config import load_config

    path = Path(sys.argv[1]) if len(sys.argv) > 1 else load_config().db_path
    init_database(path)
    print(f"Database initialized at {path}")
    print("Tables created: focus_state, events")
