"""
SQLite database initialization and connection management.

Single responsibility: own the connection and create tables.
All actual queries live in Repository.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent / "timeline.db"

SCHEMA_SQL = """
-- Engine snapshot slot (single row) ------------------------------------------
CREATE TABLE IF NOT EXISTS app_state (
    id              INTEGER PRIMARY KEY CHECK (id = 1),
    last_seen_at    TEXT    NOT NULL,
    snapshot_json   TEXT    NOT NULL,
    updated_at      TEXT    NOT NULL DEFAULT (datetime('now'))
);

-- Session results (one per terminated battle) --------------------------------
CREATE TABLE IF NOT EXISTS session_results (
    id                          INTEGER PRIMARY KEY AUTOINCREMENT,
    result_key                  TEXT    NOT NULL UNIQUE,
    task_name                   TEXT    NOT NULL,
    end_reason                  TEXT    NOT NULL,
    focused_seconds             REAL    NOT NULL,
    wasted_seconds              REAL    NOT NULL DEFAULT 0,
    remaining_seconds_at_exit   REAL,
    timestamp                   TEXT    NOT NULL,
    focus_group_json            TEXT
);

-- Repeat-spawn ledger ---------------------------------------------------------
CREATE TABLE IF NOT EXISTS spawn_ledger (
    key         TEXT    PRIMARY KEY,
    created_at  TEXT    NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_results_timestamp ON session_results(timestamp);
"""


class Database:
    """Thin wrapper around a SQLite connection."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.conn: Optional[sqlite3.Connection] = None

    # -- lifecycle -----------------------------------------------------------

    def connect(self) -> sqlite3.Connection:
        """Open (or return existing) connection and ensure schema exists."""
        if self.conn is not None:
            return self.conn
        logger.info("Connecting to SQLite at %s", self.db_path)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()
        return self.conn

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database connection closed.")

    # -- internal ------------------------------------------------------------

    def _create_tables(self) -> None:
        assert self.conn is not None
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()
        logger.info("Database schema ensured.")
