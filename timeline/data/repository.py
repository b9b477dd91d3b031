"""
Repository - the single place where SQL lives.

Stores the engine snapshot slot, the session-result ledger and the
repeat-spawn ledger. The engine itself never touches SQLite.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Set, Tuple

from .codec import (
    SnapshotDecodeError,
    dumps_snapshot,
    end_reason_from_str,
    loads_snapshot,
    result_key,
    summary_from_json,
    summary_to_json,
)
from .models import BattleSnapshot, SessionResult

logger = logging.getLogger(__name__)

_parse_dt = lambda s: datetime.fromisoformat(s) if s else None


class Repository:
    """Data-access layer wrapping a sqlite3 connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # ── Snapshot slot ───────────────────────────────────────────────────────

    def save_snapshot(self, snapshot: BattleSnapshot, last_seen_at: datetime) -> None:
        self.conn.execute(
            """INSERT INTO app_state (id, last_seen_at, snapshot_json, updated_at)
               VALUES (1, ?, ?, datetime('now'))
               ON CONFLICT(id) DO UPDATE SET
                   last_seen_at = excluded.last_seen_at,
                   snapshot_json = excluded.snapshot_json,
                   updated_at = excluded.updated_at""",
            (last_seen_at.isoformat(), dumps_snapshot(snapshot)),
        )
        self.conn.commit()

    def load_snapshot(self) -> Optional[Tuple[BattleSnapshot, datetime]]:
        """Return (snapshot, last_seen_at), or None if nothing usable is stored."""
        row = self.conn.execute(
            "SELECT last_seen_at, snapshot_json FROM app_state WHERE id = 1"
        ).fetchone()
        if not row:
            return None
        try:
            snapshot = loads_snapshot(row["snapshot_json"])
        except SnapshotDecodeError as exc:
            logger.warning("Discarding unreadable snapshot: %s", exc)
            return None
        return snapshot, _parse_dt(row["last_seen_at"])

    def clear_snapshot(self) -> None:
        self.conn.execute("DELETE FROM app_state")
        self.conn.commit()

    # ── Session results ─────────────────────────────────────────────────────

    def record_session_result(self, result: SessionResult) -> bool:
        """Store a result. Returns False if it was already recorded (replay)."""
        cur = self.conn.execute(
            """INSERT OR IGNORE INTO session_results
               (result_key, task_name, end_reason, focused_seconds, wasted_seconds,
                remaining_seconds_at_exit, timestamp, focus_group_json)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                result_key(result),
                result.task_name,
                result.end_reason.value,
                result.focused_seconds,
                result.wasted_seconds,
                result.remaining_seconds_at_exit,
                result.timestamp.isoformat(),
                summary_to_json(result.focus_group_summary),
            ),
        )
        self.conn.commit()
        inserted = cur.rowcount > 0
        if not inserted:
            logger.info("Ignoring duplicate session result for %s", result.task_name)
        return inserted

    def list_session_results(
        self,
        start_after: Optional[datetime] = None,
        start_before: Optional[datetime] = None,
        limit: int = 500,
    ) -> List[SessionResult]:
        query = "SELECT * FROM session_results"
        conditions: List[str] = []
        params: list = []
        if start_after:
            conditions.append("timestamp >= ?")
            params.append(start_after.isoformat())
        if start_before:
            conditions.append("timestamp < ?")
            params.append(start_before.isoformat())
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY timestamp LIMIT ?"
        params.append(limit)

        rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_result(r) for r in rows]

    def focused_seconds_on(self, day: date) -> float:
        start = datetime.combine(day, time.min)
        end = start + timedelta(days=1)
        row = self.conn.execute(
            "SELECT COALESCE(SUM(focused_seconds), 0) FROM session_results "
            "WHERE timestamp >= ? AND timestamp < ?",
            (start.isoformat(), end.isoformat()),
        ).fetchone()
        return float(row[0])

    # ── Spawn ledger ────────────────────────────────────────────────────────

    def spawned_keys(self) -> Set[str]:
        rows = self.conn.execute("SELECT key FROM spawn_ledger").fetchall()
        return {r["key"] for r in rows}

    def add_spawned_keys(self, keys: Iterable[str]) -> None:
        self.conn.executemany(
            "INSERT OR IGNORE INTO spawn_ledger (key) VALUES (?)",
            [(k,) for k in keys],
        )
        self.conn.commit()

    # ── Row mappers ─────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_result(row: sqlite3.Row) -> SessionResult:
        return SessionResult(
            end_reason=end_reason_from_str(row["end_reason"]),
            focused_seconds=row["focused_seconds"],
            wasted_seconds=row["wasted_seconds"] or 0.0,
            task_name=row["task_name"],
            timestamp=_parse_dt(row["timestamp"]),
            remaining_seconds_at_exit=row["remaining_seconds_at_exit"],
            focus_group_summary=summary_from_json(row["focus_group_json"]),
        )


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   The Repository is the ONLY place raw SQL lives. The host saves the
#   engine snapshot here every tick and appends each SessionResult.
#
# Key methods:
#   - save_snapshot / load_snapshot: a single-row upsert. There is only ever
#     one engine, so there is only ever one snapshot.
#   - record_session_result: INSERT OR IGNORE on a natural key, so replaying
#     a result after restore() is harmless.
#   - spawned_keys / add_spawned_keys: the ledger that keeps daily repeats
#     from spawning twice.
#
# Interviewer-friendly talking points:
#   1. Idempotent writes beat "check then insert": no race, one round-trip.
#   2. An unreadable snapshot is logged and dropped rather than crashing the
#      launch; the user loses one in-flight battle, not the app.
