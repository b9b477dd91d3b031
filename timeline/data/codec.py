"""
JSON codec for snapshots and session results.

The engine assumes structurally valid snapshots; this module is where bad
payloads get caught, as SnapshotDecodeError.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Dict, Optional

from .models import (
    BattleSnapshot,
    Boss,
    BossStyle,
    DailyFunctionality,
    EngineState,
    FocusGroupSegment,
    FocusGroupSummary,
    FreezeRecord,
    SessionEndReason,
    SessionResult,
)

SNAPSHOT_VERSION = 1


class SnapshotDecodeError(ValueError):
    """Raised when a stored payload can't be turned back into a model."""


_parse_dt = lambda s: datetime.fromisoformat(s) if s else None
_format_dt = lambda d: d.isoformat() if d else None


# ── Boss / records ──────────────────────────────────────────────────────────

def boss_to_dict(boss: Boss) -> Dict[str, Any]:
    return {
        "id": boss.id,
        "name": boss.name,
        "max_hp": boss.max_hp,
        "current_hp": boss.current_hp,
        "style": boss.style.value,
        "template_id": boss.template_id,
    }


def boss_from_dict(data: Dict[str, Any]) -> Boss:
    return Boss(
        id=data["id"],
        name=data["name"],
        max_hp=float(data["max_hp"]),
        current_hp=data.get("current_hp"),
        # Older saves predate passive tasks.
        style=BossStyle(data.get("style", BossStyle.FOCUS.value)),
        template_id=data.get("template_id"),
    )


def _freeze_to_dict(rec: FreezeRecord) -> Dict[str, Any]:
    return {
        "task_name": rec.task_name,
        "duration": rec.duration,
        "started_at": _format_dt(rec.started_at),
        "ended_at": _format_dt(rec.ended_at),
    }


def _freeze_from_dict(data: Dict[str, Any]) -> FreezeRecord:
    return FreezeRecord(
        task_name=data.get("task_name"),
        duration=float(data["duration"]),
        started_at=_parse_dt(data.get("started_at")),
        ended_at=_parse_dt(data.get("ended_at")),
    )


def _day_to_dict(day: DailyFunctionality) -> Dict[str, Any]:
    return {
        "date": day.date.isoformat(),
        "total_focused_time": day.total_focused_time,
        "total_wasted_time": day.total_wasted_time,
        "sessions_count": day.sessions_count,
    }


def _day_from_dict(data: Dict[str, Any]) -> DailyFunctionality:
    return DailyFunctionality(
        date=date.fromisoformat(data["date"]),
        total_focused_time=float(data.get("total_focused_time", 0.0)),
        total_wasted_time=float(data.get("total_wasted_time", 0.0)),
        sessions_count=int(data.get("sessions_count", 0)),
    )


# ── Snapshot ────────────────────────────────────────────────────────────────

def snapshot_to_dict(snapshot: BattleSnapshot) -> Dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "task": boss_to_dict(snapshot.task) if snapshot.task else None,
        "state": snapshot.state.value,
        "start_time": _format_dt(snapshot.start_time),
        "elapsed_before_last_save": snapshot.elapsed_before_last_save,
        "wasted_time": snapshot.wasted_time,
        "is_immune": snapshot.is_immune,
        "immunity_count": snapshot.immunity_count,
        "distraction_start_time": _format_dt(snapshot.distraction_start_time),
        "total_focused_history_today": snapshot.total_focused_history_today,
        "history": [_day_to_dict(d) for d in snapshot.history],
        "freeze_tokens_used": snapshot.freeze_tokens_used,
        "freeze_history": [_freeze_to_dict(r) for r in snapshot.freeze_history],
        "freeze_start_time": _format_dt(snapshot.freeze_start_time),
        "rest_duration": snapshot.rest_duration,
    }


def snapshot_from_dict(data: Dict[str, Any]) -> BattleSnapshot:
    try:
        task = data.get("task")
        return BattleSnapshot(
            task=boss_from_dict(task) if task else None,
            state=EngineState(data["state"]),
            start_time=_parse_dt(data.get("start_time")),
            elapsed_before_last_save=float(data["elapsed_before_last_save"]),
            wasted_time=float(data["wasted_time"]),
            is_immune=bool(data["is_immune"]),
            immunity_count=int(data["immunity_count"]),
            distraction_start_time=_parse_dt(data.get("distraction_start_time")),
            total_focused_history_today=float(data.get("total_focused_history_today", 0.0)),
            history=[_day_from_dict(d) for d in data.get("history", [])],
            freeze_tokens_used=int(data.get("freeze_tokens_used", 0)),
            freeze_history=[_freeze_from_dict(r) for r in data.get("freeze_history", [])],
            freeze_start_time=_parse_dt(data.get("freeze_start_time")),
            rest_duration=data.get("rest_duration"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise SnapshotDecodeError(f"Malformed snapshot: {exc}") from exc


def dumps_snapshot(snapshot: BattleSnapshot) -> str:
    return json.dumps(snapshot_to_dict(snapshot))


def loads_snapshot(text: str) -> BattleSnapshot:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SnapshotDecodeError(f"Snapshot is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise SnapshotDecodeError("Snapshot must be a JSON object.")
    return snapshot_from_dict(data)


# ── Focus group summary ─────────────────────────────────────────────────────

def summary_to_json(summary: Optional[FocusGroupSummary]) -> Optional[str]:
    if summary is None:
        return None
    return json.dumps({
        "started_at": _format_dt(summary.started_at),
        "total_focused_seconds": summary.total_focused_seconds,
        "allocations": summary.allocations,
        "segments": [
            {
                "template_id": s.template_id,
                "duration": s.duration,
                "started_at": _format_dt(s.started_at),
                "ended_at": _format_dt(s.ended_at),
            }
            for s in summary.segments
        ],
    })


def summary_from_json(text: Optional[str]) -> Optional[FocusGroupSummary]:
    if not text:
        return None
    data = json.loads(text)
    return FocusGroupSummary(
        segments=[
            FocusGroupSegment(
                template_id=s["template_id"],
                duration=float(s["duration"]),
                started_at=_parse_dt(s.get("started_at")),
                ended_at=_parse_dt(s.get("ended_at")),
            )
            for s in data.get("segments", [])
        ],
        allocations={k: float(v) for k, v in data.get("allocations", {}).items()},
        total_focused_seconds=float(data["total_focused_seconds"]),
        started_at=_parse_dt(data.get("started_at")),
    )


def end_reason_from_str(value: str) -> SessionEndReason:
    return SessionEndReason(value)


def result_key(result: SessionResult) -> str:
    """Identity of a result for de-duplicating replays."""
    return f"{result.task_name}|{result.end_reason.value}|{result.timestamp.isoformat()}"
