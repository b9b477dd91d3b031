"""
Data models for the TimeLine focus engine.

Plain dataclasses and enums shared by the engine, the persistence layer and
the host. Durations are float seconds, timestamps are datetimes.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional


class BossStyle(Enum):
    FOCUS = "focus"      # timer-driven, wins when the clock runs out
    PASSIVE = "passive"  # one-tap, never times out


class EngineState(Enum):
    IDLE = "idle"
    FIGHTING = "fighting"
    PAUSED = "paused"
    FROZEN = "frozen"
    RESTING = "resting"
    VICTORY = "victory"
    RETREAT = "retreat"


ACTIVE_BATTLE_STATES = frozenset(
    {EngineState.FIGHTING, EngineState.PAUSED, EngineState.FROZEN}
)


class SessionEndReason(Enum):
    VICTORY = "victory"
    INCOMPLETE_EXIT = "incomplete_exit"
    FORCED_COMPLETE = "forced_complete"
    COMPLETED_EXPLORATION = "completed_exploration"


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Boss:
    """The task being fought. HP is the remaining number of seconds."""
    name: str = ""
    max_hp: float = 0.0
    current_hp: Optional[float] = None
    style: BossStyle = BossStyle.FOCUS
    template_id: Optional[str] = None
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        if self.current_hp is None:
            self.current_hp = self.max_hp


@dataclass(frozen=True)
class FreezeRecord:
    """One completed freeze -> resume cycle."""
    task_name: Optional[str]
    duration: float
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


@dataclass(frozen=True)
class FocusGroupSegment:
    template_id: str
    duration: float
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


@dataclass(frozen=True)
class FocusGroupSummary:
    segments: List[FocusGroupSegment]
    allocations: Dict[str, float]
    total_focused_seconds: float
    started_at: Optional[datetime] = None


@dataclass(frozen=True)
class SessionResult:
    """
    Emitted exactly once when a battle terminates.

    remaining_seconds_at_exit is only set for incomplete exits;
    focus_group_summary only for completed explorations.
    """
    end_reason: SessionEndReason
    focused_seconds: float
    wasted_seconds: float
    task_name: str
    timestamp: datetime
    remaining_seconds_at_exit: Optional[float] = None
    focus_group_summary: Optional[FocusGroupSummary] = None


@dataclass(frozen=True)
class RestCompleted:
    """A rest (bonfire) countdown ran out."""
    duration: float
    timestamp: datetime


@dataclass
class DailyFunctionality:
    """Per-day totals credited by the engine."""
    date: date
    total_focused_time: float = 0.0
    total_wasted_time: float = 0.0
    sessions_count: int = 0


@dataclass
class BattleSnapshot:
    """
    Everything needed to rebuild a BattleEngine via restore().

    start_time is the open segment start (None when no segment is running).
    """
    task: Optional[Boss]
    state: EngineState
    start_time: Optional[datetime]
    elapsed_before_last_save: float
    wasted_time: float
    is_immune: bool
    immunity_count: int
    distraction_start_time: Optional[datetime]
    total_focused_history_today: float
    history: List[DailyFunctionality] = field(default_factory=list)
    freeze_tokens_used: int = 0
    freeze_history: List[FreezeRecord] = field(default_factory=list)
    freeze_start_time: Optional[datetime] = None
    rest_duration: Optional[float] = None


# ── Collaborator types ──────────────────────────────────────────────────────


class RepeatKind(Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class RepeatRule:
    """
    When a template respawns.

    WEEKLY days are ISO weekdays (1=Mon .. 7=Sun); MONTHLY days are days of
    the month (1..31).
    """
    kind: RepeatKind = RepeatKind.NONE
    days: FrozenSet[int] = frozenset()

    def matches(self, day: date) -> bool:
        if self.kind is RepeatKind.DAILY:
            return True
        if self.kind is RepeatKind.WEEKLY:
            return day.isoweekday() in self.days
        if self.kind is RepeatKind.MONTHLY:
            return day.day in self.days
        return False


@dataclass
class CardTemplate:
    """A reusable task definition that spawns bosses."""
    title: str = ""
    default_duration: float = 25 * 60
    style: BossStyle = BossStyle.FOCUS
    repeat_rule: RepeatRule = field(default_factory=RepeatRule)
    id: str = field(default_factory=_new_id)


@dataclass
class ReminderTarget:
    """A scheduled timeline item that may carry a reminder."""
    id: str
    task_name: str
    remind_at: Optional[datetime] = None
    lead_time_minutes: int = 0
    is_completed: bool = False


@dataclass(frozen=True)
class ReminderEvent:
    target_id: str
    task_name: str
    remind_at: datetime
    lead_time_minutes: int
    remaining_seconds: float
    is_overdue: bool


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Defines every value that crosses a boundary: what the engine owns while a
#   battle runs (Boss), what it emits (SessionResult, RestCompleted), what it
#   saves (BattleSnapshot) and the collaborator inputs (CardTemplate,
#   ReminderTarget).
#
# Key decisions:
#   - Events are frozen dataclasses. Once a result is published nobody can
#     mutate it, so the host can store or replay it safely.
#   - Enums carry string values so the codec can write them straight to JSON.
#   - Boss.current_hp defaults to max_hp, so a fresh boss starts at full HP.
#
# Interviewer-friendly talking points:
#   1. BattleSnapshot is a flat record, not a pickled engine. Schema changes
#      stay visible in the codec instead of breaking silently.
#   2. ACTIVE_BATTLE_STATES is the one definition of "a battle is in flight",
#      reused by the engine and the exit policy.
