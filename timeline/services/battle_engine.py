"""
Battle Engine - the focus session state machine.

Converts wall-clock time into damage against a boss (a timed task) and
accounts for every interruption: pause, freeze, backgrounding and process
death. The engine never reads the system clock; every mutating call takes
the current time explicitly, so any sequence of calls can be replayed with
synthetic timestamps.

State transitions:
    idle -> fighting <-> paused
            fighting <-> frozen   (token-gated)
            {fighting, paused, frozen} -> victory | retreat | idle
    idle -> resting -> idle
"""

from __future__ import annotations

import logging
from copy import deepcopy
from datetime import datetime
from typing import List, Optional, Union

from timeline.data.models import (
    ACTIVE_BATTLE_STATES,
    BattleSnapshot,
    Boss,
    BossStyle,
    DailyFunctionality,
    EngineState,
    FocusGroupSummary,
    FreezeRecord,
    RestCompleted,
    SessionEndReason,
    SessionResult,
)
from timeline.services.stats_aggregator import StatsAggregator

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 10.0
DEFAULT_MAX_FREEZE_TOKENS = 3
DEFAULT_REST_DURATION = 15 * 60

EngineEvent = Union[SessionResult, RestCompleted]


def _seconds_between(start: datetime, end: datetime) -> float:
    return max(0.0, (end - start).total_seconds())


class BattleEngine:
    """
    Owns the active boss, wasted-time accrual, the freeze token pool and
    crash reconciliation.

    Not thread-safe: exactly one writer drives it (the host's UI timer and
    lifecycle hooks). Invalid call sequences are no-ops, never errors.
    """

    def __init__(
        self,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        max_freeze_tokens: int = DEFAULT_MAX_FREEZE_TOKENS,
        default_rest_duration: float = DEFAULT_REST_DURATION,
    ) -> None:
        self.grace_period = grace_period
        self.max_freeze_tokens = max_freeze_tokens
        self.default_rest_duration = default_rest_duration

        self.state: EngineState = EngineState.IDLE
        self.current_boss: Optional[Boss] = None

        # Active segment: elapsed = _prior_active + (now - _segment_start)
        self._segment_start: Optional[datetime] = None
        self._prior_active: float = 0.0
        self._rest_duration: Optional[float] = None

        # Distraction accounting
        self.wasted_time: float = 0.0
        self.is_immune: bool = False
        self.immunity_count: int = 0
        self._distraction_start: Optional[datetime] = None

        # Freeze economy
        self.freeze_tokens_used: int = 0
        self.freeze_history: List[FreezeRecord] = []
        self._freeze_start: Optional[datetime] = None

        # Day totals
        self.total_focused_history_today: float = 0.0
        self.history: List[DailyFunctionality] = []

        self._events: List[EngineEvent] = []

    # ── Derived values ──────────────────────────────────────────────────────

    @property
    def freeze_tokens_remaining(self) -> int:
        return max(0, self.max_freeze_tokens - self.freeze_tokens_used)

    @property
    def distraction_start_time(self) -> Optional[datetime]:
        return self._distraction_start

    def current_session_elapsed(self, at: datetime) -> Optional[float]:
        """Active seconds of the in-flight battle, or None when none is."""
        if self.state not in ACTIVE_BATTLE_STATES:
            return None
        return self._active_elapsed(at)

    def remaining_time(self, at: datetime) -> Optional[float]:
        """Seconds left on the battle or rest countdown."""
        if self.state in ACTIVE_BATTLE_STATES and self.current_boss is not None:
            return max(0.0, self.current_boss.max_hp - self._active_elapsed(at))
        if self.state == EngineState.RESTING and self._rest_duration is not None:
            return max(0.0, self._rest_duration - self._active_elapsed(at))
        return None

    def total_focused_today(self, at: datetime) -> float:
        """Credited focus for the day plus the in-flight battle's progress."""
        in_flight = self.current_session_elapsed(at) or 0.0
        if self.current_boss is not None and self.current_boss.style == BossStyle.FOCUS:
            in_flight = min(in_flight, self.current_boss.max_hp)
        return self.total_focused_history_today + in_flight

    # ── Session start ───────────────────────────────────────────────────────

    def start_battle(self, boss: Boss, at: datetime) -> None:
        self._warn_if_discarding("start_battle")
        self._reset_session()
        boss.current_hp = boss.max_hp
        self.current_boss = boss
        self._segment_start = at
        self.state = EngineState.FIGHTING
        logger.info("Battle started: %s (%.0fs) at %s", boss.name, boss.max_hp, at)

    def start_rest(self, duration: Optional[float], at: datetime) -> None:
        self._warn_if_discarding("start_rest")
        self._reset_session()
        self._rest_duration = duration if duration is not None else self.default_rest_duration
        self._segment_start = at
        self.state = EngineState.RESTING
        logger.info("Rest started for %.0fs at %s", self._rest_duration, at)

    def end_rest(self) -> None:
        """Leave a rest early. Publishes nothing."""
        if self.state != EngineState.RESTING:
            logger.debug("end_rest ignored in state %s", self.state.value)
            return
        self._reset_session()
        self.state = EngineState.IDLE
        logger.info("Rest ended early.")

    # ── Clock ───────────────────────────────────────────────────────────────

    def tick(self, at: datetime) -> None:
        """Advance derived values to `at`. Called by the host at ~1 Hz."""
        if self.state == EngineState.RESTING:
            self._tick_rest(at)
            return
        if self.state not in ACTIVE_BATTLE_STATES or self.current_boss is None:
            return

        boss = self.current_boss
        elapsed = self._active_elapsed(at)
        boss.current_hp = max(0.0, boss.max_hp - elapsed)

        if boss.style == BossStyle.FOCUS and elapsed >= boss.max_hp:
            logger.info("Victory over %s after %.0fs.", boss.name, elapsed)
            self._finish(SessionEndReason.VICTORY, boss.max_hp, at)

    def _tick_rest(self, at: datetime) -> None:
        duration = self._rest_duration or 0.0
        if self._active_elapsed(at) < duration:
            return
        self._reset_session()
        self.state = EngineState.IDLE
        self._events.append(RestCompleted(duration=duration, timestamp=at))
        logger.info("Rest complete (%.0fs).", duration)

    # ── Pause / freeze ──────────────────────────────────────────────────────

    def pause(self, at: datetime) -> None:
        if self.state != EngineState.FIGHTING:
            logger.debug("pause ignored in state %s", self.state.value)
            return
        self._commit_segment(at)
        self.state = EngineState.PAUSED
        logger.info("Paused. Active so far: %.1fs", self._prior_active)

    def resume(self, at: datetime) -> None:
        if self.state != EngineState.PAUSED:
            logger.debug("resume ignored in state %s", self.state.value)
            return
        self._segment_start = at
        self.state = EngineState.FIGHTING
        logger.info("Resumed at %s", at)

    def freeze(self, at: datetime) -> bool:
        """Token-limited pause. Returns False when not allowed."""
        if self.state != EngineState.FIGHTING or self.freeze_tokens_remaining <= 0:
            logger.debug(
                "freeze refused: state=%s tokens=%d",
                self.state.value, self.freeze_tokens_remaining,
            )
            return False
        self._commit_segment(at)
        self._freeze_start = at
        self.freeze_tokens_used += 1
        self.state = EngineState.FROZEN
        logger.info("Frozen at %s. Tokens left: %d", at, self.freeze_tokens_remaining)
        return True

    def resume_from_freeze(self, at: datetime) -> None:
        if self.state != EngineState.FROZEN:
            logger.debug("resume_from_freeze ignored in state %s", self.state.value)
            return
        start = self._freeze_start or at
        record = FreezeRecord(
            task_name=self.current_boss.name if self.current_boss else None,
            duration=_seconds_between(start, at),
            started_at=start,
            ended_at=at,
        )
        self.freeze_history.append(record)
        self._freeze_start = None
        self._segment_start = at
        self.state = EngineState.FIGHTING
        logger.info("Thawed after %.1fs.", record.duration)

    # ── Termination ─────────────────────────────────────────────────────────

    def retreat(self, at: datetime) -> None:
        """Stop early and keep credit for the time actually focused."""
        if self.state not in ACTIVE_BATTLE_STATES or self.current_boss is None:
            logger.debug("retreat ignored in state %s", self.state.value)
            return
        self._settle_distraction(at)
        boss = self.current_boss
        elapsed = self._active_elapsed(at)
        focused = elapsed
        remaining = None
        if boss.style == BossStyle.FOCUS:
            focused = min(elapsed, boss.max_hp)
            remaining = max(0.0, boss.max_hp - elapsed)
        boss.current_hp = max(0.0, boss.max_hp - elapsed)
        logger.info("Retreat from %s: focused %.0fs, %s left.", boss.name, focused, remaining)
        self._finish(SessionEndReason.INCOMPLETE_EXIT, focused, at, remaining=remaining)

    def force_complete_task(self, at: datetime) -> None:
        """Debug/skip affordance: credit the full duration immediately."""
        if self.state not in ACTIVE_BATTLE_STATES or self.current_boss is None:
            logger.debug("force_complete_task ignored in state %s", self.state.value)
            return
        boss = self.current_boss
        boss.current_hp = 0.0
        logger.info("Force completing %s.", boss.name)
        self._finish(SessionEndReason.FORCED_COMPLETE, boss.max_hp, at)

    def complete_passive_task(self, at: datetime) -> None:
        """One-tap completion for PASSIVE bosses; credits the elapsed time."""
        boss = self.current_boss
        if self.state != EngineState.FIGHTING or boss is None or boss.style != BossStyle.PASSIVE:
            logger.debug("complete_passive_task ignored in state %s", self.state.value)
            return
        self._settle_distraction(at)
        logger.info("Passive task completed: %s", boss.name)
        self._finish(SessionEndReason.VICTORY, self._active_elapsed(at), at)

    def end_exploration(
        self, at: datetime, summary: Optional[FocusGroupSummary] = None
    ) -> None:
        """Close a focus-group block, carrying the coordinator's allocations."""
        if self.state not in ACTIVE_BATTLE_STATES or self.current_boss is None:
            logger.debug("end_exploration ignored in state %s", self.state.value)
            return
        self._settle_distraction(at)
        boss = self.current_boss
        focused = self._active_elapsed(at)
        if boss.style == BossStyle.FOCUS:
            focused = min(focused, boss.max_hp)
        logger.info("Exploration ended on %s: %.0fs focused.", boss.name, focused)
        self._finish(
            SessionEndReason.COMPLETED_EXPLORATION, focused, at, summary=summary
        )

    def abort_session(self) -> None:
        """Discard the attempt entirely. Credits and publishes nothing."""
        if self.is_immune and self.state in ACTIVE_BATTLE_STATES:
            self.immunity_count += 1
        self._reset_session()
        self.state = EngineState.IDLE
        logger.info("Session aborted (no record).")

    # ── Lifecycle ───────────────────────────────────────────────────────────

    def grant_immunity(self) -> None:
        self.is_immune = True
        logger.info("Immunity granted.")

    def handle_backgrounding(self, at: datetime) -> None:
        if self.state != EngineState.FIGHTING:
            return
        if self._distraction_start is not None:
            # Inactive then Hidden during one absence; keep the first start.
            return
        self._distraction_start = at
        logger.info("Backgrounded at %s (immune=%s).", at, self.is_immune)

    def handle_foregrounding(self, at: datetime) -> None:
        if self._distraction_start is None:
            return
        away = self._settle_distraction(at)
        logger.info("Foregrounded after %.1fs away. Wasted total: %.1fs", away, self.wasted_time)

    def reconcile(self, last_seen_at: datetime, now: datetime) -> None:
        """
        Patch state after a relaunch. Call once, right after restore().

        Progress made before the process died is kept, the gap is not
        credited as focus, and (unless immune) the whole gap counts as
        wasted time.
        """
        if self.state != EngineState.FIGHTING:
            logger.debug("reconcile skipped in state %s", self.state.value)
            return
        gap = _seconds_between(last_seen_at, now)
        self._settle_distraction(last_seen_at)
        if self._segment_start is not None:
            self._commit_segment(last_seen_at)
            self._segment_start = now
        if self.is_immune:
            logger.info("Process was dead for %.1fs; immune, nothing wasted.", gap)
        else:
            self.wasted_time += gap
            logger.info("Process was dead for %.1fs; counted as wasted.", gap)

    # ── Events ──────────────────────────────────────────────────────────────

    def drain_events(self) -> List[EngineEvent]:
        """Hand queued results to the host and clear the queue."""
        events, self._events = self._events, []
        return events

    # ── Persistence ─────────────────────────────────────────────────────────

    def snapshot(self) -> BattleSnapshot:
        return BattleSnapshot(
            task=deepcopy(self.current_boss),
            state=self.state,
            start_time=self._segment_start,
            elapsed_before_last_save=self._prior_active,
            wasted_time=self.wasted_time,
            is_immune=self.is_immune,
            immunity_count=self.immunity_count,
            distraction_start_time=self._distraction_start,
            total_focused_history_today=self.total_focused_history_today,
            history=deepcopy(self.history),
            freeze_tokens_used=self.freeze_tokens_used,
            freeze_history=list(self.freeze_history),
            freeze_start_time=self._freeze_start,
            rest_duration=self._rest_duration,
        )

    def restore(self, snapshot: BattleSnapshot) -> None:
        """Copy every field verbatim. Wall-clock fixes belong to reconcile()."""
        self.current_boss = deepcopy(snapshot.task)
        self.state = snapshot.state
        self._segment_start = snapshot.start_time
        self._prior_active = snapshot.elapsed_before_last_save
        self.wasted_time = snapshot.wasted_time
        self.is_immune = snapshot.is_immune
        self.immunity_count = snapshot.immunity_count
        self._distraction_start = snapshot.distraction_start_time
        self.total_focused_history_today = snapshot.total_focused_history_today
        self.history = deepcopy(snapshot.history)
        self.freeze_tokens_used = snapshot.freeze_tokens_used
        self.freeze_history = list(snapshot.freeze_history)
        self._freeze_start = snapshot.freeze_start_time
        self._rest_duration = snapshot.rest_duration
        logger.info(
            "State restored: %s (history days: %d)", self.state.value, len(self.history)
        )

    # ── Internals ───────────────────────────────────────────────────────────

    def _active_elapsed(self, at: datetime) -> float:
        if self._segment_start is None:
            return self._prior_active
        return self._prior_active + _seconds_between(self._segment_start, at)

    def _commit_segment(self, at: datetime) -> None:
        self._prior_active = self._active_elapsed(at)
        self._segment_start = None
        if self.current_boss is not None:
            self.current_boss.current_hp = max(0.0, self.current_boss.max_hp - self._prior_active)

    def _settle_distraction(self, at: datetime) -> float:
        """Close an open distraction. Only absences past the grace window count, in full."""
        if self._distraction_start is None:
            return 0.0
        away = _seconds_between(self._distraction_start, at)
        self._distraction_start = None
        if away > self.grace_period and not self.is_immune:
            self.wasted_time += away
        return away

    def _finish(
        self,
        reason: SessionEndReason,
        focused: float,
        at: datetime,
        remaining: Optional[float] = None,
        summary: Optional[FocusGroupSummary] = None,
    ) -> None:
        boss = self.current_boss
        result = SessionResult(
            end_reason=reason,
            focused_seconds=focused,
            wasted_seconds=self.wasted_time,
            task_name=boss.name if boss else "",
            timestamp=at,
            remaining_seconds_at_exit=remaining,
            focus_group_summary=summary,
        )
        self._events.append(result)

        self.total_focused_history_today += focused
        self.history = StatsAggregator.update_history(
            self.history,
            DailyFunctionality(
                date=at.date(),
                total_focused_time=focused,
                total_wasted_time=self.wasted_time,
                sessions_count=1,
            ),
        )
        if self.is_immune:
            self.immunity_count += 1

        if reason in (SessionEndReason.VICTORY, SessionEndReason.FORCED_COMPLETE):
            self.state = EngineState.VICTORY
        else:
            self.state = EngineState.RETREAT
        self.current_boss = None
        self._segment_start = None
        self._prior_active = 0.0
        self._distraction_start = None
        self._freeze_start = None
        logger.info(
            "Session finalized (%s). Added %.0fs; today %.0fs.",
            reason.value, focused, self.total_focused_history_today,
        )

    def _reset_session(self) -> None:
        self.current_boss = None
        self._segment_start = None
        self._prior_active = 0.0
        self._rest_duration = None
        self.wasted_time = 0.0
        self.is_immune = False
        self._distraction_start = None
        self.freeze_tokens_used = 0
        self.freeze_history = []
        self._freeze_start = None

    def _warn_if_discarding(self, action: str) -> None:
        if self.state in ACTIVE_BATTLE_STATES and self.current_boss is not None:
            logger.warning(
                "%s discards in-flight battle %s without a result.",
                action, self.current_boss.name,
            )


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   The heart of the app. A battle is a countdown against a task; the engine
#   turns "time spent actively focused" into boss damage and publishes one
#   SessionResult when the battle ends.
#
# Key design decisions:
#   - Time is injected. Nothing here calls datetime.now(), so tests replay
#     hours of focus in microseconds and never flake.
#   - One open segment at a time. Pause and freeze fold the running segment
#     into _prior_active; resume opens a new one. That is what makes time
#     conservation easy to reason about.
#   - Results go into a queue the host drains after tick() returns. The
#     engine never calls UI code, so a handler can't re-enter it mid-tick.
#   - Crash recovery is asymmetric on purpose: reconcile() keeps progress
#     up to last_seen_at but charges the whole gap as wasted time.
#
# Interviewer-friendly talking points:
#   1. Total state machine: every (state, call) pair is defined; the wrong
#      ones are logged no-ops rather than exceptions.
#   2. Freeze tokens are a tiny economy: used + remaining always equals the
#      pool size, and each thaw appends one FreezeRecord.
#   3. abort_session vs retreat: "discard this attempt" vs "stop but keep
#      the credit."
