"""Unit tests for the BattleEngine state machine."""

import pytest
from datetime import datetime, timedelta
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from timeline.data.models import (
    Boss,
    BossStyle,
    EngineState,
    FocusGroupSummary,
    RestCompleted,
    SessionEndReason,
    SessionResult,
)
from timeline.services.battle_engine import BattleEngine

T0 = datetime(2026, 10, 19, 9, 0, 0)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


@pytest.fixture
def engine():
    return BattleEngine()


def results(engine: BattleEngine):
    return [e for e in engine.drain_events() if isinstance(e, SessionResult)]


class TestDamage:
    def test_start_battle(self, engine):
        engine.start_battle(Boss(name="Test Boss", max_hp=60), at=T0)
        assert engine.state == EngineState.FIGHTING
        assert engine.current_boss.name == "Test Boss"
        assert engine.current_boss.current_hp == 60

    def test_tick_decreases_hp(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=60), at=T0)
        engine.tick(at(10))
        assert engine.current_boss.current_hp == pytest.approx(50, abs=0.1)
        assert engine.state == EngineState.FIGHTING

    @pytest.mark.parametrize("max_hp,elapsed", [(60, 0), (60, 59.5), (3600, 1234), (25, 24.9)])
    def test_hp_is_max_minus_elapsed(self, engine, max_hp, elapsed):
        engine.start_battle(Boss(name="Boss", max_hp=max_hp), at=T0)
        engine.tick(at(elapsed))
        assert engine.current_boss.current_hp == pytest.approx(max_hp - elapsed)
        assert engine.state == EngineState.FIGHTING

    def test_victory_condition(self, engine):
        engine.start_battle(Boss(name="Weak Boss", max_hp=10), at=T0)
        engine.tick(at(11))
        assert engine.state == EngineState.VICTORY
        assert engine.current_boss is None

    def test_victory_credits_full_duration(self, engine):
        engine.total_focused_history_today = 100
        engine.start_battle(Boss(name="Boss", max_hp=10), at=T0)
        engine.tick(at(42))
        assert engine.total_focused_history_today == 110

    def test_victory_publishes_once(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=10), at=T0)
        engine.tick(at(10))
        engine.tick(at(11))
        engine.tick(at(12))
        published = results(engine)
        assert len(published) == 1
        assert published[0].end_reason == SessionEndReason.VICTORY
        assert published[0].focused_seconds == 10
        assert published[0].remaining_seconds_at_exit is None
        assert published[0].task_name == "Boss"

    def test_passive_boss_never_times_out(self, engine):
        engine.start_battle(Boss(name="Stretch", max_hp=10, style=BossStyle.PASSIVE), at=T0)
        engine.tick(at(100))
        assert engine.state == EngineState.FIGHTING
        engine.complete_passive_task(at(120))
        assert engine.state == EngineState.VICTORY
        [result] = results(engine)
        assert result.focused_seconds == pytest.approx(120)

    def test_tick_idle_is_noop(self, engine):
        engine.tick(at(5))
        assert engine.state == EngineState.IDLE
        assert engine.drain_events() == []


class TestPauseResume:
    def test_pause_resume_scenario(self, engine):
        engine.start_battle(Boss(name="Long Boss", max_hp=100), at=T0)
        engine.tick(at(10))
        assert engine.current_boss.current_hp == pytest.approx(90, abs=0.1)

        engine.pause(at(10))
        assert engine.state == EngineState.PAUSED

        engine.resume(at(30))
        assert engine.state == EngineState.FIGHTING
        engine.tick(at(30))
        assert engine.current_boss.current_hp == pytest.approx(90, abs=0.1)

        engine.tick(at(40))
        assert engine.current_boss.current_hp == pytest.approx(80, abs=0.1)

    def test_zero_length_pause_changes_nothing(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=100), at=T0)
        engine.pause(at(25))
        engine.resume(at(25))
        engine.tick(at(40))
        assert engine.current_boss.current_hp == pytest.approx(60)

    def test_resume_while_fighting_is_noop(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=100), at=T0)
        engine.resume(at(50))
        engine.tick(at(60))
        assert engine.current_boss.current_hp == pytest.approx(40)

    def test_pause_while_idle_is_noop(self, engine):
        engine.pause(at(1))
        assert engine.state == EngineState.IDLE

    def test_elapsed_frozen_while_paused(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=100), at=T0)
        engine.pause(at(30))
        assert engine.current_session_elapsed(at(500)) == pytest.approx(30)
        engine.tick(at(500))
        assert engine.state == EngineState.PAUSED
        assert engine.current_boss.current_hp == pytest.approx(70)


class TestFreeze:
    def test_freeze_scenario(self, engine):
        engine.start_battle(Boss(name="Deep Work", max_hp=600), at=T0)
        assert engine.freeze(at(120)) is True
        assert engine.state == EngineState.FROZEN
        assert engine.freeze_tokens_used == 1
        assert engine.freeze_tokens_remaining == 2

        engine.resume_from_freeze(at(210))
        assert engine.state == EngineState.FIGHTING
        assert len(engine.freeze_history) == 1
        assert engine.freeze_history[0].duration == pytest.approx(90)
        assert engine.freeze_history[0].task_name == "Deep Work"

    def test_frozen_time_is_not_damage(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.freeze(at(100))
        engine.resume_from_freeze(at(400))
        engine.tick(at(450))
        assert engine.current_boss.current_hp == pytest.approx(450)

    def test_tokens_run_out_after_three_cycles(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=3600), at=T0)
        for i in range(3):
            assert engine.freeze(at(100 * i + 10))
            engine.resume_from_freeze(at(100 * i + 20))
        assert engine.freeze_tokens_remaining == 0
        assert engine.freeze_tokens_used + engine.freeze_tokens_remaining == 3

        hp_before = engine.current_boss.current_hp
        assert engine.freeze(at(400)) is False
        assert engine.state == EngineState.FIGHTING
        assert engine.freeze_tokens_used == 3
        assert len(engine.freeze_history) == 3
        assert engine.current_boss.current_hp == hp_before

    def test_freeze_requires_fighting(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.pause(at(10))
        assert engine.freeze(at(20)) is False
        assert engine.freeze_tokens_used == 0

    def test_resume_from_freeze_only_when_frozen(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.pause(at(10))
        engine.resume_from_freeze(at(20))
        assert engine.state == EngineState.PAUSED
        assert engine.freeze_history == []

    def test_new_battle_refills_tokens(self, engine):
        engine.start_battle(Boss(name="A", max_hp=600), at=T0)
        engine.freeze(at(10))
        engine.start_battle(Boss(name="B", max_hp=600), at=at(20))
        assert engine.freeze_tokens_remaining == 3
        assert engine.freeze_history == []


class TestTermination:
    def test_retreat_credits_elapsed(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.retreat(at(200))
        assert engine.state == EngineState.RETREAT
        assert engine.current_boss is None
        assert engine.total_focused_history_today == pytest.approx(200)

        [result] = results(engine)
        assert result.end_reason == SessionEndReason.INCOMPLETE_EXIT
        assert result.focused_seconds == pytest.approx(200)
        assert result.remaining_seconds_at_exit == pytest.approx(400)
        assert result.timestamp == at(200)

    def test_retreat_from_paused(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.pause(at(50))
        engine.retreat(at(300))
        [result] = results(engine)
        assert result.focused_seconds == pytest.approx(50)
        assert result.remaining_seconds_at_exit == pytest.approx(550)

    def test_retreat_while_idle_is_noop(self, engine):
        engine.retreat(at(10))
        assert engine.state == EngineState.IDLE
        assert engine.drain_events() == []

    def test_force_complete_task(self, engine):
        engine.start_battle(Boss(name="Debug Boss", max_hp=3600), at=T0)
        engine.force_complete_task(at(5))
        assert engine.state == EngineState.VICTORY
        assert engine.current_boss is None
        assert engine.total_focused_today(at(6)) == 3600
        [result] = results(engine)
        assert result.end_reason == SessionEndReason.FORCED_COMPLETE

    def test_abort_credits_nothing(self, engine):
        engine.start_battle(Boss(name="Oops", max_hp=600), at=T0)
        engine.handle_backgrounding(at(10))
        engine.handle_foregrounding(at(60))
        assert engine.wasted_time > 0

        engine.abort_session()
        assert engine.state == EngineState.IDLE
        assert engine.current_boss is None
        assert engine.wasted_time == 0
        assert engine.total_focused_history_today == 0
        assert engine.drain_events() == []

    def test_abort_ends_rest(self, engine):
        engine.start_rest(300, at=T0)
        engine.abort_session()
        assert engine.state == EngineState.IDLE

    def test_terminal_states_do_not_restart(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=10), at=T0)
        engine.tick(at(10))
        engine.resume(at(11))
        engine.tick(at(20))
        assert engine.state == EngineState.VICTORY

    def test_history_merges_same_day(self, engine):
        for i in range(2):
            engine.start_battle(Boss(name="Boss", max_hp=60), at=at(i * 1000))
            engine.tick(at(i * 1000 + 60))
        assert len(engine.history) == 1
        assert engine.history[0].sessions_count == 2
        assert engine.history[0].total_focused_time == 120

    def test_end_exploration_carries_summary(self, engine):
        summary = FocusGroupSummary(segments=[], allocations={"a": 30.0}, total_focused_seconds=30.0)
        engine.start_battle(Boss(name="Group", max_hp=600), at=T0)
        engine.end_exploration(at(30), summary=summary)
        assert engine.state == EngineState.RETREAT
        [result] = results(engine)
        assert result.end_reason == SessionEndReason.COMPLETED_EXPLORATION
        assert result.focus_group_summary is summary
        assert result.focused_seconds == pytest.approx(30)

    def test_start_overwrites_in_flight_session(self, engine):
        engine.start_battle(Boss(name="First", max_hp=600), at=T0)
        engine.start_battle(Boss(name="Second", max_hp=300), at=at(100))
        assert engine.current_boss.name == "Second"
        assert engine.drain_events() == []
        assert engine.total_focused_history_today == 0


class TestElapsed:
    def test_elapsed_only_during_battle(self, engine):
        assert engine.current_session_elapsed(T0) is None
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        assert engine.current_session_elapsed(at(45)) == pytest.approx(45)
        engine.freeze(at(50))
        assert engine.current_session_elapsed(at(90)) == pytest.approx(50)
        engine.retreat(at(100))
        assert engine.current_session_elapsed(at(100)) is None

    def test_remaining_time(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        assert engine.remaining_time(at(100)) == pytest.approx(500)


class TestDistraction:
    def test_background_within_grace_is_forgiven(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.handle_backgrounding(at(100))
        engine.handle_foregrounding(at(110))
        assert engine.wasted_time == 0

    def test_background_past_grace_counts_in_full(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.handle_backgrounding(at(100))
        engine.handle_foregrounding(at(111))
        assert engine.wasted_time == pytest.approx(11)

    def test_wasted_accumulates(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.handle_backgrounding(at(10))
        engine.handle_foregrounding(at(40))
        engine.handle_backgrounding(at(50))
        engine.handle_foregrounding(at(70))
        assert engine.wasted_time == pytest.approx(50)

    def test_immunity_suppresses_waste(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.grant_immunity()
        engine.grant_immunity()
        assert engine.is_immune is True
        engine.handle_backgrounding(at(10))
        engine.handle_foregrounding(at(200))
        assert engine.wasted_time == 0

    def test_repeated_backgrounding_keeps_first_start(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.handle_backgrounding(at(100))  # inactive
        engine.handle_backgrounding(at(108))  # hidden
        engine.handle_foregrounding(at(115))
        assert engine.distraction_start_time is None
        assert engine.wasted_time == pytest.approx(15)

    def test_backgrounding_does_not_change_damage(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.handle_backgrounding(at(10))
        engine.handle_foregrounding(at(100))
        engine.tick(at(100))
        assert engine.current_boss.current_hp == pytest.approx(500)

    def test_wasted_reported_in_result(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=60), at=T0)
        engine.handle_backgrounding(at(5))
        engine.handle_foregrounding(at(25))
        engine.tick(at(60))
        [result] = results(engine)
        assert result.wasted_seconds == pytest.approx(20)

    def test_start_resets_wasted_and_immunity(self, engine):
        engine.start_battle(Boss(name="A", max_hp=600), at=T0)
        engine.grant_immunity()
        engine.wasted_time = 42
        engine.start_battle(Boss(name="B", max_hp=600), at=at(10))
        assert engine.wasted_time == 0
        assert engine.is_immune is False


class TestImmunityCount:
    def test_grant_does_not_count(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.grant_immunity()
        assert engine.immunity_count == 0

    def test_abort_with_immunity_counts(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.grant_immunity()
        engine.abort_session()
        assert engine.immunity_count == 1
        assert engine.is_immune is False

    def test_abort_from_idle_does_not_count(self, engine):
        engine.grant_immunity()
        engine.abort_session()
        assert engine.immunity_count == 0
        assert engine.state == EngineState.IDLE

    def test_victory_with_immunity_counts(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=10), at=T0)
        engine.grant_immunity()
        engine.tick(at(10))
        assert engine.immunity_count == 1

    def test_session_without_immunity_does_not_count(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=10), at=T0)
        engine.tick(at(10))
        assert engine.immunity_count == 0


class TestRest:
    def test_rest_countdown_completes(self, engine):
        engine.start_rest(300, at=T0)
        assert engine.state == EngineState.RESTING
        assert engine.current_boss is None
        engine.tick(at(299))
        assert engine.state == EngineState.RESTING
        engine.tick(at(300))
        assert engine.state == EngineState.IDLE
        [event] = engine.drain_events()
        assert isinstance(event, RestCompleted)
        assert event.duration == 300

    def test_rest_uses_default_duration(self, engine):
        engine.start_rest(None, at=T0)
        assert engine.remaining_time(at(0)) == pytest.approx(900)

    def test_end_rest_publishes_nothing(self, engine):
        engine.start_rest(300, at=T0)
        engine.end_rest()
        assert engine.state == EngineState.IDLE
        assert engine.drain_events() == []


class TestReconcile:
    def _snapshot_mid_battle(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.tick(at(100))
        return engine.snapshot()

    def test_gap_counts_as_wasted(self, engine):
        snap = self._snapshot_mid_battle(engine)
        fresh = BattleEngine()
        fresh.restore(snap)
        fresh.reconcile(last_seen_at=at(100), now=at(160))
        assert fresh.wasted_time == pytest.approx(60)
        assert fresh.state == EngineState.FIGHTING
        assert fresh.current_boss.current_hp == pytest.approx(500)

    def test_gap_does_not_advance_damage(self, engine):
        snap = self._snapshot_mid_battle(engine)
        fresh = BattleEngine()
        fresh.restore(snap)
        fresh.reconcile(last_seen_at=at(100), now=at(400))
        fresh.tick(at(400))
        assert fresh.current_boss.current_hp == pytest.approx(500)
        fresh.tick(at(410))
        assert fresh.current_boss.current_hp == pytest.approx(490)

    def test_immune_gap_is_free(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.grant_immunity()
        engine.tick(at(100))
        fresh = BattleEngine()
        fresh.restore(engine.snapshot())
        fresh.reconcile(last_seen_at=at(100), now=at(1000))
        assert fresh.wasted_time == 0
        assert fresh.current_boss.current_hp == pytest.approx(500)

    def test_open_distraction_settles_at_last_seen(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.handle_backgrounding(at(100))
        fresh = BattleEngine()
        fresh.restore(engine.snapshot())
        fresh.reconcile(last_seen_at=at(105), now=at(200))
        # 5s away is inside the grace window, the 95s gap is not
        assert fresh.wasted_time == pytest.approx(95)
        assert fresh.distraction_start_time is None
        assert fresh.current_session_elapsed(at(200)) == pytest.approx(105)

    def test_long_open_distraction_counts_before_gap(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.handle_backgrounding(at(90))
        fresh = BattleEngine()
        fresh.restore(engine.snapshot())
        fresh.reconcile(last_seen_at=at(105), now=at(200))
        assert fresh.wasted_time == pytest.approx(15 + 95)

    @pytest.mark.parametrize("stop", ["pause", "freeze"])
    def test_paused_or_frozen_snapshot_is_untouched(self, engine, stop):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        getattr(engine, stop)(at(100))
        fresh = BattleEngine()
        fresh.restore(engine.snapshot())
        fresh.reconcile(last_seen_at=at(120), now=at(900))
        assert fresh.wasted_time == 0
        assert fresh.current_session_elapsed(at(900)) == pytest.approx(100)
        assert fresh.state == engine.state

    def test_reconcile_outside_battle_is_noop(self, engine):
        engine.reconcile(last_seen_at=T0, now=at(100))
        assert engine.wasted_time == 0


class TestSnapshot:
    def test_restore_reproduces_state(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        engine.freeze(at(30))
        engine.resume_from_freeze(at(40))
        engine.grant_immunity()
        engine.pause(at(70))

        fresh = BattleEngine()
        fresh.restore(engine.snapshot())
        assert fresh.state == EngineState.PAUSED
        assert fresh.current_boss.name == "Boss"
        assert fresh.current_session_elapsed(at(999)) == pytest.approx(60)
        assert fresh.freeze_tokens_remaining == 2
        assert len(fresh.freeze_history) == 1
        assert fresh.is_immune is True

    def test_snapshot_is_detached(self, engine):
        engine.start_battle(Boss(name="Boss", max_hp=600), at=T0)
        snap = engine.snapshot()
        engine.tick(at(100))
        assert snap.task.current_hp == 600
