"""
Battle Clock - binds a BattleEngine to the Qt event loop.

The engine is deterministic and never reads the clock. This adapter is the
one place that does: a QTimer ticks the engine with real time, convenience
methods fill in `at=now`, and Qt application-state changes are translated
into the engine's background/foreground hooks. Those hooks only fire when
attach() is given a QGuiApplication; the headless CLI host has no such
signal.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from PySide6.QtCore import QObject, Qt, QTimer, Signal, Slot

from timeline.data.models import Boss, RestCompleted, SessionResult
from timeline.data.repository import Repository
from timeline.services.battle_engine import BattleEngine
from timeline.services.exit_policy import BattleExitOption, BattleExitPolicy

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL_MS = 1000


class BattleClock(QObject):
    """
    Owns the heartbeat. Signals are emitted only after engine.tick() has
    returned, so slots may call back into the engine safely.
    """

    session_completed = Signal(object)  # SessionResult
    rest_completed = Signal(object)     # RestCompleted
    ticked = Signal()

    def __init__(
        self,
        engine: BattleEngine,
        repo: Optional[Repository] = None,
        now_fn: Callable[[], datetime] = datetime.now,
        interval_ms: int = DEFAULT_TICK_INTERVAL_MS,
        autosave: bool = True,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.engine = engine
        self.repo = repo
        self.now_fn = now_fn
        self.autosave = autosave

        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.tick_now)

    # ── Timer control ───────────────────────────────────────────────────────

    def start(self) -> None:
        self._timer.start()
        logger.info("Battle clock started (%d ms).", self._timer.interval())

    def stop(self) -> None:
        self._timer.stop()

    @property
    def is_running(self) -> bool:
        return self._timer.isActive()

    # ── Real-clock wrappers ─────────────────────────────────────────────────

    def start_battle(self, boss: Boss) -> None:
        self.engine.start_battle(boss, at=self.now_fn())
        self._after_mutation()

    def start_rest(self, duration: Optional[float] = None) -> None:
        self.engine.start_rest(duration, at=self.now_fn())
        self._after_mutation()

    def pause(self) -> None:
        self.engine.pause(at=self.now_fn())
        self._after_mutation()

    def resume(self) -> None:
        self.engine.resume(at=self.now_fn())
        self._after_mutation()

    def freeze(self) -> bool:
        ok = self.engine.freeze(at=self.now_fn())
        self._after_mutation()
        return ok

    def resume_from_freeze(self) -> None:
        self.engine.resume_from_freeze(at=self.now_fn())
        self._after_mutation()

    def retreat(self) -> None:
        self.engine.retreat(at=self.now_fn())
        self._after_mutation()

    def force_complete_task(self) -> None:
        self.engine.force_complete_task(at=self.now_fn())
        self._after_mutation()

    def abort_session(self) -> None:
        self.engine.abort_session()
        self._after_mutation()

    def apply_exit(self, policy: BattleExitPolicy, option: BattleExitOption) -> None:
        policy.handle(option, self.engine, self.now_fn())
        self._after_mutation()

    # ── Lifecycle ───────────────────────────────────────────────────────────

    def attach(self, app: QObject) -> bool:
        """
        Follow the app's foreground state. Only a QGuiApplication has
        applicationStateChanged; a headless QCoreApplication host never
        backgrounds, so nothing is connected and False is returned.
        """
        changed = getattr(app, "applicationStateChanged", None)
        if changed is None:
            logger.info("No application state signal; lifecycle hooks stay manual.")
            return False
        changed.connect(self.on_application_state_changed)
        return True

    def on_application_state_changed(self, state: Qt.ApplicationState) -> None:
        now = self.now_fn()
        if state == Qt.ApplicationState.ApplicationActive:
            self.engine.handle_foregrounding(now)
        else:
            self.engine.handle_backgrounding(now)
        self._after_mutation()

    def restore_from(self, repo: Repository) -> bool:
        """Load the last snapshot, restore it and reconcile the dead gap."""
        loaded = repo.load_snapshot()
        if loaded is None:
            logger.info("No snapshot to restore.")
            return False
        snapshot, last_seen_at = loaded
        self.engine.restore(snapshot)
        self.engine.reconcile(last_seen_at, self.now_fn())
        self._after_mutation()
        return True

    # ── Heartbeat ───────────────────────────────────────────────────────────

    @Slot()
    def tick_now(self) -> None:
        self.engine.tick(self.now_fn())
        self._after_mutation()
        self.ticked.emit()

    def _after_mutation(self) -> None:
        events = self.engine.drain_events()
        if self.autosave and self.repo is not None:
            self.repo.save_snapshot(self.engine.snapshot(), self.now_fn())
        for event in events:
            if isinstance(event, SessionResult):
                if self.repo is not None:
                    self.repo.record_session_result(event)
                self.session_completed.emit(event)
            elif isinstance(event, RestCompleted):
                self.rest_completed.emit(event)


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Glues the pure engine to a running Qt app. QTimer fires once a second,
#   we call engine.tick(now), then drain the engine's event queue and turn
#   each event into a Qt signal.
#
# Key design decisions:
#   - now_fn is injectable. Tests pass a fake clock; production uses
#     datetime.now. The engine API keeps `at` mandatory either way.
#   - Draining happens after the engine call returns, so a slot connected to
#     session_completed can start the next battle without re-entering tick().
#   - Autosave writes the snapshot with last_seen_at = now after every
#     mutation. If the process dies, reconcile() knows exactly how long the
#     gap was.
