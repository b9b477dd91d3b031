"""
TimeLine - focus battles against the clock.
Headless host entry point: runs one battle or rest on the Qt event loop.

Usage:
    python main.py battle "Write report" --minutes 25
    python main.py rest --minutes 15
    python main.py resume
    python main.py reset-config

Ctrl+C during a battle discards it inside the undo window and records a
retreat after that.
"""

import argparse
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path

# Ensure the timeline package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent))

from PySide6.QtCore import QCoreApplication

from timeline.config import load_config, reset_config
from timeline.data.database import Database
from timeline.data.models import Boss, EngineState
from timeline.data.repository import Repository
from timeline.host.battle_clock import BattleClock
from timeline.services.battle_engine import BattleEngine
from timeline.services.exit_policy import BattleExitOption, BattleExitPolicy
from timeline.services.rest_prompt import RestPromptService


def setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler("timeline.log", encoding="utf-8"),
        ],
    )


def parse_args(argv):
    parser = argparse.ArgumentParser(description="Run a focus battle.")
    sub = parser.add_subparsers(dest="command", required=True)

    battle = sub.add_parser("battle", help="start a new battle")
    battle.add_argument("name")
    battle.add_argument("--minutes", type=float, default=25.0)

    rest = sub.add_parser("rest", help="start a rest (bonfire)")
    rest.add_argument("--minutes", type=float, default=None)

    sub.add_parser("resume", help="restore the last saved session")
    sub.add_parser("reset-config", help="write the default engine config")
    return parser.parse_args(argv)


def main() -> None:
    setup_logging()
    logger = logging.getLogger(__name__)
    args = parse_args(sys.argv[1:])
    if args.command == "reset-config":
        reset_config()
        logger.info("Engine config reset to defaults.")
        return
    config = load_config()

    app = QCoreApplication(sys.argv)
    app.setApplicationName("TimeLine")
    db = Database()
    repo = Repository(db.connect())

    engine = BattleEngine(
        grace_period=config["grace_period_s"],
        max_freeze_tokens=config["max_freeze_tokens"],
        default_rest_duration=config["default_rest_s"],
    )
    clock = BattleClock(
        engine,
        repo=repo,
        interval_ms=config["tick_interval_ms"],
        autosave=config["autosave"],
    )
    rest_prompt = RestPromptService(config["rest_prompt_threshold_s"])
    exit_policy = BattleExitPolicy(config["undo_start_window_s"])
    clock.attach(app)

    def on_session_completed(result) -> None:
        logger.info(
            "%s: %s, focused %.0fs, wasted %.0fs",
            result.task_name, result.end_reason.value,
            result.focused_seconds, result.wasted_seconds,
        )
        suggestion = rest_prompt.record_focus(result.focused_seconds)
        if suggestion:
            logger.info("You've focused %.0f min. Time for a rest.", suggestion.focused_seconds / 60)
        app.quit()

    def on_rest_completed(event) -> None:
        logger.info("Rest finished (%.0f min).", event.duration / 60)
        rest_prompt.reset_after_rest()
        app.quit()

    clock.session_completed.connect(on_session_completed)
    clock.rest_completed.connect(on_rest_completed)

    def on_interrupt(signum, frame) -> None:
        elapsed = engine.current_session_elapsed(datetime.now())
        if exit_policy.allows_undo_start(elapsed):
            clock.apply_exit(exit_policy, BattleExitOption.UNDO_START)
        else:
            clock.apply_exit(exit_policy, BattleExitOption.END_AND_RECORD)
        app.quit()

    # Python handlers run between QTimer ticks
    signal.signal(signal.SIGINT, on_interrupt)

    if args.command == "battle":
        clock.start_battle(Boss(name=args.name, max_hp=args.minutes * 60))
    elif args.command == "rest":
        clock.start_rest(args.minutes * 60 if args.minutes is not None else None)
    elif not clock.restore_from(repo) or engine.state not in (
        EngineState.FIGHTING, EngineState.PAUSED, EngineState.FROZEN, EngineState.RESTING
    ):
        logger.info("Nothing to resume.")
        db.close()
        return

    clock.start()
    logger.info("Application started.")
    code = app.exec()
    clock.stop()
    db.close()
    sys.exit(code)


if __name__ == "__main__":
    main()


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   The entry point. Sets up logging, builds exactly one BattleEngine and
#   hands it to the BattleClock, then lets the Qt event loop tick it.
#
# Key points:
#   - No global engine: main() constructs it and passes it down.
#   - "resume" is the crash-recovery path: load snapshot -> restore ->
#     reconcile(last_seen_at, now), then keep ticking.
#   - Logging goes to both console and file, same as any desktop build.
