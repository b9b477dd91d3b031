"""
Seed Data Generator - replays synthetic battles through the engine.

Every result in the dev database comes out of a real BattleEngine run with
fake timestamps, so the data obeys the same rules as production.

Run: python scripts/seed_data.py
"""

import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from timeline.data.database import Database
from timeline.data.models import Boss
from timeline.data.repository import Repository
from timeline.services.battle_engine import BattleEngine

TASKS = ["Backend API", "Blog Post", "Linear Algebra", "UI Mockups", "Code Review"]


def play_one(engine: BattleEngine, start: datetime) -> datetime:
    """Run one battle with random interruptions. Returns when it ended."""
    boss = Boss(name=random.choice(TASKS), max_hp=random.choice([15, 25, 45]) * 60)
    engine.start_battle(boss, at=start)
    now = start

    for _ in range(random.randint(0, 3)):
        now += timedelta(minutes=random.randint(3, 12))
        roll = random.random()
        if roll < 0.4:
            engine.pause(now)
            now += timedelta(minutes=random.randint(1, 5))
            engine.resume(now)
        elif roll < 0.7:
            if engine.freeze(now):
                now += timedelta(minutes=random.randint(1, 10))
                engine.resume_from_freeze(now)
        else:
            engine.handle_backgrounding(now)
            now += timedelta(seconds=random.randint(2, 240))
            engine.handle_foregrounding(now)
        engine.tick(now)
        if engine.current_boss is None:
            return now

    if random.random() < 0.25:
        now += timedelta(minutes=random.randint(1, 10))
        engine.retreat(now)
    else:
        remaining = engine.remaining_time(now) or 0.0
        now += timedelta(seconds=remaining + 1)
        engine.tick(now)
    return now


def seed(num_sessions: int = 30) -> None:
    db = Database()
    repo = Repository(db.connect())
    engine = BattleEngine()

    base_date = datetime.now() - timedelta(days=num_sessions)
    recorded = 0
    for i in range(num_sessions):
        start = base_date + timedelta(days=i, hours=random.randint(8, 14),
                                      minutes=random.randint(0, 59))
        end = play_one(engine, start)
        for event in engine.drain_events():
            if repo.record_session_result(event):
                recorded += 1
        repo.save_snapshot(engine.snapshot(), end)

    print(f"Seeded {recorded} session results.")
    db.close()


if __name__ == "__main__":
    seed()
