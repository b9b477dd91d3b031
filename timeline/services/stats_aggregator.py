"""
Stats Aggregator - rolls per-session credit into per-day history.

Only the daily totals the engine itself produces are handled here; richer
dashboards are out of scope.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta
from typing import Dict, List, Optional

import numpy as np

from timeline.data.models import DailyFunctionality


class StatsAggregator:
    """Pure functions over lists of DailyFunctionality."""

    @staticmethod
    def update_history(
        history: List[DailyFunctionality], session: DailyFunctionality
    ) -> List[DailyFunctionality]:
        """Merge one session into the entry for its day, or append a new day."""
        new_history = list(history)
        for i, day in enumerate(new_history):
            if day.date == session.date:
                new_history[i] = replace(
                    day,
                    total_focused_time=day.total_focused_time + session.total_focused_time,
                    total_wasted_time=day.total_wasted_time + session.total_wasted_time,
                    sessions_count=day.sessions_count + session.sessions_count,
                )
                return new_history
        new_history.append(session)
        return new_history

    @staticmethod
    def aggregate(history: List[DailyFunctionality]) -> Dict[str, float]:
        if not history:
            return {"total_focused": 0.0, "total_wasted": 0.0, "sessions": 0}
        focused = np.array([d.total_focused_time for d in history], dtype=float)
        wasted = np.array([d.total_wasted_time for d in history], dtype=float)
        sessions = np.array([d.sessions_count for d in history], dtype=int)
        return {
            "total_focused": float(focused.sum()),
            "total_wasted": float(wasted.sum()),
            "sessions": int(sessions.sum()),
        }

    @staticmethod
    def current_streak(history: List[DailyFunctionality], today: date) -> int:
        """
        Consecutive days with at least one session, ending today.

        A streak whose latest day is yesterday is still alive (today isn't
        over yet); anything older is broken.
        """
        active_days = {d.date for d in history if d.sessions_count > 0}
        if today in active_days:
            cursor = today
        elif today - timedelta(days=1) in active_days:
            cursor = today - timedelta(days=1)
        else:
            return 0

        streak = 0
        while cursor in active_days:
            streak += 1
            cursor -= timedelta(days=1)
        return streak

    @staticmethod
    def weekly_growth(
        history: List[DailyFunctionality], week_start: date
    ) -> int:
        """Percent change of focused time vs. the previous 7 days."""
        prev_start = week_start - timedelta(days=7)
        week_end = week_start + timedelta(days=7)
        current = StatsAggregator._focused_between(history, week_start, week_end)
        previous = StatsAggregator._focused_between(history, prev_start, week_start)
        return StatsAggregator.growth_percent(current, previous)

    @staticmethod
    def growth_percent(current: float, previous: float) -> int:
        if previous == 0:
            return 100 if current > 0 else 0
        return int((current - previous) / previous * 100)

    @staticmethod
    def day_entry(history: List[DailyFunctionality], day: date) -> Optional[DailyFunctionality]:
        for entry in history:
            if entry.date == day:
                return entry
        return None

    @staticmethod
    def _focused_between(history: List[DailyFunctionality], start: date, end: date) -> float:
        values = [d.total_focused_time for d in history if start <= d.date < end]
        return float(np.sum(values)) if values else 0.0
