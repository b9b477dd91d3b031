"""
Reminder Scheduler - pure date comparison over timeline items.

Each reminder fires once. Nothing repeats unless the target's remind_at
changes or the caller resets it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List

from timeline.data.models import ReminderEvent, ReminderTarget

logger = logging.getLogger(__name__)


class ReminderScheduler:
    def __init__(self) -> None:
        self._fired: Dict[str, datetime] = {}  # target id -> remind_at that fired

    def evaluate(self, targets: Iterable[ReminderTarget], now: datetime) -> List[ReminderEvent]:
        events: List[ReminderEvent] = []
        for target in targets:
            if target.is_completed or target.remind_at is None:
                continue
            lead = max(0, target.lead_time_minutes)
            if now < target.remind_at - timedelta(minutes=lead):
                continue
            if self._fired.get(target.id) == target.remind_at:
                continue
            self._fired[target.id] = target.remind_at

            remaining = (target.remind_at - now).total_seconds()
            events.append(
                ReminderEvent(
                    target_id=target.id,
                    task_name=target.task_name,
                    remind_at=target.remind_at,
                    lead_time_minutes=lead,
                    remaining_seconds=remaining,
                    is_overdue=remaining < 0,
                )
            )
            logger.info("Reminder fired for %s (%.0fs left).", target.task_name, remaining)
        return events

    def reset(self, target_id: str) -> None:
        self._fired.pop(target_id, None)

    def reset_all(self) -> None:
        self._fired.clear()
