"""
Focus Group Coordinator - splits one focus block across several templates.

The caller feeds in focused seconds as they accrue and switches the active
member whenever the user changes what they're working on. Time recorded
before a switch is closed into a segment for the previous member, so nothing
is lost or counted twice.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from timeline.data.models import FocusGroupSegment, FocusGroupSummary

logger = logging.getLogger(__name__)


class FocusGroupSessionCoordinator:
    """Segment ledger for one exploration. Single-use."""

    def __init__(self, member_template_ids: List[str], start_time: datetime) -> None:
        if not member_template_ids:
            raise ValueError("A focus group needs at least one member.")
        self.member_template_ids = list(member_template_ids)
        self.start_time = start_time
        self.active_index = 0
        self.segments: List[FocusGroupSegment] = []

        self._pending = 0.0
        self._focused_cursor = 0.0  # total focused seconds recorded so far
        self._summary: Optional[FocusGroupSummary] = None

    @property
    def active_template_id(self) -> str:
        return self.member_template_ids[self.active_index]

    @property
    def is_ended(self) -> bool:
        return self._summary is not None

    def record_focused(self, seconds: float) -> None:
        if self.is_ended or seconds <= 0:
            return
        self._pending += seconds
        self._focused_cursor += seconds

    def switch_to(self, index: int, at: datetime) -> bool:
        if self.is_ended or not 0 <= index < len(self.member_template_ids):
            logger.debug("switch_to(%d) rejected", index)
            return False
        self._commit_pending()
        self.active_index = index
        logger.info("Focus group switched to %s at %s", self.active_template_id, at)
        return True

    def end_exploration(self, at: datetime) -> FocusGroupSummary:
        if self._summary is not None:
            return self._summary
        self._commit_pending()

        allocations: Dict[str, float] = {}
        for seg in self.segments:
            allocations[seg.template_id] = allocations.get(seg.template_id, 0.0) + seg.duration
        total = sum(seg.duration for seg in self.segments)

        self._summary = FocusGroupSummary(
            segments=list(self.segments),
            allocations=allocations,
            total_focused_seconds=total,
            started_at=self.start_time,
        )
        logger.info(
            "Exploration ended at %s: %.0fs over %d segment(s).",
            at, total, len(self.segments),
        )
        return self._summary

    def _commit_pending(self) -> None:
        if self._pending <= 0:
            return
        # Segments are laid end to end on the focused-time axis from start_time.
        started_offset = self._focused_cursor - self._pending
        self.segments.append(
            FocusGroupSegment(
                template_id=self.active_template_id,
                duration=self._pending,
                started_at=self.start_time + timedelta(seconds=started_offset),
                ended_at=self.start_time + timedelta(seconds=self._focused_cursor),
            )
        )
        self._pending = 0.0
