"""
Rest Prompt Service - suggests a bonfire after a long stretch of focus.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_REST_THRESHOLD = 50 * 60


@dataclass(frozen=True)
class RestSuggestion:
    focused_seconds: float
    threshold_seconds: float


class RestPromptService:
    """Emits one suggestion per threshold crossing until reset."""

    def __init__(self, threshold_seconds: float = DEFAULT_REST_THRESHOLD) -> None:
        self.threshold_seconds = threshold_seconds
        self._focused_since_reset = 0.0
        self._has_suggested = False

    def record_focus(self, seconds: float) -> Optional[RestSuggestion]:
        if seconds <= 0:
            return None
        self._focused_since_reset += seconds
        if self._has_suggested or self._focused_since_reset < self.threshold_seconds:
            return None
        self._has_suggested = True
        logger.info("Suggesting rest after %.0fs of focus.", self._focused_since_reset)
        return RestSuggestion(
            focused_seconds=self._focused_since_reset,
            threshold_seconds=self.threshold_seconds,
        )

    def reset_after_continue(self) -> None:
        """User chose to keep going: restart the countdown."""
        self._reset()

    def reset_after_rest(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self._focused_since_reset = 0.0
        self._has_suggested = False
