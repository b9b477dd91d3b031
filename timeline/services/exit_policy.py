"""
Battle Exit Policy - which exit choices to offer when the user bails out.

"Undo start" (discard the attempt) is only offered in the first minute;
after that the user can end and keep credit, or keep focusing.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import List, Optional

from timeline.services.battle_engine import BattleEngine

logger = logging.getLogger(__name__)

UNDO_START_WINDOW = 60.0


class BattleExitOption(Enum):
    UNDO_START = "undo_start"
    END_AND_RECORD = "end_and_record"
    KEEP_FOCUSING = "keep_focusing"


class BattleExitPolicy:
    def __init__(self, undo_start_window: float = UNDO_START_WINDOW) -> None:
        self.undo_start_window = undo_start_window

    def allows_undo_start(self, elapsed_seconds: Optional[float]) -> bool:
        if elapsed_seconds is None:
            return False
        return elapsed_seconds <= self.undo_start_window

    def options(self, elapsed_seconds: Optional[float]) -> List[BattleExitOption]:
        opts: List[BattleExitOption] = []
        if self.allows_undo_start(elapsed_seconds):
            opts.append(BattleExitOption.UNDO_START)
        opts.append(BattleExitOption.END_AND_RECORD)
        opts.append(BattleExitOption.KEEP_FOCUSING)
        return opts

    def handle(self, option: BattleExitOption, engine: BattleEngine, at: datetime) -> None:
        """Apply the user's choice to the engine."""
        logger.info("Exit option chosen: %s", option.value)
        if option == BattleExitOption.UNDO_START:
            engine.abort_session()
        elif option == BattleExitOption.END_AND_RECORD:
            engine.retreat(at)
