"""
Spawn Manager - turns card templates into bosses.

Repeating templates spawn at most once per day. The ledger key
"{template_id}_{yyyy-MM-dd}" is what makes a second pass over the same day
a no-op.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Iterable, List, Optional, Set, Tuple

from timeline.data.models import Boss, CardTemplate

logger = logging.getLogger(__name__)

TemplateLookup = Callable[[str], Optional[CardTemplate]]


def ledger_key(template_id: str, day: date) -> str:
    return f"{template_id}_{day.isoformat()}"


class SpawnManager:
    @staticmethod
    def spawn(template: CardTemplate) -> Boss:
        return Boss(
            name=template.title,
            max_hp=template.default_duration,
            style=template.style,
            template_id=template.id,
        )

    @staticmethod
    def spawn_by_id(template_id: str, lookup: TemplateLookup) -> Optional[Boss]:
        template = lookup(template_id)
        if template is None:
            logger.warning("No template with id %s", template_id)
            return None
        return SpawnManager.spawn(template)

    @staticmethod
    def process_repeats(
        templates: Iterable[CardTemplate], day: date, ledger: Set[str]
    ) -> Tuple[List[Boss], List[str]]:
        """Return bosses due on `day` that the ledger hasn't seen, plus their new keys."""
        spawned: List[Boss] = []
        new_keys: List[str] = []
        for template in templates:
            if not template.repeat_rule.matches(day):
                continue
            key = ledger_key(template.id, day)
            if key in ledger or key in new_keys:
                continue
            spawned.append(SpawnManager.spawn(template))
            new_keys.append(key)
        if spawned:
            logger.info("Spawned %d repeating task(s) for %s", len(spawned), day)
        return spawned, new_keys
