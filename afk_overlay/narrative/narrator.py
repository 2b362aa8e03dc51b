"""Narrator: picks narrative copy for a world event."""

import random
from typing import Callable, Optional, Sequence

from loguru import logger

from afk_overlay.narrative.config_store import EventConfigStore


FALLBACK_MESSAGE = "世界线发生了未知变化..."

Picker = Callable[[Sequence[str]], str]


class Narrator:
    """
    Selects one string uniformly at random from an event's copy pool.
    Pass rng (a seeded random.Random) or picker to make selection deterministic.
    """

    def __init__(
        self,
        config_store: EventConfigStore,
        rng: Optional[random.Random] = None,
        picker: Optional[Picker] = None,
    ):
        self.config_store = config_store
        self._rng = rng or random.Random()
        self._pick = picker or self._rng.choice

    def narrate(self, event_id: str) -> str:
        event = self.config_store.get(event_id)
        if event is None or not event.copy_pool:
            logger.warning("No copy found for event ID: {}", event_id)
            return FALLBACK_MESSAGE
        return self._pick(event.copy_pool)
