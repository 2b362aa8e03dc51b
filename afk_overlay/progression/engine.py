"""
Progression Engine: the idle-game clock.

Owns the PlayerState and advances it one second per tick.

Behavioral Contract:
- tick(): online time +1; every xp interval, experience and energy decay;
  level-ups resolved in a loop until experience < experience_to_next_level;
  status text recomputed from energy; state persisted.
- spend_currency(): all-or-nothing, never drives currency below zero.
- claim_reward(): unconditional level-scaled credit.
- Every mutation is followed by an explicit persist(). A failed persist
  is logged and swallowed; in-memory state stays authoritative.
"""

import math
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from afk_overlay.models.player import PlayerState, ProgressionConfig
from afk_overlay.storage.store import KeyValueStore


class ProgressionEngine:
    """The GameLoop. One instance per runtime."""

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[ProgressionConfig] = None,
        storage_key: str = "afk-simulator-save",
    ):
        self.store = store
        self.config = config or ProgressionConfig()
        self.storage_key = storage_key
        self._state = PlayerState.initial(self.config)

    @property
    def state(self) -> PlayerState:
        """Read-only copy of the current state."""
        return self._state.model_copy()

    # --- Lifecycle ---

    def load(self) -> PlayerState:
        """Load persisted state, keeping defaults if nothing usable is stored."""
        try:
            raw = self.store.get(self.storage_key)
        except Exception:
            logger.exception("Failed to read progression state")
            return self.state

        if raw:
            try:
                self._state = PlayerState.model_validate_json(raw)
            except ValidationError as e:
                logger.error("Discarding unreadable progression state: {}", e)
        return self.state

    def persist(self) -> bool:
        """Write the full state. Returns False (and logs) on failure."""
        try:
            self.store.set(self.storage_key, self._state.model_dump_json())
            return True
        except Exception:
            logger.exception("Failed to persist progression state")
            return False

    # --- Transitions ---

    def tick(self) -> PlayerState:
        """Advance by one second, then persist."""
        self._advance()
        self.persist()
        return self.state

    def _advance(self) -> None:
        cfg = self.config
        state = self._state

        state.online_seconds += 1

        if state.online_seconds % cfg.xp_interval_seconds == 0:
            state.experience += cfg.xp_per_interval
            state.energy = max(0.0, state.energy - cfg.energy_decay)

        self._resolve_level_ups()
        state.status_text = self._status_for(state.energy)

    def _resolve_level_ups(self) -> int:
        """Apply every pending level-up. Returns how many were applied."""
        cfg = self.config
        state = self._state
        gained = 0

        while state.experience >= state.experience_to_next_level:
            state.level += 1
            state.experience -= state.experience_to_next_level
            state.experience_to_next_level = math.floor(
                state.experience_to_next_level * cfg.level_growth
            )
            state.energy = min(cfg.max_energy, state.energy + cfg.level_energy_bonus)
            state.currency += cfg.level_currency_factor * state.level
            gained += 1
            logger.info(
                "Level up -> {} (next at {} xp, currency {})",
                state.level,
                state.experience_to_next_level,
                state.currency,
            )

        return gained

    def _status_for(self, energy: float) -> str:
        cfg = self.config
        if energy < cfg.critical_energy_threshold:
            return cfg.critical_label
        if energy < cfg.warning_energy_threshold:
            return cfg.warning_label
        return cfg.stable_label

    def spend_currency(self, amount: int) -> bool:
        """Deduct amount if affordable. No mutation on failure."""
        if amount < 0:
            raise ValueError("amount must be non-negative")
        if self._state.currency < amount:
            return False
        self._state.currency -= amount
        self.persist()
        return True

    def claim_reward(self, level: Optional[int] = None) -> int:
        """
        Credit a claimed item's reward: reward_factor * level.
        Uses the player's current level when none is given.
        """
        for_level = self._state.level if level is None else level
        reward = self.config.reward_factor * for_level
        self._state.currency += reward
        self.persist()
        logger.info("Claimed task reward: +{} contribution points", reward)
        return reward

    def gain_experience(self, amount: int) -> PlayerState:
        """Grant experience outside the tick (e.g. bonuses) and resolve level-ups."""
        if amount < 0:
            raise ValueError("amount must be non-negative")
        self._state.experience += amount
        self._resolve_level_ups()
        self._state.status_text = self._status_for(self._state.energy)
        self.persist()
        return self.state
