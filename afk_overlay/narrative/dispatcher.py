"""
World-Event Dispatcher: turns the newest status change into a timed message.

States:
  IDLE → (mapped change) → DISPLAYING → (display timer expires) → IDLE

Only the most recently appended change is considered per observation. A new
mapped change while DISPLAYING replaces the message and restarts the timer.
"""

from datetime import datetime
from typing import Optional

from loguru import logger

from afk_overlay.models.tracker import StatusChange
from afk_overlay.narrative.mapper import map_change_to_event_id
from afk_overlay.narrative.narrator import Narrator
from afk_overlay.scheduling.scheduler import Scheduler, TimerHandle
from afk_overlay.tracker.poller import ChangeLog


class WorldEventDispatcher:
    """Holds the single current display message."""

    def __init__(
        self,
        narrator: Narrator,
        scheduler: Scheduler,
        display_seconds: float = 8.0,
    ):
        self.narrator = narrator
        self.scheduler = scheduler
        self.display_seconds = display_seconds

        self._message: Optional[str] = None
        self._event_id: Optional[str] = None
        self._shown_at: Optional[datetime] = None
        self._timer: Optional[TimerHandle] = None
        self._observed = 0

    @property
    def status(self) -> str:
        return "displaying" if self._message is not None else "idle"

    @property
    def current_message(self) -> Optional[str]:
        return self._message

    @property
    def current_event_id(self) -> Optional[str]:
        return self._event_id

    @property
    def shown_at(self) -> Optional[datetime]:
        return self._shown_at

    def attach(self, change_log: ChangeLog) -> None:
        """Observe a change log from its current length onward."""
        self._observed = len(change_log)
        change_log.subscribe(self.observe)

    def observe(self, change_log: ChangeLog) -> Optional[str]:
        """Handle the newest change if the log grew since the last observation."""
        size = len(change_log)
        if size <= self._observed:
            return None
        self._observed = size
        return self.handle(change_log.latest())

    def handle(self, change: StatusChange) -> Optional[str]:
        """Map, narrate and display one change. Returns the message shown, if any."""
        event_id = map_change_to_event_id(change)
        if event_id is None:
            return None

        message = self.narrator.narrate(event_id)
        self._cancel_timer()
        self._message = message
        self._event_id = event_id
        self._shown_at = self.scheduler.now()
        self._timer = self.scheduler.call_later(self.display_seconds, self._expire)
        logger.info("World event {} for item {}: {}", event_id, change.item_id, message)
        return message

    def _expire(self) -> None:
        self._message = None
        self._event_id = None
        self._shown_at = None
        self._timer = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def cancel(self) -> None:
        """Drop any pending display timer and clear the message."""
        self._cancel_timer()
        self._expire()
