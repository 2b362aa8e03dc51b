"""
Overlay Runtime: the process-wide service object.

Constructed once at startup and passed to whatever needs the core. Wires
the progression engine, claim ledger, tracker poller, narrator and event
dispatcher over one store and one scheduler.

Lifecycle:
  start(): load persisted state, arm the tick and poll timers
  stop():  cancel both timers and the display timer; an in-flight poll
           completes but its result is discarded
"""

import random
from typing import List, Optional

from loguru import logger

from afk_overlay.ledger.claims import ClaimLedger
from afk_overlay.models.config import OverlayConfig
from afk_overlay.models.player import PlayerState
from afk_overlay.models.tracker import StatusChange, TrackedItem
from afk_overlay.narrative.config_store import EventConfigStore, ResourceLoader
from afk_overlay.narrative.dispatcher import WorldEventDispatcher
from afk_overlay.narrative.narrator import Narrator
from afk_overlay.progression.engine import ProgressionEngine
from afk_overlay.scheduling.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from afk_overlay.storage.store import KeyValueStore, SqliteStore
from afk_overlay.tracker.credentials import EnvCredentialProvider
from afk_overlay.tracker.poller import ChangeLog, TrackerPoller
from afk_overlay.tracker.transport import HttpxTransport, Transport


class OverlayRuntime:
    """Owns every stateful component of the overlay core."""

    def __init__(
        self,
        config: Optional[OverlayConfig] = None,
        store: Optional[KeyValueStore] = None,
        transport: Optional[Transport] = None,
        credentials=None,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[random.Random] = None,
        event_loader: Optional[ResourceLoader] = None,
    ):
        self.config = config or OverlayConfig()
        self.store = store if store is not None else SqliteStore(self.config.db_path)
        self.scheduler = scheduler or AsyncioScheduler()

        self.engine = ProgressionEngine(
            store=self.store,
            config=self.config.progression,
            storage_key=self.config.progress_key,
        )
        self.ledger = ClaimLedger(self.store, storage_key=self.config.claimed_key)
        self.change_log = ChangeLog()
        self.poller = TrackerPoller(
            transport=transport or HttpxTransport(),
            credentials=credentials or EnvCredentialProvider(),
            ledger=self.ledger,
            config=self.config.tracker,
            change_log=self.change_log,
            clock=self.scheduler.now,
        )

        self.event_configs = EventConfigStore(event_loader)
        self.narrator = Narrator(self.event_configs, rng=rng)
        self.dispatcher = WorldEventDispatcher(
            narrator=self.narrator,
            scheduler=self.scheduler,
            display_seconds=self.config.event_display_seconds,
        )
        self.dispatcher.attach(self.change_log)

        self._timers: List[TimerHandle] = []
        self._running = False
        self._stopped = False

    @property
    def status(self) -> str:
        """Current runtime status."""
        return "running" if self._running else "stopped"

    def start(self) -> None:
        """Load persisted state and arm the timers."""
        if self._running:
            return
        if self._stopped:
            raise RuntimeError("A stopped runtime cannot be restarted")

        self.engine.load()
        self.ledger.load()

        cfg = self.config
        self._timers.append(
            self.scheduler.call_every(cfg.tick_interval_seconds, self.engine.tick)
        )
        if cfg.poll_cron:
            self._timers.append(self.scheduler.call_on_cron(cfg.poll_cron, self.poller.poll))
        else:
            self._timers.append(
                self.scheduler.call_every(cfg.poll_interval_seconds, self.poller.poll)
            )
        if cfg.poll_on_start:
            self._timers.append(self.scheduler.call_later(0, self.poller.poll))

        self._running = True
        logger.info(
            "Overlay runtime started (level {}, {} claimed item(s))",
            self.engine.state.level,
            len(self.ledger),
        )

    def stop(self) -> None:
        """Cancel every timer. Safe to call more than once."""
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        self.dispatcher.cancel()
        self.poller.close()
        if self._running:
            logger.info("Overlay runtime stopped")
        self._running = False
        self._stopped = True

    # --- Produced surface ---

    @property
    def player(self) -> PlayerState:
        return self.engine.state

    @property
    def active_items(self) -> List[TrackedItem]:
        return self.poller.items

    @property
    def claimed_items(self) -> List[TrackedItem]:
        return self.ledger.items

    @property
    def status_changes(self) -> List[StatusChange]:
        return self.change_log.entries

    @property
    def current_message(self) -> Optional[str]:
        return self.dispatcher.current_message

    async def poll(self) -> Optional[List[StatusChange]]:
        return await self.poller.poll()

    def claim(self, item_id: str) -> Optional[TrackedItem]:
        return self.poller.claim(item_id)

    def spend_currency(self, amount: int) -> bool:
        return self.engine.spend_currency(amount)

    def claim_reward(self, level: Optional[int] = None) -> int:
        return self.engine.claim_reward(level)
