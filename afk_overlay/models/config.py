"""Runtime-wide configuration for the overlay core."""

from typing import Optional

from pydantic import BaseModel

from afk_overlay.models.player import ProgressionConfig
from afk_overlay.models.tracker import TrackerConfig


class OverlayConfig(BaseModel):
    """Timers, storage keys and nested component configs."""

    tick_interval_seconds: float = 1.0
    poll_interval_seconds: float = 24 * 60 * 60
    poll_cron: Optional[str] = None         # Overrides poll_interval_seconds, e.g. "0 9 * * 1-5"
    poll_on_start: bool = True              # Seeds the status map right away
    event_display_seconds: float = 8.0

    progress_key: str = "afk-simulator-save"
    claimed_key: str = "afk-simulator-claimed-stories"
    purchased_key: str = "afk_purchased_chars"  # Owned by the cosmetics store, not this core

    db_path: str = ":memory:"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    progression: ProgressionConfig = ProgressionConfig()
    tracker: TrackerConfig = TrackerConfig()
