"""AFK overlay data models."""

from afk_overlay.models.config import OverlayConfig
from afk_overlay.models.events import (
    Emotion,
    EventCategory,
    EventSource,
    WorldEventConfig,
)
from afk_overlay.models.player import PlayerState, ProgressionConfig
from afk_overlay.models.tracker import (
    ItemKind,
    PollState,
    StatusChange,
    TrackedItem,
    TrackerConfig,
    TrackerCredentials,
)

__all__ = [
    "Emotion",
    "EventCategory",
    "EventSource",
    "ItemKind",
    "OverlayConfig",
    "PlayerState",
    "PollState",
    "ProgressionConfig",
    "StatusChange",
    "TrackedItem",
    "TrackerConfig",
    "TrackerCredentials",
    "WorldEventConfig",
]
