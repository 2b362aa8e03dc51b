"""World event configuration: narrative copy keyed by event id."""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class EventSource(str, Enum):
    TRACKER = "tapd"
    TIME = "time"


class EventCategory(str, Enum):
    STATUS = "status"
    AGGREGATE = "aggregate"


class Emotion(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class WorldEventConfig(BaseModel):
    """
    One entry of the world-events resource.

    priority and cooldown_seconds are carried for the data model only;
    the dispatcher fires every mapped change immediately.
    """

    model_config = {"populate_by_name": True, "frozen": True}

    event_id: str = Field(alias="id")
    source: EventSource
    category: EventCategory
    emotion: Emotion
    priority: int = 0
    cooldown_seconds: int = Field(alias="cooldown", default=0)
    copy_pool: List[str] = Field(alias="copyPool", default_factory=list)
