"""
Event Config Store: read-through cache over the world-events resource.

The resource is a JSON object keyed by event id. A successful load is kept
for the lifetime of the store; a failed load returns an empty mapping and
is attempted again on the next call.
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from loguru import logger
from pydantic import ValidationError

from afk_overlay.models.events import WorldEventConfig


DEFAULT_RESOURCE = Path(__file__).with_name("world_events.json")

ResourceLoader = Callable[[], Mapping[str, Any]]


def file_loader(path: Path = DEFAULT_RESOURCE) -> ResourceLoader:
    """Loader reading a JSON document from disk."""

    def load() -> Mapping[str, Any]:
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    return load


class EventConfigStore:
    """Caches WorldEventConfig entries by event id."""

    def __init__(self, loader: Optional[ResourceLoader] = None):
        self._loader = loader or file_loader()
        self._cache: Optional[Dict[str, WorldEventConfig]] = None

    @property
    def loaded(self) -> bool:
        return self._cache is not None

    def get_all(self) -> Dict[str, WorldEventConfig]:
        if self._cache is not None:
            return self._cache

        try:
            raw = self._loader()
        except Exception as e:
            logger.error("Failed to load world events config: {}", e)
            return {}

        if not isinstance(raw, Mapping):
            logger.error("World events config is not a mapping, got {}", type(raw).__name__)
            return {}

        parsed: Dict[str, WorldEventConfig] = {}
        for event_id, entry in raw.items():
            try:
                parsed[event_id] = WorldEventConfig.model_validate({**entry, "id": event_id})
            except (ValidationError, TypeError) as e:
                logger.warning("Skipping invalid world event {}: {}", event_id, e)

        self._cache = parsed
        return parsed

    def get(self, event_id: str) -> Optional[WorldEventConfig]:
        return self.get_all().get(event_id)
