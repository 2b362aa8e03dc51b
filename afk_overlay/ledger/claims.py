"""
Claim Ledger: tracker items the user has already redeemed.

Behavioral Contract:
- Keyed by item id; an id appears at most once.
- Most recent claim first.
- Persisted independently of the live item list, as a JSON array of full
  item snapshots, so rewards can reference the claimed item later.
- reconcile() drops entries whose id is absent upstream; running it twice
  with the same id set is the same as running it once.
"""

import json
from typing import Dict, Iterable, List, Optional, Set

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from afk_overlay.models.tracker import TrackedItem
from afk_overlay.storage.store import KeyValueStore


_ITEM_LIST = TypeAdapter(List[TrackedItem])


class ClaimLedger:
    """The set of claimed items, owned by one runtime."""

    def __init__(self, store: KeyValueStore, storage_key: str = "afk-simulator-claimed-stories"):
        self.store = store
        self.storage_key = storage_key
        self._items: Dict[str, TrackedItem] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._items

    @property
    def items(self) -> List[TrackedItem]:
        """Claimed items, most recent first."""
        return [item.model_copy() for item in self._items.values()]

    @property
    def ids(self) -> Set[str]:
        return set(self._items)

    def get(self, item_id: str) -> Optional[TrackedItem]:
        item = self._items.get(item_id)
        return item.model_copy() if item else None

    # --- Lifecycle ---

    def load(self) -> List[TrackedItem]:
        """Load the persisted ledger, collapsing duplicate ids."""
        try:
            raw = self.store.get(self.storage_key)
        except Exception:
            logger.exception("Failed to read claimed items")
            return self.items

        if not raw:
            return self.items

        try:
            loaded = _ITEM_LIST.validate_json(raw)
        except ValidationError as e:
            logger.error("Discarding unreadable claimed items: {}", e)
            return self.items

        unique: Dict[str, TrackedItem] = {}
        for item in loaded:
            unique[item.id] = item
        if len(unique) != len(loaded):
            logger.info("Collapsed {} duplicate claimed entries", len(loaded) - len(unique))
        self._items = unique
        return self.items

    def persist(self) -> bool:
        """Write the ledger. Returns False (and logs) on failure."""
        payload = json.dumps(
            [item.model_dump(mode="json") for item in self._items.values()],
            ensure_ascii=False,
        )
        try:
            self.store.set(self.storage_key, payload)
            return True
        except Exception:
            logger.exception("Failed to persist claimed items")
            return False

    # --- Mutations ---

    def add(self, item: TrackedItem) -> bool:
        """Prepend a claimed item. Returns False if the id is already claimed."""
        if item.id in self._items:
            return False
        self._items = {item.id: item.model_copy(), **self._items}
        self.persist()
        return True

    def reconcile(self, live_ids: Iterable[str]) -> List[str]:
        """
        Drop entries whose id is no longer returned by the tracker.
        Returns the removed ids; persists only when something was removed.
        """
        live = set(live_ids)
        removed = [item_id for item_id in self._items if item_id not in live]
        if not removed:
            return []

        for item_id in removed:
            del self._items[item_id]
        logger.info("Removed {} expired item(s) from claimed list: {}", len(removed), removed)
        self.persist()
        return removed
