"""
Tracker Poller: periodic snapshot, reconciliation and diff of tracker items.

One poll cycle:
  fetch → map + classify → sort → reconcile ledger → filter claimed
        → diff against running status map → publish + append changes

A poll that fails leaves the previously published items untouched. A
second poll() while one is in flight is a no-op.
"""

from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import urlencode

from loguru import logger
from pydantic import ValidationError

from afk_overlay.ledger.claims import ClaimLedger
from afk_overlay.models.tracker import (
    ItemKind,
    PollState,
    StatusChange,
    TrackedItem,
    TrackerConfig,
    TrackerCredentials,
)
from afk_overlay.tracker.rules import build_item, claimable_statuses, sort_items
from afk_overlay.tracker.transport import (
    AuthFailure,
    TrackerError,
    Transport,
    TransportFailure,
    raise_for_error,
)


AUTH_ERROR_MESSAGE = "TAPD token is invalid. Please update it in Settings."
FETCH_ERROR_MESSAGE = "Failed to fetch TAPD data."

# kind → (endpoint, envelope key of each wrapper object)
_ENDPOINTS = {
    ItemKind.STORY: ("stories", "Story"),
    ItemKind.BUG: ("bugs", "Bug"),
}


class ChangeLog:
    """Append-only log of detected status changes. Listeners see each appended batch."""

    def __init__(self):
        self._entries: List[StatusChange] = []
        self._listeners: List[Callable[["ChangeLog"], None]] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[StatusChange]:
        return list(self._entries)

    def latest(self) -> Optional[StatusChange]:
        return self._entries[-1] if self._entries else None

    def count_by_kind(self, kind: ItemKind) -> int:
        return sum(1 for c in self._entries if c.kind == kind)

    def subscribe(self, listener: Callable[["ChangeLog"], None]) -> None:
        self._listeners.append(listener)

    def append(self, changes: Iterable[StatusChange]) -> int:
        batch = list(changes)
        if not batch:
            return 0
        self._entries.extend(batch)
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Change listener failed")
        return len(batch)


def diff_statuses(
    items: Iterable[TrackedItem],
    previous: Dict[str, str],
    occurred_at: datetime,
) -> List[StatusChange]:
    """
    Compare each item's derived status with the last one recorded for its id.
    Emits a change only when a prior status exists and differs. Always
    records the current status in `previous`.
    """
    changes = []
    for item in items:
        old_status = previous.get(item.id)
        if old_status is not None and old_status != item.derived_status:
            changes.append(StatusChange(
                item_id=item.id,
                kind=item.kind,
                from_status=old_status,
                to_status=item.derived_status,
                occurred_at=occurred_at,
            ))
        previous[item.id] = item.derived_status
    return changes


class TrackerPoller:
    """Owns the active item list and the running status map for one runtime."""

    def __init__(
        self,
        transport: Transport,
        credentials,
        ledger: ClaimLedger,
        config: Optional[TrackerConfig] = None,
        change_log: Optional[ChangeLog] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.transport = transport
        self.credentials = credentials
        self.ledger = ledger
        self.config = config or TrackerConfig()
        self.change_log = change_log if change_log is not None else ChangeLog()
        self.clock = clock

        self._state = PollState()
        self._previous_status: Dict[str, str] = {}
        self._in_flight = False
        self._closed = False
        self.workspace_id: Optional[str] = None

    @property
    def state(self) -> PollState:
        return self._state.model_copy(deep=True)

    @property
    def items(self) -> List[TrackedItem]:
        """The published active items."""
        return [item.model_copy() for item in self._state.items]

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def previous_status(self) -> Dict[str, str]:
        return dict(self._previous_status)

    def close(self) -> None:
        """Stop publishing. A poll still in flight discards its result."""
        self._closed = True

    # --- Poll cycle ---

    async def poll(self) -> Optional[List[StatusChange]]:
        """
        Run one poll cycle.
        Returns the changes detected, or None if skipped, failed or discarded.
        """
        if self._in_flight:
            logger.debug("Poll already in flight, skipping")
            return None
        if self._closed:
            return None

        self._in_flight = True
        self._state.is_loading = True
        self._state.error = None
        try:
            credentials = self.credentials.get_config()
            self.workspace_id = credentials.workspace_id

            if not credentials.token:
                logger.warning("TAPD token not set. Skipping API fetch.")
                if not self._closed:
                    self._state.items = []
                return None

            logger.debug("Polling tracker with token {}", credentials.masked_token())
            fetched = await self.fetch_items(credentials)

            if self._closed:
                logger.debug("Poller closed during fetch, discarding result")
                return None
            return self.apply_snapshot(fetched)
        except AuthFailure as e:
            logger.error("Tracker authentication failed: {}", e)
            self._state.error = AUTH_ERROR_MESSAGE
            return None
        except TrackerError as e:
            logger.error("Tracker fetch failed: {}", e)
            self._state.error = FETCH_ERROR_MESSAGE
            return None
        except Exception:
            logger.exception("Unexpected error while polling tracker")
            self._state.error = FETCH_ERROR_MESSAGE
            return None
        finally:
            self._state.is_loading = False
            self._in_flight = False

    async def fetch_items(self, credentials: TrackerCredentials) -> List[TrackedItem]:
        """Fetch, map, de-duplicate and sort the current snapshot."""
        claimable = claimable_statuses(credentials.user_role_field, self.config)
        headers = {
            "Authorization": f"Bearer {credentials.token}",
            "Content-Type": "application/json",
        }

        seen: Dict[str, TrackedItem] = {}
        for kind in self.config.kinds:
            url = self.build_url(kind, credentials)
            result = await self.transport.fetch(url, {"headers": headers})
            payload = raise_for_error(result)
            for item in self._parse(payload, kind, claimable):
                if item.id in seen:
                    logger.debug("Duplicate item {} in snapshot, keeping first", item.id)
                    continue
                seen[item.id] = item

        return sort_items(list(seen.values()), self.config.status_order)

    def build_url(self, kind: ItemKind, credentials: TrackerCredentials) -> str:
        endpoint, _ = _ENDPOINTS[kind]
        cfg = self.config
        params = [("limit", str(cfg.page_limit))]
        if kind == ItemKind.STORY:
            params.append(("with_v_status", "1"))
        if credentials.user_name and credentials.user_role_field:
            params.append((credentials.user_role_field, credentials.user_name))
        params.append(("fields", ",".join(cfg.fields)))
        if kind == ItemKind.STORY:
            params.append(("v_status", "|".join(cfg.fetched_statuses)))
        if credentials.workspace_id:
            params.append(("workspace_id", credentials.workspace_id))
        return f"{cfg.api_base_url}/{endpoint}?{urlencode(params, safe=',|')}"

    def _parse(self, payload, kind: ItemKind, claimable: List[str]) -> List[TrackedItem]:
        _, envelope = _ENDPOINTS[kind]
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise TransportFailure(f"Unexpected {kind.value} payload shape")

        items = []
        for wrapper in payload["data"]:
            record = wrapper.get(envelope) if isinstance(wrapper, dict) else None
            if not isinstance(record, dict) or not record.get("id"):
                logger.warning("Skipping malformed {} record: {}", kind.value, wrapper)
                continue
            try:
                items.append(build_item(record, kind, self.config, claimable))
            except ValidationError as e:
                raise TransportFailure(f"Invalid {kind.value} record: {e}") from e
        return items

    def apply_snapshot(self, fetched: List[TrackedItem]) -> List[StatusChange]:
        """Reconcile the ledger, drop claimed items, diff and publish."""
        self.ledger.reconcile(item.id for item in fetched)

        claimed_ids = self.ledger.ids
        active = [item for item in fetched if item.id not in claimed_ids]

        changes = diff_statuses(active, self._previous_status, self.clock())
        if changes:
            logger.info(
                "Detected {} status change(s): {}",
                len(changes),
                [f"{c.item_id}: {c.from_status} -> {c.to_status}" for c in changes],
            )

        self._state.items = active
        self._state.last_polled_at = self.clock()
        self.change_log.append(changes)
        return changes

    # --- Claim ---

    def claim(self, item_id: str) -> Optional[TrackedItem]:
        """
        Move an active item into the ledger.
        No-op (logged) if already claimed or not currently active.
        """
        if item_id in self.ledger:
            logger.warning("Item {} is already claimed. Aborting.", item_id)
            return None

        item = next((i for i in self._state.items if i.id == item_id), None)
        if item is None:
            logger.warning("Item {} is not in the active list. Aborting.", item_id)
            return None

        remaining = [i for i in self._state.items if i.id != item_id]
        self.ledger.add(item)
        self._state.items = remaining
        logger.info("Claimed item {} ({})", item.id, item.display_name)
        return item.model_copy()
