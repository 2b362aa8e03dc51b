"""Tests for the Tracker Poller."""

import asyncio
from datetime import datetime

from afk_overlay.ledger.claims import ClaimLedger
from afk_overlay.models.tracker import ItemKind, TrackedItem, TrackerConfig, TrackerCredentials
from afk_overlay.storage.store import InMemoryStore
from afk_overlay.tracker.credentials import StaticCredentialProvider
from afk_overlay.tracker.poller import (
    AUTH_ERROR_MESSAGE,
    FETCH_ERROR_MESSAGE,
    ChangeLog,
    TrackerPoller,
    diff_statuses,
)
from afk_overlay.tracker.transport import TransportResult


NOW = datetime(2026, 3, 2, 9, 0, 0)


class FakeTransport:
    """Returns whatever result is currently set and records each call."""

    def __init__(self, result: TransportResult):
        self.result = result
        self.calls = []

    async def fetch(self, url, options):
        self.calls.append((url, options))
        return self.result


class BlockingTransport(FakeTransport):
    """Holds every fetch until release is set."""

    def __init__(self, result: TransportResult):
        super().__init__(result)
        self.release = asyncio.Event()

    async def fetch(self, url, options):
        self.calls.append((url, options))
        await self.release.wait()
        return self.result


class RaisingTransport:
    def __init__(self, error: Exception):
        self.error = error

    async def fetch(self, url, options):
        raise self.error

def _story(item_id: str, v_status: str, name: str = None) -> dict:
    return {
        "Story": {
            "id": item_id,
            "name": name or f"Story {item_id}",
            "status": "open",
            "owner": "alice;",
            "v_status": v_status,
        }
    }


def _payload(*wrappers) -> TransportResult:
    return TransportResult(data={"status": 1, "data": list(wrappers), "info": "success"})


def _make_poller(transport, credentials: TrackerCredentials = None, ledger: ClaimLedger = None,
                 config: TrackerConfig = None) -> TrackerPoller:
    credentials = credentials or TrackerCredentials(token="secret-token", workspace_id="ws1")
    return TrackerPoller(
        transport=transport,
        credentials=StaticCredentialProvider(credentials),
        ledger=ledger or ClaimLedger(InMemoryStore()),
        config=config,
        clock=lambda: NOW,
    )


class TestDiffStatuses:
    def _item(self, item_id, status):
        return TrackedItem(
            id=item_id,
            kind=ItemKind.STORY,
            display_name=item_id,
            raw_status="open",
            derived_status=status,
            gamified_label=status,
        )

    def test_change_emitted_for_known_id(self):
        previous = {"1": "测试中"}
        changes = diff_statuses([self._item("1", "已测完")], previous, NOW)
        assert len(changes) == 1
        assert changes[0].from_status == "测试中"
        assert changes[0].to_status == "已测完"
        assert changes[0].occurred_at == NOW
        assert previous["1"] == "已测完"

    def test_first_sighting_records_without_change(self):
        previous = {}
        changes = diff_statuses([self._item("1", "测试中")], previous, NOW)
        assert changes == []
        assert previous == {"1": "测试中"}

    def test_unchanged_status_emits_nothing(self):
        previous = {"1": "测试中"}
        assert diff_statuses([self._item("1", "测试中")], previous, NOW) == []


class TestChangeLog:
    def test_listeners_see_each_batch(self):
        log = ChangeLog()
        seen = []
        log.subscribe(lambda l: seen.append(len(l)))
        item = TestDiffStatuses()._item
        log.append(diff_statuses([item("1", "b")], {"1": "a"}, NOW))
        log.append([])
        log.append(diff_statuses([item("2", "d")], {"2": "c"}, NOW))
        assert seen == [1, 2]
        assert log.latest().item_id == "2"
        assert log.count_by_kind(ItemKind.STORY) == 2
        assert log.count_by_kind(ItemKind.BUG) == 0


class TestPoll:
    def test_maps_and_sorts_snapshot(self):
        transport = FakeTransport(_payload(
            _story("1", "方案中"),
            _story("2", "已提测"),
            _story("3", "开发中"),
        ))
        poller = _make_poller(transport)

        asyncio.run(poller.poll())

        items = poller.items
        assert [i.id for i in items] == ["2", "3", "1"]
        assert items[0].is_claimable is True
        assert items[0].gamified_label == "✅已提测"
        assert [i.is_claimable for i in items[1:]] == [False, False]
        assert poller.state.error is None
        assert poller.state.is_loading is False
        assert poller.state.last_polled_at == NOW

    def test_request_shape(self):
        transport = FakeTransport(_payload())
        credentials = TrackerCredentials(
            token="secret-token",
            workspace_id="ws1",
            user_name="alice",
            user_role_field="custom_field_10",
        )
        poller = _make_poller(transport, credentials=credentials)

        asyncio.run(poller.poll())

        url, options = transport.calls[0]
        assert url.startswith("https://api.tapd.cn/stories?")
        assert "limit=50" in url
        assert "with_v_status=1" in url
        assert "custom_field_10=alice" in url
        assert "fields=id,name,status,owner,v_status" in url
        assert "v_status=" in url
        assert "workspace_id=ws1" in url
        assert options["headers"]["Authorization"] == "Bearer secret-token"
        assert poller.workspace_id == "ws1"

    def test_owner_filter_needs_both_name_and_role(self):
        transport = FakeTransport(_payload())
        poller = _make_poller(transport, credentials=TrackerCredentials(token="t", user_name="alice"))
        asyncio.run(poller.poll())
        url, _ = transport.calls[0]
        assert "alice" not in url
        assert "workspace_id" not in url

    def test_role_changes_claimability(self):
        transport = FakeTransport(_payload(_story("1", "测试中"), _story("2", "已测完")))
        poller = _make_poller(
            transport,
            credentials=TrackerCredentials(token="t", user_role_field="custom_field_10"),
        )
        asyncio.run(poller.poll())
        claimable = {i.id: i.is_claimable for i in poller.items}
        assert claimable == {"1": False, "2": True}
        assert poller.items[0].id == "2"

    def test_duplicate_ids_collapse(self):
        transport = FakeTransport(_payload(
            _story("1", "测试中", name="first"),
            _story("1", "开发中", name="second"),
        ))
        poller = _make_poller(transport)
        asyncio.run(poller.poll())
        assert len(poller.items) == 1
        assert poller.items[0].display_name == "first"

    def test_malformed_wrappers_are_skipped(self):
        transport = FakeTransport(_payload(_story("1", "测试中"), {"Bug": {"id": "9"}}, "junk"))
        poller = _make_poller(transport)
        asyncio.run(poller.poll())
        assert [i.id for i in poller.items] == ["1"]

    def test_bugs_endpoint(self):
        transport = FakeTransport(_payload({"Bug": {"id": "77", "title": "x", "status": "new"}}))
        poller = _make_poller(transport, config=TrackerConfig(kinds=[ItemKind.BUG]))
        asyncio.run(poller.poll())
        url, _ = transport.calls[0]
        assert "/bugs?" in url
        assert "with_v_status" not in url
        assert poller.items[0].kind == ItemKind.BUG
        assert poller.items[0].derived_status == "new"


class TestPollDiff:
    def test_second_poll_emits_change(self):
        transport = FakeTransport(_payload(_story("1", "测试中")))
        poller = _make_poller(transport)

        first = asyncio.run(poller.poll())
        assert first == []
        assert poller.previous_status == {"1": "测试中"}

        transport.result = _payload(_story("1", "已测完"))
        second = asyncio.run(poller.poll())

        assert len(second) == 1
        assert second[0].item_id == "1"
        assert second[0].from_status == "测试中"
        assert second[0].to_status == "已测完"
        assert poller.change_log.entries == second

    def test_status_map_survives_items_disappearing(self):
        transport = FakeTransport(_payload(_story("1", "测试中")))
        poller = _make_poller(transport)
        asyncio.run(poller.poll())

        transport.result = _payload()
        asyncio.run(poller.poll())
        assert poller.previous_status == {"1": "测试中"}

        transport.result = _payload(_story("1", "开发中"))
        changes = asyncio.run(poller.poll())
        assert [(c.from_status, c.to_status) for c in changes] == [("测试中", "开发中")]


class TestPollFailures:
    def _poll_twice(self, failure: TransportResult):
        transport = FakeTransport(_payload(_story("1", "测试中")))
        poller = _make_poller(transport)
        asyncio.run(poller.poll())
        transport.result = failure
        result = asyncio.run(poller.poll())
        return poller, result

    def test_auth_failure_keeps_items(self):
        poller, result = self._poll_twice(
            TransportResult(error="Authentication failed. Please check your TAPD token.")
        )
        assert result is None
        assert poller.state.error == AUTH_ERROR_MESSAGE
        assert [i.id for i in poller.items] == ["1"]
        assert poller.state.is_loading is False

    def test_transport_failure_keeps_items(self):
        poller, result = self._poll_twice(TransportResult(error="Connection reset by peer"))
        assert result is None
        assert poller.state.error == FETCH_ERROR_MESSAGE
        assert [i.id for i in poller.items] == ["1"]

    def test_unexpected_payload_is_a_fetch_failure(self):
        poller, _ = self._poll_twice(TransportResult(data={"data": "nope"}))
        assert poller.state.error == FETCH_ERROR_MESSAGE
        assert [i.id for i in poller.items] == ["1"]

    def test_raising_transport_is_a_fetch_failure(self):
        transport = FakeTransport(_payload(_story("1", "测试中")))
        poller = _make_poller(transport)
        asyncio.run(poller.poll())
        poller.transport = RaisingTransport(ConnectionError("socket closed"))

        result = asyncio.run(poller.poll())

        assert result is None
        assert poller.state.error == FETCH_ERROR_MESSAGE
        assert [i.id for i in poller.items] == ["1"]
        assert poller.state.is_loading is False
        assert poller.in_flight is False

    def test_error_cleared_on_next_success(self):
        poller, _ = self._poll_twice(TransportResult(error="boom"))
        poller.transport.result = _payload(_story("2", "开发中"))
        asyncio.run(poller.poll())
        assert poller.state.error is None
        assert [i.id for i in poller.items] == ["2"]

    def test_missing_token_skips_fetch(self):
        store = InMemoryStore()
        ledger = ClaimLedger(store)
        transport = FakeTransport(_payload(_story("1", "测试中")))
        poller = _make_poller(transport, credentials=TrackerCredentials(token=None), ledger=ledger)
        ledger.add(TrackedItem(
            id="5", kind=ItemKind.STORY, display_name="kept", raw_status="open",
            derived_status="已测完", gamified_label="已测完",
        ))

        result = asyncio.run(poller.poll())

        assert result is None
        assert transport.calls == []
        assert poller.items == []
        assert poller.state.error is None
        assert ledger.ids == {"5"}


class TestInFlightGuard:
    def test_reentrant_poll_is_noop(self):
        async def scenario():
            transport = BlockingTransport(_payload(_story("1", "测试中")))
            poller = _make_poller(transport)
            first = asyncio.ensure_future(poller.poll())
            await asyncio.sleep(0)
            assert poller.in_flight is True
            second = await poller.poll()
            transport.release.set()
            changes = await first
            return poller, transport, second, changes

        poller, transport, second, changes = asyncio.run(scenario())
        assert second is None
        assert changes == []
        assert len(transport.calls) == 1
        assert poller.in_flight is False
        assert [i.id for i in poller.items] == ["1"]

    def test_close_during_fetch_discards_result(self):
        async def scenario():
            transport = BlockingTransport(_payload(_story("1", "测试中")))
            poller = _make_poller(transport)
            pending = asyncio.ensure_future(poller.poll())
            await asyncio.sleep(0)
            poller.close()
            transport.release.set()
            return poller, await pending

        poller, result = asyncio.run(scenario())
        assert result is None
        assert poller.items == []
        assert poller.previous_status == {}


class TestClaim:
    def test_claim_moves_item_to_ledger(self):
        transport = FakeTransport(_payload(_story("1", "已提测"), _story("2", "开发中")))
        poller = _make_poller(transport)
        asyncio.run(poller.poll())

        claimed = poller.claim("1")

        assert claimed.id == "1"
        assert [i.id for i in poller.items] == ["2"]
        assert [i.id for i in poller.ledger.items] == ["1"]

    def test_claim_twice_is_noop(self):
        transport = FakeTransport(_payload(_story("1", "已提测"), _story("2", "开发中")))
        poller = _make_poller(transport)
        asyncio.run(poller.poll())
        poller.claim("1")

        assert poller.claim("1") is None
        assert len(poller.ledger) == 1
        assert [i.id for i in poller.items] == ["2"]

    def test_claim_unknown_id_is_noop(self):
        transport = FakeTransport(_payload(_story("1", "已提测")))
        poller = _make_poller(transport)
        asyncio.run(poller.poll())
        assert poller.claim("404") is None
        assert len(poller.ledger) == 0
        assert len(poller.items) == 1

    def test_claimed_items_filtered_from_later_polls(self):
        transport = FakeTransport(_payload(_story("1", "已提测"), _story("2", "开发中")))
        poller = _make_poller(transport)
        asyncio.run(poller.poll())
        poller.claim("1")

        transport.result = _payload(_story("1", "已测完"), _story("2", "开发中"))
        changes = asyncio.run(poller.poll())

        assert [i.id for i in poller.items] == ["2"]
        assert "1" in poller.ledger
        assert changes == []

    def test_ledger_pruned_when_item_leaves_tracker(self):
        transport = FakeTransport(_payload(_story("1", "已提测"), _story("2", "开发中")))
        poller = _make_poller(transport)
        asyncio.run(poller.poll())
        poller.claim("1")

        transport.result = _payload(_story("2", "开发中"))
        asyncio.run(poller.poll())

        assert len(poller.ledger) == 0
