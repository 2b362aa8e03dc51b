"""Tests for the FastAPI API endpoints."""

import pytest
from fastapi.testclient import TestClient

from afk_overlay.api.app import create_app
from afk_overlay.models.config import OverlayConfig
from afk_overlay.models.player import PlayerState
from afk_overlay.models.tracker import TrackerCredentials
from afk_overlay.runtime.context import OverlayRuntime
from afk_overlay.scheduling.scheduler import VirtualScheduler
from afk_overlay.storage.store import InMemoryStore
from afk_overlay.tracker.credentials import StaticCredentialProvider
from afk_overlay.tracker.transport import TransportResult


class FakeTransport:
    def __init__(self, result: TransportResult):
        self.result = result

    async def fetch(self, url, options):
        return self.result


def _stories(*pairs) -> TransportResult:
    return TransportResult(data={"data": [
        {"Story": {"id": i, "name": f"Story {i}", "status": "open", "v_status": s}}
        for i, s in pairs
    ]})


@pytest.fixture
def runtime():
    """A runtime with fresh components and virtual time."""
    store = InMemoryStore({
        "afk-simulator-save": PlayerState(level=2, currency=100).model_dump_json(),
    })
    rt = OverlayRuntime(
        config=OverlayConfig(),
        store=store,
        transport=FakeTransport(_stories(("1", "已提测"), ("2", "开发中"))),
        credentials=StaticCredentialProvider(TrackerCredentials(token="secret-token")),
        scheduler=VirtualScheduler(),
    )
    rt.engine.load()
    return rt


@pytest.fixture
def client(runtime):
    return TestClient(create_app(runtime=runtime))


class TestStatusEndpoint:
    def test_status(self, client):
        response = client.get("/status")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "stopped"
        assert data["level"] == 2
        assert data["active_items"] == 0
        assert data["world_event"] == "idle"


class TestPlayerEndpoints:
    def test_get_player(self, client):
        data = client.get("/player").json()
        assert data["level"] == 2
        assert data["currency"] == 100

    def test_spend(self, client):
        response = client.post("/player/spend", json={"amount": 60})
        assert response.status_code == 200
        assert response.json()["currency"] == 40

    def test_spend_insufficient(self, client):
        response = client.post("/player/spend", json={"amount": 1000})
        assert response.status_code == 400
        assert client.get("/player").json()["currency"] == 100

    def test_spend_negative_rejected(self, client):
        response = client.post("/player/spend", json={"amount": -5})
        assert response.status_code == 422

    def test_reward_uses_current_level(self, client):
        response = client.post("/player/reward", json={})
        assert response.status_code == 200
        assert response.json()["reward"] == 100
        assert response.json()["player"]["currency"] == 200

    def test_reward_for_level(self, client):
        response = client.post("/player/reward", json={"level": 5})
        assert response.json()["reward"] == 250


class TestTrackerEndpoints:
    def test_poll_and_list(self, client):
        response = client.post("/tracker/poll")
        assert response.status_code == 200
        assert response.json()["item_count"] == 2
        assert response.json()["error"] is None

        items = client.get("/tracker/items").json()["items"]
        assert [i["id"] for i in items] == ["1", "2"]
        assert items[0]["is_claimable"] is True

    def test_poll_reports_changes(self, client, runtime):
        client.post("/tracker/poll")
        runtime.poller.transport.result = _stories(("1", "测试中"), ("2", "开发中"))
        data = client.post("/tracker/poll").json()
        assert len(data["changes"]) == 1
        assert data["changes"][0]["from_status"] == "已提测"
        assert data["changes"][0]["to_status"] == "测试中"

        changes = client.get("/tracker/changes", params={"kind": "story"}).json()
        assert len(changes) == 1
        assert client.get("/tracker/changes", params={"kind": "bug"}).json() == []

    def test_poll_auth_failure(self, client, runtime):
        runtime.poller.transport.result = TransportResult(
            error="Authentication failed. Please check your TAPD token."
        )
        data = client.post("/tracker/poll").json()
        assert data["error"] == "TAPD token is invalid. Please update it in Settings."
        assert data["changes"] == []

    def test_claim(self, client):
        client.post("/tracker/poll")
        response = client.post("/tracker/claim/1")
        assert response.status_code == 200
        assert response.json()["id"] == "1"

        claimed = client.get("/tracker/claimed").json()
        assert [i["id"] for i in claimed] == ["1"]
        items = client.get("/tracker/items").json()["items"]
        assert [i["id"] for i in items] == ["2"]

    def test_claim_twice_conflicts(self, client):
        client.post("/tracker/poll")
        client.post("/tracker/claim/1")
        response = client.post("/tracker/claim/1")
        assert response.status_code == 409

    def test_claim_unknown_item(self, client):
        client.post("/tracker/poll")
        response = client.post("/tracker/claim/nope")
        assert response.status_code == 404


class TestWorldEventEndpoint:
    def test_idle(self, client):
        data = client.get("/events/current").json()
        assert data == {"status": "idle", "event_id": None, "message": None, "shown_at": None}


class TestLifespan:
    def test_lifespan_starts_and_stops_runtime(self, runtime):
        app = create_app(runtime=runtime)
        with TestClient(app) as client:
            assert client.get("/status").json()["status"] == "running"
        assert runtime.status == "stopped"
