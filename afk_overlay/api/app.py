"""
AFK Overlay API: FastAPI endpoints.

Exposes the overlay core to the UI shell:
- Player progression (read, spend, reward)
- Tracker items (active, claimed, change log, manual poll, claim)
- Current world event message
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from afk_overlay.logging_config import configure_logging
from afk_overlay.models.config import OverlayConfig
from afk_overlay.models.tracker import ItemKind
from afk_overlay.runtime.context import OverlayRuntime


# --- Request/Response Models ---

class SpendRequest(BaseModel):
    amount: int = Field(ge=0)


class RewardRequest(BaseModel):
    level: Optional[int] = Field(default=None, ge=1)


class PollResponse(BaseModel):
    changes: list
    error: Optional[str] = None
    item_count: int


# --- Application Factory ---

def create_app(
    runtime: Optional[OverlayRuntime] = None,
    config: Optional[OverlayConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    rt = runtime or OverlayRuntime(config=config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(rt.config.log_level, rt.config.log_file)
        rt.start()
        try:
            yield
        finally:
            rt.stop()

    app = FastAPI(
        title="AFK Overlay API",
        description="Idle progression and task-tracker world events",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.runtime = rt

    @app.get("/status")
    def runtime_status():
        """Runtime overview."""
        poll_state = rt.poller.state
        return {
            "status": rt.status,
            "level": rt.player.level,
            "active_items": len(poll_state.items),
            "claimed_items": len(rt.ledger),
            "status_changes": len(rt.change_log),
            "bug_changes": rt.change_log.count_by_kind(ItemKind.BUG),
            "is_loading": poll_state.is_loading,
            "error": poll_state.error,
            "workspace_id": rt.poller.workspace_id,
            "world_event": rt.dispatcher.status,
        }

    # === PLAYER ===

    @app.get("/player")
    def get_player():
        """Current progression state."""
        return rt.player.model_dump(mode="json")

    @app.post("/player/spend")
    def spend(req: SpendRequest):
        """Spend contribution points."""
        if not rt.spend_currency(req.amount):
            raise HTTPException(400, "Not enough contribution points")
        return rt.player.model_dump(mode="json")

    @app.post("/player/reward")
    def reward(req: RewardRequest):
        """Credit the reward for a claimed item."""
        amount = rt.claim_reward(req.level)
        return {"reward": amount, "player": rt.player.model_dump(mode="json")}

    # === TRACKER ===

    @app.get("/tracker/items")
    def get_items():
        """Active items plus loading/error state."""
        return rt.poller.state.model_dump(mode="json")

    @app.get("/tracker/claimed")
    def get_claimed():
        """Claimed items, most recent first."""
        return [i.model_dump(mode="json") for i in rt.claimed_items]

    @app.get("/tracker/changes")
    def get_changes(kind: Optional[ItemKind] = None):
        """Detected status changes, oldest first."""
        changes = rt.status_changes
        if kind is not None:
            changes = [c for c in changes if c.kind == kind]
        return [c.model_dump(mode="json") for c in changes]

    @app.post("/tracker/poll")
    async def trigger_poll():
        """Force a poll cycle."""
        changes = await rt.poll()
        state = rt.poller.state
        return PollResponse(
            changes=[c.model_dump(mode="json") for c in changes or []],
            error=state.error,
            item_count=len(state.items),
        )

    @app.post("/tracker/claim/{item_id}")
    def claim_item(item_id: str):
        """Move an active item into the claimed ledger."""
        if item_id in rt.ledger:
            raise HTTPException(409, "Item already claimed")
        item = rt.claim(item_id)
        if item is None:
            raise HTTPException(404, "Item not found in active list")
        return item.model_dump(mode="json")

    # === WORLD EVENTS ===

    @app.get("/events/current")
    def current_event():
        """The message currently on display, if any."""
        shown_at = rt.dispatcher.shown_at
        return {
            "status": rt.dispatcher.status,
            "event_id": rt.dispatcher.current_event_id,
            "message": rt.current_message,
            "shown_at": shown_at.isoformat() if shown_at else None,
        }

    return app


# Default application instance
app = create_app()
