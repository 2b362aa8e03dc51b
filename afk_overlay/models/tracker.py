"""Tracker models: items fetched from the remote task tracker and their transitions."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel


class ItemKind(str, Enum):
    BUG = "bug"
    STORY = "story"


class TrackedItem(BaseModel):
    """A single bug or story assigned to the current user."""

    id: str                                 # Tracker-assigned, stable
    kind: ItemKind
    display_name: str
    raw_status: str
    owner_name: str = ""
    derived_status: str                     # Tracker's secondary status (v_status)
    gamified_label: str
    is_claimable: bool = False


class StatusChange(BaseModel):
    """A detected transition of an item's derived status between two polls."""

    model_config = {"frozen": True}

    item_id: str
    kind: ItemKind
    from_status: str
    to_status: str
    occurred_at: datetime


class TrackerCredentials(BaseModel):
    """What the credential provider hands to the poller. Every field may be missing."""

    token: Optional[str] = None
    workspace_id: Optional[str] = None
    user_name: Optional[str] = None
    user_role_field: Optional[str] = None   # e.g. "custom_field_9"

    def masked_token(self) -> str:
        if not self.token:
            return ""
        if len(self.token) <= 8:
            return "****"
        return f"{self.token[:4]}...{self.token[-4:]}"


class TrackerConfig(BaseModel):
    """Static tracker query and classification tables."""

    api_base_url: str = "https://api.tapd.cn"
    page_limit: int = 50
    fields: List[str] = ["id", "name", "status", "owner", "v_status"]
    kinds: List[ItemKind] = [ItemKind.STORY]

    # Secondary statuses requested from the tracker (pre-review → fully tested)
    fetched_statuses: List[str] = [
        "方案中",
        "预审通过",
        "待正式评审",
        "技术方案中",
        "排期中",
        "开发中",
        "已提测",
        "测试中",
        "已测完",
    ]

    # Later pipeline stages first
    status_order: List[str] = [
        "已提测",
        "测试中",
        "已测完",
        "开发中",
        "排期中",
        "待正式评审",
        "技术方案中",
        "预审通过",
        "方案中",
    ]

    status_glyphs: Dict[str, str] = {
        "预审通过": "📖",
        "方案中": "📘",
        "排期中": "🧭",
        "开发中": "🔧",
        "已提测": "✅",
        "测试中": "🔬",
        "已测完": "✅",
    }

    # Role field → statuses that role may claim
    role_profiles: Dict[str, List[str]] = {
        "custom_field_9": ["排期中", "开发中", "已提测", "测试中", "已测完"],   # Product manager
        "custom_field_10": ["已测完"],                                          # Tester
    }
    default_profile: List[str] = ["已提测", "测试中", "已测完"]                # Developer


class PollState(BaseModel):
    """What the UI sees of the poller."""

    items: List[TrackedItem] = []
    is_loading: bool = False
    error: Optional[str] = None
    last_polled_at: Optional[datetime] = None
