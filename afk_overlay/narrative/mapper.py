"""Transition Mapper: maps a status change to a world event id."""

from typing import Optional

from afk_overlay.models.tracker import ItemKind, StatusChange


BUG_FIXED = "BUG_FIXED"
BUG_REOPENED = "BUG_REOPENED"
STORY_ROLLBACK = "STORY_ROLLBACK"

BUG_RESOLVED_STATUS = "已解决"
BUG_REOPENED_STATUSES = ("重新打开", "Reopened")
STORY_PROGRESS = ("规划中", "实现中", "已完成")  # planning → implementing → complete


def map_change_to_event_id(change: StatusChange) -> Optional[str]:
    """Return the event id for a change, or None when nothing is mapped."""
    if change.kind == ItemKind.BUG:
        if change.to_status == BUG_RESOLVED_STATUS:
            return BUG_FIXED
        if change.to_status in BUG_REOPENED_STATUSES:
            return BUG_REOPENED

    if change.kind == ItemKind.STORY:
        if change.from_status in STORY_PROGRESS and change.to_status in STORY_PROGRESS:
            if STORY_PROGRESS.index(change.from_status) > STORY_PROGRESS.index(change.to_status):
                return STORY_ROLLBACK

    return None
