"""
Static tracker rules: gamified labels, role claimability and sort order.
All functions are pure.
"""

from typing import Any, Dict, List, Optional, Sequence

from afk_overlay.models.tracker import ItemKind, TrackedItem, TrackerConfig


def gamify_status(status: str, glyphs: Dict[str, str]) -> str:
    """Decorate a status with its glyph. Unknown statuses pass through unchanged."""
    glyph = glyphs.get(status)
    return f"{glyph}{status}" if glyph else status


def claimable_statuses(role_field: Optional[str], config: TrackerConfig) -> List[str]:
    """Statuses the given role may claim. Unknown or missing roles get the default profile."""
    if role_field and role_field in config.role_profiles:
        return list(config.role_profiles[role_field])
    return list(config.default_profile)


def build_item(
    record: Dict[str, Any],
    kind: ItemKind,
    config: TrackerConfig,
    claimable: Sequence[str],
) -> TrackedItem:
    """Map one raw tracker record to a TrackedItem."""
    raw_status = str(record.get("status") or "")
    derived = record.get("v_status")
    derived_status = str(derived) if derived else raw_status
    return TrackedItem(
        id=str(record["id"]),
        kind=kind,
        display_name=str(record.get("name") or ""),
        raw_status=raw_status,
        owner_name=str(record.get("owner") or ""),
        derived_status=derived_status,
        gamified_label=gamify_status(derived_status, config.status_glyphs),
        is_claimable=derived_status in claimable,
    )


def sort_items(items: List[TrackedItem], status_order: Sequence[str]) -> List[TrackedItem]:
    """
    Claimable first, then by status_order (later pipeline stages first).
    Statuses missing from status_order go last within their group.
    Ties keep their input order.
    """
    rank = {status: i for i, status in enumerate(status_order)}
    not_found = len(status_order)
    return sorted(
        items,
        key=lambda item: (
            not item.is_claimable,
            rank.get(item.derived_status, not_found),
        ),
    )
