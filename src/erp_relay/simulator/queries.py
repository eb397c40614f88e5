"""
Query surface of the simulated ERP

Incremental reads ("everything strictly after `since`") feed the
extractor's watermark loop; the point-in-time inventory read answers
"what was on hand at `at`".
"""

from collections.abc import Iterable
from datetime import datetime

from erp_relay.simulator.models import InventorySnapshot, PurchaseOrder

DEFAULT_LIMIT = 1000
MAX_LIMIT = 10000


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")
    return min(limit, MAX_LIMIT)


def list_orders(
    orders: Iterable[PurchaseOrder],
    since: datetime | None = None,
    limit: int | None = None,
) -> list[PurchaseOrder]:
    """Orders created strictly after `since`, oldest first"""
    matching = [o for o in orders if since is None or o.created_at > since]
    matching.sort(key=lambda o: o.created_at)
    return matching[: clamp_limit(limit)]


def list_snapshots(
    snapshots: Iterable[InventorySnapshot],
    since: datetime | None = None,
    limit: int | None = None,
) -> list[InventorySnapshot]:
    """Snapshots taken strictly after `since`, oldest first (item order kept within an instant)"""
    matching = [s for s in snapshots if since is None or s.as_of > since]
    matching.sort(key=lambda s: s.as_of)
    return matching[: clamp_limit(limit)]


def inventory_at(snapshots: Iterable[InventorySnapshot], at: datetime) -> list[InventorySnapshot]:
    """Latest snapshot per item with as_of <= at"""
    latest: dict[str, InventorySnapshot] = {}
    for snapshot in snapshots:
        if snapshot.as_of > at:
            continue
        current = latest.get(snapshot.item_id)
        if current is None or snapshot.as_of >= current.as_of:
            latest[snapshot.item_id] = snapshot
    return sorted(latest.values(), key=lambda s: s.item_id)
