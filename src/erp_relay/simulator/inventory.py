"""
Inventory Model - on-hand quantities and deliveries in transit

Consumption is deterministic (daily_rate x elapsed days, floored at zero);
deliveries land when the virtual clock reaches their delivery_at, each
exactly once.

Fun fact: The floor at zero is the whole stock-out story - a factory can't
use sugar it doesn't have, so the shortfall simply never happens on paper!
"""

import math
from collections.abc import Iterable
from datetime import datetime

from erp_relay.kernel.logging import get_logger
from erp_relay.kernel.metrics import step_item_failures_total
from erp_relay.kernel.time import elapsed_days
from erp_relay.simulator.models import Item, PendingDelivery

logger = get_logger(__name__)


class InventoryModel:
    """
    Per-item on-hand stock plus the queue of pending deliveries

    Invariants:
    - on-hand is never negative
    - a pending delivery is applied at most once, then discarded
    """

    def __init__(self, items: Iterable[Item] = ()) -> None:
        self._items: dict[str, Item] = {}
        self._on_hand: dict[str, float] = {}
        self._pending: list[PendingDelivery] = []
        self.reset(items)

    def reset(self, items: Iterable[Item]) -> None:
        """Restore every item to its opening stock and drop all deliveries"""
        self._items = {item.item_id: item for item in items}
        self._on_hand = {item_id: item.initial_on_hand for item_id, item in self._items.items()}
        self._pending = []

    @property
    def pending(self) -> list[PendingDelivery]:
        return list(self._pending)

    def on_hand(self, item_id: str) -> float:
        return self._on_hand[item_id]

    def days_of_cover(self, item: Item) -> float:
        """Days the current stock lasts at the item's daily rate (inf if nothing is consumed)"""
        if item.daily_rate <= 0:
            return math.inf
        return self._on_hand[item.item_id] / item.daily_rate

    def add_pending(self, delivery: PendingDelivery) -> None:
        self._pending.append(delivery)

    def consume(self, item_id: str, days: float) -> float:
        """
        Consume `days` worth of one item

        Returns:
            The quantity actually consumed (less than requested on a stock-out)
        """
        item = self._items[item_id]
        current = self._on_hand[item_id]
        wanted = item.daily_rate * days
        after = max(0.0, current - wanted)
        self._on_hand[item_id] = after
        if after == 0.0 and wanted > current:
            logger.debug("Stock-out", item_id=item_id, shortfall=round(wanted - current, 2))
        return current - after

    def apply_deliveries(self, until: datetime) -> list[PendingDelivery]:
        """
        Land every pending delivery with delivery_at <= until

        Returns:
            The deliveries that were applied (and removed from the queue)
        """
        due = [d for d in self._pending if d.delivery_at <= until]
        if not due:
            return []
        self._pending = [d for d in self._pending if d.delivery_at > until]
        for delivery in due:
            self._on_hand[delivery.item_id] = self._on_hand.get(delivery.item_id, 0.0) + delivery.quantity
        return due

    def advance(self, before: datetime, after: datetime) -> list[PendingDelivery]:
        """
        Move stock from `before` to `after`: consume every item, then deliver

        Consumption is proportional to the exact (fractional) days elapsed.
        An item that fails to update is logged and skipped; the rest move on.
        """
        days = elapsed_days(before, after)
        for item_id in self._items:
            try:
                self.consume(item_id, days)
            except Exception:
                step_item_failures_total.labels(stage="consume").inc()
                logger.exception("Consumption failed", item_id=item_id, days=days)
        return self.apply_deliveries(after)
