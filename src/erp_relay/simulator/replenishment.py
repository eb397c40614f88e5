"""
Replenishment - when and how much the simulated buyer orders

Two triggers per item:
1. Cadence: an order every 60-90 days, starting 5-25 days after the origin
2. Safety stock: cover below the threshold at step start forces an
   out-of-cadence order and restarts the cadence from that instant

The safety check runs before the cadence check, so an emergency order and a
cadence order never land in the same step for the same item.
"""

import random
from collections.abc import Iterable
from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from erp_relay.kernel.ids import DefaultIdFactory, IdFactory, SeededIdFactory
from erp_relay.kernel.logging import get_logger
from erp_relay.kernel.metrics import orders_created_total, step_item_failures_total
from erp_relay.kernel.time import add_days
from erp_relay.simulator.inventory import InventoryModel
from erp_relay.simulator.models import Item, PurchaseOrder
from erp_relay.simulator.policy import ReplenishmentPolicy

logger = get_logger(__name__)


class OrderTrigger(str, Enum):
    CADENCE = "cadence"
    SAFETY_STOCK = "safety_stock"
    STATIC = "static"


class PlannedOrder(BaseModel):
    """An order plus what caused it"""

    order: PurchaseOrder
    trigger: OrderTrigger


class ReplenishmentPlanner:
    """
    Per-item purchase cadence and order sizing

    All randomness comes from one seeded stream, so the same seed and the
    same clock origin reproduce the same orders.
    """

    def __init__(
        self,
        policy: ReplenishmentPolicy,
        tenant_id: str,
        currency: str = "USD",
        seed: int | None = None,
        id_factory: IdFactory | None = None,
    ) -> None:
        self.policy = policy
        self.tenant_id = tenant_id
        self.currency = currency
        self.rng = random.Random(seed)
        self._own_ids = id_factory is None
        self.id_factory = id_factory or self._ids_for(seed)
        self.next_purchase_at: dict[str, datetime] = {}

    @staticmethod
    def _ids_for(seed: int | None) -> IdFactory:
        return SeededIdFactory(seed) if seed is not None else DefaultIdFactory()

    def seed(self, seed: int | None) -> None:
        """Restart both random streams (used before a bootstrap)"""
        self.rng.seed(seed)
        if self._own_ids:
            self.id_factory = self._ids_for(seed)

    def schedule_first_purchases(self, items: Iterable[Item], start: datetime) -> None:
        self.next_purchase_at = {
            item.item_id: add_days(
                start,
                self.rng.randint(
                    self.policy.first_purchase_min_days, self.policy.first_purchase_max_days
                ),
            )
            for item in items
        }

    def _next_interval(self) -> int:
        return self.rng.randint(
            self.policy.purchase_interval_min_days, self.policy.purchase_interval_max_days
        )

    def create_order(self, item: Item, created_at: datetime) -> PurchaseOrder | None:
        """
        Size and price one order for `item`

        Returns:
            The order, or None when the jittered quantity rounds to zero
        """
        target = self.policy.target_quantity(item.daily_rate)
        quantity = round(
            target * self.rng.uniform(1 - self.policy.quantity_jitter, 1 + self.policy.quantity_jitter),
            2,
        )
        unit_price = round(
            item.base_price
            * self.rng.uniform(1 - self.policy.price_jitter, 1 + self.policy.price_jitter),
            4,
        )
        lag = self.rng.randint(self.policy.delivery_lag_min_days, self.policy.delivery_lag_max_days)
        if quantity <= 0 or unit_price <= 0:
            return None
        return PurchaseOrder(
            id=self.id_factory.generate(),
            tenant_id=self.tenant_id,
            item_id=item.item_id,
            item_name=item.name,
            quantity=quantity,
            unit=item.unit,
            unit_price=unit_price,
            currency=self.currency,
            created_at=created_at,
            delivery_at=add_days(created_at, lag),
        )

    def create_due_orders(
        self,
        items: Iterable[Item],
        inventory: InventoryModel,
        before: datetime,
        after: datetime,
    ) -> list[PlannedOrder]:
        """
        Orders due in the step (before, after]

        Per item: safety-stock check against the stock at `before`, then
        every cadence date up to `after`. A failing item is logged and
        skipped.
        """
        planned: list[PlannedOrder] = []
        for item in items:
            try:
                planned.extend(self._due_for_item(item, inventory, before, after))
            except Exception:
                step_item_failures_total.labels(stage="replenishment").inc()
                logger.exception("Replenishment failed", item_id=item.item_id)
        for entry in planned:
            orders_created_total.labels(item_id=entry.order.item_id, trigger=entry.trigger.value).inc()
        return planned

    def _due_for_item(
        self,
        item: Item,
        inventory: InventoryModel,
        before: datetime,
        after: datetime,
    ) -> list[PlannedOrder]:
        planned: list[PlannedOrder] = []

        cover = inventory.days_of_cover(item)
        if cover < self.policy.safety_stock_days:
            order = self.create_order(item, before)
            if order is not None:
                planned.append(PlannedOrder(order=order, trigger=OrderTrigger.SAFETY_STOCK))
                logger.info(
                    "Safety stock breached, emergency order placed",
                    item_id=item.item_id,
                    days_of_cover=round(cover, 1),
                    order_id=order.id,
                )
            self.next_purchase_at[item.item_id] = add_days(before, self._next_interval())

        due = self.next_purchase_at.get(item.item_id)
        if due is None:
            due = add_days(before, self._next_interval())
        while due <= after:
            order = self.create_order(item, due)
            if order is not None:
                planned.append(PlannedOrder(order=order, trigger=OrderTrigger.CADENCE))
            due = add_days(due, self._next_interval())
        self.next_purchase_at[item.item_id] = due
        return planned
