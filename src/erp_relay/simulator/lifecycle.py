"""
Purchase Order Lifecycle - status schedule per order

At creation every order gets a schedule: executed after the approval lag,
supplied at its delivery date. Each step walks the schedules against the
virtual clock and moves orders forward; a supplied order leaves the schedule.
"""

from datetime import datetime

from pydantic import BaseModel

from erp_relay.kernel.logging import get_logger
from erp_relay.kernel.metrics import step_item_failures_total
from erp_relay.kernel.time import add_days
from erp_relay.simulator.models import PurchaseOrder, PurchaseOrderStatus

logger = get_logger(__name__)


class StatusSchedule(BaseModel):
    """When an order becomes executed and supplied"""

    purchase_order_id: str
    execute_at: datetime
    supply_at: datetime

    model_config = {"frozen": True}


class StatusChange(BaseModel):
    purchase_order_id: str
    previous: PurchaseOrderStatus
    current: PurchaseOrderStatus


class OrderLifecycle:
    """
    Tracks orders that have not reached their terminal status yet

    Statuses only move forward (PurchaseOrder.advance_status enforces it);
    supply may skip execution when both instants fall in one step.
    """

    def __init__(self, execution_lag_days: float = 5) -> None:
        self.execution_lag_days = execution_lag_days
        self._scheduled: dict[str, tuple[PurchaseOrder, StatusSchedule]] = {}

    def __len__(self) -> int:
        return len(self._scheduled)

    def reset(self) -> None:
        self._scheduled.clear()

    def attach(self, order: PurchaseOrder) -> StatusSchedule:
        """Schedule a newly created order"""
        schedule = StatusSchedule(
            purchase_order_id=order.id,
            execute_at=add_days(order.created_at, self.execution_lag_days),
            supply_at=order.delivery_at,
        )
        self._scheduled[order.id] = (order, schedule)
        return schedule

    def schedule_for(self, order_id: str) -> StatusSchedule | None:
        entry = self._scheduled.get(order_id)
        return entry[1] if entry else None

    def update_statuses(self, now: datetime) -> list[StatusChange]:
        """
        Advance every scheduled order against `now`

        Returns:
            One StatusChange per order whose status moved
        """
        changes: list[StatusChange] = []
        for order_id, (order, schedule) in list(self._scheduled.items()):
            try:
                previous = order.status
                if now >= schedule.supply_at:
                    target = PurchaseOrderStatus.SUPPLIED
                elif now >= schedule.execute_at:
                    target = PurchaseOrderStatus.EXECUTED
                else:
                    continue
                if order.advance_status(target):
                    changes.append(
                        StatusChange(purchase_order_id=order_id, previous=previous, current=target)
                    )
                if order.status.is_terminal:
                    del self._scheduled[order_id]
            except Exception:
                step_item_failures_total.labels(stage="status").inc()
                logger.exception("Status update failed", order_id=order_id, item_id=order.item_id)
        return changes
