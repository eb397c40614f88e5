"""
EventGenerator - the simulated ERP's heartbeat

Owns the whole simulator state and advances it one step at a time:
1. Replenishment places the orders due in the step
2. Inventory consumes, then receives deliveries that have arrived
3. One snapshot per item is recorded at the new clock
4. Order statuses catch up with the new clock

Bootstrap replays months of history in one go (no webhooks); live mode
runs one step per timer firing and pushes new orders to subscribers.

Fun fact: Two years of weekly steps is just 104 iterations - the "history"
an extractor sees on first contact is generated in the blink of an eye!
"""

import threading
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from erp_relay.kernel.errors import InvalidSubscription, TenantNotFound
from erp_relay.kernel.ids import snapshot_id
from erp_relay.kernel.logging import LogOperation, get_logger
from erp_relay.kernel.metrics import (
    orders_created_total,
    simulator_tick_duration_seconds,
    simulator_ticks_total,
    step_item_failures_total,
)
from erp_relay.kernel.time import (
    RealTimeProvider,
    TimeProvider,
    VirtualClock,
    add_days,
    start_of_month,
)
from erp_relay.simulator.catalog import DEFAULT_ITEMS
from erp_relay.simulator.config import SimulatorConfig
from erp_relay.simulator.inventory import InventoryModel
from erp_relay.simulator.lifecycle import OrderLifecycle, StatusChange
from erp_relay.simulator.models import (
    InventorySnapshot,
    Item,
    PendingDelivery,
    PurchaseOrder,
    Subscription,
)
from erp_relay.simulator.notifier import WebhookNotifier
from erp_relay.simulator.policy import ReplenishmentPolicy
from erp_relay.simulator.replenishment import OrderTrigger, ReplenishmentPlanner

logger = get_logger(__name__)

DAYS_PER_HISTORY_MONTH = 30


class SimulatorState:
    """
    Everything one simulated ERP instance knows

    Orders and snapshots are append-only lists; orders are mutated in place
    only by the lifecycle. Subscriptions keep insertion order.
    """

    def __init__(self, items: Iterable[Item], start: datetime, execution_lag_days: float) -> None:
        self.items: list[Item] = list(items)
        self.clock = VirtualClock(start)
        self.inventory = InventoryModel(self.items)
        self.lifecycle = OrderLifecycle(execution_lag_days)
        self.orders: list[PurchaseOrder] = []
        self.snapshots: list[InventorySnapshot] = []
        self.subscriptions: list[str] = []
        self.steps = 0

    def reset(self, start: datetime) -> None:
        self.clock.reset(start)
        self.inventory.reset(self.items)
        self.lifecycle.reset()
        self.orders.clear()
        self.snapshots.clear()
        self.steps = 0


class StepResult:
    """
    Outcome of one simulation step

    Contains the orders created, snapshots recorded and statuses moved.
    """

    def __init__(
        self,
        started_at: datetime,
        ended_at: datetime,
        orders: list[PurchaseOrder],
        snapshots: list[InventorySnapshot],
        status_changes: list[StatusChange],
        deliveries: list[PendingDelivery],
    ):
        self.started_at = started_at
        self.ended_at = ended_at
        self.orders = orders
        self.snapshots = snapshots
        self.status_changes = status_changes
        self.deliveries = deliveries


class BootstrapResult:
    """Summary of a history replay"""

    def __init__(self, started_at: datetime, ended_at: datetime, steps: int, orders: int, snapshots: int):
        self.started_at = started_at
        self.ended_at = ended_at
        self.steps = steps
        self.orders = orders
        self.snapshots = snapshots

    def as_dict(self) -> dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "steps": self.steps,
            "orders": self.orders,
            "snapshots": self.snapshots,
        }


class EventGenerator:
    """
    Drives one simulated ERP timeline

    Every state mutation and every read that copies state happens under
    one re-entrant lock, so HTTP handlers never see a half-applied step.
    """

    def __init__(
        self,
        config: SimulatorConfig | None = None,
        policy: ReplenishmentPolicy | None = None,
        items: Sequence[Item] = DEFAULT_ITEMS,
        time_provider: TimeProvider | None = None,
        notifier: WebhookNotifier | None = None,
    ) -> None:
        self.config = config or SimulatorConfig()
        self.policy = policy or ReplenishmentPolicy()
        self.time_provider = time_provider or RealTimeProvider()
        self.notifier = notifier
        self.state = SimulatorState(items, self.time_provider.now(), self.policy.execution_lag_days)
        self.planner = ReplenishmentPlanner(
            self.policy,
            tenant_id=self.config.tenant_id,
            currency=self.config.currency,
            seed=self.config.seed,
        )
        self.planner.schedule_first_purchases(self.state.items, self.state.clock.now())
        self._lock = threading.RLock()

    @property
    def tenant_id(self) -> str:
        return self.config.tenant_id

    def now(self) -> datetime:
        return self.state.clock.now()

    def require_tenant(self, tenant_id: str) -> None:
        """Raises TenantNotFound unless `tenant_id` is the simulated company"""
        if tenant_id != self.config.tenant_id:
            raise TenantNotFound(tenant_id)

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    def bootstrap(self, now: datetime | None = None) -> BootstrapResult:
        """
        Replay history from start_of_month(now) - history_months x 30 days

        A snapshot is taken at the origin, then steps run until the clock
        reaches `now`. No webhooks are sent.
        """
        now = now or self.time_provider.now()
        start = start_of_month(now) - timedelta(days=self.config.history_months * DAYS_PER_HISTORY_MONTH)
        with self._lock, LogOperation(
            logger, "simulator_bootstrap", tenant_id=self.tenant_id, start=start.isoformat()
        ) as op:
            self._restart(start)
            while self.state.clock.now() < now:
                self._step(notify=False)
                simulator_ticks_total.labels(mode="bootstrap").inc()
            result = BootstrapResult(
                started_at=start,
                ended_at=self.state.clock.now(),
                steps=self.state.steps,
                orders=len(self.state.orders),
                snapshots=len(self.state.snapshots),
            )
            op.add(steps=result.steps, orders=result.orders, snapshots=result.snapshots)
        return result

    def start_fresh(self, now: datetime | None = None) -> None:
        """Start the timeline at `now` without replaying history"""
        start = now or self.time_provider.now()
        with self._lock:
            self._restart(start)
        logger.info("Simulator started without history", tenant_id=self.tenant_id, start=start.isoformat())

    def _restart(self, start: datetime) -> None:
        self.planner.seed(self.config.seed)
        self.state.reset(start)
        self.planner.schedule_first_purchases(self.state.items, start)
        self._record_snapshots(self.state.clock.now())

    def step(self, notify: bool = False) -> StepResult:
        """Advance the clock by step_days and apply one step"""
        with self._lock:
            return self._step(notify)

    def _step(self, notify: bool) -> StepResult:
        before = self.state.clock.now()
        after = add_days(before, self.config.step_days)

        planned = self.planner.create_due_orders(self.state.items, self.state.inventory, before, after)
        orders = [entry.order for entry in planned]
        for order in orders:
            self._record_order(order)
            if notify:
                self._notify(order)

        deliveries = self.state.inventory.advance(before, after)
        self.state.clock.advance_to(after)
        snapshots = self._record_snapshots(after)
        changes = self.state.lifecycle.update_statuses(after)
        self.state.steps += 1

        return StepResult(before, after, orders, snapshots, changes, deliveries)

    def tick(self) -> StepResult | None:
        """
        One live step with webhook delivery

        Never raises: an unexpected failure is logged and the next tick
        is the recovery path.
        """
        try:
            with simulator_tick_duration_seconds.time(), LogOperation(
                logger, "simulator_tick", tenant_id=self.tenant_id
            ) as op:
                result = self.step(notify=True)
                op.add(
                    sim_now=result.ended_at.isoformat(),
                    orders=len(result.orders),
                    status_changes=len(result.status_changes),
                )
            simulator_ticks_total.labels(mode="live").inc()
            return result
        except Exception:
            logger.exception("Simulator tick failed", tenant_id=self.tenant_id)
            return None

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def _record_order(self, order: PurchaseOrder) -> None:
        self.state.orders.append(order)
        self.state.lifecycle.attach(order)
        self.state.inventory.add_pending(
            PendingDelivery(
                item_id=order.item_id,
                quantity=order.quantity,
                delivery_at=order.delivery_at,
                purchase_order_id=order.id,
            )
        )

    def _record_snapshots(self, as_of: datetime) -> list[InventorySnapshot]:
        recorded: list[InventorySnapshot] = []
        for item in self.state.items:
            try:
                snapshot = InventorySnapshot(
                    id=snapshot_id(item.item_id, as_of),
                    tenant_id=self.tenant_id,
                    item_id=item.item_id,
                    item_name=item.name,
                    on_hand=round(self.state.inventory.on_hand(item.item_id), 2),
                    unit=item.unit,
                    as_of=as_of,
                )
            except Exception:
                step_item_failures_total.labels(stage="snapshot").inc()
                logger.exception("Snapshot failed", item_id=item.item_id, as_of=as_of.isoformat())
                continue
            self.state.snapshots.append(snapshot)
            recorded.append(snapshot)
        return recorded

    def _notify(self, order: PurchaseOrder) -> None:
        if self.notifier is None or not self.state.subscriptions:
            return
        self.notifier.notify(order, list(self.state.subscriptions))

    def publish_orders(self, orders: Iterable[PurchaseOrder], notify: bool = False) -> list[PurchaseOrder]:
        """
        Inject externally built orders into the timeline

        They join the order log, the lifecycle and the delivery queue like
        any generated order.
        """
        published: list[PurchaseOrder] = []
        with self._lock:
            for order in orders:
                self._record_order(order)
                orders_created_total.labels(item_id=order.item_id, trigger=OrderTrigger.STATIC.value).inc()
                if notify:
                    self._notify(order)
                published.append(order)
        logger.info("Static orders published", count=len(published), notify=notify)
        return published

    # ------------------------------------------------------------------
    # Subscriptions and reads
    # ------------------------------------------------------------------

    def subscribe(self, callback_url: str | None) -> bool:
        """
        Register a webhook subscriber

        Returns:
            True if newly added, False if it was already subscribed

        Raises:
            InvalidSubscription: If the URL is missing or not http(s)
        """
        if not callback_url:
            raise InvalidSubscription(callback_url)
        try:
            subscription = Subscription(callback_url=callback_url)
        except ValueError as e:
            raise InvalidSubscription(callback_url) from e

        with self._lock:
            if subscription.callback_url in self.state.subscriptions:
                return False
            self.state.subscriptions.append(subscription.callback_url)
        logger.info("Subscription added", callback_url=subscription.callback_url)
        return True

    def subscriptions(self) -> list[str]:
        with self._lock:
            return list(self.state.subscriptions)

    def orders(self) -> list[PurchaseOrder]:
        """Point-in-time copies of every order (statuses as of now)"""
        with self._lock:
            return [order.model_copy() for order in self.state.orders]

    def snapshots(self) -> list[InventorySnapshot]:
        with self._lock:
            return list(self.state.snapshots)

    def health(self) -> dict[str, object]:
        with self._lock:
            return {
                "tenant_id": self.tenant_id,
                "sim_now": self.state.clock.now().isoformat(),
                "steps": self.state.steps,
                "orders": len(self.state.orders),
                "snapshots": len(self.state.snapshots),
                "open_orders": len(self.state.lifecycle),
                "subscriptions": len(self.state.subscriptions),
            }
