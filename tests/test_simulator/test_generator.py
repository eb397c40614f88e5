"""
Tests for the EventGenerator: bootstrap, steps, live ticks and fan-out

Fun fact: Seeding the generator makes two years of "random" purchasing
history byte-for-byte reproducible - the backbone of every test here!
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest
import requests

from erp_relay.kernel.errors import InvalidSubscription
from erp_relay.kernel.time import TestTimeProvider
from erp_relay.simulator.catalog import get_item
from erp_relay.simulator.config import SimulatorConfig
from erp_relay.simulator.generator import EventGenerator
from erp_relay.simulator.models import PurchaseOrderStatus
from erp_relay.simulator.notifier import WebhookNotifier
from erp_relay.simulator.policy import ReplenishmentPolicy
from tests.helpers import TENANT, RecordingSession, make_item, make_order

HOOK = "http://sink.test/hook"


def fresh_generator(
    test_time: TestTimeProvider,
    items=None,
    policy: ReplenishmentPolicy | None = None,
    notifier: WebhookNotifier | None = None,
    **config,
) -> EventGenerator:
    generator = EventGenerator(
        SimulatorConfig(tenant_id=TENANT, seed=7, **config),
        policy=policy,
        items=items or [make_item(daily_rate=100, initial_on_hand=1000)],
        time_provider=test_time,
        notifier=notifier,
    )
    generator.start_fresh()
    return generator


class TestBootstrap:
    def test_replays_from_month_start_minus_history(
        self, generator: EventGenerator, test_time: TestTimeProvider
    ) -> None:
        # 2025-01-01 minus 3 x 30 days
        origin = datetime(2024, 10, 3, tzinfo=timezone.utc)
        snapshots = generator.snapshots()

        assert snapshots[0].as_of == origin
        assert len([s for s in snapshots if s.as_of == origin]) == 10
        assert test_time.now() <= generator.now() < test_time.now() + timedelta(days=7)
        assert len(snapshots) == (generator.state.steps + 1) * 10

    def test_same_seed_same_history(self, sim_config: SimulatorConfig, test_time: TestTimeProvider) -> None:
        a = EventGenerator(sim_config, time_provider=test_time)
        b = EventGenerator(sim_config, time_provider=test_time)
        a.bootstrap()
        b.bootstrap()

        def fingerprint(g: EventGenerator) -> list[tuple]:
            return [(o.id, o.item_id, o.quantity, o.unit_price, o.created_at) for o in g.orders()]

        assert fingerprint(a) == fingerprint(b)
        assert [s.on_hand for s in a.snapshots()] == [s.on_hand for s in b.snapshots()]

    def test_bootstrap_is_repeatable_on_one_instance(self, generator: EventGenerator) -> None:
        first = [o.id for o in generator.orders()]
        generator.bootstrap()
        assert [o.id for o in generator.orders()] == first

    def test_history_invariants(self, test_time: TestTimeProvider) -> None:
        generator = EventGenerator(
            SimulatorConfig(tenant_id=TENANT, seed=5, history_months=24), time_provider=test_time
        )
        generator.bootstrap()
        now = generator.now()
        orders = generator.orders()
        pending_ids = [d.purchase_order_id for d in generator.state.inventory.pending]

        assert orders
        assert all(s.on_hand >= 0 for s in generator.snapshots())
        for order in orders:
            assert order.delivery_at > order.created_at
            if order.delivery_at <= now:
                assert order.status == PurchaseOrderStatus.SUPPLIED
                assert order.id not in pending_ids
            else:
                assert pending_ids.count(order.id) == 1

    def test_no_webhooks_during_bootstrap(self, test_time: TestTimeProvider) -> None:
        session = RecordingSession()
        notifier = WebhookNotifier(session=session)
        generator = fresh_generator(test_time, notifier=notifier, history_months=1)
        generator.subscribe(HOOK)

        generator.bootstrap()
        notifier.shutdown()

        assert generator.orders()  # low cover forces emergency orders
        assert session.posts == []


class TestStep:
    def test_step_advances_clock_and_snapshots(self, test_time: TestTimeProvider) -> None:
        generator = fresh_generator(test_time, step_days=7)
        start = generator.now()

        result = generator.step()

        assert result.started_at == start
        assert result.ended_at == start + timedelta(days=7)
        assert generator.now() == result.ended_at
        assert [s.as_of for s in result.snapshots] == [result.ended_at]

    def test_safety_stock_emergency_arrives_within_lag(self, test_time: TestTimeProvider) -> None:
        # 100/day, 1000 on hand -> 10 days of cover, below the 45-day threshold
        policy = ReplenishmentPolicy(delivery_lag_min_days=5, delivery_lag_max_days=10)
        generator = fresh_generator(test_time, policy=policy)
        start = generator.now()

        result = generator.step()

        assert len(result.orders) == 1
        order = result.orders[0]
        assert order.created_at == start
        assert start < order.delivery_at <= start + timedelta(days=10)

        generator.step()
        current = {o.id: o for o in generator.orders()}[order.id]
        assert current.status == PurchaseOrderStatus.SUPPLIED
        assert order.id not in [d.purchase_order_id for d in generator.state.inventory.pending]

    def test_statuses_are_monotonic(self, test_time: TestTimeProvider) -> None:
        generator = fresh_generator(test_time)
        highest: dict[str, int] = {}

        for _ in range(20):
            generator.step()
            for order in generator.orders():
                assert order.status.rank >= highest.get(order.id, 0)
                highest[order.id] = order.status.rank

        assert highest

    def test_failing_item_does_not_stop_the_step(self, generator: EventGenerator, monkeypatch) -> None:
        original = generator.planner._due_for_item

        def flaky(item, *args):
            if item.item_id == "cocoa":
                raise RuntimeError("boom")
            return original(item, *args)

        monkeypatch.setattr(generator.planner, "_due_for_item", flaky)

        result = generator.step()

        assert len(result.snapshots) == 10

    def test_published_order_delivered_once(self, test_time: TestTimeProvider) -> None:
        salt = make_item(item_id="salt", daily_rate=0, initial_on_hand=100)
        generator = fresh_generator(test_time, items=[salt])
        order = make_order("static-1", generator.now(), item_id="salt", quantity=50, lead_days=3)

        generator.publish_orders([order])
        first = generator.step()
        second = generator.step()

        assert first.snapshots[0].on_hand == 150
        assert second.snapshots[0].on_hand == 150
        assert [o.id for o in generator.orders()] == ["static-1"]

    @pytest.mark.parametrize(("step_days", "steps"), [(0.25, 8), (2.5, 4)])
    def test_consumption_follows_fractional_days(
        self, test_time: TestTimeProvider, step_days: float, steps: int
    ) -> None:
        flour = make_item(daily_rate=100, initial_on_hand=100_000)
        generator = fresh_generator(test_time, items=[flour], step_days=step_days)

        for _ in range(steps):
            result = generator.step()

        assert result.snapshots[0].on_hand == 100_000 - 100 * step_days * steps


class TestLiveTick:
    def test_tick_pushes_new_orders(self, test_time: TestTimeProvider) -> None:
        session = RecordingSession()
        notifier = WebhookNotifier(session=session)
        generator = fresh_generator(test_time, notifier=notifier)
        generator.subscribe(HOOK)

        result = generator.tick()
        notifier.shutdown()

        assert result is not None
        assert len(session.posts) == len(result.orders) == 1
        url, payload = session.posts[0]
        assert url == HOOK
        assert payload["id"] == result.orders[0].id
        assert payload["tenant_id"] == TENANT
        assert payload["status"] == "in_approval"

    def test_tick_swallows_unexpected_errors(self, test_time: TestTimeProvider, monkeypatch) -> None:
        generator = fresh_generator(test_time)

        def broken(before, after):
            raise RuntimeError("inventory exploded")

        monkeypatch.setattr(generator.state.inventory, "advance", broken)

        assert generator.tick() is None

    def test_publish_with_notify(self, test_time: TestTimeProvider) -> None:
        session = RecordingSession()
        notifier = WebhookNotifier(session=session)
        generator = fresh_generator(test_time, notifier=notifier)
        generator.subscribe(HOOK)
        generator.subscribe("http://other.test/hook")

        generator.publish_orders([make_order("static-1", generator.now())], notify=True)
        notifier.shutdown()

        assert sorted(url for url, _ in session.posts) == ["http://other.test/hook", HOOK]


class TestNotifier:
    def test_failures_are_isolated(self) -> None:
        session = RecordingSession(
            {
                "http://down.test/hook": requests.ConnectionError("refused"),
                "http://broken.test/hook": 500,
            }
        )
        notifier = WebhookNotifier(session=session)
        order = make_order("po-1", datetime(2025, 1, 15, tzinfo=timezone.utc))

        futures = notifier.notify(
            order, ["http://down.test/hook", "http://broken.test/hook", "http://ok.test/hook"]
        )
        outcomes = [f.result(timeout=5) for f in futures]
        notifier.shutdown()

        assert outcomes == [False, False, True]

    def test_each_worker_gets_its_own_session(self, monkeypatch) -> None:
        sessions: list[RecordingSession] = []
        both_busy = threading.Barrier(2)

        class WorkerSession(RecordingSession):
            def __init__(self) -> None:
                super().__init__()
                sessions.append(self)

            def post(self, url, json=None, timeout=None):
                both_busy.wait(timeout=5)
                return super().post(url, json=json, timeout=timeout)

        monkeypatch.setattr(requests, "Session", WorkerSession)
        notifier = WebhookNotifier(max_workers=2)
        order = make_order("po-1", datetime(2025, 1, 15, tzinfo=timezone.utc))

        futures = notifier.notify(order, ["http://a.test/hook", "http://b.test/hook"])
        outcomes = [f.result(timeout=10) for f in futures]
        notifier.shutdown()

        assert outcomes == [True, True]
        assert len(sessions) == 2
        assert [len(s.posts) for s in sessions] == [1, 1]


class TestSubscriptions:
    def test_subscribe_is_idempotent(self, test_time: TestTimeProvider) -> None:
        generator = fresh_generator(test_time)

        assert generator.subscribe(HOOK) is True
        assert generator.subscribe(HOOK) is False
        assert generator.subscriptions() == [HOOK]

    @pytest.mark.parametrize("url", [None, "", "ftp://sink.test/hook", "not a url"])
    def test_invalid_callback_rejected(self, test_time: TestTimeProvider, url) -> None:
        generator = fresh_generator(test_time)

        with pytest.raises(InvalidSubscription):
            generator.subscribe(url)


class TestCatalog:
    def test_lookup_by_id(self) -> None:
        assert get_item("cocoa").unit == "mt"

        with pytest.raises(KeyError):
            get_item("unobtainium")
