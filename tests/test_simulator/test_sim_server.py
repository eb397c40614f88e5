"""
Tests for the simulated ERP's HTTP routes
"""

from datetime import datetime, timezone

import pytest
import requests
from flask.testing import FlaskClient

from erp_relay.kernel.time import parse_iso, to_iso
from erp_relay.simulator.catalog import DEFAULT_ITEMS
from erp_relay.simulator.config import SimulatorConfig
from erp_relay.simulator.generator import EventGenerator
from erp_relay.simulator.server import create_simulator_app
from erp_relay.simulator.service import SimulatorService
from tests.helpers import TENANT, make_order

ORIGIN = datetime(2024, 10, 3, tzinfo=timezone.utc)


@pytest.fixture
def client(generator: EventGenerator) -> FlaskClient:
    return create_simulator_app(generator).test_client()


def created(rows: list[dict]) -> list[datetime]:
    return [parse_iso(row["created_at"]) for row in rows]


class TestPurchaseOrders:
    def test_lists_oldest_first(self, client: FlaskClient, generator: EventGenerator) -> None:
        response = client.get(f"/erp/{TENANT}/purchase-orders")

        assert response.status_code == 200
        rows = response.get_json()["data"]
        assert len(rows) == len(generator.orders())
        assert created(rows) == sorted(created(rows))
        assert set(rows[0]) >= {"id", "tenant_id", "item_id", "quantity", "created_at", "delivery_at", "status"}

    def test_since_is_strictly_after(self, client: FlaskClient) -> None:
        rows = client.get(f"/erp/{TENANT}/purchase-orders").get_json()["data"]
        pivot = rows[0]["created_at"]

        after = client.get(
            f"/erp/{TENANT}/purchase-orders", query_string={"since": pivot}
        ).get_json()["data"]

        assert all(parse_iso(r["created_at"]) > parse_iso(pivot) for r in after)
        assert rows[0]["id"] not in [r["id"] for r in after]

    def test_limit(self, client: FlaskClient) -> None:
        rows = client.get(f"/erp/{TENANT}/purchase-orders", query_string={"limit": 2}).get_json()["data"]
        assert len(rows) == 2

    @pytest.mark.parametrize("params", [{"since": "yesterday"}, {"limit": "many"}, {"limit": 0}])
    def test_bad_query_is_400(self, client: FlaskClient, params: dict) -> None:
        response = client.get(f"/erp/{TENANT}/purchase-orders", query_string=params)
        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_unknown_tenant_is_404(self, client: FlaskClient) -> None:
        response = client.get("/erp/someone-else/purchase-orders")
        assert response.status_code == 404
        assert response.get_json()["tenant_id"] == "someone-else"


class TestInventory:
    def test_point_in_time_at_origin(self, client: FlaskClient) -> None:
        rows = client.get(f"/erp/{TENANT}/inventory", query_string={"at": to_iso(ORIGIN)}).get_json()["data"]

        opening = {item.item_id: item.initial_on_hand for item in DEFAULT_ITEMS}
        assert len(rows) == len(DEFAULT_ITEMS)
        assert {r["item_id"]: r["on_hand"] for r in rows} == opening

    def test_before_history_is_empty(self, client: FlaskClient) -> None:
        rows = client.get(
            f"/erp/{TENANT}/inventory", query_string={"at": "2020-01-01T00:00:00Z"}
        ).get_json()["data"]
        assert rows == []

    def test_incremental_snapshots(self, client: FlaskClient, generator: EventGenerator) -> None:
        rows = client.get(
            f"/erp/{TENANT}/inventory", query_string={"since": to_iso(ORIGIN)}
        ).get_json()["data"]

        assert len(rows) == len(generator.snapshots()) - len(DEFAULT_ITEMS)
        assert all(parse_iso(r["as_of"]) > ORIGIN for r in rows)

    def test_unknown_tenant_is_404(self, client: FlaskClient) -> None:
        assert client.get("/erp/nobody/inventory").status_code == 404


class TestSubscriptions:
    def test_add_then_repeat(self, client: FlaskClient, generator: EventGenerator) -> None:
        url = f"/erp/{TENANT}/subscriptions"
        body = {"callback_url": "http://extractor.test/webhooks/erp/purchase-order"}

        first = client.post(url, json=body)
        second = client.post(url, json=body)

        assert first.status_code == 200
        assert first.get_json() == {"status": "ok", "added": True}
        assert second.get_json() == {"status": "ok", "added": False}
        assert generator.subscriptions() == [body["callback_url"]]

    @pytest.mark.parametrize("body", [{}, {"callback_url": ""}, {"callback_url": 42}, ["http://x.test"]])
    def test_invalid_body_is_400(self, client: FlaskClient, body) -> None:
        response = client.post(f"/erp/{TENANT}/subscriptions", json=body)
        assert response.status_code == 400


def test_health_reports_clock(client: FlaskClient, generator: EventGenerator) -> None:
    body = client.get("/health").get_json()

    assert body["status"] == "healthy"
    assert body["tenant_id"] == TENANT
    assert parse_iso(body["sim_now"]) == generator.now()
    assert body["snapshots"] == len(generator.snapshots())


def test_service_serves_static_orders(test_time) -> None:
    config = SimulatorConfig(
        tenant_id=TENANT, host="127.0.0.1", port=0, disable_history=True, disable_generator=True
    )
    static = make_order("static-1", test_time.now())
    service = SimulatorService(config, time_provider=test_time, static_orders=[static])

    address = service.start()
    try:
        http = requests.Session()
        http.trust_env = False
        rows = http.get(f"{address}/erp/{TENANT}/purchase-orders", timeout=5).json()["data"]
        health = http.get(f"{address}/health", timeout=5).json()
    finally:
        service.stop()

    assert [r["id"] for r in rows] == ["static-1"]
    assert health["steps"] == 0
    assert service.timer is None
