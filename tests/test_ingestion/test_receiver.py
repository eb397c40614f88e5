"""
Tests for the extractor's HTTP surface: webhook receiver and read API
"""

from datetime import datetime, timedelta, timezone

import pytest
from flask.testing import FlaskClient

from erp_relay.ingestion.receiver import WEBHOOK_PATH, create_ingestion_app
from erp_relay.ingestion.store import IngestionStore
from erp_relay.kernel.errors import PersistenceError
from erp_relay.kernel.time import to_iso
from erp_relay.simulator.models import RecordType
from tests.helpers import TENANT, make_order, make_snapshot

T0 = datetime(2025, 1, 15, tzinfo=timezone.utc)


@pytest.fixture
def client(store: IngestionStore) -> FlaskClient:
    return create_ingestion_app(store, health_details=lambda: {"tenant_id": TENANT}).test_client()


def payload(order_id: str = "po-1", **overrides) -> dict:
    body = make_order(order_id, T0).model_dump(mode="json")
    body.update(overrides)
    return body


class TestWebhook:
    def test_accepts_new_and_duplicate(self, client: FlaskClient, store: IngestionStore) -> None:
        first = client.post(WEBHOOK_PATH, json=payload())
        second = client.post(WEBHOOK_PATH, json=payload())

        assert first.status_code == 202
        assert first.get_json() == {"status": "accepted"}
        assert second.status_code == 202
        assert store.count_raw(TENANT, RecordType.PURCHASE_ORDER) == 1

    @pytest.mark.parametrize(
        "body",
        [
            ["not", "an", "object"],
            {"id": "po-1"},
            payload(quantity=-5),
            payload(created_at="sometime"),
            payload(delivery_at=to_iso(T0 - timedelta(days=1))),
        ],
    )
    def test_rejects_invalid_payload(self, client: FlaskClient, store: IngestionStore, body) -> None:
        response = client.post(WEBHOOK_PATH, json=body)

        assert response.status_code == 400
        assert "error" in response.get_json()
        assert store.count_raw(TENANT) == 0

    def test_rejects_non_json(self, client: FlaskClient) -> None:
        response = client.post(WEBHOOK_PATH, data="hello", content_type="text/plain")
        assert response.status_code == 400

    def test_validation_details_are_returned(self, client: FlaskClient) -> None:
        details = client.post(WEBHOOK_PATH, json=payload(quantity=0)).get_json()["details"]
        assert [d["loc"] for d in details] == [["quantity"]]

    def test_persistence_failure_still_accepted(
        self, client: FlaskClient, store: IngestionStore, monkeypatch
    ) -> None:
        def broken(order, channel=""):
            raise PersistenceError("purchase_order", order.id, RuntimeError("disk full"))

        monkeypatch.setattr(store, "persist_order", broken)

        response = client.post(WEBHOOK_PATH, json=payload())

        assert response.status_code == 202


class TestReadApi:
    @pytest.fixture
    def loaded(self, store: IngestionStore) -> IngestionStore:
        for i in range(5):
            store.persist_order(make_order(f"po-{i}", T0 + timedelta(days=i), item_id="sugar"))
        for day, on_hand in [(0, 100.0), (7, 80.0), (14, 60.0)]:
            store.persist_snapshot(make_snapshot("sugar", on_hand, T0 + timedelta(days=day)))
            store.persist_snapshot(make_snapshot("cocoa", on_hand * 2, T0 + timedelta(days=day)))
        return store

    def test_orders_newest_first(self, client: FlaskClient, loaded: IngestionStore) -> None:
        rows = client.get(f"/api/tenants/{TENANT}/purchase-orders").get_json()["data"]
        assert [r["id"] for r in rows] == ["po-4", "po-3", "po-2", "po-1", "po-0"]

    def test_orders_since_and_limit(self, client: FlaskClient, loaded: IngestionStore) -> None:
        since = client.get(
            f"/api/tenants/{TENANT}/purchase-orders",
            query_string={"since": to_iso(T0 + timedelta(days=2))},
        ).get_json()["data"]
        limited = client.get(
            f"/api/tenants/{TENANT}/purchase-orders", query_string={"limit": 2}
        ).get_json()["data"]
        clamped = client.get(
            f"/api/tenants/{TENANT}/purchase-orders", query_string={"limit": -3}
        ).get_json()["data"]

        assert [r["id"] for r in since] == ["po-4", "po-3"]
        assert [r["id"] for r in limited] == ["po-4", "po-3"]
        assert len(clamped) == 1

    def test_single_order(self, client: FlaskClient, loaded: IngestionStore) -> None:
        response = client.get(f"/api/tenants/{TENANT}/purchase-orders/po-2")

        assert response.status_code == 200
        assert response.get_json()["id"] == "po-2"
        assert response.get_json()["status"] == "in_approval"

    def test_missing_order_is_404(self, client: FlaskClient, loaded: IngestionStore) -> None:
        assert client.get(f"/api/tenants/{TENANT}/purchase-orders/nope").status_code == 404
        assert client.get("/api/tenants/other-co/purchase-orders/po-2").status_code == 404

    def test_current_inventory(self, client: FlaskClient, loaded: IngestionStore) -> None:
        rows = client.get(f"/api/tenants/{TENANT}/inventory").get_json()["data"]
        assert {r["item_id"]: r["on_hand"] for r in rows} == {"cocoa": 120.0, "sugar": 60.0}

    def test_inventory_at(self, client: FlaskClient, loaded: IngestionStore) -> None:
        rows = client.get(
            f"/api/tenants/{TENANT}/inventory",
            query_string={"at": to_iso(T0 + timedelta(days=10))},
        ).get_json()["data"]
        assert {r["item_id"]: r["on_hand"] for r in rows} == {"cocoa": 160.0, "sugar": 80.0}

    def test_snapshot_history_for_item(self, client: FlaskClient, loaded: IngestionStore) -> None:
        rows = client.get(
            f"/api/tenants/{TENANT}/inventory/snapshots", query_string={"item_id": "sugar"}
        ).get_json()["data"]
        assert [r["on_hand"] for r in rows] == [100.0, 80.0, 60.0]

    def test_items_seen(self, client: FlaskClient, loaded: IngestionStore) -> None:
        rows = client.get(f"/api/tenants/{TENANT}/items").get_json()["data"]
        assert [r["item_id"] for r in rows] == ["cocoa", "sugar"]

    @pytest.mark.parametrize("query", [{"since": "nope"}, {"limit": "ten"}])
    def test_bad_query_is_400(self, client: FlaskClient, query: dict) -> None:
        response = client.get(f"/api/tenants/{TENANT}/purchase-orders", query_string=query)
        assert response.status_code == 400


def test_health_merges_details(client: FlaskClient) -> None:
    body = client.get("/health").get_json()
    assert body == {"status": "healthy", "service": "erp-extractor", "tenant_id": TENANT}
