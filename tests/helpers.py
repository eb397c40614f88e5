"""
Test Helper Functions - Builders and in-process HTTP

Builders for orders, snapshots and items, plus a requests-compatible
session that routes calls to Flask test clients, so the simulator and the
extractor can talk to each other without opening sockets.
"""

import threading
import time
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlsplit

import requests
from flask import Flask

from erp_relay.kernel.ids import snapshot_id
from erp_relay.simulator.models import InventorySnapshot, Item, PurchaseOrder, PurchaseOrderStatus

TENANT = "test-co"


def make_item(
    item_id: str = "flour",
    daily_rate: float = 100,
    initial_on_hand: float = 1000,
    base_price: float = 1.0,
) -> Item:
    """Builder for catalog items"""
    return Item(
        item_id=item_id,
        name=item_id.title(),
        unit="kg",
        base_price=base_price,
        daily_rate=daily_rate,
        initial_on_hand=initial_on_hand,
    )


def make_order(
    order_id: str,
    created_at: datetime,
    item_id: str = "sugar",
    quantity: float = 100.0,
    lead_days: int = 30,
    tenant_id: str = TENANT,
    status: PurchaseOrderStatus = PurchaseOrderStatus.IN_APPROVAL,
) -> PurchaseOrder:
    """Builder for purchase orders"""
    return PurchaseOrder(
        id=order_id,
        tenant_id=tenant_id,
        item_id=item_id,
        item_name=item_id.title(),
        quantity=quantity,
        unit="lb",
        unit_price=0.45,
        currency="USD",
        created_at=created_at,
        delivery_at=created_at + timedelta(days=lead_days),
        status=status,
    )


def make_snapshot(
    item_id: str,
    on_hand: float,
    as_of: datetime,
    tenant_id: str = TENANT,
) -> InventorySnapshot:
    """Builder for inventory snapshots"""
    return InventorySnapshot(
        id=snapshot_id(item_id, as_of),
        tenant_id=tenant_id,
        item_id=item_id,
        item_name=item_id.title(),
        on_hand=on_hand,
        unit="lb",
        as_of=as_of,
    )


class FakeResponse:
    """The slice of requests.Response the code under test reads"""

    def __init__(self, status_code: int, body: Any) -> None:
        self.status_code = status_code
        self._body = body

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


class FlaskSession:
    """
    requests-style session routing each host to a Flask app

    Set `down = True` to make every call fail like an unreachable host.
    """

    def __init__(self, routes: dict[str, Flask] | None = None) -> None:
        self.routes = dict(routes or {})
        self.down = False
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def _client(self, url: str):
        parts = urlsplit(url)
        app = self.routes.get(parts.netloc)
        if self.down or app is None:
            raise requests.ConnectionError(f"cannot reach {parts.netloc}")
        # One client per call: webhook deliveries arrive from several threads
        return app.test_client(), parts.path

    def _record(self, method: str, url: str) -> None:
        with self._lock:
            self.calls.append((method, url))

    def get(self, url: str, params: dict | None = None, timeout: float | None = None) -> FakeResponse:
        self._record("GET", url)
        client, path = self._client(url)
        response = client.get(path, query_string=params or {})
        return FakeResponse(response.status_code, response.get_json(silent=True))

    def post(self, url: str, json: Any = None, timeout: float | None = None) -> FakeResponse:
        self._record("POST", url)
        client, path = self._client(url)
        response = client.post(path, json=json)
        return FakeResponse(response.status_code, response.get_json(silent=True))


class RecordingSession:
    """
    requests-style session that records POSTs

    `behaviour` maps a URL to a status code or an exception to raise;
    unknown URLs answer 200.
    """

    def __init__(self, behaviour: dict[str, int | Exception] | None = None) -> None:
        self.behaviour = behaviour or {}
        self.posts: list[tuple[str, Any]] = []
        self._lock = threading.Lock()

    def post(self, url: str, json: Any = None, timeout: float | None = None) -> FakeResponse:
        with self._lock:
            self.posts.append((url, json))
        outcome = self.behaviour.get(url, 200)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome, {})


def wait_for(predicate, timeout: float = 5.0) -> bool:
    """Poll `predicate` until it holds or `timeout` seconds pass"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
