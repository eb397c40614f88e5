"""
HTTP client for the simulated ERP

Thin requests wrapper: every transport failure or non-2xx answer becomes an
UpstreamError, and every record is validated against the wire models.
"""

from datetime import datetime

import requests
from pydantic import ValidationError

from erp_relay.kernel.errors import UpstreamError
from erp_relay.kernel.logging import get_logger
from erp_relay.kernel.time import to_iso
from erp_relay.simulator.models import InventorySnapshot, PurchaseOrder

logger = get_logger(__name__)


class SimulatorClient:
    """
    Client for one tenant of the simulated ERP

    Args:
        base_url: Simulator root, e.g. http://localhost:4001
        tenant_id: Tenant whose records are fetched
        session: requests-compatible session (anything with .get/.post)
        timeout_seconds: Per-request timeout
    """

    def __init__(
        self,
        base_url: str,
        tenant_id: str,
        session: requests.Session | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.tenant_id = tenant_id
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds

    def _url(self, path: str) -> str:
        return f"{self.base_url}/erp/{self.tenant_id}/{path}"

    def _get(self, operation: str, path: str, params: dict[str, str | int]) -> list[dict]:
        try:
            response = self.session.get(self._url(path), params=params, timeout=self.timeout_seconds)
        except requests.RequestException as e:
            raise UpstreamError(operation, detail=str(e)) from e
        if not 200 <= response.status_code < 300:
            raise UpstreamError(operation, status_code=response.status_code)
        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError(operation, status_code=response.status_code, detail="invalid JSON") from e
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise UpstreamError(operation, status_code=response.status_code, detail="missing data array")
        return data

    @staticmethod
    def _params(since: datetime | None, limit: int | None) -> dict[str, str | int]:
        params: dict[str, str | int] = {}
        if since is not None:
            params["since"] = to_iso(since)
        if limit is not None:
            params["limit"] = limit
        return params

    def fetch_orders(self, since: datetime | None = None, limit: int | None = None) -> list[PurchaseOrder]:
        """
        Orders created strictly after `since`

        Raises:
            UpstreamError: If the simulator is unreachable or answers non-2xx
        """
        rows = self._get("fetch_orders", "purchase-orders", self._params(since, limit))
        return self._validate(rows, PurchaseOrder)

    def fetch_snapshots(
        self, since: datetime | None = None, limit: int | None = None
    ) -> list[InventorySnapshot]:
        """Inventory snapshots taken strictly after `since` (see fetch_orders)"""
        rows = self._get("fetch_snapshots", "inventory", self._params(since, limit))
        return self._validate(rows, InventorySnapshot)

    def _validate(self, rows: list[dict], model: type) -> list:
        records = []
        for row in rows:
            try:
                records.append(model.model_validate(row))
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed upstream record",
                    tenant_id=self.tenant_id,
                    record_id=row.get("id") if isinstance(row, dict) else None,
                    error_count=e.error_count(),
                )
        return records

    def subscribe(self, callback_url: str) -> None:
        """
        Register a webhook callback with the simulator

        Raises:
            UpstreamError: If registration was not accepted
        """
        try:
            response = self.session.post(
                self._url("subscriptions"),
                json={"callback_url": callback_url},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            raise UpstreamError("subscribe", detail=str(e)) from e
        if not 200 <= response.status_code < 300:
            raise UpstreamError("subscribe", status_code=response.status_code)
