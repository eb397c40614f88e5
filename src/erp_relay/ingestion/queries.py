"""
Read access to ingested ERP data

The only interface downstream consumers may depend on: structured orders,
inventory (current or point-in-time), snapshot history and the items seen.
"""

import sqlite3
from datetime import datetime

from erp_relay.kernel.errors import RecordNotFound
from erp_relay.kernel.time import to_iso
from erp_relay.ingestion.models import SeenItem, StoredInventorySnapshot, StoredPurchaseOrder
from erp_relay.ingestion.store import IngestionStore
from erp_relay.simulator.models import RecordType

DEFAULT_ORDER_LIMIT = 500
MAX_ORDER_LIMIT = 2000
DEFAULT_SNAPSHOT_LIMIT = 1000
MAX_SNAPSHOT_LIMIT = 10000

_ORDER_COLUMNS = (
    "id, tenant_id, item_id, item_name, quantity, unit, unit_price, currency, "
    "status, created_at, delivery_at, raw_record_id"
)
_SNAPSHOT_COLUMNS = "snapshot_id, tenant_id, item_id, item_name, on_hand, unit, as_of, raw_record_id"


def clamp(value: int | None, default: int, maximum: int) -> int:
    if value is None:
        return default
    return max(1, min(value, maximum))


class ErpReadService:
    """Queries over the structured tables of an IngestionStore"""

    def __init__(self, store: IngestionStore) -> None:
        self.store = store

    def _rows(self, sql: str, params: tuple) -> list[sqlite3.Row]:
        with self.store.connect() as conn:
            return conn.execute(sql, params).fetchall()

    def list_orders(
        self,
        tenant_id: str,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[StoredPurchaseOrder]:
        """Orders created after `since`, newest first"""
        sql = f"SELECT {_ORDER_COLUMNS} FROM erp_purchase_orders WHERE tenant_id = ?"
        params: tuple = (tenant_id,)
        if since is not None:
            sql += " AND created_at > ?"
            params += (to_iso(since),)
        sql += " ORDER BY created_at DESC, id LIMIT ?"
        params += (clamp(limit, DEFAULT_ORDER_LIMIT, MAX_ORDER_LIMIT),)
        return [StoredPurchaseOrder(**dict(row)) for row in self._rows(sql, params)]

    def get_order(self, tenant_id: str, order_id: str) -> StoredPurchaseOrder:
        """
        Raises:
            RecordNotFound: If the tenant has no such order
        """
        rows = self._rows(
            f"SELECT {_ORDER_COLUMNS} FROM erp_purchase_orders WHERE tenant_id = ? AND id = ?",
            (tenant_id, order_id),
        )
        if not rows:
            raise RecordNotFound(RecordType.PURCHASE_ORDER.value, order_id)
        return StoredPurchaseOrder(**dict(rows[0]))

    def inventory(self, tenant_id: str, at: datetime | None = None) -> list[StoredInventorySnapshot]:
        """Latest snapshot per item, optionally as of `at`"""
        bound = " AND as_of <= ?" if at is not None else ""
        params: tuple = (tenant_id,) + ((to_iso(at),) if at is not None else ())
        sql = f"""
            SELECT {_SNAPSHOT_COLUMNS}
            FROM erp_inventory_snapshots s
            WHERE tenant_id = ?{bound}
              AND as_of = (
                  SELECT MAX(as_of) FROM erp_inventory_snapshots
                  WHERE tenant_id = s.tenant_id AND item_id = s.item_id{bound}
              )
            ORDER BY item_id
        """
        if at is not None:
            params += (to_iso(at),)
        return [StoredInventorySnapshot(**dict(row)) for row in self._rows(sql, params)]

    def list_snapshots(
        self,
        tenant_id: str,
        item_id: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[StoredInventorySnapshot]:
        """Snapshot history, oldest first"""
        sql = f"SELECT {_SNAPSHOT_COLUMNS} FROM erp_inventory_snapshots WHERE tenant_id = ?"
        params: tuple = (tenant_id,)
        if item_id is not None:
            sql += " AND item_id = ?"
            params += (item_id,)
        if since is not None:
            sql += " AND as_of > ?"
            params += (to_iso(since),)
        sql += " ORDER BY as_of, item_id LIMIT ?"
        params += (clamp(limit, DEFAULT_SNAPSHOT_LIMIT, MAX_SNAPSHOT_LIMIT),)
        return [StoredInventorySnapshot(**dict(row)) for row in self._rows(sql, params)]

    def list_items(self, tenant_id: str) -> list[SeenItem]:
        """Distinct items seen in orders or snapshots"""
        rows = self._rows(
            """
            SELECT item_id, MAX(item_name) AS item_name, MAX(unit) AS unit FROM (
                SELECT item_id, item_name, unit FROM erp_purchase_orders WHERE tenant_id = ?
                UNION
                SELECT item_id, item_name, unit FROM erp_inventory_snapshots WHERE tenant_id = ?
            )
            GROUP BY item_id
            ORDER BY item_id
            """,
            (tenant_id, tenant_id),
        )
        return [SeenItem(**dict(row)) for row in rows]
