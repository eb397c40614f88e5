"""
IngestionStore - idempotent persistence for ERP records

Both delivery channels (webhook push and watermark pull) write through
this one interface. Exactly-once is enforced by the database, not by the
callers:
- raw_erp_records: append-only log, UNIQUE(tenant_id, record_type, record_id)
- erp_purchase_orders: structured view keyed by order id
- erp_inventory_snapshots: structured view keyed by (tenant_id, item_id, as_of)

Every record is written in its own transaction. A failure rolls back that
record only; the caller logs it and moves on.

Fun fact: The same order usually arrives twice - once by webhook within
milliseconds, once by the next poll. The UNIQUE constraint quietly eats the
second copy, so neither channel needs to know about the other!
"""

import json
import sqlite3
from collections.abc import Callable, Iterable, Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from erp_relay.kernel.errors import PersistenceError, StorageUnavailable
from erp_relay.kernel.logging import get_logger
from erp_relay.kernel.metrics import records_ingested_total
from erp_relay.kernel.retry import retry_on_sqlite_lock
from erp_relay.kernel.time import RealTimeProvider, TimeProvider, parse_iso, to_iso
from erp_relay.ingestion.models import BatchResult, IngestOutcome
from erp_relay.simulator.models import InventorySnapshot, PurchaseOrder, RecordType

logger = get_logger(__name__)

BUSY_TIMEOUT_SECONDS = 5.0


class IngestionStore:
    """
    SQLite-backed raw log + structured tables + pull watermarks

    WAL mode lets the read API run alongside the webhook and poll writers;
    writers serialize on BEGIN IMMEDIATE and retry briefly on lock contention.
    """

    def __init__(self, db_path: str | Path, time_provider: TimeProvider | None = None) -> None:
        """
        Open (and if needed create) the store

        Raises:
            StorageUnavailable: If the database cannot be opened or migrated
        """
        self.db_path = Path(db_path)
        self.time_provider = time_provider or RealTimeProvider()
        try:
            self._initialize_schema()
        except sqlite3.Error as e:
            raise StorageUnavailable(str(self.db_path), e) from e

    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS raw_erp_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    record_type TEXT NOT NULL,
                    record_id TEXT NOT NULL,
                    payload_json TEXT NOT NULL,
                    recorded_at TEXT NOT NULL,

                    UNIQUE(tenant_id, record_type, record_id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS erp_purchase_orders (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    item_id TEXT NOT NULL,
                    item_name TEXT NOT NULL,
                    quantity REAL NOT NULL,
                    unit TEXT NOT NULL,
                    unit_price REAL NOT NULL,
                    currency TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    delivery_at TEXT NOT NULL,
                    raw_record_id INTEGER NOT NULL REFERENCES raw_erp_records(id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS erp_inventory_snapshots (
                    tenant_id TEXT NOT NULL,
                    item_id TEXT NOT NULL,
                    as_of TEXT NOT NULL,
                    snapshot_id TEXT NOT NULL,
                    item_name TEXT NOT NULL,
                    on_hand REAL NOT NULL,
                    unit TEXT NOT NULL,
                    raw_record_id INTEGER NOT NULL REFERENCES raw_erp_records(id),

                    PRIMARY KEY (tenant_id, item_id, as_of)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS ingest_watermarks (
                    tenant_id TEXT NOT NULL,
                    record_type TEXT NOT NULL,
                    watermark TEXT NOT NULL,
                    updated_at TEXT NOT NULL,

                    PRIMARY KEY (tenant_id, record_type)
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_orders_tenant_created "
                "ON erp_purchase_orders(tenant_id, created_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_snapshots_tenant_asof "
                "ON erp_inventory_snapshots(tenant_id, as_of)"
            )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        One connection per operation, autocommit mode

        Transactions are opened explicitly (BEGIN IMMEDIATE) by the writers.
        """
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=BUSY_TIMEOUT_SECONDS,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def connect(self) -> AbstractContextManager[sqlite3.Connection]:
        """Read connection for query services sharing this store"""
        return self._connect()

    def ping(self) -> None:
        """
        Check the store is reachable

        Raises:
            StorageUnavailable: If a trivial query fails
        """
        try:
            with self._connect() as conn:
                conn.execute("SELECT 1 FROM raw_erp_records LIMIT 1").fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailable(str(self.db_path), e) from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def persist_order(self, order: PurchaseOrder, channel: str = "") -> IngestOutcome:
        """
        Persist one purchase order exactly once

        Returns:
            INSERTED on first sight, DUPLICATE if the raw log already had it

        Raises:
            PersistenceError: If the transaction failed (and was rolled back)
        """
        payload = order.model_dump(mode="json")
        structured = (
            """
            INSERT INTO erp_purchase_orders (
                id, tenant_id, item_id, item_name, quantity, unit, unit_price,
                currency, status, created_at, delivery_at, raw_record_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO NOTHING
            """,
            (
                order.id,
                order.tenant_id,
                order.item_id,
                order.item_name,
                order.quantity,
                order.unit,
                order.unit_price,
                order.currency,
                order.status.value,
                to_iso(order.created_at),
                to_iso(order.delivery_at),
            ),
        )
        return self._persist(
            order.tenant_id, RecordType.PURCHASE_ORDER, order.id, payload, structured, channel
        )

    def persist_snapshot(self, snapshot: InventorySnapshot, channel: str = "") -> IngestOutcome:
        """Persist one inventory snapshot exactly once (see persist_order)"""
        payload = snapshot.model_dump(mode="json")
        structured = (
            """
            INSERT OR IGNORE INTO erp_inventory_snapshots (
                tenant_id, item_id, as_of, snapshot_id, item_name, on_hand, unit, raw_record_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                snapshot.tenant_id,
                snapshot.item_id,
                to_iso(snapshot.as_of),
                snapshot.id,
                snapshot.item_name,
                snapshot.on_hand,
                snapshot.unit,
            ),
        )
        return self._persist(
            snapshot.tenant_id,
            RecordType.INVENTORY_SNAPSHOT,
            snapshot.id,
            payload,
            structured,
            channel,
        )

    def _persist(
        self,
        tenant_id: str,
        record_type: RecordType,
        record_id: str,
        payload: dict,
        structured: tuple[str, tuple],
        channel: str,
    ) -> IngestOutcome:
        try:
            outcome = self._write_record(tenant_id, record_type, record_id, payload, structured)
        except Exception as e:
            records_ingested_total.labels(
                record_type=record_type.value, channel=channel, outcome=IngestOutcome.FAILED.value
            ).inc()
            raise PersistenceError(record_type.value, record_id, e) from e

        records_ingested_total.labels(
            record_type=record_type.value, channel=channel, outcome=outcome.value
        ).inc()
        return outcome

    @retry_on_sqlite_lock()
    def _write_record(
        self,
        tenant_id: str,
        record_type: RecordType,
        record_id: str,
        payload: dict,
        structured: tuple[str, tuple],
    ) -> IngestOutcome:
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO raw_erp_records (tenant_id, record_type, record_id, payload_json, recorded_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(tenant_id, record_type, record_id) DO NOTHING
                    """,
                    (
                        tenant_id,
                        record_type.value,
                        record_id,
                        json.dumps(payload, sort_keys=True),
                        to_iso(self.time_provider.now()),
                    ),
                )
                inserted = cursor.rowcount == 1

                # Resolve the raw row whether it was just written or already there
                row = conn.execute(
                    "SELECT id FROM raw_erp_records WHERE tenant_id = ? AND record_type = ? AND record_id = ?",
                    (tenant_id, record_type.value, record_id),
                ).fetchone()
                raw_record_id = row["id"]

                sql, params = structured
                conn.execute(sql, params + (raw_record_id,))
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

        return IngestOutcome.INSERTED if inserted else IngestOutcome.DUPLICATE

    def store_orders(self, orders: Iterable[PurchaseOrder], channel: str = "") -> BatchResult:
        """Persist a batch of orders; a failing record is logged and skipped"""
        result = BatchResult()
        for order in orders:
            result.record(self._store_one(self.persist_order, order, order.tenant_id, order.id, channel), order.id)
        return result

    def store_snapshots(self, snapshots: Iterable[InventorySnapshot], channel: str = "") -> BatchResult:
        """Persist a batch of snapshots; a failing record is logged and skipped"""
        result = BatchResult()
        for snapshot in snapshots:
            result.record(
                self._store_one(self.persist_snapshot, snapshot, snapshot.tenant_id, snapshot.id, channel),
                snapshot.id,
            )
        return result

    def _store_one(
        self,
        persist: Callable[[Any, str], IngestOutcome],
        record: PurchaseOrder | InventorySnapshot,
        tenant_id: str,
        record_id: str,
        channel: str,
    ) -> IngestOutcome:
        try:
            return persist(record, channel)
        except PersistenceError as e:
            logger.error(
                "Record persistence failed",
                tenant_id=tenant_id,
                record_type=e.record_type,
                record_id=record_id,
                channel=channel,
                error=str(e.cause),
            )
            return IngestOutcome.FAILED

    # ------------------------------------------------------------------
    # Watermarks
    # ------------------------------------------------------------------

    def load_watermark(self, tenant_id: str, record_type: RecordType) -> datetime | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT watermark FROM ingest_watermarks WHERE tenant_id = ? AND record_type = ?",
                (tenant_id, record_type.value),
            ).fetchone()
        return parse_iso(row["watermark"]) if row else None

    @retry_on_sqlite_lock()
    def save_watermark(self, tenant_id: str, record_type: RecordType, watermark: datetime) -> None:
        """Persist a watermark; a stored later value is never overwritten"""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO ingest_watermarks (tenant_id, record_type, watermark, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(tenant_id, record_type) DO UPDATE SET
                    watermark = MAX(watermark, excluded.watermark),
                    updated_at = excluded.updated_at
                """,
                (tenant_id, record_type.value, to_iso(watermark), to_iso(self.time_provider.now())),
            )

    def watermarks(self, tenant_id: str) -> dict[str, str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT record_type, watermark FROM ingest_watermarks WHERE tenant_id = ?",
                (tenant_id,),
            ).fetchall()
        return {row["record_type"]: row["watermark"] for row in rows}

    def count_raw(self, tenant_id: str, record_type: RecordType | None = None) -> int:
        with self._connect() as conn:
            if record_type is None:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM raw_erp_records WHERE tenant_id = ?", (tenant_id,)
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM raw_erp_records WHERE tenant_id = ? AND record_type = ?",
                    (tenant_id, record_type.value),
                ).fetchone()
        return row["n"]
