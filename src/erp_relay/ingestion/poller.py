"""
WatermarkPoller - the pull channel

Each cycle asks the simulator for records newer than the watermark, hands
them to the store, and only then moves the watermark to the newest
timestamp seen. Orders and inventory snapshots keep separate watermarks.

A crash between storing and advancing just means the next cycle re-reads
the same page; the store turns the repeats into duplicates.
"""

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from erp_relay.kernel.errors import UpstreamError
from erp_relay.kernel.logging import LogOperation, get_logger, reset_channel, set_channel
from erp_relay.kernel.metrics import poll_cycles_total, watermark_timestamp_seconds
from erp_relay.ingestion.client import SimulatorClient
from erp_relay.ingestion.models import BatchResult
from erp_relay.ingestion.store import IngestionStore
from erp_relay.simulator.models import InventorySnapshot, PurchaseOrder, RecordType

logger = get_logger(__name__)

CHANNEL = "poll"


class WatermarkPoller:
    """
    Incremental puller for one tenant

    Watermarks are loaded from the store on first use and persisted after
    every advance, so a restarted extractor resumes where it left off.
    """

    def __init__(
        self,
        client: SimulatorClient,
        store: IngestionStore,
        tenant_id: str,
        batch_limit: int | None = 1000,
        overlap_seconds: float = 1.0,
    ) -> None:
        self.client = client
        self.store = store
        self.tenant_id = tenant_id
        self.batch_limit = batch_limit
        self.overlap = timedelta(seconds=overlap_seconds)
        self._watermarks: dict[RecordType, datetime | None] | None = None

    def watermark(self, record_type: RecordType) -> datetime | None:
        return self._loaded()[record_type]

    def _loaded(self) -> dict[RecordType, datetime | None]:
        if self._watermarks is None:
            self._watermarks = {
                record_type: self.store.load_watermark(self.tenant_id, record_type)
                for record_type in RecordType
            }
        return self._watermarks

    def poll_once(self) -> dict[RecordType, BatchResult | None]:
        """
        One pull cycle over both record types

        Returns:
            Per record type, the batch result, or None when the fetch failed
        """
        token = set_channel(CHANNEL)
        try:
            with LogOperation(logger, "poll_cycle", tenant_id=self.tenant_id) as op:
                results = {
                    RecordType.PURCHASE_ORDER: self._poll(
                        RecordType.PURCHASE_ORDER,
                        self.client.fetch_orders,
                        self.store.store_orders,
                        lambda o: o.created_at,
                    ),
                    RecordType.INVENTORY_SNAPSHOT: self._poll(
                        RecordType.INVENTORY_SNAPSHOT,
                        self.client.fetch_snapshots,
                        self.store.store_snapshots,
                        lambda s: s.as_of,
                    ),
                }
                op.add(
                    **{
                        f"{record_type.value}_inserted": result.inserted
                        for record_type, result in results.items()
                        if result is not None
                    }
                )
            return results
        finally:
            reset_channel(token)

    def _poll(
        self,
        record_type: RecordType,
        fetch: Callable[..., Sequence[PurchaseOrder] | Sequence[InventorySnapshot]],
        store: Callable[..., BatchResult],
        timestamp_of: Callable[..., datetime],
    ) -> BatchResult | None:
        watermark = self.watermark(record_type)
        since = watermark - self.overlap if watermark is not None else None

        try:
            records = fetch(since=since, limit=self.batch_limit)
        except UpstreamError as e:
            poll_cycles_total.labels(record_type=record_type.value, outcome="upstream_error").inc()
            logger.warning(
                "Poll fetch failed, watermark unchanged",
                tenant_id=self.tenant_id,
                record_type=record_type.value,
                watermark=watermark.isoformat() if watermark else None,
                status_code=e.status_code,
                error=str(e),
            )
            return None

        result = store(records, channel=CHANNEL)
        poll_cycles_total.labels(record_type=record_type.value, outcome="ok").inc()

        if records:
            newest = max(timestamp_of(r) for r in records)
            if watermark is None or newest > watermark:
                self._advance(record_type, newest)
            elif self.batch_limit is not None and len(records) >= self.batch_limit:
                # The overlap window alone filled the page; raise batch_limit to get past it
                logger.warning(
                    "Poll page full without progress",
                    tenant_id=self.tenant_id,
                    record_type=record_type.value,
                    watermark=watermark.isoformat(),
                    batch_limit=self.batch_limit,
                )
        return result

    def _advance(self, record_type: RecordType, watermark: datetime) -> None:
        self._loaded()[record_type] = watermark
        watermark_timestamp_seconds.labels(
            tenant_id=self.tenant_id, record_type=record_type.value
        ).set(watermark.timestamp())
        try:
            self.store.save_watermark(self.tenant_id, record_type, watermark)
        except Exception:
            # In-memory watermark still advances; a restart re-reads from the stored one
            logger.exception(
                "Watermark persistence failed",
                tenant_id=self.tenant_id,
                record_type=record_type.value,
                watermark=watermark.isoformat(),
            )
