"""
Ingestion read models and write outcomes

The structured tables are exposed as SQLModel read models - the shape a
downstream consumer sees, independent of the simulator's wire models.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field
from sqlmodel import SQLModel


class IngestOutcome(str, Enum):
    """What happened to one record handed to the store"""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class BatchResult(BaseModel):
    """Per-outcome counts for one batch (a poll page or a single webhook)"""

    inserted: int = 0
    duplicate: int = 0
    failed: int = 0
    failed_ids: list[str] = Field(default_factory=list)

    def record(self, outcome: IngestOutcome, record_id: str) -> None:
        if outcome is IngestOutcome.INSERTED:
            self.inserted += 1
        elif outcome is IngestOutcome.DUPLICATE:
            self.duplicate += 1
        else:
            self.failed += 1
            self.failed_ids.append(record_id)

    @property
    def total(self) -> int:
        return self.inserted + self.duplicate + self.failed


# Projection models (for read-side queries)


class StoredPurchaseOrder(SQLModel):
    """
    Read model for purchase order queries

    Status is the one seen on first ingestion. Later status changes for
    the same order are dropped: both the raw log and this table keep the
    first copy only.
    """

    id: str
    tenant_id: str
    item_id: str
    item_name: str
    quantity: float
    unit: str
    unit_price: float
    currency: str
    status: str
    created_at: datetime
    delivery_at: datetime
    raw_record_id: int


class StoredInventorySnapshot(SQLModel):
    """Read model for inventory readouts"""

    snapshot_id: str
    tenant_id: str
    item_id: str
    item_name: str
    on_hand: float
    unit: str
    as_of: datetime
    raw_record_id: int


class SeenItem(SQLModel):
    """Item observed in any ingested record"""

    item_id: str
    item_name: str
    unit: str

