"""
Simulated ERP domain models

Items (static catalog), purchase orders with their status lifecycle,
inventory readouts, and the deliveries still in transit between the two.

These are also the wire models: the simulator serializes them with
model_dump(mode="json") and the extractor validates inbound payloads with them.

Fun fact: "Days of cover" is how procurement teams talk about stock - nobody
asks how many pounds of sugar are in the silo, they ask how many days it lasts!
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from erp_relay.kernel.errors import InvalidStatusTransition
from erp_relay.kernel.time import ensure_utc


class PurchaseOrderStatus(str, Enum):
    """
    Purchase order lifecycle states

    Finite state machine (monotonic, never backwards):
    IN_APPROVAL → EXECUTED → SUPPLIED
         └──────────────────────↑  (supply can skip execution)
    """

    IN_APPROVAL = "in_approval"
    EXECUTED = "executed"
    SUPPLIED = "supplied"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self is PurchaseOrderStatus.SUPPLIED


_STATUS_ORDER = [
    PurchaseOrderStatus.IN_APPROVAL,
    PurchaseOrderStatus.EXECUTED,
    PurchaseOrderStatus.SUPPLIED,
]


class RecordType(str, Enum):
    """Record types in the raw log (part of the dedup key)"""

    PURCHASE_ORDER = "purchase_order"
    INVENTORY_SNAPSHOT = "inventory_snapshot"


class Item(BaseModel):
    """Tracked commodity - loaded once at startup, immutable during a run"""

    item_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    unit: str = Field(..., min_length=1)
    base_price: float = Field(..., gt=0, description="Base unit price in the run currency")
    daily_rate: float = Field(default=0.0, ge=0, description="Units consumed per simulated day")
    initial_on_hand: float = Field(default=1000.0, ge=0)

    model_config = {"frozen": True}


class PurchaseOrder(BaseModel):
    """
    Purchase order emitted by the simulated ERP

    Created once by the replenishment policy. `status` is the only field
    that changes afterwards, and only through advance_status().
    """

    id: str = Field(..., min_length=1, description="Globally unique, stable for the order's lifetime")
    tenant_id: str = Field(..., min_length=1)
    item_id: str = Field(..., min_length=1)
    item_name: str
    quantity: float = Field(..., gt=0)
    unit: str
    unit_price: float = Field(..., gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    created_at: datetime
    delivery_at: datetime
    status: PurchaseOrderStatus = PurchaseOrderStatus.IN_APPROVAL

    model_config = {
        "validate_assignment": True,
        "json_schema_extra": {
            "examples": [
                {
                    "id": "5f0c6c1e-8a4f-4d7a-9a55-3c1f0e2b9d10",
                    "tenant_id": "00000000-0000-0000-0000-000000000001",
                    "item_id": "sugar",
                    "item_name": "Sugar #11",
                    "quantity": 10800.0,
                    "unit": "lb",
                    "unit_price": 0.4512,
                    "currency": "USD",
                    "created_at": "2025-01-06T00:00:00Z",
                    "delivery_at": "2025-02-05T00:00:00Z",
                    "status": "in_approval",
                }
            ]
        },
    }

    @field_validator("created_at", "delivery_at")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_delivery_after_creation(self) -> "PurchaseOrder":
        if self.delivery_at <= self.created_at:
            raise ValueError(
                f"delivery_at {self.delivery_at.isoformat()} must be after "
                f"created_at {self.created_at.isoformat()}"
            )
        return self

    def advance_status(self, new_status: PurchaseOrderStatus) -> bool:
        """
        Move the order forward in its lifecycle

        Returns:
            True if the status changed, False if it was already there

        Raises:
            InvalidStatusTransition: If the move would go backwards
        """
        if new_status == self.status:
            return False
        if new_status.rank < self.status.rank:
            raise InvalidStatusTransition(self.id, self.status.value, new_status.value)
        self.status = new_status
        return True


class InventorySnapshot(BaseModel):
    """On-hand readout of one item at one simulated instant (immutable)"""

    id: str = Field(..., description="Derived id: inv_<item_id>_<as_of>")
    tenant_id: str = Field(..., min_length=1)
    item_id: str = Field(..., min_length=1)
    item_name: str
    on_hand: float = Field(..., ge=0)
    unit: str
    as_of: datetime

    model_config = {"frozen": True}

    @field_validator("as_of")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def natural_key(self) -> tuple[str, str, datetime]:
        return (self.tenant_id, self.item_id, self.as_of)


class PendingDelivery(BaseModel):
    """
    Quantity in transit for one order

    Exists from order creation until the clock reaches delivery_at, when it
    is applied to on-hand inventory exactly once and discarded.
    """

    item_id: str
    quantity: float = Field(..., gt=0)
    delivery_at: datetime
    purchase_order_id: str

    model_config = {"frozen": True}


class Subscription(BaseModel):
    """Webhook subscriber (membership only, never removed)"""

    callback_url: str

    @field_validator("callback_url")
    @classmethod
    def validate_callback_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("callback_url must be an http(s) URL")
        return v
