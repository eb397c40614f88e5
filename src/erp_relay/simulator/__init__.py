"""
Simulator - a fake ERP that behaves like a real one

Virtual clock, inventory, replenishment-driven purchase orders with a
status lifecycle, webhook fan-out and an incremental query API.
"""

from erp_relay.simulator.config import SimulatorConfig
from erp_relay.simulator.generator import EventGenerator, SimulatorState, StepResult
from erp_relay.simulator.models import (
    InventorySnapshot,
    Item,
    PendingDelivery,
    PurchaseOrder,
    PurchaseOrderStatus,
    RecordType,
)
from erp_relay.simulator.policy import ReplenishmentPolicy
from erp_relay.simulator.service import SimulatorService

__all__ = [
    "EventGenerator",
    "SimulatorState",
    "StepResult",
    "SimulatorConfig",
    "SimulatorService",
    "ReplenishmentPolicy",
    "Item",
    "PurchaseOrder",
    "PurchaseOrderStatus",
    "InventorySnapshot",
    "PendingDelivery",
    "RecordType",
]
