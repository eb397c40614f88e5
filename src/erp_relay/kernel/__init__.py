"""
Kernel - shared infrastructure for the simulator and the extractor

Time (real, test and virtual clocks), identifiers, the error hierarchy,
structured logging, metrics, retry and the timer/HTTP plumbing both
services run on.
"""

from erp_relay.kernel.errors import (
    ErpRelayError,
    IngestionError,
    PersistenceError,
    RecordNotFound,
    SimulatorError,
    StorageUnavailable,
    TenantNotFound,
    UpstreamError,
)
from erp_relay.kernel.ids import IdFactory, SeededIdFactory, generate_id
from erp_relay.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider, VirtualClock

__all__ = [
    # IDs
    "IdFactory",
    "SeededIdFactory",
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    "VirtualClock",
    # Errors
    "ErpRelayError",
    "SimulatorError",
    "TenantNotFound",
    "IngestionError",
    "UpstreamError",
    "PersistenceError",
    "StorageUnavailable",
    "RecordNotFound",
]
