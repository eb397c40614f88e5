"""
Custom exceptions for erp-relay

One hierarchy for both halves of the system: the simulated ERP raises
lookup/validation errors at its HTTP surface, the ingestion side raises
upstream and persistence errors that callers log and survive.
"""


class ErpRelayError(Exception):
    """Base exception for all erp-relay errors"""

    pass


# Simulator errors


class SimulatorError(ErpRelayError):
    """Base class for simulated-ERP errors"""

    pass


class TenantNotFound(SimulatorError):
    """Raised when a request names a tenant the simulator does not own"""

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id
        super().__init__(f"Tenant {tenant_id} not found")


class InvalidSubscription(SimulatorError):
    """Raised when a subscription callback address is missing or not http(s)"""

    def __init__(self, callback_url: str | None) -> None:
        self.callback_url = callback_url
        super().__init__(f"Invalid callback URL: {callback_url!r}")


class InvalidStatusTransition(SimulatorError):
    """
    Raised when an order status would move backwards

    Lifecycle is monotonic: in_approval -> executed -> supplied.
    """

    def __init__(self, order_id: str, current: str, requested: str) -> None:
        self.order_id = order_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Order {order_id} cannot move from {current} to {requested}"
        )


# Ingestion errors


class IngestionError(ErpRelayError):
    """Base class for extraction-side errors"""

    pass


class UpstreamError(IngestionError):
    """Raised when the simulator is unreachable or answers with non-2xx"""

    def __init__(self, operation: str, status_code: int | None = None, detail: str = "") -> None:
        self.operation = operation
        self.status_code = status_code
        self.detail = detail
        status = f"status {status_code}" if status_code is not None else "no response"
        super().__init__(f"Upstream {operation} failed ({status}) {detail}".strip())


class PersistenceError(IngestionError):
    """Raised when a single record could not be written (transaction rolled back)"""

    def __init__(self, record_type: str, record_id: str, cause: Exception) -> None:
        self.record_type = record_type
        self.record_id = record_id
        self.cause = cause
        super().__init__(f"Failed to persist {record_type} {record_id}: {cause}")


class StorageUnavailable(IngestionError):
    """Raised at startup when the store cannot be opened at all"""

    def __init__(self, location: str, cause: Exception) -> None:
        self.location = location
        self.cause = cause
        super().__init__(f"Storage unavailable at {location}: {cause}")


class RecordNotFound(IngestionError):
    """Raised by the read surface when a record does not exist"""

    def __init__(self, record_type: str, record_id: str) -> None:
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} {record_id} not found")
