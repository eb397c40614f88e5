"""
Ingestion - exactly-once extraction from the ERP

Webhook push and watermark pull deliver overlapping copies of the same
records; the idempotent store keeps one of each.

Fun fact: Two unreliable channels make one reliable pipeline - as long as
the sink can tell a repeat from a new record!
"""

from erp_relay.ingestion.client import SimulatorClient
from erp_relay.ingestion.config import ExtractorConfig
from erp_relay.ingestion.models import BatchResult, IngestOutcome
from erp_relay.ingestion.poller import WatermarkPoller
from erp_relay.ingestion.queries import ErpReadService
from erp_relay.ingestion.service import Extractor
from erp_relay.ingestion.store import IngestionStore

__all__ = [
    "Extractor",
    "ExtractorConfig",
    "IngestionStore",
    "IngestOutcome",
    "BatchResult",
    "ErpReadService",
    "SimulatorClient",
    "WatermarkPoller",
]
