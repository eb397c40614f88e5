"""
Extractor - the runnable ingestion service

Startup order:
1. Open the store (fatal if unreachable)
2. Start the HTTP server (webhook receiver + read API)
3. Register the webhook callback with the simulator (non-fatal)
4. Start the poll timer

Push and pull run independently; either can be down while the other keeps
the store current.
"""

from typing import Any

import requests

from erp_relay.kernel.errors import UpstreamError
from erp_relay.kernel.logging import get_logger
from erp_relay.kernel.scheduler import RecurringTimer
from erp_relay.kernel.serving import ServerThread
from erp_relay.ingestion.client import SimulatorClient
from erp_relay.ingestion.config import ExtractorConfig
from erp_relay.ingestion.poller import WatermarkPoller
from erp_relay.ingestion.receiver import WEBHOOK_PATH, create_ingestion_app
from erp_relay.ingestion.store import IngestionStore

logger = get_logger(__name__)


class Extractor:
    """
    Dual-channel ingestion for one tenant

    Usage:
        extractor = Extractor(ExtractorConfig.from_env())
        extractor.start()
        ...
        extractor.stop()
    """

    def __init__(
        self,
        config: ExtractorConfig | None = None,
        store: IngestionStore | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """
        Raises:
            StorageUnavailable: If the store cannot be opened
        """
        self.config = config or ExtractorConfig()
        self.store = store or IngestionStore(self.config.db_path)
        self.client = SimulatorClient(
            self.config.simulator_url,
            self.config.tenant_id,
            session=session,
            timeout_seconds=self.config.request_timeout_seconds,
        )
        self.poller = WatermarkPoller(
            self.client,
            self.store,
            self.config.tenant_id,
            batch_limit=self.config.batch_limit,
            overlap_seconds=self.config.poll_overlap_seconds,
        )
        self.app = create_ingestion_app(self.store, health_details=self.health)
        self.server: ServerThread | None = None
        self.timer: RecurringTimer | None = None

    def health(self) -> dict[str, Any]:
        return {
            "tenant_id": self.config.tenant_id,
            "watermarks": self.store.watermarks(self.config.tenant_id),
            "raw_records": self.store.count_raw(self.config.tenant_id),
        }

    def callback_url(self) -> str:
        """Webhook address to register; falls back to the bound address"""
        base = self.config.public_url
        if not base:
            base = self.server.address if self.server is not None else f"http://127.0.0.1:{self.config.port}"
        return f"{base}{WEBHOOK_PATH}"

    def register(self) -> bool:
        """
        Subscribe to the simulator's webhooks

        Returns:
            True if registered; failure is logged and polling carries on alone
        """
        callback_url = self.callback_url()
        try:
            self.client.subscribe(callback_url)
        except UpstreamError as e:
            logger.warning(
                "Webhook registration failed, relying on polling",
                tenant_id=self.config.tenant_id,
                callback_url=callback_url,
                error=str(e),
            )
            return False
        logger.info("Webhook registered", tenant_id=self.config.tenant_id, callback_url=callback_url)
        return True

    def start(self) -> str:
        """
        Returns:
            The address the HTTP server is listening on

        Raises:
            StorageUnavailable: If the store stopped answering
        """
        self.store.ping()

        self.server = ServerThread(self.app, host=self.config.host, port=self.config.port)
        self.server.start()

        self.register()

        self.timer = RecurringTimer(
            "erp-extractor-poll",
            self.config.poll_seconds,
            self.poller.poll_once,
            run_immediately=True,
        )
        self.timer.start()

        logger.info(
            "erp-extractor started",
            tenant_id=self.config.tenant_id,
            address=self.server.address,
            simulator_url=self.config.simulator_url,
            poll_seconds=self.config.poll_seconds,
        )
        return self.server.address

    def stop(self) -> None:
        """Stop polling (waiting for an in-flight cycle), then stop serving"""
        if self.timer is not None:
            self.timer.stop()
            self.timer = None
        if self.server is not None:
            self.server.shutdown()
            self.server = None
        logger.info("erp-extractor stopped", tenant_id=self.config.tenant_id)
