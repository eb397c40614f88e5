"""
Notification fan-out - push new orders to every webhook subscriber

Each (order, subscriber) pair is one independent POST on a thread pool.
Failures are logged and counted, never retried and never raised: the
extractor's poll loop is the recovery path for a missed push.
"""

import threading
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor

import requests

from erp_relay.kernel.logging import get_logger
from erp_relay.kernel.metrics import webhook_deliveries_total
from erp_relay.simulator.models import PurchaseOrder

logger = get_logger(__name__)


class WebhookNotifier:
    """
    Fire-and-forget webhook delivery

    Args:
        session: requests-compatible session (anything with .post). Without
            one, each worker thread opens its own requests.Session
        timeout_seconds: Per-request timeout
        max_workers: Size of the delivery pool
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout_seconds: float = 5.0,
        max_workers: int = 8,
    ) -> None:
        self.session = session
        self._local = threading.local()
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="webhook")

    def notify(self, order: PurchaseOrder, subscribers: Iterable[str]) -> list[Future[bool]]:
        """
        Schedule one delivery per subscriber and return without waiting

        Returns:
            Futures resolving to True when the subscriber answered 2xx
        """
        payload = order.model_dump(mode="json")
        return [
            self._executor.submit(self._deliver, url, payload, order.id)
            for url in subscribers
        ]

    def _session(self):
        if self.session is not None:
            return self.session
        if not hasattr(self._local, "session"):
            self._local.session = requests.Session()
        return self._local.session

    def _deliver(self, url: str, payload: dict, order_id: str) -> bool:
        try:
            response = self._session().post(url, json=payload, timeout=self.timeout_seconds)
        except requests.RequestException as e:
            webhook_deliveries_total.labels(outcome="error").inc()
            logger.warning("Webhook delivery failed", url=url, order_id=order_id, error=str(e))
            return False
        except Exception:
            webhook_deliveries_total.labels(outcome="error").inc()
            logger.exception("Webhook delivery crashed", url=url, order_id=order_id)
            return False

        if not 200 <= response.status_code < 300:
            webhook_deliveries_total.labels(outcome="rejected").inc()
            logger.warning(
                "Webhook rejected",
                url=url,
                order_id=order_id,
                status_code=response.status_code,
            )
            return False

        webhook_deliveries_total.labels(outcome="delivered").inc()
        logger.debug("Webhook delivered", url=url, order_id=order_id)
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting deliveries and drain the ones already queued"""
        self._executor.shutdown(wait=wait)
