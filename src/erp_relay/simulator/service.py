"""
SimulatorService - the runnable simulated ERP

Wires the generator, the webhook notifier, the HTTP server and the live
tick timer together, and tears them down in reverse order.
"""

from collections.abc import Sequence

import requests

from erp_relay.kernel.logging import get_logger
from erp_relay.kernel.scheduler import RecurringTimer
from erp_relay.kernel.serving import ServerThread
from erp_relay.kernel.time import TimeProvider
from erp_relay.simulator.catalog import DEFAULT_ITEMS
from erp_relay.simulator.config import SimulatorConfig
from erp_relay.simulator.generator import EventGenerator
from erp_relay.simulator.models import Item, PurchaseOrder
from erp_relay.simulator.notifier import WebhookNotifier
from erp_relay.simulator.policy import ReplenishmentPolicy
from erp_relay.simulator.server import create_simulator_app

logger = get_logger(__name__)


class SimulatorService:
    """
    Simulated ERP process

    Usage:
        service = SimulatorService(SimulatorConfig.from_env())
        address = service.start()
        ...
        service.stop()
    """

    def __init__(
        self,
        config: SimulatorConfig | None = None,
        policy: ReplenishmentPolicy | None = None,
        items: Sequence[Item] = DEFAULT_ITEMS,
        time_provider: TimeProvider | None = None,
        session: requests.Session | None = None,
        static_orders: Sequence[PurchaseOrder] = (),
    ) -> None:
        self.config = config or SimulatorConfig()
        self.notifier = WebhookNotifier(
            session=session,
            timeout_seconds=self.config.webhook_timeout_seconds,
            max_workers=self.config.webhook_workers,
        )
        self.generator = EventGenerator(
            self.config,
            policy=policy,
            items=items,
            time_provider=time_provider,
            notifier=self.notifier,
        )
        self.static_orders = list(static_orders)
        self.app = create_simulator_app(self.generator)
        self.timer: RecurringTimer | None = None
        self.server: ServerThread | None = None

    def start(self) -> str:
        """
        Replay history, start serving, then start live ticks

        Returns:
            The address the HTTP server is listening on
        """
        if self.config.disable_history:
            self.generator.start_fresh()
        else:
            result = self.generator.bootstrap()
            logger.info("History replayed", **result.as_dict())

        if self.static_orders:
            self.generator.publish_orders(self.static_orders, notify=False)

        self.server = ServerThread(self.app, host=self.config.host, port=self.config.port)
        self.server.start()

        if not self.config.disable_generator:
            self.timer = RecurringTimer("erp-sim-tick", self.config.tick_seconds, self.generator.tick)
            self.timer.start()

        logger.info(
            "erp-sim started",
            tenant_id=self.config.tenant_id,
            address=self.server.address,
            tick_seconds=self.config.tick_seconds,
            step_days=self.config.step_days,
            history_months=self.config.history_months,
        )
        return self.server.address

    def stop(self) -> None:
        """Stop ticking (waiting for an in-flight tick), stop serving, drain webhooks"""
        if self.timer is not None:
            self.timer.stop()
            self.timer = None
        if self.server is not None:
            self.server.shutdown()
            self.server = None
        self.notifier.shutdown(wait=True)
        logger.info("erp-sim stopped", tenant_id=self.config.tenant_id)
