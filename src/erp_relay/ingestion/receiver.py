"""
HTTP surface of the extractor.

The webhook receiver (push channel) and the read API downstream
consumers query.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from flask import Flask, jsonify, request
from pydantic import ValidationError

from erp_relay.kernel.errors import PersistenceError, RecordNotFound
from erp_relay.kernel.logging import get_logger, reset_channel, set_channel
from erp_relay.kernel.time import parse_iso
from erp_relay.ingestion.queries import ErpReadService
from erp_relay.ingestion.store import IngestionStore
from erp_relay.simulator.models import PurchaseOrder

logger = get_logger(__name__)

WEBHOOK_PATH = "/webhooks/erp/purchase-order"
CHANNEL = "webhook"


class BadRequest(ValueError):
    pass


def _timestamp_arg(name: str) -> datetime | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso(raw)
    except ValueError as e:
        raise BadRequest(f"invalid {name}: {raw!r}") from e


def _int_arg(name: str) -> int | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise BadRequest(f"invalid {name}: {raw!r}") from e


def create_ingestion_app(
    store: IngestionStore,
    health_details: Callable[[], dict[str, Any]] | None = None,
) -> Flask:
    """
    Build the extractor's Flask app.

    Args:
        store: Idempotent store both the webhook and the read API use
        health_details: Optional extra fields for /health (e.g. watermarks)
    """
    app = Flask("erp-extractor")
    reads = ErpReadService(store)

    @app.errorhandler(BadRequest)
    def bad_request(e: BadRequest) -> tuple[Any, int]:
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(RecordNotFound)
    def not_found(e: RecordNotFound) -> tuple[Any, int]:
        return jsonify({"error": str(e)}), 404

    @app.route("/health", methods=["GET"])
    def health() -> tuple[Any, int]:
        body: dict[str, Any] = {"status": "healthy", "service": "erp-extractor"}
        if health_details is not None:
            body.update(health_details())
        return jsonify(body), 200

    @app.route(WEBHOOK_PATH, methods=["POST"])
    def receive_purchase_order() -> tuple[Any, int]:
        """
        Accept one pushed purchase order.

        Returns 202 for new and duplicate orders, and also when the write
        failed: the poll channel will deliver the order again.
        """
        token = set_channel(CHANNEL)
        try:
            payload = request.get_json(silent=True)
            if not isinstance(payload, dict):
                logger.warning("Webhook body is not a JSON object")
                return jsonify({"error": "expected a purchase order object"}), 400
            try:
                order = PurchaseOrder.model_validate(payload)
            except ValidationError as e:
                logger.warning(
                    "Webhook payload rejected",
                    record_id=payload.get("id"),
                    error_count=e.error_count(),
                )
                details = e.errors(include_url=False, include_context=False, include_input=False)
                return jsonify({"error": "invalid purchase order", "details": details}), 400

            try:
                outcome = store.persist_order(order, channel=CHANNEL)
                logger.debug(
                    "Webhook order stored",
                    tenant_id=order.tenant_id,
                    record_id=order.id,
                    outcome=outcome.value,
                )
            except PersistenceError as e:
                logger.error(
                    "Webhook order persistence failed",
                    tenant_id=order.tenant_id,
                    record_id=order.id,
                    error=str(e.cause),
                )
            return jsonify({"status": "accepted"}), 202
        finally:
            reset_channel(token)

    @app.route("/api/tenants/<tenant_id>/purchase-orders", methods=["GET"])
    def purchase_orders(tenant_id: str) -> tuple[Any, int]:
        orders = reads.list_orders(tenant_id, since=_timestamp_arg("since"), limit=_int_arg("limit"))
        return jsonify({"data": [o.model_dump(mode="json") for o in orders]}), 200

    @app.route("/api/tenants/<tenant_id>/purchase-orders/<order_id>", methods=["GET"])
    def purchase_order(tenant_id: str, order_id: str) -> tuple[Any, int]:
        return jsonify(reads.get_order(tenant_id, order_id).model_dump(mode="json")), 200

    @app.route("/api/tenants/<tenant_id>/inventory", methods=["GET"])
    def inventory(tenant_id: str) -> tuple[Any, int]:
        snapshots = reads.inventory(tenant_id, at=_timestamp_arg("at"))
        return jsonify({"data": [s.model_dump(mode="json") for s in snapshots]}), 200

    @app.route("/api/tenants/<tenant_id>/inventory/snapshots", methods=["GET"])
    def inventory_snapshots(tenant_id: str) -> tuple[Any, int]:
        snapshots = reads.list_snapshots(
            tenant_id,
            item_id=request.args.get("item_id") or None,
            since=_timestamp_arg("since"),
            limit=_int_arg("limit"),
        )
        return jsonify({"data": [s.model_dump(mode="json") for s in snapshots]}), 200

    @app.route("/api/tenants/<tenant_id>/items", methods=["GET"])
    def items(tenant_id: str) -> tuple[Any, int]:
        return jsonify({"data": [i.model_dump(mode="json") for i in reads.list_items(tenant_id)]}), 200

    return app
