"""
HTTP surface of the simulated ERP.

Read endpoints for incremental pulls, a subscription endpoint for webhook
push, and a health endpoint reporting the virtual clock.
"""

from datetime import datetime
from typing import Any

from flask import Flask, jsonify, request

from erp_relay.kernel.errors import InvalidSubscription, TenantNotFound
from erp_relay.kernel.logging import get_logger
from erp_relay.kernel.time import parse_iso
from erp_relay.simulator.generator import EventGenerator
from erp_relay.simulator.queries import inventory_at, list_orders, list_snapshots

logger = get_logger(__name__)


class BadRequest(ValueError):
    pass


def _query_timestamp(name: str) -> datetime | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return parse_iso(raw)
    except ValueError as e:
        raise BadRequest(f"invalid {name}: {raw!r}") from e


def _query_limit() -> int | None:
    raw = request.args.get("limit")
    if raw is None or raw == "":
        return None
    try:
        limit = int(raw)
    except ValueError as e:
        raise BadRequest(f"invalid limit: {raw!r}") from e
    if limit < 1:
        raise BadRequest(f"invalid limit: {raw!r}")
    return limit


def create_simulator_app(generator: EventGenerator) -> Flask:
    """
    Build the Flask app serving one generator.

    Args:
        generator: The simulated ERP whose state the routes expose
    """
    app = Flask("erp-sim")

    @app.errorhandler(TenantNotFound)
    def tenant_not_found(e: TenantNotFound) -> tuple[Any, int]:
        return jsonify({"error": "tenant not found", "tenant_id": e.tenant_id}), 404

    @app.errorhandler(InvalidSubscription)
    def invalid_subscription(e: InvalidSubscription) -> tuple[Any, int]:
        return jsonify({"error": "callback_url required (http or https)"}), 400

    @app.errorhandler(BadRequest)
    def bad_request(e: BadRequest) -> tuple[Any, int]:
        logger.warning("Rejected query", path=request.path, error=str(e))
        return jsonify({"error": str(e)}), 400

    @app.route("/health", methods=["GET"])
    def health() -> tuple[Any, int]:
        return jsonify({"status": "healthy", "service": "erp-sim", **generator.health()}), 200

    @app.route("/erp/<tenant_id>/purchase-orders", methods=["GET"])
    def purchase_orders(tenant_id: str) -> tuple[Any, int]:
        generator.require_tenant(tenant_id)
        since = _query_timestamp("since")
        limit = _query_limit()
        orders = list_orders(generator.orders(), since=since, limit=limit)
        return jsonify({"data": [o.model_dump(mode="json") for o in orders]}), 200

    @app.route("/erp/<tenant_id>/inventory", methods=["GET"])
    def inventory(tenant_id: str) -> tuple[Any, int]:
        """
        Incremental snapshots (?since=&limit=) or a point-in-time view (?at=)
        """
        generator.require_tenant(tenant_id)
        at = _query_timestamp("at")
        if at is not None:
            snapshots = inventory_at(generator.snapshots(), at)
        else:
            snapshots = list_snapshots(
                generator.snapshots(), since=_query_timestamp("since"), limit=_query_limit()
            )
        return jsonify({"data": [s.model_dump(mode="json") for s in snapshots]}), 200

    @app.route("/erp/<tenant_id>/subscriptions", methods=["POST"])
    def subscriptions(tenant_id: str) -> tuple[Any, int]:
        generator.require_tenant(tenant_id)
        body = request.get_json(silent=True) or {}
        if not isinstance(body, dict):
            raise InvalidSubscription(None)
        callback_url = body.get("callback_url")
        if callback_url is not None and not isinstance(callback_url, str):
            raise InvalidSubscription(None)
        added = generator.subscribe(callback_url)
        return jsonify({"status": "ok", "added": added}), 200

    return app
