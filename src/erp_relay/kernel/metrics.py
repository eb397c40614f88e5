"""
Prometheus metrics collection for erp-relay.

Counters for what the simulator emits and what the extractor lands, so a
dashboard can show the push/pull overlap directly (duplicates per channel).
"""

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============================================================================
# Simulator Metrics
# ============================================================================

simulator_ticks_total = Counter(
    "erp_sim_ticks_total",
    "Total number of simulation steps executed",
    ["mode"],  # mode: bootstrap, live
)

simulator_tick_duration_seconds = Histogram(
    "erp_sim_tick_duration_seconds",
    "Duration of a live simulation step in seconds",
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
)

orders_created_total = Counter(
    "erp_sim_orders_created_total",
    "Total number of purchase orders created by the replenishment policy",
    ["item_id", "trigger"],  # trigger: cadence, safety_stock, static
)

step_item_failures_total = Counter(
    "erp_sim_step_item_failures_total",
    "Per-item failures caught and skipped during a step",
    ["stage"],
)

webhook_deliveries_total = Counter(
    "erp_sim_webhook_deliveries_total",
    "Outbound webhook delivery attempts",
    ["outcome"],  # outcome: delivered, rejected, error
)

# ============================================================================
# Ingestion Metrics
# ============================================================================

records_ingested_total = Counter(
    "erp_ingest_records_total",
    "Records handed to the idempotent store",
    ["record_type", "channel", "outcome"],  # outcome: inserted, duplicate, failed
)

poll_cycles_total = Counter(
    "erp_ingest_poll_cycles_total",
    "Pull-channel fetches per record type",
    ["record_type", "outcome"],  # outcome: ok, upstream_error
)

watermark_timestamp_seconds = Gauge(
    "erp_ingest_watermark_timestamp_seconds",
    "Current pull-channel watermark as a Unix timestamp",
    ["tenant_id", "record_type"],
)


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090)
    """
    start_http_server(port)
