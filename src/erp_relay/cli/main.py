"""
erp-relay CLI

Run the simulated ERP, the extractor, or inspect what has been ingested.

Usage:
    erp-relay sim run --port 4001 --tick-seconds 600
    erp-relay sim backfill --history-months 24 --seed 7
    erp-relay extractor init-db --db erp_relay.db
    erp-relay extractor run --db erp_relay.db --simulator-url http://localhost:4001
    erp-relay extractor inventory --db erp_relay.db
"""

import json
import threading
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from erp_relay.ingestion.config import ExtractorConfig
from erp_relay.ingestion.queries import ErpReadService
from erp_relay.ingestion.service import Extractor
from erp_relay.ingestion.store import IngestionStore
from erp_relay.kernel.errors import StorageUnavailable
from erp_relay.kernel.logging import configure_logging, is_production
from erp_relay.kernel.metrics import start_metrics_server
from erp_relay.kernel.time import parse_iso
from erp_relay.simulator.config import DEFAULT_TENANT_ID, SimulatorConfig
from erp_relay.simulator.generator import EventGenerator
from erp_relay.simulator.service import SimulatorService

app = typer.Typer(
    name="erp-relay",
    help="erp-relay - simulated ERP and exactly-once extractor",
    add_completion=False,
)

# Sub-apps
sim_app = typer.Typer(help="Simulated ERP commands")
extractor_app = typer.Typer(help="Ingestion service commands")

app.add_typer(sim_app, name="sim")
app.add_typer(extractor_app, name="extractor")

DEFAULT_DB = Path("erp_relay.db")


@app.callback()
def configure(
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit JSON log lines"),
    ] = False,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="DEBUG, INFO, WARNING, ERROR"),
    ] = "INFO",
) -> None:
    """Configure logging to stderr (stdout stays clean for --json output)"""
    configure_logging(json_output=json_logs or is_production(), log_level=log_level)


def _wait_until_interrupted() -> None:
    stop = threading.Event()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        typer.echo("\nShutting down...", err=True)


def _maybe_start_metrics(metrics_port: Optional[int]) -> None:
    if metrics_port is not None:
        start_metrics_server(metrics_port)
        typer.echo(f"  Metrics: http://0.0.0.0:{metrics_port}/metrics")


# Simulator commands


@sim_app.command("run")
def sim_run(
    port: Annotated[Optional[int], typer.Option("--port", help="HTTP port")] = None,
    tenant: Annotated[Optional[str], typer.Option("--tenant", help="Simulated tenant id")] = None,
    tick_seconds: Annotated[
        Optional[float],
        typer.Option("--tick-seconds", help="Wall-clock seconds between live steps"),
    ] = None,
    step_days: Annotated[
        Optional[float],
        typer.Option("--step-days", help="Simulated days per step"),
    ] = None,
    history_months: Annotated[
        Optional[int],
        typer.Option("--history-months", help="Months of history to replay at startup"),
    ] = None,
    seed: Annotated[Optional[int], typer.Option("--seed", help="Seed for a reproducible run")] = None,
    no_history: Annotated[
        bool,
        typer.Option("--no-history", help="Start at the current time without replaying history"),
    ] = False,
    metrics_port: Annotated[
        Optional[int],
        typer.Option("--metrics-port", help="Expose Prometheus metrics on this port"),
    ] = None,
) -> None:
    """Run the simulated ERP with live ticks"""
    config = SimulatorConfig.from_env(
        port=port,
        tenant_id=tenant,
        tick_seconds=tick_seconds,
        step_days=step_days,
        history_months=history_months,
        seed=seed,
        disable_history=no_history or None,
    )
    service = SimulatorService(config)
    address = service.start()

    typer.echo(f"✓ erp-sim listening on {address}")
    typer.echo(f"  Tenant: {config.tenant_id}")
    typer.echo(f"  Simulated now: {service.generator.now().isoformat()}")
    _maybe_start_metrics(metrics_port)

    _wait_until_interrupted()
    service.stop()


@sim_app.command("backfill")
def sim_backfill(
    history_months: Annotated[
        int,
        typer.Option("--history-months", help="Months of history to replay"),
    ] = 24,
    step_days: Annotated[float, typer.Option("--step-days", help="Simulated days per step")] = 7.0,
    seed: Annotated[Optional[int], typer.Option("--seed", help="Seed for a reproducible run")] = None,
    until: Annotated[
        Optional[str],
        typer.Option("--until", help="Replay up to this ISO timestamp (default: now)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Replay history offline and print a summary"""
    config = SimulatorConfig(history_months=history_months, step_days=step_days, seed=seed)
    generator = EventGenerator(config)

    now: Optional[datetime] = None
    if until:
        try:
            now = parse_iso(until)
        except ValueError:
            typer.echo(f"Error: Invalid --until timestamp: {until}", err=True)
            raise typer.Exit(1)

    result = generator.bootstrap(now)
    orders = generator.orders()
    statuses = Counter(order.status.value for order in orders)
    per_item = Counter(order.item_id for order in orders)

    summary = {**result.as_dict(), "statuses": dict(statuses), "orders_per_item": dict(per_item)}
    if json_output:
        typer.echo(json.dumps(summary, indent=2, sort_keys=True))
        return

    typer.echo(f"✓ Replayed {result.steps} steps")
    typer.echo(f"  From: {summary['started_at']}")
    typer.echo(f"  To:   {summary['ended_at']}")
    typer.echo(f"  Orders: {result.orders}")
    typer.echo(f"  Snapshots: {result.snapshots}")
    typer.echo("\n  Orders by status:")
    for status, count in sorted(statuses.items()):
        typer.echo(f"    {status}: {count}")
    typer.echo("\n  Orders by item:")
    for item_id, count in sorted(per_item.items()):
        typer.echo(f"    {item_id}: {count}")


# Extractor commands


@extractor_app.command("init-db")
def extractor_init_db(
    db: Annotated[Path, typer.Option("--db", help="Database path")] = DEFAULT_DB,
) -> None:
    """Create the ingestion schema"""
    try:
        IngestionStore(db)
    except StorageUnavailable as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"✓ Initialized ingestion database: {db}")


@extractor_app.command("run")
def extractor_run(
    db: Annotated[Optional[Path], typer.Option("--db", help="Database path")] = None,
    simulator_url: Annotated[
        Optional[str],
        typer.Option("--simulator-url", help="Base URL of the simulated ERP"),
    ] = None,
    public_url: Annotated[
        Optional[str],
        typer.Option("--public-url", help="Base URL the simulator calls back"),
    ] = None,
    tenant: Annotated[Optional[str], typer.Option("--tenant", help="Tenant id")] = None,
    port: Annotated[Optional[int], typer.Option("--port", help="HTTP port")] = None,
    poll_seconds: Annotated[
        Optional[float],
        typer.Option("--poll-seconds", help="Seconds between pull cycles"),
    ] = None,
    metrics_port: Annotated[
        Optional[int],
        typer.Option("--metrics-port", help="Expose Prometheus metrics on this port"),
    ] = None,
) -> None:
    """Run the ingestion service (webhook receiver, poller, read API)"""
    config = ExtractorConfig.from_env(
        db_path=str(db) if db else None,
        simulator_url=simulator_url,
        public_url=public_url,
        tenant_id=tenant,
        port=port,
        poll_seconds=poll_seconds,
    )
    try:
        extractor = Extractor(config)
        address = extractor.start()
    except StorageUnavailable as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"✓ erp-extractor listening on {address}")
    typer.echo(f"  Database: {config.db_path}")
    typer.echo(f"  Simulator: {config.simulator_url}")
    _maybe_start_metrics(metrics_port)

    _wait_until_interrupted()
    extractor.stop()


@extractor_app.command("inventory")
def extractor_inventory(
    db: Annotated[Path, typer.Option("--db", help="Database path")] = DEFAULT_DB,
    tenant: Annotated[str, typer.Option("--tenant", help="Tenant id")] = DEFAULT_TENANT_ID,
    at: Annotated[
        Optional[str],
        typer.Option("--at", help="Point-in-time ISO timestamp (default: latest)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show inventory from the ingested snapshots"""
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'erp-relay extractor init-db --db {db}' to initialize", err=True)
        raise typer.Exit(1)

    as_of: Optional[datetime] = None
    if at:
        try:
            as_of = parse_iso(at)
        except ValueError:
            typer.echo(f"Error: Invalid --at timestamp: {at}", err=True)
            raise typer.Exit(1)

    try:
        snapshots = ErpReadService(IngestionStore(db)).inventory(tenant, at=as_of)
    except StorageUnavailable as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps([s.model_dump(mode="json") for s in snapshots], indent=2))
        return

    if not snapshots:
        typer.echo("No inventory snapshots ingested yet")
        return

    typer.echo(f"Inventory ({len(snapshots)} items):")
    for snapshot in snapshots:
        typer.echo(
            f"  {snapshot.item_id}: {snapshot.on_hand:,.2f} {snapshot.unit} "
            f"(as of {snapshot.as_of.isoformat()})"
        )


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
