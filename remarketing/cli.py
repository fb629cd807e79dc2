"""
Customer Remarketing Recommender CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, order import, generation pass, etc.).
  5. Report result to stdout.

Install and run::

    pip install -e .
    remarketing --help
    remarketing init-db
    remarketing import-orders --file data/seed/orders.json
    remarketing generate --force-refresh
    remarketing list-recommendations --status active
    remarketing update-status 42 dismissed --notes "Called customer"
    remarketing start-scheduler
"""

from __future__ import annotations

import json
import signal
import threading
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="remarketing",
    help="Customer remarketing recommender: scheduled behavior analysis and scoring.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None, db_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from remarketing.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        config = load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)

    if db_path:
        config = config.model_copy(
            update={"database": config.database.model_copy(update={"db_path": db_path})}
        )
    return config


def _configure_logging(config):
    """Set up logging from config."""
    from remarketing.utils.logging import configure_logging
    configure_logging(config.logging)


def _database(config):
    from remarketing.db.connection import Database
    return Database.from_config(config.database)


def _build_scheduler_or_exit(config):
    from remarketing.scheduler import build_scheduler

    try:
        return build_scheduler(config)
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


_DB_PATH_OPTION = typer.Option(None, "--db-path", help="Override DB path from config.")
_CONFIG_OPTION = typer.Option(None, "--config", help="Path to TOML config file.")


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times; all DDL uses IF NOT EXISTS.
    """
    from remarketing.db.schema import ALL_TABLE_NAMES

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    typer.echo(f"Initializing database at: {config.database.db_path}")
    _database(config).initialize()

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields (API key redacted).",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation or the schedule is invalid.
    """
    from remarketing.scheduler import Schedule

    config = _load_config_or_exit(config_path)

    try:
        Schedule(config.scheduler.schedule, config.scheduler.timezone)
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Oracle backend:   {config.oracle.backend} ({config.oracle.model})")
    typer.echo(f"  Oracle API key:   {'set' if config.oracle.api_key else 'NOT SET'}")
    typer.echo(f"  Schedule:         {config.scheduler.schedule} ({config.scheduler.timezone})")
    typer.echo(f"  Expiry days:      {config.workflow.expiry_days}")
    typer.echo(f"  Retention days:   {config.maintenance.retention_days}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        dumped = config.model_dump()
        if dumped["oracle"].get("api_key"):
            dumped["oracle"]["api_key"] = "***"
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(dumped, indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("import-orders")
def import_orders(
    orders_file: str = typer.Option(
        ...,
        "--file",
        "-f",
        help="Path to a JSON document with customers, products, and orders.",
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Import customers, products, and order history from a JSON seed file.

    Customers and products are upserted; already-present orders are skipped.
    """
    from remarketing.ingestion.order_import import import_order_file

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    db = _database(config)
    db.initialize()
    typer.echo(f"Loading orders from: {orders_file}")
    try:
        with db.connect() as conn:
            result = import_order_file(conn, Path(orders_file))
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"[ERROR] Import failed:\n{exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  Customers: {result.customers}")
    typer.echo(f"  Products:  {result.products}")
    typer.echo(f"  Orders:    {result.orders} new, {result.orders_skipped} already present")
    typer.echo("[OK] Orders imported.")


@app.command("analyze-customer")
def analyze_customer(
    customer_id: str = typer.Argument(..., help="Customer to analyse."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Print the behavior profile of one customer as JSON."""
    from remarketing.analysis.behavior import BehaviorAnalyzer
    from remarketing.db.store import SQLiteOrderSource
    from remarketing.errors import BehaviorSourceError

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    db = _database(config)
    db.initialize()
    orders = SQLiteOrderSource(db)
    try:
        profile = BehaviorAnalyzer(orders, orders).analyze(customer_id)
    except BehaviorSourceError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    if profile is None:
        typer.echo(f"[INFO] No behavior data for customer {customer_id}.")
        raise typer.Exit(code=1)
    typer.echo(profile.model_dump_json(indent=2))


@app.command("generate")
def generate(
    force_refresh: bool = typer.Option(
        False,
        "--force-refresh",
        help="Regenerate even for customers with live recommendations.",
    ),
    customers: Optional[list[str]] = typer.Option(
        None,
        "--customer",
        "-c",
        help="Customer id to process. Repeatable; all customers if omitted.",
    ),
    types: Optional[list[str]] = typer.Option(
        None,
        "--type",
        "-t",
        help="Recommendation type to keep (e.g. win_back). Repeatable.",
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Run one generation pass now (manual trigger).

    \b
    Steps:
      1. Expiry sweep (only with --force-refresh).
      2. Behavior analysis → oracle scoring → store, per customer.

    Exits with code 1 if the oracle is not configured.
    """
    from remarketing.errors import (
        BehaviorSourceError,
        OracleNotConfiguredError,
        WorkflowBusyError,
    )
    from remarketing.taxonomy.recommendation_taxonomy import RecommendationType

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    try:
        allowed = [RecommendationType(t) for t in types] if types else None
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    scheduler = _build_scheduler_or_exit(config)
    typer.echo(
        f"generate | force_refresh={force_refresh} | "
        f"customers={', '.join(customers) if customers else 'all'}"
    )
    try:
        result = scheduler.trigger_manual_generation(
            force_refresh=force_refresh,
            customer_ids=customers or None,
            allowed_types=allowed,
        )
    except (BehaviorSourceError, OracleNotConfiguredError, WorkflowBusyError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  Processed:  {len(result.processed)} ({len(result.skipped)} already current)")
    typer.echo(f"  Generated:  {result.total_generated}")
    typer.echo(f"  Failed:     {len(result.failed)}")
    for failure in result.failed[:10]:
        typer.echo(f"    {failure.customer_id}: {failure.error}")
    if len(result.failed) > 10:
        typer.echo(f"    ... and {len(result.failed) - 10} more.")
    typer.echo("[OK] Generation complete.")


@app.command("expire-sweep")
def expire_sweep(
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Expire active recommendations that are past their expiry time."""
    from remarketing.db.store import SQLiteRecommendationStore
    from remarketing.pipeline.maintenance import run_expiry_sweep

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    db = _database(config)
    db.initialize()
    count = run_expiry_sweep(SQLiteRecommendationStore(db))
    typer.echo(f"[OK] {count} recommendation(s) expired.")


@app.command("cleanup")
def cleanup(
    retention_days: Optional[int] = typer.Option(
        None,
        "--retention-days",
        help="Override maintenance.retention_days.",
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Delete processed/dismissed/expired recommendations past the retention window."""
    from remarketing.db.store import SQLiteRecommendationStore
    from remarketing.pipeline.maintenance import run_retention_cleanup

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    days = retention_days if retention_days is not None else config.maintenance.retention_days
    if days < 0:
        typer.echo("[ERROR] --retention-days must be >= 0.", err=True)
        raise typer.Exit(code=1)

    db = _database(config)
    db.initialize()
    count = run_retention_cleanup(SQLiteRecommendationStore(db), days)
    typer.echo(f"[OK] {count} recommendation(s) older than {days} days deleted.")


@app.command("list-recommendations")
def list_recommendations(
    customer_id: Optional[str] = typer.Option(None, "--customer", help="Filter by customer."),
    status: Optional[str] = typer.Option(None, "--status", help="active|processed|expired|dismissed"),
    rec_type: Optional[str] = typer.Option(None, "--type", help="Recommendation type."),
    priority_min: Optional[int] = typer.Option(None, "--priority-min", min=0, max=100),
    priority_max: Optional[int] = typer.Option(None, "--priority-max", min=0, max=100),
    limit: int = typer.Option(20, "--limit", min=1),
    offset: int = typer.Option(0, "--offset", min=0),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """List stored recommendations, highest priority first."""
    from remarketing.db.store import SQLiteRecommendationStore
    from remarketing.taxonomy.recommendation_taxonomy import (
        RecommendationStatus,
        RecommendationType,
    )

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    try:
        status_filter = RecommendationStatus(status) if status else None
        type_filter = RecommendationType(rec_type) if rec_type else None
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    db = _database(config)
    db.initialize()
    records = SQLiteRecommendationStore(db).list_recommendations(
        customer_id=customer_id,
        status=status_filter,
        recommendation_type=type_filter,
        priority_min=priority_min,
        priority_max=priority_max,
        limit=limit,
        offset=offset,
    )
    if not records:
        typer.echo("No recommendations found.")
        return

    for rec in records:
        typer.echo(
            f"  #{rec.rec_id:<5} {rec.priority_score:>3}  {rec.recommendation_type.value:<20} "
            f"{rec.status.value:<9} {rec.customer_id}  "
            f"{rec.customer_name or '-'}  expires {rec.expires_at:%Y-%m-%d %H:%M}Z"
        )
    typer.echo(f"[OK] {len(records)} recommendation(s).")


@app.command("update-status")
def update_status(
    rec_id: int = typer.Argument(..., help="Recommendation id."),
    status: str = typer.Argument(..., help="processed | dismissed | expired"),
    notes: Optional[str] = typer.Option(
        None,
        "--notes",
        help="Replace the personalization notes on the record.",
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Mark a recommendation processed, dismissed, or expired."""
    from remarketing.db.store import SQLiteRecommendationStore
    from remarketing.errors import InvalidStatusTransitionError, RecommendationNotFoundError
    from remarketing.taxonomy.recommendation_taxonomy import RecommendationStatus
    from remarketing.utils.time_utils import utcnow

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    try:
        new_status = RecommendationStatus(status)
    except ValueError:
        typer.echo(f"[ERROR] Unknown status '{status}'.", err=True)
        raise typer.Exit(code=1)

    db = _database(config)
    db.initialize()
    try:
        record = SQLiteRecommendationStore(db).update_status(
            rec_id, new_status, utcnow(), notes=notes
        )
    except (RecommendationNotFoundError, InvalidStatusTransitionError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"[OK] Recommendation {record.rec_id} is now {record.status.value}.")


@app.command("start-scheduler")
def start_scheduler(
    schedule: Optional[str] = typer.Option(
        None,
        "--schedule",
        help="Cron expression or interval (e.g. '0 2 */2 * *', '6h'). Overrides config.",
    ),
    run_now: bool = typer.Option(
        False,
        "--run-now",
        help="Run one scheduled pass immediately before waiting for the timer.",
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Start the recurring generation scheduler.  Blocks until Ctrl-C or SIGTERM.

    Each firing runs: expiry sweep → retention cleanup → generation for all
    customers (force refresh) → admin notification.
    """
    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    scheduler = _build_scheduler_or_exit(config)
    if schedule:
        try:
            scheduler.update_schedule(schedule)
        except ValueError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)
    elif config.scheduler.autostart:
        scheduler.start()
    elif not run_now:
        typer.echo("[ERROR] scheduler.autostart is false; pass --schedule or --run-now.", err=True)
        raise typer.Exit(code=1)

    stop_requested = threading.Event()

    def _shutdown(signum, frame):  # noqa: ANN001
        typer.echo(f"Signal {signum} received, stopping scheduler.")
        stop_requested.set()

    signal.signal(signal.SIGINT, _shutdown)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _shutdown)

    status = scheduler.get_status()
    typer.echo(f"Scheduler running | schedule={status.schedule} | next_run={status.next_run}")

    if run_now:
        scheduler.run_scheduled_pass()

    while not stop_requested.wait(timeout=1.0):
        pass

    scheduler.stop()
    typer.echo("[OK] Scheduler stopped.")


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
