"""
Command-line interface for the facility ingestion pipeline.

Usage:
    facility-etl run [--resume] [--clear] [--parallel|--sequential] [options]
    facility-etl health
    python -m facility_etl.cli.etl_cli run --input data/facilities.csv --state CA
"""

import argparse
import json
import signal
import sys
import threading

import psycopg

from facility_etl.config.settings import PipelineSettings, load_query_units
from facility_etl.context import PipelineContext
from facility_etl.core.errors import ConfigError, StoreUnavailableError
from facility_etl.core.validators import FacilityValidator
from facility_etl.observability.health import HealthChecker
from facility_etl.observability.logger import setup_logger
from facility_etl.pipeline import (
    BackoffPolicy,
    CheckpointStore,
    Deduplicator,
    RunCoordinator,
    RunStatus,
)
from facility_etl.sources import ApiSource, CsvFileSource, JsonFileSource
from facility_etl.transform import FacilityTransformer
from facility_etl.warehouse import DatabaseConnectionPool, FacilityLoader, SchemaManager

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_ABORTED = 130

CONFIG_ERROR_CODES = ("CONFIG_ERROR", "CHECKPOINT_ERROR")


def exit_code_for(status: RunStatus, error_code: str | None = None) -> int:
    """Map a terminal run status to the process exit code."""
    if status is RunStatus.COMPLETED:
        return EXIT_OK
    if status is RunStatus.ABORTED:
        return EXIT_ABORTED
    if error_code in CONFIG_ERROR_CODES:
        return EXIT_CONFIG_ERROR
    return EXIT_FAILED


def load_settings(args) -> PipelineSettings:
    """Environment settings with command-line overrides applied."""
    return PipelineSettings.from_env(
        dotenv_path=getattr(args, "env_file", None),
        parallel_workers=getattr(args, "workers", None),
        checkpoint_file=getattr(args, "checkpoint_file", None),
        stats_file=getattr(args, "stats_file", None),
        metrics_port=getattr(args, "metrics_port", None),
        locations_file=getattr(args, "locations", None),
    )


def create_pool(settings: PipelineSettings, workers: int) -> DatabaseConnectionPool:
    return DatabaseConnectionPool(
        conninfo=settings.database_url,
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
        user=settings.db_user,
        password=settings.db_password,
        min_size=1,
        max_size=settings.pool_size(workers),
        timeout=settings.timeout_seconds,
    )


def build_coordinator(
    settings: PipelineSettings,
    units,
    loader: FacilityLoader,
    context: PipelineContext,
    workers: int,
    clear_existing: bool = False,
    abort_event: threading.Event | None = None,
) -> RunCoordinator:
    """Wire sources, validator, deduplicator and policies into a coordinator."""
    transformer = FacilityTransformer(data_source=settings.data_source)
    validator = FacilityValidator(
        transformer=transformer,
        max_name_length=settings.max_name_length,
        max_distance_miles=settings.max_distance_miles,
    )
    deduplicator = Deduplicator(
        enabled=settings.enable_dedup,
        existing_ids=loader.fetch_existing_ids if settings.skip_existing else None,
    )
    sources = {
        "api": ApiSource(
            settings.api_base_url,
            timeout=settings.timeout_seconds,
            max_pages=settings.max_pages,
        ),
        "csv": CsvFileSource(),
        "json": JsonFileSource(),
    }
    retry_policy = BackoffPolicy(
        max_retries=settings.max_retries,
        base_delay=settings.retry_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
        jitter=settings.retry_jitter_seconds,
    )
    return RunCoordinator(
        units=units,
        sources=sources,
        validator=validator,
        deduplicator=deduplicator,
        loader=loader,
        retry_policy=retry_policy,
        checkpoint_store=CheckpointStore(settings.checkpoint_file),
        context=context,
        workers=workers,
        page_size=settings.page_size,
        batch_delay=settings.delay_seconds,
        checkpoint_interval=settings.progress_interval,
        data_source=settings.data_source,
        clear_existing=clear_existing,
        stats_file=settings.stats_file,
        max_rejections=settings.max_rejections,
        abort_event=abort_event,
    )


def install_signal_handlers(coordinator: RunCoordinator, logger) -> dict:
    """Route SIGINT/SIGTERM to a graceful abort. Returns the previous handlers."""

    def signal_handler(signum, frame):  # type: ignore[no-untyped-def]
        signal_name = signal.Signals(signum).name
        logger.warning(f"Received {signal_name}, aborting at the next batch boundary")
        coordinator.request_abort()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, signal_handler)
    return previous


def restore_signal_handlers(previous: dict) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def run_command(args) -> int:
    """
    Execute an ingestion run.

    Returns:
        Process exit code
    """
    try:
        settings = load_settings(args)
    except ConfigError as e:
        setup_logger().error("Invalid configuration", extra={"error_message": str(e)})
        return EXIT_CONFIG_ERROR

    context = PipelineContext.create(
        data_source=settings.data_source,
        level=settings.log_level,
        format_type=settings.log_format,
    )
    logger = context.logger
    workers = 1 if args.sequential else settings.parallel_workers

    try:
        units = load_query_units(settings.locations_file, args.input, state=args.state)
        settings.require_database()
        pool = create_pool(settings, workers)
    except ConfigError as e:
        logger.error("Invalid configuration", extra={"error_message": str(e)})
        return EXIT_CONFIG_ERROR

    if settings.metrics_port:
        context.metrics.start_server(settings.metrics_port)
        logger.info("Metrics endpoint started", extra={"port": settings.metrics_port})

    logger.info(
        "Starting ingestion",
        extra={
            "units": len(units),
            "workers": workers,
            "pool_size": pool.max_size,
            "resume": args.resume,
            "clear": args.clear,
            "data_source": settings.data_source,
        },
    )

    try:
        pool.open(retry_delay=settings.retry_delay_seconds)
        SchemaManager(pool).ensure_schema()
    except (StoreUnavailableError, psycopg.Error) as e:
        logger.error("Database unavailable", extra={"error_message": str(e)})
        pool.close()
        return EXIT_FAILED

    loader = FacilityLoader(pool, batch_size=settings.batch_size, logger=context.child("loader"))
    coordinator = build_coordinator(settings, units, loader, context, workers, clear_existing=args.clear)
    previous = install_signal_handlers(coordinator, logger)

    try:
        report = coordinator.run(resume=args.resume)
    finally:
        restore_signal_handlers(previous)
        for source in coordinator.sources.values():
            source.close()
        pool.close()

    return exit_code_for(report.status, report.error_code)


def health_command(args) -> int:
    """Print readiness JSON; exit 0 when the database answers."""
    try:
        settings = load_settings(args)
        settings.require_database()
        pool = create_pool(settings, settings.parallel_workers)
    except ConfigError as e:
        print(json.dumps({"status": "not_ready", "error": str(e)}))
        return EXIT_CONFIG_ERROR

    try:
        pool.open(max_retries=1)
    except StoreUnavailableError:
        pass

    try:
        readiness = HealthChecker(pool).readiness()
    finally:
        pool.close()

    print(json.dumps(readiness))
    return EXIT_OK if readiness["status"] == "ready" else EXIT_FAILED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="facility-etl",
        description="Facility ingestion pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fetch every location in config/locations.yaml, three at a time
  facility-etl run --parallel --workers 3

  # Resume an interrupted run
  facility-etl run --resume

  # Replace this source's rows with a fresh load
  facility-etl run --clear

  # Load a CSV export instead of calling the API
  facility-etl run --input data/facilities.csv --state CA --sequential

  # Readiness probe
  facility-etl health
        """,
    )
    parser.add_argument("--env-file", help="Path to a .env file (default: search from cwd)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the ingestion pipeline")
    run_parser.add_argument("--resume", action="store_true", help="Resume from the checkpoint file")
    run_parser.add_argument(
        "--clear",
        action="store_true",
        help="Delete rows from this data source before a fresh run",
    )
    mode = run_parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--parallel",
        action="store_true",
        help="Process query units concurrently (default)",
    )
    mode.add_argument(
        "--sequential",
        action="store_true",
        help="Process one query unit at a time",
    )
    run_parser.add_argument("--workers", type=int, help="Concurrent query units (ETL_PARALLEL_WORKERS)")
    run_parser.add_argument("--locations", help="YAML file with query units (ETL_LOCATIONS_FILE)")
    run_parser.add_argument(
        "--input",
        nargs="+",
        metavar="FILE",
        help="CSV/JSON files to load instead of the locations file",
    )
    run_parser.add_argument("--state", help="Fallback state for --input files")
    run_parser.add_argument("--stats-file", help="Where to write the JSON run report (ETL_STATS_FILE)")
    run_parser.add_argument("--checkpoint-file", help="Checkpoint path (ETL_CHECKPOINT_FILE)")
    run_parser.add_argument("--metrics-port", type=int, help="Expose Prometheus metrics on this port")

    subparsers.add_parser("health", help="Check database readiness")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        return run_command(args)
    if args.command == "health":
        return health_command(args)

    parser.print_help()
    return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())
