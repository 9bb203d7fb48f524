"""CLI entrypoint for the table archiver.

This file wires together:

- Environment / YAML config loading and flag precedence
- Run log setup
- The single database connection
- The cutover pipeline and optional exports

The implementations live in the ``archiver`` package so they can be reused
from other scripts.
"""

import sys
import argparse
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from archiver import __version__
from archiver.config import build_settings, load_config_file
from archiver.connection import connect
from archiver.cutover import CutoverPipeline, CutoverState
from archiver.env import load_env_file
from archiver.errors import ArchiverError, ConfigValidationError
from archiver.logging_config import get_logger, run_log_path, setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Archive rows older than a retention window out of a MySQL table",
        epilog=(
            "Rows older than --days are left in <table>_archive_<YYYYMMDD>; "
            "newer rows stay in <table>."
        ),
    )

    # Connection
    parser.add_argument("--host", help="MySQL host (default: localhost)")
    parser.add_argument("--port", type=int, help="MySQL port (default: 3306)")
    parser.add_argument("--user", help="MySQL user (default: root)")
    parser.add_argument(
        "--password",
        help="MySQL password (default: $ARCHIVER_DB_PASSWORD or empty)",
    )
    parser.add_argument("--database", help="Database name (required)")
    parser.add_argument(
        "--odbc-driver",
        help="ODBC driver name (default: MySQL ODBC 8.0 Unicode Driver)",
    )

    # Archive
    parser.add_argument("--table", help="Table to archive (required)")
    parser.add_argument(
        "--days", type=int, help="Number of days of records to keep (default: 90)"
    )
    parser.add_argument(
        "--date-column",
        help="Age column to use instead of detecting one",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Count and report what would be archived without changing anything",
    )
    parser.add_argument(
        "--export-sql",
        action="store_true",
        help="Export the archive table to a .sql file",
    )
    parser.add_argument(
        "--export-csv",
        action="store_true",
        help="Export the archive table to a .csv file",
    )
    parser.add_argument(
        "--export-path", help="Directory for export files (default: ./archives)"
    )

    # Config and logging
    parser.add_argument("--config", help="Path to a YAML config file")
    parser.add_argument(
        "--env-file", help="Path to a .env file to load before reading the environment"
    )
    parser.add_argument(
        "--log-dir",
        default=".",
        help="Directory for the archive_<timestamp>.log run log (default: .)",
    )
    parser.add_argument(
        "--log-format",
        choices=["human", "json", "simple"],
        default="human",
        help="Console log format (default: human)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG level) logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"db-archiver {__version__}",
        help="Show version and exit",
    )
    return parser


def cli_values(args: argparse.Namespace) -> Dict[str, Any]:
    """Map parsed flags onto the keys ``build_settings`` understands."""
    return {
        "host": args.host,
        "port": args.port,
        "user": args.user,
        "password": args.password,
        "database": args.database,
        "odbc_driver": args.odbc_driver,
        "table": args.table,
        "days": args.days,
        "date_column": args.date_column,
        "dry_run": args.dry_run,
        "export_sql": args.export_sql,
        "export_csv": args.export_csv,
        "export_path": args.export_path,
    }


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.env_file:
        load_env_file(args.env_file, override=False)

    try:
        file_config = load_config_file(args.config) if args.config else None
        settings, request = build_settings(cli_values(args), file_config)
    except ConfigValidationError as exc:
        parser.error(str(exc))

    started_at = datetime.now()
    log_file = run_log_path(args.log_dir, started_at)
    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format_type=args.log_format,
        log_file=log_file,
    )
    run_logger = get_logger("archiver.cutover", extra={"table": request.table})
    logger.info("Run log: %s", log_file)

    try:
        with connect(settings) as db:
            pipeline = CutoverPipeline(
                db, request, settings=settings, logger=run_logger
            )
            result = pipeline.run()
    except ArchiverError as exc:
        logger.error("Archive failed: %s", exc)
        return EXIT_FAILED

    if result.state == CutoverState.SWAPPED and request.exports_enabled:
        logger.warning(
            "Archive completed but %d export(s) failed", len(result.export_errors)
        )
    logger.info("Archive process completed successfully (%s)", result.state.value)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
