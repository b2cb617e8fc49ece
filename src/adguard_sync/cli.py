#!/usr/bin/env python3
"""adguard-sync command line runner.

Usage:
    adguard-sync [--config PATH] [--dry-run] [--workers N] [--timeout S] [--json]

Exit codes:
    0   every replica converged
    1   at least one replica (or the origin) failed, including replicas
        whose own configuration is invalid
    2   origin or run-wide configuration error
"""
import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Optional

import yaml

from .config import SyncInventory
from .errors import ValidationError
from .sync_engine import SyncEngine, summarize_report
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="adguard-sync",
        description="Sync AdGuard Home replicas with an origin instance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Preview what would change
    adguard-sync --dry-run

    # Explicit config, machine readable report
    adguard-sync --config /etc/adguard-sync/adguard-sync.yaml --json

Environment:
    ADGUARD_SYNC_CONFIG       Config file path
    ORIGIN_URL, REPLICA1_URL  Configure instances without a file
    ADGUARD_SYNC_LOG_LEVEL    DEBUG, INFO, WARNING, ERROR
""",
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Config file (default: search ./configs, ., ~/.config/adguard-sync, /etc/adguard-sync)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Show planned changes without applying them",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Replicas synced concurrently",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Deadline for the whole run, in seconds",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the run report as JSON",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging on the console",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)

    setup_logging(level="DEBUG" if args.verbose else None)

    try:
        config = SyncInventory(args.config).load()
        overrides = {}
        if args.workers is not None:
            overrides["workers"] = args.workers
        if args.timeout is not None:
            overrides["run_timeout"] = args.timeout
        if overrides:
            config = dataclasses.replace(
                config, settings=dataclasses.replace(config.settings, **overrides)
            )
    except (ValidationError, FileNotFoundError, yaml.YAMLError) as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG

    engine = SyncEngine(config)

    try:
        report = asyncio.run(engine.run_once(dry_run=args.dry_run))
    except KeyboardInterrupt:
        logger.warning("Sync interrupted by user")
        return 130

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(summarize_report(report))

    return EXIT_OK if report.success else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
