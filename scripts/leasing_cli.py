#!/usr/bin/env python3
"""
Operator CLI for the leasing engine.

Usage:
    python3 scripts/leasing_cli.py [--config leasing.yaml] <command>

Commands:
    init-db     Create the leasing tables.
    sweep       Run the expiration sweep once and print the report.
    reconcile   Create missing maintenance tickets once.
    scheduler   Run the in-process scheduler until interrupted.

Settings come from --config (or LEASING_CONFIG) plus LEASING_* environment
variables; see leasing_config.loader.
"""

from __future__ import annotations

import argparse
import json
import os
import signal
import sys
import threading


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Leasing engine operations.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        default=os.environ.get("LEASING_CONFIG"),
        help="YAML settings file (default: LEASING_CONFIG env, else built-in defaults).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables.")

    sweep = sub.add_parser("sweep", help="Expire reservations past their end date.")
    sweep.add_argument("--limit", type=int, default=None, help="Expire at most this many.")

    sub.add_parser("reconcile", help="Create missing maintenance tickets.")

    sched = sub.add_parser("scheduler", help="Run scheduled jobs until interrupted.")
    sched.add_argument(
        "--tick-seconds",
        type=float,
        default=60,
        help="Seconds between schedule evaluations (default: 60).",
    )
    sched.add_argument(
        "--run-on-start",
        action="store_true",
        default=None,
        help="Run every schedule once at startup (default: sweep.run_on_start).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so argument errors fail fast
    from leasing_config import load_settings
    from leasing_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
    from leasing_kernel.exceptions import LeasingError
    from leasing_kernel.logging_config import configure_logging
    from leasing_services.lifecycle_engine import LeasingEngine

    try:
        settings = load_settings(args.config)
    except (LeasingError, OSError) as e:
        print(f"ERROR: Failed to load settings: {e}", file=sys.stderr)
        return 1

    configure_logging(level=settings.logging.level)
    db = settings.database
    init_engine_from_url(db.url, echo=db.echo, pool_size=db.pool_size, max_overflow=db.max_overflow)

    if args.command == "init-db":
        create_tables()
        print("Tables created.")
        return 0

    engine = LeasingEngine(get_session_factory(), settings=settings)

    if args.command == "sweep":
        report = engine.run_expiration_sweep(limit=args.limit)
        print(json.dumps({
            "processed": report.processed,
            "skipped": report.skipped,
            "failed": [
                {"id": str(f.reservation_id), "error": f.error, "code": f.error_code}
                for f in report.failed
            ],
        }, indent=2))
        return 1 if report.failed else 0

    if args.command == "reconcile":
        result = engine.reconcile_maintenance_tickets()
        print(json.dumps({
            "status": result.status.value,
            "created": result.succeeded,
            "skipped": result.skipped,
            "failed": result.failed,
        }, indent=2))
        return 1 if result.failed else 0

    scheduler = engine.scheduler(
        tick_interval_seconds=args.tick_seconds, run_on_start=args.run_on_start
    )
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    scheduler.start()
    print("Scheduler running; Ctrl-C to stop.")
    stop.wait()
    scheduler.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
