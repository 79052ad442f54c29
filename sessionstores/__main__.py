"""
Operator commands for session stores.

    python -m sessionstores migrate          # ensure table/collection and indexes
    python -m sessionstores sweep            # delete expired sessions once
    python -m sessionstores sweep --forever  # keep sweeping until SIGINT/SIGTERM
    python -m sessionstores check            # exit 1 if the backend is unhealthy

The backend is configured through the usual SESSION_* environment variables.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Sequence

from sessionstores.config.settings import get_settings
from sessionstores.errors import SessionStoreError
from sessionstores.factory import open_session_store
from sessionstores.session.store import ExpiredDeletion
from sessionstores.session.sweeper import ExpirySweeper
from sessionstores.telemetry import initialize_telemetry

logger = logging.getLogger("sessionstores.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sessionstores",
        description="Maintenance commands for the configured session store",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("migrate", help="Create the session namespace and indexes if missing")

    sweep = subparsers.add_parser("sweep", help="Delete expired sessions")
    sweep.add_argument(
        "--forever",
        action="store_true",
        help="Keep sweeping on an interval until interrupted",
    )
    sweep.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between sweeps with --forever (defaults to SESSION_SWEEP_INTERVAL_SECONDS)",
    )

    subparsers.add_parser("check", help="Exit with status 1 if the backend is unreachable")
    return parser


async def _sweep_forever(sweeper: ExpirySweeper) -> None:
    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    sweeper.start()
    await stop_requested.wait()
    await sweeper.stop()


async def run_command(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = await open_session_store(settings)
    try:
        if args.command == "migrate":
            # open_session_store already ran ensure_schema
            logger.info("Session schema is up to date", extra={
                "extra_data": {"backend": store.backend_name, "namespace": settings.namespace}
            })
            return 0

        if args.command == "check":
            healthy = await store.health_check()
            logger.info("Session store health checked", extra={
                "extra_data": {"backend": store.backend_name, "healthy": healthy}
            })
            return 0 if healthy else 1

        if not isinstance(store, ExpiredDeletion):
            logger.info("Backend expires sessions natively, nothing to sweep", extra={
                "extra_data": {"backend": store.backend_name}
            })
            return 0

        interval = args.interval or settings.sweep_interval_seconds
        if args.forever:
            if not interval:
                logger.error("A sweep interval is required with --forever")
                return 2
            await _sweep_forever(ExpirySweeper(store, interval))
            return 0

        await store.delete_expired()
        return 0
    finally:
        await store.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
        initialize_telemetry(settings)
        return asyncio.run(run_command(args))
    except SessionStoreError as e:
        logger.error("Session store command failed", extra={"extra_data": e.to_dict()})
        return 1


if __name__ == "__main__":
    sys.exit(main())
