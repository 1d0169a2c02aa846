import argparse
import signal
import sys
import threading

from loguru import logger

from app.core.config import ConfigurationError, get_settings
from app.db import init_db
from pipelines.expiry_run import ExpirySweeper
from pipelines.scheduler import PeriodicTask
from pipelines.sync_run import build_sync_loop


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sync prediction market contract events into the database"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one sync tick and one expiry sweep, then exit",
    )
    parser.add_argument(
        "--no-expiry",
        action="store_true",
        help="Do not schedule the market expiry sweep",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Minimum log level written to stderr (default: INFO)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logger.remove()
    logger.add(sys.stderr, level=args.log_level.upper())

    settings = get_settings()
    stop_event = threading.Event()
    try:
        loop = build_sync_loop(settings, stop_event=stop_event)
    except ConfigurationError as exc:
        logger.error("{}", exc)
        return 1

    init_db()
    sweeper = ExpirySweeper()

    if args.once:
        try:
            summary = loop.run_tick()
            logger.info("Sync tick finished: {}", summary.to_dict())
            if not args.no_expiry:
                sweeper.run()
        finally:
            loop.close()
        return 0

    def _request_shutdown(signum, _frame) -> None:
        logger.info("Received signal {}; finishing the current block and stopping", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _request_shutdown)
    signal.signal(signal.SIGTERM, _request_shutdown)

    tasks = [
        PeriodicTask("sync-loop", settings.poll_interval_seconds, loop.run_tick, stop_event)
    ]
    if not args.no_expiry:
        tasks.append(
            PeriodicTask(
                "expiry-sweep",
                settings.expiry_sweep_interval_seconds,
                sweeper.run,
                stop_event,
            )
        )

    for task in tasks:
        task.start()
    try:
        while not stop_event.wait(1.0):
            pass
    finally:
        for task in tasks:
            task.join(timeout=settings.rpc_timeout_seconds * 2)
        loop.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
