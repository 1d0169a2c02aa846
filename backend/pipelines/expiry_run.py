"""Standalone sweep that expires markets whose end time has passed."""

from __future__ import annotations

import argparse
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger
from sqlalchemy.orm import Session

from app import crud
from app.core.errors import PersistenceError
from app.db import init_db
from ingestion.service import session_scope


@dataclass(slots=True)
class ExpirySummary:
    status: str = "completed"
    checked_at: int | None = None
    expired_markets: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "checked_at": self.checked_at,
            "expired_markets": self.expired_markets,
            "error": self.error,
        }


class ExpirySweeper:
    """Transition ACTIVE markets past their end time to EXPIRED.

    Works purely on stored data. Resolved markets are never touched, and a
    later ``MarketResolved`` event overrides EXPIRED.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock
        self._lease = threading.Lock()

    def run(self) -> ExpirySummary:
        if not self._lease.acquire(blocking=False):
            logger.info("Expiry sweep still running; dropping this run")
            return ExpirySummary(status="busy")
        try:
            now = int(self.clock())
            summary = ExpirySummary(checked_at=now)
            try:
                with session_scope(self.session_factory) as session:
                    summary.expired_markets = crud.expire_markets(session, now)
            except PersistenceError as exc:
                summary.status = "failed"
                summary.error = str(exc)
                logger.error("Expiry sweep failed: {}", exc)
                return summary

            if summary.expired_markets:
                logger.info("Expired {} markets", summary.expired_markets)
            return summary
        finally:
            self._lease.release()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Expire markets whose end time has passed")
    parser.add_argument(
        "--now",
        type=int,
        default=None,
        help="Unix timestamp to sweep against (default: current time)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> ExpirySummary:
    args = _parse_args(argv)
    init_db()
    clock = (lambda: args.now) if args.now is not None else time.time
    return ExpirySweeper(clock=clock).run()


if __name__ == "__main__":
    main()
