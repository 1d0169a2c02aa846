from __future__ import annotations

import threading
import time
from typing import Any, Callable

from loguru import logger


class PeriodicTask:
    """Run ``target`` on a fixed cadence in a dedicated thread.

    Slots that elapse while ``target`` is still running are dropped rather than
    queued. Setting ``stop_event`` lets the current run finish and then exits.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        target: Callable[[], Any],
        stop_event: threading.Event,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self.target = target
        self.stop_event = stop_event
        self.clock = clock
        self.runs = 0
        self.dropped = 0
        self._thread: threading.Thread | None = None

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run_forever, name=self.name, daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run_forever(self) -> None:
        logger.info("Starting {} every {}s", self.name, self.interval)
        next_run = self.clock()
        while not self.stop_event.is_set():
            try:
                self.target()
            except Exception:  # noqa: BLE001
                logger.exception("Periodic task {} failed", self.name)
            self.runs += 1

            next_run += self.interval
            now = self.clock()
            if now > next_run:
                missed = int((now - next_run) // self.interval) + 1
                self.dropped += missed
                logger.debug("{} overran its interval; dropped {} ticks", self.name, missed)
                next_run += missed * self.interval
            self.stop_event.wait(max(next_run - self.clock(), 0.0))
        logger.info("Stopped {} after {} runs", self.name, self.runs)


__all__ = ["PeriodicTask"]
