"""Checkpointed chain sync loop projecting contract events into the database."""

from __future__ import annotations

import argparse
import json
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Sequence

from loguru import logger
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.errors import (
    ChainUnavailableError,
    CheckpointStoreError,
    DecodeCorruptError,
    PersistenceError,
)
from app.db import init_db
from app.domain import Applied, DecodedEvent, ProjectionOutcome, RawLog, Skipped
from app.services.chain import ChainReader, build_chain_reader
from ingestion.checkpoint import CheckpointStore, RedisCheckpointStore
from ingestion.decoder import EventDecoder
from ingestion.projector import project_event
from ingestion.service import session_scope


@dataclass(slots=True)
class TickSummary:
    status: str = "running"
    latest_height: int | None = None
    from_height: int | None = None
    to_height: int | None = None
    checkpoint: int | None = None
    blocks_processed: int = 0
    events_applied: int = 0
    events_skipped: int = 0
    skipped: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    def record(self, outcome: ProjectionOutcome, log: RawLog) -> None:
        if isinstance(outcome, Applied):
            self.events_applied += 1
            return
        self.events_skipped += 1
        self.skipped.append(
            {
                "event": outcome.event_name,
                "reason": outcome.reason,
                "block_number": log.block_number,
                "log_index": log.log_index,
                "tx_hash": log.tx_hash,
                **outcome.details,
            }
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "latest_height": self.latest_height,
            "from_height": self.from_height,
            "to_height": self.to_height,
            "checkpoint": self.checkpoint,
            "blocks_processed": self.blocks_processed,
            "events_applied": self.events_applied,
            "events_skipped": self.events_skipped,
            "skipped": self.skipped,
            "error": self.error,
        }


class SyncLoop:
    """Consume contract logs block by block, advancing the checkpoint per block.

    A tick holds a non-blocking lease for its whole lifetime; a tick started
    while another one is running is dropped and reports ``busy``.
    """

    def __init__(
        self,
        *,
        reader: ChainReader,
        checkpoints: CheckpointStore,
        contract_address: str,
        decoder: EventDecoder | None = None,
        session_factory: Callable[[], Session] | None = None,
        batch_size: int = 10,
        stop_event: threading.Event | None = None,
    ) -> None:
        if batch_size < 0:
            raise ValueError("batch_size must not be negative")
        self.reader = reader
        self.checkpoints = checkpoints
        self.contract_address = contract_address
        self.decoder = decoder or EventDecoder()
        self.session_factory = session_factory
        self.batch_size = batch_size
        self.stop_event = stop_event or threading.Event()
        self._lease = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lease.locked()

    @contextmanager
    def _tick_lease(self) -> Iterator[bool]:
        acquired = self._lease.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._lease.release()

    def run_tick(self) -> TickSummary:
        with self._tick_lease() as acquired:
            if not acquired:
                logger.info("Sync tick still running; dropping this tick")
                return TickSummary(status="busy")

            summary = TickSummary()
            try:
                self._run(summary)
            except ChainUnavailableError as exc:
                summary.status = "aborted"
                summary.error = str(exc)
                logger.warning(
                    "Chain node unavailable; tick aborted at checkpoint {}: {}",
                    summary.checkpoint,
                    exc,
                )
            except PersistenceError as exc:
                summary.status = "aborted"
                summary.error = str(exc)
                logger.error(
                    "Block transaction rolled back; checkpoint stays at {}: {}",
                    summary.checkpoint,
                    exc,
                )
            except CheckpointStoreError as exc:
                summary.status = "aborted"
                summary.error = str(exc)
                logger.error("ALERT checkpoint store failure; tick aborted: {}", exc)
            return summary

    def _run(self, summary: TickSummary) -> None:
        latest = self.reader.latest_height()
        summary.latest_height = latest

        checkpoint = self.checkpoints.get()
        if checkpoint is None:
            # Cold start follows the head instead of backfilling history.
            checkpoint = max(latest - 1, 0)
            self.checkpoints.set(checkpoint)
            logger.info("No checkpoint found; initialized to block {}", checkpoint)
        summary.checkpoint = checkpoint

        start = checkpoint + 1
        if start > latest:
            summary.status = "idle"
            return
        end = min(latest, start + self.batch_size)
        summary.from_height, summary.to_height = start, end

        logs_by_height: dict[int, list[RawLog]] = defaultdict(list)
        for log in self.reader.logs_in_range(start, end, self.contract_address):
            if start <= log.block_number <= end:
                logs_by_height[log.block_number].append(log)

        logger.info(
            "Syncing blocks {}-{} (head {}, {} logs)",
            start,
            end,
            latest,
            sum(len(items) for items in logs_by_height.values()),
        )
        for height in range(start, end + 1):
            if self.stop_event.is_set():
                summary.status = "stopped"
                logger.info("Shutdown requested; stopping after block {}", summary.checkpoint)
                return
            self._process_block(height, logs_by_height.get(height, []), summary)
            self.checkpoints.set(height)
            summary.checkpoint = height
            summary.blocks_processed += 1

        summary.status = "completed"

    def _process_block(self, height: int, logs: Sequence[RawLog], summary: TickSummary) -> None:
        decoded_events: list[DecodedEvent] = []
        for log in sorted(logs, key=lambda item: item.log_index):
            outcome = self._decode(log)
            if isinstance(outcome, Skipped):
                summary.record(outcome, log)
                continue
            decoded_events.append(outcome)

        if not decoded_events:
            return

        block = self.reader.block_at(height)
        outcomes: list[tuple[ProjectionOutcome, RawLog]] = []
        with session_scope(self.session_factory) as session:
            for decoded in decoded_events:
                outcomes.append((project_event(session, decoded, block), decoded.log))

        for outcome, log in outcomes:
            if isinstance(outcome, Skipped):
                logger.info(
                    "Skipped {} at block {} log {}: {}",
                    outcome.event_name,
                    log.block_number,
                    log.log_index,
                    outcome.reason,
                )
            summary.record(outcome, log)
        logger.debug("Block {} committed with {} events", height, len(outcomes))

    def _decode(self, log: RawLog) -> DecodedEvent | Skipped:
        try:
            decoded = self.decoder.decode(log)
        except DecodeCorruptError as exc:
            logger.warning("Skipping corrupt log: {}", exc)
            return Skipped(None, "corrupt log", {"error": str(exc)})
        if decoded is None:
            return Skipped(None, "unrecognized event")
        return decoded

    def close(self) -> None:
        for resource in (self.reader, self.checkpoints):
            close = getattr(resource, "close", None)
            if callable(close):
                close()


def build_sync_loop(
    settings: Settings | None = None,
    *,
    stop_event: threading.Event | None = None,
) -> SyncLoop:
    settings = settings or get_settings()
    settings.require_sync_settings()
    reader = build_chain_reader(settings)
    checkpoints = RedisCheckpointStore.from_url(
        settings.redis_url,
        key=settings.checkpoint_key,
        timeout=settings.rpc_timeout_seconds,
    )
    logger.info(
        "Sync loop using {} reader for contract {}",
        reader.name,
        settings.contract_address,
    )
    return SyncLoop(
        reader=reader,
        checkpoints=checkpoints,
        contract_address=str(settings.contract_address),
        batch_size=settings.sync_batch_size,
        stop_event=stop_event,
    )


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a single chain sync tick")
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary of the tick will be written",
    )
    return parser.parse_args()


def _write_summary(summary: TickSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary.to_dict(), default=str, indent=2))
    logger.info("Sync summary written to {}", path)


def main() -> TickSummary:
    args = _parse_args()
    settings = get_settings()
    init_db()
    loop = build_sync_loop(settings)
    try:
        summary = loop.run_tick()
    finally:
        loop.close()

    if args.summary_path:
        _write_summary(summary, args.summary_path)
    return summary


if __name__ == "__main__":
    main()
