"""Typed values passed between the chain reader, decoder, and projector."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(slots=True, frozen=True)
class BlockHeader:
    """Block metadata recorded alongside every projected event."""

    number: int
    hash: str
    parent_hash: str | None
    timestamp: int


@dataclass(slots=True, frozen=True)
class RawLog:
    """Undecoded contract log positioned by ``(block_number, log_index)``."""

    address: str
    topics: tuple[bytes, ...]
    data: bytes
    block_number: int
    tx_hash: str
    log_index: int
    block_hash: str | None = None

    @property
    def position(self) -> tuple[int, int]:
        return (self.block_number, self.log_index)


@dataclass(slots=True, frozen=True)
class MarketCreated:
    market_id: int
    question: str
    creator: str
    end_time: int


@dataclass(slots=True, frozen=True)
class BetPlaced:
    market_id: int
    user: str
    is_yes: bool
    amount: int


@dataclass(slots=True, frozen=True)
class MarketResolved:
    market_id: int
    outcome: bool


@dataclass(slots=True, frozen=True)
class WinningsClaimed:
    market_id: int
    user: str
    amount: int


MarketEvent = Union[MarketCreated, BetPlaced, MarketResolved, WinningsClaimed]


@dataclass(slots=True, frozen=True)
class DecodedEvent:
    """A decoded contract event together with the log it came from."""

    name: str
    event: MarketEvent
    log: RawLog


@dataclass(slots=True, frozen=True)
class Applied:
    event_name: str


@dataclass(slots=True, frozen=True)
class Skipped:
    event_name: str | None
    reason: str
    details: dict[str, object] = field(default_factory=dict, compare=False)


ProjectionOutcome = Union[Applied, Skipped]
