"""Domain values exchanged by the chain sync components."""

from .models import (
    Applied,
    BetPlaced,
    BlockHeader,
    DecodedEvent,
    MarketCreated,
    MarketEvent,
    MarketResolved,
    ProjectionOutcome,
    RawLog,
    Skipped,
    WinningsClaimed,
)

__all__ = [
    "Applied",
    "BetPlaced",
    "BlockHeader",
    "DecodedEvent",
    "MarketCreated",
    "MarketEvent",
    "MarketResolved",
    "ProjectionOutcome",
    "RawLog",
    "Skipped",
    "WinningsClaimed",
]
