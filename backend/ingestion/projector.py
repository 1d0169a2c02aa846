"""Project decoded contract events onto the relational market state.

Each handler runs inside the caller's transaction and is safe to replay:
inserts are skipped when their natural key already exists and updates either
set constants or add amounts guarded by a freshly inserted, uniquely keyed
bet row.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy.orm import Session

from app.domain import (
    Applied,
    BetPlaced,
    BlockHeader,
    DecodedEvent,
    MarketCreated,
    MarketResolved,
    ProjectionOutcome,
    Skipped,
    WinningsClaimed,
)
from app.repositories import MarketRepository

Handler = Callable[[MarketRepository, DecodedEvent, BlockHeader], ProjectionOutcome]


def project_market_created(
    repo: MarketRepository, decoded: DecodedEvent, block: BlockHeader
) -> ProjectionOutcome:
    event: MarketCreated = decoded.event  # type: ignore[assignment]
    repo.upsert_block(block)
    market = repo.create_market(
        market_id=event.market_id,
        question=event.question,
        creator=event.creator,
        end_time=event.end_time,
        log=decoded.log,
        block=block,
    )
    if market is None:
        return Skipped(decoded.name, "market already exists", {"market_id": event.market_id})
    return Applied(decoded.name)


def project_bet_placed(
    repo: MarketRepository, decoded: DecodedEvent, block: BlockHeader
) -> ProjectionOutcome:
    event: BetPlaced = decoded.event  # type: ignore[assignment]
    log = decoded.log
    repo.upsert_block(block)

    # The bet row is the dedup gate for the volume and position increments.
    if repo.has_bet(log.tx_hash, log.log_index):
        return Skipped(
            decoded.name,
            "bet already recorded",
            {"tx_hash": log.tx_hash, "log_index": log.log_index},
        )
    if event.amount <= 0:
        return Skipped(decoded.name, "non-positive amount", {"amount": event.amount})

    market = repo.get_market(event.market_id)
    if market is None:
        return Skipped(decoded.name, "unknown market", {"market_id": event.market_id})

    repo.record_bet(
        market=market,
        user_address=event.user,
        is_yes=event.is_yes,
        amount=event.amount,
        log=log,
        block=block,
    )
    return Applied(decoded.name)


def project_market_resolved(
    repo: MarketRepository, decoded: DecodedEvent, block: BlockHeader
) -> ProjectionOutcome:
    event: MarketResolved = decoded.event  # type: ignore[assignment]
    repo.upsert_block(block)
    market = repo.get_market(event.market_id)
    if market is None:
        return Skipped(decoded.name, "unknown market", {"market_id": event.market_id})
    repo.resolve_market(market, outcome=event.outcome)
    return Applied(decoded.name)


def project_winnings_claimed(
    repo: MarketRepository, decoded: DecodedEvent, block: BlockHeader
) -> ProjectionOutcome:
    event: WinningsClaimed = decoded.event  # type: ignore[assignment]
    repo.upsert_block(block)
    position = repo.mark_claimed(event.market_id, event.user)
    if position is None:
        return Skipped(
            decoded.name,
            "unknown position",
            {"market_id": event.market_id, "user": event.user},
        )
    return Applied(decoded.name)


_HANDLERS: dict[type, Handler] = {
    MarketCreated: project_market_created,
    BetPlaced: project_bet_placed,
    MarketResolved: project_market_resolved,
    WinningsClaimed: project_winnings_claimed,
}


def project_event(session: Session, decoded: DecodedEvent, block: BlockHeader) -> ProjectionOutcome:
    """Apply ``decoded`` to the projection within the session's transaction."""

    handler = _HANDLERS.get(type(decoded.event))
    if handler is None:
        return Skipped(decoded.name, "no projection for event")
    return handler(MarketRepository(session), decoded, block)


__all__ = [
    "project_bet_placed",
    "project_event",
    "project_market_created",
    "project_market_resolved",
    "project_winnings_claimed",
]
