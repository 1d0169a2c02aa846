from __future__ import annotations

from sqlalchemy.orm import Session

from app.repositories import MarketRepository

from .models import Bet, Market, Position


def list_markets(
    session: Session,
    *,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Market], int]:
    return MarketRepository(session).list_markets(
        status=status,
        limit=limit,
        offset=offset,
    )


def get_market(session: Session, market_id: int) -> Market | None:
    return MarketRepository(session).get_market(market_id)


def list_positions(session: Session, market_id: int) -> list[Position]:
    return MarketRepository(session).list_positions(market_id)


def list_bets(session: Session, market_id: int) -> list[Bet]:
    return MarketRepository(session).list_bets(market_id)


def expire_markets(session: Session, now_timestamp: int) -> int:
    return MarketRepository(session).expire_markets(now_timestamp)
