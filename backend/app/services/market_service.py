"""Read-only market views consumed by the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app import crud
from app.models import MarketStatus
from app.schemas import Bet, Market, MarketDetail, MarketList, Position


@dataclass(slots=True)
class MarketQuery:
    status: str | None = None
    limit: int = 50
    offset: int = 0

    def __post_init__(self) -> None:
        if self.status:
            normalized = self.status.upper()
            if normalized not in {status.value for status in MarketStatus}:
                raise ValueError(f"Unknown market status: {self.status}")
            self.status = normalized
        if self.limit < 1:
            raise ValueError("limit must be positive")
        if self.offset < 0:
            raise ValueError("offset must not be negative")

    def to_crud_kwargs(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "limit": self.limit,
            "offset": self.offset,
        }


class MarketService:
    """Read-only facade over the market projection."""

    def __init__(self, session: Session):
        self._session = session

    def list_markets(self, query: MarketQuery) -> MarketList:
        raw_markets, total = crud.list_markets(self._session, **query.to_crud_kwargs())
        return MarketList(
            total=total,
            items=[Market.model_validate(record) for record in raw_markets],
        )

    def get_market(self, market_id: int) -> MarketDetail | None:
        market = crud.get_market(self._session, market_id)
        if market is None:
            return None
        return MarketDetail.model_validate(
            {
                **Market.model_validate(market).model_dump(),
                "positions": [
                    Position.model_validate(position)
                    for position in crud.list_positions(self._session, market_id)
                ],
                "bets": [
                    Bet.model_validate(bet) for bet in crud.list_bets(self._session, market_id)
                ],
            }
        )
