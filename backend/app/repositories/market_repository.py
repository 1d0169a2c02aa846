"""Market projection data access helpers."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import desc, func, select, update
from sqlalchemy.orm import Session

from app.domain import BlockHeader, RawLog
from app.models import Bet, BetSide, Block, Market, MarketStatus, Position, utcnow


class MarketRepository:
    """Encapsulate all market, bet, position, and block persistence concerns."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def upsert_block(self, header: BlockHeader) -> Block:
        existing = self._session.get(Block, header.number)
        if existing is not None:
            return existing

        block = Block(
            number=header.number,
            hash=header.hash,
            parent_hash=header.parent_hash,
            timestamp=header.timestamp,
        )
        self._session.add(block)
        return block

    def create_market(
        self,
        *,
        market_id: int,
        question: str,
        creator: str,
        end_time: int,
        log: RawLog,
        block: BlockHeader,
    ) -> Market | None:
        """Insert an ACTIVE market, returning ``None`` when the id already exists."""

        if self._session.get(Market, market_id) is not None:
            return None

        now = utcnow()
        market = Market(
            id=market_id,
            question=question,
            creator=creator,
            end_time=end_time,
            resolved=False,
            outcome=None,
            status=MarketStatus.ACTIVE.value,
            yes_volume=Decimal(0),
            no_volume=Decimal(0),
            total_volume=Decimal(0),
            block_number=block.number,
            block_timestamp=block.timestamp,
            log_index=log.log_index,
            tx_hash=log.tx_hash,
            created_at=now,
            updated_at=now,
        )
        self._session.add(market)
        return market

    def has_bet(self, tx_hash: str, log_index: int) -> bool:
        query = select(Bet.id).where(Bet.tx_hash == tx_hash, Bet.log_index == log_index)
        return self._session.execute(query).first() is not None

    def record_bet(
        self,
        *,
        market: Market,
        user_address: str,
        is_yes: bool,
        amount: int,
        log: RawLog,
        block: BlockHeader,
    ) -> Bet:
        """Append a bet and apply its volume and position increments."""

        value = int(amount)
        bet = Bet(
            market_id=market.id,
            user_address=user_address,
            side=(BetSide.YES if is_yes else BetSide.NO).value,
            amount=Decimal(value),
            tx_hash=log.tx_hash,
            block_number=block.number,
            block_timestamp=block.timestamp,
            log_index=log.log_index,
            created_at=utcnow(),
        )
        self._session.add(bet)

        # Integer sums avoid the 28-digit default Decimal context.
        if is_yes:
            market.yes_volume = Decimal(int(market.yes_volume or 0) + value)
        else:
            market.no_volume = Decimal(int(market.no_volume or 0) + value)
        market.total_volume = Decimal(int(market.total_volume or 0) + value)
        market.updated_at = utcnow()

        self._add_to_position(market.id, user_address, is_yes=is_yes, amount=value)
        return bet

    def _add_to_position(
        self, market_id: int, user_address: str, *, is_yes: bool, amount: int
    ) -> Position:
        position = self._session.get(Position, (market_id, user_address))
        if position is None:
            position = Position(
                market_id=market_id,
                user_address=user_address,
                yes_amount=Decimal(0),
                no_amount=Decimal(0),
                claimed=False,
            )
            self._session.add(position)

        if is_yes:
            position.yes_amount = Decimal(int(position.yes_amount or 0) + amount)
        else:
            position.no_amount = Decimal(int(position.no_amount or 0) + amount)
        return position

    def resolve_market(self, market: Market, *, outcome: bool) -> Market:
        # RESOLVED dominates both ACTIVE and EXPIRED.
        market.resolved = True
        market.outcome = outcome
        market.status = MarketStatus.RESOLVED.value
        market.updated_at = utcnow()
        return market

    def mark_claimed(self, market_id: int, user_address: str) -> Position | None:
        position = self._session.get(Position, (market_id, user_address))
        if position is None:
            return None
        position.claimed = True
        return position

    def expire_markets(self, now_timestamp: int) -> int:
        """Move ACTIVE markets whose end time has passed to EXPIRED."""

        statement = (
            update(Market)
            .where(
                Market.status == MarketStatus.ACTIVE.value,
                Market.end_time <= now_timestamp,
            )
            .values(status=MarketStatus.EXPIRED.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(statement)
        return int(result.rowcount or 0)

    # ------------------------------------------------------------------
    # Queries

    def get_market(self, market_id: int) -> Market | None:
        return self._session.get(Market, market_id)

    def list_markets(
        self,
        *,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Market], int]:
        filters: list[Any] = []
        if status:
            filters.append(Market.status == status.upper())

        query = (
            select(Market)
            .where(*filters)
            .order_by(desc(Market.created_at), desc(Market.id))
            .limit(limit)
            .offset(offset)
        )
        total_query = select(func.count(Market.id)).where(*filters)

        markets = list(self._session.execute(query).scalars().all())
        total = self._session.execute(total_query).scalar_one()
        return markets, total

    def list_positions(self, market_id: int) -> list[Position]:
        query = (
            select(Position)
            .where(Position.market_id == market_id)
            .order_by(Position.user_address)
        )
        return list(self._session.execute(query).scalars().all())

    def list_bets(self, market_id: int) -> list[Bet]:
        query = (
            select(Bet)
            .where(Bet.market_id == market_id)
            .order_by(Bet.block_number, Bet.log_index)
        )
        return list(self._session.execute(query).scalars().all())


__all__ = ["MarketRepository"]
