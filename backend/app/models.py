from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from .db import Base


class Uint256(TypeDecorator):
    """Exact uint256 column: NUMERIC(78, 0) where supported, decimal text on SQLite.

    SQLite has no native decimal type and SQLAlchemy would round values above
    2**53 through float.
    """

    impl = Numeric(78, 0)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(78))
        return dialect.type_descriptor(Numeric(78, 0))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        amount = int(value)
        if dialect.name == "sqlite":
            return str(amount)
        return Decimal(amount)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(Decimal(str(value))))


AMOUNT = Uint256()


class MarketStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    RESOLVED = "RESOLVED"


class BetSide(str, Enum):
    YES = "YES"
    NO = "NO"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Block(Base):
    __tablename__ = "blocks"

    number: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    hash: Mapped[str] = mapped_column(String(66), nullable=False)
    parent_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)


class Market(Base):
    __tablename__ = "markets"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    question: Mapped[str | None] = mapped_column(Text, nullable=True)
    creator: Mapped[str | None] = mapped_column(String(42), nullable=True)
    end_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    outcome: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=MarketStatus.ACTIVE.value
    )
    yes_volume: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=0)
    no_volume: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=0)
    total_volume: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=0)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    block_timestamp: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    log_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    bets: Mapped[list["Bet"]] = relationship("Bet", back_populates="market")
    positions: Mapped[list["Position"]] = relationship("Position", back_populates="market")

    __table_args__ = (
        Index("ix_markets_status_end_time", "status", "end_time"),
        Index("ix_markets_created_at", "created_at"),
    )


class Bet(Base):
    __tablename__ = "bets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    market_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("markets.id"), nullable=False)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False)
    side: Mapped[str] = mapped_column(String(3), nullable=False)
    amount: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_timestamp: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    market: Mapped[Market] = relationship("Market", back_populates="bets")

    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_bets_tx_log"),
        Index("ix_bets_market_id", "market_id"),
    )


class Position(Base):
    __tablename__ = "positions"

    market_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("markets.id"), primary_key=True, autoincrement=False
    )
    user_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    yes_amount: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=0)
    no_amount: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=0)
    claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    market: Mapped[Market] = relationship("Market", back_populates="positions")
