from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator


def _amount_to_str(value: Any) -> str:
    if value is None:
        return "0"
    return str(int(Decimal(str(value))))


class MarketBase(BaseModel):
    id: int
    question: str | None = None
    creator: str | None = None
    end_time: int | None = None
    resolved: bool = False
    outcome: bool | None = None
    status: str
    yes_volume: str = "0"
    no_volume: str = "0"
    total_volume: str = "0"

    @field_validator("yes_volume", "no_volume", "total_volume", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> str:
        return _amount_to_str(value)


class Market(MarketBase):
    block_number: int | None = None
    block_timestamp: int | None = None
    log_index: int | None = None
    tx_hash: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MarketList(BaseModel):
    total: int
    items: list[Market]


class Position(BaseModel):
    market_id: int
    user_address: str
    yes_amount: str = "0"
    no_amount: str = "0"
    claimed: bool = False

    model_config = {"from_attributes": True}

    @field_validator("yes_amount", "no_amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> str:
        return _amount_to_str(value)


class Bet(BaseModel):
    id: int
    market_id: int
    user_address: str
    side: str
    amount: str
    tx_hash: str
    block_number: int
    block_timestamp: int | None = None
    log_index: int
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> str:
        return _amount_to_str(value)


class MarketDetail(Market):
    positions: list[Position] = Field(default_factory=list)
    bets: list[Bet] = Field(default_factory=list)
