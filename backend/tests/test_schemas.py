from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from app.schemas import Bet, Market, MarketBase, MarketDetail, Position


def test_market_base_renders_volumes_as_integer_strings():
    """Verify that NUMERIC volumes are exposed as exact decimal strings."""
    market = MarketBase(
        id=1,
        question="Will it rain?",
        status="ACTIVE",
        yes_volume=Decimal("1000000000000000000000"),
        no_volume=Decimal("0"),
        total_volume=Decimal("1000000000000000000000"),
    )
    assert market.yes_volume == "1000000000000000000000"
    assert market.no_volume == "0"
    assert market.total_volume == "1000000000000000000000"


def test_market_base_defaults_missing_volume_to_zero():
    market = MarketBase(id=2, status="ACTIVE", yes_volume=None)
    assert market.yes_volume == "0"
    assert market.resolved is False
    assert market.outcome is None


def test_market_requires_status():
    with pytest.raises(ValidationError):
        MarketBase(id=3)


def test_position_and_bet_coerce_amounts():
    position = Position(
        market_id=1,
        user_address="0x1234567890123456789012345678901234567890",
        yes_amount=Decimal("250"),
        no_amount=7,
    )
    assert position.yes_amount == "250"
    assert position.no_amount == "7"
    assert position.claimed is False

    bet = Bet(
        id=1,
        market_id=1,
        user_address="0x1234567890123456789012345678901234567890",
        side="YES",
        amount=Decimal("250"),
        tx_hash="0xabc",
        block_number=100,
        log_index=0,
        created_at=datetime.now(),
    )
    assert bet.amount == "250"


def test_market_detail_defaults_to_empty_collections():
    now = datetime.now()
    detail = MarketDetail(id=1, status="RESOLVED", created_at=now, updated_at=now)
    assert detail.positions == []
    assert detail.bets == []
    assert isinstance(detail, Market)
