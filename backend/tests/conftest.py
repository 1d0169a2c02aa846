from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Callable

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from eth_abi import encode
from eth_utils import to_checksum_address
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.errors import ChainUnavailableError
from app.db import Base, create_session_factory
from app.domain import BlockHeader, RawLog
from ingestion.abi import PREDICTION_MARKET_EVENTS
from ingestion.decoder import EventDecoder

CONTRACT_ADDRESS = to_checksum_address("0x8285d85d40d80607a38a56c69156f637ec0fe81d")
ALICE = to_checksum_address("0x1bacaecc83ed515b77a8d39f24e46e05c8bbc920")
BOB = "0x0987654321098765432109876543210987654321"
CAROL = "0x1234567890123456789012345678901234567890"


class FakeChainReader:
    """In-memory chain with optional failure injection."""

    name = "fake"

    def __init__(self, head: int, logs: list[RawLog] | None = None) -> None:
        self.head = head
        self.logs = list(logs or [])
        self.unavailable_blocks: set[int] = set()
        self.fail_latest = False
        self.block_calls: list[int] = []
        self.range_calls: list[tuple[int, int]] = []

    def latest_height(self) -> int:
        if self.fail_latest:
            raise ChainUnavailableError("node overloaded")
        return self.head

    def block_at(self, height: int) -> BlockHeader:
        self.block_calls.append(height)
        if height in self.unavailable_blocks or height > self.head:
            raise ChainUnavailableError(f"block {height} unavailable")
        return BlockHeader(
            number=height,
            hash=f"0x{height:064x}",
            parent_hash=f"0x{height - 1:064x}",
            timestamp=1_700_000_000 + height,
        )

    def logs_in_range(self, from_height: int, to_height: int, contract_address: str) -> list[RawLog]:
        self.range_calls.append((from_height, to_height))
        matching = [
            log
            for log in self.logs
            if from_height <= log.block_number <= to_height
            and log.address.lower() == contract_address.lower()
        ]
        return sorted(matching, key=lambda log: log.position)


class InMemoryCheckpointStore:
    def __init__(self, value: int | None = None) -> None:
        self.value = value
        self.history: list[int] = []

    def get(self) -> int | None:
        return self.value

    def set(self, height: int) -> None:
        self.value = height
        self.history.append(height)


def _event_abi(name: str) -> dict[str, Any]:
    return next(item for item in PREDICTION_MARKET_EVENTS if item["name"] == name)


def build_log(
    name: str,
    *,
    block_number: int,
    log_index: int = 0,
    tx_hash: str | None = None,
    address: str = CONTRACT_ADDRESS,
    **args: Any,
) -> RawLog:
    """Encode a contract log the way the node would return it."""

    event_abi = _event_abi(name)
    topics = [EventDecoder().topic_for(name)]
    data_types: list[str] = []
    data_values: list[Any] = []
    for item in event_abi["inputs"]:
        value = args[item["name"]]
        if item["indexed"]:
            topics.append(encode([item["type"]], [value]))
        else:
            data_types.append(item["type"])
            data_values.append(value)
    return RawLog(
        address=address,
        topics=tuple(topics),
        data=encode(data_types, data_values),
        block_number=block_number,
        tx_hash=tx_hash or f"0x{block_number:032x}{log_index:032x}",
        log_index=log_index,
    )


@pytest.fixture
def make_log() -> Callable[..., RawLog]:
    return build_log


@pytest.fixture
def decoder() -> EventDecoder:
    return EventDecoder()


@pytest.fixture
def engine():
    from app import models  # noqa: F401

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def checkpoint_store() -> InMemoryCheckpointStore:
    return InMemoryCheckpointStore()


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    settings = Settings(
        _env_file=None,
        database_url="sqlite://",
        rpc_url="http://localhost:8545",
        contract_address=CONTRACT_ADDRESS,
        redis_url="redis://localhost:6379/15",
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings
