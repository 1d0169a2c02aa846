"""Event ABI of the prediction market contract."""

from __future__ import annotations

from typing import Any


def _input(name: str, type_: str, *, indexed: bool = False) -> dict[str, Any]:
    return {"name": name, "type": type_, "indexed": indexed}


PREDICTION_MARKET_EVENTS: tuple[dict[str, Any], ...] = (
    {
        "type": "event",
        "name": "MarketCreated",
        "anonymous": False,
        "inputs": [
            _input("marketId", "uint256", indexed=True),
            _input("question", "string"),
            _input("creator", "address", indexed=True),
            _input("endTime", "uint256"),
        ],
    },
    {
        "type": "event",
        "name": "BetPlaced",
        "anonymous": False,
        "inputs": [
            _input("marketId", "uint256", indexed=True),
            _input("user", "address", indexed=True),
            _input("isYes", "bool"),
            _input("amount", "uint256"),
        ],
    },
    {
        "type": "event",
        "name": "MarketResolved",
        "anonymous": False,
        "inputs": [
            _input("marketId", "uint256", indexed=True),
            _input("outcome", "bool"),
        ],
    },
    {
        "type": "event",
        "name": "WinningsClaimed",
        "anonymous": False,
        "inputs": [
            _input("marketId", "uint256", indexed=True),
            _input("user", "address", indexed=True),
            _input("amount", "uint256"),
        ],
    },
)


def event_signature(event_abi: dict[str, Any]) -> str:
    """Return the canonical ``Name(type,...)`` signature of an event ABI."""

    types = ",".join(item["type"] for item in event_abi.get("inputs", []))
    return f"{event_abi['name']}({types})"


__all__ = ["PREDICTION_MARKET_EVENTS", "event_signature"]
