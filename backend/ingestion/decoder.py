from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak, to_checksum_address

from app.core.errors import DecodeCorruptError
from app.domain import (
    BetPlaced,
    DecodedEvent,
    MarketCreated,
    MarketEvent,
    MarketResolved,
    RawLog,
    WinningsClaimed,
)

from .abi import PREDICTION_MARKET_EVENTS, event_signature

_DYNAMIC_TYPES = ("string", "bytes")


def _is_dynamic(type_: str) -> bool:
    return type_ in _DYNAMIC_TYPES or type_.endswith("]")


_BUILDERS: dict[str, Callable[[Mapping[str, Any]], MarketEvent]] = {
    "MarketCreated": lambda args: MarketCreated(
        market_id=int(args["marketId"]),
        question=str(args["question"]),
        creator=to_checksum_address(args["creator"]),
        end_time=int(args["endTime"]),
    ),
    "BetPlaced": lambda args: BetPlaced(
        market_id=int(args["marketId"]),
        user=to_checksum_address(args["user"]),
        is_yes=bool(args["isYes"]),
        amount=int(args["amount"]),
    ),
    "MarketResolved": lambda args: MarketResolved(
        market_id=int(args["marketId"]),
        outcome=bool(args["outcome"]),
    ),
    "WinningsClaimed": lambda args: WinningsClaimed(
        market_id=int(args["marketId"]),
        user=to_checksum_address(args["user"]),
        amount=int(args["amount"]),
    ),
}


class EventDecoder:
    """Match logs against known event signatures and decode their arguments."""

    def __init__(self, event_abis: Iterable[Mapping[str, Any]] = PREDICTION_MARKET_EVENTS) -> None:
        self._by_topic: dict[bytes, Mapping[str, Any]] = {}
        for event_abi in event_abis:
            if event_abi.get("anonymous") or event_abi.get("name") not in _BUILDERS:
                continue
            self._by_topic[keccak(text=event_signature(dict(event_abi)))] = event_abi

    @property
    def event_names(self) -> tuple[str, ...]:
        return tuple(sorted(str(abi["name"]) for abi in self._by_topic.values()))

    def topic_for(self, name: str) -> bytes:
        for topic, event_abi in self._by_topic.items():
            if event_abi["name"] == name:
                return topic
        raise KeyError(name)

    def decode(self, log: RawLog) -> DecodedEvent | None:
        """Return the typed event for ``log`` or ``None`` if its signature is unknown.

        Raises :class:`DecodeCorruptError` when the signature matches but the
        topics or data cannot be decoded.
        """

        if not log.topics:
            return None
        event_abi = self._by_topic.get(bytes(log.topics[0]))
        if event_abi is None:
            return None

        name = str(event_abi["name"])
        try:
            args = self._decode_args(event_abi, log)
            event = _BUILDERS[name](args)
        except (DecodingError, ValueError, TypeError, KeyError, OverflowError) as exc:
            raise DecodeCorruptError(
                f"Failed to decode {name} at block {log.block_number} log {log.log_index}: {exc}"
            ) from exc
        return DecodedEvent(name=name, event=event, log=log)

    @staticmethod
    def _decode_args(event_abi: Mapping[str, Any], log: RawLog) -> dict[str, Any]:
        inputs = list(event_abi.get("inputs", []))
        indexed = [item for item in inputs if item.get("indexed")]
        non_indexed = [item for item in inputs if not item.get("indexed")]

        topics = log.topics[1:]
        if len(topics) != len(indexed):
            raise ValueError(
                f"expected {len(indexed)} indexed topics, got {len(topics)}"
            )

        args: dict[str, Any] = {}
        for item, topic in zip(indexed, topics):
            if _is_dynamic(item["type"]):
                # Indexed dynamic values are only available as their keccak hash.
                args[item["name"]] = bytes(topic)
            else:
                (args[item["name"]],) = abi_decode([item["type"]], bytes(topic))

        values = abi_decode([item["type"] for item in non_indexed], log.data)
        for item, value in zip(non_indexed, values):
            args[item["name"]] = value
        return args


__all__ = ["EventDecoder"]
