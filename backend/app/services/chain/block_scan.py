"""Chain reader that scans Tendermint block results for embedded EVM logs.

Some chains expose an EVM execution layer on top of Tendermint without an
address-indexed log filter. Their executed transactions still carry every
emitted log inside the ABCI events of ``/block_results``: an event of type
``tx_log`` whose ``txLog`` attribute holds the log as JSON, with ``data``
encoded as base64. This reader fetches one block at a time and rebuilds
:class:`RawLog` values from those payloads.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Iterable

import httpx
from dateutil import parser as date_parser
from eth_utils import to_bytes, to_checksum_address
from loguru import logger

from app.core.errors import ChainUnavailableError
from app.domain import BlockHeader, RawLog

from .base import normalize_hash, sort_logs

DEFAULT_EVENT_TYPE = "tx_log"
DEFAULT_ATTRIBUTE_KEY = "txLog"


def _b64_text(value: str) -> str | None:
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None


def _decode_data(value: Any) -> bytes:
    if value in (None, ""):
        return b""
    text = str(value)
    if text.startswith("0x"):
        return to_bytes(hexstr=text)
    return base64.b64decode(text, validate=True)


class BlockScanReader:
    """Fetch block headers and executed-transaction results block by block."""

    name = "block_scan"

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = 10.0,
        event_type: str = DEFAULT_EVENT_TYPE,
        attribute_key: str = DEFAULT_ATTRIBUTE_KEY,
        client: httpx.Client | None = None,
    ) -> None:
        if client is None:
            if not base_url:
                raise ValueError("base_url is required when no httpx client is supplied")
            client = httpx.Client(base_url=base_url, timeout=timeout)
        self.client = client
        self.timeout = timeout
        self.event_type = event_type
        self.attribute_key = attribute_key

    def _rpc(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        logger.debug("Tendermint GET {} params={}", path, params)
        try:
            response = self.client.get(path, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ChainUnavailableError(f"Tendermint {path} request failed: {exc}") from exc

        if not isinstance(payload, dict):
            raise ChainUnavailableError(f"Tendermint {path} returned a non-object payload")
        if payload.get("error"):
            raise ChainUnavailableError(f"Tendermint {path} error: {payload['error']}")
        result = payload.get("result")
        if not isinstance(result, dict):
            raise ChainUnavailableError(f"Tendermint {path} response is missing a result")
        return result

    def latest_height(self) -> int:
        result = self._rpc("/status")
        try:
            return int(result["sync_info"]["latest_block_height"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ChainUnavailableError("Malformed /status response") from exc

    def block_at(self, height: int) -> BlockHeader:
        result = self._rpc("/block", {"height": height})
        try:
            header = result["block"]["header"]
            block_hash = result["block_id"]["hash"]
            parent = (header.get("last_block_id") or {}).get("hash")
            timestamp = date_parser.isoparse(header["time"]).timestamp()
            return BlockHeader(
                number=int(header["height"]),
                hash=normalize_hash(block_hash),
                parent_hash=normalize_hash(parent) if parent else None,
                timestamp=int(timestamp),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ChainUnavailableError(f"Malformed /block response for height {height}") from exc

    def logs_in_range(
        self, from_height: int, to_height: int, contract_address: str
    ) -> list[RawLog]:
        target = contract_address.lower()
        logs: list[RawLog] = []
        for height in range(from_height, to_height + 1):
            logs.extend(
                log for log in self._logs_at(height) if log.address.lower() == target
            )
        return sort_logs(logs)

    def _logs_at(self, height: int) -> list[RawLog]:
        result = self._rpc("/block_results", {"height": height})
        logs: list[RawLog] = []
        fallback_index = 0
        for tx_result in result.get("txs_results") or []:
            if not isinstance(tx_result, dict):
                continue
            try:
                code = int(tx_result.get("code") or 0)
            except (TypeError, ValueError) as exc:
                raise ChainUnavailableError(
                    f"Malformed tx result code at height {height}: {tx_result.get('code')!r}"
                ) from exc
            # Reverted transactions emit no logs.
            if code != 0:
                continue
            for payload in self._tx_log_payloads(tx_result.get("events") or []):
                log = self._parse_tx_log(payload, height=height, fallback_index=fallback_index)
                fallback_index += 1
                if log is not None:
                    logs.append(log)
        return logs

    def _tx_log_payloads(self, events: Iterable[Any]) -> Iterable[str]:
        for event in events:
            if not isinstance(event, dict) or event.get("type") != self.event_type:
                continue
            for attribute in event.get("attributes") or []:
                if not isinstance(attribute, dict):
                    continue
                key = attribute.get("key")
                value = attribute.get("value")
                if key == self.attribute_key:
                    yield str(value or "")
                    continue
                # Tendermint < 0.37 base64-encodes attribute keys and values.
                if isinstance(key, str) and _b64_text(key) == self.attribute_key:
                    decoded_value = _b64_text(str(value or ""))
                    if decoded_value is not None:
                        yield decoded_value

    def _parse_tx_log(self, payload: str, *, height: int, fallback_index: int) -> RawLog | None:
        try:
            entry = json.loads(payload)
            topics = tuple(to_bytes(hexstr=topic) for topic in entry.get("topics") or ())
            log_index = entry.get("logIndex", entry.get("index", fallback_index))
            return RawLog(
                address=to_checksum_address(entry["address"]),
                topics=topics,
                data=_decode_data(entry.get("data")),
                block_number=int(entry.get("blockNumber") or height),
                tx_hash=normalize_hash(entry.get("transactionHash") or entry.get("txHash")),
                log_index=int(log_index),
                block_hash=normalize_hash(entry["blockHash"]) if entry.get("blockHash") else None,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Skipping malformed txLog at height {}: {}", height, exc)
            return None

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "BlockScanReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["BlockScanReader", "DEFAULT_ATTRIBUTE_KEY", "DEFAULT_EVENT_TYPE"]
