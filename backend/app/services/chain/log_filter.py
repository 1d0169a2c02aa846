"""Chain reader backed by the node's address-indexed ``eth_getLogs`` filter."""

from __future__ import annotations

from typing import Any, Mapping

from eth_utils import to_bytes, to_checksum_address
from loguru import logger
from web3 import Web3
from web3.exceptions import Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from app.core.errors import ChainUnavailableError
from app.domain import BlockHeader, RawLog

from .base import normalize_hash, sort_logs

# requests.RequestException derives from OSError.
_TRANSPORT_ERRORS = (Web3Exception, ValueError, OSError)


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if value in (None, ""):
        return b""
    return to_bytes(hexstr=str(value))


class LogFilterReader:
    """Fetch logs with a single range query per batch, filtered by address."""

    name = "log_filter"

    def __init__(
        self,
        rpc_url: str | None = None,
        *,
        timeout: float = 10.0,
        poa_middleware: bool = False,
        web3: Web3 | None = None,
    ) -> None:
        if web3 is None:
            if not rpc_url:
                raise ValueError("rpc_url is required when no Web3 instance is supplied")
            web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
            if poa_middleware:
                web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        self.w3 = web3
        self.timeout = timeout

    def latest_height(self) -> int:
        try:
            return int(self.w3.eth.block_number)
        except _TRANSPORT_ERRORS as exc:
            raise ChainUnavailableError(f"eth_blockNumber failed: {exc}") from exc

    def block_at(self, height: int) -> BlockHeader:
        try:
            block = self.w3.eth.get_block(height)
        except _TRANSPORT_ERRORS as exc:
            raise ChainUnavailableError(f"eth_getBlockByNumber({height}) failed: {exc}") from exc
        if not block:
            raise ChainUnavailableError(f"Block {height} is not available yet")
        return self._to_header(block)

    def logs_in_range(
        self, from_height: int, to_height: int, contract_address: str
    ) -> list[RawLog]:
        params = {
            "fromBlock": from_height,
            "toBlock": to_height,
            "address": to_checksum_address(contract_address),
        }
        logger.debug("eth_getLogs {}", params)
        try:
            entries = self.w3.eth.get_logs(params)
        except _TRANSPORT_ERRORS as exc:
            raise ChainUnavailableError(
                f"eth_getLogs({from_height}-{to_height}) failed: {exc}"
            ) from exc

        logs = [self._to_raw_log(entry) for entry in entries if not entry.get("removed")]
        return sort_logs(logs)

    def close(self) -> None:
        provider = getattr(self.w3, "provider", None)
        disconnect = getattr(provider, "disconnect", None)
        if callable(disconnect):
            disconnect()

    @staticmethod
    def _to_header(block: Mapping[str, Any]) -> BlockHeader:
        parent_hash = block.get("parentHash")
        return BlockHeader(
            number=int(block["number"]),
            hash=normalize_hash(block["hash"]),
            parent_hash=normalize_hash(parent_hash) if parent_hash is not None else None,
            timestamp=int(block["timestamp"]),
        )

    @staticmethod
    def _to_raw_log(entry: Mapping[str, Any]) -> RawLog:
        block_hash = entry.get("blockHash")
        return RawLog(
            address=to_checksum_address(entry["address"]),
            topics=tuple(_as_bytes(topic) for topic in entry.get("topics") or ()),
            data=_as_bytes(entry.get("data")),
            block_number=int(entry["blockNumber"]),
            tx_hash=normalize_hash(entry["transactionHash"]),
            log_index=int(entry["logIndex"]),
            block_hash=normalize_hash(block_hash) if block_hash is not None else None,
        )


__all__ = ["LogFilterReader"]
