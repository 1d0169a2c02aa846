"""Runtime registry for chain reader strategies."""

from __future__ import annotations

from typing import Callable, Dict

from app.core.config import Settings

from .base import ChainReader
from .block_scan import BlockScanReader
from .log_filter import LogFilterReader


class UnknownChainReaderError(LookupError):
    """Raised when configuration names an unregistered reader strategy."""


ReaderFactory = Callable[[Settings], ChainReader]

_READERS: Dict[str, ReaderFactory] = {}


def register_reader(name: str, factory: ReaderFactory) -> None:
    """Register or replace a reader factory."""

    _READERS[name.lower()] = factory


def available_readers() -> tuple[str, ...]:
    return tuple(sorted(_READERS))


def build_chain_reader(settings: Settings) -> ChainReader:
    """Instantiate the reader selected by ``settings.chain_reader``."""

    try:
        factory = _READERS[settings.chain_reader.lower()]
    except KeyError as exc:
        raise UnknownChainReaderError(
            f"Chain reader '{settings.chain_reader}' is not registered"
        ) from exc
    return factory(settings)


def _log_filter_factory(settings: Settings) -> ChainReader:
    return LogFilterReader(
        settings.rpc_url,
        timeout=settings.rpc_timeout_seconds,
        poa_middleware=settings.rpc_poa_middleware,
    )


def _block_scan_factory(settings: Settings) -> ChainReader:
    return BlockScanReader(
        settings.resolved_tendermint_rpc_url,
        timeout=settings.rpc_timeout_seconds,
    )


register_reader(LogFilterReader.name, _log_filter_factory)
register_reader(BlockScanReader.name, _block_scan_factory)


__all__ = [
    "ReaderFactory",
    "UnknownChainReaderError",
    "available_readers",
    "build_chain_reader",
    "register_reader",
]
