"""Chain reader strategies exposed to the sync loop."""

from .base import ChainReader
from .block_scan import BlockScanReader
from .log_filter import LogFilterReader
from .registry import (
    UnknownChainReaderError,
    available_readers,
    build_chain_reader,
    register_reader,
)

__all__ = [
    "BlockScanReader",
    "ChainReader",
    "LogFilterReader",
    "UnknownChainReaderError",
    "available_readers",
    "build_chain_reader",
    "register_reader",
]
