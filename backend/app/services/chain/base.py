"""Reader contract for chain node integrations."""

from __future__ import annotations

from typing import Protocol, Sequence

from app.domain import BlockHeader, RawLog


class ChainReader(Protocol):
    """Interface implemented by chain reader strategies.

    Every method raises :class:`app.core.errors.ChainUnavailableError` on
    transport failures, timeouts, and node-side errors.
    """

    name: str

    def latest_height(self) -> int:
        """Return the current chain head height."""

    def block_at(self, height: int) -> BlockHeader:
        """Return the header of the block at ``height``."""

    def logs_in_range(
        self, from_height: int, to_height: int, contract_address: str
    ) -> Sequence[RawLog]:
        """Return contract logs in ``[from_height, to_height]`` ordered by position."""

    def close(self) -> None:
        """Release network resources held by the reader."""


def normalize_hash(value: object) -> str:
    """Render a hash as a lowercase ``0x``-prefixed hex string."""

    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value or "").strip()
    if text.lower().startswith("0x"):
        text = text[2:]
    return "0x" + text.lower()


def sort_logs(logs: Sequence[RawLog]) -> list[RawLog]:
    return sorted(logs, key=lambda log: log.position)


__all__ = ["ChainReader", "normalize_hash", "sort_logs"]
