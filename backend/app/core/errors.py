"""Failure taxonomy shared by the chain sync components."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for errors that abort or degrade a sync tick."""


class ChainUnavailableError(SyncError):
    """Raised when the chain node cannot be reached or answers with an error."""


class DecodeCorruptError(SyncError):
    """Raised when a log matches a known event signature but fails to decode."""


class PersistenceError(SyncError):
    """Raised when a block transaction against the relational store fails."""


class CheckpointStoreError(SyncError):
    """Raised when the checkpoint cannot be read or written."""


__all__ = [
    "ChainUnavailableError",
    "CheckpointStoreError",
    "DecodeCorruptError",
    "PersistenceError",
    "SyncError",
]
