"""Durable record of the last fully processed block height."""

from __future__ import annotations

from typing import Protocol

import redis
from loguru import logger

from app.core.errors import CheckpointStoreError

DEFAULT_CHECKPOINT_KEY = "LAST_PROCESSED_BLOCK"


class CheckpointStore(Protocol):
    """Single-writer key/value checkpoint owned by the sync loop."""

    def get(self) -> int | None:
        """Return the stored height or ``None`` on a cold start."""

    def set(self, height: int) -> None:
        """Persist ``height`` as the last fully processed block."""


class RedisCheckpointStore:
    """Checkpoint held as a decimal string under one Redis key.

    Redis lives outside the relational store so a rolled-back block
    transaction never rewinds or advances the checkpoint on its own.
    """

    def __init__(self, client: redis.Redis, key: str = DEFAULT_CHECKPOINT_KEY) -> None:
        self.client = client
        self.key = key

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        key: str = DEFAULT_CHECKPOINT_KEY,
        timeout: float | None = None,
    ) -> "RedisCheckpointStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client, key=key)

    def get(self) -> int | None:
        try:
            raw = self.client.get(self.key)
        except redis.RedisError as exc:
            raise CheckpointStoreError(f"Failed to read checkpoint {self.key}: {exc}") from exc
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return int(str(raw).strip())
        except ValueError as exc:
            raise CheckpointStoreError(
                f"Checkpoint {self.key} holds a non-numeric value: {raw!r}"
            ) from exc

    def set(self, height: int) -> None:
        if height < 0:
            raise CheckpointStoreError(f"Refusing to store negative checkpoint {height}")
        try:
            self.client.set(self.key, str(int(height)))
        except redis.RedisError as exc:
            raise CheckpointStoreError(f"Failed to write checkpoint {self.key}: {exc}") from exc
        logger.debug("Checkpoint {} set to {}", self.key, height)

    def close(self) -> None:
        self.client.close()


__all__ = ["CheckpointStore", "DEFAULT_CHECKPOINT_KEY", "RedisCheckpointStore"]
