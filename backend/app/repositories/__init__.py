"""Repository abstractions for database interactions."""

from .market_repository import MarketRepository

__all__ = [
    "MarketRepository",
]
