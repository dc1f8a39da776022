"""
Oracle freshness kernel.

This module is intentionally small and pure:
- The functional core decides whether a price reading may be used.
- The imperative shell is responsible for fetching readings and the clock.

A reading time-stamped in the future is treated as stale: the ledger clock is
authoritative and a feed ahead of it cannot be trusted.
"""

from __future__ import annotations

from .leverage.errors import InvalidPriceError, StaleOracleError
from .leverage.types import PriceReading


def is_fresh(price_timestamp: int, current_timestamp: int, max_age: int) -> bool:
    """Return True if the price timestamp is within the max staleness window."""
    if current_timestamp < 0:
        raise ValueError(f"current_timestamp must be non-negative: {current_timestamp}")
    if max_age <= 0:
        raise ValueError(f"max_age must be positive: {max_age}")
    if price_timestamp > current_timestamp:
        return False
    return (current_timestamp - price_timestamp) <= max_age


def require_fresh(reading: PriceReading, current_timestamp: int, max_age: int, *, source: str) -> int:
    """Return the reading's price, or raise if it is stale or not positive."""
    if not is_fresh(reading.timestamp, current_timestamp, max_age):
        raise StaleOracleError(
            f"stale:{source}",
            f"{source} price at t={reading.timestamp} is older than {max_age}s at t={current_timestamp}",
        )
    if reading.price_e8 <= 0:
        raise InvalidPriceError(f"price:{source}", f"{source} price must be positive: {reading.price_e8}")
    return reading.price_e8
