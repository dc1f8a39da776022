"""
In-memory price feeds.

`ManualPriceOracle` returns whatever was last pushed. `TimeWeightedOracle`
smooths pushed observations into a time-weighted average over a trailing
window, extending the latest observation up to the ledger clock.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from ..core.leverage.types import PriceReading


class ManualPriceOracle:
    def __init__(self, price_e8: int = 0, timestamp: int = 0) -> None:
        self._reading = PriceReading(price_e8=price_e8, timestamp=timestamp)

    def push(self, price_e8: int, timestamp: int) -> None:
        self._reading = PriceReading(price_e8=price_e8, timestamp=timestamp)

    def read(self) -> PriceReading:
        return self._reading

    def __repr__(self) -> str:
        return f"ManualPriceOracle({self._reading.price_e8} @ {self._reading.timestamp})"


class TimeWeightedOracle:
    """
    Trailing-window TWAP over pushed observations.

    The reading's timestamp is the latest observation's, so a feed that stops
    updating goes stale even though the average can still be computed.
    """

    def __init__(self, window: int, clock: Optional[Callable[[], int]] = None) -> None:
        if window <= 0:
            raise ValueError(f"window must be positive: {window}")
        self.window = window
        self._clock = clock
        self._observations: List[Tuple[int, int]] = []

    def push(self, price_e8: int, timestamp: int) -> None:
        if self._observations and timestamp < self._observations[-1][0]:
            raise ValueError(
                f"observations must be time-ordered: {timestamp} < {self._observations[-1][0]}"
            )
        self._observations.append((timestamp, price_e8))
        self._prune(timestamp)

    def _prune(self, now: int) -> None:
        # Keep the last observation at or before the window start; it carries the
        # price into the window.
        start = now - self.window
        while len(self._observations) > 1 and self._observations[1][0] <= start:
            self._observations.pop(0)

    def read(self) -> PriceReading:
        if not self._observations:
            return PriceReading(price_e8=0, timestamp=0)
        last_ts, last_price = self._observations[-1]
        end = max(last_ts, self._clock()) if self._clock is not None else last_ts
        start = end - self.window

        total = 0
        weight = 0
        for i, (ts, price) in enumerate(self._observations):
            seg_start = max(ts, start)
            seg_end = self._observations[i + 1][0] if i + 1 < len(self._observations) else end
            if seg_end <= seg_start:
                continue
            total += price * (seg_end - seg_start)
            weight += seg_end - seg_start

        if weight == 0:
            return PriceReading(price_e8=last_price, timestamp=last_ts)
        return PriceReading(price_e8=total // weight, timestamp=last_ts)
