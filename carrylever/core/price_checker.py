"""
Fill-price integrity check.

Settlement venues negotiate prices off the synchronous path, so every fill is
compared against the TWAP before the engine books it. The check is symmetric:
a fill too far above TWAP is as suspicious as one too far below.
"""

from __future__ import annotations

from dataclasses import dataclass

from .leverage.math import BPS_SCALE, abs_val


def fill_within_tolerance(fill_price_e8: int, twap_price_e8: int, tolerance_bps: int) -> bool:
    """``|fill - twap| * 10000 <= tolerance * twap`` (cross-multiplied, no division)."""
    if fill_price_e8 <= 0 or twap_price_e8 <= 0:
        return False
    return abs_val(fill_price_e8 - twap_price_e8) * BPS_SCALE <= tolerance_bps * twap_price_e8


@dataclass(frozen=True)
class TwapPriceChecker:
    """Default price checker.

    ``max_tolerance_bps`` is a hard ceiling on whatever tolerance the engine
    asks for, so a misconfigured engine cannot widen the band past it.
    """

    max_tolerance_bps: int = 500

    def __post_init__(self) -> None:
        if not 0 <= self.max_tolerance_bps < BPS_SCALE:
            raise ValueError(f"max_tolerance_bps out of range: {self.max_tolerance_bps}")

    def validate(self, fill_price_e8: int, twap_price_e8: int, tolerance_bps: int) -> bool:
        effective = min(tolerance_bps, self.max_tolerance_bps)
        return fill_within_tolerance(fill_price_e8, twap_price_e8, effective)
