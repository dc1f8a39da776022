"""
In-memory lending market holding a single strategy position.

Accounting only: balances are integers, no interest accrues and nothing is
ever liquidated. Capacity is bounded two ways:

- `available_liquidity` of the debt asset caps borrowing (repayments refill it),
- an optional `max_ltv_bps` rejects borrows/withdrawals that would push
  debt / collateral value above the limit at the market's own price source.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..core.leverage.errors import InsufficientBalanceError, InsufficientLiquidityError
from ..core.leverage.math import BPS_SCALE, collateral_value
from ..core.leverage.types import AssetId
from .interfaces import PriceOracle

logger = logging.getLogger(__name__)


class InMemoryLendingMarket:
    def __init__(
        self,
        *,
        collateral_asset: AssetId,
        debt_asset: AssetId,
        available_liquidity: int,
        price_source: Optional[PriceOracle] = None,
        max_ltv_bps: Optional[int] = None,
    ) -> None:
        if collateral_asset == debt_asset:
            raise ValueError("collateral and debt assets must differ")
        if available_liquidity < 0:
            raise ValueError(f"available_liquidity must be non-negative: {available_liquidity}")
        if max_ltv_bps is not None and (price_source is None or not 0 < max_ltv_bps <= BPS_SCALE):
            raise ValueError("max_ltv_bps needs a price_source and must be in (0, 10000]")
        self.collateral_asset = collateral_asset
        self.debt_asset = debt_asset
        self.available_liquidity = available_liquidity
        self.price_source = price_source
        self.max_ltv_bps = max_ltv_bps
        self._collateral = 0
        self._debt = 0

    # -- Views ---------------------------------------------------------------

    def collateral_balance(self, asset: AssetId) -> int:
        self._require_asset(asset, self.collateral_asset)
        return self._collateral

    def debt_balance(self, asset: AssetId) -> int:
        self._require_asset(asset, self.debt_asset)
        return self._debt

    # -- Mutators ------------------------------------------------------------

    def supply(self, asset: AssetId, amount: int) -> int:
        self._require_asset(asset, self.collateral_asset)
        self._require_positive(amount)
        self._collateral += amount
        return self._collateral

    def withdraw(self, asset: AssetId, amount: int) -> int:
        self._require_asset(asset, self.collateral_asset)
        self._require_positive(amount)
        if amount > self._collateral:
            raise InsufficientBalanceError(
                "lending:collateral", f"withdraw {amount} exceeds supplied collateral {self._collateral}",
            )
        self._check_ltv(self._collateral - amount, self._debt)
        self._collateral -= amount
        return self._collateral

    def borrow(self, asset: AssetId, amount: int) -> int:
        self._require_asset(asset, self.debt_asset)
        self._require_positive(amount)
        if amount > self.available_liquidity:
            raise InsufficientLiquidityError(
                "lending:liquidity", f"borrow {amount} exceeds available liquidity {self.available_liquidity}",
            )
        self._check_ltv(self._collateral, self._debt + amount)
        self.available_liquidity -= amount
        self._debt += amount
        return self._debt

    def repay(self, asset: AssetId, amount: int) -> int:
        self._require_asset(asset, self.debt_asset)
        self._require_positive(amount)
        if amount > self._debt:
            raise InsufficientBalanceError("lending:debt", f"repay {amount} exceeds debt {self._debt}")
        self._debt -= amount
        self.available_liquidity += amount
        return self._debt

    # -- Helpers -------------------------------------------------------------

    def _check_ltv(self, collateral: int, debt: int) -> None:
        if self.max_ltv_bps is None or debt == 0:
            return
        price_e8 = self.price_source.read().price_e8
        limit = collateral_value(collateral, price_e8) * self.max_ltv_bps // BPS_SCALE
        if debt > limit:
            logger.debug("ltv check failed: debt=%d limit=%d", debt, limit)
            raise InsufficientLiquidityError("lending:ltv", f"debt {debt} would exceed LTV limit {limit}")

    @staticmethod
    def _require_asset(asset: AssetId, expected: AssetId) -> None:
        if asset != expected:
            raise ValueError(f"unsupported asset {asset!r}; expected {expected!r}")

    @staticmethod
    def _require_positive(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValueError(f"amount must be a positive int: {amount!r}")

    def __repr__(self) -> str:
        return f"InMemoryLendingMarket(collateral={self._collateral}, debt={self._debt})"
