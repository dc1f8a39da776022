"""
In-memory batch-auction settlement venue.

Models the asynchronous, solver-settled swap protocol the engine trades
through:

1. `initiate(intent)` escrows the sell side and returns a swap id,
2. a solver later calls `settle(...)` (or `settle_at_price(...)`) off the
   engine's call path,
3. the engine reads the result with `settled_fill(swap_id)`.

An unsettled order can be cancelled, which releases the escrow. The venue
trusts whatever the solver reports; price integrity is the engine's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..core.leverage.errors import InvalidStateError
from ..core.leverage.math import PRICE_SCALE
from ..core.leverage.types import AssetId, Fill, SwapIntent
from ..state.balances import BalanceTable
from ..state.canonical import derive_id

logger = logging.getLogger(__name__)


@dataclass
class _Order:
    intent: SwapIntent
    nonce: int
    fill: Optional[Fill] = None
    cancelled: bool = False


class BatchAuctionGateway:
    def __init__(self, *, address: str = "batch-auction-gateway") -> None:
        self.address = address
        self.escrow = BalanceTable()
        self._orders: Dict[str, _Order] = {}
        self._nonce = 0

    def initiate(self, intent: SwapIntent) -> str:
        self._nonce += 1
        swap_id = derive_id(
            "swap-intent",
            {
                "owner": intent.owner,
                "sell_asset": intent.sell_asset,
                "buy_asset": intent.buy_asset,
                "sell_amount": intent.sell_amount,
                "min_buy_amount": intent.min_buy_amount,
                "valid_to": intent.valid_to,
                "nonce": self._nonce,
            },
        )
        self._orders[swap_id] = _Order(intent=intent, nonce=self._nonce)
        self.escrow.add(intent.owner, intent.sell_asset, intent.sell_amount)
        logger.debug("order %s: sell %d %s", swap_id, intent.sell_amount, intent.sell_asset)
        return swap_id

    def settle(self, swap_id: str, *, amount_out: int, fill_price_e8: int, now: Optional[int] = None) -> Fill:
        """Solver entry point: record the fill for an open order."""
        order = self._require_open(swap_id)
        if now is not None and now > order.intent.valid_to:
            raise InvalidStateError("venue:expired", f"order {swap_id} expired at {order.intent.valid_to}")
        if amount_out <= 0 or fill_price_e8 <= 0:
            raise ValueError("amount_out and fill_price_e8 must be positive")
        self.escrow.subtract(order.intent.owner, order.intent.sell_asset, order.intent.sell_amount)
        order.fill = Fill(amount_out=amount_out, fill_price_e8=fill_price_e8)
        logger.debug("order %s settled: out=%d price=%d", swap_id, amount_out, fill_price_e8)
        return order.fill

    def settle_at_price(
        self, swap_id: str, price_e8: int, *, priced_asset: AssetId, now: Optional[int] = None,
    ) -> Fill:
        """Fill at *price_e8*, quoted as units of the other asset per ``priced_asset`` unit."""
        order = self._require_open(swap_id)
        intent = order.intent
        if intent.buy_asset == priced_asset:
            amount_out = intent.sell_amount * PRICE_SCALE // price_e8
        elif intent.sell_asset == priced_asset:
            amount_out = intent.sell_amount * price_e8 // PRICE_SCALE
        else:
            raise ValueError(f"order {swap_id} does not trade {priced_asset!r}")
        return self.settle(swap_id, amount_out=amount_out, fill_price_e8=price_e8, now=now)

    def settled_fill(self, swap_id: str) -> Optional[Fill]:
        order = self._orders.get(swap_id)
        if order is None:
            raise InvalidStateError("venue:unknown_swap", f"unknown swap {swap_id}")
        if order.cancelled:
            return None
        return order.fill

    def cancel(self, swap_id: str) -> int:
        """Cancel an unsettled order and return the refunded sell amount."""
        order = self._require_open(swap_id)
        order.cancelled = True
        self.escrow.subtract(order.intent.owner, order.intent.sell_asset, order.intent.sell_amount)
        return order.intent.sell_amount

    def open_orders(self) -> List[str]:
        return sorted(
            (sid for sid, o in self._orders.items() if o.fill is None and not o.cancelled),
            key=lambda sid: self._orders[sid].nonce,
        )

    def intent_of(self, swap_id: str) -> SwapIntent:
        order = self._orders.get(swap_id)
        if order is None:
            raise InvalidStateError("venue:unknown_swap", f"unknown swap {swap_id}")
        return order.intent

    def _require_open(self, swap_id: str) -> _Order:
        order = self._orders.get(swap_id)
        if order is None:
            raise InvalidStateError("venue:unknown_swap", f"unknown swap {swap_id}")
        if order.cancelled:
            raise InvalidStateError("venue:cancelled", f"order {swap_id} was cancelled")
        if order.fill is not None:
            raise InvalidStateError("venue:already_settled", f"order {swap_id} is already settled")
        return order
