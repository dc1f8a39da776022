"""
Upstream vault model that routes capital into and out of a strategy.

The vault holds idle collateral and is the engine's ``router``: only it may
deposit into or withdraw from the leverage position. Pushes and pulls run
through `Ledger.execute`, so a rejected withdraw leaves the idle balance
untouched.
"""

from __future__ import annotations

import logging

from ..core.leverage.errors import AccessDeniedError, InsufficientBalanceError
from ..core.leverage.types import Address, CallContext
from .ledger import Ledger
from .leverage_engine import LeverageEngine

logger = logging.getLogger(__name__)


class VaultAdapter:
    def __init__(self, engine: LeverageEngine, ledger: Ledger, *, manager: Address, address: Address = "vault") -> None:
        self.engine = engine
        self.ledger = ledger
        self.manager = manager
        self.address = address
        self.idle = 0
        ledger.register(self)

    def receive(self, amount: int) -> int:
        """Credit collateral arriving from depositors."""
        if amount <= 0:
            raise ValueError(f"amount must be positive: {amount}")
        self.idle += amount
        return self.idle

    def push(self, ctx: CallContext, amount: int) -> int:
        return self.ledger.execute(self._push, ctx, amount)

    def pull(self, ctx: CallContext, amount: int) -> int:
        return self.ledger.execute(self._pull, ctx, amount)

    def total_assets(self) -> int:
        """Idle collateral plus the strategy's equity, in collateral units."""
        return self.idle + self.engine.get_real_assets()

    def _push(self, ctx: CallContext, amount: int) -> int:
        self._require_manager(ctx)
        if amount > self.idle:
            raise InsufficientBalanceError("vault:idle", f"push {amount} exceeds idle balance {self.idle}")
        self.idle -= amount
        self.engine.deposit(self.ledger.context(ctx.origin, via=self.address), amount)
        logger.info("vault pushed %d into strategy", amount)
        return self.idle

    def _pull(self, ctx: CallContext, amount: int) -> int:
        self._require_manager(ctx)
        self.engine.withdraw(self.ledger.context(ctx.origin, via=self.address), amount)
        self.idle += amount
        logger.info("vault pulled %d from strategy", amount)
        return self.idle

    def _require_manager(self, ctx: CallContext) -> None:
        if ctx.sender != self.manager:
            raise AccessDeniedError("access:vault_manager", f"{ctx.sender} is not the vault manager")
