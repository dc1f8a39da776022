"""
Keeper-network automation registrar.

The registrar polls registered strategies (`check_upkeep`, read-only) and
forwards the recommended action to the engine (`perform_upkeep`). Forwarded
calls carry ``sender = registrar`` and ``origin = keeper``, so operations that
require a direct caller (ripcord) are rejected by the engine: the registrar
detects the emergency, a human executes it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..core.leverage.errors import InsolventPositionError, InvalidStateError, MarketDataError
from ..core.leverage.types import Address, Decision, SwapState
from .ledger import Ledger
from .leverage_engine import LeverageEngine

logger = logging.getLogger(__name__)

ACTION_NONE = "none"
ACTION_COMPLETE = "complete"


@dataclass(frozen=True)
class UpkeepCheck:
    strategy_id: str
    needed: bool
    action: str
    reason: str = ""


class AutomationRegistrar:
    def __init__(self, ledger: Ledger, *, address: Address = "automation-registrar") -> None:
        self.ledger = ledger
        self.address = address
        self._strategies: Dict[str, LeverageEngine] = {}

    def register(self, strategy_id: str, engine: LeverageEngine) -> None:
        if strategy_id in self._strategies:
            raise InvalidStateError("registrar:duplicate", f"strategy {strategy_id!r} already registered")
        self._strategies[strategy_id] = engine

    def strategies(self) -> List[str]:
        return sorted(self._strategies)

    def check_upkeep(self, strategy_id: str) -> UpkeepCheck:
        """Recommend the next action without touching any state."""
        engine = self._require(strategy_id)
        if engine.swap_state is not SwapState.IDLE:
            if engine.fill_available():
                return UpkeepCheck(strategy_id, True, ACTION_COMPLETE)
            return UpkeepCheck(strategy_id, False, ACTION_NONE, "settlement pending")
        try:
            decision = engine.should_rebalance()
        except (MarketDataError, InsolventPositionError) as exc:
            logger.warning("upkeep check for %s failed: %s", strategy_id, exc)
            return UpkeepCheck(strategy_id, False, ACTION_NONE, exc.reason)
        logger.debug("upkeep check for %s: %s", strategy_id, decision.value)
        return UpkeepCheck(strategy_id, decision is not Decision.NONE, decision.value)

    def perform_upkeep(self, strategy_id: str, keeper: Address) -> Optional[object]:
        """Run the checked action atomically on behalf of *keeper*."""
        engine = self._require(strategy_id)
        check = self.check_upkeep(strategy_id)
        if not check.needed:
            raise InvalidStateError("registrar:not_needed", f"no upkeep needed for {strategy_id!r}")

        ctx = self.ledger.context(keeper, via=self.address)
        action = {
            ACTION_COMPLETE: engine.complete_swap,
            Decision.REBALANCE.value: engine.rebalance,
            Decision.ITERATE.value: engine.iterate_rebalance,
            Decision.RIPCORD.value: engine.ripcord,
        }[check.action]
        logger.info("performing %s upkeep for %s via keeper %s", check.action, strategy_id, keeper)
        return self.ledger.execute(action, ctx)

    def scan(self) -> List[UpkeepCheck]:
        return [self.check_upkeep(strategy_id) for strategy_id in self.strategies()]

    def _require(self, strategy_id: str) -> LeverageEngine:
        engine = self._strategies.get(strategy_id)
        if engine is None:
            raise InvalidStateError("registrar:unknown", f"unknown strategy {strategy_id!r}")
        return engine
