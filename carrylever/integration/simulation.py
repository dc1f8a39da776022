"""
End-to-end simulation against the in-memory reference collaborators.

`build_strategy` wires one engine to a lending market, spot + TWAP oracles, a
batch-auction gateway, a vault and the automation registrar. `run_simulation`
walks a price path: at every step it publishes the price, lets a solver settle
open orders at spot, and lets keepers act on whatever `should_rebalance`
recommends until nothing is left to do.

Keepers act the way they would on a live network:
- rebalance / iterate / complete go through the registrar,
- ripcord is called directly by a keeper (the registrar cannot relay it).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..core.leverage.errors import InsolventPositionError, MarketDataError
from ..core.leverage.types import Address, Decision, SwapState
from ..core.price_checker import TwapPriceChecker
from ..state.balances import NATIVE_ASSET
from .automation import AutomationRegistrar
from .capital_router import VaultAdapter
from .config import LoadedConfig
from .interfaces import StrategyConfig
from .ledger import Ledger, LedgerEvent
from .lending_market import InMemoryLendingMarket
from .leverage_engine import LeverageEngine
from .oracles import ManualPriceOracle, TimeWeightedOracle
from .swap_gateway import BatchAuctionGateway

logger = logging.getLogger(__name__)

STRATEGY_ID = "carry"
KEEPER: Address = "keeper"


@dataclass
class Strategy:
    ledger: Ledger
    engine: LeverageEngine
    market: InMemoryLendingMarket
    spot: ManualPriceOracle
    twap: TimeWeightedOracle
    gateway: BatchAuctionGateway
    vault: VaultAdapter
    registrar: AutomationRegistrar

    def publish_price(self, price_e8: int) -> None:
        now = self.ledger.now
        self.spot.push(price_e8, now)
        self.twap.push(price_e8, now)

    def settle_open_orders(self) -> int:
        """Solver pass: fill every open order at the current spot price."""
        spot = self.spot.read().price_e8
        orders = self.gateway.open_orders()
        for swap_id in orders:
            self.gateway.settle_at_price(
                swap_id, spot, priced_asset=self.engine.config.collateral_asset, now=self.ledger.now,
            )
        return len(orders)


@dataclass
class SimulationResult:
    events: List[LedgerEvent]
    rejections: List[str] = field(default_factory=list)
    leverage_e8: Optional[int] = None
    real_assets: Optional[int] = None


def build_strategy(
    loaded: LoadedConfig,
    *,
    initial_price_e8: int,
    available_liquidity: int,
    twap_window: int = 1_800,
    start_time: int = 1_700_000_000,
    max_fill_tolerance_bps: int = 500,
) -> Strategy:
    ledger = Ledger(start_time=start_time)
    spot = ManualPriceOracle(initial_price_e8, start_time)
    twap = TimeWeightedOracle(twap_window, clock=lambda: ledger.now)
    twap.push(initial_price_e8, start_time)
    market = InMemoryLendingMarket(
        collateral_asset=loaded.collateral_asset,
        debt_asset=loaded.debt_asset,
        available_liquidity=available_liquidity,
    )
    gateway = BatchAuctionGateway()
    config = StrategyConfig(
        lending_market=market,
        collateral_asset=loaded.collateral_asset,
        debt_asset=loaded.debt_asset,
        price_oracle=spot,
        twap_oracle=twap,
        swap_gateway=gateway,
        price_checker=TwapPriceChecker(max_tolerance_bps=max_fill_tolerance_bps),
    )
    engine = LeverageEngine(config, loaded.settings, loaded.policy, ledger)
    vault = VaultAdapter(engine, ledger, manager=loaded.policy.owner, address=loaded.policy.router)
    registrar = AutomationRegistrar(ledger)
    registrar.register(STRATEGY_ID, engine)
    if registrar.address not in loaded.policy.allowed_callers and not loaded.policy.any_caller_allowed:
        engine.update_caller_status(ledger.context(loaded.policy.owner), registrar.address, True)
    return Strategy(ledger, engine, market, spot, twap, gateway, vault, registrar)


def keeper_pass(strategy: Strategy, *, max_actions: int = 32) -> List[str]:
    """Settle and act until the engine has nothing left to do at this instant."""
    rejections: List[str] = []
    ledger, engine = strategy.ledger, strategy.engine
    for _ in range(max_actions):
        if engine.swap_state is not SwapState.IDLE:
            strategy.settle_open_orders()
            try:
                strategy.registrar.perform_upkeep(STRATEGY_ID, KEEPER)
            except MarketDataError as exc:
                # Fill rejected or not yet available; the swap stays pending.
                rejections.append(exc.reason)
                return rejections
            continue

        decision = engine.should_rebalance()
        if decision is Decision.NONE:
            break
        if decision is Decision.RIPCORD:
            ledger.execute(engine.ripcord, ledger.context(KEEPER))
        else:
            strategy.registrar.perform_upkeep(STRATEGY_ID, KEEPER)
    return rejections


def run_simulation(
    loaded: LoadedConfig,
    prices_e8: Sequence[int],
    *,
    deposit: int,
    available_liquidity: int,
    step: int = 3_600,
    reward_fund: int = 0,
    twap_window: int = 1_800,
) -> SimulationResult:
    if not prices_e8:
        raise ValueError("price path must not be empty")
    strategy = build_strategy(
        loaded,
        initial_price_e8=prices_e8[0],
        available_liquidity=available_liquidity,
        twap_window=twap_window,
    )
    ledger, engine = strategy.ledger, strategy.engine
    owner = loaded.policy.owner

    if reward_fund:
        ledger.native.add(owner, NATIVE_ASSET, reward_fund)
        ledger.execute(engine.fund_rewards, ledger.context(owner), reward_fund)
    strategy.vault.receive(deposit)
    strategy.vault.push(ledger.context(owner), deposit)
    ledger.execute(engine.engage, ledger.context(loaded.policy.operator))

    rejections = keeper_pass(strategy)
    for price in prices_e8[1:]:
        ledger.advance(step)
        strategy.publish_price(price)
        rejections.extend(keeper_pass(strategy))

    result = SimulationResult(events=ledger.events(), rejections=rejections)
    try:
        result.leverage_e8 = engine.get_current_leverage_ratio()
        result.real_assets = engine.get_real_assets()
    except InsolventPositionError:
        logger.warning("position ended insolvent")
    return result
