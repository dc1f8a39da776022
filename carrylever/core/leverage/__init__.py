"""`leverage`: pure functional core of the leverage manager.

- deterministic, integer-only arithmetic,
- immutable state (frozen dataclasses),
- fail-closed guards and invariant checks.

Nothing in this package reads an oracle or touches a venue; the imperative
shell in `carrylever.integration.leverage_engine` does that and feeds the
results through these functions.

Public API:
- `should_rebalance(state, leverage_e8, now, settings) -> Decision`
- `plan_chunk(kind, snapshot, state, settings) -> ChunkPlan | None`
- `check_all(state, settings, now) -> list[str]`
"""

from .decision import should_rebalance
from .errors import (
    AccessDeniedError,
    CapacityError,
    ConfigError,
    CooldownError,
    GuardError,
    InsolventPositionError,
    InsufficientBalanceError,
    InsufficientLiquidityError,
    InvalidPriceError,
    InvalidStateError,
    InvariantError,
    LeverageError,
    MarketDataError,
    PriceCheckError,
    SettlementPendingError,
    StaleOracleError,
)
from .invariants import check_all
from .math import BPS_SCALE, LEVERAGE_ONE, PRICE_SCALE, RATIO_SCALE
from .sizing import build_intent, plan_chunk
from .types import (
    AccessPolicy,
    CallContext,
    Capability,
    ChunkKind,
    ChunkPlan,
    Decision,
    Event,
    ExecutionParams,
    Fill,
    IncentiveParams,
    LeverageBands,
    MarketSnapshot,
    PendingSwap,
    PriceIntegrityParams,
    PriceReading,
    RuntimeState,
    StrategySettings,
    SwapIntent,
    SwapState,
)

__all__ = [
    "should_rebalance",
    "plan_chunk",
    "build_intent",
    "check_all",
    "BPS_SCALE",
    "LEVERAGE_ONE",
    "PRICE_SCALE",
    "RATIO_SCALE",
    "AccessPolicy",
    "CallContext",
    "Capability",
    "ChunkKind",
    "ChunkPlan",
    "Decision",
    "Event",
    "ExecutionParams",
    "Fill",
    "IncentiveParams",
    "LeverageBands",
    "MarketSnapshot",
    "PendingSwap",
    "PriceIntegrityParams",
    "PriceReading",
    "RuntimeState",
    "StrategySettings",
    "SwapIntent",
    "SwapState",
    "AccessDeniedError",
    "CapacityError",
    "ConfigError",
    "CooldownError",
    "GuardError",
    "InsolventPositionError",
    "InsufficientBalanceError",
    "InsufficientLiquidityError",
    "InvalidPriceError",
    "InvalidStateError",
    "InvariantError",
    "LeverageError",
    "MarketDataError",
    "PriceCheckError",
    "SettlementPendingError",
    "StaleOracleError",
]
