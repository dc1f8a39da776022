"""Data types for the leverage engine.

All records are frozen dataclasses; the engine replaces ``RuntimeState``
wholesale on every transition instead of mutating it.

Units/conventions:
- `*_e8` prices are debt-asset units per one collateral-asset unit, scaled by 1e8.
- `*_e8` leverage ratios are collateral value / equity, scaled by 1e8 (1.0x = 1e8).
- `*_bps` values are basis points (1/10_000).
- amounts are integer base units; times and durations are integer seconds.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import FrozenSet, Optional

from .errors import ConfigError
from .math import BPS_SCALE, LEVERAGE_ONE, RATIO_SCALE

Address = str
AssetId = str


@unique
class SwapState(Enum):
    IDLE = "idle"
    PENDING_LEVER = "pending_lever"
    PENDING_DELEVER = "pending_delever"


@unique
class Decision(Enum):
    """Recommended action returned by ``should_rebalance``."""
    NONE = "none"
    REBALANCE = "rebalance"
    ITERATE = "iterate"
    RIPCORD = "ripcord"


@unique
class ChunkKind(Enum):
    """Which operation started a chunk."""
    ENGAGE = "engage"
    REBALANCE = "rebalance"
    ITERATE = "iterate"
    RIPCORD = "ripcord"
    DISENGAGE = "disengage"


@unique
class Capability(Enum):
    ADMIN = "admin"
    OPERATE = "operate"
    TRADE = "trade"
    ROUTE_CAPITAL = "route_capital"
    PUBLIC = "public"


@unique
class Event(Enum):
    """One member per event appended to the ledger log."""
    ENGAGED = "Engaged"
    REBALANCED = "Rebalanced"
    REBALANCE_ITERATED = "RebalanceIterated"
    RIPCORD_CALLED = "RipcordCalled"
    DISENGAGED = "Disengaged"
    SWAP_COMPLETED = "SwapCompleted"
    SWAP_CANCELLED = "SwapCancelled"
    TWAP_CONCLUDED = "TwapConcluded"
    COLLATERAL_DEPOSITED = "CollateralDeposited"
    COLLATERAL_WITHDRAWN = "CollateralWithdrawn"
    REWARDS_FUNDED = "RewardsFunded"
    BANDS_UPDATED = "BandsUpdated"
    EXECUTION_PARAMS_UPDATED = "ExecutionParamsUpdated"
    INCENTIVE_PARAMS_UPDATED = "IncentiveParamsUpdated"
    PRICE_INTEGRITY_PARAMS_UPDATED = "PriceIntegrityParamsUpdated"
    CALLER_STATUS_UPDATED = "CallerStatusUpdated"
    ANY_CALLER_ALLOWED_UPDATED = "AnyCallerAllowedUpdated"


def _require_int(name: str, value: object, *, lo: int = 0, hi: Optional[int] = None) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(f"config:{name}", f"{name} must be an int, got {type(value).__name__}")
    if value < lo:
        raise ConfigError(f"config:{name}", f"{name} must be >= {lo}: {value}")
    if hi is not None and value > hi:
        raise ConfigError(f"config:{name}", f"{name} must be <= {hi}: {value}")


@dataclass(frozen=True)
class CallContext:
    """Caller-identity token for one ledger call.

    ``sender`` is the immediate caller, ``origin`` the account that signed the
    enclosing transaction. They differ when a call is relayed by another program.
    """

    sender: Address
    origin: Address
    timestamp: int

    @property
    def is_direct(self) -> bool:
        return self.sender == self.origin


@dataclass(frozen=True)
class LeverageBands:
    min_e8: int
    target_e8: int
    max_e8: int
    ripcord_e8: int

    def __post_init__(self) -> None:
        for name in ("min_e8", "target_e8", "max_e8", "ripcord_e8"):
            _require_int(name, getattr(self, name))
        if self.min_e8 < LEVERAGE_ONE:
            raise ConfigError("config:bands", f"min leverage must be >= 1.0x: {self.min_e8}")
        if not (self.min_e8 < self.target_e8 < self.max_e8 < self.ripcord_e8):
            raise ConfigError(
                "config:bands",
                "bands must satisfy min < target < max < ripcord: "
                f"{self.min_e8}, {self.target_e8}, {self.max_e8}, {self.ripcord_e8}",
            )


@dataclass(frozen=True)
class ExecutionParams:
    max_trade_size: int
    twap_cooldown: int
    slippage_tolerance_bps: int
    rebalance_interval: int
    recenter_speed_e8: int
    rebalance_tolerance_bps: int = 50
    settlement_timeout: int = 86_400

    def __post_init__(self) -> None:
        _require_int("max_trade_size", self.max_trade_size, lo=1)
        _require_int("twap_cooldown", self.twap_cooldown)
        _require_int("slippage_tolerance_bps", self.slippage_tolerance_bps, hi=BPS_SCALE - 1)
        _require_int("rebalance_interval", self.rebalance_interval, lo=1)
        _require_int("recenter_speed_e8", self.recenter_speed_e8, hi=RATIO_SCALE)
        _require_int("rebalance_tolerance_bps", self.rebalance_tolerance_bps, hi=BPS_SCALE - 1)
        _require_int("settlement_timeout", self.settlement_timeout, lo=1)


@dataclass(frozen=True)
class IncentiveParams:
    ripcord_slippage_tolerance_bps: int
    ripcord_cooldown: int
    ripcord_max_trade: int
    fixed_reward: int

    def __post_init__(self) -> None:
        _require_int(
            "ripcord_slippage_tolerance_bps", self.ripcord_slippage_tolerance_bps, hi=BPS_SCALE - 1,
        )
        _require_int("ripcord_cooldown", self.ripcord_cooldown)
        _require_int("ripcord_max_trade", self.ripcord_max_trade, lo=1)
        _require_int("fixed_reward", self.fixed_reward)


@dataclass(frozen=True)
class PriceIntegrityParams:
    max_oracle_age: int = 3_600
    fill_tolerance_bps: int = 100

    def __post_init__(self) -> None:
        _require_int("max_oracle_age", self.max_oracle_age, lo=1)
        _require_int("fill_tolerance_bps", self.fill_tolerance_bps, hi=BPS_SCALE - 1)


@dataclass(frozen=True)
class StrategySettings:
    """The admin-configurable parameter set, validated as a whole."""

    bands: LeverageBands
    execution: ExecutionParams
    incentive: IncentiveParams
    price_integrity: PriceIntegrityParams = PriceIntegrityParams()

    def __post_init__(self) -> None:
        if self.incentive.ripcord_cooldown >= self.execution.rebalance_interval:
            raise ConfigError(
                "config:ripcord_cooldown",
                "ripcord_cooldown must be shorter than rebalance_interval: "
                f"{self.incentive.ripcord_cooldown} >= {self.execution.rebalance_interval}",
            )
        if self.incentive.ripcord_max_trade > self.execution.max_trade_size:
            raise ConfigError(
                "config:ripcord_max_trade",
                "ripcord_max_trade must not exceed max_trade_size: "
                f"{self.incentive.ripcord_max_trade} > {self.execution.max_trade_size}",
            )


@dataclass(frozen=True)
class AccessPolicy:
    owner: Address
    operator: Address
    router: Address
    allowed_callers: FrozenSet[Address] = frozenset()
    any_caller_allowed: bool = False

    def __post_init__(self) -> None:
        for name in ("owner", "operator", "router"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ConfigError(f"config:{name}", f"{name} must be a non-empty address")


@dataclass(frozen=True)
class PriceReading:
    price_e8: int
    timestamp: int


@dataclass(frozen=True)
class Fill:
    """Settlement result reported by the swap venue."""

    amount_out: int
    fill_price_e8: int


@dataclass(frozen=True)
class SwapIntent:
    """Sell exactly ``sell_amount`` of ``sell_asset`` for at least ``min_buy_amount``."""

    owner: Address
    sell_asset: AssetId
    buy_asset: AssetId
    sell_amount: int
    min_buy_amount: int
    valid_to: int

    def __post_init__(self) -> None:
        if self.sell_asset == self.buy_asset:
            raise ValueError("sell_asset and buy_asset must differ")
        if self.sell_amount <= 0:
            raise ValueError(f"sell_amount must be positive: {self.sell_amount}")
        if self.min_buy_amount < 0:
            raise ValueError(f"min_buy_amount must be non-negative: {self.min_buy_amount}")


@dataclass(frozen=True)
class MarketSnapshot:
    """Everything a leverage decision reads, taken once per call."""

    spot_e8: int
    twap_e8: int
    collateral: int
    debt: int
    leverage_e8: int


@dataclass(frozen=True)
class ChunkPlan:
    kind: ChunkKind
    direction: SwapState
    collateral_amount: int
    target_e8: int
    is_final: bool


@dataclass(frozen=True)
class PendingSwap:
    """Arena record for the chunk currently awaiting settlement."""

    swap_id: str
    kind: ChunkKind
    direction: SwapState
    intent: SwapIntent
    chunk_amount: int
    target_e8: int
    is_final: bool
    initiated_at: int


@dataclass(frozen=True)
class RuntimeState:
    """Mutable-by-replacement engine state. ``RuntimeState()`` is the initial state."""

    swap_state: SwapState = SwapState.IDLE
    twap_target_e8: int = 0
    pending_swap_amount: int = 0
    pending_swap_id: Optional[str] = None
    pending_kind: Optional[ChunkKind] = None

    last_rebalance_time: int = 0
    last_ripcord_time: int = 0
    last_trade_time: int = 0

    engaged: bool = False
    unwinding: bool = False

    # Debt-asset proceeds left over after a delever fill repaid all debt.
    surplus_debt: int = 0
