"""
Collaborator interfaces consumed by the leverage engine.

The engine only ever talks to its venues through these protocols. The
in-memory implementations in this package are reference models for tests and
simulation; production deployments plug in real adapters with the same shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from ..core.leverage.errors import ConfigError
from ..core.leverage.types import AssetId, Fill, PriceReading, SwapIntent


@runtime_checkable
class PriceOracle(Protocol):
    def read(self) -> PriceReading: ...


@runtime_checkable
class LendingMarket(Protocol):
    """Supply/borrow venue holding the strategy's single position.

    Every mutator returns the new balance of the touched side and raises a
    ``CapacityError`` subclass when it cannot serve the amount.
    """

    def supply(self, asset: AssetId, amount: int) -> int: ...

    def withdraw(self, asset: AssetId, amount: int) -> int: ...

    def borrow(self, asset: AssetId, amount: int) -> int: ...

    def repay(self, asset: AssetId, amount: int) -> int: ...

    def collateral_balance(self, asset: AssetId) -> int: ...

    def debt_balance(self, asset: AssetId) -> int: ...


@runtime_checkable
class SwapGateway(Protocol):
    """Asynchronous settlement venue: initiate now, read the fill later."""

    def initiate(self, intent: SwapIntent) -> str: ...

    def settled_fill(self, swap_id: str) -> Optional[Fill]: ...

    def cancel(self, swap_id: str) -> int: ...


@runtime_checkable
class PriceChecker(Protocol):
    def validate(self, fill_price_e8: int, twap_price_e8: int, tolerance_bps: int) -> bool: ...


@dataclass(frozen=True)
class StrategyConfig:
    """Immutable wiring of one strategy to its venues and assets."""

    lending_market: LendingMarket
    collateral_asset: AssetId
    debt_asset: AssetId
    price_oracle: PriceOracle
    twap_oracle: PriceOracle
    swap_gateway: SwapGateway
    price_checker: PriceChecker

    def __post_init__(self) -> None:
        for name in (
            "lending_market", "collateral_asset", "debt_asset", "price_oracle",
            "twap_oracle", "swap_gateway", "price_checker",
        ):
            if getattr(self, name) is None:
                raise ConfigError(f"config:{name}", f"{name} must be set")
        if not self.collateral_asset or not self.debt_asset:
            raise ConfigError("config:assets", "asset ids must be non-empty")
        if self.collateral_asset == self.debt_asset:
            raise ConfigError("config:assets", "collateral and debt assets must differ")

    def collaborators(self) -> tuple[object, ...]:
        return (
            self.lending_market,
            self.price_oracle,
            self.twap_oracle,
            self.swap_gateway,
            self.price_checker,
        )
