"""Exception types for the leverage engine.

Every error carries a short machine-readable ``reason`` (for example
``"cooldown:twap"``) in addition to the human message. The hierarchy follows
the three rejection families of the engine:

- guard violations (wrong caller, wrong state, cooldown, bad configuration),
- market-data failures (stale or non-positive prices, rejected fills),
- capacity failures (insufficient liquidity or balance at a venue).
"""

from __future__ import annotations


class LeverageError(Exception):
    """Base class for every rejection raised by the engine and its venues."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or reason)


class GuardError(LeverageError):
    """Raised when an operation's guard condition is not satisfied."""


class AccessDeniedError(GuardError):
    """Caller lacks the capability, or is not the direct transaction originator."""


class InvalidStateError(GuardError):
    """Operation is not allowed from the current swap / sequence state."""


class CooldownError(GuardError):
    """A cooldown or interval has not elapsed yet."""


class ConfigError(GuardError, ValueError):
    """Configuration values violate their ordering or domain invariants."""


class MarketDataError(LeverageError):
    """Price data cannot be trusted for this call; safe to retry later."""


class StaleOracleError(MarketDataError):
    pass


class InvalidPriceError(MarketDataError):
    pass


class PriceCheckError(MarketDataError):
    """A settled fill was rejected by the price-integrity check."""


class SettlementPendingError(MarketDataError):
    """The settlement venue has not reported a fill yet."""


class CapacityError(LeverageError):
    """A venue cannot serve the requested amount."""


class InsufficientLiquidityError(CapacityError):
    pass


class InsufficientBalanceError(CapacityError):
    pass


class InsolventPositionError(LeverageError):
    """Debt value is at or above collateral value; leverage is undefined."""


class InvariantError(LeverageError):
    """Raised when a post-state violates one or more invariants."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__("invariant", f"invariant violations: {', '.join(violations)}")
