"""Pure arithmetic for the leverage engine.

Every function is stateless and operates on plain Python ints.

Rounding is explicit: `//` floors, `ceil_div` rounds up. Amounts the engine
must *pay* (debt sold for a lever chunk) round up; amounts it *expects*
(minimum buy amounts) round down.
"""

from __future__ import annotations

from .errors import InsolventPositionError

PRICE_SCALE: int = 100_000_000  # 1e8
RATIO_SCALE: int = 100_000_000  # 1e8
LEVERAGE_ONE: int = RATIO_SCALE
BPS_SCALE: int = 10_000


# -- Basic helpers -----------------------------------------------------------

def abs_val(x: int) -> int:
    return x if x >= 0 else -x


def ceil_div(a: int, b: int) -> int:
    """Ceiling division for non-negative *a* and positive *b*."""
    return -((-a) // b)


# -- Valuation ---------------------------------------------------------------

def collateral_value(collateral: int, price_e8: int) -> int:
    """Collateral value in debt-asset units: ``collateral * price / 1e8``."""
    return (collateral * price_e8) // PRICE_SCALE


def debt_in_collateral(debt: int, price_e8: int) -> int:
    """Debt expressed in collateral-asset units: ``debt * 1e8 / price``."""
    return (debt * PRICE_SCALE) // price_e8


def equity_value(collateral: int, debt: int, price_e8: int) -> int:
    """Signed equity in debt-asset units."""
    return collateral_value(collateral, price_e8) - debt


def leverage_ratio_e8(collateral: int, debt: int, price_e8: int) -> int:
    """Leverage ``collateral value / equity`` scaled by 1e8.

    An empty position is unlevered (1.0x). Raises ``InsolventPositionError``
    when equity is not positive.
    """
    if collateral == 0 and debt == 0:
        return LEVERAGE_ONE
    value = collateral_value(collateral, price_e8)
    equity = value - debt
    if equity <= 0:
        raise InsolventPositionError(
            "insolvent",
            f"equity is not positive: collateral value {value}, debt {debt}",
        )
    return (value * RATIO_SCALE) // equity


# -- Targets and chunking ----------------------------------------------------

def recenter_ratio_e8(
    current_e8: int,
    target_e8: int,
    min_e8: int,
    max_e8: int,
    recenter_speed_e8: int,
) -> int:
    """Move ``recenter_speed`` of the way from current to target, clamped to [min, max]."""
    blended = (target_e8 * recenter_speed_e8 + current_e8 * (RATIO_SCALE - recenter_speed_e8)) // RATIO_SCALE
    return max(min_e8, min(blended, max_e8))


def rebalance_notional(current_e8: int, new_e8: int, collateral: int) -> int:
    """Collateral units to buy or sell to move leverage from current to new.

    ``|new - current| / current * collateral``. Price cancels out because
    leverage is a ratio of values in the same unit.
    """
    return (abs_val(new_e8 - current_e8) * collateral) // current_e8


def cap_chunk(notional: int, cap: int) -> tuple[int, bool]:
    """Return ``(chunk, is_final)``; ``is_final`` means the chunk closes the whole gap."""
    if notional <= cap:
        return notional, True
    return cap, False


def within_tolerance(value: int, target: int, tolerance_bps: int) -> bool:
    """``|value - target| <= tolerance * target`` using cross-multiplication."""
    return abs_val(value - target) * BPS_SCALE <= tolerance_bps * target


def crossed_target(value: int, target: int, *, levering: bool) -> bool:
    """True when *value* reached or passed *target* in the trade direction."""
    return value >= target if levering else value <= target


# -- Swap amounts ------------------------------------------------------------

def apply_slippage(amount: int, slippage_bps: int) -> int:
    """Lowest acceptable amount after ``slippage_bps`` of slippage (rounded down)."""
    return (amount * (BPS_SCALE - slippage_bps)) // BPS_SCALE


def lever_sell_amount(chunk_collateral: int, spot_e8: int) -> int:
    """Debt units to borrow and sell for ``chunk_collateral`` at spot (rounded up)."""
    return ceil_div(chunk_collateral * spot_e8, PRICE_SCALE)


def delever_min_buy(chunk_collateral: int, spot_e8: int, slippage_bps: int) -> int:
    """Minimum debt units expected for selling ``chunk_collateral`` at spot."""
    return apply_slippage(collateral_value(chunk_collateral, spot_e8), slippage_bps)


def price_deviation_bps(price_e8: int, reference_e8: int) -> int:
    """``|price - reference| / reference`` in bps, rounded up."""
    return ceil_div(abs_val(price_e8 - reference_e8) * BPS_SCALE, reference_e8)
