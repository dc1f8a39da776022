"""Invariant checkers for the leverage engine.

Each function returns True when the invariant holds for a (state, settings,
now) triple, and `check_all()` returns the list of violated invariant IDs
(empty = all pass). The engine checks every post-state before committing it.
"""

from __future__ import annotations

from typing import Callable

from .math import LEVERAGE_ONE
from .types import ChunkKind, RuntimeState, StrategySettings, SwapState


def inv_bands_ordered(s: RuntimeState, cfg: StrategySettings, now: int) -> bool:
    b = cfg.bands
    return LEVERAGE_ONE <= b.min_e8 <= b.target_e8 <= b.max_e8 <= b.ripcord_e8


def inv_ripcord_cap_within_trade_cap(s: RuntimeState, cfg: StrategySettings, now: int) -> bool:
    return cfg.incentive.ripcord_max_trade <= cfg.execution.max_trade_size


def inv_ripcord_cooldown_shorter(s: RuntimeState, cfg: StrategySettings, now: int) -> bool:
    return cfg.incentive.ripcord_cooldown < cfg.execution.rebalance_interval


def inv_idle_zeroed(s: RuntimeState, cfg: StrategySettings, now: int) -> bool:
    if s.swap_state is not SwapState.IDLE:
        return True
    return s.pending_swap_amount == 0 and s.pending_swap_id is None and s.pending_kind is None


def inv_pending_has_record(s: RuntimeState, cfg: StrategySettings, now: int) -> bool:
    if s.swap_state is SwapState.IDLE:
        return True
    return s.pending_swap_amount > 0 and s.pending_swap_id is not None


def inv_pending_within_trade_cap(s: RuntimeState, cfg: StrategySettings, now: int) -> bool:
    return s.pending_swap_amount <= cfg.execution.max_trade_size


def inv_ripcord_chunk_within_cap(s: RuntimeState, cfg: StrategySettings, now: int) -> bool:
    if s.pending_kind is not ChunkKind.RIPCORD:
        return True
    return s.pending_swap_amount <= cfg.incentive.ripcord_max_trade


def inv_twap_target_domain(s: RuntimeState, cfg: StrategySettings, now: int) -> bool:
    return s.twap_target_e8 == 0 or s.twap_target_e8 >= LEVERAGE_ONE


def inv_unwinding_implies_engaged(s: RuntimeState, cfg: StrategySettings, now: int) -> bool:
    return s.engaged or not s.unwinding


def inv_times_not_from_future(s: RuntimeState, cfg: StrategySettings, now: int) -> bool:
    return max(s.last_rebalance_time, s.last_ripcord_time, s.last_trade_time) <= now


def inv_surplus_nonneg(s: RuntimeState, cfg: StrategySettings, now: int) -> bool:
    return s.surplus_debt >= 0


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

INVARIANT_REGISTRY: dict[str, Callable[[RuntimeState, StrategySettings, int], bool]] = {
    "inv_bands_ordered": inv_bands_ordered,
    "inv_ripcord_cap_within_trade_cap": inv_ripcord_cap_within_trade_cap,
    "inv_ripcord_cooldown_shorter": inv_ripcord_cooldown_shorter,
    "inv_idle_zeroed": inv_idle_zeroed,
    "inv_pending_has_record": inv_pending_has_record,
    "inv_pending_within_trade_cap": inv_pending_within_trade_cap,
    "inv_ripcord_chunk_within_cap": inv_ripcord_chunk_within_cap,
    "inv_twap_target_domain": inv_twap_target_domain,
    "inv_unwinding_implies_engaged": inv_unwinding_implies_engaged,
    "inv_times_not_from_future": inv_times_not_from_future,
    "inv_surplus_nonneg": inv_surplus_nonneg,
}


def check_all(state: RuntimeState, settings: StrategySettings, now: int) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(state, settings, now)
    ]
