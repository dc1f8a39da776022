"""``should_rebalance``: the pure decision function.

Given the runtime state, the leverage ratio at the TWAP price and the clock,
return the one action a keeper should take next. Calling it repeatedly without
a state, time or price change always returns the same answer.
"""

from __future__ import annotations

from .guards import elapsed
from .math import within_tolerance
from .types import Decision, RuntimeState, StrategySettings, SwapState


def should_rebalance(
    state: RuntimeState,
    leverage_e8: int,
    now: int,
    settings: StrategySettings,
) -> Decision:
    # A pending swap must settle before anything else can be sized.
    if state.swap_state is not SwapState.IDLE:
        return Decision.NONE

    bands = settings.bands
    execution = settings.execution

    if leverage_e8 >= bands.ripcord_e8:
        # Emergencies skip the normal interval; only the ripcord cooldown applies.
        if elapsed(now, state.last_ripcord_time, settings.incentive.ripcord_cooldown):
            return Decision.RIPCORD
        return Decision.NONE

    if state.twap_target_e8 != 0:
        if elapsed(now, state.last_trade_time, execution.twap_cooldown):
            return Decision.ITERATE
        return Decision.NONE

    if not state.engaged:
        return Decision.NONE

    if elapsed(now, state.last_rebalance_time, execution.rebalance_interval) and not within_tolerance(
        leverage_e8, bands.target_e8, execution.rebalance_tolerance_bps,
    ):
        return Decision.REBALANCE

    return Decision.NONE
