"""State-update functions for the leverage engine.

Each function takes the PRE-state and returns the POST-state. Updates assume
guards already passed and never raise.
"""

from __future__ import annotations

from dataclasses import replace

from .math import crossed_target, within_tolerance
from .types import ChunkKind, ChunkPlan, PendingSwap, RuntimeState, SwapState


def _conclude_sequence(state: RuntimeState) -> RuntimeState:
    """Close a chunk sequence: an unwind disengages, anything else engages."""
    if state.unwinding:
        return replace(state, twap_target_e8=0, engaged=False, unwinding=False)
    return replace(state, twap_target_e8=0, engaged=True)


def apply_begin_swap(state: RuntimeState, plan: ChunkPlan, swap_id: str, now: int) -> RuntimeState:
    if plan.kind is ChunkKind.RIPCORD:
        # Emergency chunks pre-empt any sequence in progress and never open one.
        return replace(
            state,
            swap_state=plan.direction,
            twap_target_e8=0,
            pending_swap_amount=plan.collateral_amount,
            pending_swap_id=swap_id,
            pending_kind=plan.kind,
            last_ripcord_time=now,
            last_trade_time=now,
            unwinding=False,
        )
    return replace(
        state,
        swap_state=plan.direction,
        twap_target_e8=0 if plan.is_final else plan.target_e8,
        pending_swap_amount=plan.collateral_amount,
        pending_swap_id=swap_id,
        pending_kind=plan.kind,
        last_rebalance_time=now,
        last_trade_time=now,
        unwinding=state.unwinding or plan.kind is ChunkKind.DISENGAGE,
    )


def sequence_concluded(pending: PendingSwap, leverage_after_e8: int, tolerance_bps: int) -> bool:
    """True when the chunk closed its sequence (final, on target, or past it)."""
    if pending.is_final:
        return True
    if within_tolerance(leverage_after_e8, pending.target_e8, tolerance_bps):
        return True
    return crossed_target(
        leverage_after_e8, pending.target_e8,
        levering=pending.direction is SwapState.PENDING_LEVER,
    )


def apply_complete_swap(
    state: RuntimeState,
    pending: PendingSwap,
    leverage_after_e8: int,
    tolerance_bps: int,
    surplus_debt: int,
    *,
    debt_outstanding: bool = False,
) -> RuntimeState:
    settled = replace(
        state,
        swap_state=SwapState.IDLE,
        pending_swap_amount=0,
        pending_swap_id=None,
        pending_kind=None,
        surplus_debt=surplus_debt,
    )
    if pending.kind is ChunkKind.RIPCORD:
        # A levered position left behind by an emergency chunk is managed from here on.
        return replace(settled, engaged=settled.engaged or debt_outstanding)
    if sequence_concluded(pending, leverage_after_e8, tolerance_bps):
        return _conclude_sequence(settled)
    return replace(settled, twap_target_e8=pending.target_e8)


def apply_conclude_twap(state: RuntimeState) -> RuntimeState:
    """Iterate found leverage already on target: close the sequence without trading."""
    return _conclude_sequence(state)


def apply_disengage_flat(state: RuntimeState) -> RuntimeState:
    """Disengage with no debt left to unwind."""
    return replace(state, twap_target_e8=0, engaged=False, unwinding=False)


def apply_cancel_swap(state: RuntimeState, *, debt_outstanding: bool = False) -> RuntimeState:
    """Drop the pending chunk and its sequence; leftover debt stays under management."""
    return replace(
        state,
        swap_state=SwapState.IDLE,
        twap_target_e8=0,
        pending_swap_amount=0,
        pending_swap_id=None,
        pending_kind=None,
        engaged=state.engaged or debt_outstanding,
        unwinding=False,
    )
