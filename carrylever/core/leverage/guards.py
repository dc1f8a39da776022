"""Guard functions for the leverage engine.

One pure function per operation. Each returns ``None`` when the operation is
allowed in the given pre-state, or the ``GuardError`` the caller should raise.
Market-dependent checks (leverage against bands) run later, once a fresh
``MarketSnapshot`` exists; everything here depends only on state, caller and
clock so it can reject a call before any oracle is read.
"""

from __future__ import annotations

from typing import Optional

from .errors import AccessDeniedError, CooldownError, GuardError, InvalidStateError
from .types import AccessPolicy, CallContext, Capability, PendingSwap, RuntimeState, StrategySettings, SwapState


# -- Access policy -----------------------------------------------------------

def check_access(policy: AccessPolicy, ctx: CallContext, capability: Capability) -> Optional[GuardError]:
    """Capability check on the caller-identity token."""
    if capability is Capability.PUBLIC:
        return None
    if capability is Capability.ADMIN:
        ok = ctx.sender == policy.owner
    elif capability is Capability.OPERATE:
        ok = ctx.sender == policy.operator
    elif capability is Capability.ROUTE_CAPITAL:
        ok = ctx.sender == policy.router
    elif capability is Capability.TRADE:
        ok = policy.any_caller_allowed or ctx.sender in policy.allowed_callers
    else:
        ok = False
    if ok:
        return None
    return AccessDeniedError(f"access:{capability.value}", f"{ctx.sender} lacks {capability.value}")


def require_direct_caller(ctx: CallContext) -> Optional[GuardError]:
    """Reject calls relayed through another program (sender != origin)."""
    if ctx.is_direct:
        return None
    return AccessDeniedError(
        "access:not_direct_caller",
        f"caller {ctx.sender} is not the transaction originator {ctx.origin}",
    )


def elapsed(now: int, since: int, duration: int) -> bool:
    """True when *duration* has passed since *since*; ``since == 0`` means never."""
    return since == 0 or now - since >= duration


def _first(*rejections: Optional[GuardError]) -> Optional[GuardError]:
    for rejection in rejections:
        if rejection is not None:
            return rejection
    return None


def _require_idle(state: RuntimeState) -> Optional[GuardError]:
    if state.swap_state is SwapState.IDLE:
        return None
    return InvalidStateError("state:swap_pending", f"a swap is pending ({state.swap_state.value})")


def _require_no_twap(state: RuntimeState) -> Optional[GuardError]:
    if state.twap_target_e8 == 0:
        return None
    return InvalidStateError("state:twap_in_progress", "a TWAP sequence is in progress")


# -- Operations --------------------------------------------------------------

def guard_engage(state: RuntimeState, ctx: CallContext, policy: AccessPolicy) -> Optional[GuardError]:
    return _first(
        check_access(policy, ctx, Capability.OPERATE),
        require_direct_caller(ctx),
        _require_idle(state),
        None if not state.engaged else InvalidStateError("state:engaged", "strategy is already engaged"),
        _require_no_twap(state),
    )


def guard_rebalance(state: RuntimeState, ctx: CallContext, policy: AccessPolicy) -> Optional[GuardError]:
    return _first(
        check_access(policy, ctx, Capability.TRADE),
        _require_idle(state),
        None if state.engaged else InvalidStateError("state:not_engaged", "strategy is not engaged"),
        _require_no_twap(state),
    )


def guard_iterate_rebalance(
    state: RuntimeState, ctx: CallContext, policy: AccessPolicy,
) -> Optional[GuardError]:
    return _first(
        check_access(policy, ctx, Capability.TRADE),
        _require_idle(state),
        None if state.twap_target_e8 != 0 else InvalidStateError("state:no_twap", "no TWAP sequence in progress"),
    )


def guard_ripcord(
    state: RuntimeState, ctx: CallContext, settings: StrategySettings,
) -> Optional[GuardError]:
    cooldown = settings.incentive.ripcord_cooldown
    return _first(
        require_direct_caller(ctx),
        _require_idle(state),
        None if elapsed(ctx.timestamp, state.last_ripcord_time, cooldown)
        else CooldownError("cooldown:ripcord", f"ripcord cooldown of {cooldown}s has not elapsed"),
    )


def guard_disengage(state: RuntimeState, ctx: CallContext, policy: AccessPolicy) -> Optional[GuardError]:
    return _first(
        check_access(policy, ctx, Capability.OPERATE),
        require_direct_caller(ctx),
        _require_idle(state),
        None if state.engaged else InvalidStateError("state:not_engaged", "strategy is not engaged"),
        _require_no_twap(state),
    )


def guard_complete_swap(state: RuntimeState) -> Optional[GuardError]:
    if state.swap_state is SwapState.IDLE or state.pending_swap_id is None:
        return InvalidStateError("state:no_pending_swap", "no swap is pending")
    return None


def guard_cancel_pending_swap(
    state: RuntimeState,
    ctx: CallContext,
    policy: AccessPolicy,
    pending: Optional[PendingSwap],
    settings: StrategySettings,
) -> Optional[GuardError]:
    rejection = _first(check_access(policy, ctx, Capability.ADMIN), guard_complete_swap(state))
    if rejection is not None:
        return rejection
    timeout = settings.execution.settlement_timeout
    if pending is None or ctx.timestamp - pending.initiated_at < timeout:
        return CooldownError("cooldown:settlement_timeout", f"swap is younger than {timeout}s")
    return None


def guard_configure(state: RuntimeState, ctx: CallContext, policy: AccessPolicy) -> Optional[GuardError]:
    return _first(
        check_access(policy, ctx, Capability.ADMIN),
        _require_idle(state),
        _require_no_twap(state),
    )


def guard_deposit(ctx: CallContext, policy: AccessPolicy, amount: int) -> Optional[GuardError]:
    return _first(
        check_access(policy, ctx, Capability.ROUTE_CAPITAL),
        None if amount > 0 else GuardError("param:amount", f"amount must be positive: {amount}"),
    )


def guard_withdraw(
    state: RuntimeState, ctx: CallContext, policy: AccessPolicy, amount: int,
) -> Optional[GuardError]:
    return _first(
        check_access(policy, ctx, Capability.ROUTE_CAPITAL),
        None if amount > 0 else GuardError("param:amount", f"amount must be positive: {amount}"),
        _require_idle(state),
        _require_no_twap(state),
    )
