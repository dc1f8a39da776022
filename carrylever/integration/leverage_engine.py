"""
Leverage engine: the imperative shell around `carrylever.core.leverage`.

The engine owns one strategy's `RuntimeState` and its pending-swap arena. Each
public operation follows the same shape:

1. run the pure guard for the operation (caller, state, cooldowns),
2. take one `MarketSnapshot` (fresh spot + TWAP, escrow-inclusive balances),
3. size a chunk with the pure sizing functions,
4. touch the venues (lending market, swap gateway),
5. check invariants on the post-state, commit it, append a ledger event.

Any failure raises and, when the call runs through `Ledger.execute`, leaves no
effect anywhere. The engine does not retry and does not roll back by itself.

Swaps are two-phase: `engage` / `rebalance` / `iterate_rebalance` / `ripcord` /
`disengage` initiate a chunk and leave the engine pending; `complete_swap`
(callable by anyone) books the venue's fill once it exists and passes the
price check.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Optional

from ..core.leverage.decision import should_rebalance as decide
from ..core.leverage.errors import (
    CooldownError,
    GuardError,
    InsufficientBalanceError,
    InvalidStateError,
    InvariantError,
    PriceCheckError,
    SettlementPendingError,
)
from ..core.leverage.guards import (
    check_access,
    elapsed,
    guard_cancel_pending_swap,
    guard_complete_swap,
    guard_configure,
    guard_deposit,
    guard_disengage,
    guard_engage,
    guard_iterate_rebalance,
    guard_rebalance,
    guard_ripcord,
    guard_withdraw,
)
from ..core.leverage.invariants import check_all
from ..core.leverage.math import (
    debt_in_collateral,
    equity_value,
    leverage_ratio_e8,
    price_deviation_bps,
    within_tolerance,
)
from ..core.leverage.sizing import build_intent, plan_chunk
from ..core.leverage.types import (
    AccessPolicy,
    Address,
    CallContext,
    Capability,
    ChunkKind,
    ChunkPlan,
    Decision,
    Event,
    ExecutionParams,
    IncentiveParams,
    LeverageBands,
    MarketSnapshot,
    PendingSwap,
    PriceIntegrityParams,
    RuntimeState,
    StrategySettings,
    SwapState,
)
from ..core.leverage.updates import (
    apply_begin_swap,
    apply_cancel_swap,
    apply_complete_swap,
    apply_conclude_twap,
    apply_disengage_flat,
)
from ..core.oracle import require_fresh
from ..state.balances import NATIVE_ASSET
from ..state.swaps import SwapBook, SwapReceipt
from .interfaces import StrategyConfig
from .ledger import Ledger

logger = logging.getLogger(__name__)

_CHUNK_EVENTS = {
    ChunkKind.ENGAGE: Event.ENGAGED,
    ChunkKind.REBALANCE: Event.REBALANCED,
    ChunkKind.ITERATE: Event.REBALANCE_ITERATED,
    ChunkKind.RIPCORD: Event.RIPCORD_CALLED,
    ChunkKind.DISENGAGE: Event.DISENGAGED,
}


def _raise_if(rejection: Optional[GuardError]) -> None:
    if rejection is not None:
        raise rejection


class LeverageEngine:
    def __init__(
        self,
        config: StrategyConfig,
        settings: StrategySettings,
        policy: AccessPolicy,
        ledger: Ledger,
        *,
        address: Address = "leverage-engine",
    ) -> None:
        self.config = config
        self.settings = settings
        self.policy = policy
        self.ledger = ledger
        self.address = address
        self.state = RuntimeState()
        self.swaps = SwapBook()
        ledger.register(self, *config.collaborators())
        ledger.register_log(self.swaps.receipt_log)

    # =====================================================================
    # Views
    # =====================================================================

    @property
    def swap_state(self) -> SwapState:
        return self.state.swap_state

    @property
    def pending_swap_amount(self) -> int:
        return self.state.pending_swap_amount

    @property
    def pending_swap(self) -> Optional[PendingSwap]:
        return self.swaps.get(self.state.pending_swap_id)

    def snapshot(self, now: Optional[int] = None) -> MarketSnapshot:
        """Fresh prices plus escrow-inclusive balances.

        While a chunk is pending its sell side sits in venue escrow. Counting it
        back (collateral for a delever, netted debt for a lever) values the
        position as it stood before the chunk left, so leverage stays defined
        between the two swap phases.
        """
        now = self.ledger.now if now is None else now
        max_age = self.settings.price_integrity.max_oracle_age
        spot = require_fresh(self.config.price_oracle.read(), now, max_age, source="spot")
        twap = require_fresh(self.config.twap_oracle.read(), now, max_age, source="twap")

        market = self.config.lending_market
        collateral = market.collateral_balance(self.config.collateral_asset)
        debt = market.debt_balance(self.config.debt_asset)
        pending = self.pending_swap
        if pending is not None:
            if pending.direction is SwapState.PENDING_DELEVER:
                collateral += pending.intent.sell_amount
            else:
                debt = max(0, debt - pending.intent.sell_amount)

        return MarketSnapshot(
            spot_e8=spot,
            twap_e8=twap,
            collateral=collateral,
            debt=debt,
            leverage_e8=leverage_ratio_e8(collateral, debt, twap),
        )

    def should_rebalance(self, now: Optional[int] = None) -> Decision:
        now = self.ledger.now if now is None else now
        snap = self.snapshot(now)
        return decide(self.state, snap.leverage_e8, now, self.settings)

    def get_current_leverage_ratio(self) -> int:
        return self.snapshot().leverage_e8

    def get_real_assets(self) -> int:
        """Equity in collateral-asset units at TWAP (0 when underwater)."""
        snap = self.snapshot()
        equity = equity_value(snap.collateral, snap.debt, snap.twap_e8) + self.state.surplus_debt
        return max(0, debt_in_collateral(equity, snap.twap_e8))

    def fill_available(self) -> bool:
        pending = self.pending_swap
        if pending is None:
            return False
        return self.config.swap_gateway.settled_fill(pending.swap_id) is not None

    def reward_balance(self) -> int:
        return self.ledger.native.get(self.address, NATIVE_ASSET)

    # =====================================================================
    # State transitions
    # =====================================================================

    def engage(self, ctx: CallContext) -> PendingSwap:
        _raise_if(guard_engage(self.state, ctx, self.policy))
        snap = self.snapshot(ctx.timestamp)
        if snap.collateral == 0:
            raise InvalidStateError("state:no_collateral", "no collateral supplied")
        if snap.leverage_e8 >= self.settings.bands.target_e8:
            raise InvalidStateError("state:already_levered", f"leverage {snap.leverage_e8} is at or above target")
        plan = plan_chunk(ChunkKind.ENGAGE, snap, self.state, self.settings)
        if plan is None:
            raise InvalidStateError("state:no_adjustment", "position too small to lever")
        return self._start_chunk(ctx, plan, snap)

    def rebalance(self, ctx: CallContext) -> PendingSwap:
        _raise_if(guard_rebalance(self.state, ctx, self.policy))
        snap = self.snapshot(ctx.timestamp)
        decision = decide(self.state, snap.leverage_e8, ctx.timestamp, self.settings)
        if decision is not Decision.REBALANCE:
            interval = self.settings.execution.rebalance_interval
            if decision is Decision.NONE and not elapsed(ctx.timestamp, self.state.last_rebalance_time, interval):
                raise CooldownError("cooldown:rebalance_interval", f"rebalance interval of {interval}s has not elapsed")
            raise InvalidStateError(f"decision:{decision.value}", f"rebalance not allowed, decision is {decision.value}")
        plan = plan_chunk(ChunkKind.REBALANCE, snap, self.state, self.settings)
        if plan is None:
            raise InvalidStateError("state:no_adjustment", "recentred target equals current leverage")
        return self._start_chunk(ctx, plan, snap)

    def iterate_rebalance(self, ctx: CallContext) -> Optional[PendingSwap]:
        """Continue a TWAP sequence; returns ``None`` if it concluded without a trade."""
        _raise_if(guard_iterate_rebalance(self.state, ctx, self.policy))
        snap = self.snapshot(ctx.timestamp)
        decision = decide(self.state, snap.leverage_e8, ctx.timestamp, self.settings)
        if decision is Decision.NONE:
            ripcord_e8 = self.settings.bands.ripcord_e8
            if snap.leverage_e8 >= ripcord_e8:
                raise CooldownError(
                    "cooldown:ripcord",
                    f"leverage {snap.leverage_e8} is at or above ripcord {ripcord_e8}; waiting on the ripcord cooldown",
                )
            raise CooldownError("cooldown:twap", f"twap cooldown of {self.settings.execution.twap_cooldown}s has not elapsed")
        if decision is not Decision.ITERATE:
            raise InvalidStateError(f"decision:{decision.value}", f"iterate not allowed, decision is {decision.value}")

        target = self.state.twap_target_e8
        plan = None
        if not within_tolerance(snap.leverage_e8, target, self.settings.execution.rebalance_tolerance_bps):
            plan = plan_chunk(ChunkKind.ITERATE, snap, self.state, self.settings)
        if plan is None:
            self._commit(apply_conclude_twap(self.state), ctx.timestamp)
            self.ledger.emit(Event.TWAP_CONCLUDED, leverage_e8=snap.leverage_e8, target_e8=target)
            logger.info("twap sequence concluded at leverage %d (target %d)", snap.leverage_e8, target)
            return None
        return self._start_chunk(ctx, plan, snap)

    def ripcord(self, ctx: CallContext) -> PendingSwap:
        _raise_if(guard_ripcord(self.state, ctx, self.settings))
        snap = self.snapshot(ctx.timestamp)
        if snap.leverage_e8 < self.settings.bands.ripcord_e8:
            raise InvalidStateError(
                "state:below_ripcord",
                f"leverage {snap.leverage_e8} is below ripcord {self.settings.bands.ripcord_e8}",
            )
        plan = plan_chunk(ChunkKind.RIPCORD, snap, self.state, self.settings)
        if plan is None:  # unreachable: ripcord > max so the gap is positive
            raise InvalidStateError("state:no_adjustment", "nothing to delever")
        reward = self._reward_due()
        pending = self._start_chunk(ctx, plan, snap, reward=reward, caller=ctx.sender)
        self._pay_reward(ctx.sender, reward)
        return pending

    def disengage(self, ctx: CallContext) -> Optional[PendingSwap]:
        """Unwind toward 1.0x in chunks; returns ``None`` if already flat."""
        _raise_if(guard_disengage(self.state, ctx, self.policy))
        snap = self.snapshot(ctx.timestamp)
        plan = plan_chunk(ChunkKind.DISENGAGE, snap, self.state, self.settings)
        if plan is None:
            self._commit(apply_disengage_flat(self.state), ctx.timestamp)
            self.ledger.emit(Event.DISENGAGED, leverage_e8=snap.leverage_e8, chunk=0)
            logger.info("disengaged with no position to unwind")
            return None
        return self._start_chunk(ctx, plan, snap)

    def complete_swap(self, ctx: CallContext) -> SwapReceipt:
        _raise_if(guard_complete_swap(self.state))
        pending = self.pending_swap
        if pending is None:
            raise InvariantError(["pending_record_missing"])

        fill = self.config.swap_gateway.settled_fill(pending.swap_id)
        if fill is None:
            raise SettlementPendingError("settlement:pending", f"swap {pending.swap_id} has no fill yet")

        snap = self.snapshot(ctx.timestamp)
        tolerance = self.settings.price_integrity.fill_tolerance_bps
        if not self.config.price_checker.validate(fill.fill_price_e8, snap.twap_e8, tolerance):
            logger.warning(
                "rejected fill for %s: price %d deviates %d bps from twap %d",
                pending.swap_id, fill.fill_price_e8,
                price_deviation_bps(fill.fill_price_e8, snap.twap_e8), snap.twap_e8,
            )
            raise PriceCheckError(
                "price_check:deviation",
                f"fill price {fill.fill_price_e8} outside {tolerance} bps of twap {snap.twap_e8}",
            )
        if fill.amount_out < pending.intent.min_buy_amount:
            raise PriceCheckError(
                "price_check:min_out",
                f"fill amount {fill.amount_out} below intent minimum {pending.intent.min_buy_amount}",
            )

        market = self.config.lending_market
        surplus = self.state.surplus_debt
        if pending.direction is SwapState.PENDING_LEVER:
            market.supply(self.config.collateral_asset, fill.amount_out)
        else:
            surplus += self._repay_up_to(fill.amount_out)

        collateral = market.collateral_balance(self.config.collateral_asset)
        debt = market.debt_balance(self.config.debt_asset)
        leverage_after = leverage_ratio_e8(collateral, debt, snap.twap_e8)

        new_state = apply_complete_swap(
            self.state, pending, leverage_after,
            self.settings.execution.rebalance_tolerance_bps, surplus,
            debt_outstanding=debt > 0,
        )
        self._commit(new_state, ctx.timestamp)
        receipt = self.swaps.close(
            pending.swap_id, amount_out=fill.amount_out,
            fill_price_e8=fill.fill_price_e8, closed_at=ctx.timestamp,
        )
        self.ledger.emit(
            Event.SWAP_COMPLETED,
            swap_id=pending.swap_id,
            kind=pending.kind.value,
            amount_out=fill.amount_out,
            fill_price_e8=fill.fill_price_e8,
            leverage_e8=leverage_after,
            twap_target_e8=new_state.twap_target_e8,
            engaged=new_state.engaged,
        )
        logger.info(
            "swap %s completed (%s): out=%d leverage=%d twap_target=%d",
            pending.swap_id, pending.kind.value, fill.amount_out, leverage_after, new_state.twap_target_e8,
        )
        return receipt

    def cancel_pending_swap(self, ctx: CallContext) -> SwapReceipt:
        """Admin exit for a swap the venue never filled."""
        pending = self.pending_swap
        _raise_if(guard_cancel_pending_swap(self.state, ctx, self.policy, pending, self.settings))
        refunded = self.config.swap_gateway.cancel(pending.swap_id)
        surplus = self.state.surplus_debt
        if pending.direction is SwapState.PENDING_LEVER:
            surplus += self._repay_up_to(refunded)
        else:
            self.config.lending_market.supply(self.config.collateral_asset, refunded)

        debt_outstanding = self.config.lending_market.debt_balance(self.config.debt_asset) > 0
        new_state = apply_cancel_swap(self.state, debt_outstanding=debt_outstanding)
        self._commit(replace(new_state, surplus_debt=surplus), ctx.timestamp)
        receipt = self.swaps.cancel(pending.swap_id, closed_at=ctx.timestamp)
        self.ledger.emit(Event.SWAP_CANCELLED, swap_id=pending.swap_id, refunded=refunded)
        logger.warning("swap %s cancelled after timeout, refunded %d", pending.swap_id, refunded)
        return receipt

    # =====================================================================
    # Capital routing
    # =====================================================================

    def deposit(self, ctx: CallContext, amount: int) -> int:
        _raise_if(guard_deposit(ctx, self.policy, amount))
        balance = self.config.lending_market.supply(self.config.collateral_asset, amount)
        self.ledger.emit(Event.COLLATERAL_DEPOSITED, amount=amount, collateral=balance)
        return balance

    def withdraw(self, ctx: CallContext, amount: int) -> int:
        _raise_if(guard_withdraw(self.state, ctx, self.policy, amount))
        snap = self.snapshot(ctx.timestamp)
        if amount > snap.collateral:
            raise InsufficientBalanceError("withdraw:collateral", f"withdraw {amount} exceeds collateral {snap.collateral}")
        if snap.debt > 0:
            after = leverage_ratio_e8(snap.collateral - amount, snap.debt, snap.twap_e8)
            if after > self.settings.bands.max_e8:
                raise GuardError(
                    "withdraw:max_leverage",
                    f"withdraw would lift leverage to {after}, above max {self.settings.bands.max_e8}",
                )
        balance = self.config.lending_market.withdraw(self.config.collateral_asset, amount)
        self.ledger.emit(Event.COLLATERAL_WITHDRAWN, amount=amount, collateral=balance)
        return balance

    def fund_rewards(self, ctx: CallContext, amount: int) -> int:
        if amount <= 0:
            raise GuardError("param:amount", f"amount must be positive: {amount}")
        self.ledger.native.transfer(ctx.sender, self.address, NATIVE_ASSET, amount)
        balance = self.reward_balance()
        self.ledger.emit(Event.REWARDS_FUNDED, funder=ctx.sender, amount=amount, balance=balance)
        return balance

    # =====================================================================
    # Administration
    # =====================================================================

    def set_leverage_bands(self, ctx: CallContext, bands: LeverageBands) -> None:
        self._configure(ctx, Event.BANDS_UPDATED, bands=bands)

    def set_execution_params(self, ctx: CallContext, execution: ExecutionParams) -> None:
        self._configure(ctx, Event.EXECUTION_PARAMS_UPDATED, execution=execution)

    def set_incentive_params(self, ctx: CallContext, incentive: IncentiveParams) -> None:
        self._configure(ctx, Event.INCENTIVE_PARAMS_UPDATED, incentive=incentive)

    def set_price_integrity_params(self, ctx: CallContext, params: PriceIntegrityParams) -> None:
        self._configure(ctx, Event.PRICE_INTEGRITY_PARAMS_UPDATED, price_integrity=params)

    def update_caller_status(self, ctx: CallContext, caller: Address, allowed: bool) -> None:
        _raise_if(check_access(self.policy, ctx, Capability.ADMIN))
        callers = set(self.policy.allowed_callers)
        if allowed:
            callers.add(caller)
        else:
            callers.discard(caller)
        self.policy = replace(self.policy, allowed_callers=frozenset(callers))
        self.ledger.emit(Event.CALLER_STATUS_UPDATED, caller=caller, allowed=allowed)

    def set_any_caller_allowed(self, ctx: CallContext, allowed: bool) -> None:
        _raise_if(check_access(self.policy, ctx, Capability.ADMIN))
        self.policy = replace(self.policy, any_caller_allowed=allowed)
        self.ledger.emit(Event.ANY_CALLER_ALLOWED_UPDATED, allowed=allowed)

    # =====================================================================
    # Helpers
    # =====================================================================

    def _configure(self, ctx: CallContext, event: Event, **changes: Any) -> None:
        _raise_if(guard_configure(self.state, ctx, self.policy))
        # Rebuilding the whole settings record re-runs the cross-field checks.
        settings = replace(self.settings, **changes)
        violations = check_all(self.state, settings, ctx.timestamp)
        if violations:
            raise InvariantError(violations)
        self.settings = settings
        self.ledger.emit(event)
        logger.info("%s by %s", event.value, ctx.sender)

    def _commit(self, new_state: RuntimeState, now: int) -> None:
        violations = check_all(new_state, self.settings, now)
        if violations:
            raise InvariantError(violations)
        self.state = new_state

    def _start_chunk(self, ctx: CallContext, plan: ChunkPlan, snap: MarketSnapshot, **fields: Any) -> PendingSwap:
        intent = build_intent(
            plan, snap, self.settings,
            owner=self.address,
            collateral_asset=self.config.collateral_asset,
            debt_asset=self.config.debt_asset,
            valid_to=ctx.timestamp + self.settings.execution.settlement_timeout,
        )
        market = self.config.lending_market
        if plan.direction is SwapState.PENDING_LEVER:
            market.borrow(self.config.debt_asset, intent.sell_amount)
        else:
            market.withdraw(self.config.collateral_asset, intent.sell_amount)
        swap_id = self.config.swap_gateway.initiate(intent)

        pending = PendingSwap(
            swap_id=swap_id,
            kind=plan.kind,
            direction=plan.direction,
            intent=intent,
            chunk_amount=plan.collateral_amount,
            target_e8=plan.target_e8,
            is_final=plan.is_final,
            initiated_at=ctx.timestamp,
        )
        self._commit(apply_begin_swap(self.state, plan, swap_id, ctx.timestamp), ctx.timestamp)
        self.swaps.open(pending)
        self.ledger.emit(
            _CHUNK_EVENTS[plan.kind],
            swap_id=swap_id,
            direction=plan.direction.value,
            chunk=plan.collateral_amount,
            sell_amount=intent.sell_amount,
            min_buy_amount=intent.min_buy_amount,
            leverage_e8=snap.leverage_e8,
            target_e8=plan.target_e8,
            is_final=plan.is_final,
            **fields,
        )
        logger.info(
            "%s chunk %d (%s) toward %d from %d, swap %s",
            plan.kind.value, plan.collateral_amount, plan.direction.value,
            plan.target_e8, snap.leverage_e8, swap_id,
        )
        return pending

    def _repay_up_to(self, amount: int) -> int:
        """Repay as much of *amount* as there is debt; return the surplus."""
        market = self.config.lending_market
        outstanding = market.debt_balance(self.config.debt_asset)
        repay = min(amount, outstanding)
        if repay > 0:
            market.repay(self.config.debt_asset, repay)
        return amount - repay

    def _reward_due(self) -> int:
        return min(self.settings.incentive.fixed_reward, self.reward_balance())

    def _pay_reward(self, recipient: Address, reward: int) -> int:
        if reward > 0:
            self.ledger.native.transfer(self.address, recipient, NATIVE_ASSET, reward)
        logger.info("ripcord reward %d paid to %s", reward, recipient)
        return reward
