"""Tests for the engine's unwind, recovery, capital and admin operations."""

from __future__ import annotations

from dataclasses import replace

import pytest

from carrylever.core.leverage import (
    AccessDeniedError,
    ConfigError,
    CooldownError,
    Decision,
    Event,
    GuardError,
    IncentiveParams,
    InsufficientBalanceError,
    InvalidStateError,
    LeverageBands,
    PriceIntegrityParams,
    StaleOracleError,
    SwapState,
)
from carrylever.core.leverage.math import PRICE_SCALE
from carrylever.state.balances import NATIVE_ASSET

from tests.integration.harness import (
    DEBT,
    KEEPER,
    OPERATOR,
    OWNER,
    ROUTER,
    Harness,
    engaged_harness,
)


# ---------------------------------------------------------------------------
# disengage
# ---------------------------------------------------------------------------

class TestDisengage:
    def test_single_chunk_unwind(self):
        h = engaged_harness()
        pending = h.call("disengage", OPERATOR)
        assert pending.direction is SwapState.PENDING_DELEVER
        assert pending.chunk_amount == 100_000
        assert pending.is_final is True
        assert h.state.unwinding is True

        h.settle_and_complete()
        assert h.state.engaged is False
        assert h.state.unwinding is False
        assert h.balances() == (100_000, 0)
        assert h.leverage() == 100_000_000

    def test_chunked_unwind_iterates_to_flat(self):
        h = engaged_harness(500_000)
        assert h.balances() == (1_000_000, 1_000_000_000)
        h.call("set_execution_params", OWNER, replace(h.engine.settings.execution, max_trade_size=100_000))

        first = h.call("disengage", OPERATOR)
        assert first.chunk_amount == 100_000
        h.settle_and_complete()
        assert h.leverage() == 180_000_000
        assert h.state.twap_target_e8 == 100_000_000
        assert h.state.engaged is True

        observed = []
        while h.state.twap_target_e8 != 0:
            assert len(observed) < 5
            h.advance(300)
            h.iterate()
            h.settle_and_complete()
            observed.append(h.leverage())

        assert observed == [160_000_000, 140_000_000, 120_000_000, 100_000_000]
        assert h.state.engaged is False
        assert h.balances() == (500_000, 0)
        assert h.state.surplus_debt == 0

    def test_flat_position_disengages_without_trading(self):
        h = Harness()
        h.deposit(100_000)
        h.engine.state = replace(h.state, engaged=True)

        assert h.call("disengage", OPERATOR) is None
        assert h.state.engaged is False
        assert h.gateway.open_orders() == []
        (event,) = h.ledger.events(Event.DISENGAGED)
        assert event.fields["chunk"] == 0

    def test_requires_engagement(self):
        h = Harness()
        h.deposit(100_000)
        with pytest.raises(InvalidStateError) as exc:
            h.call("disengage", OPERATOR)
        assert exc.value.reason == "state:not_engaged"

    def test_requires_operator(self):
        h = engaged_harness()
        with pytest.raises(AccessDeniedError):
            h.call("disengage", KEEPER)


# ---------------------------------------------------------------------------
# cancel_pending_swap
# ---------------------------------------------------------------------------

class TestCancelPendingSwap:
    def test_cancel_lever_repays_refund(self):
        h = Harness()
        h.deposit(100_000)
        pending = h.engage()

        with pytest.raises(CooldownError) as exc:
            h.call("cancel_pending_swap", OWNER)
        assert exc.value.reason == "cooldown:settlement_timeout"

        h.advance(86_400)
        receipt = h.call("cancel_pending_swap", OWNER)
        assert receipt.cancelled is True
        assert receipt.swap_id == pending.swap_id
        assert h.engine.swap_state is SwapState.IDLE
        assert h.engine.pending_swap_amount == 0
        assert h.state.twap_target_e8 == 0
        assert h.balances() == (100_000, 0)
        assert h.gateway.escrow.total(DEBT) == 0
        assert h.market.available_liquidity == 10**15
        assert len(h.ledger.events(Event.SWAP_CANCELLED)) == 1
        assert h.state.engaged is False

        # The strategy can start over.
        h.engage()
        assert h.engine.swap_state is SwapState.PENDING_LEVER

    def test_cancel_delever_resupplies_collateral(self):
        h = engaged_harness()
        h.set_price(1_550 * PRICE_SCALE)
        h.call("ripcord", KEEPER)
        assert h.balances() == (195_000, 200_000_000)

        h.advance(86_400)
        h.call("cancel_pending_swap", OWNER)
        assert h.balances() == (200_000, 200_000_000)
        assert h.engine.swap_state is SwapState.IDLE

    def test_cancel_mid_sequence_keeps_leftover_debt_managed(self):
        h = Harness()
        h.deposit(500_000)
        h.engage()
        h.settle_and_complete()
        h.advance(300)
        h.iterate()
        assert h.engine.swap_state is SwapState.PENDING_LEVER

        h.advance(86_400)
        h.call("cancel_pending_swap", OWNER)
        assert h.balances() == (600_000, 200_000_000)
        assert h.state.twap_target_e8 == 0
        assert h.state.engaged is True
        assert h.state.unwinding is False

        h.advance(86_400)
        assert h.engine.should_rebalance() is Decision.REBALANCE

    def test_cancel_requires_owner(self):
        h = Harness()
        h.deposit(100_000)
        h.engage()
        h.advance(86_400)
        with pytest.raises(AccessDeniedError) as exc:
            h.call("cancel_pending_swap", OPERATOR)
        assert exc.value.reason == "access:admin"

    def test_settled_order_cannot_be_cancelled(self):
        h = Harness()
        h.deposit(100_000)
        h.engage()
        h.settle(2_100 * PRICE_SCALE)
        h.advance(86_400)
        with pytest.raises(InvalidStateError) as exc:
            h.call("cancel_pending_swap", OWNER)
        assert exc.value.reason == "venue:already_settled"
        assert h.engine.swap_state is SwapState.PENDING_LEVER

    def test_nothing_pending(self):
        h = Harness()
        with pytest.raises(InvalidStateError) as exc:
            h.call("cancel_pending_swap", OWNER)
        assert exc.value.reason == "state:no_pending_swap"


# ---------------------------------------------------------------------------
# deposit / withdraw / fund_rewards
# ---------------------------------------------------------------------------

class TestCapital:
    def test_deposit_requires_router(self):
        h = Harness()
        with pytest.raises(AccessDeniedError) as exc:
            h.call("deposit", KEEPER, 100)
        assert exc.value.reason == "access:route_capital"

    def test_deposit_rejects_zero(self):
        h = Harness()
        with pytest.raises(GuardError) as exc:
            h.deposit(0)
        assert exc.value.reason == "param:amount"

    def test_withdraw_respects_max_leverage(self):
        h = engaged_harness()
        with pytest.raises(GuardError) as exc:
            h.call("withdraw", ROUTER, 30_000)
        assert exc.value.reason == "withdraw:max_leverage"
        assert h.balances() == (200_000, 200_000_000)

        assert h.call("withdraw", ROUTER, 10_000) == 190_000
        assert len(h.ledger.events(Event.COLLATERAL_WITHDRAWN)) == 1

    def test_withdraw_unlevered(self):
        h = Harness()
        h.deposit(100_000)
        assert h.call("withdraw", ROUTER, 100_000) == 0

    def test_withdraw_more_than_collateral(self):
        h = Harness()
        h.deposit(100_000)
        with pytest.raises(InsufficientBalanceError) as exc:
            h.call("withdraw", ROUTER, 100_001)
        assert exc.value.reason == "withdraw:collateral"

    def test_withdraw_blocked_while_pending(self):
        h = Harness()
        h.deposit(100_000)
        h.engage()
        with pytest.raises(InvalidStateError) as exc:
            h.call("withdraw", ROUTER, 1)
        assert exc.value.reason == "state:swap_pending"

    def test_fund_rewards_moves_native_balance(self):
        h = Harness()
        h.ledger.native.add("donor", NATIVE_ASSET, 5_000)
        assert h.call("fund_rewards", "donor", 4_000) == 4_000
        assert h.ledger.native.get("donor") == 1_000
        assert h.engine.reward_balance() == 4_000

    def test_fund_rewards_beyond_balance_reverts(self):
        h = Harness()
        with pytest.raises(InsufficientBalanceError):
            h.call("fund_rewards", "donor", 1)
        assert h.engine.reward_balance() == 0


# ---------------------------------------------------------------------------
# Admin configuration
# ---------------------------------------------------------------------------

NEW_BANDS = LeverageBands(min_e8=150_000_000, target_e8=180_000_000, max_e8=210_000_000, ripcord_e8=250_000_000)


class TestAdmin:
    def test_set_bands(self):
        h = Harness()
        h.call("set_leverage_bands", OWNER, NEW_BANDS)
        assert h.engine.settings.bands == NEW_BANDS
        assert len(h.ledger.events(Event.BANDS_UPDATED)) == 1

    def test_set_bands_requires_owner(self):
        h = Harness()
        with pytest.raises(AccessDeniedError) as exc:
            h.call("set_leverage_bands", OPERATOR, NEW_BANDS)
        assert exc.value.reason == "access:admin"

    def test_rejected_while_pending(self):
        h = Harness()
        h.deposit(100_000)
        h.engage()
        with pytest.raises(InvalidStateError) as exc:
            h.call("set_leverage_bands", OWNER, NEW_BANDS)
        assert exc.value.reason == "state:swap_pending"

    def test_rejected_during_twap_sequence(self):
        h = Harness()
        h.deposit(500_000)
        h.engage()
        h.settle_and_complete()
        with pytest.raises(InvalidStateError) as exc:
            h.call("set_leverage_bands", OWNER, NEW_BANDS)
        assert exc.value.reason == "state:twap_in_progress"

    def test_cross_field_validation(self):
        h = Harness()
        before = h.engine.settings
        slow_ripcord = replace(before.incentive, ripcord_cooldown=86_400)
        with pytest.raises(ConfigError) as exc:
            h.call("set_incentive_params", OWNER, slow_ripcord)
        assert exc.value.reason == "config:ripcord_cooldown"

        small_trades = replace(before.execution, max_trade_size=1_000)
        with pytest.raises(ConfigError) as exc:
            h.call("set_execution_params", OWNER, small_trades)
        assert exc.value.reason == "config:ripcord_max_trade"
        assert h.engine.settings == before

    def test_invalid_params_from_non_owner_report_access(self):
        h = Harness()
        bad = IncentiveParams(
            ripcord_slippage_tolerance_bps=300, ripcord_cooldown=86_400, ripcord_max_trade=5_000, fixed_reward=0,
        )
        with pytest.raises(AccessDeniedError):
            h.call("set_incentive_params", KEEPER, bad)

    def test_price_integrity_params_apply(self):
        h = engaged_harness()
        h.call("set_price_integrity_params", OWNER, PriceIntegrityParams(max_oracle_age=60, fill_tolerance_bps=100))
        h.advance(61, refresh=False)
        with pytest.raises(StaleOracleError):
            h.engine.get_current_leverage_ratio()

    def test_caller_allow_list(self):
        h = engaged_harness()
        h.call("update_caller_status", OWNER, KEEPER, False)
        with pytest.raises(AccessDeniedError) as exc:
            h.call("rebalance", KEEPER)
        assert exc.value.reason == "access:trade"

        h.call("update_caller_status", OWNER, "keeper-2", True)
        assert "keeper-2" in h.engine.policy.allowed_callers
        # Past the access check: now the interval applies.
        with pytest.raises(CooldownError):
            h.call("rebalance", "keeper-2")

    def test_any_caller_allowed(self):
        h = engaged_harness()
        h.call("set_any_caller_allowed", OWNER, True)
        with pytest.raises(CooldownError):
            h.call("rebalance", "stranger")
        assert len(h.ledger.events(Event.ANY_CALLER_ALLOWED_UPDATED)) == 1
