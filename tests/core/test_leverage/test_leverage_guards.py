"""Tests for carrylever/core/leverage/guards.py."""

from dataclasses import replace

from carrylever.core.leverage.errors import AccessDeniedError, CooldownError, GuardError, InvalidStateError
from carrylever.core.leverage.guards import (
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
    require_direct_caller,
)
from carrylever.core.leverage.types import (
    AccessPolicy,
    CallContext,
    Capability,
    ChunkKind,
    PendingSwap,
    RuntimeState,
    SwapIntent,
    SwapState,
)

from tests.integration.harness import make_settings

POLICY = AccessPolicy(owner="owner", operator="op", router="vault", allowed_callers=frozenset({"bot"}))
IDLE = RuntimeState()
ENGAGED = replace(IDLE, engaged=True)
PENDING = replace(IDLE, swap_state=SwapState.PENDING_LEVER, pending_swap_amount=10, pending_swap_id="0x01")
IN_TWAP = replace(ENGAGED, twap_target_e8=200_000_000)


def ctx(sender: str, *, origin: str | None = None, t: int = 1_000) -> CallContext:
    return CallContext(sender=sender, origin=origin or sender, timestamp=t)


def _reason(rejection):
    assert isinstance(rejection, GuardError)
    return rejection.reason


class TestAccess:
    def test_public(self):
        assert check_access(POLICY, ctx("anyone"), Capability.PUBLIC) is None

    def test_roles(self):
        assert check_access(POLICY, ctx("owner"), Capability.ADMIN) is None
        assert check_access(POLICY, ctx("op"), Capability.OPERATE) is None
        assert check_access(POLICY, ctx("vault"), Capability.ROUTE_CAPITAL) is None
        assert check_access(POLICY, ctx("bot"), Capability.TRADE) is None

    def test_owner_is_not_operator(self):
        rejection = check_access(POLICY, ctx("owner"), Capability.OPERATE)
        assert isinstance(rejection, AccessDeniedError)
        assert rejection.reason == "access:operate"

    def test_any_caller_allowed(self):
        policy = replace(POLICY, any_caller_allowed=True)
        assert check_access(policy, ctx("stranger"), Capability.TRADE) is None
        assert check_access(policy, ctx("stranger"), Capability.ADMIN) is not None

    def test_direct_caller(self):
        assert require_direct_caller(ctx("op")) is None
        assert _reason(require_direct_caller(ctx("relay", origin="op"))) == "access:not_direct_caller"


class TestElapsed:
    def test_never_counts_as_elapsed(self):
        assert elapsed(5, 0, 1_000) is True

    def test_boundary(self):
        assert elapsed(400, 100, 300) is True
        assert elapsed(399, 100, 300) is False


class TestEngage:
    def test_allowed(self):
        assert guard_engage(IDLE, ctx("op"), POLICY) is None

    def test_not_operator(self):
        assert _reason(guard_engage(IDLE, ctx("bot"), POLICY)) == "access:operate"

    def test_relayed(self):
        assert _reason(guard_engage(IDLE, ctx("op", origin="eoa"), POLICY)) == "access:not_direct_caller"

    def test_pending(self):
        assert _reason(guard_engage(PENDING, ctx("op"), POLICY)) == "state:swap_pending"

    def test_already_engaged(self):
        assert _reason(guard_engage(ENGAGED, ctx("op"), POLICY)) == "state:engaged"

    def test_twap_in_progress(self):
        assert _reason(guard_engage(replace(IDLE, twap_target_e8=2), ctx("op"), POLICY)) == "state:twap_in_progress"


class TestRebalanceAndIterate:
    def test_rebalance_requires_engaged(self):
        assert _reason(guard_rebalance(IDLE, ctx("bot"), POLICY)) == "state:not_engaged"
        assert guard_rebalance(ENGAGED, ctx("bot"), POLICY) is None

    def test_rebalance_blocked_by_twap(self):
        assert _reason(guard_rebalance(IN_TWAP, ctx("bot"), POLICY)) == "state:twap_in_progress"

    def test_rebalance_allows_relayed_keepers(self):
        assert guard_rebalance(ENGAGED, ctx("bot", origin="eoa"), POLICY) is None

    def test_iterate_requires_twap(self):
        assert _reason(guard_iterate_rebalance(ENGAGED, ctx("bot"), POLICY)) == "state:no_twap"
        assert guard_iterate_rebalance(IN_TWAP, ctx("bot"), POLICY) is None

    def test_iterate_not_allow_listed(self):
        assert _reason(guard_iterate_rebalance(IN_TWAP, ctx("stranger"), POLICY)) == "access:trade"


class TestRipcord:
    def test_anyone_direct(self):
        assert guard_ripcord(ENGAGED, ctx("stranger"), make_settings()) is None

    def test_relayed_rejected(self):
        rejection = guard_ripcord(ENGAGED, ctx("relay", origin="eoa"), make_settings())
        assert _reason(rejection) == "access:not_direct_caller"

    def test_cooldown(self):
        state = replace(ENGAGED, last_ripcord_time=990)
        rejection = guard_ripcord(state, ctx("x", t=1_000), make_settings(ripcord_cooldown=60))
        assert isinstance(rejection, CooldownError)
        assert guard_ripcord(state, ctx("x", t=1_050), make_settings(ripcord_cooldown=60)) is None

    def test_pending(self):
        assert _reason(guard_ripcord(PENDING, ctx("x"), make_settings())) == "state:swap_pending"


class TestDisengage:
    def test_allowed(self):
        assert guard_disengage(ENGAGED, ctx("op"), POLICY) is None

    def test_not_engaged(self):
        assert _reason(guard_disengage(IDLE, ctx("op"), POLICY)) == "state:not_engaged"


class TestCompleteAndCancel:
    def _pending(self, initiated_at: int) -> PendingSwap:
        intent = SwapIntent(owner="e", sell_asset="d", buy_asset="c", sell_amount=1, min_buy_amount=0, valid_to=9)
        return PendingSwap(
            swap_id="0x01", kind=ChunkKind.ENGAGE, direction=SwapState.PENDING_LEVER, intent=intent,
            chunk_amount=10, target_e8=200_000_000, is_final=True, initiated_at=initiated_at,
        )

    def test_complete_requires_pending(self):
        assert isinstance(guard_complete_swap(IDLE), InvalidStateError)
        assert guard_complete_swap(PENDING) is None

    def test_cancel_before_timeout(self):
        settings = make_settings(settlement_timeout=100)
        rejection = guard_cancel_pending_swap(PENDING, ctx("owner", t=1_050), POLICY, self._pending(1_000), settings)
        assert _reason(rejection) == "cooldown:settlement_timeout"

    def test_cancel_after_timeout(self):
        settings = make_settings(settlement_timeout=100)
        assert guard_cancel_pending_swap(PENDING, ctx("owner", t=1_100), POLICY, self._pending(1_000), settings) is None

    def test_cancel_admin_only(self):
        settings = make_settings(settlement_timeout=100)
        rejection = guard_cancel_pending_swap(PENDING, ctx("op", t=5_000), POLICY, self._pending(1_000), settings)
        assert _reason(rejection) == "access:admin"


class TestConfigureAndCapital:
    def test_configure(self):
        assert guard_configure(IDLE, ctx("owner"), POLICY) is None
        assert _reason(guard_configure(IN_TWAP, ctx("owner"), POLICY)) == "state:twap_in_progress"
        assert _reason(guard_configure(PENDING, ctx("owner"), POLICY)) == "state:swap_pending"

    def test_deposit(self):
        assert guard_deposit(ctx("vault"), POLICY, 1) is None
        assert _reason(guard_deposit(ctx("vault"), POLICY, 0)) == "param:amount"
        assert _reason(guard_deposit(ctx("op"), POLICY, 1)) == "access:route_capital"

    def test_withdraw(self):
        assert guard_withdraw(ENGAGED, ctx("vault"), POLICY, 1) is None
        assert _reason(guard_withdraw(PENDING, ctx("vault"), POLICY, 1)) == "state:swap_pending"
        assert _reason(guard_withdraw(IN_TWAP, ctx("vault"), POLICY, 1)) == "state:twap_in_progress"
