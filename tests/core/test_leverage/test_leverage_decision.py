"""Tests for carrylever/core/leverage/decision.py: should_rebalance."""

from dataclasses import replace

from hypothesis import given
from hypothesis import strategies as st

from carrylever.core.leverage.decision import should_rebalance
from carrylever.core.leverage.types import Decision, RuntimeState, SwapState

from tests.integration.harness import make_settings

SETTINGS = make_settings(twap_cooldown=300, rebalance_interval=86_400, ripcord_cooldown=60)
T = 1_000_000
ON_TARGET = 200_000_000
ENGAGED = replace(RuntimeState(), engaged=True, last_rebalance_time=T - 1, last_trade_time=T - 1)


def test_pending_swap_blocks_everything():
    state = replace(ENGAGED, swap_state=SwapState.PENDING_DELEVER, pending_swap_amount=1, pending_swap_id="0x1")
    assert should_rebalance(state, 400_000_000, T, SETTINGS) is Decision.NONE


def test_ripcord_preempts_interval():
    assert should_rebalance(ENGAGED, 270_000_000, T, SETTINGS) is Decision.RIPCORD


def test_ripcord_preempts_twap():
    state = replace(ENGAGED, twap_target_e8=200_000_000)
    assert should_rebalance(state, 280_000_000, T, SETTINGS) is Decision.RIPCORD


def test_ripcord_cooldown_yields_none():
    state = replace(ENGAGED, last_ripcord_time=T - 30)
    assert should_rebalance(state, 280_000_000, T, SETTINGS) is Decision.NONE


def test_ripcord_even_when_not_engaged():
    assert should_rebalance(RuntimeState(), 300_000_000, T, SETTINGS) is Decision.RIPCORD


class TestTwap:
    def test_iterate_after_cooldown(self):
        state = replace(ENGAGED, twap_target_e8=200_000_000, last_trade_time=T - 300)
        assert should_rebalance(state, 150_000_000, T, SETTINGS) is Decision.ITERATE

    def test_waiting_for_cooldown(self):
        state = replace(ENGAGED, twap_target_e8=200_000_000, last_trade_time=T - 299)
        assert should_rebalance(state, 150_000_000, T, SETTINGS) is Decision.NONE


class TestRebalance:
    def test_not_engaged(self):
        assert should_rebalance(RuntimeState(), 150_000_000, T, SETTINGS) is Decision.NONE

    def test_interval_not_elapsed(self):
        assert should_rebalance(ENGAGED, 150_000_000, T, SETTINGS) is Decision.NONE

    def test_outside_tolerance_after_interval(self):
        state = replace(ENGAGED, last_rebalance_time=T - 86_400)
        assert should_rebalance(state, 190_000_000, T, SETTINGS) is Decision.REBALANCE

    def test_within_tolerance_after_interval(self):
        state = replace(ENGAGED, last_rebalance_time=T - 86_400)
        assert should_rebalance(state, 200_900_000, T, SETTINGS) is Decision.NONE

    def test_on_target(self):
        state = replace(ENGAGED, last_rebalance_time=0)
        assert should_rebalance(state, ON_TARGET, T, SETTINGS) is Decision.NONE


@given(
    leverage=st.integers(min_value=100_000_000, max_value=500_000_000),
    twap_target=st.sampled_from([0, 180_000_000, 220_000_000]),
    engaged=st.booleans(),
    dt=st.integers(min_value=0, max_value=200_000),
)
def test_decision_is_a_pure_function(leverage, twap_target, engaged, dt):
    state = replace(
        RuntimeState(),
        engaged=engaged,
        twap_target_e8=twap_target,
        last_rebalance_time=T - dt,
        last_trade_time=T - dt,
        last_ripcord_time=T - dt,
    )
    first = should_rebalance(state, leverage, T, SETTINGS)
    assert should_rebalance(state, leverage, T, SETTINGS) is first
    if leverage >= SETTINGS.bands.ripcord_e8:
        assert first in (Decision.RIPCORD, Decision.NONE)
    elif twap_target:
        assert first in (Decision.ITERATE, Decision.NONE)
