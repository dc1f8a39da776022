"""Tests for carrylever/integration/automation.py."""

from __future__ import annotations

import pytest

from carrylever.core.leverage import AccessDeniedError, InvalidStateError, SwapState
from carrylever.core.leverage.math import PRICE_SCALE
from carrylever.integration.automation import AutomationRegistrar

from tests.integration.harness import KEEPER, Harness, make_policy, make_settings

REGISTRAR = "automation-registrar"


def _registered(deposit: int = 500_000) -> tuple[Harness, AutomationRegistrar]:
    h = Harness(make_settings(), policy=make_policy([KEEPER, REGISTRAR]))
    registrar = AutomationRegistrar(h.ledger, address=REGISTRAR)
    registrar.register("carry", h.engine)
    h.deposit(deposit)
    return h, registrar


def test_idle_unengaged_strategy_needs_nothing() -> None:
    _, registrar = _registered()
    check = registrar.check_upkeep("carry")
    assert check.needed is False
    assert check.action == "none"


def test_iterate_and_complete_through_registrar() -> None:
    h, registrar = _registered()
    h.engage()

    check = registrar.check_upkeep("carry")
    assert (check.needed, check.reason) == (False, "settlement pending")

    h.settle()
    assert registrar.check_upkeep("carry").action == "complete"
    registrar.perform_upkeep("carry", KEEPER)
    assert h.engine.swap_state is SwapState.IDLE

    h.advance(300)
    check = registrar.check_upkeep("carry")
    assert (check.needed, check.action) == (True, "iterate")
    registrar.perform_upkeep("carry", KEEPER)
    assert h.engine.swap_state is SwapState.PENDING_LEVER


def test_ripcord_is_detected_but_not_executable() -> None:
    h, registrar = _registered(deposit=100_000)
    h.engage()
    h.settle_and_complete()
    h.set_price(1_550 * PRICE_SCALE)

    check = registrar.check_upkeep("carry")
    assert (check.needed, check.action) == (True, "ripcord")
    with pytest.raises(AccessDeniedError) as exc:
        registrar.perform_upkeep("carry", KEEPER)
    assert exc.value.reason == "access:not_direct_caller"
    assert h.engine.swap_state is SwapState.IDLE

    # A keeper acting directly can pull it.
    h.call("ripcord", KEEPER)
    assert h.engine.swap_state is SwapState.PENDING_DELEVER


def test_stale_prices_report_without_raising() -> None:
    h, registrar = _registered()
    h.advance(3_601, refresh=False)
    check = registrar.check_upkeep("carry")
    assert check.needed is False
    assert check.reason == "stale:spot"
    assert registrar.scan() == [check]


def test_perform_without_need_is_rejected() -> None:
    _, registrar = _registered()
    with pytest.raises(InvalidStateError) as exc:
        registrar.perform_upkeep("carry", KEEPER)
    assert exc.value.reason == "registrar:not_needed"


def test_registration_errors() -> None:
    h, registrar = _registered()
    with pytest.raises(InvalidStateError) as exc:
        registrar.register("carry", h.engine)
    assert exc.value.reason == "registrar:duplicate"
    with pytest.raises(InvalidStateError) as exc:
        registrar.check_upkeep("other")
    assert exc.value.reason == "registrar:unknown"
