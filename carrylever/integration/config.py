"""
YAML strategy configuration.

The loader is fail-closed: every section must be a mapping, unknown keys are
rejected and integers must be integers. Ratios (bands, recenter speed) may be
written as decimals (``"2.0"`` or ``2.0``) and are converted exactly to their
1e8-scaled form; a ratio with more than eight decimal places is rejected.

    assets:      {collateral: wsteth, debt: weth}
    access:      {owner: ..., operator: ..., router: ..., allowed_callers: [...]}
    bands:       {min: "1.7", target: "2.0", max: "2.3", ripcord: "2.7"}
    execution:   {max_trade_size: ..., twap_cooldown: ..., ...}
    incentive:   {ripcord_slippage_tolerance_bps: ..., ...}
    price_integrity: {max_oracle_age: ..., fill_tolerance_bps: ...}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from ..core.leverage.errors import ConfigError
from ..core.leverage.math import RATIO_SCALE
from ..core.leverage.types import (
    AccessPolicy,
    AssetId,
    ExecutionParams,
    IncentiveParams,
    LeverageBands,
    PriceIntegrityParams,
    StrategySettings,
)

logger = logging.getLogger(__name__)

_SECTIONS = {"assets", "access", "bands", "execution", "incentive", "price_integrity"}
_REQUIRED_SECTIONS = {"access", "bands", "execution", "incentive"}

DEFAULT_COLLATERAL_ASSET = "collateral"
DEFAULT_DEBT_ASSET = "debt"


@dataclass(frozen=True)
class LoadedConfig:
    settings: StrategySettings
    policy: AccessPolicy
    collateral_asset: AssetId
    debt_asset: AssetId


def _require_mapping(obj: Any, *, name: str) -> Dict[str, Any]:
    if not isinstance(obj, dict):
        raise ConfigError(f"config:{name}", f"{name} must be a mapping")
    for key in obj:
        if not isinstance(key, str):
            raise ConfigError(f"config:{name}", f"{name} keys must be strings")
    return obj


def _reject_unknown(section: Mapping[str, Any], allowed: set[str], *, name: str) -> None:
    unknown = sorted(set(section) - allowed)
    if unknown:
        raise ConfigError(f"config:{name}", f"unknown keys in {name}: {', '.join(unknown)}")


def _require_int(value: Any, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(f"config:{name}", f"{name} must be an int")
    return value


def _require_str(value: Any, *, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ConfigError(f"config:{name}", f"{name} must be a non-empty string")
    return value


def _require_bool(value: Any, *, name: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"config:{name}", f"{name} must be a bool")
    return value


def parse_ratio_e8(value: Any, *, name: str) -> int:
    """``"2.05"`` -> ``205_000_000``; exact, no float rounding."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ConfigError(f"config:{name}", f"{name} must be a decimal number")
    try:
        scaled = Decimal(str(value)) * RATIO_SCALE
    except InvalidOperation:
        raise ConfigError(f"config:{name}", f"{name} is not a decimal number: {value!r}") from None
    if not scaled.is_finite() or scaled != scaled.to_integral_value():
        raise ConfigError(f"config:{name}", f"{name} has more precision than 1e-8: {value!r}")
    return int(scaled)


def _section(data: Mapping[str, Any], name: str, allowed: set[str]) -> Dict[str, Any]:
    section = _require_mapping(data.get(name, {}), name=name)
    _reject_unknown(section, allowed, name=name)
    return section


def _ints(section: Mapping[str, Any], *, prefix: str) -> Dict[str, int]:
    return {k: _require_int(v, name=f"{prefix}.{k}") for k, v in section.items()}


def parse_config(data: Any) -> LoadedConfig:
    root = _require_mapping(data, name="root")
    _reject_unknown(root, _SECTIONS, name="root")
    missing = sorted(_REQUIRED_SECTIONS - set(root))
    if missing:
        raise ConfigError("config:root", f"missing sections: {', '.join(missing)}")

    assets = _section(root, "assets", {"collateral", "debt"})
    access = _section(root, "access", {"owner", "operator", "router", "allowed_callers", "any_caller_allowed"})
    bands_raw = _section(root, "bands", {"min", "target", "max", "ripcord"})
    execution_raw = _section(
        root,
        "execution",
        {
            "max_trade_size", "twap_cooldown", "slippage_tolerance_bps", "rebalance_interval",
            "recenter_speed", "rebalance_tolerance_bps", "settlement_timeout",
        },
    )
    incentive_raw = _section(
        root,
        "incentive",
        {"ripcord_slippage_tolerance_bps", "ripcord_cooldown", "ripcord_max_trade", "fixed_reward"},
    )
    integrity_raw = _section(root, "price_integrity", {"max_oracle_age", "fill_tolerance_bps"})

    for key in ("min", "target", "max", "ripcord"):
        if key not in bands_raw:
            raise ConfigError("config:bands", f"bands.{key} is required")
    bands = LeverageBands(
        min_e8=parse_ratio_e8(bands_raw["min"], name="bands.min"),
        target_e8=parse_ratio_e8(bands_raw["target"], name="bands.target"),
        max_e8=parse_ratio_e8(bands_raw["max"], name="bands.max"),
        ripcord_e8=parse_ratio_e8(bands_raw["ripcord"], name="bands.ripcord"),
    )

    execution_raw = dict(execution_raw)
    if "recenter_speed" not in execution_raw:
        raise ConfigError("config:execution", "execution.recenter_speed is required")
    recenter_speed_e8 = parse_ratio_e8(execution_raw.pop("recenter_speed"), name="execution.recenter_speed")
    try:
        execution = ExecutionParams(recenter_speed_e8=recenter_speed_e8, **_ints(execution_raw, prefix="execution"))
        incentive = IncentiveParams(**_ints(incentive_raw, prefix="incentive"))
        integrity = PriceIntegrityParams(**_ints(integrity_raw, prefix="price_integrity"))
    except TypeError as exc:
        # Missing required field.
        raise ConfigError("config:missing", str(exc)) from None

    settings = StrategySettings(bands=bands, execution=execution, incentive=incentive, price_integrity=integrity)

    callers_raw = access.get("allowed_callers", [])
    if not isinstance(callers_raw, list):
        raise ConfigError("config:access.allowed_callers", "access.allowed_callers must be a list")
    policy = AccessPolicy(
        owner=_require_str(access.get("owner"), name="access.owner"),
        operator=_require_str(access.get("operator"), name="access.operator"),
        router=_require_str(access.get("router"), name="access.router"),
        allowed_callers=frozenset(
            _require_str(c, name="access.allowed_callers[]") for c in callers_raw
        ),
        any_caller_allowed=_require_bool(access.get("any_caller_allowed", False), name="access.any_caller_allowed"),
    )

    collateral = _require_str(assets.get("collateral", DEFAULT_COLLATERAL_ASSET), name="assets.collateral")
    debt = _require_str(assets.get("debt", DEFAULT_DEBT_ASSET), name="assets.debt")
    if collateral == debt:
        raise ConfigError("config:assets", "collateral and debt assets must differ")

    return LoadedConfig(settings=settings, policy=policy, collateral_asset=collateral, debt_asset=debt)


def load_config(path: Union[str, Path], *, text: Optional[str] = None) -> LoadedConfig:
    """Read and validate a strategy YAML file (or *text*, when given)."""
    raw = Path(path).read_text(encoding="utf-8") if text is None else text
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError("config:yaml", f"{path}: {exc}") from None
    loaded = parse_config(data)
    logger.debug("loaded strategy config from %s", path)
    return loaded
