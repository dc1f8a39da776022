"""TWAP chunk sizing.

A chunk is sized in collateral units from the leverage gap:

    gap   = |new - current| / current * collateral
    chunk = min(gap, cap)

where ``new`` depends on the operation (see ``chunk_target_e8``) and ``cap`` is
``ripcord_max_trade`` for ripcord chunks and ``max_trade_size`` otherwise.
A chunk smaller than the gap leaves a TWAP sequence open.
"""

from __future__ import annotations

from typing import Optional

from .math import (
    LEVERAGE_ONE,
    apply_slippage,
    cap_chunk,
    delever_min_buy,
    lever_sell_amount,
    rebalance_notional,
    recenter_ratio_e8,
)
from .types import (
    Address,
    AssetId,
    ChunkKind,
    ChunkPlan,
    MarketSnapshot,
    RuntimeState,
    StrategySettings,
    SwapIntent,
    SwapState,
)


def chunk_target_e8(
    kind: ChunkKind, state: RuntimeState, leverage_e8: int, settings: StrategySettings,
) -> int:
    bands = settings.bands
    if kind is ChunkKind.ENGAGE:
        return bands.target_e8
    if kind is ChunkKind.REBALANCE:
        return recenter_ratio_e8(
            leverage_e8, bands.target_e8, bands.min_e8, bands.max_e8,
            settings.execution.recenter_speed_e8,
        )
    if kind is ChunkKind.ITERATE:
        return state.twap_target_e8
    if kind is ChunkKind.RIPCORD:
        return bands.max_e8
    return LEVERAGE_ONE


def chunk_cap(kind: ChunkKind, settings: StrategySettings) -> int:
    if kind is ChunkKind.RIPCORD:
        return settings.incentive.ripcord_max_trade
    return settings.execution.max_trade_size


def plan_chunk(
    kind: ChunkKind,
    snapshot: MarketSnapshot,
    state: RuntimeState,
    settings: StrategySettings,
) -> Optional[ChunkPlan]:
    """Size the next chunk, or return ``None`` when there is nothing to trade."""
    target = chunk_target_e8(kind, state, snapshot.leverage_e8, settings)
    notional = rebalance_notional(snapshot.leverage_e8, target, snapshot.collateral)
    if notional == 0:
        return None
    chunk, is_final = cap_chunk(notional, chunk_cap(kind, settings))
    direction = SwapState.PENDING_LEVER if target > snapshot.leverage_e8 else SwapState.PENDING_DELEVER
    return ChunkPlan(
        kind=kind,
        direction=direction,
        collateral_amount=chunk,
        target_e8=target,
        is_final=is_final,
    )


def build_intent(
    plan: ChunkPlan,
    snapshot: MarketSnapshot,
    settings: StrategySettings,
    *,
    owner: Address,
    collateral_asset: AssetId,
    debt_asset: AssetId,
    valid_to: int,
) -> SwapIntent:
    """Translate a plan into a venue intent priced at spot with slippage protection."""
    if plan.kind is ChunkKind.RIPCORD:
        slippage_bps = settings.incentive.ripcord_slippage_tolerance_bps
    else:
        slippage_bps = settings.execution.slippage_tolerance_bps

    if plan.direction is SwapState.PENDING_LEVER:
        return SwapIntent(
            owner=owner,
            sell_asset=debt_asset,
            buy_asset=collateral_asset,
            sell_amount=lever_sell_amount(plan.collateral_amount, snapshot.spot_e8),
            min_buy_amount=apply_slippage(plan.collateral_amount, slippage_bps),
            valid_to=valid_to,
        )
    return SwapIntent(
        owner=owner,
        sell_asset=collateral_asset,
        buy_asset=debt_asset,
        sell_amount=plan.collateral_amount,
        min_buy_amount=delever_min_buy(plan.collateral_amount, snapshot.spot_e8, slippage_bps),
        valid_to=valid_to,
    )
