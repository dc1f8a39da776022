#!/usr/bin/env python3
"""
Run a carry-trade strategy against a scripted price path.

Loads a strategy YAML, wires it to the in-memory reference venues, deposits,
engages, and walks the price path with keepers acting on every step. The
ledger event log is printed as JSON lines, followed by a summary line.

Example:
  python3 tools/simulate_carry.py --config config/strategy.example.yaml \
      --prices 2000,1950,1800,1700,1550 --deposit 500000
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from carrylever.core.leverage.errors import ConfigError, LeverageError
from carrylever.integration.config import load_config, parse_ratio_e8
from carrylever.integration.simulation import run_simulation

logger = logging.getLogger("simulate_carry")

DEFAULT_CONFIG = ROOT / "config" / "strategy.example.yaml"


def _parse_prices(text: str) -> List[int]:
    prices = [parse_ratio_e8(p.strip(), name="prices") for p in text.split(",") if p.strip()]
    if not prices:
        raise ConfigError("config:prices", "at least one price is required")
    return prices


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Simulate a leveraged carry-trade strategy on a price path.")
    ap.add_argument("--config", type=Path, default=DEFAULT_CONFIG, help="Strategy YAML file")
    ap.add_argument(
        "--prices",
        default="2000,2000,1950,1900,1800,1700",
        help="Comma-separated collateral prices in debt units (first one is the opening price)",
    )
    ap.add_argument("--deposit", type=int, default=100_000, help="Collateral deposited before engaging")
    ap.add_argument("--liquidity", type=int, default=10**15, help="Debt liquidity available to borrow")
    ap.add_argument("--step", type=int, default=3_600, help="Seconds between price points")
    ap.add_argument("--twap-window", type=int, default=1_800, help="TWAP oracle window in seconds")
    ap.add_argument("--reward-fund", type=int, default=0, help="Native currency pre-funded for ripcord rewards")
    ap.add_argument("--log-level", default="WARNING", help="Python logging level")
    args = ap.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    try:
        loaded = load_config(args.config)
        prices = _parse_prices(args.prices)
    except (ConfigError, OSError) as exc:
        print(f"[simulate] config error: {exc}", file=sys.stderr)
        return 2

    try:
        result = run_simulation(
            loaded,
            prices,
            deposit=args.deposit,
            available_liquidity=args.liquidity,
            step=args.step,
            reward_fund=args.reward_fund,
            twap_window=args.twap_window,
        )
    except LeverageError as exc:
        print(f"[simulate] FAIL ({exc.reason}): {exc}", file=sys.stderr)
        return 1

    for event in result.events:
        print(json.dumps(event.to_json_dict(), sort_keys=True))
    summary = {
        "summary": True,
        "events": len(result.events),
        "rejections": result.rejections,
        "leverage_e8": result.leverage_e8,
        "real_assets": result.real_assets,
    }
    print(json.dumps(summary, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
