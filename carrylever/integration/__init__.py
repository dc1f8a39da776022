"""
Imperative shell: engine, ledger, reference collaborators and configuration
"""

from .automation import AutomationRegistrar, UpkeepCheck
from .capital_router import VaultAdapter
from .config import LoadedConfig, load_config, parse_config
from .interfaces import LendingMarket, PriceChecker, PriceOracle, StrategyConfig, SwapGateway
from .ledger import Ledger, LedgerEvent
from .lending_market import InMemoryLendingMarket
from .leverage_engine import LeverageEngine
from .oracles import ManualPriceOracle, TimeWeightedOracle
from .swap_gateway import BatchAuctionGateway

__all__ = [
    "AutomationRegistrar",
    "UpkeepCheck",
    "VaultAdapter",
    "LoadedConfig",
    "load_config",
    "parse_config",
    "LendingMarket",
    "PriceChecker",
    "PriceOracle",
    "StrategyConfig",
    "SwapGateway",
    "Ledger",
    "LedgerEvent",
    "InMemoryLendingMarket",
    "LeverageEngine",
    "ManualPriceOracle",
    "TimeWeightedOracle",
    "BatchAuctionGateway",
]
