"""
State management for the leverage manager
"""

from .balances import NATIVE_ASSET, BalanceTable
from .swaps import SwapBook, SwapReceipt

__all__ = [
    "NATIVE_ASSET",
    "BalanceTable",
    "SwapBook",
    "SwapReceipt",
]
