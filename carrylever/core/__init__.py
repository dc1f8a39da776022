"""
Core leverage-management algorithms (functional core)
"""

from .oracle import is_fresh, require_fresh
from .price_checker import TwapPriceChecker, fill_within_tolerance

__all__ = [
    "is_fresh",
    "require_fresh",
    "TwapPriceChecker",
    "fill_within_tolerance",
]
