"""
carrylever: autonomous leveraged carry-trade position manager
"""

__version__ = "0.1.0"
