"""
Multi-asset balance tracking with deterministic ordering.

Implements BalanceTable[Address, AssetId] -> Amount. The ledger uses one table
for native-currency balances (ripcord rewards) and the in-memory venues use
their own tables for escrow and liquidity.
"""

from __future__ import annotations

from typing import Dict, Tuple

from ..core.leverage.errors import InsufficientBalanceError
from ..core.leverage.types import Address, AssetId

Amount = int  # Non-negative integer (arbitrary precision)

# Native currency identifier
NATIVE_ASSET: AssetId = "0x" + "00" * 32


class BalanceTable:
    """
    Balance table mapping (address, asset) -> amount.

    Note: balances live in a plain dict. Callers that serialize or hash must
    sort keys explicitly (see `sorted_items`).
    """

    def __init__(self) -> None:
        self._balances: Dict[Tuple[Address, AssetId], Amount] = {}

    def get(self, address: Address, asset: AssetId = NATIVE_ASSET) -> Amount:
        """Get balance for (address, asset). Returns 0 if not found."""
        return self._balances.get((address, asset), 0)

    def set(self, address: Address, asset: AssetId, amount: Amount) -> None:
        """
        Set balance for (address, asset).

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        if amount == 0:
            # Remove zero balances to keep table sparse
            self._balances.pop((address, asset), None)
        else:
            self._balances[(address, asset)] = amount

    def add(self, address: Address, asset: AssetId, delta: Amount) -> None:
        """
        Add delta to balance (delta may be negative).

        Raises:
            InsufficientBalanceError: If resulting balance would be negative
        """
        current = self.get(address, asset)
        new_balance = current + delta
        if new_balance < 0:
            raise InsufficientBalanceError(
                "balance",
                f"Insufficient balance for {address}: {current} + {delta} = {new_balance} < 0",
            )
        self.set(address, asset, new_balance)

    def subtract(self, address: Address, asset: AssetId, delta: Amount) -> None:
        if delta < 0:
            raise ValueError(f"Delta must be non-negative: {delta}")
        self.add(address, asset, -delta)

    def transfer(self, src: Address, dst: Address, asset: AssetId, amount: Amount) -> None:
        """Move *amount* from *src* to *dst*; fails without effect if *src* is short."""
        if amount < 0:
            raise ValueError(f"Transfer amount must be non-negative: {amount}")
        self.subtract(src, asset, amount)
        self.add(dst, asset, amount)

    def sorted_items(self) -> list[tuple[tuple[Address, AssetId], Amount]]:
        return sorted(self._balances.items())

    def total(self, asset: AssetId = NATIVE_ASSET) -> Amount:
        return sum(amount for (_, a), amount in self._balances.items() if a == asset)

    def verify_non_negative(self) -> bool:
        return all(amount >= 0 for amount in self._balances.values())

    def __repr__(self) -> str:
        return f"BalanceTable({len(self._balances)} entries)"
