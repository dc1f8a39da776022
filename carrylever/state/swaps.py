"""
Pending-swap arena.

The two-phase swap (initiate now, settle later) is represented as an explicit
record keyed by the venue's swap id. The book holds at most one open record:
opening a second one while the first is unsettled is rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..core.leverage.errors import InvalidStateError
from ..core.leverage.types import ChunkKind, PendingSwap, SwapState


@dataclass(frozen=True)
class SwapReceipt:
    """Closed arena entry (settled or cancelled)."""

    swap_id: str
    kind: ChunkKind
    direction: SwapState
    chunk_amount: int
    amount_out: int
    fill_price_e8: int
    closed_at: int
    cancelled: bool = False


@dataclass
class SwapBook:
    _open: Dict[str, PendingSwap] = field(default_factory=dict)
    _receipts: List[SwapReceipt] = field(default_factory=list)

    def open(self, record: PendingSwap) -> None:
        if self._open:
            raise InvalidStateError("state:swap_pending", "a swap is already open in the book")
        self._open[record.swap_id] = record

    def get(self, swap_id: Optional[str]) -> Optional[PendingSwap]:
        if swap_id is None:
            return None
        return self._open.get(swap_id)

    def close(self, swap_id: str, *, amount_out: int, fill_price_e8: int, closed_at: int) -> SwapReceipt:
        record = self._pop(swap_id)
        receipt = SwapReceipt(
            swap_id=swap_id,
            kind=record.kind,
            direction=record.direction,
            chunk_amount=record.chunk_amount,
            amount_out=amount_out,
            fill_price_e8=fill_price_e8,
            closed_at=closed_at,
        )
        self._receipts.append(receipt)
        return receipt

    def cancel(self, swap_id: str, *, closed_at: int) -> SwapReceipt:
        record = self._pop(swap_id)
        receipt = SwapReceipt(
            swap_id=swap_id,
            kind=record.kind,
            direction=record.direction,
            chunk_amount=record.chunk_amount,
            amount_out=0,
            fill_price_e8=0,
            closed_at=closed_at,
            cancelled=True,
        )
        self._receipts.append(receipt)
        return receipt

    def _pop(self, swap_id: str) -> PendingSwap:
        record = self._open.pop(swap_id, None)
        if record is None:
            raise InvalidStateError("state:unknown_swap", f"swap {swap_id} is not open")
        return record

    @property
    def open_count(self) -> int:
        return len(self._open)

    @property
    def receipt_log(self) -> List[SwapReceipt]:
        """The live, append-only receipt list."""
        return self._receipts

    def receipts(self) -> tuple[SwapReceipt, ...]:
        return tuple(self._receipts)
