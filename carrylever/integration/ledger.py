"""
In-memory transaction-serialized ledger.

Provides what the engine expects from its host platform:

- a clock (`now`) that only moves forward,
- caller-identity tokens (`context`),
- a native-currency balance table,
- an append-only event log (the audit trail),
- atomic execution: `execute(fn, ...)` snapshots every registered component
  and restores all of them if the call raises, so a failed call leaves no
  trace. The engine itself never rolls anything back.

Components are snapshotted by deep-copying their instance dicts while keeping
references to other registered components (and the ledger) by identity.
Append-only logs registered with `register_log` (the event log among them)
are never copied; a revert truncates them back to their earlier length.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar

from ..core.leverage.types import Address, CallContext, Event
from ..state.balances import BalanceTable

logger = logging.getLogger(__name__)

T = TypeVar("T")
Snapshot = Tuple[List[Tuple[object, Dict[str, Any]]], List[Tuple[List[Any], int]]]


@dataclass(frozen=True)
class LedgerEvent:
    seq: int
    event: Event
    timestamp: int
    fields: Mapping[str, Any] = field(default_factory=dict)

    def to_json_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"seq": self.seq, "event": self.event.value, "timestamp": self.timestamp}
        out.update(self.fields)
        return out


class Ledger:
    def __init__(self, *, start_time: int = 0) -> None:
        if start_time < 0:
            raise ValueError(f"start_time must be non-negative: {start_time}")
        self.now = start_time
        self.native = BalanceTable()
        self._events: List[LedgerEvent] = []
        self._components: List[object] = []
        self._logs: List[List[Any]] = [self._events]

    # -- Clock ---------------------------------------------------------------

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"time cannot move backwards: {seconds}")
        self.now += seconds
        return self.now

    def set_time(self, timestamp: int) -> int:
        if timestamp < self.now:
            raise ValueError(f"time cannot move backwards: {timestamp} < {self.now}")
        self.now = timestamp
        return self.now

    # -- Callers -------------------------------------------------------------

    def context(self, origin: Address, *, via: Optional[Address] = None) -> CallContext:
        """Caller token for *origin*, optionally relayed through program *via*."""
        return CallContext(sender=via if via is not None else origin, origin=origin, timestamp=self.now)

    # -- Events --------------------------------------------------------------

    def emit(self, event: Event, **fields: Any) -> LedgerEvent:
        entry = LedgerEvent(seq=len(self._events), event=event, timestamp=self.now, fields=dict(fields))
        self._events.append(entry)
        return entry

    def events(self, event: Optional[Event] = None) -> List[LedgerEvent]:
        if event is None:
            return list(self._events)
        return [e for e in self._events if e.event is event]

    # -- Atomic execution ----------------------------------------------------

    def register(self, *components: object) -> None:
        for component in components:
            if component is self:
                continue
            if not any(component is c for c in self._components):
                self._components.append(component)

    def register_log(self, log: List[Any]) -> None:
        """Track an append-only list: reverts truncate it instead of copying it."""
        if not any(log is existing for existing in self._logs):
            self._logs.append(log)

    def _snapshot(self) -> Snapshot:
        keep: Dict[int, Any] = {id(c): c for c in self._components}
        keep[id(self)] = self
        for log in self._logs:
            keep[id(log)] = log
        saved = []
        for component in [self, *self._components]:
            memo = dict(keep)
            saved.append((component, copy.deepcopy(vars(component), memo)))
        lengths = [(log, len(log)) for log in self._logs]
        return saved, lengths

    @staticmethod
    def _restore(snapshot: Snapshot) -> None:
        saved, lengths = snapshot
        for component, state in saved:
            d = vars(component)
            d.clear()
            d.update(state)
        for log, n in lengths:
            del log[n:]

    def execute(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run one call atomically: all registered state commits, or none does."""
        snapshot = self._snapshot()
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            self._restore(snapshot)
            logger.warning("call %s reverted: %s", getattr(fn, "__name__", fn), exc)
            raise
