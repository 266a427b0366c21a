"""Position ledger and realization calculator.

The ledger is a fold over normalized events. ``LedgerState`` is an immutable
value; ``apply_transaction`` returns a new state together with the realized
P&L the transaction produced (if any). Every report in this package
(snapshots, realized series, monthly and yearly buckets) is an accumulator
passed to the single ``walk`` function, so the cost-basis rules live in one
place.

Cost-basis rules (weighted average):

- Opening or extending a position in its current direction recomputes the
  average unit price as a quantity-weighted average.
- Reducing, closing or reversing realizes P&L on ``min(|Q|, |Δ|)`` units at
  the *existing* average price. The transaction's cash flow is allocated to
  the closed units in proportion ``closed / |Δ|``.
- A reversal opens the remainder as a fresh lot at the transaction price.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TypeVar

from .instruments import Instrument
from .types import CashActivity, EventKind, LedgerEvent, Position, Realization, Transaction

logger = logging.getLogger(__name__)

# Quantities within this distance of zero close the position
QUANTITY_EPSILON = 1e-9

A = TypeVar("A")
Step = Callable[[A, LedgerEvent, "LedgerState", "Realization | None"], A]


@dataclass(frozen=True)
class LedgerState:
    """Immutable ledger state threaded through the walk.

    Mappings are never mutated in place; each transition builds new ones.

    Attributes:
        positions: Open positions keyed by instrument key
        realized: Cumulative realized P&L
        deposits: Cumulative external deposits minus withdrawals
        fees: Cumulative absolute transaction fees
        last_prices: Last transaction unit price per instrument key
        realized_by_key: Cumulative realized P&L per instrument key
        instruments: Instrument variant of every key ever traded
    """

    positions: Mapping[str, Position] = field(default_factory=dict)
    realized: float = 0.0
    deposits: float = 0.0
    fees: float = 0.0
    last_prices: Mapping[str, float] = field(default_factory=dict)
    realized_by_key: Mapping[str, float] = field(default_factory=dict)
    instruments: Mapping[str, Instrument] = field(default_factory=dict)

    def get_position(self, key: str) -> Position | None:
        return self.positions.get(key)

    @property
    def realized_cash(self) -> float:
        """Deposits plus realized P&L."""
        return self.deposits + self.realized


def unit_price(txn: Transaction) -> float:
    """Absolute per-unit price, derived from the trade value when missing."""
    price = abs(txn.price)
    units = abs(txn.quantity) * txn.instrument.multiplier
    if price == 0 and units != 0:
        price = abs(txn.value) / units
    return price


def cash_flow(txn: Transaction) -> float:
    """Signed cash flow of the trade (negative when cash is paid)."""
    if txn.value == 0 and txn.price != 0:
        return -txn.quantity * abs(txn.price) * txn.instrument.multiplier
    return txn.value


def apply_transaction(
    state: LedgerState, txn: Transaction, timestamp: datetime | None = None
) -> tuple[LedgerState, Realization | None]:
    """Apply one transaction to the ledger.

    Args:
        state: Current ledger state
        txn: Transaction to apply
        timestamp: Event timestamp (recorded on new lots and realizations)

    Returns:
        Tuple of (new state, realization or None). Zero or non-finite
        quantities are no-ops and return the input state unchanged.
    """
    delta = txn.quantity
    if not delta or not math.isfinite(delta):
        return state, None

    key = txn.key
    price = unit_price(txn)
    flow = cash_flow(txn)
    pos = state.positions.get(key)

    updates = {
        "fees": state.fees + abs(txn.fee),
        "last_prices": {**state.last_prices, key: price},
    }
    if key not in state.instruments:
        updates["instruments"] = {**state.instruments, key: txn.instrument}

    # No position: open a new lot
    if pos is None:
        opened = Position(
            key=key,
            quantity=delta,
            avg_price=price,
            instrument=txn.instrument,
            opened_at=timestamp,
            name=txn.instrument_name,
            instrument_id=txn.instrument_id,
        )
        updates["positions"] = {**state.positions, key: opened}
        return replace(state, **updates), None

    old_qty = pos.quantity
    new_qty = old_qty + delta

    # Same direction: extend and re-average
    if (old_qty > 0) == (delta > 0):
        avg = (abs(old_qty) * pos.avg_price + abs(delta) * price) / abs(new_qty)
        updates["positions"] = {
            **state.positions,
            key: replace(pos, quantity=new_qty, avg_price=avg),
        }
        return replace(state, **updates), None

    # Opposite direction: realize on the closed slice at the existing average
    closed = min(abs(old_qty), abs(delta))
    allocated = flow * closed / abs(delta)
    pnl = allocated - math.copysign(1.0, old_qty) * pos.avg_price * closed * pos.multiplier

    positions = dict(state.positions)
    if abs(new_qty) <= QUANTITY_EPSILON:
        del positions[key]
    elif abs(delta) < abs(old_qty):
        positions[key] = replace(pos, quantity=new_qty)
    else:
        # Reversal: remainder is a new lot priced at this transaction
        positions[key] = Position(
            key=key,
            quantity=new_qty,
            avg_price=price,
            instrument=pos.instrument,
            opened_at=timestamp,
            name=pos.name,
            instrument_id=pos.instrument_id,
        )
        logger.debug(f"{key} flipped from {old_qty:g} to {new_qty:g} @ {price:g}")

    updates["positions"] = positions
    updates["realized"] = state.realized + pnl
    updates["realized_by_key"] = {
        **state.realized_by_key,
        key: state.realized_by_key.get(key, 0.0) + pnl,
    }

    realization = Realization(
        key=key,
        timestamp=timestamp,
        closed_quantity=closed,
        avg_price=pos.avg_price,
        proceeds=allocated,
        pnl=pnl,
        order_id=txn.order_id,
    )
    return replace(state, **updates), realization


def apply_deposit(state: LedgerState, activity: CashActivity) -> LedgerState:
    """Book an external deposit (positive) or withdrawal (negative)."""
    if not activity.amount:
        return state
    return replace(state, deposits=state.deposits + activity.amount)


def apply_event(
    state: LedgerState, event: LedgerEvent
) -> tuple[LedgerState, Realization | None]:
    """Dispatch one normalized event to the ledger."""
    if event.kind == EventKind.TRANSACTION:
        return apply_transaction(state, event.payload, event.timestamp)
    return apply_deposit(state, event.payload), None


def walk(
    events: Iterable[LedgerEvent],
    step: Step | None = None,
    initial: A | None = None,
    state: LedgerState | None = None,
) -> tuple[LedgerState, A | None]:
    """Replay events through the ledger, folding an accumulator along the way.

    ``step(acc, event, state, realization)`` is called after each event with
    the post-event state and must return the next accumulator. Snapshot
    series, realized-only series and period buckets are all built this way.

    Args:
        events: Normalized events in chronological order
        step: Accumulator function (None to just replay)
        initial: Initial accumulator value
        state: Starting ledger state (default: empty)

    Returns:
        Tuple of (final ledger state, final accumulator)
    """
    state = state if state is not None else LedgerState()
    acc = initial
    for event in events:
        state, realization = apply_event(state, event)
        if step is not None:
            acc = step(acc, event, state, realization)
    return state, acc


def replay(events: Iterable[LedgerEvent]) -> LedgerState:
    """Final ledger state after all events."""
    state, _ = walk(events)
    return state


def realizations(events: Iterable[LedgerEvent]) -> list[Realization]:
    """Every realization emitted while replaying the events, in order."""

    def _collect(acc, event, state, realization):
        if realization is not None:
            acc.append(realization)
        return acc

    _, collected = walk(events, _collect, [])
    return collected
