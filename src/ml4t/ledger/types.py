"""Core types for the position ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .instruments import Equity, Instrument

# === Enums ===


class EventKind(Enum):
    TRANSACTION = "transaction"
    DEPOSIT = "deposit"


class ValuationMode(str, Enum):
    """Which components a snapshot series carries.

    - TOTAL: realized + deposits + unrealized folded into ``value``
    - SPLIT: same totals, realized and unrealized reported separately
    - REALIZED: realized-only series (unrealized forced to 0)
    """

    TOTAL = "total"
    SPLIT = "split"
    REALIZED = "realized"


class MissingPricePolicy(str, Enum):
    """Mark used for an open position with no resolvable price.

    - COST_BASIS: mark at average cost, unrealized contribution is 0 (default)
    - LAST_TRADE: mark at the last transaction price seen for the instrument
    """

    COST_BASIS = "cost_basis"
    LAST_TRADE = "last_trade"


class Period(str, Enum):
    """Bucket granularity for periodic return reports."""

    MONTH = "month"
    YEAR = "year"


class Timeframe(str, Enum):
    """Trailing windows used to filter events before charting."""

    DAY = "1D"
    WEEK = "1W"
    MONTH = "1M"
    QUARTER = "3M"
    YEAR = "1Y"
    ALL = "ALL"


# === Input records ===


@dataclass(frozen=True)
class Transaction:
    """A single executed trade as exported by the broker.

    ``value`` is the signed cash flow of the whole trade in reporting currency:
    negative when cash was paid (buy), positive when received (sell).
    """

    date: str
    time: str
    instrument_id: str
    instrument_name: str
    quantity: float
    price: float
    value: float
    fee: float = 0.0
    order_id: str = ""
    instrument: Instrument = field(default_factory=Equity)

    @property
    def key(self) -> str:
        """Instrument key (ISIN + product name)."""
        return f"{self.instrument_id}-{self.instrument_name}"


@dataclass(frozen=True)
class CashActivity:
    date: str
    time: str
    description: str
    amount: float


@dataclass(frozen=True)
class PriceObservation:
    instrument_key: str
    price: float
    timestamp: datetime


# === Engine state and outputs ===


@dataclass(frozen=True)
class LedgerEvent:
    """Normalized, timestamped event fed to the ledger walk."""

    timestamp: datetime
    kind: EventKind
    payload: Transaction | CashActivity
    seq: int = 0


@dataclass(frozen=True)
class Position:
    """Open position for one instrument key.

    Attributes:
        key: Instrument key (ISIN + name)
        quantity: Signed size (positive=long, negative=short)
        avg_price: Weighted average unit price (cost basis per unit)
        instrument: Tagged instrument variant (carries the multiplier)
        opened_at: Timestamp of the transaction that opened this lot
    """

    key: str
    quantity: float
    avg_price: float
    instrument: Instrument
    opened_at: datetime | None = None
    name: str = ""
    instrument_id: str = ""

    @property
    def multiplier(self) -> float:
        return self.instrument.multiplier

    @property
    def side(self) -> str:
        """Return 'long' or 'short' based on quantity sign."""
        return "long" if self.quantity > 0 else "short"

    @property
    def cost_basis(self) -> float:
        """Absolute cost of the open quantity."""
        return self.avg_price * abs(self.quantity) * self.multiplier

    def unrealized_pnl(self, current_price: float) -> float:
        """Calculate unrealized P&L including contract multiplier."""
        return (current_price - self.avg_price) * self.quantity * self.multiplier

    def __repr__(self) -> str:
        direction = "LONG" if self.quantity > 0 else "SHORT"
        return f"Position({direction} {abs(self.quantity):g} {self.key} @ {self.avg_price:.4f})"


@dataclass(frozen=True)
class Realization:
    """Realized P&L emitted when a transaction reduces, closes or flips a position."""

    key: str
    timestamp: datetime
    closed_quantity: float
    avg_price: float
    proceeds: float
    pnl: float
    order_id: str = ""


@dataclass(frozen=True)
class Snapshot:
    timestamp: datetime
    realized: float
    unrealized: float
    deposits: float
    value: float
    as_of_now: bool = False

    def to_dict(self, mode: ValuationMode = ValuationMode.SPLIT) -> dict[str, Any]:
        if mode == ValuationMode.TOTAL:
            return {"timestamp": self.timestamp, "value": self.value}
        return {
            "timestamp": self.timestamp,
            "realized_value": self.realized + self.deposits,
            "unrealized_value": self.unrealized,
        }


@dataclass(frozen=True)
class Holding:
    """Reporting view of one open position."""

    instrument_id: str
    name: str
    quantity: float
    average_price: float
    total_cost: float
    current_price: float | None = None
    unrealized_pnl: float = 0.0
    multiplier: float = 1.0
    instrument: Instrument = field(default_factory=Equity)

    @property
    def key(self) -> str:
        return f"{self.instrument_id}-{self.name}"

    @property
    def market_value(self) -> float | None:
        if self.current_price is None:
            return None
        return self.current_price * self.quantity * self.multiplier

    @property
    def unrealized_pnl_pct(self) -> float:
        if self.total_cost == 0:
            return 0.0
        return self.unrealized_pnl / self.total_cost * 100


@dataclass(frozen=True)
class PeriodReturn:
    period_label: str
    period_start: datetime
    realized: float
    unrealized: float
    total: float
    percentage: float
    deposits: float = 0.0
    dividends: float = 0.0


@dataclass(frozen=True)
class Dividend:
    """Dividend or other income booked outside the trade stream."""

    timestamp: datetime
    amount: float
    description: str = ""


@dataclass(frozen=True)
class CumulativePoint:
    """Cumulative realized P&L as an amount and as a percentage of a base."""

    timestamp: datetime
    value: float
    percentage: float
