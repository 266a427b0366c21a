"""Holdings view and P&L breakdown of a ledger state."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .ledger import LedgerState
from .normalizer import _as_float
from .types import Holding, Transaction


def compute_holdings(
    state: LedgerState,
    prices: Mapping[str, float] | None = None,
    exclude: Iterable[str] = (),
) -> list[Holding]:
    """Reporting view of every open position.

    Args:
        state: Ledger state (usually the final state of a replay)
        prices: Instrument key -> current price; unknown or non-finite prices
            leave the holding unmarked
        exclude: Instrument keys to leave out (e.g. delisted products)

    Returns:
        Holdings sorted by instrument key
    """
    prices = prices or {}
    excluded = set(exclude)
    holdings = []
    for key in sorted(state.positions):
        if key in excluded:
            continue
        pos = state.positions[key]
        price = _as_float(prices.get(key))
        unrealized = pos.unrealized_pnl(price) if price is not None else 0.0
        holdings.append(
            Holding(
                instrument_id=pos.instrument_id,
                name=pos.name,
                quantity=pos.quantity,
                average_price=pos.avg_price,
                total_cost=pos.cost_basis,
                current_price=price,
                unrealized_pnl=unrealized,
                multiplier=pos.multiplier,
                instrument=pos.instrument,
            )
        )
    return holdings


@dataclass(frozen=True)
class ProfitLossBreakdown:
    """Realized and unrealized P&L split by instrument kind.

    Attributes:
        options_realized: Realized P&L of option keys
        options_unrealized: Mark-to-market P&L of open option positions
        equities_realized: Realized P&L of equity keys
        equities_unrealized: Mark-to-market P&L of open equity positions
        fees: Cumulative absolute transaction fees
        portfolio_value: Deposits + realized + unrealized
    """

    options_realized: float
    options_unrealized: float
    equities_realized: float
    equities_unrealized: float
    fees: float
    portfolio_value: float

    @property
    def realized(self) -> float:
        return self.options_realized + self.equities_realized

    @property
    def unrealized(self) -> float:
        return self.options_unrealized + self.equities_unrealized

    @property
    def total_pnl(self) -> float:
        """Realized + unrealized, net of fees."""
        return self.realized + self.unrealized - self.fees

    def to_dict(self) -> dict[str, float]:
        return {
            "options_realized": self.options_realized,
            "options_unrealized": self.options_unrealized,
            "equities_realized": self.equities_realized,
            "equities_unrealized": self.equities_unrealized,
            "realized": self.realized,
            "unrealized": self.unrealized,
            "fees": self.fees,
            "total_pnl": self.total_pnl,
            "portfolio_value": self.portfolio_value,
        }


def profit_loss_by_kind(
    state: LedgerState, prices: Mapping[str, float] | None = None
) -> ProfitLossBreakdown:
    """Split realized and unrealized P&L into options and equities.

    Open positions without a price contribute 0 unrealized, the same as the
    cost-basis fallback used by the snapshot builder.
    """
    prices = prices or {}
    realized = {True: 0.0, False: 0.0}
    unrealized = {True: 0.0, False: 0.0}

    for key, pnl in state.realized_by_key.items():
        instrument = state.instruments.get(key)
        realized[bool(instrument is not None and instrument.is_option)] += pnl

    for key, pos in state.positions.items():
        price = _as_float(prices.get(key))
        if price is None:
            continue
        unrealized[pos.instrument.is_option] += pos.unrealized_pnl(price)

    return ProfitLossBreakdown(
        options_realized=realized[True],
        options_unrealized=unrealized[True],
        equities_realized=realized[False],
        equities_unrealized=unrealized[False],
        fees=state.fees,
        portfolio_value=state.deposits + state.realized + unrealized[True] + unrealized[False],
    )


def total_costs(transactions: Iterable[Transaction]) -> float:
    """Sum of absolute transaction fees."""
    return sum(abs(txn.fee) for txn in transactions)
