"""What-if valuation of option holdings at expiry.

Given a hypothetical underlying price on an expiration date, options expiring
that day are valued at intrinsic payoff and the underlying stock at the
hypothetical price. Cost is signed the way cash flows are: negative for what
was paid for long positions, positive for premium received on shorts.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from .instruments import Option
from .types import Holding


@dataclass(frozen=True)
class ScenarioLine:
    name: str
    value: float
    cost: float

    @property
    def pnl(self) -> float:
        return self.value + self.cost


@dataclass(frozen=True)
class ScenarioResult:
    """Portfolio slice valued at one hypothetical underlying price.

    Attributes:
        expiry: Expiration date analysed
        underlying: Underlying symbol the stock legs were matched on
        underlying_price: Hypothetical price of the underlying
        lines: One line per option or stock holding included
    """

    expiry: date
    underlying: str | None
    underlying_price: float
    lines: tuple[ScenarioLine, ...]

    @property
    def total_value(self) -> float:
        return sum(line.value for line in self.lines)

    @property
    def total_cost(self) -> float:
        return sum(line.cost for line in self.lines)

    @property
    def total_pnl(self) -> float:
        return self.total_value + self.total_cost

    @property
    def pnl_pct(self) -> float:
        cost = self.total_cost
        if cost == 0:
            return 0.0
        return self.total_pnl / abs(cost) * 100


def _signed_cost(holding: Holding) -> float:
    return -holding.average_price * holding.quantity * holding.multiplier


def expiration_dates(holdings: Iterable[Holding]) -> list[date]:
    """Distinct expiries of option holdings, earliest first."""
    expiries = {
        h.instrument.expiry
        for h in holdings
        if isinstance(h.instrument, Option) and h.instrument.expiry is not None
    }
    return sorted(expiries)


def scenario_value(
    holdings: Iterable[Holding],
    expiry: date,
    underlying_price: float,
    underlying: str | None = None,
) -> ScenarioResult:
    """Value options expiring on ``expiry`` and their underlying stock.

    Args:
        holdings: Open holdings (see ``compute_holdings``)
        expiry: Expiration date to analyse
        underlying_price: Hypothetical underlying price at expiry
        underlying: Underlying symbol; defaults to that of the first option
            expiring on ``expiry``

    Returns:
        ScenarioResult with per-holding lines and totals
    """
    holdings = list(holdings)
    expiring = [
        h
        for h in holdings
        if isinstance(h.instrument, Option) and h.instrument.expiry == expiry
    ]
    if underlying is None:
        underlying = next(
            (h.instrument.underlying for h in expiring if h.instrument.underlying), None
        )
    else:
        expiring = [h for h in expiring if h.instrument.underlying == underlying.upper()]

    lines = []
    for h in expiring:
        payoff = h.instrument.intrinsic_value(underlying_price)
        lines.append(ScenarioLine(h.name, payoff * h.quantity * h.multiplier, _signed_cost(h)))

    if underlying:
        symbol = underlying.upper()
        for h in holdings:
            if h.instrument.is_option or symbol not in h.name.upper():
                continue
            lines.append(
                ScenarioLine(h.name, underlying_price * h.quantity * h.multiplier, _signed_cost(h))
            )

    return ScenarioResult(
        expiry=expiry,
        underlying=underlying,
        underlying_price=underlying_price,
        lines=tuple(lines),
    )
