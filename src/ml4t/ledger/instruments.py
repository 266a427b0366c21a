"""Instrument variants attached to transactions at ingestion time.

The ledger never inspects product names. Whoever builds ``Transaction``
records decides once whether a product is an equity or an option and attaches
the corresponding variant; :func:`classify_instrument` is the helper the
ingestion layer uses for broker exports that only carry a free-text name.

Example:
    >>> option = classify_instrument("CALL TSLA 21NOV25 350")
    >>> option.strike, option.expiry, option.multiplier
    (350.0, datetime.date(2025, 11, 21), 100.0)
    >>> classify_instrument("APPLE INC")
    Equity(multiplier=1.0)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Union

logger = logging.getLogger(__name__)

OPTION_CONTRACT_MULTIPLIER = 100.0


class InstrumentKind(Enum):
    """Instrument class, determines the contract multiplier."""

    EQUITY = "equity"  # Stocks, ETFs (multiplier=1)
    OPTION = "option"  # Listed options (multiplier=100)


class OptionRight(Enum):
    CALL = "call"
    PUT = "put"


@dataclass(frozen=True)
class Equity:
    multiplier: float = 1.0

    @property
    def kind(self) -> InstrumentKind:
        return InstrumentKind.EQUITY

    @property
    def is_option(self) -> bool:
        return False


@dataclass(frozen=True)
class Option:
    """Listed option contract.

    Attributes:
        multiplier: Units per contract (100 for standard equity options)
        strike: Strike price, if known
        expiry: Expiration date, if known
        right: CALL or PUT, if known
        underlying: Underlying symbol, if known
    """

    multiplier: float = OPTION_CONTRACT_MULTIPLIER
    strike: float | None = None
    expiry: date | None = None
    right: OptionRight | None = None
    underlying: str | None = None

    @property
    def kind(self) -> InstrumentKind:
        return InstrumentKind.OPTION

    @property
    def is_option(self) -> bool:
        return True

    def intrinsic_value(self, underlying_price: float) -> float:
        """Per-unit payoff at expiry for the given underlying price."""
        if self.strike is None or self.right is None:
            return 0.0
        if self.right == OptionRight.CALL:
            return max(underlying_price - self.strike, 0.0)
        return max(self.strike - underlying_price, 0.0)


Instrument = Union[Equity, Option]

# "CALL TSLA 21NOV25 350"
_LONG_FORM_RE = re.compile(
    r"\b(CALL|PUT)\s+([A-Z][A-Z0-9.]*)\s+(\d{2}[A-Z]{3}\d{2})\s+(\d+(?:[.,]\d+)?)",
    re.IGNORECASE,
)
# "TSLA C350.00 21NOV25" and similar exchange short codes
_SHORT_FORM_RE = re.compile(r"(?:^|\s)([CP])(\d{2,}(?:[.,]\d+)?)(?=\s|$)")
_EXPIRY_RE = re.compile(r"\b(\d{2}[A-Z]{3}\d{2})\b", re.IGNORECASE)
_UNDERLYING_RE = re.compile(r"^\s*([A-Z][A-Z0-9.]*)\s")


def parse_expiry(token: str) -> date | None:
    """Parse a ``ddMMMyy`` expiry token (e.g. ``21NOV25``)."""
    try:
        return datetime.strptime(token.upper(), "%d%b%y").date()
    except ValueError:
        return None


def _to_strike(token: str) -> float | None:
    try:
        return float(token.replace(",", "."))
    except ValueError:
        return None


def classify_instrument(
    name: str, option_multiplier: float = OPTION_CONTRACT_MULTIPLIER
) -> Instrument:
    """Derive the instrument variant from a broker product name.

    Names that match neither option convention are classified as equity;
    this never raises.

    Args:
        name: Free-text product name from the broker export
        option_multiplier: Contract multiplier to attach to options

    Returns:
        ``Option`` with whatever contract terms could be parsed, else ``Equity``
    """
    text = (name or "").strip()

    match = _LONG_FORM_RE.search(text)
    if match:
        right, underlying, expiry, strike = match.groups()
        return Option(
            multiplier=option_multiplier,
            strike=_to_strike(strike),
            expiry=parse_expiry(expiry),
            right=OptionRight.CALL if right.upper() == "CALL" else OptionRight.PUT,
            underlying=underlying.upper(),
        )

    match = _SHORT_FORM_RE.search(text)
    if match:
        right, strike = match.groups()
        expiry = _EXPIRY_RE.search(text)
        underlying = _UNDERLYING_RE.match(text)
        return Option(
            multiplier=option_multiplier,
            strike=_to_strike(strike),
            expiry=parse_expiry(expiry.group(1)) if expiry else None,
            right=OptionRight.CALL if right == "C" else OptionRight.PUT,
            underlying=underlying.group(1) if underlying else None,
        )

    if text:
        logger.debug(f"No option pattern in {text!r}, classified as equity")
    return Equity()
