"""Pytest configuration and fixtures for ledger tests."""

import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from ml4t.ledger import CashActivity, Equity, Transaction, normalize_events
from ml4t.ledger.instruments import Instrument

APPLE_ISIN = "US0378331005"
APPLE_NAME = "APPLE INC"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_txn():
    """Factory for transactions; ``value`` defaults to ``-quantity * price * multiplier``."""

    def _make(
        date: str,
        quantity: float,
        price: float,
        value: float | None = None,
        time: str = "10:00",
        instrument_id: str = APPLE_ISIN,
        name: str = APPLE_NAME,
        fee: float = 0.0,
        order_id: str = "",
        instrument: Instrument | None = None,
    ) -> Transaction:
        instrument = instrument or Equity()
        if value is None:
            value = -quantity * price * instrument.multiplier
        return Transaction(
            date=date,
            time=time,
            instrument_id=instrument_id,
            instrument_name=name,
            quantity=quantity,
            price=price,
            value=value,
            fee=fee,
            order_id=order_id,
            instrument=instrument,
        )

    return _make


@pytest.fixture
def make_deposit():
    """Factory for deposit / withdrawal cash activities."""

    def _make(
        date: str, amount: float, time: str = "09:00", description: str = "Deposit"
    ) -> CashActivity:
        return CashActivity(date=date, time=time, description=description, amount=amount)

    return _make


@pytest.fixture
def to_events():
    """Normalize transactions and cash activities into a tuple of events."""

    def _to_events(transactions, cash_activities=(), config=None):
        return normalize_events(transactions, cash_activities, config).events

    return _to_events


@pytest.fixture
def apple_key() -> str:
    return f"{APPLE_ISIN}-{APPLE_NAME}"
