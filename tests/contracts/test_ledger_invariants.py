from __future__ import annotations

from datetime import date, timedelta

import pytest

import ml4t.ledger as ledger_pkg
from ml4t.ledger import (
    CashActivity,
    Equity,
    LedgerState,
    Option,
    Transaction,
    normalize_events,
    realizations,
    replay,
    run_ledger,
    walk,
)
from ml4t.ledger.ledger import apply_event

START = date(2024, 1, 1)


def _txn(day: int, key: str, qty: float, price: float, option: bool = False) -> Transaction:
    instrument = Option() if option else Equity()
    return Transaction(
        date=(START + timedelta(days=day)).isoformat(),
        time="12:00",
        instrument_id=key,
        instrument_name=f"{key} NAME",
        quantity=qty,
        price=price,
        value=-qty * price * instrument.multiplier,
        instrument=instrument,
    )


def _cash(day: int, amount: float) -> CashActivity:
    return CashActivity((START + timedelta(days=day)).isoformat(), "08:00", "Deposit", amount)


@pytest.fixture
def mixed_inputs():
    transactions = [
        _txn(1, "AAA", 10, 100.0),
        _txn(3, "BBB", -5, 40.0),
        _txn(10, "AAA", -4, 120.0),
        _txn(20, "OPT", -2, 1.5, option=True),
        _txn(35, "BBB", 8, 35.0),
        _txn(40, "AAA", -10, 90.0),
        _txn(60, "OPT", 2, 0.5, option=True),
        _txn(70, "CCC", 3, 10.0),
    ]
    cash = [
        _cash(0, 10_000.0),
        _cash(45, -500.0),
        CashActivity("2024-02-20", "08:00", "Dividend", 12.0),
    ]
    return transactions, cash


def test_accounting_identity_holds_for_every_snapshot(mixed_inputs) -> None:
    transactions, cash = mixed_inputs
    result = run_ledger(transactions, cash, current_prices={"AAA": 95.0, "CCC": 11.0})

    assert result.snapshots
    for snap in result.snapshots:
        assert abs(snap.value - (snap.deposits + snap.realized + snap.unrealized)) < 1e-6


def test_realized_is_recognized_exactly_once(mixed_inputs) -> None:
    transactions, cash = mixed_inputs
    events = normalize_events(transactions, cash).events

    state = replay(events)
    emitted = realizations(events)

    assert abs(sum(r.pnl for r in emitted) - state.realized) < 1e-9
    assert abs(sum(state.realized_by_key.values()) - state.realized) < 1e-9
    # one realization per reducing transaction
    assert len(emitted) == 4


def test_replay_is_idempotent(mixed_inputs) -> None:
    transactions, cash = mixed_inputs
    prices = {"AAA": 95.0}

    first = run_ledger(transactions, cash, current_prices=prices)
    second = run_ledger(transactions, cash, current_prices=prices)

    assert first.snapshots == second.snapshots
    assert first.final_state == second.final_state
    assert first.monthly == second.monthly


def test_quantity_changes_only_for_matching_key(mixed_inputs) -> None:
    transactions, cash = mixed_inputs
    events = normalize_events(transactions, cash).events

    state = LedgerState()
    for event in events:
        before = dict(state.positions)
        state, _ = apply_event(state, event)
        touched = getattr(event.payload, "key", None)
        for key, pos in before.items():
            if key != touched:
                assert state.positions.get(key) == pos


def test_walk_prefix_matches_partial_replay(mixed_inputs) -> None:
    transactions, cash = mixed_inputs
    events = normalize_events(transactions, cash).events

    def _states(acc, event, state, realization):
        acc.append(state)
        return acc

    _, states = walk(events, _states, [])

    for i in range(len(events)):
        assert states[i] == replay(events[: i + 1])


def test_monthly_sum_equals_yearly(mixed_inputs) -> None:
    transactions, cash = mixed_inputs
    result = run_ledger(transactions, cash)

    assert len(result.yearly) == 1
    monthly_total = sum(r.realized for r in result.monthly)
    assert abs(monthly_total - result.yearly[0].realized) < 1e-9


def test_empty_input_produces_empty_output() -> None:
    result = run_ledger([], [])

    assert result.snapshots == ()
    assert result.holdings == []
    assert result.realizations == []
    assert result.monthly == []
    assert result.yearly == []
    assert result.final_state == LedgerState()


def test_public_api_surface() -> None:
    for name in ledger_pkg.__all__:
        assert hasattr(ledger_pkg, name), name
    assert ledger_pkg.__version__
