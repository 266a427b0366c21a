"""Unit tests for the position ledger and realization calculator."""

import math
from datetime import datetime

import pytest

from ml4t.ledger import (
    CashActivity,
    LedgerState,
    Option,
    OptionRight,
    apply_deposit,
    apply_transaction,
    realizations,
    replay,
    walk,
)
from ml4t.ledger.ledger import cash_flow, unit_price


def _apply_all(transactions):
    state = LedgerState()
    emitted = []
    for txn in transactions:
        state, realization = apply_transaction(state, txn)
        emitted.append(realization)
    return state, emitted


class TestOpenAndExtend:
    """Opening and extending positions in their current direction."""

    def test_open_long(self, make_txn, apple_key):
        state, emitted = _apply_all([make_txn("2024-01-02", 10, 100.0)])

        pos = state.get_position(apple_key)
        assert pos.quantity == 10
        assert pos.avg_price == 100.0
        assert pos.side == "long"
        assert pos.instrument_id == "US0378331005"
        assert emitted == [None]
        assert state.realized == 0.0

    def test_extend_reaverages(self, make_txn, apple_key):
        state, emitted = _apply_all(
            [make_txn("2024-01-02", 10, 100.0), make_txn("2024-01-03", 10, 110.0)]
        )

        pos = state.get_position(apple_key)
        assert pos.quantity == 20
        assert pos.avg_price == pytest.approx(105.0)
        assert emitted == [None, None]

    def test_extend_short_reaverages(self, make_txn, apple_key):
        state, _ = _apply_all(
            [make_txn("2024-01-02", -10, 50.0), make_txn("2024-01-03", -30, 60.0)]
        )

        pos = state.get_position(apple_key)
        assert pos.quantity == -40
        assert pos.avg_price == pytest.approx(57.5)
        assert pos.side == "short"


class TestRealization:
    """Reducing, closing and reversing positions."""

    def test_partial_close_proportionality(self, make_txn, apple_key):
        """Open 10 @ 100, sell 4 @ 120: realized 80, 6 left @ 100."""
        state, emitted = _apply_all(
            [make_txn("2024-01-02", 10, 100.0), make_txn("2024-01-03", -4, 120.0)]
        )

        assert state.realized == pytest.approx(80.0)
        assert emitted[1].pnl == pytest.approx(80.0)
        assert emitted[1].closed_quantity == 4
        pos = state.get_position(apple_key)
        assert pos.quantity == 6
        assert pos.avg_price == 100.0

    def test_round_trip_close_realizes_zero(self, make_txn, apple_key):
        state, emitted = _apply_all(
            [make_txn("2024-01-02", 10, 100.0), make_txn("2024-01-03", -10, 100.0)]
        )

        assert state.realized == pytest.approx(0.0)
        assert emitted[1] is not None
        assert state.get_position(apple_key) is None

    def test_sign_flip(self, make_txn, apple_key):
        """Open 5 @ 50, sell 8 @ 60: realized 50, short 3 @ 60."""
        state, emitted = _apply_all(
            [make_txn("2024-01-02", 5, 50.0), make_txn("2024-01-03", -8, 60.0)]
        )

        assert state.realized == pytest.approx(50.0)
        assert emitted[1].closed_quantity == 5
        assert emitted[1].proceeds == pytest.approx(300.0)
        pos = state.get_position(apple_key)
        assert pos.quantity == -3
        assert pos.avg_price == 60.0

    def test_short_cover_gain(self, make_txn):
        """Short 10 @ 50, cover @ 40: gain of 100."""
        state, _ = _apply_all(
            [make_txn("2024-01-02", -10, 50.0), make_txn("2024-01-03", 10, 40.0)]
        )

        assert state.realized == pytest.approx(100.0)
        assert state.positions == {}

    def test_short_cover_loss(self, make_txn):
        state, _ = _apply_all(
            [make_txn("2024-01-02", -10, 50.0), make_txn("2024-01-03", 10, 55.0)]
        )

        assert state.realized == pytest.approx(-50.0)

    def test_reduce_uses_existing_average(self, make_txn, apple_key):
        state, _ = _apply_all(
            [
                make_txn("2024-01-02", 10, 100.0),
                make_txn("2024-01-03", 10, 120.0),
                make_txn("2024-01-04", -5, 130.0),
            ]
        )

        # avg 110; 5 * (130 - 110)
        assert state.realized == pytest.approx(100.0)
        assert state.get_position(apple_key).avg_price == pytest.approx(110.0)

    def test_residual_within_epsilon_closes(self, make_txn, apple_key):
        state, _ = _apply_all(
            [make_txn("2024-01-02", 1.0, 100.0), make_txn("2024-01-03", -0.9999999999, 100.0)]
        )

        assert state.get_position(apple_key) is None

    def test_realized_by_key(self, make_txn):
        state, _ = _apply_all(
            [
                make_txn("2024-01-02", 10, 100.0),
                make_txn("2024-01-02", 5, 20.0, instrument_id="NL0000", name="ASML"),
                make_txn("2024-01-03", -10, 110.0),
                make_txn("2024-01-03", -5, 18.0, instrument_id="NL0000", name="ASML"),
            ]
        )

        assert state.realized_by_key["US0378331005-APPLE INC"] == pytest.approx(100.0)
        assert state.realized_by_key["NL0000-ASML"] == pytest.approx(-10.0)
        assert state.realized == pytest.approx(90.0)


class TestOptions:
    """Contract multiplier applied to cost, realization and valuation."""

    def test_short_option_unrealized(self, make_txn):
        option = Option(strike=350.0, right=OptionRight.CALL, underlying="TSLA")
        state, _ = _apply_all(
            [make_txn("2024-01-02", -2, 1.5, name="CALL TSLA 21NOV25 350", instrument=option)]
        )

        pos = state.get_position("US0378331005-CALL TSLA 21NOV25 350")
        assert pos.multiplier == 100.0
        assert pos.unrealized_pnl(0.5) == pytest.approx(200.0)
        assert pos.cost_basis == pytest.approx(300.0)

    def test_option_close_realizes_with_multiplier(self, make_txn):
        option = Option()
        state, _ = _apply_all(
            [
                make_txn("2024-01-02", -2, 1.5, instrument=option),
                make_txn("2024-01-03", 2, 0.5, instrument=option),
            ]
        )

        assert state.realized == pytest.approx(200.0)


class TestEdgeCases:
    def test_zero_quantity_is_noop(self, make_txn):
        state = LedgerState()
        new_state, realization = apply_transaction(state, make_txn("2024-01-02", 0, 100.0))

        assert new_state is state
        assert realization is None

    def test_non_finite_quantity_is_noop(self, make_txn):
        state = LedgerState()
        new_state, realization = apply_transaction(
            state, make_txn("2024-01-02", math.nan, 100.0, value=0.0)
        )

        assert new_state is state
        assert realization is None

    def test_state_is_not_mutated(self, make_txn, apple_key):
        first, _ = apply_transaction(LedgerState(), make_txn("2024-01-02", 10, 100.0))
        second, _ = apply_transaction(first, make_txn("2024-01-03", -10, 120.0))

        assert first.get_position(apple_key).quantity == 10
        assert second.get_position(apple_key) is None
        assert first.realized == 0.0

    def test_unit_price_derived_from_value(self, make_txn):
        txn = make_txn("2024-01-02", 10, 0.0, value=-1000.0)
        assert unit_price(txn) == pytest.approx(100.0)

    def test_unit_price_with_zero_multiplier(self, make_txn):
        txn = make_txn("2024-01-02", 1, 0.0, value=-50.0, instrument=Option(multiplier=0.0))

        assert unit_price(txn) == 0.0
        state, realization = apply_transaction(LedgerState(), txn)
        assert realization is None
        assert state.positions[txn.key].avg_price == 0.0

    def test_cash_flow_derived_from_price(self, make_txn):
        txn = make_txn("2024-01-02", 10, 100.0, value=0.0)
        assert cash_flow(txn) == pytest.approx(-1000.0)

    def test_fees_accumulate_as_absolute(self, make_txn):
        state, _ = _apply_all(
            [
                make_txn("2024-01-02", 10, 100.0, fee=-2.5),
                make_txn("2024-01-03", -10, 110.0, fee=-2.5),
            ]
        )

        assert state.fees == pytest.approx(5.0)
        # Realized is gross of fees
        assert state.realized == pytest.approx(100.0)

    def test_last_prices_track_trades(self, make_txn, apple_key):
        state, _ = _apply_all(
            [make_txn("2024-01-02", 10, 100.0), make_txn("2024-01-03", 5, 104.0)]
        )

        assert state.last_prices[apple_key] == 104.0


class TestDepositsAndWalk:
    def test_apply_deposit(self):
        state = apply_deposit(LedgerState(), CashActivity("2024-01-01", "", "Deposit", 1000.0))
        state = apply_deposit(state, CashActivity("2024-02-01", "", "Withdrawal", -250.0))

        assert state.deposits == pytest.approx(750.0)
        assert state.realized_cash == pytest.approx(750.0)

    def test_walk_threads_accumulator(self, make_txn, make_deposit, to_events):
        events = to_events(
            [make_txn("2024-01-02", 10, 100.0), make_txn("2024-01-03", -10, 110.0)],
            [make_deposit("2024-01-01", 5000.0)],
        )

        def _count(acc, event, state, realization):
            return acc + (1 if realization is not None else 0)

        state, count = walk(events, _count, 0)

        assert count == 1
        assert state.deposits == 5000.0
        assert state.realized == pytest.approx(100.0)

    def test_replay_and_realizations(self, make_txn, to_events):
        events = to_events(
            [
                make_txn("2024-01-02", 10, 100.0, order_id="a"),
                make_txn("2024-01-03", -4, 120.0, order_id="b"),
                make_txn("2024-01-04", -6, 90.0, order_id="c"),
            ]
        )

        state = replay(events)
        emitted = realizations(events)

        assert state.positions == {}
        assert [r.order_id for r in emitted] == ["b", "c"]
        assert [r.timestamp for r in emitted] == [
            datetime(2024, 1, 3, 10, 0),
            datetime(2024, 1, 4, 10, 0),
        ]
        assert sum(r.pnl for r in emitted) == pytest.approx(state.realized)
        assert state.realized == pytest.approx(80.0 - 60.0)
