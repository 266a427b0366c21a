"""Unit tests for expiry scenario analysis."""

from datetime import date

import pytest

from ml4t.ledger import Equity, Holding, Option, OptionRight, expiration_dates, scenario_value

NOV = date(2025, 11, 21)
DEC = date(2025, 12, 19)


def _option_holding(name, right, strike, expiry, quantity, avg, underlying="TSLA"):
    option = Option(strike=strike, expiry=expiry, right=right, underlying=underlying)
    return Holding(
        instrument_id="US0000000000",
        name=name,
        quantity=quantity,
        average_price=avg,
        total_cost=abs(quantity) * avg * 100,
        multiplier=100.0,
        instrument=option,
    )


@pytest.fixture
def holdings():
    return [
        _option_holding("CALL TSLA 21NOV25 350", OptionRight.CALL, 350.0, NOV, -1, 10.0),
        _option_holding("PUT TSLA 21NOV25 300", OptionRight.PUT, 300.0, NOV, 2, 5.0),
        _option_holding("CALL TSLA 19DEC25 400", OptionRight.CALL, 400.0, DEC, 1, 8.0),
        Holding(
            instrument_id="US88160R1014",
            name="TSLA INC",
            quantity=100,
            average_price=320.0,
            total_cost=32_000.0,
            instrument=Equity(),
        ),
        Holding(
            instrument_id="US0378331005",
            name="APPLE INC",
            quantity=10,
            average_price=150.0,
            total_cost=1500.0,
        ),
    ]


def test_expiration_dates(holdings):
    assert expiration_dates(reversed(holdings)) == [NOV, DEC]
    assert expiration_dates([]) == []


class TestScenarioValue:
    def test_price_above_call_strike(self, holdings):
        result = scenario_value(holdings, NOV, 380.0)

        assert result.underlying == "TSLA"
        assert [line.name for line in result.lines] == [
            "CALL TSLA 21NOV25 350",
            "PUT TSLA 21NOV25 300",
            "TSLA INC",
        ]
        short_call, long_put, stock = result.lines
        # Short call: (380 - 350) * -1 * 100; premium received +1000
        assert short_call.value == pytest.approx(-3000.0)
        assert short_call.cost == pytest.approx(1000.0)
        assert short_call.pnl == pytest.approx(-2000.0)
        # Long put expires worthless; premium paid -1000
        assert long_put.value == 0.0
        assert long_put.cost == pytest.approx(-1000.0)
        assert stock.value == pytest.approx(38_000.0)
        assert stock.cost == pytest.approx(-32_000.0)

        assert result.total_value == pytest.approx(35_000.0)
        assert result.total_cost == pytest.approx(-32_000.0)
        assert result.total_pnl == pytest.approx(3000.0)
        assert result.pnl_pct == pytest.approx(3000.0 / 32_000.0 * 100)

    def test_price_below_put_strike(self, holdings):
        result = scenario_value(holdings, NOV, 280.0)
        by_name = {line.name: line for line in result.lines}

        assert by_name["CALL TSLA 21NOV25 350"].value == 0.0
        assert by_name["PUT TSLA 21NOV25 300"].value == pytest.approx(4000.0)
        assert by_name["TSLA INC"].value == pytest.approx(28_000.0)

    def test_other_expiry_excluded(self, holdings):
        result = scenario_value(holdings, DEC, 450.0)

        names = [line.name for line in result.lines]
        assert names == ["CALL TSLA 19DEC25 400", "TSLA INC"]
        assert result.lines[0].value == pytest.approx(5000.0)

    def test_explicit_underlying_filters(self, holdings):
        result = scenario_value(holdings, NOV, 380.0, underlying="aapl")

        assert result.lines == ()
        assert result.pnl_pct == 0.0

    def test_no_options_on_expiry(self, holdings):
        result = scenario_value(holdings, date(2026, 1, 16), 300.0)

        assert result.underlying is None
        assert result.lines == ()
