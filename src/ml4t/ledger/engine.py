"""Ledger engine: run the full replay in one call."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime

from .config import LedgerConfig
from .holdings import compute_holdings, profit_loss_by_kind
from .ledger import realizations as collect_realizations
from .normalizer import normalize_events
from .records import price_map_by_key
from .reporting import period_returns
from .result import LedgerResult, compute_metrics
from .types import (
    CashActivity,
    Dividend,
    MissingPricePolicy,
    Period,
    PriceObservation,
    Transaction,
)
from .valuation import PriceTimeline, build_snapshots

logger = logging.getLogger(__name__)


def run_ledger(
    transactions: Iterable[Transaction],
    cash_activities: Iterable[CashActivity] = (),
    current_prices: Mapping[str, float] | None = None,
    price_timeline: PriceTimeline | Iterable[PriceObservation] | None = None,
    config: LedgerConfig | str | None = None,
    as_of: datetime | None = None,
    net_starting_values: Mapping[str, float] | None = None,
    dividends: Iterable[Dividend] | None = None,
) -> LedgerResult:
    """
    Replay broker exports into snapshots, holdings and period returns.

    Args:
        transactions: Trade records (instrument variant already attached)
        cash_activities: Account activity records
        current_prices: Latest price per instrument key or instrument id
        price_timeline: Historical price observations for as-of valuation
        config: LedgerConfig instance, preset name (str), or None for defaults
        as_of: Timestamp for the as-of-now snapshot
        net_starting_values: Period label -> NAV at period start (percentages)
        dividends: Income added to realized P&L in period returns

    Returns:
        LedgerResult with snapshots, holdings, realizations, period returns,
        diagnostics and metrics

    Example:
        # Using a preset
        result = run_ledger(transactions, cash, config="degiro")

        # Using a custom config
        config = LedgerConfig.from_preset("degiro")
        config.missing_price_policy = MissingPricePolicy.LAST_TRADE
        result = run_ledger(transactions, cash, current_prices=prices, config=config)
    """
    if isinstance(config, str):
        config = LedgerConfig.from_preset(config)
    config = config or LedgerConfig()
    config.validate()

    transactions = list(transactions)
    normalized = normalize_events(transactions, cash_activities, config)
    events = normalized.events

    prices = price_map_by_key(current_prices, transactions) if current_prices is not None else None
    if price_timeline is not None and not isinstance(price_timeline, PriceTimeline):
        price_timeline = PriceTimeline(price_timeline)
    dividends = list(dividends or ())

    series = build_snapshots(
        events,
        current_prices=prices,
        price_timeline=price_timeline,
        config=config,
        as_of=as_of,
    )
    state = series.final_state
    marks = prices if prices is not None else {}
    if price_timeline is not None:
        # Timeline marks fill in keys the price map does not cover
        marks = {**price_timeline.latest(), **marks}
    if config.missing_price_policy == MissingPricePolicy.LAST_TRADE:
        marks = {**{k: state.last_prices[k] for k in state.positions}, **marks}

    holdings = compute_holdings(state, marks)
    breakdown = profit_loss_by_kind(state, marks)
    realized = collect_realizations(events)

    report_kwargs = dict(
        net_starting_values=net_starting_values,
        dividends=dividends,
        current_prices=prices,
        price_timeline=price_timeline,
        config=config,
    )
    monthly = period_returns(events, Period.MONTH, **report_kwargs)
    yearly = period_returns(events, Period.YEAR, **report_kwargs)

    diagnostics = {
        "skipped_transactions": normalized.skipped_transactions,
        "skipped_cash": normalized.skipped_cash,
        "excluded_cash": normalized.excluded_cash,
        "defaulted_fields": dict(normalized.defaulted_fields),
        "missing_prices": dict(series.missing_prices),
    }
    metrics = compute_metrics(series.snapshots, realized, breakdown, len(state.positions))

    logger.info(
        f"Replayed {len(events)} events: {len(state.positions)} open positions, "
        f"realized {state.realized:,.2f}, value {metrics['final_value']:,.2f}"
    )

    return LedgerResult(
        snapshots=series.snapshots,
        holdings=holdings,
        realizations=realized,
        monthly=monthly,
        yearly=yearly,
        final_state=state,
        breakdown=breakdown,
        events=events,
        diagnostics=diagnostics,
        metrics=metrics,
        config=config,
    )
