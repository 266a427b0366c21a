"""Periodic return reports built on the ledger walk.

Each report here is an accumulator handed to :func:`ml4t.ledger.ledger.walk`;
none of them re-implements position accounting. Buckets are keyed by the
parsed event timestamp (``(year, month)`` or ``(year,)``) and sorted on that
key, never on label strings.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TypeVar

from .config import LedgerConfig
from .ledger import walk
from .types import (
    CumulativePoint,
    Dividend,
    EventKind,
    LedgerEvent,
    Period,
    PeriodReturn,
    Snapshot,
    Timeframe,
    ValuationMode,
)
from .valuation import PriceResolver, PriceTimeline, build_snapshots, unrealized_value

logger = logging.getLogger(__name__)

T = TypeVar("T")

TIMEFRAME_WINDOWS: dict[Timeframe, timedelta | None] = {
    Timeframe.DAY: timedelta(days=1),
    Timeframe.WEEK: timedelta(days=7),
    Timeframe.MONTH: timedelta(days=30),
    Timeframe.QUARTER: timedelta(days=90),
    Timeframe.YEAR: timedelta(days=365),
    Timeframe.ALL: None,
}


def net_asset_value(gross_value: float, borrowed: float = 0.0) -> float:
    """Portfolio value net of borrowed (margin) money."""
    return gross_value - borrowed


def bucket_key(timestamp: datetime, period: Period) -> tuple[int, ...]:
    if period == Period.YEAR:
        return (timestamp.year,)
    return (timestamp.year, timestamp.month)


def bucket_label(key: tuple[int, ...]) -> str:
    if len(key) == 1:
        return f"{key[0]:04d}"
    return f"{key[0]:04d}-{key[1]:02d}"


def bucket_start(key: tuple[int, ...]) -> datetime:
    if len(key) == 1:
        return datetime(key[0], 1, 1)
    return datetime(key[0], key[1], 1)


@dataclass
class _Bucket:
    realized: float = 0.0
    deposits: float = 0.0
    dividends: float = 0.0
    end_unrealized: float | None = None


def _resolver(
    current_prices: Mapping[str, float] | None,
    price_timeline: PriceTimeline | Iterable | None,
    config: LedgerConfig,
) -> PriceResolver:
    if price_timeline is not None and not isinstance(price_timeline, PriceTimeline):
        price_timeline = PriceTimeline(price_timeline)
    return PriceResolver(
        timeline=price_timeline,
        current_prices=current_prices,
        policy=config.missing_price_policy,
    )


def period_returns(
    events: Sequence[LedgerEvent],
    period: Period = Period.MONTH,
    net_starting_values: Mapping[str, float] | None = None,
    dividends: Iterable[Dividend] | None = None,
    current_prices: Mapping[str, float] | None = None,
    price_timeline: PriceTimeline | Iterable | None = None,
    config: LedgerConfig | None = None,
) -> list[PeriodReturn]:
    """Realized, unrealized and percentage return per calendar bucket.

    Per bucket:

    - ``realized``: realized P&L increments inside the bucket plus dividends
    - ``unrealized``: change in mark-to-market P&L from the previous bucket end
    - ``percentage``: ``realized / net_start * 100`` where ``net_start`` is
      ``net_starting_values[label]``, else ``config.portfolio_size``, else 0
      (percentage 0)

    Args:
        events: Normalized events in chronological order
        period: MONTH or YEAR buckets
        net_starting_values: Period label -> net asset value at bucket start
        dividends: Income booked outside the trade stream
        current_prices: Price map for end-of-bucket marks
        price_timeline: Price history for end-of-bucket marks
        config: Valuation settings

    Returns:
        PeriodReturn per bucket, sorted chronologically
    """
    period = Period(period)
    config = config or LedgerConfig()
    resolver = _resolver(current_prices, price_timeline, config)
    net_starting_values = net_starting_values or {}

    def _bucket_step(acc, event, state, realization):
        bucket = acc.setdefault(bucket_key(event.timestamp, period), _Bucket())
        if realization is not None:
            bucket.realized += realization.pnl
        if event.kind == EventKind.DEPOSIT:
            bucket.deposits += event.payload.amount
        bucket.end_unrealized = unrealized_value(state, resolver, event.timestamp)
        return acc

    _, buckets = walk(events, _bucket_step, {})

    for dividend in dividends or ():
        buckets.setdefault(bucket_key(dividend.timestamp, period), _Bucket()).dividends += (
            dividend.amount
        )

    results: list[PeriodReturn] = []
    prev_unrealized = 0.0
    for key in sorted(buckets):
        bucket = buckets[key]
        label = bucket_label(key)
        end_unrealized = (
            bucket.end_unrealized if bucket.end_unrealized is not None else prev_unrealized
        )
        unrealized = end_unrealized - prev_unrealized
        prev_unrealized = end_unrealized

        realized = bucket.realized + bucket.dividends
        net_start = net_starting_values.get(label, config.portfolio_size or 0.0)
        percentage = realized / net_start * 100 if net_start else 0.0

        results.append(
            PeriodReturn(
                period_label=label,
                period_start=bucket_start(key),
                realized=realized,
                unrealized=unrealized,
                total=realized + unrealized,
                percentage=percentage,
                deposits=bucket.deposits,
                dividends=bucket.dividends,
            )
        )
    logger.debug(f"Bucketed {len(events)} events into {len(results)} {period.value} periods")
    return results


def monthly_returns(events: Sequence[LedgerEvent], **kwargs) -> list[PeriodReturn]:
    """Period returns bucketed by calendar month."""
    return period_returns(events, Period.MONTH, **kwargs)


def yearly_returns(events: Sequence[LedgerEvent], **kwargs) -> list[PeriodReturn]:
    """Period returns bucketed by calendar year."""
    return period_returns(events, Period.YEAR, **kwargs)


def realized_series(events: Sequence[LedgerEvent]) -> list[Snapshot]:
    """Deposits plus realized P&L after each event (no mark-to-market)."""
    config = LedgerConfig(valuation_mode=ValuationMode.REALIZED)
    return list(build_snapshots(events, config=config).snapshots)


def ytd_performance(
    events: Sequence[LedgerEvent],
    year: int | None = None,
    current_prices: Mapping[str, float] | None = None,
    price_timeline: PriceTimeline | Iterable | None = None,
    config: LedgerConfig | None = None,
) -> list[Snapshot]:
    """Year-to-date series: realized P&L and deposits since January 1st.

    Events before the year are still replayed so that cost bases carried into
    the year are correct; only events inside the year produce points.

    Args:
        events: Normalized events in chronological order
        year: Calendar year (default: year of the last event)

    Returns:
        One Snapshot per event in ``year`` with year-to-date realized and
        deposits, and unrealized marked at the event
    """
    events = tuple(events)
    if not events:
        return []
    config = config or LedgerConfig()
    year = year if year is not None else events[-1].timestamp.year
    resolver = _resolver(current_prices, price_timeline, config)

    def _ytd_step(acc, event, state, realization):
        points, base = acc
        if event.timestamp.year < year:
            return points, (state.realized, state.deposits)
        if event.timestamp.year > year:
            return acc
        realized = state.realized - base[0]
        deposits = state.deposits - base[1]
        unrealized = unrealized_value(state, resolver, event.timestamp)
        points.append(
            Snapshot(
                timestamp=event.timestamp,
                realized=realized,
                unrealized=unrealized,
                deposits=deposits,
                value=realized + deposits + unrealized,
            )
        )
        return points, base

    _, (points, _) = walk(events, _ytd_step, ([], (0.0, 0.0)))
    return points


def cumulative_returns(
    events: Sequence[LedgerEvent], portfolio_size: float
) -> list[CumulativePoint]:
    """Cumulative realized P&L after each event, as amount and % of ``portfolio_size``."""

    def _cumulative_step(acc, event, state, realization):
        pct = state.realized / portfolio_size * 100 if portfolio_size else 0.0
        acc.append(CumulativePoint(event.timestamp, state.realized, pct))
        return acc

    _, points = walk(events, _cumulative_step, [])
    return points


def filter_by_timeframe(
    items: Iterable[T], timeframe: Timeframe | str, now: datetime
) -> list[T]:
    """Keep items (events or snapshots) whose timestamp is within the window.

    Filter *after* replaying the full history; filtering events before the
    walk would drop the lots they opened.

    Args:
        items: Objects with a ``timestamp`` attribute
        timeframe: ``1D``, ``1W``, ``1M``, ``3M``, ``1Y`` or ``ALL``
        now: Reference time for the trailing window
    """
    window = TIMEFRAME_WINDOWS[Timeframe(timeframe)]
    if window is None:
        return list(items)
    return [item for item in items if timedelta(0) <= now - item.timestamp <= window]
