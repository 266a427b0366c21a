"""Valuation snapshot builder.

After every ledger event the snapshot builder marks all open positions to
market and records::

    value = deposits + realized + unrealized
    unrealized = sum((price - avg_price) * quantity * multiplier)

Prices are resolved per instrument key from, in order:

1. a price timeline (latest observation at or before the event timestamp),
2. a current-price map,
3. the configured ``MissingPricePolicy``.
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

import polars as pl

from .config import LedgerConfig
from .ledger import LedgerState, walk
from .normalizer import _as_float
from .types import LedgerEvent, MissingPricePolicy, PriceObservation, Snapshot, ValuationMode

logger = logging.getLogger(__name__)


class PriceTimeline:
    """Per-instrument price history with as-of lookups.

    Observations are sorted once at construction; lookups are O(log n) via
    bisect.

    Example:
        >>> timeline = PriceTimeline([PriceObservation("X", 10.0, datetime(2024, 1, 1))])
        >>> timeline.price_at("X", datetime(2024, 6, 1))
        10.0
    """

    def __init__(self, observations: Iterable[PriceObservation] = ()):
        by_key: dict[str, list[tuple[datetime, int, float]]] = {}
        dropped = 0
        for i, obs in enumerate(observations):
            price = _as_float(obs.price)
            if price is None:
                dropped += 1
                continue
            by_key.setdefault(obs.instrument_key, []).append((obs.timestamp, i, price))
        if dropped:
            logger.debug(f"Dropped {dropped} price observations with no finite price")

        self._times: dict[str, list[datetime]] = {}
        self._prices: dict[str, list[float]] = {}
        for key, rows in by_key.items():
            # Same-timestamp observations: later input wins
            rows.sort(key=lambda r: (r[0], r[1]))
            self._times[key] = [r[0] for r in rows]
            self._prices[key] = [r[2] for r in rows]

    @classmethod
    def from_dataframe(
        cls,
        df: pl.DataFrame,
        key_column: str = "instrument_key",
        price_column: str = "price",
        timestamp_column: str = "timestamp",
    ) -> PriceTimeline:
        """Build a timeline from a polars frame of observations."""
        rows = df.select([key_column, price_column, timestamp_column]).drop_nulls().iter_rows()
        return cls(PriceObservation(key, float(price), ts) for key, price, ts in rows)

    def __len__(self) -> int:
        return sum(len(t) for t in self._times.values())

    def __contains__(self, key: str) -> bool:
        return key in self._times

    def price_at(self, key: str, timestamp: datetime) -> float | None:
        """Most recent observed price at or before ``timestamp``."""
        times = self._times.get(key)
        if not times:
            return None
        idx = bisect_right(times, timestamp)
        if idx == 0:
            return None
        return self._prices[key][idx - 1]

    def latest(self) -> dict[str, float]:
        """Last observed price for every instrument."""
        return {key: prices[-1] for key, prices in self._prices.items()}


@dataclass
class PriceResolver:
    """Resolve a mark price for an open position.

    Attributes:
        timeline: Optional price history
        current_prices: Optional instrument key -> current price map
        policy: Fallback when neither source has a price
        missing: Count of fallbacks used, per instrument key
    """

    timeline: PriceTimeline | None = None
    current_prices: Mapping[str, float] | None = None
    policy: MissingPricePolicy = MissingPricePolicy.COST_BASIS
    missing: Counter = field(default_factory=Counter)

    def resolve(self, state: LedgerState, key: str, timestamp: datetime) -> float:
        if self.timeline is not None:
            price = self.timeline.price_at(key, timestamp)
            if price is not None:
                return price
        if self.current_prices is not None:
            price = _as_float(self.current_prices.get(key))
            if price is not None:
                return price
        return self._fallback(state, key)

    def _fallback(self, state: LedgerState, key: str) -> float:
        self.missing[key] += 1
        position = state.positions[key]
        if self.policy == MissingPricePolicy.LAST_TRADE:
            return state.last_prices.get(key, position.avg_price)
        return position.avg_price


def unrealized_value(state: LedgerState, resolver: PriceResolver, timestamp: datetime) -> float:
    """Mark-to-market P&L of every open position."""
    total = 0.0
    for key, position in state.positions.items():
        price = resolver.resolve(state, key, timestamp)
        total += position.unrealized_pnl(price)
    return total


def snapshot_of(
    state: LedgerState,
    resolver: PriceResolver,
    timestamp: datetime,
    mode: ValuationMode = ValuationMode.SPLIT,
    as_of_now: bool = False,
) -> Snapshot:
    """Value the ledger state at ``timestamp``."""
    if mode == ValuationMode.REALIZED:
        unrealized = 0.0
    else:
        unrealized = unrealized_value(state, resolver, timestamp)
    return Snapshot(
        timestamp=timestamp,
        realized=state.realized,
        unrealized=unrealized,
        deposits=state.deposits,
        value=state.deposits + state.realized + unrealized,
        as_of_now=as_of_now,
    )


@dataclass(frozen=True)
class SnapshotSeries:
    snapshots: tuple[Snapshot, ...]
    final_state: LedgerState
    missing_prices: dict[str, int]


def build_snapshots(
    events: Iterable[LedgerEvent],
    current_prices: Mapping[str, float] | None = None,
    price_timeline: PriceTimeline | Iterable[PriceObservation] | None = None,
    config: LedgerConfig | None = None,
    as_of: datetime | None = None,
) -> SnapshotSeries:
    """Emit one snapshot per event, plus an optional as-of-now snapshot.

    When ``current_prices`` is supplied and valuing the final state with it
    differs from the last emitted snapshot by more than
    ``config.final_snapshot_tolerance``, one extra snapshot flagged
    ``as_of_now`` is appended at ``as_of`` (default: last event timestamp).

    Args:
        events: Normalized events in chronological order
        current_prices: Instrument key -> latest price
        price_timeline: Historical observations for as-of valuation
        config: Valuation settings
        as_of: Timestamp for the as-of-now snapshot

    Returns:
        SnapshotSeries with snapshots, final ledger state and missing-price counts
    """
    config = config or LedgerConfig()
    if price_timeline is not None and not isinstance(price_timeline, PriceTimeline):
        price_timeline = PriceTimeline(price_timeline)

    resolver = PriceResolver(
        timeline=price_timeline,
        current_prices=current_prices,
        policy=config.missing_price_policy,
    )
    mode = config.valuation_mode

    def _snapshot_step(acc, event, state, realization):
        acc.append(snapshot_of(state, resolver, event.timestamp, mode))
        return acc

    final_state, snapshots = walk(events, _snapshot_step, [])

    if current_prices is not None and snapshots and mode != ValuationMode.REALIZED:
        now_resolver = PriceResolver(
            current_prices=current_prices, policy=config.missing_price_policy
        )
        stamp = as_of or snapshots[-1].timestamp
        final = snapshot_of(final_state, now_resolver, stamp, mode, as_of_now=True)
        if abs(final.value - snapshots[-1].value) > config.final_snapshot_tolerance:
            snapshots.append(final)
        resolver.missing.update(now_resolver.missing)

    if resolver.missing:
        logger.debug(
            f"No price for {len(resolver.missing)} instruments, "
            f"used {config.missing_price_policy.value} fallback"
        )

    return SnapshotSeries(
        snapshots=tuple(snapshots),
        final_state=final_state,
        missing_prices=dict(resolver.missing),
    )
