"""Event normalization: merge trades and cash activity into one ordered stream.

Transactions and cash activities arrive as separate exports with separate
date and time string fields. ``normalize_events`` parses each record to a
single timestamp, drops records that fail to parse, keeps only cash activity
that represents an external deposit or withdrawal, and returns one event
sequence sorted by timestamp. Ties keep input order (transactions first, then
cash activities), which assumes the export order matches execution order.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

import numpy as np

from .config import FALLBACK_DATE_FORMATS, FALLBACK_TIME_FORMATS, LedgerConfig
from .types import CashActivity, EventKind, LedgerEvent, Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedEvents:
    """Ordered ledger events plus counts of what was dropped or repaired.

    Attributes:
        events: Events sorted ascending by timestamp (stable on input order)
        skipped_transactions: Transactions dropped for an unparseable timestamp
        skipped_cash: Cash activities dropped for an unparseable timestamp
        excluded_cash: Cash activities that are not deposits/withdrawals
        defaulted_fields: Per-field count of malformed numbers replaced by 0.0
    """

    events: tuple[LedgerEvent, ...]
    skipped_transactions: int = 0
    skipped_cash: int = 0
    excluded_cash: int = 0
    defaulted_fields: dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self):
        return iter(self.events)

    @property
    def transactions(self) -> list[Transaction]:
        return [e.payload for e in self.events if e.kind == EventKind.TRANSACTION]

    @property
    def deposits(self) -> list[CashActivity]:
        return [e.payload for e in self.events if e.kind == EventKind.DEPOSIT]


def _as_float(value: Any) -> float | None:
    """Convert value to a finite float, None if malformed."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        # broker exports use a decimal comma ("612,5")
        if "," in value and "." not in value:
            value = value.replace(",", ".")
        if not value:
            return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    if not np.isfinite(out):
        return None
    return out


def parse_timestamp(
    date_str: str, time_str: str = "", config: LedgerConfig | None = None
) -> datetime | None:
    """Parse separate date and time strings into one naive datetime.

    The configured formats are tried first, then the fallbacks. An empty time
    string parses as midnight.

    Returns:
        Parsed datetime, or None if no format matches
    """
    config = config or LedgerConfig()
    date_str = (date_str or "").strip()
    time_str = (time_str or "").strip()
    if not date_str:
        return None

    date_formats = (config.date_format,) + tuple(
        f for f in FALLBACK_DATE_FORMATS if f != config.date_format
    )
    time_formats = (config.time_format,) + tuple(
        f for f in FALLBACK_TIME_FORMATS if f != config.time_format
    )

    for date_fmt in date_formats:
        if not time_str:
            try:
                return datetime.strptime(date_str, date_fmt)
            except ValueError:
                continue
        for time_fmt in time_formats:
            try:
                return datetime.strptime(f"{date_str} {time_str}", f"{date_fmt} {time_fmt}")
            except ValueError:
                continue
    return None


def _clean_transaction(txn: Transaction, defaulted: Counter) -> Transaction:
    changes = {}
    for name in ("quantity", "price", "value", "fee"):
        raw = getattr(txn, name)
        clean = _as_float(raw)
        if clean is None:
            defaulted[f"transaction.{name}"] += 1
            changes[name] = 0.0
        elif clean != raw or not isinstance(raw, float):
            changes[name] = clean
    return replace(txn, **changes) if changes else txn


def _clean_cash(activity: CashActivity, defaulted: Counter) -> CashActivity:
    clean = _as_float(activity.amount)
    if clean is None:
        defaulted["cash.amount"] += 1
        return replace(activity, amount=0.0)
    if clean != activity.amount or not isinstance(activity.amount, float):
        return replace(activity, amount=clean)
    return activity


def normalize_events(
    transactions: Iterable[Transaction],
    cash_activities: Iterable[CashActivity] = (),
    config: LedgerConfig | None = None,
) -> NormalizedEvents:
    """Merge transactions and deposits into one chronological event stream.

    Args:
        transactions: Trade records from the broker export
        cash_activities: Account activity records
        config: Parsing formats and deposit keywords (default: LedgerConfig())

    Returns:
        NormalizedEvents with events sorted by timestamp and drop counts
    """
    config = config or LedgerConfig()
    defaulted: Counter = Counter()
    pending: list[LedgerEvent] = []
    skipped_txn = 0
    skipped_cash = 0
    excluded_cash = 0

    for txn in transactions:
        ts = parse_timestamp(txn.date, txn.time, config)
        if ts is None:
            skipped_txn += 1
            logger.debug(f"Dropping transaction {txn.order_id or txn.key}: bad timestamp")
            continue
        pending.append(
            LedgerEvent(
                timestamp=ts,
                kind=EventKind.TRANSACTION,
                payload=_clean_transaction(txn, defaulted),
                seq=len(pending),
            )
        )

    for activity in cash_activities:
        ts = parse_timestamp(activity.date, activity.time, config)
        if ts is None:
            skipped_cash += 1
            logger.debug(f"Dropping cash activity {activity.description!r}: bad timestamp")
            continue
        if not config.is_external_cash_flow(activity.description):
            excluded_cash += 1
            continue
        pending.append(
            LedgerEvent(
                timestamp=ts,
                kind=EventKind.DEPOSIT,
                payload=_clean_cash(activity, defaulted),
                seq=len(pending),
            )
        )

    # sorted() is stable, so equal timestamps keep input order
    events = tuple(sorted(pending, key=lambda e: e.timestamp))

    if skipped_txn or skipped_cash:
        logger.info(
            f"Normalized {len(events)} events "
            f"(skipped {skipped_txn} transactions, {skipped_cash} cash activities)"
        )

    return NormalizedEvents(
        events=events,
        skipped_transactions=skipped_txn,
        skipped_cash=skipped_cash,
        excluded_cash=excluded_cash,
        defaulted_fields=dict(defaulted),
    )
