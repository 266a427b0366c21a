"""Adapters from ingestion records to ledger input types.

The CSV ingestion layer hands over plain dicts (camelCase keys) or polars
frames. These helpers build ``Transaction`` / ``CashActivity`` records from
them and attach the instrument variant once, at ingestion time.
"""

from __future__ import annotations

import logging

from collections.abc import Iterable, Mapping
from typing import Any

import polars as pl

from .config import LedgerConfig
from .instruments import classify_instrument
from .normalizer import _as_float
from .types import CashActivity, Transaction

logger = logging.getLogger(__name__)

# Accepted source keys per field, first match wins
TRANSACTION_FIELDS: dict[str, tuple[str, ...]] = {
    "date": ("date",),
    "time": ("time",),
    "instrument_id": ("instrument_id", "instrumentId", "isin"),
    "instrument_name": ("instrument_name", "instrumentName", "product"),
    "quantity": ("quantity", "signedQuantity"),
    "price": ("price", "unitPrice"),
    "value": ("value", "cashFlowValue"),
    "fee": ("fee", "feeAmount", "transaction_costs", "transactionCosts"),
    "order_id": ("order_id", "orderId"),
}

CASH_FIELDS: dict[str, tuple[str, ...]] = {
    "date": ("date",),
    "time": ("time",),
    "description": ("description",),
    "amount": ("amount", "signedAmount", "change"),
}

_NUMERIC = {"quantity", "price", "value", "fee", "amount"}


def _pick(record: Mapping[str, Any], names: tuple[str, ...], numeric: bool) -> Any:
    for name in names:
        value = record.get(name)
        if value is not None:
            return value
    return 0.0 if numeric else ""


def _extract(record: Mapping[str, Any], fields: dict[str, tuple[str, ...]]) -> dict[str, Any]:
    out = {}
    for field_name, names in fields.items():
        value = _pick(record, names, field_name in _NUMERIC)
        out[field_name] = value if field_name in _NUMERIC else str(value)
    return out


def transactions_from_dicts(
    records: Iterable[Mapping[str, Any]],
    config: LedgerConfig | None = None,
    classify: bool = True,
) -> list[Transaction]:
    """Build transactions from ingestion dicts.

    Numeric fields are passed through as-is; malformed numbers are repaired
    (and counted) by ``normalize_events``.

    Args:
        records: Dicts with camelCase or snake_case keys
        config: Supplies the option contract multiplier
        classify: Attach an instrument variant derived from the product name

    Returns:
        Transactions in input order
    """
    config = config or LedgerConfig()
    transactions = []
    for record in records:
        fields = _extract(record, TRANSACTION_FIELDS)
        if classify:
            fields["instrument"] = classify_instrument(
                fields["instrument_name"], config.option_multiplier
            )
        transactions.append(Transaction(**fields))
    return transactions


def cash_activities_from_dicts(records: Iterable[Mapping[str, Any]]) -> list[CashActivity]:
    """Build cash activities from ingestion dicts."""
    return [CashActivity(**_extract(record, CASH_FIELDS)) for record in records]


def transactions_from_frame(
    df: pl.DataFrame, config: LedgerConfig | None = None, classify: bool = True
) -> list[Transaction]:
    """Build transactions from a polars frame with the same column names as the dicts."""
    return transactions_from_dicts(df.iter_rows(named=True), config, classify)


def cash_activities_from_frame(df: pl.DataFrame) -> list[CashActivity]:
    """Build cash activities from a polars frame."""
    return cash_activities_from_dicts(df.iter_rows(named=True))


def price_map_by_key(
    current_prices: Mapping[str, float], transactions: Iterable[Transaction]
) -> dict[str, float]:
    """Re-key a price map to instrument keys.

    Prices may be keyed by instrument id (ISIN) or by full instrument key;
    an explicit instrument-key entry wins over an id entry. Entries that are
    None or not finite are dropped, so those positions fall back to the
    missing-price policy.

    Args:
        current_prices: Instrument id or key -> price
        transactions: Transactions that define the id -> key mapping

    Returns:
        Instrument key -> price
    """
    marks = {}
    for key, raw in current_prices.items():
        price = _as_float(raw)
        if price is None:
            logger.debug(f"Ignoring unusable current price for {key}: {raw!r}")
            continue
        marks[key] = price

    prices = {}
    for txn in transactions:
        if txn.key in prices:
            continue
        price = marks.get(txn.key, marks.get(txn.instrument_id))
        if price is not None:
            prices[txn.key] = price
    for key, price in marks.items():
        prices.setdefault(key, price)
    return prices
