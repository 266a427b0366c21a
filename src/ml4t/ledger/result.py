"""Structured ledger result with export capabilities.

This module provides a LedgerResult class that wraps the output of
``run_ledger`` with polars DataFrame export methods and Parquet serialization.

Example:
    >>> from ml4t.ledger import run_ledger
    >>> result = run_ledger(transactions, cash_activities, current_prices=prices)
    >>>
    >>> # Export everything to Parquet
    >>> result.to_parquet("./results/2024")
    >>>
    >>> # Get DataFrames
    >>> snapshots_df = result.to_snapshots_dataframe()
    >>> holdings_df = result.to_holdings_dataframe()
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import numpy as np
import polars as pl
import yaml

from .types import Holding, LedgerEvent, PeriodReturn, Realization, Snapshot, ValuationMode

if TYPE_CHECKING:
    from .config import LedgerConfig
    from .holdings import ProfitLossBreakdown
    from .ledger import LedgerState


def compute_metrics(
    snapshots: Sequence[Snapshot],
    realizations: Sequence[Realization],
    breakdown: ProfitLossBreakdown,
    open_positions: int,
) -> dict[str, Any]:
    """Summary statistics of a ledger run.

    Args:
        snapshots: Valuation snapshots in order
        realizations: Realization records in order
        breakdown: P&L split of the final state
        open_positions: Number of open positions at the end

    Returns:
        Dict of metrics (all plain Python scalars)
    """
    pnls = np.array([r.pnl for r in realizations], dtype=float)
    wins = pnls[pnls > 0]
    losses = pnls[pnls < 0]

    values = np.array([s.value for s in snapshots], dtype=float)
    if len(values):
        peaks = np.maximum.accumulate(values)
        max_drawdown = float(np.max(peaks - values))
        final_value = float(values[-1])
    else:
        max_drawdown = 0.0
        final_value = 0.0

    gross_loss = float(-losses.sum())
    return {
        "final_value": final_value,
        "total_deposits": snapshots[-1].deposits if snapshots else 0.0,
        "realized_pnl": breakdown.realized,
        "unrealized_pnl": breakdown.unrealized,
        "total_fees": breakdown.fees,
        "total_pnl": breakdown.total_pnl,
        "num_realizations": int(len(pnls)),
        "num_winners": int(len(wins)),
        "num_losers": int(len(losses)),
        "win_rate": float(len(wins) / len(pnls)) if len(pnls) else 0.0,
        "avg_win": float(wins.mean()) if len(wins) else 0.0,
        "avg_loss": float(losses.mean()) if len(losses) else 0.0,
        "profit_factor": float(wins.sum() / gross_loss) if gross_loss > 0 else 0.0,
        "max_drawdown": max_drawdown,
        "open_positions": open_positions,
    }


@dataclass
class LedgerResult:
    """Structured ledger result with export capabilities.

    Attributes:
        snapshots: Valuation snapshot per event (plus optional as-of-now)
        holdings: Open positions at the end of the replay
        realizations: Every realization, in event order
        monthly: Period returns per calendar month
        yearly: Period returns per calendar year
        final_state: Ledger state after the last event
        breakdown: Options/equities P&L split of the final state
        events: Normalized events that were replayed
        diagnostics: Skipped/defaulted/missing-price counts
        metrics: Summary statistics (see ``compute_metrics``)
        config: LedgerConfig used for the run
    """

    snapshots: tuple[Snapshot, ...]
    holdings: list[Holding]
    realizations: list[Realization]
    monthly: list[PeriodReturn]
    yearly: list[PeriodReturn]
    final_state: LedgerState
    breakdown: ProfitLossBreakdown
    events: tuple[LedgerEvent, ...] = ()
    diagnostics: dict[str, Any] = field(default_factory=dict)
    metrics: dict[str, Any] = field(default_factory=dict)
    config: LedgerConfig | None = None

    def to_snapshots_dataframe(self, mode: ValuationMode | None = None) -> pl.DataFrame:
        """Convert snapshots to a polars DataFrame.

        Columns: timestamp, realized, unrealized, deposits, value, as_of_now;
        plus realized_value (deposits + realized) for charting.

        Args:
            mode: TOTAL keeps only timestamp and value (default: all columns)
        """
        if not self.snapshots:
            df = pl.DataFrame(schema=self._snapshots_schema())
        else:
            df = pl.DataFrame(
                {
                    "timestamp": [s.timestamp for s in self.snapshots],
                    "realized": [s.realized for s in self.snapshots],
                    "unrealized": [s.unrealized for s in self.snapshots],
                    "deposits": [s.deposits for s in self.snapshots],
                    "value": [s.value for s in self.snapshots],
                    "as_of_now": [s.as_of_now for s in self.snapshots],
                },
                schema=self._snapshots_schema(),
            )
        df = df.with_columns((pl.col("deposits") + pl.col("realized")).alias("realized_value"))
        if mode == ValuationMode.TOTAL:
            return df.select(["timestamp", "value"])
        return df

    def to_holdings_dataframe(self) -> pl.DataFrame:
        """Convert holdings to a polars DataFrame, one row per open position."""
        schema = {
            "instrument_id": pl.Utf8(),
            "name": pl.Utf8(),
            "kind": pl.Utf8(),
            "quantity": pl.Float64(),
            "average_price": pl.Float64(),
            "current_price": pl.Float64(),
            "total_cost": pl.Float64(),
            "market_value": pl.Float64(),
            "unrealized_pnl": pl.Float64(),
            "unrealized_pnl_pct": pl.Float64(),
        }
        rows = [
            {
                "instrument_id": h.instrument_id,
                "name": h.name,
                "kind": h.instrument.kind.value,
                "quantity": h.quantity,
                "average_price": h.average_price,
                "current_price": h.current_price,
                "total_cost": h.total_cost,
                "market_value": h.market_value,
                "unrealized_pnl": h.unrealized_pnl,
                "unrealized_pnl_pct": h.unrealized_pnl_pct,
            }
            for h in self.holdings
        ]
        return pl.DataFrame(rows, schema=schema)

    def to_realizations_dataframe(self) -> pl.DataFrame:
        """Convert realizations to a polars DataFrame."""
        schema = {
            "timestamp": pl.Datetime(),
            "key": pl.Utf8(),
            "order_id": pl.Utf8(),
            "closed_quantity": pl.Float64(),
            "avg_price": pl.Float64(),
            "proceeds": pl.Float64(),
            "pnl": pl.Float64(),
        }
        rows = [
            {
                "timestamp": r.timestamp,
                "key": r.key,
                "order_id": r.order_id,
                "closed_quantity": r.closed_quantity,
                "avg_price": r.avg_price,
                "proceeds": r.proceeds,
                "pnl": r.pnl,
            }
            for r in self.realizations
        ]
        return pl.DataFrame(rows, schema=schema)

    def to_period_dataframe(self, period: Literal["month", "year"] = "month") -> pl.DataFrame:
        """Convert monthly or yearly returns to a polars DataFrame."""
        returns = self.monthly if period == "month" else self.yearly
        schema = {
            "period_label": pl.Utf8(),
            "period_start": pl.Datetime(),
            "realized": pl.Float64(),
            "unrealized": pl.Float64(),
            "total": pl.Float64(),
            "percentage": pl.Float64(),
            "deposits": pl.Float64(),
            "dividends": pl.Float64(),
        }
        rows = [
            {
                "period_label": p.period_label,
                "period_start": p.period_start,
                "realized": p.realized,
                "unrealized": p.unrealized,
                "total": p.total,
                "percentage": p.percentage,
                "deposits": p.deposits,
                "dividends": p.dividends,
            }
            for p in returns
        ]
        return pl.DataFrame(rows, schema=schema)

    def to_parquet(
        self,
        path: str | Path,
        include: list[str] | None = None,
        compression: Literal["lz4", "uncompressed", "snappy", "gzip", "brotli", "zstd"] = "zstd",
    ) -> dict[str, Path]:
        """Export the result to Parquet files.

        Creates directory structure:
            {path}/
                snapshots.parquet
                holdings.parquet
                realizations.parquet
                monthly.parquet
                yearly.parquet
                metrics.json
                config.yaml (if config available)

        Args:
            path: Directory path to write files
            include: Components to include. Default: all.
            compression: Parquet compression codec (default: "zstd")

        Returns:
            Dict mapping component names to file paths
        """
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)

        if include is None:
            include = [
                "snapshots",
                "holdings",
                "realizations",
                "monthly",
                "yearly",
                "metrics",
                "config",
            ]

        frames = {
            "snapshots": self.to_snapshots_dataframe,
            "holdings": self.to_holdings_dataframe,
            "realizations": self.to_realizations_dataframe,
            "monthly": lambda: self.to_period_dataframe("month"),
            "yearly": lambda: self.to_period_dataframe("year"),
        }

        written: dict[str, Path] = {}
        for name, build in frames.items():
            if name in include:
                file_path = path / f"{name}.parquet"
                build().write_parquet(file_path, compression=compression)
                written[name] = file_path

        if "metrics" in include:
            metrics_path = path / "metrics.json"
            with open(metrics_path, "w") as f:
                json.dump({**self.metrics, "diagnostics": self.diagnostics}, f, indent=2)
            written["metrics"] = metrics_path

        if "config" in include and self.config is not None:
            config_path = path / "config.yaml"
            with open(config_path, "w") as f:
                yaml.dump(self.config.to_dict(), f, default_flow_style=False, sort_keys=False)
            written["config"] = config_path

        return written

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict output in the reporting layer's shape."""
        mode = self.config.valuation_mode if self.config else ValuationMode.SPLIT
        return {
            "snapshots": [s.to_dict(mode) for s in self.snapshots],
            "holdings": [
                {
                    "instrument_id": h.instrument_id,
                    "name": h.name,
                    "quantity": h.quantity,
                    "average_price": h.average_price,
                    "current_price": h.current_price,
                    "total_cost": h.total_cost,
                    "unrealized_pnl": h.unrealized_pnl,
                }
                for h in self.holdings
            ],
            "monthly": [self._period_dict(p) for p in self.monthly],
            "yearly": [self._period_dict(p) for p in self.yearly],
            "metrics": self.metrics,
            "diagnostics": self.diagnostics,
        }

    @staticmethod
    def _period_dict(p: PeriodReturn) -> dict[str, Any]:
        return {
            "period_label": p.period_label,
            "realized": p.realized,
            "unrealized": p.unrealized,
            "total": p.total,
            "percentage": p.percentage,
        }

    @staticmethod
    def _snapshots_schema() -> dict[str, pl.DataType]:
        return {
            "timestamp": pl.Datetime(),
            "realized": pl.Float64(),
            "unrealized": pl.Float64(),
            "deposits": pl.Float64(),
            "value": pl.Float64(),
            "as_of_now": pl.Boolean(),
        }

    def __repr__(self) -> str:
        final_value = self.metrics.get("final_value", 0.0)
        realized = self.metrics.get("realized_pnl", 0.0)
        return (
            f"LedgerResult(events={len(self.events)}, snapshots={len(self.snapshots)}, "
            f"holdings={len(self.holdings)}, value={final_value:,.2f}, "
            f"realized={realized:+,.2f})"
        )
