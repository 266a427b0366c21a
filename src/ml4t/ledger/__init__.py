"""ml4t.ledger - Position ledger and valuation engine for brokerage exports.

Replays trades and cash activity into:
- Weighted-average cost positions per instrument
- Realized vs. unrealized P&L (options with contract multiplier)
- Valuation snapshots after every event
- Monthly, yearly and YTD return reports
"""

__version__ = "0.1.0"

from .config import LedgerConfig
from .engine import run_ledger
from .holdings import ProfitLossBreakdown, compute_holdings, profit_loss_by_kind, total_costs
from .instruments import (
    OPTION_CONTRACT_MULTIPLIER,
    Equity,
    Instrument,
    InstrumentKind,
    Option,
    OptionRight,
    classify_instrument,
)
from .ledger import (
    QUANTITY_EPSILON,
    LedgerState,
    apply_deposit,
    apply_event,
    apply_transaction,
    realizations,
    replay,
    walk,
)
from .normalizer import NormalizedEvents, normalize_events, parse_timestamp
from .records import (
    cash_activities_from_dicts,
    cash_activities_from_frame,
    price_map_by_key,
    transactions_from_dicts,
    transactions_from_frame,
)
from .reporting import (
    cumulative_returns,
    filter_by_timeframe,
    monthly_returns,
    net_asset_value,
    period_returns,
    realized_series,
    yearly_returns,
    ytd_performance,
)
from .result import LedgerResult, compute_metrics
from .scenario import ScenarioLine, ScenarioResult, expiration_dates, scenario_value
from .types import (
    CashActivity,
    CumulativePoint,
    Dividend,
    EventKind,
    Holding,
    LedgerEvent,
    MissingPricePolicy,
    Period,
    PeriodReturn,
    Position,
    PriceObservation,
    Realization,
    Snapshot,
    Timeframe,
    Transaction,
    ValuationMode,
)
from .valuation import PriceResolver, PriceTimeline, SnapshotSeries, build_snapshots

__all__ = [
    # Types
    "EventKind",
    "ValuationMode",
    "MissingPricePolicy",
    "Period",
    "Timeframe",
    "Transaction",
    "CashActivity",
    "PriceObservation",
    "LedgerEvent",
    "Position",
    "Realization",
    "Snapshot",
    "Holding",
    "PeriodReturn",
    "Dividend",
    "CumulativePoint",
    # Instruments
    "OPTION_CONTRACT_MULTIPLIER",
    "InstrumentKind",
    "OptionRight",
    "Equity",
    "Option",
    "Instrument",
    "classify_instrument",
    # Config
    "LedgerConfig",
    # Normalizer
    "NormalizedEvents",
    "normalize_events",
    "parse_timestamp",
    # Ledger
    "QUANTITY_EPSILON",
    "LedgerState",
    "apply_transaction",
    "apply_deposit",
    "apply_event",
    "walk",
    "replay",
    "realizations",
    # Valuation
    "PriceTimeline",
    "PriceResolver",
    "SnapshotSeries",
    "build_snapshots",
    # Reporting
    "period_returns",
    "monthly_returns",
    "yearly_returns",
    "realized_series",
    "ytd_performance",
    "cumulative_returns",
    "filter_by_timeframe",
    "net_asset_value",
    # Holdings
    "ProfitLossBreakdown",
    "compute_holdings",
    "profit_loss_by_kind",
    "total_costs",
    # Scenario
    "ScenarioLine",
    "ScenarioResult",
    "expiration_dates",
    "scenario_value",
    # Records
    "transactions_from_dicts",
    "cash_activities_from_dicts",
    "transactions_from_frame",
    "cash_activities_from_frame",
    "price_map_by_key",
    # Engine
    "run_ledger",
    "LedgerResult",
    "compute_metrics",
]
