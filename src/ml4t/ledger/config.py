"""
Ledger Configuration

Centralized configuration for how broker exports are replayed. This allows:
1. Consistent parsing and valuation rules across every report
2. Broker-specific presets (date formats, deposit keywords)
3. No code changes needed - just swap configuration files

Usage:
    from ml4t.ledger import LedgerConfig

    # Load default config
    config = LedgerConfig()

    # Load preset (e.g., DeGiro exports)
    config = LedgerConfig.from_preset("degiro")

    # Load from file
    config = LedgerConfig.from_yaml("my_ledger.yaml")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .instruments import OPTION_CONTRACT_MULTIPLIER
from .types import MissingPricePolicy, ValuationMode

# Formats tried after the configured ones, in order.
FALLBACK_DATE_FORMATS = ("%d-%m-%Y", "%Y-%m-%d", "%d/%m/%Y")
FALLBACK_TIME_FORMATS = ("%H:%M", "%H:%M:%S")

DEGIRO_DEPOSIT_KEYWORDS = (
    "ideal",
    "storting",
    "terugstorting",
    "deposit",
    "withdrawal",
)


@dataclass
class LedgerConfig:
    """
    Complete configuration for ledger replay and valuation.

    This is the single source of truth for parsing, classification and
    valuation settings. ``run_ledger`` and the reporters are configured
    entirely from this dataclass.
    """

    # === Parsing ===
    date_format: str = "%Y-%m-%d"
    time_format: str = "%H:%M"

    # === Cash activity classification ===
    deposit_keywords: tuple[str, ...] = ("deposit", "withdrawal")

    # === Instruments ===
    option_multiplier: float = OPTION_CONTRACT_MULTIPLIER

    # === Valuation ===
    missing_price_policy: MissingPricePolicy = MissingPricePolicy.COST_BASIS
    valuation_mode: ValuationMode = ValuationMode.SPLIT
    final_snapshot_tolerance: float = 0.01  # Reporting-currency units

    # === Reporting ===
    portfolio_size: float | None = None  # Default percentage base for period returns

    # === Metadata ===
    preset_name: str | None = None  # Name of preset this was loaded from

    # Derived, not serialized
    _keywords_lower: tuple[str, ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self):
        self.deposit_keywords = tuple(self.deposit_keywords)
        self.missing_price_policy = MissingPricePolicy(self.missing_price_policy)
        self.valuation_mode = ValuationMode(self.valuation_mode)
        if self.option_multiplier <= 0:
            raise ValueError(f"option_multiplier ({self.option_multiplier}) must be positive")
        self._keywords_lower = tuple(k.lower() for k in self.deposit_keywords)

    def is_external_cash_flow(self, description: str) -> bool:
        """True if a cash activity description denotes a deposit or withdrawal."""
        text = (description or "").lower()
        return any(keyword in text for keyword in self._keywords_lower)

    def validate(self, warn: bool = True) -> list[str]:
        """Validate configuration and return warnings for edge cases.

        Args:
            warn: If True, emit warnings via warnings.warn(). Default True.

        Returns:
            List of warning message strings (empty if no issues found).
        """
        import warnings as _warnings

        issues: list[str] = []

        if not self.deposit_keywords:
            issues.append(
                "No deposit keywords configured. Every cash activity will be "
                "excluded and snapshots will not include deposits."
            )

        if self.final_snapshot_tolerance < 0:
            issues.append(
                f"final_snapshot_tolerance ({self.final_snapshot_tolerance}) must be >= 0"
            )

        if self.portfolio_size is not None and self.portfolio_size <= 0:
            issues.append(
                f"portfolio_size ({self.portfolio_size}) must be positive; "
                "period percentages will be reported as 0."
            )

        if warn and issues:
            for msg in issues:
                _warnings.warn(msg, UserWarning, stacklevel=2)

        return issues

    def to_dict(self) -> dict:
        """Convert config to dictionary for serialization."""
        return {
            "parsing": {
                "date_format": self.date_format,
                "time_format": self.time_format,
            },
            "cash": {
                "deposit_keywords": list(self.deposit_keywords),
            },
            "instruments": {
                "option_multiplier": self.option_multiplier,
            },
            "valuation": {
                "missing_price_policy": self.missing_price_policy.value,
                "mode": self.valuation_mode.value,
                "final_snapshot_tolerance": self.final_snapshot_tolerance,
            },
            "reporting": {
                "portfolio_size": self.portfolio_size,
            },
        }

    @classmethod
    def from_dict(cls, data: dict, preset_name: str | None = None) -> LedgerConfig:
        """Create config from dictionary."""
        data = data or {}
        parse_cfg = data.get("parsing", {})
        cash_cfg = data.get("cash", {})
        inst_cfg = data.get("instruments", {})
        val_cfg = data.get("valuation", {})
        report_cfg = data.get("reporting", {})

        return cls(
            # Parsing
            date_format=parse_cfg.get("date_format", "%Y-%m-%d"),
            time_format=parse_cfg.get("time_format", "%H:%M"),
            # Cash
            deposit_keywords=tuple(cash_cfg.get("deposit_keywords", ("deposit", "withdrawal"))),
            # Instruments
            option_multiplier=float(inst_cfg.get("option_multiplier", OPTION_CONTRACT_MULTIPLIER)),
            # Valuation
            missing_price_policy=MissingPricePolicy(
                val_cfg.get("missing_price_policy", "cost_basis")
            ),
            valuation_mode=ValuationMode(val_cfg.get("mode", "split")),
            final_snapshot_tolerance=float(val_cfg.get("final_snapshot_tolerance", 0.01)),
            # Reporting
            portfolio_size=report_cfg.get("portfolio_size"),
            # Metadata
            preset_name=preset_name,
        )

    def to_yaml(self, path: str | Path) -> None:
        """Save config to YAML file."""
        path = Path(path)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, path: str | Path) -> LedgerConfig:
        """Load config from YAML file."""
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data, preset_name=path.stem)

    @classmethod
    def from_preset(cls, preset: str) -> LedgerConfig:
        """
        Load a predefined configuration preset.

        Available presets:
        - "default": ISO dates, English deposit keywords
        - "degiro": DeGiro exports (dd-MM-yyyy dates, iDEAL deposits)
        """
        presets = {
            "default": cls._default_preset,
            "degiro": cls._degiro_preset,
        }

        if preset not in presets:
            available = ", ".join(presets.keys())
            raise ValueError(f"Unknown preset '{preset}'. Available: {available}")

        config = presets[preset]()
        config.preset_name = preset
        return config

    @classmethod
    def _default_preset(cls) -> LedgerConfig:
        return cls()

    @classmethod
    def _degiro_preset(cls) -> LedgerConfig:
        """
        Match DeGiro's Transactions.csv / Account.csv exports.

        Key characteristics:
        - Dates as dd-MM-yyyy, times as HH:mm
        - Deposits arrive via iDEAL or bank transfer ("storting")
        - Option premiums quoted per share, 100 shares per contract
        """
        return cls(
            date_format="%d-%m-%Y",
            time_format="%H:%M",
            deposit_keywords=DEGIRO_DEPOSIT_KEYWORDS,
            option_multiplier=OPTION_CONTRACT_MULTIPLIER,
            missing_price_policy=MissingPricePolicy.COST_BASIS,
        )

    def describe(self) -> str:
        """Return human-readable description of configuration."""
        lines = [
            f"LedgerConfig (preset: {self.preset_name or 'custom'})",
            "=" * 50,
            "",
            "Parsing:",
            f"  Date format: {self.date_format}",
            f"  Time format: {self.time_format}",
            "",
            "Cash:",
            f"  Deposit keywords: {', '.join(self.deposit_keywords) or '(none)'}",
            "",
            "Valuation:",
            f"  Option multiplier: {self.option_multiplier:g}",
            f"  Missing price policy: {self.missing_price_policy.value}",
            f"  Mode: {self.valuation_mode.value}",
            f"  Final snapshot tolerance: {self.final_snapshot_tolerance}",
        ]
        if self.portfolio_size is not None:
            lines.extend(["", "Reporting:", f"  Portfolio size: {self.portfolio_size:,.2f}"])
        return "\n".join(lines)
