# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for SMB LedgerSight.

This module is responsible for:
- defining the company settings consumed by the engine (functional
  currency, timezone, fiscal year, IFRS rule toggles, classification lists),
- loading the application configuration from a TOML file,
- building company settings from plain mappings handed over by a host
  application.

Settings are explicit, immutable objects passed into the engine at call
time. Nothing in the engine reads process-wide state.
"""

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from .money import RateTable, to_decimal

DEFAULT_CONFIG_FILE = "ledgersight_config.toml"

# Category lists used to place P&L lines into sections. Matching is
# case-insensitive and a trailing '*' means "starts with".
DEFAULT_PNL_SECTIONS: dict[str, tuple[str, ...]] = {
    "revenue": (
        "Sales Revenue",
        "Service Revenue",
        "Product Sales",
        "Consulting",
        "Licensing",
    ),
    "cost_of_sales": ("COGS", "Cost of Goods Sold", "Cost of Service"),
    "operating_expenses": (
        "Payroll and benefits",
        "Rent and utilities",
        "Supplies and equipment",
        "Marketing and advertising",
        "Insurance",
        "Professional services",
        "Subscriptions and software",
        "Maintenance and repairs",
        "Depreciation*",
        "Amortization*",
        "Amortisation*",
    ),
    "other_income": ("Interest Income", "Investment Returns"),
    "other_expenses": (
        "Interest Expense",
        "Taxes",
        "Debt payments",
        "Travel and entertainment",
        "Inventory costs",
        "Other",
    ),
}


@dataclass(frozen=True)
class IfrsSettings:
    """IFRS rule toggles and tolerances.

    Attributes:
        enabled: When False, presentation rules that only exist for IFRS
            compliance (comparatives, current/non-current split, operating
            section) are not reported.
        disabled_rules: Finding codes that must never be reported.
        balance_tolerance: Tolerance of the balance equation check.
        cash_tolerance: Tolerance of the cash reconciliation.
        materiality_threshold: Amount above which variances are highlighted.
    """

    enabled: bool = True
    disabled_rules: frozenset[str] = frozenset()
    balance_tolerance: Decimal = Decimal("0.01")
    cash_tolerance: Decimal = Decimal("0.01")
    materiality_threshold: Decimal = Decimal("1000")


@dataclass(frozen=True)
class ClassificationSettings:
    """Lists driving classification of categories and subcategories."""

    non_cash_categories: tuple[str, ...] = (
        "Depreciation*",
        "Amortization*",
        "Amortisation*",
    )
    current_asset_subcategories: tuple[str, ...] = (
        "Cash and Cash Equivalents",
        "Cash",
        "Accounts Receivable",
        "Receivables",
        "Inventory",
        "Prepaid Expenses",
        "Short-term Investments",
    )
    current_liability_subcategories: tuple[str, ...] = (
        "Accounts Payable",
        "Payables",
        "Accrued Expenses",
        "Short-term Debt",
        "Current Portion of Long-term Debt",
        "Taxes Payable",
        "Deferred Revenue",
    )
    current_keywords: tuple[str, ...] = (
        "cash",
        "receivable",
        "inventory",
        "prepaid",
        "payable",
        "accrued",
        "short-term",
        "short term",
        "current",
    )
    interest_categories: tuple[str, ...] = ("Interest Expense", "Interest paid")
    tax_categories: tuple[str, ...] = ("Taxes", "Income tax*")


@dataclass(frozen=True)
class CompanySettings:
    """Settings of one company, as supplied by the company settings provider."""

    company_id: str
    name: str = ""
    functional_currency: str = "USD"
    timezone: str = "UTC"
    fiscal_year_start_month: int = 1
    ifrs: IfrsSettings = field(default_factory=IfrsSettings)
    classification: ClassificationSettings = field(
        default_factory=ClassificationSettings
    )
    pnl_sections: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_PNL_SECTIONS)
    )


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for the CLI and batch runs.

    This aggregates:
    - the settings of every configured company,
    - the optional exchange-rate table used for presentation,
    - period limits, ratios options and display options,
    - the default log level.
    """

    companies: dict[str, CompanySettings]
    rates: Optional[RateTable]
    max_custom_days: Optional[int]
    ratios_enabled: bool
    default_ratios_level: str
    ratios_rules_file: Optional[Path]
    display_mode: str
    ratio_decimals: int
    log_level: str

    def company(self, company_id: Optional[str] = None) -> CompanySettings:
        """Return one company's settings (the only one when id is omitted)."""
        if company_id is None:
            if len(self.companies) != 1:
                raise ValueError(
                    "Several companies are configured, please select one."
                )
            return next(iter(self.companies.values()))
        try:
            return self.companies[company_id]
        except KeyError:
            raise ValueError(f"Unknown company in configuration: {company_id!r}") from None


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        return {}
    return value


def _str_tuple(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        return tuple(p.strip() for p in value.split(";") if p.strip())
    return tuple(str(v) for v in value)


def _parse_ifrs(data: Mapping[str, Any]) -> IfrsSettings:
    defaults = IfrsSettings()
    try:
        return IfrsSettings(
            enabled=bool(data.get("enabled", defaults.enabled)),
            disabled_rules=frozenset(
                str(c).upper() for c in data.get("disabled_rules") or ()
            ),
            balance_tolerance=to_decimal(
                data.get("balance_tolerance", defaults.balance_tolerance)
            ),
            cash_tolerance=to_decimal(data.get("cash_tolerance", defaults.cash_tolerance)),
            materiality_threshold=to_decimal(
                data.get("materiality_threshold", defaults.materiality_threshold)
            ),
        )
    except ValueError as exc:
        raise ValueError(f"Invalid [ifrs] settings: {exc}") from exc


def _parse_classification(data: Mapping[str, Any]) -> ClassificationSettings:
    d = ClassificationSettings()
    return ClassificationSettings(
        non_cash_categories=_str_tuple(data.get("non_cash_categories"), d.non_cash_categories),
        current_asset_subcategories=_str_tuple(
            data.get("current_asset_subcategories"), d.current_asset_subcategories
        ),
        current_liability_subcategories=_str_tuple(
            data.get("current_liability_subcategories"),
            d.current_liability_subcategories,
        ),
        current_keywords=_str_tuple(data.get("current_keywords"), d.current_keywords),
        interest_categories=_str_tuple(data.get("interest_categories"), d.interest_categories),
        tax_categories=_str_tuple(data.get("tax_categories"), d.tax_categories),
    )


def company_settings_from_mapping(
    data: Mapping[str, Any],
    company_id: Optional[str] = None,
) -> CompanySettings:
    """
    Build CompanySettings from a plain mapping.

    Accepted keys: ``company_id`` (or the explicit argument), ``name``,
    ``functional_currency``, ``timezone``, ``fiscal_year_start_month`` and the
    optional sub-tables ``ifrs``, ``classification`` and ``pnl_sections``.

    Raises:
        ValueError: if the company id is missing or a value is invalid.
    """
    cid = company_id or data.get("company_id")
    if not cid:
        raise ValueError("Company settings require a 'company_id'.")

    try:
        fy_month = int(data.get("fiscal_year_start_month", 1))
    except (TypeError, ValueError) as exc:
        raise ValueError("fiscal_year_start_month must be an integer (1-12).") from exc
    if not 1 <= fy_month <= 12:
        raise ValueError("fiscal_year_start_month must be between 1 and 12.")

    sections = dict(DEFAULT_PNL_SECTIONS)
    for key, value in _section(data, "pnl_sections").items():
        if key not in DEFAULT_PNL_SECTIONS:
            raise ValueError(f"Unknown P&L section in settings: {key!r}")
        sections[key] = _str_tuple(value, DEFAULT_PNL_SECTIONS[key])

    return CompanySettings(
        company_id=str(cid),
        name=str(data.get("name") or cid),
        functional_currency=str(data.get("functional_currency") or "USD").upper(),
        timezone=str(data.get("timezone") or "UTC"),
        fiscal_year_start_month=fy_month,
        ifrs=_parse_ifrs(_section(data, "ifrs")),
        classification=_parse_classification(_section(data, "classification")),
        pnl_sections=sections,
    )


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the LedgerSight application configuration from a TOML file.

    Expected top-level sections
    ---------------------------
    [companies.<id>]
        One table per company (name, functional_currency, timezone,
        fiscal_year_start_month) with optional [companies.<id>.ifrs],
        [companies.<id>.classification] and [companies.<id>.pnl_sections].

    [rates]
        Optional exchange-rate table: ``base`` plus ``CODE = "rate"`` pairs.

    [periods]
        ``max_custom_days`` limits custom period length.

    [ratios]
        ``enabled``, ``default_level`` and an optional ``rules_file``
        (resolved relative to the TOML file).

    [display]
        ``mode`` (table | csv | both) and ``ratio_decimals``.

    [logging]
        ``level`` used by the CLI when no --log-level is given.

    Returns
    -------
    AppConfig
        Parsed and validated application configuration.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent

    # 1) Companies
    companies_section = _section(raw, "companies")
    if not companies_section:
        raise ValueError("Config file must define at least one [companies.<id>] table.")

    companies: dict[str, CompanySettings] = {}
    for cid, company_data in companies_section.items():
        if not isinstance(company_data, Mapping):
            raise ValueError(f"[companies.{cid}] must be a table.")
        companies[str(cid)] = company_settings_from_mapping(company_data, str(cid))

    # 2) Rates
    rates_section = _section(raw, "rates")
    rates = RateTable.from_mapping(rates_section) if rates_section else None

    # 3) Periods
    periods_section = _section(raw, "periods")
    raw_max_days = periods_section.get("max_custom_days", 731)
    try:
        max_custom_days = int(raw_max_days) if raw_max_days else None
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'periods.max_custom_days'. Expected an integer."
        ) from exc

    # 4) Ratios
    ratios_section = _section(raw, "ratios")
    ratios_enabled = bool(ratios_section.get("enabled", True))
    default_level = str(ratios_section.get("default_level", "basic"))
    rules_raw = ratios_section.get("rules_file")
    ratios_rules_file = (base_dir / str(rules_raw)).resolve() if rules_raw else None

    # 5) Display
    display_section = _section(raw, "display")
    display_mode = str(display_section.get("mode", "table"))
    try:
        ratio_decimals = int(display_section.get("ratio_decimals", 2))
    except (TypeError, ValueError):
        ratio_decimals = 2

    # 6) Logging
    log_level = str(_section(raw, "logging").get("level", "WARNING"))

    return AppConfig(
        companies=companies,
        rates=rates,
        max_custom_days=max_custom_days,
        ratios_enabled=ratios_enabled,
        default_ratios_level=default_level,
        ratios_rules_file=ratios_rules_file,
        display_mode=display_mode,
        ratio_decimals=ratio_decimals,
        log_level=log_level,
    )
