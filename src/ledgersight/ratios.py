# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Derived measures and financial ratios for SMB LedgerSight.

1. Statement measures
   ------------------
   ``statement_measures(bs, pl, cf)`` flattens built statements into a
   mapping ``{measure_key -> float}`` (total_assets, revenue,
   operating_cash_flow, ...). Any statement may be omitted; its measures
   are then simply absent.

2. Derived measures
   ----------------
   ``[measures.*]`` sections of a ratios TOML file define extra measures
   as formulas over statement measures and previously defined derived
   measures. ``compute_derived_measures()`` evaluates them in file order.

3. Ratios
   ------
   ``[ratios.<level>.*]`` sections define ratios with a label, a formula,
   a unit and optional notes. Levels are cumulative:

       "basic"    only basic ratios
       "advanced" basic + advanced
       "full"     everything

   A ratio that cannot be evaluated (missing measure, division by zero)
   has ``value=None`` and is displayed as "N/A".

Formulas are evaluated by ``formulas.evaluate``, never by ``eval``.
A default rules file ships with the package (``data/ratios_default.toml``).
"""

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import tomllib

from .errors import FormulaError
from .formulas import evaluate
from .logging_setup import get_logger

if TYPE_CHECKING:
    from .balance_sheet import BalanceSheetData
    from .cash_flow import CashFlowData
    from .profit_loss import ProfitLossData

logger = get_logger(__name__)

# Requesting "advanced" includes "basic", requesting "full" includes all.
LEVEL_ORDER: tuple[str, ...] = ("basic", "advanced", "full")


@dataclass(frozen=True)
class RatioResult:
    """
    Computed ratio or KPI.

    Attributes:
        key: Internal identifier (e.g. 'current_ratio').
        label: Human-readable label for display.
        value: Numeric value, or None when not computable.
        unit: Unit hint ('percent', 'ratio', 'amount', ...).
        notes: Optional description.
        level: Logical level ('basic', 'advanced', 'full').
    """

    key: str
    label: str
    value: Optional[float]
    unit: str
    notes: str
    level: str


def default_rules_file() -> Path:
    """Path of the ratio rules shipped with the package."""
    return Path(__file__).resolve().parent / "data" / "ratios_default.toml"


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Ratio rules file not found: {path}")

    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML ratio rules file: {path}") from exc


def statement_measures(
    balance_sheet: Optional["BalanceSheetData"] = None,
    profit_loss: Optional["ProfitLossData"] = None,
    cash_flow: Optional["CashFlowData"] = None,
) -> dict[str, float]:
    """Flatten built statements into a measure mapping."""
    measures: dict[str, float] = {}

    if balance_sheet is not None:
        measures.update(
            total_assets=float(balance_sheet.total_assets.amount),
            total_liabilities=float(balance_sheet.total_liabilities.amount),
            total_equity=float(balance_sheet.total_equity.amount),
        )
        # Absent current groups stay absent so current_ratio is N/A.
        if balance_sheet.has_current_split:
            measures["current_assets"] = float(balance_sheet.current_assets.amount)
            measures["current_liabilities"] = float(balance_sheet.current_liabilities.amount)

    if profit_loss is not None:
        measures.update(
            revenue=float(profit_loss.revenue.amount),
            cost_of_sales=float(profit_loss.cost_of_sales.amount),
            gross_profit=float(profit_loss.gross_profit.amount),
            operating_expenses=float(profit_loss.operating_expenses.amount),
            operating_income=float(profit_loss.operating_income.amount),
            other_income=float(profit_loss.other_income.amount),
            other_expenses=float(profit_loss.other_expenses.amount),
            net_profit=float(profit_loss.net_profit.amount),
        )

    if cash_flow is not None:
        measures.update(
            operating_cash_flow=float(cash_flow.operating_cash_flow.amount),
            investing_cash_flow=float(cash_flow.investing_cash_flow.amount),
            financing_cash_flow=float(cash_flow.financing_cash_flow.amount),
            net_cash_flow=float(cash_flow.net_cash_flow.amount),
        )
        if "net_profit" not in measures:
            measures["net_profit"] = float(cash_flow.net_profit.amount)

    return measures


def compute_derived_measures(
    base_measures: Mapping[str, float],
    rules_file: Path,
) -> dict[str, float]:
    """
    Compute the ``[measures.*]`` of a rules file on top of ``base_measures``.

    Returns a dictionary with both base and derived measures. A measure whose
    formula cannot be evaluated is left out, so ratios using it become None.
    """
    data = _load_toml(rules_file)

    measures_section = data.get("measures") or {}
    if not isinstance(measures_section, Mapping):
        measures_section = {}

    all_measures: dict[str, float] = {str(k): float(v) for k, v in base_measures.items()}

    for key, cfg in measures_section.items():
        if not isinstance(cfg, Mapping) or not cfg.get("formula"):
            continue
        try:
            value = evaluate(str(cfg["formula"]), all_measures)
        except (FormulaError, ArithmeticError) as exc:
            logger.debug("Derived measure %s skipped: %s", key, exc)
            continue
        all_measures[str(key)] = float(value)

    return all_measures


def _levels_to_include(level: str, available: Mapping[str, Any]) -> list[str]:
    if level in LEVEL_ORDER:
        max_index = LEVEL_ORDER.index(level)
        return [lvl for lvl in LEVEL_ORDER[: max_index + 1] if lvl in available]
    return [level] if level in available else []


def compute_ratios(
    measures: Mapping[str, float],
    rules_file: Optional[Path] = None,
    level: str = "basic",
) -> list[RatioResult]:
    """
    Compute ratios for a given level.

    Args:
        measures:
            Measure values, usually ``statement_measures()`` passed through
            ``compute_derived_measures()``.
        rules_file:
            TOML file with [ratios.<level>.*] sections. The packaged default
            is used when omitted.
        level:
            'basic', 'advanced' or 'full' (cumulative). Unknown levels only
            include the matching section, if any.

    Returns:
        RatioResult list in file order. Ratios whose formula cannot be
        evaluated have value=None.
    """
    path = rules_file if rules_file is not None else default_rules_file()
    data = _load_toml(path)

    ratios_section = data.get("ratios") or {}
    if not isinstance(ratios_section, Mapping):
        return []

    results: list[RatioResult] = []
    for current_level in _levels_to_include(level, ratios_section):
        level_section = ratios_section.get(current_level) or {}
        if not isinstance(level_section, Mapping):
            continue

        for key, cfg in level_section.items():
            if not isinstance(cfg, Mapping):
                continue

            formula = cfg.get("formula")
            value: Optional[float]
            if not formula:
                value = None
            else:
                formula_str = str(formula)
                try:
                    if formula_str in measures:
                        value = float(measures[formula_str])
                    else:
                        value = float(evaluate(formula_str, measures))
                except (FormulaError, ArithmeticError):
                    value = None

            results.append(
                RatioResult(
                    key=str(key),
                    label=str(cfg.get("label", key)),
                    value=value,
                    unit=str(cfg.get("unit", "amount")),
                    notes=str(cfg.get("notes", "")),
                    level=current_level,
                )
            )

    return results


def ratios_for_statements(
    balance_sheet: Optional["BalanceSheetData"] = None,
    profit_loss: Optional["ProfitLossData"] = None,
    cash_flow: Optional["CashFlowData"] = None,
    *,
    rules_file: Optional[Path] = None,
    level: str = "basic",
) -> list[RatioResult]:
    """Shortcut: measures, derived measures and ratios in one call."""
    path = rules_file if rules_file is not None else default_rules_file()
    base = statement_measures(balance_sheet, profit_loss, cash_flow)
    return compute_ratios(compute_derived_measures(base, path), path, level)
