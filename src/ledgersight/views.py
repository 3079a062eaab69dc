# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for SMB LedgerSight.

This module turns built statements, findings and ratios into pandas
DataFrames for display and CSV export. Statement trees are flattened
depth-first, one row per line, with a ``level`` column giving the depth in
the tree (0 for top-level sections).

The views are detail-level hints:

- simplified: level 0 only (section totals),
- regular:    levels 0-1 (sections and their lines),
- detailed:   every level (no filtering).

Amounts are rounded to the currency's minor units for display only; the
underlying statements keep full Decimal precision.
"""

from collections.abc import Iterable, Sequence
from typing import Any, Optional, Union

import pandas as pd

from .balance_sheet import BalanceSheetData
from .cash_flow import CashFlowData
from .integration import StatementsSummary
from .lines import StatementLineItem
from .money import decimal_places
from .profit_loss import ProfitLossData
from .ratios import RatioResult
from .validation import ValidationFinding

VIEW_CHOICES = ("simplified", "regular", "detailed")

_STATEMENT_COLUMNS = [
    "display_order",
    "code",
    "level",
    "name",
    "type",
    "amount",
    "prior",
    "variance_absolute",
    "variance_percent",
    "currency",
]


def _num(amount: Any, currency: str) -> float:
    return round(float(amount), decimal_places(currency))


def lines_to_dataframe(
    lines: Sequence[StatementLineItem],
    *,
    row_type: str = "line",
) -> pd.DataFrame:
    """Flatten statement line trees into one row per line."""
    rows: list[dict[str, object]] = []
    for item in lines:
        for path, node in item.walk():
            ccy = node.currency
            rows.append(
                {
                    "code": node.code,
                    "level": len(path) - 1,
                    "name": node.label,
                    "type": "group" if node.children else row_type,
                    "amount": _num(node.current.amount, ccy),
                    "prior": _num(node.prior.amount, ccy) if node.prior is not None else None,
                    "variance_absolute": (
                        _num(node.variance_absolute.amount, ccy)
                        if node.variance_absolute is not None
                        else None
                    ),
                    "variance_percent": (
                        float(node.variance_percent) if node.variance_percent is not None else None
                    ),
                    "currency": ccy,
                }
            )
    df = pd.DataFrame(rows, columns=[c for c in _STATEMENT_COLUMNS if c != "display_order"])
    df.insert(0, "display_order", (df.index + 1) * 10)
    return df


def statement_to_dataframe(
    statement: Union[BalanceSheetData, CashFlowData, ProfitLossData],
) -> pd.DataFrame:
    """DataFrame of a built statement.

    Cash flow statements also get their supplementary disclosures
    (interest and taxes paid) appended with type 'disclosure'.
    """
    df = lines_to_dataframe(statement.lines)
    if isinstance(statement, CashFlowData) and statement.supplementary:
        extra = lines_to_dataframe(statement.supplementary, row_type="disclosure")
        df = pd.concat([df, extra], ignore_index=True)
        df["display_order"] = (df.index + 1) * 10
    if not statement.has_comparative:
        df = df.drop(columns=["prior", "variance_absolute", "variance_percent"])
    return df


def apply_view_level_filter(out: pd.DataFrame, view: str) -> pd.DataFrame:
    """Return a view-specific slice with renumbered display_order.

    Steps:
      1) filter by view ("simplified" keeps level 0, "regular" levels 0-1,
         anything else keeps every row),
      2) keep the current order and renumber display_order to 10, 20, 30...
    """
    if view == "simplified":
        df = out[out["level"] <= 0].copy()
    elif view == "regular":
        df = out[out["level"] <= 1].copy()
    else:
        df = out.copy()

    if "display_order" in df.columns:
        df = df.sort_values("display_order", ascending=True, kind="stable")
    df = df.reset_index(drop=True)
    df["display_order"] = (df.index + 1) * 10
    return df


def findings_to_dataframe(findings: Iterable[ValidationFinding]) -> pd.DataFrame:
    rows = [
        {
            "code": f.code,
            "severity": f.severity.value,
            "message": f.message,
            "suggestion": f.suggestion or "",
            "standard_reference": f.standard_reference or "",
        }
        for f in findings
    ]
    return pd.DataFrame(
        rows, columns=["code", "severity", "message", "suggestion", "standard_reference"]
    )


def ratios_to_dataframe(
    ratios: Iterable[RatioResult],
    decimals: Optional[int] = 2,
) -> pd.DataFrame:
    """
    Ratios as a DataFrame; undefined values are shown as "N/A".

    ``decimals=None`` keeps raw floats (and None) for further processing.
    """
    rows = []
    for r in ratios:
        if decimals is None:
            value: object = r.value
        else:
            value = "N/A" if r.value is None else round(r.value, decimals)
        rows.append(
            {
                "key": r.key,
                "label": r.label,
                "value": value,
                "unit": r.unit,
                "level": r.level,
                "notes": r.notes,
            }
        )
    return pd.DataFrame(rows, columns=["key", "label", "value", "unit", "level", "notes"])


def summary_to_dataframe(summary: StatementsSummary) -> pd.DataFrame:
    rows = [
        {"metric": key, "value": float(value) if value is not None else None}
        for key, value in summary.key_metrics.items()
    ]
    return pd.DataFrame(rows, columns=["metric", "value"])
