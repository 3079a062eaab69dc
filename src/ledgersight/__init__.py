# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
SMB LedgerSight
---------------

A financial statement calculation and reconciliation engine for Small and
Medium-sized Businesses (SMBs). It derives a balance sheet, a cash flow
statement (direct and indirect methods) and a profit & loss statement from
heterogeneous ledger records.

Main capabilities:
- normalization of bookkeeping entries, invoice revenue entries, bank and
  multi-currency wallet transactions and manual cash adjustments,
- timezone-aware reporting periods (month, year, fiscal year, quarter,
  custom, all time) with previous-period / previous-year comparison,
- balance sheet, P&L and cash flow builders with Decimal arithmetic,
- IFRS-referenced validation findings and cash reconciliation,
- variance analysis, ratios and journal entry templates,
- multi-period / multi-company batch builds as pandas DataFrames.

Version: 0.1.0

Usage:
    ledgersight --help
"""

__all__ = [
    "balance_sheet",
    "cash_flow",
    "comparison",
    "engine",
    "integration",
    "periods",
    "profit_loss",
    "sources",
    "validation",
    "views",
]

__version__ = "0.1.0"
