# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Typed exceptions raised by the LedgerSight engine.

Only structurally invalid requests raise: a malformed period, missing
company settings, mixed currencies in a single arithmetic operation, a
missing exchange rate or a formula using unsupported syntax. Financial
inconsistencies (unbalanced balance sheet, unreconciled cash, undefined
ratios) are reported as data on the built statements instead.

Every exception carries a machine-readable ``code`` so callers can react
without parsing messages:

    LedgerSightError
    +-- InvalidPeriod            INVALID_PERIOD
    +-- MissingCompanySettings   MISSING_COMPANY_SETTINGS
    +-- CurrencyMismatch         CURRENCY_MISMATCH
    +-- MissingRate              MISSING_RATE
    +-- FormulaError             FORMULA_ERROR
"""

from typing import Optional


class LedgerSightError(Exception):
    """Base class for all engine errors."""

    code: str = "LEDGERSIGHT_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidPeriod(LedgerSightError, ValueError):
    """A period request is malformed or semantically invalid.

    Attributes:
        field: Name of the offending request field (e.g. 'start', 'compare').
    """

    code = "INVALID_PERIOD"

    def __init__(self, field: str, message: str):
        super().__init__(f"Invalid period ({field}): {message}")
        self.field = field


class MissingCompanySettings(LedgerSightError, ValueError):
    """A record references a company for which no settings were supplied."""

    code = "MISSING_COMPANY_SETTINGS"

    def __init__(self, company_id: str):
        super().__init__(f"No company settings supplied for company {company_id!r}.")
        self.company_id = company_id


class CurrencyMismatch(LedgerSightError, ValueError):
    code = "CURRENCY_MISMATCH"

    def __init__(self, left: str, right: str):
        super().__init__(f"Cannot combine amounts in {left} and {right}.")
        self.left = left
        self.right = right


class MissingRate(LedgerSightError, LookupError):
    """No exchange rate is available for a currency."""

    code = "MISSING_RATE"

    def __init__(self, currency: str, base: Optional[str] = None):
        target = f" against {base}" if base else ""
        super().__init__(f"No exchange rate for {currency}{target}.")
        self.currency = currency


class FormulaError(LedgerSightError, ValueError):
    """A formula uses unsupported syntax or references an unknown name."""

    code = "FORMULA_ERROR"
