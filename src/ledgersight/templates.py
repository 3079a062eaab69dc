# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Journal entry templates.

A template describes a recurring journal entry (monthly salary,
depreciation, rent...) as a list of lines whose debit and credit amounts
are formulas over named variables, e.g.::

    [templates.payroll-salary]
    name = "Monthly salary"
    category = "payroll"
    description = "Monthly salary - {month}"

    [[templates.payroll-salary.lines]]
    account_code = "6100"
    account_name = "Salaries expense"
    debit = "{gross_salary}"

    [[templates.payroll-salary.lines]]
    account_code = "2300"
    account_name = "Salaries payable"
    credit = "{net_salary}"

``apply_template(template, values)`` evaluates every formula with the
whitelisted evaluator and returns a JournalEntryDraft. The draft is
balanced when total debits and total credits differ by less than 0.01.

Templates are plain objects loaded from TOML and passed around explicitly.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import tomllib

from .errors import FormulaError
from .formulas import evaluate, placeholders
from .money import ZERO

BALANCE_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class TemplateLine:
    account_code: str
    account_name: str
    description: str = ""
    debit_formula: str = ""
    credit_formula: str = ""


@dataclass(frozen=True)
class JournalTemplate:
    id: str
    name: str
    lines: tuple[TemplateLine, ...]
    category: str = ""
    description: str = ""
    reference: str = ""
    is_active: bool = True

    @property
    def variables(self) -> tuple[str, ...]:
        """Variable names used by the template, in order of first use."""
        seen: list[str] = []
        texts = [self.description]
        for line in self.lines:
            texts.extend((line.debit_formula, line.credit_formula, line.description))
        for text in texts:
            for name in placeholders(text or ""):
                if name not in seen:
                    seen.append(name)
        return tuple(seen)


@dataclass(frozen=True)
class JournalLine:
    account_code: str
    account_name: str
    description: str
    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class TrialBalance:
    total_debits: Decimal
    total_credits: Decimal
    difference: Decimal
    is_balanced: bool


@dataclass(frozen=True)
class JournalEntryDraft:
    template_id: str
    description: str
    reference: str
    date: Optional[date]
    lines: tuple[JournalLine, ...]
    total_debits: Decimal
    total_credits: Decimal
    is_balanced: bool


def default_templates_file() -> Path:
    """Path of the journal templates shipped with the package."""
    return Path(__file__).resolve().parent / "data" / "journal_templates.toml"


def _parse_line(template_id: str, index: int, data: Any) -> TemplateLine:
    if not isinstance(data, Mapping):
        raise ValueError(f"Template {template_id!r}: line {index} must be a table.")
    code = str(data.get("account_code") or "").strip()
    if not code:
        raise ValueError(f"Template {template_id!r}: line {index} has no account_code.")
    return TemplateLine(
        account_code=code,
        account_name=str(data.get("account_name") or ""),
        description=str(data.get("description") or ""),
        debit_formula=str(data.get("debit") or ""),
        credit_formula=str(data.get("credit") or ""),
    )


def load_templates(path: Optional[Path] = None) -> dict[str, JournalTemplate]:
    """
    Load journal templates from a TOML file.

    Each ``[templates.<id>]`` table needs a ``name`` and at least one
    ``[[templates.<id>.lines]]`` entry with an ``account_code``.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the file cannot be parsed or a template is invalid.
    """
    file = Path(path) if path is not None else default_templates_file()
    if not file.is_file():
        raise FileNotFoundError(f"Templates file not found: {file}")
    try:
        data = tomllib.loads(file.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML templates file: {file}") from exc

    section = data.get("templates") or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"[templates] must be a table in {file}")

    templates: dict[str, JournalTemplate] = {}
    for tid, cfg in section.items():
        if not isinstance(cfg, Mapping):
            raise ValueError(f"[templates.{tid}] must be a table.")
        raw_lines = cfg.get("lines") or []
        if not raw_lines:
            raise ValueError(f"Template {tid!r} has no lines.")
        templates[str(tid)] = JournalTemplate(
            id=str(tid),
            name=str(cfg.get("name") or tid),
            lines=tuple(_parse_line(str(tid), i, line) for i, line in enumerate(raw_lines, 1)),
            category=str(cfg.get("category") or ""),
            description=str(cfg.get("description") or ""),
            reference=str(cfg.get("reference") or ""),
            is_active=bool(cfg.get("is_active", True)),
        )
    return templates


def fill_placeholders(text: str, values: Mapping[str, object]) -> str:
    """Replace ``{name}`` with ``values[name]``; unknown names stay as-is."""
    out = text
    for name in placeholders(text):
        if name in values:
            out = out.replace("{" + name + "}", str(values[name]))
    return out


def _amount(formula: str, values: Mapping[str, object], where: str) -> Decimal:
    if not formula.strip():
        return ZERO
    try:
        value = evaluate(formula, values)
    except ArithmeticError as exc:
        raise FormulaError(f"{where}: {formula!r} cannot be evaluated ({exc}).") from exc
    if value < 0:
        raise FormulaError(f"{where}: {formula!r} evaluates to a negative amount.")
    return value


def trial_balance(lines: Iterable[JournalLine]) -> TrialBalance:
    """Total debits and credits of journal lines."""
    items = list(lines)
    debits = sum((line.debit for line in items), ZERO)
    credits = sum((line.credit for line in items), ZERO)
    difference = debits - credits
    return TrialBalance(
        total_debits=debits,
        total_credits=credits,
        difference=difference,
        is_balanced=abs(difference) < BALANCE_TOLERANCE,
    )


def apply_template(
    template: JournalTemplate,
    values: Mapping[str, object],
    *,
    entry_date: Optional[date] = None,
    reference: Optional[str] = None,
) -> JournalEntryDraft:
    """
    Build a journal entry draft from a template and variable values.

    Raises:
        FormulaError: if a formula uses an unknown variable, is not valid
            arithmetic, divides by zero or yields a negative amount.
    """
    lines = []
    for index, tl in enumerate(template.lines, 1):
        where = f"Template {template.id!r} line {index}"
        lines.append(
            JournalLine(
                account_code=tl.account_code,
                account_name=tl.account_name,
                description=fill_placeholders(tl.description, values),
                debit=_amount(tl.debit_formula, values, where),
                credit=_amount(tl.credit_formula, values, where),
            )
        )

    tb = trial_balance(lines)
    return JournalEntryDraft(
        template_id=template.id,
        description=fill_placeholders(template.description, values),
        reference=reference if reference is not None else template.reference,
        date=entry_date,
        lines=tuple(lines),
        total_debits=tb.total_debits,
        total_credits=tb.total_credits,
        is_balanced=tb.is_balanced,
    )
