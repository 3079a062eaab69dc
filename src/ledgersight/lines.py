# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Statement line trees.

Every statement is a list of StatementLineItem trees. Leaves hold amounts,
parents hold subtotals. ``group()`` always builds a parent whose current
amount is the sum of its children; ``sum_mismatches()`` lets validation
verify that invariant on any tree, including trees that went through a
comparison merge.
"""

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

from .money import Money, money_sum


@dataclass(frozen=True)
class StatementLineItem:
    """One statement line, possibly with nested sub-lines.

    Attributes:
        label: Display label (also the merge key in comparisons).
        current: Amount for the current period.
        prior: Amount for the comparison period, if any.
        variance_absolute: current - prior, if a comparison was made.
        variance_percent: (current - prior) / |prior| * 100, None when the
            prior amount is zero or no comparison was made.
        children: Sub-lines; when present, current == sum(children.current).
        code: Stable identifier of the line (e.g. 'CFO_CUST').
        standard_reference: IFRS/IAS paragraph describing the line.
    """

    label: str
    current: Money
    prior: Optional[Money] = None
    variance_absolute: Optional[Money] = None
    variance_percent: Optional[Decimal] = None
    children: tuple["StatementLineItem", ...] = ()
    code: str = ""
    standard_reference: Optional[str] = None

    @property
    def currency(self) -> str:
        return self.current.currency

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def walk(self, prefix: tuple[str, ...] = ()) -> Iterator[tuple[tuple[str, ...], "StatementLineItem"]]:
        """Yield ``(label_path, item)`` for this item and all descendants."""
        path = prefix + (self.label,)
        yield path, self
        for child in self.children:
            yield from child.walk(path)


def leaf(
    label: str,
    amount: Decimal,
    currency: str,
    code: str = "",
    standard_reference: Optional[str] = None,
) -> StatementLineItem:
    return StatementLineItem(
        label=label,
        current=Money(amount, currency),
        code=code,
        standard_reference=standard_reference,
    )


def group(
    label: str,
    children: Iterable[StatementLineItem],
    currency: str,
    code: str = "",
    standard_reference: Optional[str] = None,
) -> StatementLineItem:
    """Build a subtotal line whose amount is the sum of ``children``."""
    kids = tuple(children)
    return StatementLineItem(
        label=label,
        current=money_sum((c.current for c in kids), currency),
        children=kids,
        code=code,
        standard_reference=standard_reference,
    )


def find(lines: Sequence[StatementLineItem], code: str) -> Optional[StatementLineItem]:
    """Depth-first lookup of a line by code."""
    for item in lines:
        for _, node in item.walk():
            if node.code == code:
                return node
    return None


def amount_of(lines: Sequence[StatementLineItem], code: str) -> Decimal:
    """Current amount of the line with ``code`` (zero when absent)."""
    node = find(lines, code)
    return node.current.amount if node is not None else Decimal("0")


def sum_mismatches(
    lines: Sequence[StatementLineItem],
) -> list[tuple[tuple[str, ...], Decimal, Decimal]]:
    """Return ``(path, parent_amount, children_sum)`` for broken subtotals."""
    broken = []
    for item in lines:
        for path, node in item.walk():
            if node.is_leaf:
                continue
            total = sum((c.current.amount for c in node.children), Decimal("0"))
            if total != node.current.amount:
                broken.append((path, node.current.amount, total))
    return broken


def without_comparison(item: StatementLineItem) -> StatementLineItem:
    """Strip prior/variance data from a tree (used before re-comparing)."""
    return replace(
        item,
        prior=None,
        variance_absolute=None,
        variance_percent=None,
        children=tuple(without_comparison(c) for c in item.children),
    )
