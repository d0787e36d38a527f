"""
Module: advance_engines.reconciliation
Responsibility:
    Net the amount advanced against the amount actually spent and decide
    the settlement direction: the employee refunds the company, or the
    company tops up the employee.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic; amounts are summed exactly.
    - ``refund_due_to_company * topup_due_to_employee == 0``.
    - Both dues are non-negative.
    - Only RETIREMENT lines count towards ``total_spent``; REQUEST lines are
      planning estimates.

Usage:
    from advance_engines.reconciliation import reconcile

    result = reconcile(Decimal("1000"), [Decimal("600"), Decimal("580")])
    result.topup_due_to_employee  # Decimal("180")
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from advance_engines.tracer import traced_engine
from advance_kernel.db.types import ZERO, to_money
from advance_modules.advances.models import AdvanceItem, ItemInput, ItemType


@dataclass(frozen=True)
class ReconciliationResult:
    """
    Outcome of netting an advance against its retirement lines.

    Guarantees:
        - At most one of the two dues is nonzero.
        - ``balance == refund_due_to_company - topup_due_to_employee``.
    """

    total_spent: Decimal
    refund_due_to_company: Decimal
    topup_due_to_employee: Decimal

    @property
    def balance(self) -> Decimal:
        """Positive when the employee owes the company, negative when owed."""
        return self.refund_due_to_company - self.topup_due_to_employee

    @property
    def is_balanced(self) -> bool:
        return self.refund_due_to_company == 0 and self.topup_due_to_employee == 0


def _spend_amount(item: AdvanceItem | ItemInput | Decimal | int | str) -> Decimal:
    if isinstance(item, AdvanceItem):
        return item.amount if item.type is ItemType.RETIREMENT else ZERO
    if isinstance(item, ItemInput):
        return item.amount
    return to_money(item)


def total_spent(items: Iterable[AdvanceItem | ItemInput | Decimal | int | str]) -> Decimal:
    """Exact sum of spend amounts; REQUEST-type items contribute nothing."""
    return sum((_spend_amount(item) for item in items), ZERO)


@traced_engine("reconciliation", "1.0", fingerprint_fields=("amount_requested",))
def reconcile(
    amount_requested: Decimal | int | str,
    items: Iterable[AdvanceItem | ItemInput | Decimal | int | str],
) -> ReconciliationResult:
    """
    Compute total spent and the refund / top-up split.

    Args:
        amount_requested: The advanced amount.
        items: Retirement lines, or bare amounts.

    Returns:
        ReconciliationResult with exactly zero or one nonzero due.
    """
    requested = to_money(amount_requested)
    spent = total_spent(items)
    balance = requested - spent

    return ReconciliationResult(
        total_spent=spent,
        refund_due_to_company=balance if balance > 0 else ZERO,
        topup_due_to_employee=-balance if balance < 0 else ZERO,
    )
