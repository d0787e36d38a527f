"""
Retirement Policy Evaluator (``advance_engines.policy_evaluator``).

Responsibility
--------------
Pure validation of retirement lines against the spending policy:

* OVER_PER_DIEM   -- category per-diem cap exceeded (ERROR)
* MISSING_RECEIPT -- amount over the receipt threshold with no attachment (ERROR)
* PAST_DEADLINE   -- spend dated after ``expected_end_date`` plus the
  retirement deadline (WARN)

Architecture position
---------------------
**Engines layer** -- pure functional core.  ZERO I/O, ZERO database,
ZERO clock reads.

Invariants enforced
-------------------
* Flag order is fixed: OVER_PER_DIEM, MISSING_RECEIPT, PAST_DEADLINE.
* No policy means no flags; a missing policy never blocks retirement.
* Flags are returned, never attached; the caller persists them.

Failure modes
-------------
* Returns flags (not exceptions) for business rule violations.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import timedelta
from decimal import Decimal

from advance_engines.tracer import traced_engine
from advance_modules.advances.models import (
    Advance,
    AdvanceItem,
    FlagCode,
    FlagSeverity,
    ItemInput,
    Policy,
    PolicyCategoryRule,
    PolicyFlag,
)

OVER_PER_DIEM_MESSAGE = "Amount exceeds per diem limit"
MISSING_RECEIPT_MESSAGE = "Receipt required above threshold"
PAST_DEADLINE_MESSAGE = "Submitted past retirement deadline"


def find_category_rule(category: str, policy: Policy) -> PolicyCategoryRule | None:
    """The policy rule for ``category``, or None."""
    for rule in policy.categories:
        if rule.category == category:
            return rule
    return None


def effective_receipt_threshold(category: str, policy: Policy) -> Decimal | None:
    """Category override if set, else the policy default (which may be None)."""
    rule = find_category_rule(category, policy)
    if rule is not None and rule.receipt_required_over_amount is not None:
        return rule.receipt_required_over_amount
    return policy.receipt_required_over_amount


def requires_receipt(item: AdvanceItem | ItemInput, policy: Policy | None) -> bool:
    """True when ``item`` is over its receipt threshold and has no attachment."""
    if policy is None:
        return False
    threshold = effective_receipt_threshold(item.category, policy)
    if threshold is None:
        return False
    return item.amount > threshold and not item.attachment_url


@traced_engine("policy_evaluator", "1.0")
def evaluate(
    item: AdvanceItem | ItemInput,
    advance: Advance,
    policy: Policy | None,
) -> list[PolicyFlag]:
    """Evaluate one retirement line.

    Args:
        item: The line to check (persisted item or submitted input).
        advance: The parent advance; only ``expected_end_date`` is read.
        policy: The active policy, or None.

    Returns:
        Flags in OVER_PER_DIEM, MISSING_RECEIPT, PAST_DEADLINE order.
    """
    if policy is None:
        return []

    flags: list[PolicyFlag] = []

    rule = find_category_rule(item.category, policy)
    if rule is not None and rule.per_diem is not None and item.amount > rule.per_diem:
        flags.append(PolicyFlag(
            code=FlagCode.OVER_PER_DIEM,
            message=OVER_PER_DIEM_MESSAGE,
            severity=FlagSeverity.ERROR,
        ))

    if requires_receipt(item, policy):
        flags.append(PolicyFlag(
            code=FlagCode.MISSING_RECEIPT,
            message=MISSING_RECEIPT_MESSAGE,
            severity=FlagSeverity.ERROR,
        ))

    if advance.expected_end_date is not None:
        deadline = advance.expected_end_date + timedelta(days=policy.retirement_deadline_days)
        if item.date > deadline:
            flags.append(PolicyFlag(
                code=FlagCode.PAST_DEADLINE,
                message=PAST_DEADLINE_MESSAGE,
                severity=FlagSeverity.WARN,
            ))

    return flags


def evaluate_items(
    items: Sequence[AdvanceItem | ItemInput],
    advance: Advance,
    policy: Policy | None,
) -> list[list[PolicyFlag]]:
    """``evaluate`` over a sequence; result[i] belongs to items[i]."""
    return [evaluate(item, advance, policy) for item in items]


def has_blocking_flags(flags: Sequence[PolicyFlag]) -> bool:
    """True if any flag has ERROR severity."""
    return any(flag.severity is FlagSeverity.ERROR for flag in flags)
