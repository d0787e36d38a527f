"""
Module: advance_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for the
    modules layer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    MUST NOT import services, repositories, or ORM models.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Dates are passed in as explicit parameters.
    - Decimal-only arithmetic for monetary amounts.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from advance_engines.policy_evaluator import evaluate
    from advance_engines.reconciliation import reconcile
    from advance_engines.aging import summarize_exposure
"""

from advance_engines.aging import (
    ADVANCE_AGING_BUCKETS,
    AgeBucket,
    BucketTotal,
    ExposureSummary,
    GroupTotal,
    summarize_exposure,
)
from advance_engines.policy_evaluator import (
    effective_receipt_threshold,
    evaluate,
    evaluate_items,
    find_category_rule,
    has_blocking_flags,
    requires_receipt,
)
from advance_engines.reconciliation import ReconciliationResult, reconcile, total_spent

__all__ = [
    "ADVANCE_AGING_BUCKETS",
    "AgeBucket",
    "BucketTotal",
    "ExposureSummary",
    "GroupTotal",
    "summarize_exposure",
    "effective_receipt_threshold",
    "evaluate",
    "evaluate_items",
    "find_category_rule",
    "has_blocking_flags",
    "requires_receipt",
    "ReconciliationResult",
    "reconcile",
    "total_spent",
]
