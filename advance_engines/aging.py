"""
Module: advance_engines.aging
Responsibility:
    Summarize outstanding advance exposure for finance monitoring: total
    money out, the overdue share, aging buckets by days since disbursement,
    and totals per cost center and per employee.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``as_of_date`` is always
    passed in; the engine never reads a clock.

Invariants enforced:
    - Decimal-only arithmetic for all monetary amounts.
    - Every outstanding advance lands in exactly one bucket.
    - Bucket totals sum to ``outstanding``.

Failure modes:
    - ValueError on a malformed bucket definition.

Usage:
    from advance_engines.aging import summarize_exposure

    summary = summarize_exposure(advances, as_of_date=date(2024, 3, 1))
    summary.outstanding, summary.aging[0].amount
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from advance_engines.tracer import traced_engine
from advance_kernel.db.types import ZERO
from advance_kernel.logging_config import get_logger
from advance_modules.advances.models import (
    OUTSTANDING_STATUSES,
    Advance,
    AdvanceStatus,
)

logger = get_logger("engines.aging")


@dataclass(frozen=True)
class AgeBucket:
    """
    A contiguous range of days.

    Guarantees:
        - min_days >= 0.
        - max_days >= min_days (when bounded).
    """

    name: str
    min_days: int
    max_days: int | None  # None = unbounded (e.g., 90+)

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        if self.max_days is None:
            return True
        return age_days <= self.max_days


ADVANCE_AGING_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket("0-30", 0, 30),
    AgeBucket("31-60", 31, 60),
    AgeBucket("61-90", 61, 90),
    AgeBucket("90+", 91, None),
)


@dataclass(frozen=True)
class BucketTotal:
    bucket: str
    amount: Decimal
    count: int


@dataclass(frozen=True)
class GroupTotal:
    key: str
    total: Decimal
    count: int


@dataclass(frozen=True)
class ExposureSummary:
    """
    Snapshot of outstanding advance exposure.

    Contract:
        ``outstanding`` covers DISBURSED, AWAITING_RETIREMENT, UNDER_REVIEW
        and OVERDUE advances; ``overdue`` is the OVERDUE subset.
    """

    as_of_date: date
    outstanding: Decimal
    overdue: Decimal
    aging: tuple[BucketTotal, ...]
    by_cost_center: tuple[GroupTotal, ...]
    by_employee: tuple[GroupTotal, ...]

    @property
    def outstanding_count(self) -> int:
        return sum(b.count for b in self.aging)


def age_in_days(advance: Advance, as_of_date: date) -> int:
    """Calendar days since disbursement, falling back to creation date."""
    reference = advance.disbursed_at or advance.created_at.date()
    return (as_of_date - reference).days


def classify(age_days: int, buckets: Sequence[AgeBucket] = ADVANCE_AGING_BUCKETS) -> AgeBucket:
    """
    Bucket for ``age_days``.  Negative ages (disbursement dated after
    ``as_of_date``) fall into the first bucket.

    Raises:
        ValueError: If no bucket contains the age.
    """
    if age_days < 0:
        return buckets[0]
    for bucket in buckets:
        if bucket.contains(age_days):
            return bucket
    raise ValueError(f"No aging bucket contains {age_days} days")


def _group(advances: Sequence[Advance], key) -> tuple[GroupTotal, ...]:
    totals: dict[str, tuple[Decimal, int]] = {}
    for advance in advances:
        k = str(key(advance))
        total, count = totals.get(k, (ZERO, 0))
        totals[k] = (total + advance.amount_requested, count + 1)
    return tuple(
        GroupTotal(key=k, total=total, count=count)
        for k, (total, count) in sorted(totals.items())
    )


@traced_engine("aging", "1.0", fingerprint_fields=("as_of_date",))
def summarize_exposure(
    advances: Iterable[Advance],
    as_of_date: date,
    buckets: Sequence[AgeBucket] = ADVANCE_AGING_BUCKETS,
) -> ExposureSummary:
    """
    Build an exposure snapshot from a set of advances.

    Advances outside the outstanding statuses are ignored.
    """
    outstanding = [a for a in advances if a.status in OUTSTANDING_STATUSES]

    bucket_totals: dict[str, tuple[Decimal, int]] = {b.name: (ZERO, 0) for b in buckets}
    for advance in outstanding:
        bucket = classify(age_in_days(advance, as_of_date), buckets)
        total, count = bucket_totals[bucket.name]
        bucket_totals[bucket.name] = (total + advance.amount_requested, count + 1)

    summary = ExposureSummary(
        as_of_date=as_of_date,
        outstanding=sum((a.amount_requested for a in outstanding), ZERO),
        overdue=sum(
            (a.amount_requested for a in outstanding if a.status is AdvanceStatus.OVERDUE),
            ZERO,
        ),
        aging=tuple(
            BucketTotal(bucket=b.name, amount=bucket_totals[b.name][0], count=bucket_totals[b.name][1])
            for b in buckets
        ),
        by_cost_center=_group(outstanding, lambda a: a.cost_center_id),
        by_employee=_group(outstanding, lambda a: a.employee_id),
    )

    logger.debug("exposure_summarized", extra={
        "as_of_date": as_of_date.isoformat(),
        "outstanding": str(summary.outstanding),
        "overdue": str(summary.overdue),
        "outstanding_count": summary.outstanding_count,
    })
    return summary
