"""
Cash Advance Domain Models.

The nouns of the advance lifecycle: advances, approval steps, planning and
retirement lines, retirement summaries, payments, audit entries and the
spending policy.  Entities are frozen; services derive new versions with
``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from advance_kernel.logging_config import get_logger

logger = get_logger("modules.advances.models")


class Role(Enum):
    """Actor roles."""
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    FINANCE = "FINANCE"
    ADMIN = "ADMIN"


class AdvanceStatus(Enum):
    """Advance lifecycle states."""
    DRAFT = "DRAFT"
    PENDING_MANAGER = "PENDING_MANAGER"
    PENDING_FINANCE = "PENDING_FINANCE"
    APPROVED = "APPROVED"
    DISBURSED = "DISBURSED"
    AWAITING_RETIREMENT = "AWAITING_RETIREMENT"
    UNDER_REVIEW = "UNDER_REVIEW"
    SETTLED = "SETTLED"
    REJECTED = "REJECTED"
    OVERDUE = "OVERDUE"


# Advances still holding company money
OUTSTANDING_STATUSES: frozenset[AdvanceStatus] = frozenset({
    AdvanceStatus.DISBURSED,
    AdvanceStatus.AWAITING_RETIREMENT,
    AdvanceStatus.UNDER_REVIEW,
    AdvanceStatus.OVERDUE,
})


class ApprovalStatus(Enum):
    """Outcome of a single approval step."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ItemType(Enum):
    """Planning estimate or actual spend."""
    REQUEST = "REQUEST"
    RETIREMENT = "RETIREMENT"


class FlagCode(Enum):
    MISSING_RECEIPT = "MISSING_RECEIPT"
    OVER_PER_DIEM = "OVER_PER_DIEM"
    PAST_DEADLINE = "PAST_DEADLINE"
    CUSTOM = "CUSTOM"


class FlagSeverity(Enum):
    WARN = "WARN"
    ERROR = "ERROR"


class RetirementStatus(Enum):
    """Retirement summary lifecycle states."""
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    VERIFIED = "VERIFIED"
    SETTLED = "SETTLED"


class PaymentDirection(Enum):
    OUT = "OUT"  # company -> employee
    IN = "IN"  # employee -> company


class PaymentMethod(Enum):
    CASH = "CASH"
    TRANSFER = "TRANSFER"


class AuditEntityType(Enum):
    ADVANCE = "ADVANCE"
    RETIREMENT = "RETIREMENT"
    POLICY = "POLICY"
    PAYMENT = "PAYMENT"


# -----------------------------------------------------------------------------
# Policy
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyCategoryRule:
    """Per-category overrides of the spending policy."""
    category: str
    per_diem: Decimal | None = None
    receipt_required_over_amount: Decimal | None = None

    def __post_init__(self):
        if not self.category or not self.category.strip():
            raise ValueError("category cannot be empty")
        if self.per_diem is not None and self.per_diem < 0:
            raise ValueError("per_diem cannot be negative")
        if (self.receipt_required_over_amount is not None
                and self.receipt_required_over_amount < 0):
            raise ValueError("receipt_required_over_amount cannot be negative")


@dataclass(frozen=True)
class Policy:
    """Spending rules applied to retirement lines."""
    retirement_deadline_days: int
    receipt_required_over_amount: Decimal | None = None
    categories: tuple[PolicyCategoryRule, ...] = ()
    id: str = "default"
    name: str = "Default Policy"

    def __post_init__(self):
        if self.retirement_deadline_days < 0:
            raise ValueError("retirement_deadline_days cannot be negative")
        if (self.receipt_required_over_amount is not None
                and self.receipt_required_over_amount < 0):
            raise ValueError("receipt_required_over_amount cannot be negative")
        names = [rule.category for rule in self.categories]
        if len(names) != len(set(names)):
            raise ValueError(f"duplicate category rules in policy {self.id}")


@dataclass(frozen=True)
class PolicyFlag:
    """Policy evaluation output attached to a retirement line."""
    code: FlagCode
    message: str
    severity: FlagSeverity


# -----------------------------------------------------------------------------
# Advance and its parts
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalStep:
    """One role's approval checkpoint on an advance."""
    role: Role
    status: ApprovalStatus = ApprovalStatus.PENDING
    actor_id: UUID | None = None
    acted_at: datetime | None = None
    comment: str | None = None

    @property
    def is_decided(self) -> bool:
        return self.status is not ApprovalStatus.PENDING


# Exactly one step per role, created with the advance
REQUIRED_APPROVAL_ROLES: tuple[Role, ...] = (Role.MANAGER, Role.FINANCE)


@dataclass(frozen=True)
class Advance:
    """A cash advance requested by an employee."""
    id: UUID
    employee_id: UUID
    purpose: str
    project: str
    cost_center_id: str
    gl_code_id: str
    amount_requested: Decimal
    currency: str
    created_at: datetime
    updated_at: datetime
    status: AdvanceStatus = AdvanceStatus.DRAFT
    approvals: tuple[ApprovalStep, ...] = ()
    expected_start_date: date | None = None
    expected_end_date: date | None = None
    disbursed_at: date | None = None
    disbursement_ref: str | None = None

    def __post_init__(self):
        if self.amount_requested <= 0:
            raise ValueError("amount_requested must be positive")
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot precede created_at")

    def step_for(self, role: Role) -> ApprovalStep | None:
        for step in self.approvals:
            if step.role is role:
                return step
        return None


@dataclass(frozen=True)
class AdvanceItem:
    """A planning (REQUEST) or actual spend (RETIREMENT) line."""
    id: UUID
    advance_id: UUID
    type: ItemType
    category: str
    description: str
    amount: Decimal
    currency: str
    date: date
    attachment_url: str | None = None
    ocr_text: str | None = None
    policy_flags: tuple[PolicyFlag, ...] = ()


@dataclass(frozen=True)
class RetirementSummary:
    """Reconciliation record for one advance's retirement cycle."""
    id: UUID
    advance_id: UUID
    submitted_by: UUID
    submitted_at: datetime
    total_spent: Decimal
    refund_due_to_company: Decimal
    topup_due_to_employee: Decimal
    status: RetirementStatus = RetirementStatus.SUBMITTED
    finance_notes: str | None = None
    override_reason: str | None = None

    def __post_init__(self):
        if self.refund_due_to_company < 0 or self.topup_due_to_employee < 0:
            raise ValueError("refund and top-up amounts cannot be negative")
        if self.refund_due_to_company * self.topup_due_to_employee != 0:
            raise ValueError("refund and top-up cannot both be nonzero")


@dataclass(frozen=True)
class Payment:
    """A cash movement between the company and the employee."""
    id: UUID
    advance_id: UUID
    direction: PaymentDirection
    method: PaymentMethod
    amount: Decimal
    ref: str
    date: date


@dataclass(frozen=True)
class AuditLogEntry:
    """Append-only record of a mutating operation."""
    id: UUID
    actor_id: UUID | None
    action: str
    entity_type: AuditEntityType
    entity_id: UUID
    at: datetime
    before: dict[str, Any] = field(default_factory=dict)
    after: dict[str, Any] = field(default_factory=dict)
    comment: str | None = None


# -----------------------------------------------------------------------------
# Input payloads
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ItemInput:
    """One line of an advance request or retirement submission."""
    category: str
    description: str
    amount: Decimal
    currency: str
    date: date
    attachment_url: str | None = None
    ocr_text: str | None = None


@dataclass(frozen=True)
class AdvanceInput:
    purpose: str
    project: str
    cost_center_id: str
    gl_code_id: str
    amount_requested: Decimal
    currency: str = "USD"
    expected_start_date: date | None = None
    expected_end_date: date | None = None
    request_items: tuple[ItemInput, ...] = ()


@dataclass(frozen=True)
class RetirementInput:
    items: tuple[ItemInput, ...]
    notes: str | None = None
    override_reason: str | None = None


@dataclass(frozen=True)
class DisbursementInput:
    method: PaymentMethod
    amount: Decimal
    ref: str
    date: date


@dataclass(frozen=True)
class PaymentInput:
    direction: PaymentDirection
    method: PaymentMethod
    amount: Decimal
    ref: str
    date: date
