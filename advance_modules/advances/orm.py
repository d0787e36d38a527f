"""
SQLAlchemy ORM persistence models for the Advances module.

Responsibility
--------------
Provide database-backed persistence for advance domain entities: advances
and their approval steps, request / retirement lines, retirement summaries,
payments, the audit trail and the spending policy.  Transient computation
results (``ReconciliationResult``, ``ExposureSummary``) are not persisted.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``SqlAlchemyAdvanceRepository``.
``AdvanceModel`` inherits from ``TrackedBase``; the child tables use
``Base`` directly.

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Enum fields stored as String(50) by value.
* At most one approval step per (advance, role); at most one retirement
  summary per advance.
* Policy flags and audit snapshots are stored as JSON.

Audit relevance
---------------
* ``AdvanceAuditLogModel`` rows are append-only; ``sequence`` numbers the
  entries of one entity and preserves their insertion order when
  timestamps collide.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from advance_kernel.db.base import Base, TrackedBase


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from backends that drop tzinfo."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# AdvanceModel
# ---------------------------------------------------------------------------


class AdvanceModel(TrackedBase):
    """
    A cash advance.

    Maps to the ``Advance`` DTO in ``advance_modules.advances.models``.

    Guarantees:
        - ``amount_requested`` is positive.
        - ``status`` is one of the ``AdvanceStatus`` values.
        - ``approvals`` holds exactly one MANAGER and one FINANCE step.
    """

    __tablename__ = "advances"

    __table_args__ = (
        Index("idx_advance_employee", "employee_id"),
        Index("idx_advance_status", "status"),
        Index("idx_advance_cost_center", "cost_center_id"),
    )

    employee_id: Mapped[UUID]
    purpose: Mapped[str] = mapped_column(String(500), nullable=False)
    project: Mapped[str] = mapped_column(String(200), nullable=False)
    cost_center_id: Mapped[str] = mapped_column(String(100), nullable=False)
    gl_code_id: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_requested: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="DRAFT")
    expected_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expected_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    disbursed_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    disbursement_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)

    approvals: Mapped[list["ApprovalStepModel"]] = relationship(
        "ApprovalStepModel",
        back_populates="advance",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ApprovalStepModel.position",
    )

    def to_dto(self):
        from advance_modules.advances.models import Advance, AdvanceStatus

        return Advance(
            id=self.id,
            employee_id=self.employee_id,
            purpose=self.purpose,
            project=self.project,
            cost_center_id=self.cost_center_id,
            gl_code_id=self.gl_code_id,
            amount_requested=self.amount_requested,
            currency=self.currency,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            status=AdvanceStatus(self.status),
            approvals=tuple(step.to_dto() for step in self.approvals),
            expected_start_date=self.expected_start_date,
            expected_end_date=self.expected_end_date,
            disbursed_at=self.disbursed_at,
            disbursement_ref=self.disbursement_ref,
        )

    @classmethod
    def from_dto(cls, dto) -> "AdvanceModel":
        model = cls(id=dto.id, created_at=dto.created_at)
        model.apply(dto)
        return model

    def apply(self, dto) -> None:
        """Copy mutable state from ``dto`` onto this row, steps included."""
        self.employee_id = dto.employee_id
        self.purpose = dto.purpose
        self.project = dto.project
        self.cost_center_id = dto.cost_center_id
        self.gl_code_id = dto.gl_code_id
        self.amount_requested = dto.amount_requested
        self.currency = dto.currency
        self.status = dto.status.value
        self.updated_at = dto.updated_at
        self.expected_start_date = dto.expected_start_date
        self.expected_end_date = dto.expected_end_date
        self.disbursed_at = dto.disbursed_at
        self.disbursement_ref = dto.disbursement_ref

        existing = {step.role: step for step in self.approvals}
        for position, step in enumerate(dto.approvals):
            row = existing.get(step.role.value)
            if row is None:
                row = ApprovalStepModel(role=step.role.value, position=position)
                self.approvals.append(row)
            row.status = step.status.value
            row.actor_id = step.actor_id
            row.acted_at = step.acted_at
            row.comment = step.comment

    def __repr__(self) -> str:
        return f"<AdvanceModel {self.id} [{self.status}] {self.amount_requested} {self.currency}>"


# ---------------------------------------------------------------------------
# ApprovalStepModel
# ---------------------------------------------------------------------------


class ApprovalStepModel(Base):
    """One role's approval checkpoint.  Maps to ``ApprovalStep``."""

    __tablename__ = "advance_approval_steps"

    __table_args__ = (
        UniqueConstraint("advance_id", "role", name="uq_advance_approval_role"),
    )

    advance_id: Mapped[UUID] = mapped_column(ForeignKey("advances.id"), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="PENDING")
    actor_id: Mapped[UUID | None]
    acted_at: Mapped[datetime | None]
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    advance: Mapped["AdvanceModel"] = relationship("AdvanceModel", back_populates="approvals")

    def to_dto(self):
        from advance_modules.advances.models import ApprovalStatus, ApprovalStep, Role

        return ApprovalStep(
            role=Role(self.role),
            status=ApprovalStatus(self.status),
            actor_id=self.actor_id,
            acted_at=as_utc(self.acted_at),
            comment=self.comment,
        )

    def __repr__(self) -> str:
        return f"<ApprovalStepModel {self.role} [{self.status}]>"


# ---------------------------------------------------------------------------
# AdvanceItemModel
# ---------------------------------------------------------------------------


class AdvanceItemModel(Base):
    """
    A planning or retirement line.

    Maps to the ``AdvanceItem`` DTO.  ``policy_flags`` is a JSON list of
    ``{"code", "message", "severity"}`` objects.
    """

    __tablename__ = "advance_items"

    __table_args__ = (
        Index("idx_advance_item_advance_type", "advance_id", "type"),
    )

    advance_id: Mapped[UUID] = mapped_column(ForeignKey("advances.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    item_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    attachment_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    ocr_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    policy_flags: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    def to_dto(self):
        from advance_modules.advances.models import (
            AdvanceItem,
            FlagCode,
            FlagSeverity,
            ItemType,
            PolicyFlag,
        )

        return AdvanceItem(
            id=self.id,
            advance_id=self.advance_id,
            type=ItemType(self.type),
            category=self.category,
            description=self.description,
            amount=self.amount,
            currency=self.currency,
            date=self.item_date,
            attachment_url=self.attachment_url,
            ocr_text=self.ocr_text,
            policy_flags=tuple(
                PolicyFlag(
                    code=FlagCode(flag["code"]),
                    message=flag["message"],
                    severity=FlagSeverity(flag["severity"]),
                )
                for flag in (self.policy_flags or [])
            ),
        )

    @classmethod
    def from_dto(cls, dto, position: int = 0) -> "AdvanceItemModel":
        return cls(
            id=dto.id,
            advance_id=dto.advance_id,
            type=dto.type.value,
            position=position,
            category=dto.category,
            description=dto.description,
            amount=dto.amount,
            currency=dto.currency,
            item_date=dto.date,
            attachment_url=dto.attachment_url,
            ocr_text=dto.ocr_text,
            policy_flags=[
                {"code": f.code.value, "message": f.message, "severity": f.severity.value}
                for f in dto.policy_flags
            ],
        )

    def __repr__(self) -> str:
        return f"<AdvanceItemModel {self.type} {self.category} {self.amount}>"


# ---------------------------------------------------------------------------
# RetirementSummaryModel
# ---------------------------------------------------------------------------


class RetirementSummaryModel(Base):
    """Reconciliation record for an advance.  Maps to ``RetirementSummary``."""

    __tablename__ = "advance_retirements"

    __table_args__ = (
        UniqueConstraint("advance_id", name="uq_advance_retirement"),
    )

    advance_id: Mapped[UUID] = mapped_column(ForeignKey("advances.id"), nullable=False)
    submitted_by: Mapped[UUID]
    submitted_at: Mapped[datetime]
    total_spent: Mapped[Decimal] = mapped_column(nullable=False)
    refund_due_to_company: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    topup_due_to_employee: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="SUBMITTED")
    finance_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from advance_modules.advances.models import RetirementStatus, RetirementSummary

        return RetirementSummary(
            id=self.id,
            advance_id=self.advance_id,
            submitted_by=self.submitted_by,
            submitted_at=as_utc(self.submitted_at),
            total_spent=self.total_spent,
            refund_due_to_company=self.refund_due_to_company,
            topup_due_to_employee=self.topup_due_to_employee,
            status=RetirementStatus(self.status),
            finance_notes=self.finance_notes,
            override_reason=self.override_reason,
        )

    @classmethod
    def from_dto(cls, dto) -> "RetirementSummaryModel":
        model = cls(id=dto.id)
        model.apply(dto)
        return model

    def apply(self, dto) -> None:
        self.advance_id = dto.advance_id
        self.submitted_by = dto.submitted_by
        self.submitted_at = dto.submitted_at
        self.total_spent = dto.total_spent
        self.refund_due_to_company = dto.refund_due_to_company
        self.topup_due_to_employee = dto.topup_due_to_employee
        self.status = dto.status.value
        self.finance_notes = dto.finance_notes
        self.override_reason = dto.override_reason

    def __repr__(self) -> str:
        return f"<RetirementSummaryModel {self.advance_id} [{self.status}] spent={self.total_spent}>"


# ---------------------------------------------------------------------------
# AdvancePaymentModel
# ---------------------------------------------------------------------------


class AdvancePaymentModel(Base):
    """A disbursement, refund or top-up.  Maps to ``Payment``."""

    __tablename__ = "advance_payments"

    __table_args__ = (
        Index("idx_advance_payment_advance", "advance_id"),
    )

    advance_id: Mapped[UUID] = mapped_column(ForeignKey("advances.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    ref: Mapped[str] = mapped_column(String(100), nullable=False)
    payment_date: Mapped[date] = mapped_column("date", Date, nullable=False)

    def to_dto(self):
        from advance_modules.advances.models import Payment, PaymentDirection, PaymentMethod

        return Payment(
            id=self.id,
            advance_id=self.advance_id,
            direction=PaymentDirection(self.direction),
            method=PaymentMethod(self.method),
            amount=self.amount,
            ref=self.ref,
            date=self.payment_date,
        )

    @classmethod
    def from_dto(cls, dto, sequence: int) -> "AdvancePaymentModel":
        return cls(
            id=dto.id,
            advance_id=dto.advance_id,
            sequence=sequence,
            direction=dto.direction.value,
            method=dto.method.value,
            amount=dto.amount,
            ref=dto.ref,
            payment_date=dto.date,
        )

    def __repr__(self) -> str:
        return f"<AdvancePaymentModel {self.direction} {self.amount} ref={self.ref}>"


# ---------------------------------------------------------------------------
# AdvanceAuditLogModel
# ---------------------------------------------------------------------------


class AdvanceAuditLogModel(Base):
    """Append-only audit entry.  Maps to ``AuditLogEntry``."""

    __tablename__ = "advance_audit_log"

    __table_args__ = (
        Index("idx_advance_audit_entity", "entity_type", "entity_id"),
        UniqueConstraint("entity_id", "sequence", name="uq_advance_audit_entity_sequence"),
    )

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[UUID | None]
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID]
    at: Mapped[datetime]
    before: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    after: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from advance_modules.advances.models import AuditEntityType, AuditLogEntry

        return AuditLogEntry(
            id=self.id,
            actor_id=self.actor_id,
            action=self.action,
            entity_type=AuditEntityType(self.entity_type),
            entity_id=self.entity_id,
            at=as_utc(self.at),
            before=dict(self.before or {}),
            after=dict(self.after or {}),
            comment=self.comment,
        )

    @classmethod
    def from_dto(cls, dto, sequence: int) -> "AdvanceAuditLogModel":
        return cls(
            id=dto.id,
            sequence=sequence,
            actor_id=dto.actor_id,
            action=dto.action,
            entity_type=dto.entity_type.value,
            entity_id=dto.entity_id,
            at=dto.at,
            before=dict(dto.before),
            after=dict(dto.after),
            comment=dto.comment,
        )

    def __repr__(self) -> str:
        return f"<AdvanceAuditLogModel {self.action} {self.entity_type}:{self.entity_id}>"


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class AdvancePolicyModel(Base):
    """
    Spending policy.  Maps to ``Policy``.

    ``code`` carries the policy's business identifier (``Policy.id``); the
    row's UUID primary key is internal.  Only one policy is active.
    """

    __tablename__ = "advance_policies"

    __table_args__ = (
        UniqueConstraint("code", name="uq_advance_policy_code"),
    )

    code: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    retirement_deadline_days: Mapped[int] = mapped_column(Integer, nullable=False)
    receipt_required_over_amount: Mapped[Decimal | None]
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    categories: Mapped[list["AdvancePolicyCategoryModel"]] = relationship(
        "AdvancePolicyCategoryModel",
        back_populates="policy",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="AdvancePolicyCategoryModel.position",
    )

    def to_dto(self):
        from advance_modules.advances.models import Policy

        return Policy(
            id=self.code,
            name=self.name,
            retirement_deadline_days=self.retirement_deadline_days,
            receipt_required_over_amount=self.receipt_required_over_amount,
            categories=tuple(rule.to_dto() for rule in self.categories),
        )

    @classmethod
    def from_dto(cls, dto, is_active: bool = True) -> "AdvancePolicyModel":
        return cls(
            code=dto.id,
            name=dto.name,
            retirement_deadline_days=dto.retirement_deadline_days,
            receipt_required_over_amount=dto.receipt_required_over_amount,
            is_active=is_active,
            categories=[
                AdvancePolicyCategoryModel(
                    category=rule.category,
                    position=position,
                    per_diem=rule.per_diem,
                    receipt_required_over_amount=rule.receipt_required_over_amount,
                )
                for position, rule in enumerate(dto.categories)
            ],
        )

    def __repr__(self) -> str:
        return f"<AdvancePolicyModel {self.code} active={self.is_active}>"


class AdvancePolicyCategoryModel(Base):
    """Per-category policy override.  Maps to ``PolicyCategoryRule``."""

    __tablename__ = "advance_policy_categories"

    __table_args__ = (
        UniqueConstraint("policy_id", "category", name="uq_advance_policy_category"),
    )

    policy_id: Mapped[UUID] = mapped_column(ForeignKey("advance_policies.id"), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    per_diem: Mapped[Decimal | None]
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    receipt_required_over_amount: Mapped[Decimal | None]

    policy: Mapped["AdvancePolicyModel"] = relationship("AdvancePolicyModel", back_populates="categories")

    def to_dto(self):
        from advance_modules.advances.models import PolicyCategoryRule

        return PolicyCategoryRule(
            category=self.category,
            per_diem=self.per_diem,
            receipt_required_over_amount=self.receipt_required_over_amount,
        )
