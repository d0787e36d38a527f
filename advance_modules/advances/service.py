"""
Cash Advance Lifecycle Service (``advance_modules.advances.service``).

Responsibility
--------------
Orchestrates the advance lifecycle -- creation, submission, the two-step
approval, disbursement, retirement submission and verification, and ad-hoc
payments -- by validating typed inputs, consulting the workflow table, and
delegating pure computation to ``advance_engines`` (policy evaluation,
reconciliation, exposure).

Architecture position
---------------------
**Modules layer** -- ``AdvanceLifecycleService`` is the sole public entry
point for mutating advances.  It owns every status change and every
retirement summary; storage is reached only through an injected
``AdvanceRepository``.

Invariants enforced
-------------------
* Each mutating method runs inside ``repository.transaction(advance_id)``:
  it either fully applies or leaves no trace.
* Every status change is checked against ``ADVANCE_WORKFLOW`` before any
  write is made.
* Every mutating method appends exactly one audit entry whose
  ``before`` / ``after`` are shallow snapshots of the changed fields.
* ``updated_at`` never moves backwards.

Failure modes
-------------
* ``ValidationError`` -- input payload fails boundary validation.
* ``IllegalTransitionError`` -- status change not permitted for the role.
* ``InvalidStateError`` -- status precondition of the operation not met.
* ``AdvanceNotFoundError`` / ``StepNotFoundError`` /
  ``RetirementNotFoundError`` -- referenced entity missing.
* ``OptimisticLockError`` -- the advance changed underneath the operation.

Audit relevance
---------------
Structured log events are emitted at operation start and on completion,
carrying advance ids, statuses, amounts and policy outcomes.  Log context
(``actor_id``, ``advance_id``, ``operation``) is bound for the duration of
each call.

Usage::

    service = AdvanceLifecycleService(repository, clock=clock)
    advance = service.create_advance(employee_id, AdvanceInput(...))
    service.submit_for_approval(advance.id, employee_id, Role.EMPLOYEE)
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from advance_engines.aging import ExposureSummary, summarize_exposure
from advance_engines.policy_evaluator import evaluate, has_blocking_flags
from advance_engines.reconciliation import reconcile
from advance_kernel.domain.clock import Clock, SystemClock
from advance_kernel.domain.workflow import Transition
from advance_kernel.exceptions import (
    IllegalTransitionError,
    InvalidStateError,
    RetirementNotFoundError,
    StepNotFoundError,
)
from advance_kernel.logging_config import LogContext, get_logger
from advance_modules.advances.config import AdvanceConfig
from advance_modules.advances.helpers import (
    validate_advance_input,
    validate_disbursement_input,
    validate_payment_input,
    validate_retirement_input,
)
from advance_modules.advances.models import (
    REQUIRED_APPROVAL_ROLES,
    Advance,
    AdvanceInput,
    AdvanceItem,
    AdvanceStatus,
    ApprovalStatus,
    ApprovalStep,
    AuditEntityType,
    AuditLogEntry,
    DisbursementInput,
    ItemInput,
    ItemType,
    Payment,
    PaymentDirection,
    PaymentInput,
    RetirementInput,
    RetirementStatus,
    RetirementSummary,
    Role,
)
from advance_modules.advances.repository import AdvanceRepository
from advance_modules.advances.workflows import (
    assert_transition,
    available_transitions,
    is_allowed,
)

logger = get_logger("modules.advances.service")

# Source states accepted by submit_retirement in lenient mode
LENIENT_RETIREMENT_SOURCES: tuple[AdvanceStatus, ...] = (
    AdvanceStatus.DISBURSED,
    AdvanceStatus.AWAITING_RETIREMENT,
    AdvanceStatus.UNDER_REVIEW,
)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def snapshot(entity: Any, *fields: str) -> dict[str, Any]:
    """JSON-safe shallow snapshot of ``fields`` on ``entity``."""
    return {name: _plain(getattr(entity, name)) for name in fields}


class AdvanceLifecycleService:
    """
    Lifecycle operations for cash advances.

    Contract:
        Mutating methods return the updated entity (``Advance``,
        ``RetirementSummary`` or ``Payment``) or raise one of the typed
        kernel exceptions; nothing is written on failure.
    Non-goals:
        Authentication.  ``actor_id`` / ``actor_role`` are trusted as given.
    """

    def __init__(
        self,
        repository: AdvanceRepository,
        config: AdvanceConfig | None = None,
        clock: Clock | None = None,
    ):
        self._repository = repository
        self._config = config or AdvanceConfig.with_defaults()
        self._clock = clock or SystemClock()

    @property
    def config(self) -> AdvanceConfig:
        return self._config

    # -- plumbing ------------------------------------------------------------

    @contextmanager
    def _unit_of_work(
        self,
        operation: str,
        advance_id: UUID,
        actor_id: UUID | None,
    ) -> Iterator[None]:
        with LogContext.bind(actor_id=actor_id, advance_id=advance_id, operation=operation):
            with self._repository.transaction(advance_id):
                yield

    def _timestamp(self, advance: Advance | None = None) -> datetime:
        now = self._clock.now()
        if advance is not None and now < advance.updated_at:
            return advance.updated_at
        return now

    def _save(self, previous: Advance, updated: Advance) -> None:
        self._repository.save_advance(updated, expected_updated_at=previous.updated_at)

    def _audit(
        self,
        action: str,
        entity_type: AuditEntityType,
        entity_id: UUID,
        actor_id: UUID | None,
        at: datetime,
        before: dict[str, Any],
        after: dict[str, Any],
        comment: str | None = None,
    ) -> None:
        self._repository.append_audit(AuditLogEntry(
            id=uuid4(),
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            at=at,
            before=before,
            after=after,
            comment=comment,
        ))

    def _transition(
        self,
        advance_id: UUID,
        to_status: AdvanceStatus,
        actor_id: UUID,
        actor_role: Role,
        action: str,
        comment: str | None = None,
    ) -> Advance:
        """Single table-checked status change with its audit entry."""
        advance = self._repository.get_advance(advance_id)
        assert_transition(advance.status, to_status, actor_role)

        updated = replace(advance, status=to_status, updated_at=self._timestamp(advance))
        self._save(advance, updated)
        self._audit(
            action, AuditEntityType.ADVANCE, advance.id, actor_id, updated.updated_at,
            before=snapshot(advance, "status"),
            after=snapshot(updated, "status"),
            comment=comment,
        )
        logger.info("advance_status_changed", extra={
            "action": action,
            "from_status": advance.status.value,
            "to_status": to_status.value,
            "actor_role": actor_role.value,
        })
        return updated

    # -- creation and approval -----------------------------------------------

    def create_advance(
        self,
        employee_id: UUID,
        data: AdvanceInput,
        actor_id: UUID | None = None,
    ) -> Advance:
        """
        Create a DRAFT advance with pending MANAGER and FINANCE steps.

        Raises:
            ValidationError: If ``data`` fails boundary validation.
        """
        validate_advance_input(data, self._config)

        advance_id = uuid4()
        actor_id = actor_id or employee_id
        with self._unit_of_work("create_advance", advance_id, actor_id):
            now = self._timestamp()
            advance = Advance(
                id=advance_id,
                employee_id=employee_id,
                purpose=data.purpose.strip(),
                project=data.project.strip(),
                cost_center_id=data.cost_center_id,
                gl_code_id=data.gl_code_id,
                amount_requested=data.amount_requested,
                currency=data.currency,
                created_at=now,
                updated_at=now,
                status=AdvanceStatus.DRAFT,
                approvals=tuple(ApprovalStep(role=role) for role in REQUIRED_APPROVAL_ROLES),
                expected_start_date=data.expected_start_date,
                expected_end_date=data.expected_end_date,
            )
            logger.info("advance_create_started", extra={
                "employee_id": str(employee_id),
                "amount_requested": str(data.amount_requested),
                "currency": data.currency,
                "request_item_count": len(data.request_items),
            })

            self._repository.save_advance(advance)
            if data.request_items:
                self._repository.replace_items(
                    advance_id,
                    ItemType.REQUEST,
                    [self._new_item(advance_id, ItemType.REQUEST, item) for item in data.request_items],
                )
            self._audit(
                "ADVANCE_CREATED", AuditEntityType.ADVANCE, advance_id, actor_id, now,
                before={},
                after=snapshot(advance, "status", "amount_requested", "currency", "purpose"),
            )

        logger.info("advance_created", extra={
            "advance_id": str(advance_id),
            "status": advance.status.value,
        })
        return advance

    def submit_for_approval(
        self,
        advance_id: UUID,
        actor_id: UUID,
        actor_role: Role = Role.EMPLOYEE,
    ) -> Advance:
        """DRAFT -> PENDING_MANAGER."""
        with self._unit_of_work("submit_for_approval", advance_id, actor_id):
            return self._transition(
                advance_id, AdvanceStatus.PENDING_MANAGER, actor_id, actor_role, "SUBMITTED",
            )

    def record_approval(
        self,
        advance_id: UUID,
        role: Role,
        approve: bool,
        actor_id: UUID,
        comment: str | None = None,
        actor_role: Role | None = None,
    ) -> Advance:
        """
        Decide the ``role`` approval step and derive the next status.

        A rejection by either role moves the advance to REJECTED; a MANAGER
        approval moves it to PENDING_FINANCE; a FINANCE approval to APPROVED.
        ``actor_role`` defaults to ``role`` and is the role checked against
        the workflow table.

        Raises:
            StepNotFoundError: No step for ``role``, or it is already decided.
            IllegalTransitionError: Derived transition not permitted.
        """
        actor_role = actor_role or role
        with self._unit_of_work("record_approval", advance_id, actor_id):
            advance = self._repository.get_advance(advance_id)

            step = advance.step_for(role)
            if step is None:
                raise StepNotFoundError(str(advance_id), role.value)
            if step.is_decided:
                raise StepNotFoundError(str(advance_id), role.value, reason="already decided")

            if not approve:
                next_status = AdvanceStatus.REJECTED
            elif role is Role.MANAGER:
                next_status = AdvanceStatus.PENDING_FINANCE
            else:
                next_status = AdvanceStatus.APPROVED
            assert_transition(advance.status, next_status, actor_role)

            now = self._timestamp(advance)
            decided = replace(
                step,
                status=ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED,
                actor_id=actor_id,
                acted_at=now,
                comment=comment,
            )
            updated = replace(
                advance,
                status=next_status,
                updated_at=now,
                approvals=tuple(decided if s.role is role else s for s in advance.approvals),
            )
            self._save(advance, updated)
            self._audit(
                "APPROVAL_UPDATED", AuditEntityType.ADVANCE, advance_id, actor_id, now,
                before=snapshot(advance, "status"),
                after={**snapshot(updated, "status"), "role": role.value, "approval": decided.status.value},
                comment=comment,
            )

        logger.info("advance_approval_recorded", extra={
            "role": role.value,
            "approve": approve,
            "from_status": advance.status.value,
            "to_status": next_status.value,
        })
        return updated

    # -- disbursement --------------------------------------------------------

    def record_disbursement(
        self,
        advance_id: UUID,
        data: DisbursementInput,
        actor_id: UUID,
        actor_role: Role = Role.FINANCE,
    ) -> Advance:
        """
        APPROVED -> DISBURSED, with an outbound payment.

        Raises:
            InvalidStateError: Advance is not APPROVED.
        """
        validate_disbursement_input(data)
        with self._unit_of_work("record_disbursement", advance_id, actor_id):
            advance = self._repository.get_advance(advance_id)
            if advance.status is not AdvanceStatus.APPROVED:
                raise InvalidStateError(
                    str(advance_id),
                    advance.status.value,
                    (AdvanceStatus.APPROVED.value,),
                    reason="Advance must be approved before disbursement",
                )
            assert_transition(advance.status, AdvanceStatus.DISBURSED, actor_role)

            updated = replace(
                advance,
                status=AdvanceStatus.DISBURSED,
                disbursed_at=data.date,
                disbursement_ref=data.ref,
                updated_at=self._timestamp(advance),
            )
            self._save(advance, updated)
            self._repository.append_payment(Payment(
                id=uuid4(),
                advance_id=advance_id,
                direction=PaymentDirection.OUT,
                method=data.method,
                amount=data.amount,
                ref=data.ref,
                date=data.date,
            ))
            self._audit(
                "DISBURSED", AuditEntityType.ADVANCE, advance_id, actor_id, updated.updated_at,
                before=snapshot(advance, "status", "disbursed_at", "disbursement_ref"),
                after=snapshot(updated, "status", "disbursed_at", "disbursement_ref"),
            )

        logger.info("advance_disbursed", extra={
            "amount": str(data.amount),
            "method": data.method.value,
            "ref": data.ref,
        })
        return updated

    # -- retirement ----------------------------------------------------------

    def request_retirement(
        self,
        advance_id: UUID,
        actor_id: UUID,
        actor_role: Role = Role.FINANCE,
    ) -> Advance:
        """DISBURSED -> AWAITING_RETIREMENT."""
        with self._unit_of_work("request_retirement", advance_id, actor_id):
            return self._transition(
                advance_id, AdvanceStatus.AWAITING_RETIREMENT, actor_id, actor_role,
                "RETIREMENT_REQUESTED",
            )

    def mark_overdue(
        self,
        advance_id: UUID,
        actor_id: UUID,
        actor_role: Role = Role.FINANCE,
    ) -> Advance:
        """DISBURSED -> OVERDUE."""
        with self._unit_of_work("mark_overdue", advance_id, actor_id):
            return self._transition(
                advance_id, AdvanceStatus.OVERDUE, actor_id, actor_role, "MARKED_OVERDUE",
            )

    def _check_retirement_source(self, advance: Advance, actor_role: Role) -> None:
        if self._config.is_strict_retirement:
            assert_transition(advance.status, AdvanceStatus.UNDER_REVIEW, actor_role)
            return

        if advance.status not in LENIENT_RETIREMENT_SOURCES:
            raise InvalidStateError(
                str(advance.id),
                advance.status.value,
                tuple(s.value for s in LENIENT_RETIREMENT_SOURCES),
                reason="Advance not eligible for retirement",
            )
        # Submitter authority comes from the AWAITING_RETIREMENT -> UNDER_REVIEW row
        if not is_allowed(AdvanceStatus.AWAITING_RETIREMENT, AdvanceStatus.UNDER_REVIEW, actor_role):
            raise IllegalTransitionError(
                advance.status.value, AdvanceStatus.UNDER_REVIEW.value, actor_role.value,
            )

    def _new_item(self, advance_id: UUID, item_type: ItemType, data: ItemInput, flags=()) -> AdvanceItem:
        return AdvanceItem(
            id=uuid4(),
            advance_id=advance_id,
            type=item_type,
            category=data.category,
            description=data.description.strip(),
            amount=data.amount,
            currency=data.currency,
            date=data.date,
            attachment_url=data.attachment_url,
            ocr_text=data.ocr_text,
            policy_flags=tuple(flags),
        )

    def submit_retirement(
        self,
        advance_id: UUID,
        data: RetirementInput,
        actor_id: UUID,
        actor_role: Role = Role.EMPLOYEE,
    ) -> RetirementSummary:
        """
        Submit (or resubmit) the spend lines for an advance.

        Flags each line against the active policy, reconciles the lines
        against ``amount_requested``, replaces any earlier RETIREMENT lines
        and the summary, and moves the advance to UNDER_REVIEW.  REQUEST
        lines are left untouched.

        Raises:
            InvalidStateError: Status not eligible (lenient mode).
            IllegalTransitionError: Role or source state not permitted.
            ValidationError: Empty or invalid lines, or a missing receipt
                without an override reason.
        """
        with self._unit_of_work("submit_retirement", advance_id, actor_id):
            advance = self._repository.get_advance(advance_id)
            self._check_retirement_source(advance, actor_role)

            policy = self._repository.get_policy()
            validate_retirement_input(data, policy, self._config)

            logger.info("retirement_submit_started", extra={
                "from_status": advance.status.value,
                "item_count": len(data.items),
                "policy_id": policy.id if policy else None,
                "mode": self._config.retirement_submission_mode,
            })

            items = [
                self._new_item(advance_id, ItemType.RETIREMENT, line, evaluate(line, advance, policy))
                for line in data.items
            ]
            result = reconcile(advance.amount_requested, items)

            now = self._timestamp(advance)
            previous = self._repository.get_retirement(advance_id)
            summary = RetirementSummary(
                id=previous.id if previous is not None else uuid4(),
                advance_id=advance_id,
                submitted_by=actor_id,
                submitted_at=now,
                total_spent=result.total_spent,
                refund_due_to_company=result.refund_due_to_company,
                topup_due_to_employee=result.topup_due_to_employee,
                status=RetirementStatus.SUBMITTED,
                finance_notes=data.notes,
                override_reason=data.override_reason,
            )
            updated = replace(advance, status=AdvanceStatus.UNDER_REVIEW, updated_at=now)

            self._repository.replace_items(advance_id, ItemType.RETIREMENT, items)
            self._repository.save_retirement(summary)
            self._save(advance, updated)
            self._audit(
                "RETIREMENT_SUBMITTED", AuditEntityType.RETIREMENT, advance_id, actor_id, now,
                before={
                    **snapshot(advance, "status"),
                    **({"retirement_status": previous.status.value} if previous else {}),
                },
                after={
                    **snapshot(updated, "status"),
                    **snapshot(summary, "total_spent", "refund_due_to_company", "topup_due_to_employee"),
                    "retirement_status": summary.status.value,
                },
                comment=data.override_reason,
            )

        flagged = [item for item in items if item.policy_flags]
        logger.info("retirement_submitted", extra={
            "total_spent": str(summary.total_spent),
            "refund_due_to_company": str(summary.refund_due_to_company),
            "topup_due_to_employee": str(summary.topup_due_to_employee),
            "flagged_item_count": len(flagged),
            "blocking_flags": any(has_blocking_flags(item.policy_flags) for item in flagged),
        })
        return summary

    def verify_retirement(
        self,
        advance_id: UUID,
        approve: bool,
        actor_id: UUID,
        notes: str | None = None,
        actor_role: Role = Role.FINANCE,
    ) -> RetirementSummary:
        """
        Finance decision on a submitted retirement.

        Approve: summary VERIFIED, advance UNDER_REVIEW -> SETTLED.
        Reject: summary back to DRAFT, advance stays UNDER_REVIEW.

        Raises:
            RetirementNotFoundError: No summary exists.
            InvalidStateError: Advance is not UNDER_REVIEW.
            IllegalTransitionError: ``actor_role`` may not settle the advance,
                whichever decision is made.
        """
        with self._unit_of_work("verify_retirement", advance_id, actor_id):
            summary = self._repository.get_retirement(advance_id)
            if summary is None:
                raise RetirementNotFoundError(str(advance_id))
            advance = self._repository.get_advance(advance_id)
            if advance.status is not AdvanceStatus.UNDER_REVIEW:
                raise InvalidStateError(
                    str(advance_id),
                    advance.status.value,
                    (AdvanceStatus.UNDER_REVIEW.value,),
                    reason="Retirement can only be verified while under review",
                )

            # Both decisions need the authority to settle; rejection just keeps the status
            assert_transition(advance.status, AdvanceStatus.SETTLED, actor_role)
            if approve:
                next_status = AdvanceStatus.SETTLED
                summary_status = RetirementStatus.VERIFIED
            else:
                next_status = AdvanceStatus.UNDER_REVIEW
                summary_status = RetirementStatus.DRAFT

            now = self._timestamp(advance)
            verified = replace(summary, status=summary_status, finance_notes=notes)
            updated = replace(advance, status=next_status, updated_at=now)

            self._repository.save_retirement(verified)
            self._save(advance, updated)
            self._audit(
                "RETIREMENT_VERIFIED", AuditEntityType.RETIREMENT, advance_id, actor_id, now,
                before={**snapshot(advance, "status"), "retirement_status": summary.status.value},
                after={**snapshot(updated, "status"), "retirement_status": verified.status.value},
                comment=notes,
            )

        logger.info("retirement_verified", extra={
            "approve": approve,
            "advance_status": next_status.value,
            "retirement_status": summary_status.value,
        })
        return verified

    def request_changes(
        self,
        advance_id: UUID,
        actor_id: UUID,
        actor_role: Role = Role.FINANCE,
        notes: str | None = None,
    ) -> Advance:
        """
        UNDER_REVIEW -> AWAITING_RETIREMENT; the summary returns to DRAFT.

        Raises:
            RetirementNotFoundError: No summary exists.
        """
        with self._unit_of_work("request_changes", advance_id, actor_id):
            summary = self._repository.get_retirement(advance_id)
            if summary is None:
                raise RetirementNotFoundError(str(advance_id))
            advance = self._repository.get_advance(advance_id)
            assert_transition(advance.status, AdvanceStatus.AWAITING_RETIREMENT, actor_role)

            now = self._timestamp(advance)
            reopened = replace(summary, status=RetirementStatus.DRAFT, finance_notes=notes)
            updated = replace(advance, status=AdvanceStatus.AWAITING_RETIREMENT, updated_at=now)

            self._repository.save_retirement(reopened)
            self._save(advance, updated)
            self._audit(
                "CHANGES_REQUESTED", AuditEntityType.RETIREMENT, advance_id, actor_id, now,
                before={**snapshot(advance, "status"), "retirement_status": summary.status.value},
                after={**snapshot(updated, "status"), "retirement_status": reopened.status.value},
                comment=notes,
            )

        logger.info("retirement_changes_requested", extra={"notes_provided": bool(notes)})
        return updated

    # -- payments ------------------------------------------------------------

    def record_payment(
        self,
        advance_id: UUID,
        data: PaymentInput,
        actor_id: UUID,
    ) -> Payment:
        """
        Append an inbound or outbound payment, whatever the advance status.

        Raises:
            AdvanceNotFoundError: Unknown advance.
        """
        validate_payment_input(data)
        with self._unit_of_work("record_payment", advance_id, actor_id):
            self._repository.get_advance(advance_id)
            payment = Payment(
                id=uuid4(),
                advance_id=advance_id,
                direction=data.direction,
                method=data.method,
                amount=data.amount,
                ref=data.ref,
                date=data.date,
            )
            self._repository.append_payment(payment)
            self._audit(
                "PAYMENT_RECORDED", AuditEntityType.PAYMENT, advance_id, actor_id, self._clock.now(),
                before={},
                after=snapshot(payment, "direction", "method", "amount", "ref", "date"),
            )

        logger.info("advance_payment_recorded", extra={
            "direction": data.direction.value,
            "amount": str(data.amount),
        })
        return payment

    # -- reads ---------------------------------------------------------------

    def get_advance(self, advance_id: UUID) -> Advance:
        return self._repository.get_advance(advance_id)

    def list_advances(
        self,
        status: AdvanceStatus | None = None,
        employee_id: UUID | None = None,
        search: str | None = None,
    ) -> list[Advance]:
        return self._repository.list_advances(status=status, employee_id=employee_id, search=search)

    def list_items(self, advance_id: UUID, type: ItemType | None = None) -> list[AdvanceItem]:
        return self._repository.list_items(advance_id, type)

    def get_retirement(self, advance_id: UUID) -> RetirementSummary | None:
        return self._repository.get_retirement(advance_id)

    def list_payments(self, advance_id: UUID) -> list[Payment]:
        return self._repository.list_payments(advance_id)

    def list_audit_logs(
        self,
        entity_id: UUID | None = None,
        entity_type: AuditEntityType | None = None,
    ) -> list[AuditLogEntry]:
        return self._repository.list_audit(entity_id=entity_id, entity_type=entity_type)

    def available_actions(self, advance_id: UUID, role: Role) -> tuple[Transition, ...]:
        """Workflow rows ``role`` may fire from the advance's current status."""
        advance = self._repository.get_advance(advance_id)
        return available_transitions(advance.status, role)

    def exposure_summary(self, as_of: date | None = None) -> ExposureSummary:
        """Outstanding / overdue exposure across all advances."""
        return summarize_exposure(self._repository.list_advances(), as_of or self._clock.today())
