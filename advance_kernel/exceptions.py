"""
Typed Exception Hierarchy for the Advance Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Business-rule rejections (an employee trying to approve, disbursing an advance
that was never approved) must be caught by TYPE, not by parsing messages:

    try:
        service.record_disbursement(advance_id, data, actor_id=actor_id)
    except InvalidStateError as e:
        api_response(code=e.code, status=e.current_status)
    except NotFoundError as e:
        api_response(code=e.code, status=404)

Every exception:
  1. Has a ``code`` class attribute (machine-readable, API-safe).
  2. Carries structured attributes (not just a message string).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    AdvanceKernelError (base)
    |
    +-- ValidationError
    |
    +-- WorkflowError
    |   +-- IllegalTransitionError
    |   +-- InvalidStateError
    |
    +-- NotFoundError
    |   +-- AdvanceNotFoundError
    |   +-- StepNotFoundError
    |   +-- RetirementNotFoundError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | When Raised
-------------|--------------------------|---------------------------------------
Validation   | VALIDATION_ERROR         | Input payload fails structural rules
-------------|--------------------------|---------------------------------------
Workflow     | ILLEGAL_TRANSITION       | (from, to, role) not in the table
             | INVALID_STATE            | Operation precondition on status unmet
-------------|--------------------------|---------------------------------------
Not found    | ADVANCE_NOT_FOUND        | Advance id doesn't exist
             | STEP_NOT_FOUND           | Approval step absent or already decided
             | RETIREMENT_NOT_FOUND     | No retirement summary for the advance
-------------|--------------------------|---------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT | Concurrent modification detected

None of these are retried: they are deterministic given the same input and
current state.
"""

from __future__ import annotations

from typing import Any


class AdvanceKernelError(Exception):
    """
    Base exception for all advance kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "ADVANCE_KERNEL_ERROR"


# Validation


class ValidationError(AdvanceKernelError):
    """
    Input payload failed structural rules.

    ``field_errors`` is a list of ``{"field": ..., "message": ...}`` dicts,
    one per failing rule, in the order the rules were checked.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, field_errors: list[dict[str, Any]]):
        self.field_errors = field_errors
        summary = "; ".join(
            f"{err['field']}: {err['message']}" for err in field_errors
        )
        super().__init__(f"Validation failed: {summary}")

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        """Build an error carrying exactly one field error."""
        return cls([{"field": field, "message": message}])


# Workflow


class WorkflowError(AdvanceKernelError):
    """Base exception for status-related rejections."""

    code: str = "WORKFLOW_ERROR"


class IllegalTransitionError(WorkflowError):
    """Requested status change is not permitted for the actor's role."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, from_status: str, to_status: str, role: str):
        self.from_status = from_status
        self.to_status = to_status
        self.role = role
        super().__init__(
            f"Transition from {from_status} to {to_status} "
            f"is not allowed for role {role}"
        )


class InvalidStateError(WorkflowError):
    """Operation preconditions on the current status are not met."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_id: str,
        current_status: str,
        expected: tuple[str, ...],
        reason: str | None = None,
    ):
        self.entity_id = entity_id
        self.current_status = current_status
        self.expected = expected
        self.reason = reason
        message = (
            f"{entity_id} is {current_status}; "
            f"expected one of {', '.join(expected)}"
        )
        if reason:
            message = f"{reason} ({message})"
        super().__init__(message)


# Not found


class NotFoundError(AdvanceKernelError):
    """Base exception for missing referenced entities."""

    code: str = "NOT_FOUND"


class AdvanceNotFoundError(NotFoundError):
    """Advance with the given id does not exist."""

    code: str = "ADVANCE_NOT_FOUND"

    def __init__(self, advance_id: str):
        self.advance_id = advance_id
        super().__init__(f"Advance not found: {advance_id}")


class StepNotFoundError(NotFoundError):
    """No undecided approval step exists for the role."""

    code: str = "STEP_NOT_FOUND"

    def __init__(self, advance_id: str, role: str, reason: str = "absent"):
        self.advance_id = advance_id
        self.role = role
        self.reason = reason
        super().__init__(
            f"Approval step for {role} on advance {advance_id} not found ({reason})"
        )


class RetirementNotFoundError(NotFoundError):
    """No retirement summary exists for the advance."""

    code: str = "RETIREMENT_NOT_FOUND"

    def __init__(self, advance_id: str):
        self.advance_id = advance_id
        super().__init__(f"Retirement not found for advance: {advance_id}")


# Concurrency


class ConcurrencyError(AdvanceKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Advance was modified by another writer since it was read."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, advance_id: str, expected_updated_at: str, actual_updated_at: str):
        self.advance_id = advance_id
        self.expected_updated_at = expected_updated_at
        self.actual_updated_at = actual_updated_at
        super().__init__(
            f"Concurrent modification of advance {advance_id}: "
            f"expected updated_at {expected_updated_at}, found {actual_updated_at}"
        )
