"""Cash Advance Workflow.

Role-gated state machine for advance processing.  ``ADVANCE_WORKFLOW`` is the
single source of truth for which (from, to, role) triples are legal; the
predicates below are the only way the rest of the package consults it.
"""

from __future__ import annotations

from advance_kernel.domain.workflow import Transition, Workflow
from advance_kernel.exceptions import IllegalTransitionError
from advance_kernel.logging_config import get_logger
from advance_modules.advances.models import AdvanceStatus, Role

logger = get_logger("modules.advances.workflows")


def _roles(*roles: Role) -> frozenset[str]:
    return frozenset(role.value for role in roles)


_EMPLOYEE = _roles(Role.EMPLOYEE, Role.ADMIN)
_MANAGER = _roles(Role.MANAGER, Role.ADMIN)
_FINANCE = _roles(Role.FINANCE, Role.ADMIN)

S = AdvanceStatus

ADVANCE_WORKFLOW = Workflow(
    name="cash_advance",
    description="Cash advance lifecycle",
    initial_state=S.DRAFT.value,
    states=tuple(status.value for status in AdvanceStatus),
    transitions=(
        Transition(S.DRAFT.value, S.PENDING_MANAGER.value, action="SUBMIT", allowed_roles=_EMPLOYEE),
        Transition(S.PENDING_MANAGER.value, S.PENDING_FINANCE.value, action="APPROVE", allowed_roles=_MANAGER),
        Transition(S.PENDING_MANAGER.value, S.REJECTED.value, action="REJECT", allowed_roles=_MANAGER),
        Transition(S.PENDING_FINANCE.value, S.APPROVED.value, action="APPROVE", allowed_roles=_FINANCE),
        Transition(S.PENDING_FINANCE.value, S.REJECTED.value, action="REJECT", allowed_roles=_FINANCE),
        Transition(S.APPROVED.value, S.DISBURSED.value, action="DISBURSE", allowed_roles=_FINANCE),
        Transition(S.DISBURSED.value, S.AWAITING_RETIREMENT.value, action="REQUEST_RETIREMENT", allowed_roles=_FINANCE),
        Transition(S.AWAITING_RETIREMENT.value, S.UNDER_REVIEW.value, action="SUBMIT_RETIREMENT", allowed_roles=_EMPLOYEE),
        Transition(S.UNDER_REVIEW.value, S.SETTLED.value, action="SETTLE", allowed_roles=_FINANCE),
        Transition(S.UNDER_REVIEW.value, S.AWAITING_RETIREMENT.value, action="REQUEST_CHANGES", allowed_roles=_FINANCE),
        Transition(S.DISBURSED.value, S.OVERDUE.value, action="MARK_OVERDUE", allowed_roles=_FINANCE),
    ),
    terminal_states=(S.SETTLED.value, S.REJECTED.value),
)

logger.info(
    "advance_workflow_registered",
    extra={
        "workflow_name": ADVANCE_WORKFLOW.name,
        "state_count": len(ADVANCE_WORKFLOW.states),
        "transition_count": len(ADVANCE_WORKFLOW.transitions),
        "initial_state": ADVANCE_WORKFLOW.initial_state,
    },
)


def is_allowed(from_status: AdvanceStatus, to_status: AdvanceStatus, role: Role) -> bool:
    """True iff (from, to) is a table row and ``role`` is among its allowed roles."""
    transition = ADVANCE_WORKFLOW.find(from_status.value, to_status.value)
    return transition is not None and transition.permits(role.value)


def assert_transition(from_status: AdvanceStatus, to_status: AdvanceStatus, role: Role) -> None:
    """Raise ``IllegalTransitionError`` unless ``is_allowed`` holds."""
    if not is_allowed(from_status, to_status, role):
        logger.warning(
            "advance_transition_denied",
            extra={
                "from_status": from_status.value,
                "to_status": to_status.value,
                "role": role.value,
            },
        )
        raise IllegalTransitionError(from_status.value, to_status.value, role.value)


def next_statuses(from_status: AdvanceStatus) -> tuple[AdvanceStatus, ...]:
    """Every destination reachable from ``from_status`` for some role, in table order."""
    return tuple(
        AdvanceStatus(t.to_state)
        for t in ADVANCE_WORKFLOW.transitions_from(from_status.value)
    )


def available_transitions(from_status: AdvanceStatus, role: Role) -> tuple[Transition, ...]:
    """Rows leaving ``from_status`` that ``role`` may fire."""
    return tuple(
        t for t in ADVANCE_WORKFLOW.transitions_from(from_status.value)
        if t.permits(role.value)
    )


def action_for(from_status: AdvanceStatus, to_status: AdvanceStatus) -> str | None:
    """Action label of the (from, to) row, or None when no such row exists."""
    transition = ADVANCE_WORKFLOW.find(from_status.value, to_status.value)
    return transition.action if transition else None


def is_terminal(status: AdvanceStatus) -> bool:
    return status.value in ADVANCE_WORKFLOW.terminal_states
