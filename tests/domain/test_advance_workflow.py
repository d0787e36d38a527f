"""
Tests for the cash advance workflow table.

Covers:
- Every (from, to, role) triple against the declared table
- next_statuses enumeration
- assert_transition error payload
- Kernel Workflow structural validation
"""

import itertools

import pytest

from advance_kernel.domain.workflow import Transition, Workflow
from advance_kernel.exceptions import IllegalTransitionError
from advance_modules.advances.models import AdvanceStatus, Role
from advance_modules.advances.workflows import (
    ADVANCE_WORKFLOW,
    action_for,
    assert_transition,
    available_transitions,
    is_allowed,
    is_terminal,
    next_statuses,
)

S = AdvanceStatus

TABLE = {
    (S.DRAFT, S.PENDING_MANAGER): ({Role.EMPLOYEE, Role.ADMIN}, "SUBMIT"),
    (S.PENDING_MANAGER, S.PENDING_FINANCE): ({Role.MANAGER, Role.ADMIN}, "APPROVE"),
    (S.PENDING_MANAGER, S.REJECTED): ({Role.MANAGER, Role.ADMIN}, "REJECT"),
    (S.PENDING_FINANCE, S.APPROVED): ({Role.FINANCE, Role.ADMIN}, "APPROVE"),
    (S.PENDING_FINANCE, S.REJECTED): ({Role.FINANCE, Role.ADMIN}, "REJECT"),
    (S.APPROVED, S.DISBURSED): ({Role.FINANCE, Role.ADMIN}, "DISBURSE"),
    (S.DISBURSED, S.AWAITING_RETIREMENT): ({Role.FINANCE, Role.ADMIN}, "REQUEST_RETIREMENT"),
    (S.AWAITING_RETIREMENT, S.UNDER_REVIEW): ({Role.EMPLOYEE, Role.ADMIN}, "SUBMIT_RETIREMENT"),
    (S.UNDER_REVIEW, S.SETTLED): ({Role.FINANCE, Role.ADMIN}, "SETTLE"),
    (S.UNDER_REVIEW, S.AWAITING_RETIREMENT): ({Role.FINANCE, Role.ADMIN}, "REQUEST_CHANGES"),
    (S.DISBURSED, S.OVERDUE): ({Role.FINANCE, Role.ADMIN}, "MARK_OVERDUE"),
}


class TestTransitionTable:
    """is_allowed over the full cross product."""

    @pytest.mark.parametrize(
        "from_status,to_status,role",
        list(itertools.product(AdvanceStatus, AdvanceStatus, Role)),
    )
    def test_every_triple_matches_table(self, from_status, to_status, role):
        roles, _ = TABLE.get((from_status, to_status), (set(), None))

        assert is_allowed(from_status, to_status, role) == (role in roles)

    def test_table_has_eleven_rows(self):
        assert len(ADVANCE_WORKFLOW.transitions) == 11

    def test_admin_may_fire_every_row(self):
        for from_status, to_status in TABLE:
            assert is_allowed(from_status, to_status, Role.ADMIN)

    @pytest.mark.parametrize("pair,expected", [(k, v[1]) for k, v in TABLE.items()])
    def test_action_labels(self, pair, expected):
        assert action_for(*pair) == expected

    def test_unknown_pair_has_no_action(self):
        assert action_for(S.DRAFT, S.SETTLED) is None


class TestNextStatuses:
    """Role-independent enumeration."""

    @pytest.mark.parametrize("from_status", list(AdvanceStatus))
    def test_matches_table(self, from_status):
        expected = {to for (frm, to) in TABLE if frm is from_status}

        assert set(next_statuses(from_status)) == expected

    def test_terminal_states_have_no_exits(self):
        assert next_statuses(S.SETTLED) == ()
        assert next_statuses(S.REJECTED) == ()
        assert is_terminal(S.SETTLED)
        assert is_terminal(S.REJECTED)
        assert not is_terminal(S.OVERDUE)

    def test_available_transitions_filter_by_role(self):
        actions = {t.action for t in available_transitions(S.UNDER_REVIEW, Role.FINANCE)}

        assert actions == {"SETTLE", "REQUEST_CHANGES"}
        assert available_transitions(S.UNDER_REVIEW, Role.EMPLOYEE) == ()


class TestAssertTransition:
    """assert_transition error payload."""

    def test_allowed_transition_passes(self):
        assert_transition(S.DRAFT, S.PENDING_MANAGER, Role.EMPLOYEE)

    def test_wrong_role_raises_with_payload(self):
        with pytest.raises(IllegalTransitionError) as exc_info:
            assert_transition(S.DRAFT, S.PENDING_MANAGER, Role.FINANCE)

        err = exc_info.value
        assert (err.from_status, err.to_status, err.role) == ("DRAFT", "PENDING_MANAGER", "FINANCE")
        assert err.code == "ILLEGAL_TRANSITION"

    def test_missing_row_raises(self):
        with pytest.raises(IllegalTransitionError):
            assert_transition(S.DRAFT, S.APPROVED, Role.ADMIN)

    def test_denial_is_logged(self, captured_logs):
        with pytest.raises(IllegalTransitionError):
            assert_transition(S.SETTLED, S.DRAFT, Role.ADMIN)

        records = [r for r in captured_logs() if r["message"] == "advance_transition_denied"]
        assert records and records[0]["from_status"] == "SETTLED"


class TestWorkflowValidation:
    """Kernel Workflow structural checks."""

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="w",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", action="GO"),),
            )

    def test_duplicate_pair_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="w",
                description="",
                initial_state="a",
                states=("a", "b"),
                transitions=(
                    Transition("a", "b", action="GO"),
                    Transition("a", "b", action="AGAIN"),
                ),
            )

    def test_terminal_with_exit_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="w",
                description="",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("b", "a", action="BACK"),),
                terminal_states=("b",),
            )
