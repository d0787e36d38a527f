"""Tests for the engine / session helpers and the declarative base types."""

from decimal import Decimal
from uuid import UUID

import pytest
from sqlalchemy import inspect, select

from advance_kernel.db.engine import (
    get_engine,
    get_session_factory,
    reset_engine,
    session_scope,
)
from advance_modules.advances.orm import AdvancePolicyModel


def _policy_row(code: str) -> AdvancePolicyModel:
    return AdvancePolicyModel(
        code=code,
        name=code.title(),
        retirement_deadline_days=5,
        receipt_required_over_amount=Decimal("12.345678901"),
        is_active=False,
    )


class TestEngineLifecycle:

    def test_uninitialized_engine_raises(self):
        reset_engine()

        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_create_tables_registers_module_tables(self, sqlite_session_factory):
        tables = set(inspect(get_engine()).get_table_names())

        assert {
            "advances",
            "advance_approval_steps",
            "advance_items",
            "advance_retirements",
            "advance_payments",
            "advance_audit_log",
            "advance_policies",
            "advance_policy_categories",
        } <= tables


class TestSessionScope:

    def test_commits_on_success(self, sqlite_session_factory):
        with session_scope() as session:
            session.add(_policy_row("travel"))

        with session_scope() as session:
            row = session.scalars(select(AdvancePolicyModel)).one()

        assert isinstance(row.id, UUID)
        assert row.receipt_required_over_amount == Decimal("12.345678901")

    def test_rolls_back_on_error(self, sqlite_session_factory):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(_policy_row("travel"))
                session.flush()
                raise RuntimeError("abort")

        with session_scope() as session:
            assert session.scalars(select(AdvancePolicyModel)).all() == []
