"""
Pytest fixtures for the cash advance test suite.

Provides:
- Structured logging configuration and log capture
- Deterministic clock
- The seed spending policy
- In-memory and SQLite-backed repositories
- A lifecycle service wired to the in-memory repository
- Builders for request and retirement lines
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID

import pytest

from advance_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from advance_kernel.domain.clock import DeterministicClock
from advance_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from advance_modules.advances.config import AdvanceConfig
from advance_modules.advances.models import (
    AdvanceInput,
    DisbursementInput,
    ItemInput,
    PaymentMethod,
    Policy,
    PolicyCategoryRule,
    RetirementInput,
    Role,
)
from advance_modules.advances.repository import (
    InMemoryAdvanceRepository,
    SqlAlchemyAdvanceRepository,
)
from advance_modules.advances.service import AdvanceLifecycleService


# Fixed actor ids so test modules importing them see the same values
EMPLOYEE_ID = UUID("00000000-0000-4000-8000-000000000001")
MANAGER_ID = UUID("00000000-0000-4000-8000-000000000002")
FINANCE_ID = UUID("00000000-0000-4000-8000-000000000003")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture advance_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.create_advance(...)
            logs = captured_logs()
            assert any(r["message"] == "advance_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("advance_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def seed_policy() -> Policy:
    """The default travel policy: 7-day deadline, 25 receipt threshold."""
    return Policy(
        id="default",
        name="Default Travel Policy",
        retirement_deadline_days=7,
        receipt_required_over_amount=Decimal("25"),
        categories=(
            PolicyCategoryRule("MEALS", per_diem=Decimal("80"), receipt_required_over_amount=Decimal("20")),
            PolicyCategoryRule("TRANSPORT", per_diem=Decimal("150"), receipt_required_over_amount=Decimal("30")),
            PolicyCategoryRule("LODGING", per_diem=Decimal("200"), receipt_required_over_amount=Decimal("50")),
        ),
    )


@pytest.fixture
def make_item():
    """Factory for ``ItemInput`` lines with receipts attached by default."""

    def _make(
        amount="50",
        category="TRANSPORT",
        description="Taxi to client site",
        on=date(2024, 3, 5),
        attachment_url="https://files.example.com/receipt.pdf",
        currency="USD",
    ) -> ItemInput:
        return ItemInput(
            category=category,
            description=description,
            amount=Decimal(amount),
            currency=currency,
            date=on,
            attachment_url=attachment_url,
        )

    return _make


@pytest.fixture
def advance_input():
    """Factory for a valid ``AdvanceInput``."""

    def _make(amount="1000", **overrides) -> AdvanceInput:
        values = dict(
            purpose="Client workshop in Nairobi",
            project="Field Research",
            cost_center_id="CC-100",
            gl_code_id="GL-6100",
            amount_requested=Decimal(amount),
            currency="USD",
            expected_start_date=date(2024, 3, 4),
            expected_end_date=date(2024, 3, 8),
        )
        values.update(overrides)
        return AdvanceInput(**values)

    return _make


# =============================================================================
# Repository and service fixtures
# =============================================================================


@pytest.fixture
def memory_repository(seed_policy):
    return InMemoryAdvanceRepository(policy=seed_policy)


@pytest.fixture
def sqlite_session_factory():
    """SQLite in-memory database with all advance tables."""
    init_engine_from_url("sqlite://")
    create_tables()
    yield get_session_factory()
    drop_tables()
    reset_engine()


@pytest.fixture
def sql_repository(sqlite_session_factory, seed_policy):
    repository = SqlAlchemyAdvanceRepository(sqlite_session_factory)
    repository.save_policy(seed_policy)
    return repository


@pytest.fixture
def make_service(deterministic_clock):
    """Build a service over any repository, optionally with a custom config."""

    def _make(repository, config: AdvanceConfig | None = None) -> AdvanceLifecycleService:
        return AdvanceLifecycleService(repository, config=config, clock=deterministic_clock)

    return _make


@pytest.fixture
def service(make_service, memory_repository):
    return make_service(memory_repository)


@pytest.fixture
def disbursed_advance(service, advance_input):
    """Drive a fresh advance through approval to DISBURSED; returns a builder."""

    def _build(amount="1000", svc=None, **overrides):
        svc = svc or service
        advance = svc.create_advance(EMPLOYEE_ID, advance_input(amount, **overrides))
        svc.submit_for_approval(advance.id, EMPLOYEE_ID, Role.EMPLOYEE)
        svc.record_approval(advance.id, Role.MANAGER, True, MANAGER_ID)
        svc.record_approval(advance.id, Role.FINANCE, True, FINANCE_ID)
        return svc.record_disbursement(
            advance.id,
            DisbursementInput(
                method=PaymentMethod.TRANSFER,
                amount=Decimal(amount),
                ref="TRX-001",
                date=date(2024, 3, 2),
            ),
            FINANCE_ID,
        )

    return _build


@pytest.fixture
def retirement_input(make_item):
    """Factory for a ``RetirementInput`` from a list of amounts."""

    def _make(*amounts, override_reason=None, notes=None) -> RetirementInput:
        return RetirementInput(
            items=tuple(make_item(amount) for amount in amounts),
            notes=notes,
            override_reason=override_reason,
        )

    return _make
