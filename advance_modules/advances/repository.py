"""
Advance Persistence Port and Adapters (``advance_modules.advances.repository``).

Responsibility
--------------
Define the storage contract the lifecycle service depends on
(``AdvanceRepository``) and ship two adapters:

* ``InMemoryAdvanceRepository`` -- process-local dictionaries, a per-advance
  lock, and writes staged until the transaction commits.
* ``SqlAlchemyAdvanceRepository`` -- one ``Session`` transaction per unit of
  work with ``SELECT ... FOR UPDATE`` on the advance row.

Architecture position
---------------------
**Modules layer** -- the only code in the package that touches storage.
Services receive a repository by injection; engines never see one.

Invariants enforced
-------------------
* Single writer per advance: ``transaction(advance_id)`` serializes units of
  work on the same advance.
* All-or-nothing: writes made inside a transaction are discarded when it
  exits with an exception.
* ``save_advance(advance, expected_updated_at=...)`` is a compare-and-swap on
  ``updated_at``.
* Payments and audit entries are append-only.  The entries of one advance
  come back in insertion order; an unfiltered audit listing from the SQL
  adapter is ordered by timestamp, then advance, then insertion.

Failure modes
-------------
* ``AdvanceNotFoundError`` from ``get_advance`` for an unknown id.
* ``OptimisticLockError`` when the stored ``updated_at`` differs from the
  caller's expectation.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from advance_kernel.exceptions import AdvanceNotFoundError, OptimisticLockError
from advance_kernel.logging_config import get_logger
from advance_modules.advances.models import (
    Advance,
    AdvanceItem,
    AdvanceStatus,
    AuditEntityType,
    AuditLogEntry,
    ItemType,
    Payment,
    Policy,
    RetirementSummary,
)
from advance_modules.advances.orm import (
    AdvanceAuditLogModel,
    AdvanceItemModel,
    AdvanceModel,
    AdvancePaymentModel,
    AdvancePolicyModel,
    RetirementSummaryModel,
    as_utc,
)

logger = get_logger("modules.advances.repository")


@runtime_checkable
class AdvanceRepository(Protocol):
    """
    Storage contract for the advance lifecycle.

    Mutating calls made inside ``transaction(advance_id)`` commit together or
    not at all.  Calls made outside a transaction commit immediately.
    """

    def transaction(self, advance_id: UUID): ...

    def get_advance(self, advance_id: UUID) -> Advance: ...

    def save_advance(self, advance: Advance, expected_updated_at: datetime | None = None) -> None: ...

    def list_advances(
        self,
        status: AdvanceStatus | None = None,
        employee_id: UUID | None = None,
        search: str | None = None,
    ) -> list[Advance]: ...

    def list_items(self, advance_id: UUID, type: ItemType | None = None) -> list[AdvanceItem]: ...

    def replace_items(self, advance_id: UUID, type: ItemType, items: Sequence[AdvanceItem]) -> None: ...

    def get_retirement(self, advance_id: UUID) -> RetirementSummary | None: ...

    def save_retirement(self, summary: RetirementSummary) -> None: ...

    def append_payment(self, payment: Payment) -> None: ...

    def list_payments(self, advance_id: UUID) -> list[Payment]: ...

    def append_audit(self, entry: AuditLogEntry) -> None: ...

    def list_audit(
        self,
        entity_id: UUID | None = None,
        entity_type: AuditEntityType | None = None,
    ) -> list[AuditLogEntry]: ...

    def get_policy(self) -> Policy | None: ...


def _matches_search(advance: Advance, search: str) -> bool:
    needle = search.strip().lower()
    return any(
        needle in value.lower()
        for value in (advance.purpose, advance.project, advance.cost_center_id, advance.gl_code_id)
    )


# ---------------------------------------------------------------------------
# In-memory adapter
# ---------------------------------------------------------------------------


@dataclass
class _AdvanceLock:
    """Per-advance lock shared by the transactions currently using it."""

    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0


@dataclass
class _StagedWrites:
    """Writes buffered by one in-memory transaction."""

    advance_id: UUID
    advances: dict[UUID, Advance] = field(default_factory=dict)
    items: dict[tuple[UUID, ItemType], list[AdvanceItem]] = field(default_factory=dict)
    retirements: dict[UUID, RetirementSummary] = field(default_factory=dict)
    payments: list[Payment] = field(default_factory=list)
    audit: list[AuditLogEntry] = field(default_factory=list)


class InMemoryAdvanceRepository:
    """
    Dictionary-backed repository.

    Each ``transaction`` takes the advance's re-entrant lock and buffers every
    write in a per-thread ``_StagedWrites``; reads inside the transaction see
    the buffered values.  Commit applies the buffer under a single state lock.
    A nested ``transaction`` on the same thread joins the outer one.
    """

    def __init__(self, policy: Policy | None = None):
        self._advances: dict[UUID, Advance] = {}
        self._items: dict[tuple[UUID, ItemType], list[AdvanceItem]] = {}
        self._retirements: dict[UUID, RetirementSummary] = {}
        self._payments: list[Payment] = []
        self._audit: list[AuditLogEntry] = []
        self._policy = policy

        self._state_lock = threading.Lock()
        self._advance_locks: dict[UUID, _AdvanceLock] = {}
        self._local = threading.local()

    # -- transaction ---------------------------------------------------------

    def _staged(self) -> _StagedWrites | None:
        return getattr(self._local, "staged", None)

    @contextmanager
    def _locked(self, advance_id: UUID) -> Iterator[None]:
        """Hold the advance's lock; the entry is dropped once no one uses it."""
        with self._state_lock:
            entry = self._advance_locks.setdefault(advance_id, _AdvanceLock())
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._state_lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._advance_locks[advance_id]

    @contextmanager
    def transaction(self, advance_id: UUID) -> Iterator[None]:
        if self._staged() is not None:
            yield
            return

        with self._locked(advance_id):
            staged = _StagedWrites(advance_id=advance_id)
            self._local.staged = staged
            try:
                yield
            except Exception:
                logger.warning(
                    "advance_transaction_rolled_back",
                    extra={"advance_id": str(advance_id)},
                )
                raise
            else:
                self._apply(staged)
            finally:
                self._local.staged = None

    def _apply(self, staged: _StagedWrites) -> None:
        with self._state_lock:
            self._advances.update(staged.advances)
            self._items.update(staged.items)
            self._retirements.update(staged.retirements)
            self._payments.extend(staged.payments)
            self._audit.extend(staged.audit)
        logger.debug(
            "advance_transaction_committed",
            extra={
                "advance_id": str(staged.advance_id),
                "advances": len(staged.advances),
                "payments": len(staged.payments),
                "audit_entries": len(staged.audit),
            },
        )

    # -- advances ------------------------------------------------------------

    def _find_advance(self, advance_id: UUID) -> Advance | None:
        staged = self._staged()
        if staged is not None and advance_id in staged.advances:
            return staged.advances[advance_id]
        return self._advances.get(advance_id)

    def get_advance(self, advance_id: UUID) -> Advance:
        advance = self._find_advance(advance_id)
        if advance is None:
            raise AdvanceNotFoundError(str(advance_id))
        return advance

    def save_advance(self, advance: Advance, expected_updated_at: datetime | None = None) -> None:
        staged = self._staged()
        if staged is None:
            with self.transaction(advance.id):
                self.save_advance(advance, expected_updated_at)
            return

        current = self._find_advance(advance.id)
        if (
            expected_updated_at is not None
            and current is not None
            and current.updated_at != expected_updated_at
        ):
            raise OptimisticLockError(
                str(advance.id),
                expected_updated_at.isoformat(),
                current.updated_at.isoformat(),
            )
        staged.advances[advance.id] = advance

    def list_advances(
        self,
        status: AdvanceStatus | None = None,
        employee_id: UUID | None = None,
        search: str | None = None,
    ) -> list[Advance]:
        with self._state_lock:
            merged = dict(self._advances)
        staged = self._staged()
        if staged is not None:
            merged.update(staged.advances)

        result = [
            a for a in merged.values()
            if (status is None or a.status is status)
            and (employee_id is None or a.employee_id == employee_id)
            and (not search or _matches_search(a, search))
        ]
        result.sort(key=lambda a: (a.created_at, str(a.id)), reverse=True)
        return result

    # -- items ---------------------------------------------------------------

    def list_items(self, advance_id: UUID, type: ItemType | None = None) -> list[AdvanceItem]:
        types = (type,) if type is not None else tuple(ItemType)
        staged = self._staged()
        result: list[AdvanceItem] = []
        for item_type in types:
            key = (advance_id, item_type)
            if staged is not None and key in staged.items:
                result.extend(staged.items[key])
            else:
                result.extend(self._items.get(key, ()))
        return result

    def replace_items(self, advance_id: UUID, type: ItemType, items: Sequence[AdvanceItem]) -> None:
        staged = self._staged()
        if staged is None:
            with self.transaction(advance_id):
                self.replace_items(advance_id, type, items)
            return
        staged.items[(advance_id, type)] = list(items)

    # -- retirement ----------------------------------------------------------

    def get_retirement(self, advance_id: UUID) -> RetirementSummary | None:
        staged = self._staged()
        if staged is not None and advance_id in staged.retirements:
            return staged.retirements[advance_id]
        return self._retirements.get(advance_id)

    def save_retirement(self, summary: RetirementSummary) -> None:
        staged = self._staged()
        if staged is None:
            with self.transaction(summary.advance_id):
                self.save_retirement(summary)
            return
        staged.retirements[summary.advance_id] = summary

    # -- payments ------------------------------------------------------------

    def append_payment(self, payment: Payment) -> None:
        staged = self._staged()
        if staged is None:
            with self.transaction(payment.advance_id):
                self.append_payment(payment)
            return
        staged.payments.append(payment)

    def list_payments(self, advance_id: UUID) -> list[Payment]:
        payments = list(self._payments)
        staged = self._staged()
        if staged is not None:
            payments.extend(staged.payments)
        return [p for p in payments if p.advance_id == advance_id]

    # -- audit ---------------------------------------------------------------

    def append_audit(self, entry: AuditLogEntry) -> None:
        staged = self._staged()
        if staged is None:
            with self.transaction(entry.entity_id):
                self.append_audit(entry)
            return
        staged.audit.append(entry)

    def list_audit(
        self,
        entity_id: UUID | None = None,
        entity_type: AuditEntityType | None = None,
    ) -> list[AuditLogEntry]:
        entries = list(self._audit)
        staged = self._staged()
        if staged is not None:
            entries.extend(staged.audit)
        return [
            e for e in entries
            if (entity_id is None or e.entity_id == entity_id)
            and (entity_type is None or e.entity_type is entity_type)
        ]

    # -- policy --------------------------------------------------------------

    def get_policy(self) -> Policy | None:
        return self._policy

    def save_policy(self, policy: Policy) -> None:
        """Make ``policy`` the active policy."""
        self._policy = policy
        logger.info("advance_policy_saved", extra={"policy_id": policy.id})


# ---------------------------------------------------------------------------
# SQLAlchemy adapter
# ---------------------------------------------------------------------------


class SqlAlchemyAdvanceRepository:
    """
    Relational repository over the ``advance_modules.advances.orm`` tables.

    ``transaction`` opens a session, locks the advance row with
    ``SELECT ... FOR UPDATE`` (ignored by SQLite), and commits on clean exit.
    Calls outside a transaction use a short-lived session of their own.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self._local = threading.local()

    def _current(self) -> Session | None:
        return getattr(self._local, "session", None)

    @contextmanager
    def transaction(self, advance_id: UUID) -> Iterator[None]:
        if self._current() is not None:
            yield
            return

        session = self._session_factory()
        self._local.session = session
        try:
            session.execute(
                select(AdvanceModel.id)
                .where(AdvanceModel.id == advance_id)
                .with_for_update()
            )
            yield
            session.commit()
        except Exception:
            session.rollback()
            logger.warning(
                "advance_transaction_rolled_back",
                extra={"advance_id": str(advance_id)},
            )
            raise
        finally:
            self._local.session = None
            session.close()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        current = self._current()
        if current is not None:
            yield current
            return
        with self._session_factory() as session, session.begin():
            yield session

    # -- advances ------------------------------------------------------------

    def get_advance(self, advance_id: UUID) -> Advance:
        with self._session() as session:
            model = session.get(AdvanceModel, advance_id)
            if model is None:
                raise AdvanceNotFoundError(str(advance_id))
            return model.to_dto()

    def save_advance(self, advance: Advance, expected_updated_at: datetime | None = None) -> None:
        with self._session() as session:
            model = session.get(AdvanceModel, advance.id)
            if model is None:
                session.add(AdvanceModel.from_dto(advance))
            else:
                actual = as_utc(model.updated_at)
                if expected_updated_at is not None and actual != expected_updated_at:
                    raise OptimisticLockError(
                        str(advance.id),
                        expected_updated_at.isoformat(),
                        actual.isoformat(),
                    )
                model.apply(advance)
            session.flush()

    def list_advances(
        self,
        status: AdvanceStatus | None = None,
        employee_id: UUID | None = None,
        search: str | None = None,
    ) -> list[Advance]:
        stmt = select(AdvanceModel)
        if status is not None:
            stmt = stmt.where(AdvanceModel.status == status.value)
        if employee_id is not None:
            stmt = stmt.where(AdvanceModel.employee_id == employee_id)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(
                AdvanceModel.purpose.ilike(pattern),
                AdvanceModel.project.ilike(pattern),
                AdvanceModel.cost_center_id.ilike(pattern),
                AdvanceModel.gl_code_id.ilike(pattern),
            ))
        stmt = stmt.order_by(AdvanceModel.created_at.desc(), AdvanceModel.id.desc())
        with self._session() as session:
            return [model.to_dto() for model in session.scalars(stmt)]

    # -- items ---------------------------------------------------------------

    def list_items(self, advance_id: UUID, type: ItemType | None = None) -> list[AdvanceItem]:
        stmt = select(AdvanceItemModel).where(AdvanceItemModel.advance_id == advance_id)
        if type is not None:
            stmt = stmt.where(AdvanceItemModel.type == type.value)
        stmt = stmt.order_by(AdvanceItemModel.type, AdvanceItemModel.position)
        with self._session() as session:
            return [model.to_dto() for model in session.scalars(stmt)]

    def replace_items(self, advance_id: UUID, type: ItemType, items: Sequence[AdvanceItem]) -> None:
        with self._session() as session:
            session.execute(
                delete(AdvanceItemModel)
                .where(AdvanceItemModel.advance_id == advance_id)
                .where(AdvanceItemModel.type == type.value)
            )
            session.add_all(
                AdvanceItemModel.from_dto(item, position=position)
                for position, item in enumerate(items)
            )
            session.flush()

    # -- retirement ----------------------------------------------------------

    def get_retirement(self, advance_id: UUID) -> RetirementSummary | None:
        with self._session() as session:
            model = session.scalars(
                select(RetirementSummaryModel)
                .where(RetirementSummaryModel.advance_id == advance_id)
            ).one_or_none()
            return model.to_dto() if model is not None else None

    def save_retirement(self, summary: RetirementSummary) -> None:
        with self._session() as session:
            model = session.scalars(
                select(RetirementSummaryModel)
                .where(RetirementSummaryModel.advance_id == summary.advance_id)
            ).one_or_none()
            if model is None:
                session.add(RetirementSummaryModel.from_dto(summary))
            else:
                model.apply(summary)
            session.flush()

    # -- payments ------------------------------------------------------------

    def append_payment(self, payment: Payment) -> None:
        with self._session() as session:
            count = session.scalar(
                select(func.count())
                .select_from(AdvancePaymentModel)
                .where(AdvancePaymentModel.advance_id == payment.advance_id)
            )
            session.add(AdvancePaymentModel.from_dto(payment, sequence=(count or 0) + 1))
            session.flush()

    def list_payments(self, advance_id: UUID) -> list[Payment]:
        stmt = (
            select(AdvancePaymentModel)
            .where(AdvancePaymentModel.advance_id == advance_id)
            .order_by(AdvancePaymentModel.sequence)
        )
        with self._session() as session:
            return [model.to_dto() for model in session.scalars(stmt)]

    # -- audit ---------------------------------------------------------------

    def append_audit(self, entry: AuditLogEntry) -> None:
        with self._session() as session:
            # Numbered per entity; the advance row lock serializes writers of one entity
            last = session.scalar(
                select(func.max(AdvanceAuditLogModel.sequence))
                .where(AdvanceAuditLogModel.entity_id == entry.entity_id)
            )
            session.add(AdvanceAuditLogModel.from_dto(entry, sequence=(last or 0) + 1))
            session.flush()

    def list_audit(
        self,
        entity_id: UUID | None = None,
        entity_type: AuditEntityType | None = None,
    ) -> list[AuditLogEntry]:
        stmt = select(AdvanceAuditLogModel)
        if entity_id is not None:
            stmt = stmt.where(AdvanceAuditLogModel.entity_id == entity_id)
        if entity_type is not None:
            stmt = stmt.where(AdvanceAuditLogModel.entity_type == entity_type.value)
        if entity_id is not None:
            stmt = stmt.order_by(AdvanceAuditLogModel.sequence)
        else:
            stmt = stmt.order_by(
                AdvanceAuditLogModel.at,
                AdvanceAuditLogModel.entity_id,
                AdvanceAuditLogModel.sequence,
            )
        with self._session() as session:
            return [model.to_dto() for model in session.scalars(stmt)]

    # -- policy --------------------------------------------------------------

    def get_policy(self) -> Policy | None:
        stmt = (
            select(AdvancePolicyModel)
            .where(AdvancePolicyModel.is_active.is_(True))
            .order_by(AdvancePolicyModel.code)
            .limit(1)
        )
        with self._session() as session:
            model = session.scalars(stmt).first()
            return model.to_dto() if model is not None else None

    def save_policy(self, policy: Policy) -> None:
        """Insert or replace ``policy`` and make it the only active policy."""
        with self._session() as session:
            for model in session.scalars(select(AdvancePolicyModel)).all():
                if model.code == policy.id:
                    session.delete(model)
                else:
                    model.is_active = False
            session.flush()
            session.add(AdvancePolicyModel.from_dto(policy, is_active=True))
            session.flush()
        logger.info("advance_policy_saved", extra={"policy_id": policy.id})
