"""
Cash Advances Module (``advance_modules.advances``).

Responsibility
--------------
The cash-advance lifecycle: requests, the MANAGER then FINANCE approval
chain, disbursement, retirement with itemized receipts, verification and
settlement payments.

Architecture position
---------------------
**Modules layer** -- domain models, the workflow table, module config,
input validation, persistence adapters and ``AdvanceLifecycleService``.
Pure computation is delegated to ``advance_engines``.

Only the dependency-free parts are re-exported here; import the service
and repositories from their own modules::

    from advance_modules.advances.service import AdvanceLifecycleService
    from advance_modules.advances.repository import InMemoryAdvanceRepository
"""

from advance_modules.advances.config import AdvanceConfig
from advance_modules.advances.models import (
    Advance,
    AdvanceInput,
    AdvanceItem,
    AdvanceStatus,
    ApprovalStatus,
    ApprovalStep,
    AuditEntityType,
    AuditLogEntry,
    DisbursementInput,
    FlagCode,
    FlagSeverity,
    ItemInput,
    ItemType,
    Payment,
    PaymentDirection,
    PaymentInput,
    PaymentMethod,
    Policy,
    PolicyCategoryRule,
    PolicyFlag,
    RetirementInput,
    RetirementStatus,
    RetirementSummary,
    Role,
)
from advance_modules.advances.workflows import ADVANCE_WORKFLOW

__all__ = [
    "Advance",
    "AdvanceInput",
    "AdvanceItem",
    "AdvanceStatus",
    "ApprovalStatus",
    "ApprovalStep",
    "AuditEntityType",
    "AuditLogEntry",
    "DisbursementInput",
    "FlagCode",
    "FlagSeverity",
    "ItemInput",
    "ItemType",
    "Payment",
    "PaymentDirection",
    "PaymentInput",
    "PaymentMethod",
    "Policy",
    "PolicyCategoryRule",
    "PolicyFlag",
    "RetirementInput",
    "RetirementStatus",
    "RetirementSummary",
    "Role",
    "ADVANCE_WORKFLOW",
    "AdvanceConfig",
]
