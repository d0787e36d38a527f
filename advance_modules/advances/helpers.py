"""
Advance Input Validation (``advance_modules.advances.helpers``).

Responsibility
--------------
Boundary validation for the typed input payloads accepted by
``AdvanceLifecycleService``.  Every rule that fails is collected and
reported in a single ``ValidationError`` before any domain logic runs.

Architecture position
---------------------
**Modules layer** -- pure helper functions.  No I/O, no session, no
clock, no repository access.

Invariants enforced
-------------------
* Amounts are ``Decimal`` and strictly positive.
* Required text fields are non-blank.
* A retirement with a line over its receipt threshold and no attachment
  carries an override reason (when the config demands one).

Failure modes
-------------
* Any rule violation -> ``ValidationError`` with one field error per rule.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from advance_engines.policy_evaluator import effective_receipt_threshold
from advance_kernel.db.types import is_currency_code
from advance_kernel.exceptions import ValidationError
from advance_modules.advances.config import AdvanceConfig
from advance_modules.advances.models import (
    AdvanceInput,
    DisbursementInput,
    ItemInput,
    PaymentInput,
    Policy,
    RetirementInput,
)


def _blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def _check_amount(errors: list[dict[str, Any]], field: str, amount: Any) -> None:
    if not isinstance(amount, Decimal) or not amount.is_finite():
        errors.append({"field": field, "message": "Enter a numeric amount."})
    elif amount <= 0:
        errors.append({"field": field, "message": "Amount must be greater than zero."})


def _check_currency(errors: list[dict[str, Any]], field: str, currency: str | None) -> None:
    if not is_currency_code(currency):
        errors.append({"field": field, "message": "Currency must be a three-letter ISO code."})


def _item_errors(item: ItemInput, prefix: str) -> list[dict[str, Any]]:
    errors: list[dict[str, Any]] = []
    if _blank(item.category):
        errors.append({"field": f"{prefix}.category", "message": "Select a category."})
    if _blank(item.description) or len(item.description.strip()) < 2:
        errors.append({"field": f"{prefix}.description", "message": "Add a description."})
    _check_amount(errors, f"{prefix}.amount", item.amount)
    _check_currency(errors, f"{prefix}.currency", item.currency)
    if item.date is None:
        errors.append({"field": f"{prefix}.date", "message": "Provide the spend date."})
    elif isinstance(item.date, datetime) or not isinstance(item.date, date):
        errors.append({"field": f"{prefix}.date", "message": "Spend date must be a calendar date."})
    return errors


def validate_advance_input(data: AdvanceInput, config: AdvanceConfig) -> None:
    """
    Validate an advance request.

    Raises:
        ValidationError: On missing fields, a non-positive or over-limit
            amount, or an end date before the start date.
    """
    errors: list[dict[str, Any]] = []

    if _blank(data.purpose) or len(data.purpose.strip()) < 3:
        errors.append({"field": "purpose", "message": "Provide a short description of the activity."})
    if _blank(data.project) or len(data.project.strip()) < 2:
        errors.append({"field": "project", "message": "Project or initiative is required."})
    if _blank(data.cost_center_id):
        errors.append({"field": "cost_center_id", "message": "Cost center is required."})
    if _blank(data.gl_code_id):
        errors.append({"field": "gl_code_id", "message": "GL code is required."})
    _check_currency(errors, "currency", data.currency)

    _check_amount(errors, "amount_requested", data.amount_requested)
    if (
        config.max_advance_amount is not None
        and isinstance(data.amount_requested, Decimal)
        and data.amount_requested > config.max_advance_amount
    ):
        errors.append({
            "field": "amount_requested",
            "message": (
                f"For amounts above {config.max_advance_amount:,} "
                f"please attach executive approval."
            ),
        })

    if config.require_expected_dates:
        if data.expected_start_date is None:
            errors.append({"field": "expected_start_date", "message": "Expected start date is required."})
        if data.expected_end_date is None:
            errors.append({"field": "expected_end_date", "message": "Expected end date is required."})
    if (
        data.expected_start_date is not None
        and data.expected_end_date is not None
        and data.expected_end_date < data.expected_start_date
    ):
        errors.append({"field": "expected_end_date", "message": "End date cannot precede start date."})

    for index, item in enumerate(data.request_items):
        errors.extend(_item_errors(item, f"request_items[{index}]"))

    if errors:
        raise ValidationError(errors)


def missing_receipt_lines(
    items: tuple[ItemInput, ...],
    policy: Policy | None,
    config: AdvanceConfig,
) -> list[int]:
    """Indexes of lines over their receipt threshold without an attachment."""
    missing: list[int] = []
    for index, item in enumerate(items):
        if item.attachment_url:
            continue
        threshold = (
            effective_receipt_threshold(item.category, policy)
            if policy is not None
            else config.default_receipt_threshold
        )
        if threshold is not None and isinstance(item.amount, Decimal) and item.amount > threshold:
            missing.append(index)
    return missing


def validate_retirement_input(
    data: RetirementInput,
    policy: Policy | None,
    config: AdvanceConfig,
) -> None:
    """
    Validate a retirement submission.

    Raises:
        ValidationError: On an empty item list, an invalid line, or
            missing receipts without an override reason.
    """
    errors: list[dict[str, Any]] = []

    if not data.items:
        errors.append({"field": "items", "message": "Add at least one receipt."})

    for index, item in enumerate(data.items):
        errors.extend(_item_errors(item, f"items[{index}]"))

    if config.require_override_for_missing_receipt and _blank(data.override_reason):
        missing = missing_receipt_lines(data.items, policy, config)
        if missing:
            errors.append({
                "field": "override_reason",
                "message": (
                    "Receipts are required above the policy threshold. "
                    "Provide an override reason to continue."
                ),
                "lines": missing,
            })

    if errors:
        raise ValidationError(errors)


def validate_disbursement_input(data: DisbursementInput) -> None:
    """Raises ValidationError on a non-positive amount or missing reference."""
    errors: list[dict[str, Any]] = []
    _check_amount(errors, "amount", data.amount)
    if _blank(data.ref):
        errors.append({"field": "ref", "message": "Payment reference is required."})
    if data.date is None:
        errors.append({"field": "date", "message": "Disbursement date is required."})
    if errors:
        raise ValidationError(errors)


def validate_payment_input(data: PaymentInput) -> None:
    """Raises ValidationError on a non-positive amount or missing reference."""
    errors: list[dict[str, Any]] = []
    _check_amount(errors, "amount", data.amount)
    if _blank(data.ref):
        errors.append({"field": "ref", "message": "Payment reference is required."})
    if data.date is None:
        errors.append({"field": "date", "message": "Payment date is required."})
    if errors:
        raise ValidationError(errors)
