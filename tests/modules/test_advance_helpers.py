"""
Tests for boundary validation of advance, retirement and payment inputs.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from advance_kernel.exceptions import ValidationError
from advance_modules.advances.config import AdvanceConfig
from advance_modules.advances.helpers import (
    missing_receipt_lines,
    validate_advance_input,
    validate_disbursement_input,
    validate_payment_input,
    validate_retirement_input,
)
from advance_modules.advances.models import (
    DisbursementInput,
    PaymentDirection,
    PaymentInput,
    PaymentMethod,
    RetirementInput,
)


@pytest.fixture
def config():
    return AdvanceConfig()


def _fields(exc_info) -> list[str]:
    return [err["field"] for err in exc_info.value.field_errors]


class TestAdvanceInput:

    def test_valid_input_passes(self, advance_input, config):
        validate_advance_input(advance_input(), config)

    def test_short_purpose_and_project(self, advance_input, config):
        with pytest.raises(ValidationError) as exc_info:
            validate_advance_input(advance_input(purpose="ab", project="x"), config)

        assert _fields(exc_info) == ["purpose", "project"]

    def test_limit_message_mentions_executive_approval(self, advance_input, config):
        with pytest.raises(ValidationError) as exc_info:
            validate_advance_input(advance_input("7500"), config)

        [error] = exc_info.value.field_errors
        assert "executive approval" in error["message"]
        assert "5,000" in error["message"]

    def test_amount_at_limit_passes(self, advance_input, config):
        validate_advance_input(advance_input("5000"), config)

    def test_dates_required_when_configured(self, advance_input):
        config = AdvanceConfig(require_expected_dates=True)

        with pytest.raises(ValidationError) as exc_info:
            validate_advance_input(
                advance_input(expected_start_date=None, expected_end_date=None), config,
            )

        assert _fields(exc_info) == ["expected_start_date", "expected_end_date"]

    def test_same_day_trip_passes(self, advance_input, config):
        data = advance_input(expected_start_date=date(2024, 3, 4), expected_end_date=date(2024, 3, 4))
        validate_advance_input(data, config)

    def test_request_item_errors_are_indexed(self, advance_input, make_item, config):
        data = advance_input(request_items=(
            make_item("10"),
            make_item("-1", category="", currency="dollars"),
        ))

        with pytest.raises(ValidationError) as exc_info:
            validate_advance_input(data, config)

        assert _fields(exc_info) == [
            "request_items[1].category",
            "request_items[1].amount",
            "request_items[1].currency",
        ]

    def test_error_carries_code(self, advance_input, config):
        with pytest.raises(ValidationError) as exc_info:
            validate_advance_input(advance_input(gl_code_id=""), config)

        assert exc_info.value.code == "VALIDATION_ERROR"


class TestRetirementInput:

    def test_lines_over_threshold_without_attachment(self, make_item, seed_policy, config):
        items = (
            make_item("40", attachment_url=None),                    # TRANSPORT threshold 30
            make_item("20", category="MEALS", attachment_url=None),   # MEALS threshold 20, not over
            make_item("60", category="LODGING"),                     # attached
            make_item("26", category="VISA", attachment_url=None),   # policy default 25
        )

        assert missing_receipt_lines(items, seed_policy, config) == [0, 3]

    def test_config_threshold_used_without_policy(self, make_item, config):
        items = (make_item("26", attachment_url=None), make_item("25", attachment_url=None))

        assert missing_receipt_lines(items, None, config) == [0]

    def test_zero_threshold_requires_every_receipt(self, make_item):
        config = AdvanceConfig(default_receipt_threshold=Decimal("0"))

        assert missing_receipt_lines((make_item("0.01", attachment_url=None),), None, config) == [0]

    def test_missing_receipt_error_lists_lines(self, make_item, seed_policy, config):
        data = RetirementInput(items=(make_item("10"), make_item("45", attachment_url=None)))

        with pytest.raises(ValidationError) as exc_info:
            validate_retirement_input(data, seed_policy, config)

        [error] = exc_info.value.field_errors
        assert error["field"] == "override_reason"
        assert error["lines"] == [1]

    def test_blank_override_does_not_count(self, make_item, seed_policy, config):
        data = RetirementInput(items=(make_item("45", attachment_url=None),), override_reason="   ")

        with pytest.raises(ValidationError):
            validate_retirement_input(data, seed_policy, config)

    def test_override_not_required_when_disabled(self, make_item, seed_policy):
        config = AdvanceConfig(require_override_for_missing_receipt=False)
        data = RetirementInput(items=(make_item("45", attachment_url=None),))

        validate_retirement_input(data, seed_policy, config)

    def test_item_errors_are_indexed(self, make_item, seed_policy, config):
        data = RetirementInput(items=(make_item("5", description="x", on=None),))

        with pytest.raises(ValidationError) as exc_info:
            validate_retirement_input(data, seed_policy, config)

        assert _fields(exc_info) == ["items[0].description", "items[0].date"]

    def test_timestamp_spend_date_rejected(self, make_item, seed_policy, config):
        data = RetirementInput(items=(make_item("5"), make_item("5", on=datetime(2024, 3, 5, 14, 30))))

        with pytest.raises(ValidationError) as exc_info:
            validate_retirement_input(data, seed_policy, config)

        assert _fields(exc_info) == ["items[1].date"]


class TestPaymentInputs:

    def test_disbursement_requires_ref_and_amount(self):
        data = DisbursementInput(PaymentMethod.CASH, Decimal("0"), " ", date(2024, 3, 2))

        with pytest.raises(ValidationError) as exc_info:
            validate_disbursement_input(data)

        assert _fields(exc_info) == ["amount", "ref"]

    def test_payment_requires_date(self):
        data = PaymentInput(PaymentDirection.IN, PaymentMethod.TRANSFER, Decimal("10"), "RF-2", None)

        with pytest.raises(ValidationError) as exc_info:
            validate_payment_input(data)

        assert _fields(exc_info) == ["date"]

    def test_float_amount_rejected(self):
        data = PaymentInput(PaymentDirection.IN, PaymentMethod.TRANSFER, 10.5, "RF-3", date(2024, 3, 2))

        with pytest.raises(ValidationError) as exc_info:
            validate_payment_input(data)

        assert _fields(exc_info) == ["amount"]
