"""
Cash Advance Configuration Schema.

Defines the structure and sensible defaults for advance settings.
Actual values are loaded from a configuration set at runtime
(see ``advance_config.load_advance_config``).
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from advance_kernel.db.types import is_currency_code, to_money
from advance_kernel.logging_config import get_logger

logger = get_logger("modules.advances.config")

RETIREMENT_MODE_LENIENT = "lenient"
RETIREMENT_MODE_STRICT = "strict"
VALID_RETIREMENT_MODES = {RETIREMENT_MODE_LENIENT, RETIREMENT_MODE_STRICT}

_MONEY_FIELDS = ("max_advance_amount", "default_receipt_threshold")


@dataclass
class AdvanceConfig:
    """
    Configuration schema for the advances module.

    Override at instantiation with company-specific values:

        config = AdvanceConfig(
            max_advance_amount=Decimal("10000"),
            retirement_submission_mode="strict",
        )

    ``retirement_submission_mode``:
        * ``"lenient"`` -- retirement may be submitted while the advance is
          DISBURSED, AWAITING_RETIREMENT or UNDER_REVIEW (resubmission).
        * ``"strict"`` -- only the AWAITING_RETIREMENT -> UNDER_REVIEW
          workflow edge is accepted, gated by role.
    """

    # Requests above this need executive approval outside the system
    max_advance_amount: Decimal | None = Decimal("5000")
    default_currency: str = "USD"
    require_expected_dates: bool = False

    # Receipt threshold used by input validation when no policy is active
    default_receipt_threshold: Decimal = Decimal("25")
    require_override_for_missing_receipt: bool = True

    retirement_submission_mode: str = RETIREMENT_MODE_LENIENT

    def __post_init__(self):
        if self.max_advance_amount is not None and self.max_advance_amount <= 0:
            raise ValueError("max_advance_amount must be positive")

        if self.default_receipt_threshold < 0:
            raise ValueError("default_receipt_threshold cannot be negative")

        if not is_currency_code(self.default_currency):
            raise ValueError(
                f"default_currency must be a three-letter ISO 4217 code, "
                f"got '{self.default_currency}'"
            )

        if self.retirement_submission_mode not in VALID_RETIREMENT_MODES:
            raise ValueError(
                f"retirement_submission_mode must be one of {sorted(VALID_RETIREMENT_MODES)}, "
                f"got '{self.retirement_submission_mode}'"
            )

        logger.info(
            "advance_config_initialized",
            extra={
                "max_advance_amount": str(self.max_advance_amount) if self.max_advance_amount else None,
                "default_currency": self.default_currency,
                "default_receipt_threshold": str(self.default_receipt_threshold),
                "retirement_submission_mode": self.retirement_submission_mode,
            },
        )

    @property
    def is_strict_retirement(self) -> bool:
        return self.retirement_submission_mode == RETIREMENT_MODE_STRICT

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the stock defaults."""
        logger.info("advance_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from a YAML file)."""
        logger.info(
            "advance_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        for name in _MONEY_FIELDS:
            if data.get(name) is not None:
                data[name] = to_money(data[name])
        return cls(**data)
