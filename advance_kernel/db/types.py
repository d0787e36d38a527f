"""
Money and currency value helpers.

Amounts are ``Decimal`` end to end: ORM columns map ``Decimal`` to
``Numeric(38, 9)`` (see ``advance_kernel.db.base``), engines sum with
``ZERO`` as the start value, and configuration values pass through
``to_money`` so a YAML float never becomes a binary-fraction Decimal.
"""

import re
from decimal import Decimal, InvalidOperation

ZERO = Decimal("0")

_CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


def to_money(value: Decimal | int | str | float) -> Decimal:
    """
    Coerce a configured amount to ``Decimal``.

    Floats go through their shortest ``repr``, so ``60.5`` becomes
    ``Decimal("60.5")``.

    Raises:
        ValueError: If the value is a bool or not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        return Decimal(repr(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


def is_currency_code(currency: str | None) -> bool:
    """Three uppercase letters, the shape of an ISO 4217 code."""
    return bool(currency) and bool(_CURRENCY_PATTERN.match(currency))
