"""
Input validation utilities for the Storefront Order Service.

Money parsing for display-formatted prices, amount checks for the payment
gateway, and email normalization for admin credentials.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from domain.errors import InvalidAmountError, ValidationError

CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places (half-up)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_price(display: str) -> Decimal:
    """
    Parse a display-formatted price ("$1,250.00", "50", "€9.99") into a Decimal.

    Raises:
        ValidationError if nothing numeric remains after stripping symbols
    """
    if display is None:
        raise ValidationError("Price is required", field="price")
    cleaned = "".join(ch for ch in str(display) if ch.isdigit() or ch in ".-")
    try:
        return quantize_money(Decimal(cleaned))
    except InvalidOperation:
        raise ValidationError(f"Unparseable price: {display!r}", field="price")


def validate_minor_amount(amount) -> int:
    """
    Validate a payment amount in minor units (cents).

    Accepts ints and integral floats (JSON numbers), rejects bools, zero,
    negatives and fractional cents.

    Raises:
        InvalidAmountError
    """
    if amount is None or isinstance(amount, bool):
        raise InvalidAmountError(amount)
    if isinstance(amount, float):
        if not amount.is_integer():
            raise InvalidAmountError(amount)
        amount = int(amount)
    if not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)
    return amount


def minor_to_major(amount: int, minor_units: int = 100) -> Decimal:
    """10000 → Decimal('100.00')."""
    return quantize_money(Decimal(amount) / Decimal(minor_units))


def normalize_email(email: str) -> str:
    return email.strip().lower()
