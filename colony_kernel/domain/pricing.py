"""
Price and amount arithmetic for plots and bookings.

All values are ``Decimal``; client input (int, str, float) is converted
through ``str`` so that 0.1 stays 0.1.  ``total_price`` is always exactly
``area * price_per_sqft``.

Area and price per sqft are held at four decimal places, so their product
always fits the nine-place scale of the amount columns and reads back
unchanged.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from colony_kernel.exceptions import ValidationError

MEASURE_QUANTUM = Decimal("0.0001")


def to_decimal(value: object, field: str) -> Decimal:
    """Convert client input to Decimal, rejecting non-numeric values."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(field, "a number is required")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(field, f"'{value}' is not a number") from None
    if not result.is_finite():
        raise ValidationError(field, "must be a finite number")
    return result


def require_positive(value: object, field: str) -> Decimal:
    amount = to_decimal(value, field)
    if amount <= 0:
        raise ValidationError(field, "must be greater than zero")
    return amount


def require_non_negative(value: object, field: str) -> Decimal:
    amount = to_decimal(value, field)
    if amount < 0:
        raise ValidationError(field, "must not be negative")
    return amount


def require_measure(value: object, field: str) -> Decimal:
    """Positive area or rate, rounded half-up to four decimal places."""
    try:
        amount = to_decimal(value, field).quantize(MEASURE_QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(field, "too many digits") from None
    if amount <= 0:
        raise ValidationError(field, "must be greater than zero")
    return amount


def compute_total_price(area: Decimal, price_per_sqft: Decimal) -> Decimal:
    """total_price = area * price_per_sqft, both mandatory, positive and at four places."""
    return require_measure(area, "area") * require_measure(price_per_sqft, "price_per_sqft")


def remaining_amount(total_amount: Decimal, advance_amount: Decimal) -> Decimal:
    return total_amount - advance_amount
