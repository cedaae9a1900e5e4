from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from betwise.errors import ValidationError

CENT = Decimal("0.01")
# Largest value a Numeric(12, 2) money column holds
MAX_AMOUNT = Decimal("9999999999.99")


def to_money(value, field: str = "amount", maximum=None) -> Decimal:
    """Parse a client or config value into KES with cent precision.

    Values above ``maximum`` (capped at what the money columns can store) are
    rejected here, before anything is sent to a gateway or written.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", meta={"field": field})
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            raise ValidationError(f"{field} must be a number", meta={"field": field})
        amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", meta={"field": field})

    limit = MAX_AMOUNT
    if maximum is not None:
        limit = min(limit, Decimal(str(maximum)))
    if abs(amount) > limit:
        raise ValidationError(f"{field} must not exceed {limit:,.2f}", meta={"field": field, "maximum": float(limit)})
    return amount
