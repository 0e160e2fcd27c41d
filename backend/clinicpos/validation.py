from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Union

from clinicpos.errors import ValidationError
from clinicpos.time_utils import parse_iso_date


# Maximum money amount: 9,999,999,999.99 (Numeric(12, 2))
MAX_MONEY = Decimal("9999999999.99")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class Ok:
    value: Any = None


@dataclass(frozen=True)
class Err:
    field: str
    constraint: str


Result = Union[Ok, Err]


def unwrap(result: Result):
    """Return the Ok value or raise ValidationError for an Err."""
    if isinstance(result, Err):
        raise ValidationError(result.field, result.constraint)
    return result.value


def coerce_money(field: str, value: Any) -> Result:
    """Parse a money value into a Decimal; floats go through str() to avoid binary noise."""
    if value is None or isinstance(value, bool):
        return Err(field, "must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Err(field, "must be a number")
    if not amount.is_finite():
        return Err(field, "must be a finite number")
    if abs(amount) > MAX_MONEY:
        return Err(field, f"must not exceed {MAX_MONEY}")
    if amount != amount.quantize(CENT):
        return Err(field, "must have at most 2 decimal places")
    return Ok(amount)


def non_negative_money(field: str, value: Any) -> Result:
    result = coerce_money(field, value)
    if isinstance(result, Err):
        return result
    if result.value < 0:
        return Err(field, "must be greater than or equal to 0")
    return result


def positive_money(field: str, value: Any) -> Result:
    result = coerce_money(field, value)
    if isinstance(result, Err):
        return result
    if result.value <= 0:
        return Err(field, "must be greater than 0")
    return result


def coerce_int(field: str, value: Any, minimum: int | None = None) -> Result:
    # Reject bools, floats and scientific notation; only plain integers are quantities
    if isinstance(value, bool):
        return Err(field, "must be an integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        number = int(value.strip())
    else:
        return Err(field, "must be an integer")
    if minimum is not None and number < minimum:
        return Err(field, f"must be at least {minimum}")
    return Ok(number)


def coerce_date(field: str, value: Any) -> Result:
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        return Err(field, "must be an ISO-8601 date")
    if parsed is None:
        return Err(field, "is required")
    return Ok(parsed)


def future_date(field: str, value: Any, today: date) -> Result:
    result = coerce_date(field, value)
    if isinstance(result, Err):
        return result
    if result.value <= today:
        return Err(field, "must be a date after today")
    return result


def percentage(field: str, value: Any) -> Result:
    """Discount percentages live in (0, 100]."""
    result = coerce_money(field, value)
    if isinstance(result, Err):
        return result
    if result.value <= 0 or result.value > 100:
        return Err(field, "must be greater than 0 and at most 100")
    return result


def one_of(field: str, value: Any, allowed) -> Result:
    if value not in allowed:
        return Err(field, f"must be one of {', '.join(allowed)}")
    return Ok(value)


# =============================================================================
# PRICE RULES
# =============================================================================

def validate_catalog_price(price: Any) -> Result:
    """Catalog entries (products and lenses) must carry a price strictly above zero."""
    return positive_money("price", price)


def validate_price_increase(base_price: Decimal, adjusted_price: Any) -> Result:
    """
    Lens price adjustments may only raise the price.

    Reductions go through the discount approval workflow instead.
    """
    result = coerce_money("adjusted_price", adjusted_price)
    if isinstance(result, Err):
        return result
    if result.value <= base_price:
        return Err(
            "adjusted_price",
            "must be greater than the base price; use a discount request to lower prices",
        )
    return result
