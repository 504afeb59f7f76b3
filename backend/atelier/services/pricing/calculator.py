"""
Rush classification and order pricing.

Pure functions: nothing here touches the database or the clock. Callers
pass ``now`` explicitly so classification is deterministic and can be
recomputed at any time with the same result.

All money is handled as ``Decimal`` and rounded half away from zero to
whole currency units.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Union

from atelier.core.exceptions import InvalidInputError


DEPOSIT_RATE = Decimal("0.30")
REVISION_FEE_RATE = Decimal("0.10")

STANDARD_MULTIPLIER = Decimal("1.0")
PRIORITY_MULTIPLIER = Decimal("1.2")
EXPRESS_MULTIPLIER = Decimal("1.4")

EXPRESS_THRESHOLD_DAYS = 7
PRIORITY_THRESHOLD_DAYS = 14

MIN_MULTIPLIER = STANDARD_MULTIPLIER
MAX_MULTIPLIER = EXPRESS_MULTIPLIER

SECONDS_PER_DAY = 86400

WHOLE_UNIT = Decimal("1")
CENT = Decimal("0.01")

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class RushClassification:
    """Result of classifying a delivery date against the current time."""

    days_until: int
    is_rush: bool
    multiplier: Decimal


@dataclass(frozen=True)
class PriceBreakdown:
    total_price: Decimal
    deposit_amount: Decimal


def to_utc(value: DateLike) -> datetime:
    """
    Normalize a date or datetime to an aware UTC datetime.

    Naive datetimes are taken to be UTC; bare dates are midnight UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raise InvalidInputError(
        "Delivery date must be a date or datetime",
        value_type=type(value).__name__,
    )


def round_currency(amount: Decimal) -> Decimal:
    """Round to whole currency units, halves away from zero."""
    return amount.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


def to_money(value: Any, field_name: str = "amount") -> Decimal:
    """
    Coerce a numeric value to Decimal.

    Raises:
        InvalidInputError: If the value is not numeric or is negative
    """
    if isinstance(value, bool):
        raise InvalidInputError(f"{field_name} must be numeric", field=field_name)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise InvalidInputError(
            f"{field_name} must be numeric",
            field=field_name,
            value=repr(value),
        ) from e
    if not amount.is_finite():
        raise InvalidInputError(f"{field_name} must be finite", field=field_name)
    if amount < 0:
        raise InvalidInputError(
            f"{field_name} cannot be negative",
            field=field_name,
            value=str(amount),
        )
    return amount


def classify_rush(delivery_date: DateLike, now: DateLike) -> RushClassification:
    """
    Classify how urgent a delivery date is.

    Args:
        delivery_date: Requested delivery date
        now: Reference time

    Returns:
        Days until delivery (rounded up), rush flag and price multiplier.
        Fewer than 7 days is express (1.4), fewer than 14 is priority
        (1.2), anything else is standard (1.0). Past dates are express.
    """
    delta = to_utc(delivery_date) - to_utc(now)
    days_until = math.ceil(delta.total_seconds() / SECONDS_PER_DAY)

    if days_until < EXPRESS_THRESHOLD_DAYS:
        multiplier = EXPRESS_MULTIPLIER
    elif days_until < PRIORITY_THRESHOLD_DAYS:
        multiplier = PRIORITY_MULTIPLIER
    else:
        multiplier = STANDARD_MULTIPLIER

    multiplier = min(max(multiplier, MIN_MULTIPLIER), MAX_MULTIPLIER)

    return RushClassification(
        days_until=days_until,
        is_rush=multiplier > STANDARD_MULTIPLIER,
        multiplier=multiplier,
    )


def deposit_for(total_price: Any) -> Decimal:
    """Deposit owed for a total: 30%, rounded to whole units."""
    return round_currency(to_money(total_price, "total_price") * DEPOSIT_RATE)


def price_order(base_price: Any, multiplier: Any) -> PriceBreakdown:
    """
    Price an order from its base price and rush multiplier.

    Raises:
        InvalidInputError: If either value is non-numeric or negative, or
            the multiplier falls outside the 1.0 to 1.4 range
    """
    base = to_money(base_price, "base_price")
    factor = to_money(multiplier, "multiplier")
    if factor < MIN_MULTIPLIER or factor > MAX_MULTIPLIER:
        raise InvalidInputError(
            "Rush multiplier out of range",
            multiplier=str(factor),
            minimum=str(MIN_MULTIPLIER),
            maximum=str(MAX_MULTIPLIER),
        )

    total = round_currency(base * factor)
    return PriceBreakdown(total_price=total, deposit_amount=deposit_for(total))


def revision_fee_for(base_price: Any, sequence: int) -> Decimal:
    """Fee for the revision at ``sequence``: free for 0, else 10% of base."""
    if sequence < 0:
        raise InvalidInputError("Revision sequence cannot be negative", sequence=sequence)
    if sequence == 0:
        return Decimal("0")
    fee = to_money(base_price, "base_price") * REVISION_FEE_RATE
    return fee.quantize(CENT, rounding=ROUND_HALF_UP)


def balance_due(total_price: Any, deposit_amount: Any, deposit_paid: bool) -> Decimal:
    """Amount still owed: total minus the deposit once it has been paid."""
    total = to_money(total_price, "total_price")
    if not deposit_paid:
        return total
    return total - to_money(deposit_amount, "deposit_amount")
