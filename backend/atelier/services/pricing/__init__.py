"""Rush classification and order pricing."""

from atelier.services.pricing.calculator import (
    DEPOSIT_RATE,
    REVISION_FEE_RATE,
    PriceBreakdown,
    RushClassification,
    balance_due,
    classify_rush,
    deposit_for,
    price_order,
    revision_fee_for,
)

__all__ = [
    "DEPOSIT_RATE",
    "REVISION_FEE_RATE",
    "PriceBreakdown",
    "RushClassification",
    "balance_due",
    "classify_rush",
    "deposit_for",
    "price_order",
    "revision_fee_for",
]
