# app/services/pricing.py
"""
Price engine: the single place where discount validity and discounted
tier prices are computed, for catalog reads and checkout alike.

Pure functions. Call them at read time; never cache the result, the
discount window makes it time dependent.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Protocol


class Discountable(Protocol):
    discount: float
    is_discount_active: bool
    discount_start_date: datetime | None
    discount_end_date: datetime | None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_discount_valid(product: Discountable, now: datetime | None = None) -> bool:
    """
    True when the product's discount applies at `now` (default: current UTC).

    Missing start/end dates leave that side of the window open.
    """
    if not product.is_discount_active:
        return False

    now = _as_utc(now) if now is not None else datetime.now(timezone.utc)

    if product.discount_start_date and now < _as_utc(product.discount_start_date):
        return False
    if product.discount_end_date and now > _as_utc(product.discount_end_date):
        return False

    return True


def final_price(
    base_price: float,
    product: Discountable,
    now: datetime | None = None,
) -> float:
    """
    Effective unit price of a tier.

    Returns base_price unchanged when no discount is valid, otherwise
    base_price * (1 - discount/100) rounded half-up to whole currency units
    (100 at 20% off -> 80, 199 at 15% off -> 169).
    """
    if not is_discount_valid(product, now):
        return base_price

    discounted = Decimal(str(base_price)) * (Decimal(100) - Decimal(str(product.discount))) / 100
    return float(discounted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
