from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Optional
from utils import as_utc, utcnow


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


REASON_NOT_FOUND = "not found"
REASON_EXPIRED = "expired"
REASON_USAGE_LIMIT = "usage limit reached"
REASON_MIN_PURCHASE = "minimum purchase not met"

REASONS = (REASON_NOT_FOUND, REASON_EXPIRED, REASON_USAGE_LIMIT, REASON_MIN_PURCHASE)


@dataclass
class ValidationResult:
    """
    Outcome of checking a coupon against a purchase amount.
    """
    valid: bool
    discount: float = 0.0
    coupon: Optional[Any] = None
    reason: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "discount": self.discount,
            "reason": self.reason,
            "message": self.message,
            "coupon": self.coupon.to_dict() if self.coupon is not None else None,
        }


@dataclass
class PriceQuote:
    """
    Derived pricing state for a set of line items and an optional coupon.
    """
    subtotal: float
    discount: float
    total: float
    coupon_still_valid: bool
    reason: Optional[str] = None


def compute_discount(discount_type: str, value: float, amount: float) -> float:
    """
    Args:
        discount_type: 'percentage' (value in 0-100) or 'fixed' (currency amount).
        value: Coupon value.
        amount: Purchase amount the discount applies to.

    Returns:
        The raw discount. Fixed discounts are not capped at the amount; callers
        clamp the resulting total instead.
    """
    if DiscountType(discount_type) is DiscountType.PERCENTAGE:
        return amount * value / 100
    return value


def _format_amount(amount: float) -> str:
    return f"{amount:g}"


def evaluate_coupon(coupon, amount: float, now: Optional[datetime] = None) -> ValidationResult:
    """
    Runs the four eligibility gates against the coupon's current state.

    A missing or inactive coupon is reported as not found. The remaining gates
    (expiry, usage cap, minimum purchase) are each sufficient on their own to
    reject; their order only decides which reason is reported.

    Args:
        coupon: A Coupon row or None.
        amount: Purchase amount to validate against.
        now: Reference time, defaults to the current UTC time.

    Returns:
        A ValidationResult. Never mutates the coupon.
    """
    now = as_utc(now) if now is not None else utcnow()

    if coupon is None or not coupon.is_active:
        return ValidationResult(False, 0.0, reason=REASON_NOT_FOUND,
                                message="Coupon code not found or inactive")

    expires_at = as_utc(coupon.expires_at)
    if expires_at is not None and expires_at < now:
        return ValidationResult(False, 0.0, reason=REASON_EXPIRED, message="Coupon has expired")

    max_uses = coupon.max_uses or 0
    if max_uses > 0 and (coupon.used_count or 0) >= max_uses:
        return ValidationResult(False, 0.0, reason=REASON_USAGE_LIMIT,
                                message="Coupon usage limit reached")

    min_purchase = coupon.min_purchase_amount or 0.0
    if amount < min_purchase:
        return ValidationResult(
            False, 0.0, reason=REASON_MIN_PURCHASE,
            message=f"Minimum purchase amount of ${_format_amount(min_purchase)} required",
        )

    discount = compute_discount(coupon.discount_type, coupon.value, amount)
    return ValidationResult(True, discount, coupon=coupon)


def subtotal_of(items: Iterable[Any]) -> float:
    return sum(item.unit_price * item.quantity for item in items)


def quote(items: Iterable[Any], coupon=None, now: Optional[datetime] = None) -> PriceQuote:
    """
    Prices line items with an optional coupon.

    Percentage discounts always track the subtotal passed in here, never the
    subtotal at the time the coupon was attached. When the coupon no longer
    qualifies the quote carries no discount and coupon_still_valid is False,
    which tells the caller to drop it.

    Args:
        items: Objects exposing unit_price and quantity.
        coupon: The re-fetched Coupon row, or None when nothing is applied.
        now: Reference time for the expiry check.

    Returns:
        A PriceQuote with total = max(0, subtotal - discount).
    """
    subtotal = subtotal_of(items)
    if coupon is None:
        return PriceQuote(subtotal, 0.0, max(0.0, subtotal), False)

    result = evaluate_coupon(coupon, subtotal, now)
    if not result.valid:
        return PriceQuote(subtotal, 0.0, max(0.0, subtotal), False, result.reason)

    return PriceQuote(subtotal, result.discount, max(0.0, subtotal - result.discount), True)
