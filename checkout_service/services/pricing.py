"""Cart pricing"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from ..models.cart import CartItem
from ..models.coupon import AppliedCoupon


@dataclass(frozen=True)
class PricingResult:
    """Subtotal and coupon-discounted total of a set of line items"""
    subtotal: float
    total_after_discount: Optional[float] = None


def recompute(
    items: Iterable[CartItem],
    coupon: Optional[AppliedCoupon] = None,
    now: Optional[datetime] = None,
) -> PricingResult:
    """
    Price line items using their snapshotted unit prices.

    The discounted total is only produced for a coupon that is still valid at
    ``now``; when ``now`` is omitted the coupon is taken as valid.
    """
    subtotal = round(sum(item.unit_price * item.count for item in items), 2)

    if coupon is None or (now is not None and coupon.is_expired(now)):
        return PricingResult(subtotal=subtotal)

    discounted = round(subtotal * (1 - coupon.discount / 100), 2)
    return PricingResult(subtotal=subtotal, total_after_discount=discounted)
