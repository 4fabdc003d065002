"""Coupon validation"""

from datetime import datetime
from typing import Optional

from ..database.coupons import CouponDatabase, coupon_db, normalize_code
from ..errors import CouponExpiredError, InvalidArgumentError, NotFoundError
from ..models.coupon import Coupon


class CouponValidator:
    """Checks a coupon code against the coupon book and a reference clock"""

    def __init__(self, coupons: CouponDatabase):
        self.coupons = coupons

    def validate(self, code: Optional[str], now: Optional[datetime] = None) -> Coupon:
        """
        Resolve ``code`` to a coupon that is valid at ``now``.

        Raises:
            InvalidArgumentError: code is blank
            NotFoundError: no coupon has this code
            CouponExpiredError: the coupon's expiry day has ended
        """
        if not code or not code.strip():
            raise InvalidArgumentError("Coupon code is required")

        coupon = self.coupons.get_by_code(code)
        if coupon is None:
            raise NotFoundError("Coupon", normalize_code(code))

        if coupon.is_expired(now or self.coupons.clock()):
            raise CouponExpiredError(coupon.code)

        return coupon


# Singleton instance
coupon_validator = CouponValidator(coupon_db)
