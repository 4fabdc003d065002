"""Coupon storage for the checkout service"""

import threading
import uuid
from datetime import date, datetime, time, timezone
from typing import Callable, Optional

from ..errors import ConflictError, InvalidArgumentError, NotFoundError
from ..models.coupon import Coupon


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_code(code: str) -> str:
    """Coupon codes are stored and matched uppercased"""
    return code.strip().upper()


class CouponDatabase:
    """In-memory coupon book maintained by operators"""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self._lock = threading.Lock()
        self.coupons: dict[str, Coupon] = {}

    def reset(self) -> None:
        with self._lock:
            self.coupons = {}

    def create_coupon(
        self,
        name: Optional[str],
        expiry: Optional[date],
        discount: Optional[float],
    ) -> Coupon:
        """Create a coupon after validating its fields"""
        if not name or not name.strip() or expiry is None or discount is None:
            raise InvalidArgumentError(
                "name, expiry and discount of the coupon are required"
            )
        self._validate_expiry(expiry)
        self._validate_discount(discount)

        code = normalize_code(name)
        with self._lock:
            if self._find_by_code(code):
                raise ConflictError(f"Coupon {code} already exists")

            now = self.clock()
            coupon = Coupon(
                coupon_id=str(uuid.uuid4()),
                code=code,
                discount=discount,
                expiry=expiry,
                created_at=now,
                updated_at=now,
            )
            self.coupons[coupon.coupon_id] = coupon
        return coupon.model_copy()

    def update_coupon(
        self,
        coupon_id: str,
        name: Optional[str] = None,
        expiry: Optional[date] = None,
        discount: Optional[float] = None,
    ) -> Coupon:
        """Change any of a coupon's name, expiry or discount"""
        if not name and expiry is None and discount is None:
            raise InvalidArgumentError(
                "Provide name, expiry or discount of the coupon to update"
            )
        if expiry is not None:
            self._validate_expiry(expiry)
        if discount is not None:
            self._validate_discount(discount)

        with self._lock:
            coupon = self.coupons.get(coupon_id)
            if not coupon:
                raise NotFoundError("Coupon", coupon_id)

            changes = {}
            if name:
                code = normalize_code(name)
                clash = self._find_by_code(code)
                if clash and clash.coupon_id != coupon_id:
                    raise ConflictError(f"Coupon {code} already exists")
                changes["code"] = code
            if expiry is not None:
                changes["expiry"] = expiry
            if discount is not None:
                changes["discount"] = discount
            changes["updated_at"] = self.clock()

            updated = coupon.model_copy(update=changes)
            self.coupons[coupon_id] = updated
        return updated.model_copy()

    def delete_coupon(self, coupon_id: str) -> None:
        with self._lock:
            if coupon_id not in self.coupons:
                raise NotFoundError("Coupon", coupon_id)
            del self.coupons[coupon_id]

    def list_coupons(self) -> list[Coupon]:
        coupons = sorted(self.coupons.values(), key=lambda c: c.created_at)
        return [c.model_copy() for c in coupons]

    def get_by_code(self, code: str) -> Optional[Coupon]:
        """Look up a coupon by case-insensitive code"""
        coupon = self._find_by_code(normalize_code(code))
        return coupon.model_copy() if coupon else None

    def _find_by_code(self, code: str) -> Optional[Coupon]:
        return next((c for c in self.coupons.values() if c.code == code), None)

    def _validate_expiry(self, expiry: date) -> None:
        end_of_day = datetime.combine(expiry, time.max, tzinfo=timezone.utc)
        if end_of_day <= self.clock():
            raise InvalidArgumentError("Expiry date should be in the future")

    @staticmethod
    def _validate_discount(discount: float) -> None:
        if discount < 1 or discount > 100:
            raise InvalidArgumentError("Discount should be between 1 and 100")


# Singleton instance
coupon_db = CouponDatabase()
