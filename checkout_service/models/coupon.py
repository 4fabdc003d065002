"""Coupon models for the checkout service"""

from datetime import date, datetime, time, timezone
from typing import Optional

from pydantic import BaseModel


class Coupon(BaseModel):
    """Promotional coupon.

    ``expiry`` is a calendar day; the coupon stays valid through the last
    instant of that day (UTC).
    """
    coupon_id: str
    code: str
    discount: float
    expiry: date
    created_at: datetime
    updated_at: datetime

    @property
    def expires_at(self) -> datetime:
        return datetime.combine(self.expiry, time.max, tzinfo=timezone.utc)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class AppliedCoupon(BaseModel):
    """Copy of a coupon taken when it was applied to a cart"""
    code: str
    discount: float
    expiry: date

    @property
    def expires_at(self) -> datetime:
        return datetime.combine(self.expiry, time.max, tzinfo=timezone.utc)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    @classmethod
    def from_coupon(cls, coupon: Coupon) -> "AppliedCoupon":
        return cls(code=coupon.code, discount=coupon.discount, expiry=coupon.expiry)


class CreateCouponRequest(BaseModel):
    """Request to create a coupon"""
    name: Optional[str] = None
    expiry: Optional[date] = None
    discount: Optional[float] = None


class UpdateCouponRequest(BaseModel):
    """Request to update a coupon"""
    name: Optional[str] = None
    expiry: Optional[date] = None
    discount: Optional[float] = None


class ApplyCouponRequest(BaseModel):
    """Request to apply a coupon to the cart"""
    code: Optional[str] = None
