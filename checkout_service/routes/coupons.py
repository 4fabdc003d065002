"""Coupon administration API routes"""

from fastapi import APIRouter, Depends

from ..models.coupon import Coupon, CreateCouponRequest, UpdateCouponRequest
from ..models.identity import Requester
from ..database.coupons import coupon_db
from ..security.identity import require_operator

router = APIRouter(prefix="/api/coupons", tags=["Coupons"])


@router.get("", response_model=list[Coupon])
def list_coupons(operator: Requester = Depends(require_operator)):
    """List all coupons"""
    return coupon_db.list_coupons()


@router.post("", response_model=Coupon, status_code=201)
def create_coupon(
    request: CreateCouponRequest,
    operator: Requester = Depends(require_operator),
):
    """Create a coupon"""
    return coupon_db.create_coupon(request.name, request.expiry, request.discount)


@router.patch("/{coupon_id}", response_model=Coupon)
def update_coupon(
    coupon_id: str,
    request: UpdateCouponRequest,
    operator: Requester = Depends(require_operator),
):
    """Update a coupon's name, expiry or discount"""
    return coupon_db.update_coupon(
        coupon_id,
        name=request.name,
        expiry=request.expiry,
        discount=request.discount,
    )


@router.delete("/{coupon_id}")
def delete_coupon(
    coupon_id: str,
    operator: Requester = Depends(require_operator),
):
    """Delete a coupon"""
    coupon_db.delete_coupon(coupon_id)
    return {"message": "Coupon deleted"}
