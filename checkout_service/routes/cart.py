"""Cart API routes"""

from fastapi import APIRouter, Depends

from ..models.cart import (
    AddToCartRequest,
    UpdateCartItemRequest,
    CartResponse,
)
from ..models.coupon import ApplyCouponRequest
from ..models.identity import Requester
from ..database.carts import cart_db
from ..security.identity import require_shopper

router = APIRouter(prefix="/api/cart", tags=["Cart"])


@router.get("", response_model=CartResponse)
def get_cart(shopper: Requester = Depends(require_shopper)):
    """Get the caller's cart"""
    return CartResponse(cart=cart_db.view(shopper.shopper_id))


@router.post("/items", response_model=CartResponse)
def add_to_cart(
    request: AddToCartRequest,
    shopper: Requester = Depends(require_shopper),
):
    """Add an item to the cart, or overwrite its count and variant"""
    cart = cart_db.add_item(
        shopper.shopper_id,
        request.product_id,
        request.count,
        request.variant,
    )
    return CartResponse(cart=cart, message="Product added to cart")


@router.patch("/items", response_model=CartResponse)
def update_cart_item(
    request: UpdateCartItemRequest,
    shopper: Requester = Depends(require_shopper),
):
    """Update count and variant of an item in the cart"""
    cart = cart_db.update_item(
        shopper.shopper_id,
        request.product_id,
        request.count,
        request.variant,
    )
    return CartResponse(cart=cart, message="Cart updated")


@router.delete("/items/{product_id}", response_model=CartResponse)
def remove_from_cart(
    product_id: str,
    shopper: Requester = Depends(require_shopper),
):
    """Remove an item from the cart"""
    cart = cart_db.remove_item(shopper.shopper_id, product_id)
    return CartResponse(cart=cart, message="Item removed")


@router.post("/coupon", response_model=CartResponse)
def apply_coupon(
    request: ApplyCouponRequest,
    shopper: Requester = Depends(require_shopper),
):
    """Apply a coupon to the cart"""
    cart = cart_db.apply_coupon(shopper.shopper_id, request.code)
    return CartResponse(cart=cart, message="Coupon applied")


@router.delete("/coupon", response_model=CartResponse)
def remove_coupon(shopper: Requester = Depends(require_shopper)):
    """Remove the coupon from the cart"""
    cart = cart_db.remove_coupon(shopper.shopper_id)
    return CartResponse(cart=cart, message="Coupon removed")


@router.delete("", response_model=CartResponse)
def clear_cart(shopper: Requester = Depends(require_shopper)):
    """Clear all items from the cart"""
    cart = cart_db.clear_cart(shopper.shopper_id)
    return CartResponse(cart=cart, message="Cart cleared")
