"""Cart models for the checkout service"""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime

from .coupon import AppliedCoupon


class CartItem(BaseModel):
    """Line item in a shopping cart; unit_price is the price at add time"""
    product_id: str
    count: int
    variant: str
    unit_price: float


class Cart(BaseModel):
    """Shopping cart, one per shopper"""
    shopper_id: str
    items: list[CartItem] = []
    cart_total: float = 0.0
    applied_coupon: Optional[AppliedCoupon] = None
    total_after_discount: Optional[float] = None
    version: int = 0
    created_at: datetime
    updated_at: datetime


class CartLineView(BaseModel):
    """Line item joined with catalog display fields"""
    product_id: str
    title: Optional[str] = None
    brand: Optional[str] = None
    count: int
    variant: str
    unit_price: float
    line_total: float


class CartView(BaseModel):
    """Read projection of a cart"""
    items: list[CartLineView]
    cart_total: float
    applied_coupon: Optional[str] = None
    discount: Optional[float] = None
    total_after_discount: Optional[float] = None
    version: int
    updated_at: datetime


class AddToCartRequest(BaseModel):
    """Request to add or update an item in the cart"""
    product_id: str
    count: Optional[int] = None
    variant: Optional[str] = None


class UpdateCartItemRequest(BaseModel):
    """Request to update an existing cart line"""
    product_id: str
    count: Optional[int] = None
    variant: Optional[str] = None


class CartResponse(BaseModel):
    """Cart API response"""
    cart: Optional[CartView] = None
    message: Optional[str] = None
