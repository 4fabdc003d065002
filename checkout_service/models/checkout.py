"""Checkout and order models for the checkout service"""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum


class OrderStatus(str, Enum):
    NOT_PROCESSED = "not_processed"
    PROCESSED = "processed"
    DISPATCHED = "dispatched"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    CARD = "card"
    COD = "cod"


class OrderItem(BaseModel):
    """Item in an order, copied by value from the cart at checkout"""
    product_id: str
    count: int
    variant: str
    unit_price: float

    class Config:
        frozen = True


class Order(BaseModel):
    """Placed order. Only order_status and payment_status change after creation."""
    order_id: str
    tracking_id: str
    shopper_id: str
    items: tuple[OrderItem, ...]
    payment_method: PaymentMethod
    payment_confirmation: Optional[str] = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_status: OrderStatus = OrderStatus.NOT_PROCESSED
    subtotal: float
    coupon_code: Optional[str] = None
    total_after_discount: Optional[float] = None
    reservation_id: Optional[str] = None
    idempotency_token: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CheckoutRequest(BaseModel):
    """Request to checkout the caller's cart"""
    payment_method: str
    payment_confirmation: Optional[str] = None
    idempotency_token: Optional[str] = None


class UpdateOrderStatusRequest(BaseModel):
    """Operator request to move an order through its lifecycle"""
    status: str


class UpdatePaymentStatusRequest(BaseModel):
    """Operator request to settle a cash-on-delivery payment"""
    status: str


class TrackingResponse(BaseModel):
    """Tracking projection of an order"""
    tracking_id: str
    order_status: OrderStatus


class OrderListResponse(BaseModel):
    """Paged order listing"""
    orders: list[Order]
    total: int
    page: int
    pages: int
