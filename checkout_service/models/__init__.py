# Checkout Service Models

from .product import Product, ProductCategory, ProductListResponse
from .coupon import (
    Coupon,
    AppliedCoupon,
    CreateCouponRequest,
    UpdateCouponRequest,
    ApplyCouponRequest,
)
from .cart import (
    Cart,
    CartItem,
    CartLineView,
    CartView,
    AddToCartRequest,
    UpdateCartItemRequest,
    CartResponse,
)
from .checkout import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
    CheckoutRequest,
    UpdateOrderStatusRequest,
    UpdatePaymentStatusRequest,
    TrackingResponse,
    OrderListResponse,
)
from .inventory import Reservation, ReservationStatus, ReservedItem, StockShortage
from .identity import Requester

__all__ = [
    "Product",
    "ProductCategory",
    "ProductListResponse",
    "Coupon",
    "AppliedCoupon",
    "CreateCouponRequest",
    "UpdateCouponRequest",
    "ApplyCouponRequest",
    "Cart",
    "CartItem",
    "CartLineView",
    "CartView",
    "AddToCartRequest",
    "UpdateCartItemRequest",
    "CartResponse",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
    "CheckoutRequest",
    "UpdateOrderStatusRequest",
    "UpdatePaymentStatusRequest",
    "TrackingResponse",
    "OrderListResponse",
    "Reservation",
    "ReservationStatus",
    "ReservedItem",
    "StockShortage",
    "Requester",
]
