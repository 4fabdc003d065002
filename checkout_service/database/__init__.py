# Database modules
# carts depends on the coupon validator, import it as database.carts

from .products import product_db, ProductDatabase
from .coupons import coupon_db, CouponDatabase
from .orders import order_db, OrderDatabase

__all__ = [
    "product_db",
    "ProductDatabase",
    "coupon_db",
    "CouponDatabase",
    "order_db",
    "OrderDatabase",
]
