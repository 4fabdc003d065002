"""Cart storage for the checkout service"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from ..core.config import settings
from ..errors import EmptyCartError, InvalidArgumentError, NotFoundError
from ..models.cart import Cart, CartItem, CartLineView, CartView
from ..models.coupon import AppliedCoupon
from ..services.coupons import CouponValidator, coupon_validator
from ..services.pricing import recompute
from .products import ProductDatabase, product_db

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CartDatabase:
    """In-memory cart storage, one cart per shopper.

    Every mutation of a shopper's cart runs under that shopper's lock and ends
    with a recompute of the totals, so ``cart_total`` and
    ``total_after_discount`` never go stale.
    """

    def __init__(
        self,
        products: ProductDatabase,
        coupons: CouponValidator,
        clock: Callable[[], datetime] = utcnow,
        lock_timeout: Optional[float] = None,
    ):
        self.products = products
        self.coupons = coupons
        self.clock = clock
        self.lock_timeout = settings.lock_timeout_seconds if lock_timeout is None else lock_timeout
        self._registry_lock = threading.Lock()
        self.carts: dict[str, Cart] = {}
        self._shopper_locks: dict[str, threading.RLock] = {}

    def reset(self) -> None:
        with self._registry_lock:
            self.carts = {}
            self._shopper_locks = {}

    @contextmanager
    def locked(self, shopper_id: str) -> Iterator[None]:
        """Serialize work on one shopper's cart"""
        with self._registry_lock:
            lock = self._shopper_locks.get(shopper_id)
            if lock is None:
                lock = self._shopper_locks[shopper_id] = threading.RLock()
        if not lock.acquire(timeout=self.lock_timeout):
            raise TimeoutError(f"Timed out waiting for cart lock of shopper {shopper_id}")
        try:
            yield
        finally:
            lock.release()

    def get_cart(self, shopper_id: str) -> Optional[Cart]:
        """Get a copy of the shopper's cart"""
        cart = self.carts.get(shopper_id)
        return cart.model_copy(deep=True) if cart else None

    def add_item(
        self,
        shopper_id: str,
        product_id: str,
        count: Optional[int],
        variant: Optional[str],
    ) -> CartView:
        """Add a product to the cart, or overwrite count/variant if already present"""
        self._validate_line(count, variant)
        product = self.products.get_product(product_id)
        if not product:
            raise NotFoundError("Product", product_id)

        with self.locked(shopper_id):
            cart = self.carts.get(shopper_id)
            if cart is None:
                now = self.clock()
                cart = Cart(shopper_id=shopper_id, items=[], created_at=now, updated_at=now)
                self.carts[shopper_id] = cart

            existing_item = self._find_item(cart, product_id)
            if existing_item:
                existing_item.count = count
                existing_item.variant = variant
            else:
                cart.items.append(
                    CartItem(
                        product_id=product.id,
                        count=count,
                        variant=variant,
                        unit_price=product.price,
                    )
                )

            self._recalculate_totals(cart)
            return self._view(cart)

    def update_item(
        self,
        shopper_id: str,
        product_id: str,
        count: Optional[int],
        variant: Optional[str],
    ) -> CartView:
        """Update count and variant of a line already in the cart"""
        self._validate_line(count, variant)

        with self.locked(shopper_id):
            cart = self._require_cart(shopper_id)
            item = self._find_item(cart, product_id)
            if not item:
                raise NotFoundError("Product", product_id, "Product not found in the cart")

            item.count = count
            item.variant = variant
            self._recalculate_totals(cart)
            return self._view(cart)

    def remove_item(self, shopper_id: str, product_id: str) -> CartView:
        """Remove a line from the cart"""
        with self.locked(shopper_id):
            cart = self._require_cart(shopper_id)
            if not self._find_item(cart, product_id):
                raise NotFoundError("Product", product_id, "Product not found in the cart")

            cart.items = [i for i in cart.items if i.product_id != product_id]
            self._recalculate_totals(cart)
            return self._view(cart)

    def apply_coupon(self, shopper_id: str, code: Optional[str]) -> CartView:
        """Validate a coupon code and attach it to the cart"""
        with self.locked(shopper_id):
            cart = self._require_cart(shopper_id)
            if not cart.items:
                raise EmptyCartError("Cannot apply a coupon to an empty cart")

            coupon = self.coupons.validate(code, self.clock())
            cart.applied_coupon = AppliedCoupon.from_coupon(coupon)
            self._recalculate_totals(cart)
            logger.info(f"Coupon {coupon.code} applied to cart of shopper {shopper_id}")
            return self._view(cart)

    def remove_coupon(self, shopper_id: str) -> Optional[CartView]:
        """Detach any coupon from the cart"""
        with self.locked(shopper_id):
            cart = self.carts.get(shopper_id)
            if not cart:
                return None

            cart.applied_coupon = None
            self._recalculate_totals(cart)
            return self._view(cart)

    def clear_cart(self, shopper_id: str) -> Optional[CartView]:
        """Empty the cart: line items, coupon and totals"""
        with self.locked(shopper_id):
            cart = self.carts.get(shopper_id)
            if not cart:
                return None

            cart.items = []
            cart.applied_coupon = None
            self._recalculate_totals(cart)
            return self._view(cart)

    def view(self, shopper_id: str) -> CartView:
        """Cart joined with catalog display fields"""
        with self.locked(shopper_id):
            return self._view(self._require_cart(shopper_id))

    def _require_cart(self, shopper_id: str) -> Cart:
        cart = self.carts.get(shopper_id)
        if not cart:
            raise NotFoundError("Cart")
        return cart

    @staticmethod
    def _find_item(cart: Cart, product_id: str) -> Optional[CartItem]:
        return next(
            (item for item in cart.items if item.product_id == product_id),
            None,
        )

    @staticmethod
    def _validate_line(count: Optional[int], variant: Optional[str]) -> None:
        if count is None or not variant or not variant.strip():
            raise InvalidArgumentError("The count and variant of the product are required")
        if count <= 0:
            raise InvalidArgumentError("Count must be greater than zero")

    def _recalculate_totals(self, cart: Cart) -> None:
        """Recalculate cart totals after a mutation"""
        if not cart.items:
            cart.applied_coupon = None
        pricing = recompute(cart.items, cart.applied_coupon, self.clock())
        cart.cart_total = pricing.subtotal
        cart.total_after_discount = pricing.total_after_discount
        cart.version += 1
        cart.updated_at = self.clock()

    def _view(self, cart: Cart) -> CartView:
        lines = []
        for item in cart.items:
            product = self.products.get_product(item.product_id)
            lines.append(
                CartLineView(
                    product_id=item.product_id,
                    title=product.title if product else None,
                    brand=product.brand if product else None,
                    count=item.count,
                    variant=item.variant,
                    unit_price=item.unit_price,
                    line_total=round(item.unit_price * item.count, 2),
                )
            )

        # Priced on read so a coupon that expired since the last mutation drops out
        pricing = recompute(cart.items, cart.applied_coupon, self.clock())
        coupon = cart.applied_coupon if pricing.total_after_discount is not None else None
        return CartView(
            items=lines,
            cart_total=pricing.subtotal,
            applied_coupon=coupon.code if coupon else None,
            discount=coupon.discount if coupon else None,
            total_after_discount=pricing.total_after_discount,
            version=cart.version,
            updated_at=cart.updated_at,
        )


# Singleton instance
cart_db = CartDatabase(product_db, coupon_validator)
