"""Product catalog and per-product stock primitives"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from ..core.config import settings
from ..errors import InvalidArgumentError, NotFoundError
from ..models.product import Product, ProductCategory

logger = logging.getLogger(__name__)

# Demo catalog
PRODUCTS: dict[str, Product] = {
    "prod-001": Product(
        id="prod-001",
        title="WH-1000XM5 Wireless Headphones",
        brand="Sony",
        description="Noise cancelling over-ear headphones with 30-hour battery life.",
        price=349.99,
        category=ProductCategory.ELECTRONICS,
        quantity=50,
    ),
    "prod-002": Product(
        id="prod-002",
        title="AirPods Pro (2nd Gen)",
        brand="Apple",
        description="In-ear headphones with adaptive transparency.",
        price=249.00,
        category=ProductCategory.ELECTRONICS,
        quantity=100,
    ),
    "prod-003": Product(
        id="prod-003",
        title="Better Sweater Jacket",
        brand="Patagonia",
        description="Fleece jacket made with recycled polyester.",
        price=139.00,
        category=ProductCategory.CLOTHING,
        quantity=75,
    ),
    "prod-004": Product(
        id="prod-004",
        title="Air Max 90",
        brand="Nike",
        description="Leather and textile running shoe.",
        price=130.00,
        category=ProductCategory.CLOTHING,
        quantity=60,
    ),
    "prod-005": Product(
        id="prod-005",
        title="Stand Mixer 5.5 Quart",
        brand="KitchenAid",
        description="Bowl-lift stand mixer with 11 speeds.",
        price=449.99,
        category=ProductCategory.HOME,
        quantity=40,
    ),
    "prod-006": Product(
        id="prod-006",
        title="Tundra 45 Cooler",
        brand="Yeti",
        description="Rotomolded cooler with PermaFrost insulation.",
        price=325.00,
        category=ProductCategory.SPORTS,
        quantity=35,
    ),
    "prod-007": Product(
        id="prod-007",
        title="Atomic Habits",
        brand="Avery",
        description="Hardcover edition.",
        price=24.99,
        category=ProductCategory.BOOKS,
        quantity=200,
    ),
}


class ProductDatabase:
    """In-memory product catalog.

    Stock is only ever changed through :meth:`decrement_if_available` and
    :meth:`restock`, each of which runs as a single step under the product's
    own lock.
    """

    def __init__(self, seed: bool = True, lock_timeout: Optional[float] = None):
        self.lock_timeout = settings.lock_timeout_seconds if lock_timeout is None else lock_timeout
        self._seed = seed
        self._registry_lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        """Restore the catalog to its seeded state"""
        with self._registry_lock:
            if self._seed:
                self.products = {pid: p.model_copy() for pid, p in PRODUCTS.items()}
            else:
                self.products = {}
            self._locks: dict[str, threading.Lock] = {}

    def add_product(self, product: Product) -> Product:
        """Register a product with the catalog"""
        with self._registry_lock:
            stored = product.model_copy()
            stored.in_stock = stored.quantity > 0
            self.products[stored.id] = stored
        return stored.model_copy()

    def get_product(self, product_id: str) -> Optional[Product]:
        """Get a copy of a product by ID"""
        product = self.products.get(product_id)
        return product.model_copy() if product else None

    def list_products(
        self,
        in_stock_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Product], int]:
        """
        List catalog products.

        Returns:
            Tuple of (page of products, total count)
        """
        results = list(self.products.values())
        if in_stock_only:
            results = [p for p in results if p.in_stock and p.quantity > 0]

        total = len(results)
        results = results[offset : offset + limit]
        return [p.model_copy() for p in results], total

    def update_price(self, product_id: str, price: float) -> Product:
        """Change a product's list price. Carts and orders keep their snapshots."""
        if price <= 0:
            raise InvalidArgumentError("Price must be positive")
        with self._locked(product_id) as product:
            product.price = price
            return product.model_copy()

    def decrement_if_available(self, product_id: str, count: int) -> tuple[bool, int]:
        """
        Take ``count`` units if at least that many remain.

        Args:
            product_id: Product to decrement
            count: Units requested, must be positive

        Returns:
            Tuple of (decremented, quantity available when checked)
        """
        if count <= 0:
            raise InvalidArgumentError("Count must be positive")
        with self._locked(product_id) as product:
            available = product.quantity
            if available < count:
                return False, available
            product.quantity = available - count
            product.sold += count
            product.in_stock = product.quantity > 0
            return True, available

    def restock(self, product_id: str, count: int) -> None:
        """Exact inverse of a successful decrement"""
        if count <= 0:
            raise InvalidArgumentError("Count must be positive")
        with self._locked(product_id) as product:
            product.quantity += count
            product.sold = max(product.sold - count, 0)
            product.in_stock = product.quantity > 0

    def _lock_for(self, product_id: str) -> threading.Lock:
        with self._registry_lock:
            if product_id not in self.products:
                raise NotFoundError("Product", product_id)
            lock = self._locks.get(product_id)
            if lock is None:
                lock = self._locks[product_id] = threading.Lock()
            return lock

    @contextmanager
    def _locked(self, product_id: str) -> Iterator[Product]:
        lock = self._lock_for(product_id)
        if not lock.acquire(timeout=self.lock_timeout):
            logger.warning(f"Timed out waiting for stock lock on {product_id}")
            raise TimeoutError(f"Timed out waiting for stock lock on {product_id}")
        try:
            product = self.products.get(product_id)
            if product is None:
                raise NotFoundError("Product", product_id)
            yield product
        finally:
            lock.release()


# Singleton instance
product_db = ProductDatabase(seed=settings.seed_demo_catalog)
