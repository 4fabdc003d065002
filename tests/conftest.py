"""Pytest fixtures for checkout service tests."""

from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from checkout_service.database.carts import CartDatabase
from checkout_service.database.coupons import CouponDatabase
from checkout_service.database.orders import OrderDatabase
from checkout_service.database.products import ProductDatabase
from checkout_service.models.coupon import Coupon
from checkout_service.models.product import Product, ProductCategory
from checkout_service.services.checkout import CheckoutOrchestrator
from checkout_service.services.coupons import CouponValidator
from checkout_service.services.inventory import InventoryLedger


class FixedClock:
    """Controllable clock for expiry tests"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_product(product_id: str, price: float, quantity: int, **kwargs) -> Product:
    return Product(
        id=product_id,
        title=kwargs.pop("title", f"Product {product_id}"),
        brand=kwargs.pop("brand", "Acme"),
        price=price,
        quantity=quantity,
        category=kwargs.pop("category", ProductCategory.HOME),
        **kwargs,
    )


def insert_coupon(coupons: CouponDatabase, code: str, discount: float, expiry: date) -> Coupon:
    """Store a coupon without the create-time expiry check"""
    now = coupons.clock()
    coupon = Coupon(
        coupon_id=f"coupon-{code.lower()}",
        code=code.upper(),
        discount=discount,
        expiry=expiry,
        created_at=now,
        updated_at=now,
    )
    coupons.coupons[coupon.coupon_id] = coupon
    return coupon


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def products():
    db = ProductDatabase(seed=False, lock_timeout=0.5)
    db.add_product(make_product("mug", 25.00, 10, title="Coffee Mug", brand="Kiln"))
    db.add_product(make_product("lamp", 40.00, 5, title="Desk Lamp", brand="Lux"))
    db.add_product(make_product("poster", 12.50, 1, title="Poster", brand="Inkwell"))
    return db


@pytest.fixture
def coupons(clock):
    return CouponDatabase(clock=clock)


@pytest.fixture
def validator(coupons):
    return CouponValidator(coupons)


@pytest.fixture
def carts(products, validator, clock):
    return CartDatabase(products, validator, clock=clock, lock_timeout=0.5)


@pytest.fixture
def inventory(products, clock):
    return InventoryLedger(products, clock=clock)


@pytest.fixture
def orders(clock):
    return OrderDatabase(clock=clock, lock_timeout=0.5)


@pytest.fixture
def orchestrator(carts, inventory, orders, clock):
    return CheckoutOrchestrator(carts, inventory, orders, clock=clock)


@pytest.fixture
def api_client():
    """Test client over freshly reset module singletons."""
    from checkout_service.database.carts import cart_db
    from checkout_service.database.coupons import coupon_db
    from checkout_service.database.orders import order_db
    from checkout_service.database.products import product_db
    from checkout_service.main import app
    from checkout_service.services.checkout import checkout_orchestrator
    from checkout_service.services.inventory import inventory_ledger

    product_db.reset()
    product_db.add_product(make_product("mug", 25.00, 10, title="Coffee Mug", brand="Kiln"))
    product_db.add_product(make_product("poster", 12.50, 1, title="Poster", brand="Inkwell"))
    coupon_db.reset()
    cart_db.reset()
    order_db.reset()
    inventory_ledger.reset()
    checkout_orchestrator.tokens.reset()

    with TestClient(app) as client:
        yield client


def shopper(shopper_id: str = "alice") -> dict:
    return {"X-Shopper-Id": shopper_id}


def operator(operator_id: str = "ops") -> dict:
    return {"X-Shopper-Id": operator_id, "X-Role": "operator"}
