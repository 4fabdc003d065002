"""Tests for the checkout orchestrator."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from checkout_service.errors import (
    ConflictError,
    EmptyCartError,
    InsufficientStockError,
    InvalidArgumentError,
    InvalidTransitionError,
    OutcomeUnknownError,
)
from checkout_service.models.checkout import OrderStatus, PaymentStatus
from checkout_service.models.identity import Requester
from checkout_service.models.inventory import ReservationStatus
from checkout_service.services.checkout import CheckoutOrchestrator, IdempotencyRegistry

from conftest import insert_coupon


def quantity(products, product_id):
    return products.get_product(product_id).quantity


class TestHappyPath:
    def test_cart_becomes_order(self, orchestrator, carts, products, orders):
        carts.add_item("alice", "mug", 2, "blue")
        carts.add_item("alice", "lamp", 1, "white")

        result = orchestrator.checkout("alice", "card", "txn-42")
        order = result.order

        assert result.replayed is False
        assert order.shopper_id == "alice"
        assert order.subtotal == 90.00
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.order_status == OrderStatus.NOT_PROCESSED
        assert [(i.product_id, i.count, i.unit_price) for i in order.items] == [
            ("mug", 2, 25.00),
            ("lamp", 1, 40.00),
        ]
        assert quantity(products, "mug") == 8
        assert quantity(products, "lamp") == 4
        assert carts.get_cart("alice").items == []
        assert orders.get_order(order.order_id) is not None

    def test_coupon_carried_onto_order(self, orchestrator, carts, coupons):
        insert_coupon(coupons, "SAVE20", 20, date(2026, 12, 31))
        carts.add_item("alice", "mug", 4, "blue")
        carts.apply_coupon("alice", "SAVE20")

        order = orchestrator.checkout("alice", "cod").order
        assert order.coupon_code == "SAVE20"
        assert order.total_after_discount == 80.00
        assert order.payment_status == PaymentStatus.PENDING
        assert carts.get_cart("alice").applied_coupon is None

    def test_coupon_expired_before_checkout(self, orchestrator, carts, coupons, clock):
        insert_coupon(coupons, "TODAY", 20, date(2026, 3, 1))
        carts.add_item("alice", "mug", 4, "blue")
        carts.apply_coupon("alice", "TODAY")
        clock.advance(days=1)

        order = orchestrator.checkout("alice", "cod").order
        assert order.coupon_code is None
        assert order.total_after_discount is None

    def test_order_is_a_snapshot(self, orchestrator, carts, products, orders):
        carts.add_item("alice", "mug", 2, "blue")
        order = orchestrator.checkout("alice", "cod").order

        products.update_price("mug", 99.00)
        carts.add_item("alice", "mug", 5, "red")

        stored = orders.get_order(order.order_id)
        assert [(i.count, i.variant, i.unit_price) for i in stored.items] == [(2, "blue", 25.00)]
        assert stored.subtotal == 50.00


class TestRejectedCheckout:
    def test_no_cart(self, orchestrator, orders):
        with pytest.raises(EmptyCartError):
            orchestrator.checkout("alice", "cod")
        assert orders.orders == {}

    def test_emptied_cart(self, orchestrator, carts, orders):
        carts.add_item("alice", "mug", 1, "blue")
        carts.remove_item("alice", "mug")
        with pytest.raises(EmptyCartError):
            orchestrator.checkout("alice", "cod")
        assert orders.orders == {}

    @pytest.mark.parametrize("method,confirmation", [("card", None), ("paypal", "x"), (None, None)])
    def test_bad_payment(self, orchestrator, carts, products, orders, method, confirmation):
        carts.add_item("alice", "mug", 1, "blue")
        with pytest.raises(InvalidArgumentError):
            orchestrator.checkout("alice", method, confirmation)
        assert orders.orders == {}
        assert quantity(products, "mug") == 10
        assert len(carts.get_cart("alice").items) == 1

    def test_shortage_changes_nothing(self, orchestrator, carts, products, orders):
        carts.add_item("alice", "mug", 2, "blue")
        carts.add_item("alice", "lamp", 6, "white")
        before = carts.get_cart("alice")

        with pytest.raises(InsufficientStockError) as exc_info:
            orchestrator.checkout("alice", "cod")

        assert [s.product_id for s in exc_info.value.shortages] == ["lamp"]
        assert quantity(products, "mug") == 10
        assert quantity(products, "lamp") == 5
        assert orders.orders == {}
        after = carts.get_cart("alice")
        assert after.items == before.items
        assert after.cart_total == before.cart_total


class TestCompensation:
    def test_order_timeout_releases_stock(self, orchestrator, carts, products, orders, monkeypatch):
        carts.add_item("alice", "mug", 3, "blue")

        def timed_out(**kwargs):
            raise TimeoutError("order ledger busy")

        monkeypatch.setattr(orders, "create_order", timed_out)
        with pytest.raises(OutcomeUnknownError) as exc_info:
            orchestrator.checkout("alice", "cod", idempotency_token="tok-1")

        assert exc_info.value.idempotency_token == "tok-1"
        assert quantity(products, "mug") == 10
        assert len(carts.get_cart("alice").items) == 1
        reservations = list(orchestrator.inventory.reservations.values())
        assert [r.status for r in reservations] == [ReservationStatus.RELEASED]

    def test_retry_after_unknown_outcome(self, orchestrator, carts, products, orders, monkeypatch):
        carts.add_item("alice", "mug", 3, "blue")
        real_create = orders.create_order
        calls = []

        def flaky(**kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                raise TimeoutError("order ledger busy")
            return real_create(**kwargs)

        monkeypatch.setattr(orders, "create_order", flaky)
        with pytest.raises(OutcomeUnknownError):
            orchestrator.checkout("alice", "cod", idempotency_token="tok-1")

        result = orchestrator.checkout("alice", "cod", idempotency_token="tok-1")
        assert result.replayed is False
        assert len(orders.orders) == 1
        assert quantity(products, "mug") == 7

    def test_stalled_release_is_finished_on_retry(
        self, orchestrator, carts, products, orders, monkeypatch
    ):
        carts.add_item("alice", "mug", 2, "blue")
        carts.add_item("alice", "lamp", 1, "white")
        products.lock_timeout = 0.05
        lamp_lock = products._lock_for("lamp")
        real_create = orders.create_order

        def stalled(**kwargs):
            lamp_lock.acquire()
            raise TimeoutError("order ledger busy")

        monkeypatch.setattr(orders, "create_order", stalled)
        try:
            with pytest.raises(OutcomeUnknownError) as exc_info:
                orchestrator.checkout("alice", "cod", idempotency_token="tok-1")
        finally:
            lamp_lock.release()

        assert exc_info.value.step == "order creation"
        assert quantity(products, "mug") == 10
        assert quantity(products, "lamp") == 4
        assert len(orchestrator.inventory.pending) == 1

        monkeypatch.setattr(orders, "create_order", real_create)
        result = orchestrator.checkout("alice", "cod", idempotency_token="tok-1")

        assert result.replayed is False
        assert orchestrator.inventory.pending == set()
        assert len(orders.orders) == 1
        assert quantity(products, "mug") == 8
        assert quantity(products, "lamp") == 4

    def test_reconcile_returns_pending_stock(
        self, orchestrator, carts, products, orders, monkeypatch
    ):
        carts.add_item("alice", "lamp", 2, "white")
        products.lock_timeout = 0.05
        lamp_lock = products._lock_for("lamp")

        def stalled(**kwargs):
            lamp_lock.acquire()
            raise RuntimeError("disk full")

        monkeypatch.setattr(orders, "create_order", stalled)
        try:
            with pytest.raises(RuntimeError):
                orchestrator.checkout("alice", "cod")
        finally:
            lamp_lock.release()

        assert quantity(products, "lamp") == 3
        pending = set(orchestrator.inventory.pending)
        assert orchestrator.reconcile() == sorted(pending)
        assert quantity(products, "lamp") == 5

    def test_order_failure_releases_stock(self, orchestrator, carts, products, monkeypatch):
        carts.add_item("alice", "mug", 3, "blue")

        def broken(**kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(orchestrator.orders, "create_order", broken)
        with pytest.raises(RuntimeError):
            orchestrator.checkout("alice", "cod", idempotency_token="tok-2")

        assert quantity(products, "mug") == 10
        assert "tok-2" not in orchestrator.tokens.records

    def test_reservation_timeout_is_unknown(self, orchestrator, carts, products):
        carts.add_item("alice", "mug", 1, "blue")
        carts.add_item("alice", "lamp", 1, "white")
        products.lock_timeout = 0.05
        held = products._lock_for("lamp")
        held.acquire()
        try:
            with pytest.raises(OutcomeUnknownError) as exc_info:
                orchestrator.checkout("alice", "cod")
        finally:
            held.release()

        assert exc_info.value.step == "inventory reservation"
        assert quantity(products, "mug") == 10

    def test_cart_lock_timeout_is_unknown(self, orchestrator, carts, orders):
        carts.add_item("alice", "mug", 1, "blue")
        carts.lock_timeout = 0.05
        holding = threading.Event()
        done = threading.Event()

        def hold():
            with carts.locked("alice"):
                holding.set()
                done.wait(2)

        holder = threading.Thread(target=hold)
        holder.start()
        holding.wait(2)
        try:
            with pytest.raises(OutcomeUnknownError) as exc_info:
                orchestrator.checkout("alice", "cod")
        finally:
            done.set()
            holder.join()

        assert exc_info.value.step == "cart lock"
        assert orders.orders == {}


class TestIdempotency:
    def test_replay_returns_same_order(self, orchestrator, carts, products, orders):
        carts.add_item("alice", "mug", 2, "blue")
        first = orchestrator.checkout("alice", "card", "txn-1", idempotency_token="tok")
        second = orchestrator.checkout("alice", "card", "txn-1", idempotency_token="tok")

        assert second.replayed is True
        assert second.order.order_id == first.order.order_id
        assert len(orders.orders) == 1
        assert quantity(products, "mug") == 8

    def test_different_payload_conflicts(self, orchestrator, carts):
        carts.add_item("alice", "mug", 2, "blue")
        orchestrator.checkout("alice", "card", "txn-1", idempotency_token="tok")
        with pytest.raises(ConflictError):
            orchestrator.checkout("alice", "cod", idempotency_token="tok")

    def test_other_shopper_conflicts(self, orchestrator, carts):
        carts.add_item("alice", "mug", 2, "blue")
        orchestrator.checkout("alice", "cod", idempotency_token="tok")
        with pytest.raises(ConflictError):
            orchestrator.checkout("bob", "cod", idempotency_token="tok")

    def test_in_flight_conflicts(self, orchestrator, carts, orders):
        carts.add_item("alice", "mug", 2, "blue")
        orchestrator.tokens.begin("tok", "alice", ("cod", None))
        with pytest.raises(ConflictError):
            orchestrator.checkout("alice", "cod", idempotency_token="tok")
        assert orders.orders == {}

    def test_failed_attempt_frees_token(self, orchestrator, carts):
        with pytest.raises(EmptyCartError):
            orchestrator.checkout("alice", "cod", idempotency_token="tok")
        carts.add_item("alice", "mug", 1, "blue")
        assert orchestrator.checkout("alice", "cod", idempotency_token="tok").replayed is False

    def test_deleted_order_conflicts(self, orchestrator, carts, orders):
        carts.add_item("alice", "mug", 1, "blue")
        order = orchestrator.checkout("alice", "cod", idempotency_token="tok").order
        orders.delete_order(order.order_id)
        with pytest.raises(ConflictError):
            orchestrator.checkout("alice", "cod", idempotency_token="tok")

    def test_completed_token_expires(self, carts, inventory, orders, clock):
        tokens = IdempotencyRegistry(clock=clock, ttl_seconds=60)
        orchestrator = CheckoutOrchestrator(carts, inventory, orders, tokens=tokens, clock=clock)
        carts.add_item("alice", "mug", 1, "blue")
        first = orchestrator.checkout("alice", "cod", idempotency_token="tok")
        assert orchestrator.checkout("alice", "cod", idempotency_token="tok").replayed is True

        clock.advance(seconds=61)
        carts.add_item("alice", "mug", 1, "blue")
        second = orchestrator.checkout("alice", "cod", idempotency_token="tok")

        assert second.replayed is False
        assert second.order.order_id != first.order.order_id
        assert list(tokens.records) == ["tok"]

    def test_unknown_token_outlives_ttl(self, clock):
        tokens = IdempotencyRegistry(clock=clock, ttl_seconds=60)
        tokens.begin("stuck", "alice", ("cod", None))
        tokens.mark_unknown("stuck")
        clock.advance(hours=2)
        tokens.begin("other", "bob", ("cod", None))
        assert set(tokens.records) == {"stuck", "other"}

    def test_without_token_places_again(self, orchestrator, carts, orders):
        carts.add_item("alice", "mug", 1, "blue")
        orchestrator.checkout("alice", "cod")
        carts.add_item("alice", "mug", 1, "blue")
        orchestrator.checkout("alice", "cod")
        assert len(orders.orders) == 2


class TestCancellation:
    def test_cancel_returns_stock(self, orchestrator, carts, products):
        carts.add_item("alice", "mug", 4, "blue")
        order = orchestrator.checkout("alice", "cod").order
        assert quantity(products, "mug") == 6

        cancelled = orchestrator.cancel_order(order.order_id, Requester("alice"))
        assert cancelled.order_status == OrderStatus.CANCELLED
        assert quantity(products, "mug") == 10

    def test_operator_cancel_via_status(self, orchestrator, carts, products):
        carts.add_item("alice", "lamp", 2, "white")
        order = orchestrator.checkout("alice", "cod").order
        orchestrator.update_order_status(order.order_id, "processed")
        orchestrator.update_order_status(order.order_id, "cancelled")
        assert quantity(products, "lamp") == 5

    def test_forward_status_keeps_stock(self, orchestrator, carts, products):
        carts.add_item("alice", "lamp", 2, "white")
        order = orchestrator.checkout("alice", "cod").order
        orchestrator.update_order_status(order.order_id, "processed")
        assert quantity(products, "lamp") == 3

    def test_cancel_after_dispatch_rejected(self, orchestrator, carts, products):
        carts.add_item("alice", "lamp", 2, "white")
        order = orchestrator.checkout("alice", "cod").order
        orchestrator.update_order_status(order.order_id, "processed")
        orchestrator.update_order_status(order.order_id, "dispatched")
        with pytest.raises(InvalidTransitionError):
            orchestrator.cancel_order(order.order_id, Requester("alice"))
        assert quantity(products, "lamp") == 3

    def test_unknown_status(self, orchestrator, carts):
        carts.add_item("alice", "lamp", 1, "white")
        order = orchestrator.checkout("alice", "cod").order
        with pytest.raises(InvalidArgumentError):
            orchestrator.update_order_status(order.order_id, "lost")


class TestConcurrentCheckout:
    def test_last_unit_sold_once(self, orchestrator, carts, products, orders):
        carts.add_item("alice", "poster", 1, "a2")
        carts.add_item("bob", "poster", 1, "a2")
        barrier = threading.Barrier(2)

        def attempt(shopper_id):
            barrier.wait()
            try:
                orchestrator.checkout(shopper_id, "cod")
                return "ok"
            except InsufficientStockError:
                return "short"

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(attempt, ["alice", "bob"]))

        assert sorted(results) == ["ok", "short"]
        assert quantity(products, "poster") == 0
        assert len(orders.orders) == 1

    def test_same_shopper_twice(self, orchestrator, carts, orders):
        carts.add_item("alice", "mug", 1, "blue")
        barrier = threading.Barrier(2)

        def attempt(_):
            barrier.wait()
            try:
                orchestrator.checkout("alice", "cod")
                return "ok"
            except EmptyCartError:
                return "empty"

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(attempt, range(2)))

        assert sorted(results) == ["empty", "ok"]
        assert len(orders.orders) == 1
