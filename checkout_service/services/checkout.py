"""
Checkout Orchestrator

Turns a shopper's cart into an order:

    cart snapshot -> reserve stock -> create order -> clear cart

Every forward step after the stock reservation is paired with a release of
that reservation, so a failed checkout leaves inventory as it found it. A
release that times out stays pending in the ledger and is finished before
the next checkout runs.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from ..core.config import settings
from ..database.carts import CartDatabase, cart_db
from ..database.orders import OrderDatabase, order_db, parse_order_status, parse_payment
from ..errors import ConflictError, EmptyCartError, NotFoundError, OutcomeUnknownError
from ..models.checkout import Order, OrderItem, OrderStatus
from ..models.identity import Requester
from .inventory import InventoryLedger, inventory_ledger
from .pricing import recompute

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenState(str, Enum):
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    UNKNOWN = "unknown"


@dataclass
class IdempotencyRecord:
    """What a checkout token was first used for, and how it ended"""
    token: str
    shopper_id: str
    fingerprint: tuple
    state: TokenState = TokenState.IN_FLIGHT
    order_id: Optional[str] = None
    completed_at: Optional[datetime] = None


class IdempotencyRegistry:
    """Maps checkout idempotency tokens to the order they produced.

    Completed tokens are kept for ``ttl_seconds`` and then forgotten; a token
    reused after that starts a new checkout. Unknown-outcome tokens are kept
    until a retry resolves them.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        ttl_seconds: Optional[float] = None,
    ):
        self.clock = clock
        self.ttl = timedelta(
            seconds=settings.idempotency_ttl_seconds if ttl_seconds is None else ttl_seconds
        )
        self._lock = threading.Lock()
        self.records: dict[str, IdempotencyRecord] = {}

    def reset(self) -> None:
        with self._lock:
            self.records = {}

    def begin(self, token: str, shopper_id: str, fingerprint: tuple) -> Optional[str]:
        """
        Claim a token for a checkout attempt.

        Returns:
            The order ID when the token already completed a checkout,
            otherwise None and the token is marked in flight.

        Raises:
            ConflictError: token used for a different request, or a checkout
                with it is still running
        """
        with self._lock:
            self._evict_expired()
            record = self.records.get(token)
            if record is None:
                self.records[token] = IdempotencyRecord(
                    token=token, shopper_id=shopper_id, fingerprint=fingerprint
                )
                return None

            if record.shopper_id != shopper_id or record.fingerprint != fingerprint:
                raise ConflictError("Idempotency token was already used for a different request")
            if record.state == TokenState.COMPLETED:
                return record.order_id
            if record.state == TokenState.IN_FLIGHT:
                raise ConflictError("A checkout with this idempotency token is already in progress")

            # Unknown outcome was reconciled, run again
            record.state = TokenState.IN_FLIGHT
            return None

    def complete(self, token: str, order_id: str) -> None:
        with self._lock:
            record = self.records[token]
            record.state = TokenState.COMPLETED
            record.order_id = order_id
            record.completed_at = self.clock()

    def mark_unknown(self, token: str) -> None:
        with self._lock:
            self.records[token].state = TokenState.UNKNOWN

    def forget(self, token: str) -> None:
        with self._lock:
            self.records.pop(token, None)

    def _evict_expired(self) -> None:
        cutoff = self.clock() - self.ttl
        expired = [
            token
            for token, record in self.records.items()
            if record.state == TokenState.COMPLETED and record.completed_at <= cutoff
        ]
        for token in expired:
            del self.records[token]


@dataclass(frozen=True)
class CheckoutResult:
    order: Order
    replayed: bool = False


class CheckoutOrchestrator:
    """Coordinates Cart Store, Inventory Ledger and Order Ledger"""

    def __init__(
        self,
        carts: CartDatabase,
        inventory: InventoryLedger,
        orders: OrderDatabase,
        tokens: Optional[IdempotencyRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.carts = carts
        self.inventory = inventory
        self.orders = orders
        self.tokens = tokens or IdempotencyRegistry(clock=clock)
        self.clock = clock

    def checkout(
        self,
        shopper_id: str,
        payment_method: Optional[str],
        payment_confirmation: Optional[str] = None,
        idempotency_token: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Commit the shopper's cart into an order.

        Raises:
            EmptyCartError: no cart or no line items
            InvalidArgumentError: bad payment method or missing confirmation
            InsufficientStockError: stock could not cover the cart
            ConflictError: idempotency token reused for another request
            OutcomeUnknownError: a step timed out; retry with the same token
        """
        if idempotency_token:
            fingerprint = (payment_method, payment_confirmation)
            order_id = self.tokens.begin(idempotency_token, shopper_id, fingerprint)
            if order_id is not None:
                order = self.orders.get_order(order_id)
                if order is None:
                    raise ConflictError("The order placed with this idempotency token was deleted")
                logger.info(f"Checkout replayed for token {idempotency_token}: order {order_id}")
                return CheckoutResult(order=order, replayed=True)

        try:
            order = self._run(shopper_id, payment_method, payment_confirmation, idempotency_token)
        except OutcomeUnknownError:
            if idempotency_token:
                self.tokens.mark_unknown(idempotency_token)
            raise
        except Exception:
            if idempotency_token:
                self.tokens.forget(idempotency_token)
            raise

        if idempotency_token:
            self.tokens.complete(idempotency_token, order.order_id)
        return CheckoutResult(order=order)

    def reconcile(self) -> list[str]:
        """Finish stock releases that timed out during earlier checkouts"""
        released = self.inventory.release_pending()
        for reservation_id in released:
            logger.info(f"Reconciled pending reservation {reservation_id}")
        return released

    def _run(
        self,
        shopper_id: str,
        payment_method: Optional[str],
        payment_confirmation: Optional[str],
        idempotency_token: Optional[str],
    ) -> Order:
        self.reconcile()

        locked = False
        try:
            with self.carts.locked(shopper_id):
                locked = True
                order = self._place(
                    shopper_id, payment_method, payment_confirmation, idempotency_token
                )
        except TimeoutError as exc:
            # Steps inside _place report their own timeouts
            step = "checkout" if locked else "cart lock"
            raise OutcomeUnknownError(step, idempotency_token) from exc

        logger.info(
            f"Order {order.order_id} created for shopper {shopper_id}: "
            f"{len(order.items)} item(s), {order.payment_method.value}"
        )
        return order

    def _place(
        self,
        shopper_id: str,
        payment_method: Optional[str],
        payment_confirmation: Optional[str],
        idempotency_token: Optional[str],
    ) -> Order:
        cart = self.carts.get_cart(shopper_id)
        if not cart or not cart.items:
            raise EmptyCartError()

        parse_payment(payment_method, payment_confirmation)

        pricing = recompute(cart.items, cart.applied_coupon, self.clock())
        coupon_code = (
            cart.applied_coupon.code if pricing.total_after_discount is not None else None
        )
        snapshot = [
            OrderItem(
                product_id=item.product_id,
                count=item.count,
                variant=item.variant,
                unit_price=item.unit_price,
            )
            for item in cart.items
        ]

        try:
            reservation = self.inventory.reserve_and_decrement(
                (item.product_id, item.count) for item in snapshot
            )
        except TimeoutError as exc:
            logger.warning(f"Stock reservation timed out for shopper {shopper_id}")
            raise OutcomeUnknownError("inventory reservation", idempotency_token) from exc

        try:
            order = self.orders.create_order(
                shopper_id=shopper_id,
                items=snapshot,
                payment_method=payment_method,
                payment_confirmation=payment_confirmation,
                subtotal=pricing.subtotal,
                coupon_code=coupon_code,
                total_after_discount=pricing.total_after_discount,
                reservation_id=reservation.reservation_id,
                idempotency_token=idempotency_token,
            )
        except TimeoutError as exc:
            logger.warning(f"Order creation timed out for shopper {shopper_id}")
            self._compensate(reservation.reservation_id)
            raise OutcomeUnknownError("order creation", idempotency_token) from exc
        except Exception:
            logger.warning(f"Order creation failed for shopper {shopper_id}")
            self._compensate(reservation.reservation_id)
            raise

        self.carts.clear_cart(shopper_id)
        return order

    def _compensate(self, reservation_id: str) -> None:
        """Release a reservation; a timed out release stays pending in the ledger"""
        try:
            self.inventory.release(reservation_id)
        except TimeoutError:
            logger.warning(f"Reservation {reservation_id} left pending for reconciliation")
            return
        logger.info(f"Released reservation {reservation_id}")

    def cancel_order(self, order_id: str, requester: Requester) -> Order:
        """Cancel an order and return its stock"""
        order = self.orders.cancel(order_id, requester)
        self._release_stock(order)
        return order

    def update_order_status(self, order_id: str, status: Optional[str]) -> Order:
        """Operator status change; cancelling returns the order's stock"""
        order = self.orders.update_status(order_id, parse_order_status(status))
        if order.order_status == OrderStatus.CANCELLED:
            self._release_stock(order)
        return order

    def _release_stock(self, order: Order) -> None:
        if not order.reservation_id:
            return
        try:
            self._compensate(order.reservation_id)
        except NotFoundError:
            logger.warning(
                f"Order {order.order_id} has no reservation on record, stock not returned"
            )


# Singleton instance
checkout_orchestrator = CheckoutOrchestrator(cart_db, inventory_ledger, order_db)
