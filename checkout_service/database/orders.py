"""Order storage for the checkout service"""

import logging
import math
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional, Sequence

from ..core.config import settings
from ..errors import (
    ForbiddenError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
)
from ..models.checkout import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus
from ..models.identity import Requester

logger = logging.getLogger(__name__)

# Forward progression, one step at a time
NEXT_STATUS: dict[OrderStatus, OrderStatus] = {
    OrderStatus.NOT_PROCESSED: OrderStatus.PROCESSED,
    OrderStatus.PROCESSED: OrderStatus.DISPATCHED,
    OrderStatus.DISPATCHED: OrderStatus.DELIVERED,
}

CANCELLABLE_STATUSES = frozenset({OrderStatus.NOT_PROCESSED, OrderStatus.PROCESSED})

# Payment methods that need a confirmation from the gateway before ordering
CONFIRMATION_REQUIRED = frozenset({PaymentMethod.CARD})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Whether the order lifecycle allows moving from ``current`` to ``new``"""
    if new == OrderStatus.CANCELLED:
        return current in CANCELLABLE_STATUSES
    return NEXT_STATUS.get(current) == new


def parse_payment(
    payment_method: Optional[str],
    payment_confirmation: Optional[str] = None,
) -> PaymentMethod:
    """
    Validate a payment method and its confirmation.

    Raises:
        InvalidArgumentError: unknown method, or a card payment without
            confirmation
    """
    try:
        method = PaymentMethod(payment_method)
    except ValueError:
        raise InvalidArgumentError(f"Invalid payment method: {payment_method}") from None

    if method in CONFIRMATION_REQUIRED and not payment_confirmation:
        raise InvalidArgumentError(
            f"Payment confirmation is required for {method.value} payments"
        )
    return method


def parse_order_status(status: Optional[str]) -> OrderStatus:
    try:
        return OrderStatus(status)
    except ValueError:
        raise InvalidArgumentError(f"Invalid order status: {status}") from None


class OrderDatabase:
    """In-memory order ledger"""

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        lock_timeout: Optional[float] = None,
    ):
        self.clock = clock
        self.lock_timeout = settings.lock_timeout_seconds if lock_timeout is None else lock_timeout
        self._lock = threading.Lock()
        self.orders: dict[str, Order] = {}

    def reset(self) -> None:
        with self._lock:
            self.orders = {}

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise TimeoutError("Timed out waiting for the order ledger")
        try:
            yield
        finally:
            self._lock.release()

    def create_order(
        self,
        shopper_id: str,
        items: Sequence[OrderItem],
        payment_method: Optional[str],
        payment_confirmation: Optional[str] = None,
        subtotal: float = 0.0,
        coupon_code: Optional[str] = None,
        total_after_discount: Optional[float] = None,
        reservation_id: Optional[str] = None,
        idempotency_token: Optional[str] = None,
    ) -> Order:
        """Create an order from a snapshot of line items"""
        method = parse_payment(payment_method, payment_confirmation)
        if not items:
            raise InvalidArgumentError("An order needs at least one item")

        now = self.clock()
        order = Order(
            order_id=uuid.uuid4().hex,
            tracking_id=str(uuid.uuid4()),
            shopper_id=shopper_id,
            items=tuple(OrderItem(**item.model_dump()) for item in items),
            payment_method=method,
            payment_confirmation=payment_confirmation,
            payment_status=(
                PaymentStatus.COMPLETED if method in CONFIRMATION_REQUIRED else PaymentStatus.PENDING
            ),
            order_status=OrderStatus.NOT_PROCESSED,
            subtotal=subtotal,
            coupon_code=coupon_code,
            total_after_discount=total_after_discount,
            reservation_id=reservation_id,
            idempotency_token=idempotency_token,
            created_at=now,
            updated_at=now,
        )

        with self._locked():
            self.orders[order.order_id] = order
        return order.model_copy()

    def get_order(self, order_id: str) -> Optional[Order]:
        """Get a copy of an order by ID"""
        order = self.orders.get(order_id)
        return order.model_copy() if order else None

    def get_order_for(self, order_id: str, requester: Requester) -> Order:
        """Get an order the requester owns, or any order for an operator"""
        order = self._require(order_id)
        if not requester.may_access(order.shopper_id):
            raise ForbiddenError("You are not authorized to view this order")
        return order.model_copy()

    def tracking(self, order_id: str, requester: Requester) -> tuple[str, OrderStatus]:
        """Tracking ID and status of an order"""
        order = self._require(order_id)
        if not requester.may_access(order.shopper_id):
            raise ForbiddenError("You are not authorized to track this order")
        return order.tracking_id, order.order_status

    def update_status(self, order_id: str, new_status: OrderStatus) -> Order:
        """Move an order through its lifecycle"""
        with self._locked():
            order = self._require(order_id)
            if not can_transition(order.order_status, new_status):
                raise InvalidTransitionError(
                    "order status", order.order_status.value, new_status.value
                )
            order.order_status = new_status
            order.updated_at = self.clock()
            logger.info(f"Order {order_id} moved to {new_status.value}")
            return order.model_copy()

    def cancel(self, order_id: str, requester: Requester) -> Order:
        """Cancel an order on behalf of its owner or an operator"""
        with self._locked():
            order = self._require(order_id)
            if not requester.may_access(order.shopper_id):
                raise ForbiddenError("You are not authorized to cancel this order")
            if order.order_status not in CANCELLABLE_STATUSES:
                raise InvalidTransitionError(
                    "order status", order.order_status.value, OrderStatus.CANCELLED.value
                )
            order.order_status = OrderStatus.CANCELLED
            order.updated_at = self.clock()
            logger.info(f"Order {order_id} cancelled")
            return order.model_copy()

    def update_payment_status(self, order_id: str, status: Optional[str]) -> Order:
        """Settle the payment of a cash-on-delivery order"""
        try:
            new_status = PaymentStatus(status)
        except ValueError:
            raise InvalidArgumentError(f"Invalid payment status: {status}") from None
        if new_status == PaymentStatus.PENDING:
            raise InvalidArgumentError("Payment status can only be set to completed or failed")

        with self._locked():
            order = self._require(order_id)
            if order.payment_method != PaymentMethod.COD:
                raise InvalidArgumentError("Payment status can only be updated for COD orders")
            if order.payment_status != PaymentStatus.PENDING:
                raise InvalidTransitionError(
                    "payment status", order.payment_status.value, new_status.value
                )
            order.payment_status = new_status
            order.updated_at = self.clock()
            return order.model_copy()

    def list_orders(
        self,
        shopper_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Order], int, int]:
        """
        List orders, newest first.

        Returns:
            Tuple of (page of orders, total matching, number of pages)
        """
        if page < 1 or limit < 1:
            raise InvalidArgumentError("page and limit must be positive")

        orders = list(self.orders.values())
        if shopper_id:
            orders = [o for o in orders if o.shopper_id == shopper_id]
        if status:
            orders = [o for o in orders if o.order_status == status]
        orders.sort(key=lambda o: o.created_at, reverse=True)

        total = len(orders)
        pages = math.ceil(total / limit) if total else 0
        start = (page - 1) * limit
        return [o.model_copy() for o in orders[start : start + limit]], total, pages

    def delete_order(self, order_id: str) -> None:
        """Administrative deletion"""
        with self._locked():
            self._require(order_id)
            del self.orders[order_id]
        logger.info(f"Order {order_id} deleted")

    def _require(self, order_id: str) -> Order:
        order = self.orders.get(order_id)
        if not order:
            raise NotFoundError("Order", order_id)
        return order


# Singleton instance
order_db = OrderDatabase()
