"""Custom exceptions for the checkout service."""

from typing import Optional


class CheckoutError(Exception):
    """Base exception for all checkout service errors."""

    pass


class InvalidArgumentError(CheckoutError):
    """Raised when input is malformed or missing."""

    pass


class NotFoundError(CheckoutError):
    """Raised when a referenced cart, coupon, product or order doesn't exist."""

    def __init__(self, kind: str, ref: Optional[str] = None, message: Optional[str] = None):
        self.kind = kind
        self.ref = ref
        if message is None:
            message = f"{kind} not found" if ref is None else f"{kind} not found: {ref}"
        super().__init__(message)


class CouponExpiredError(CheckoutError):
    """Raised when a coupon is past its validity."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Coupon {code} is expired")


class EmptyCartError(CheckoutError):
    """Raised when an operation needs line items and the cart has none."""

    def __init__(self, message: str = "Your cart is empty"):
        super().__init__(message)


class InsufficientStockError(CheckoutError):
    """Raised when one or more products can't cover the requested count."""

    def __init__(self, shortages: list):
        self.shortages = shortages
        products = ", ".join(s.product_id for s in shortages)
        super().__init__(f"Insufficient stock for product(s): {products}")


class InvalidTransitionError(CheckoutError):
    """Raised on an illegal order or payment status change."""

    def __init__(self, field: str, current: str, requested: str):
        self.field = field
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change {field} from {current} to {requested}")


class ForbiddenError(CheckoutError):
    """Raised when the requester may not act on a resource."""

    pass


class ConflictError(CheckoutError):
    """Raised on duplicate codes or reused idempotency tokens."""

    pass


class OutcomeUnknownError(CheckoutError):
    """Raised when a checkout step timed out and its effect was reconciled.

    The caller should retry with the same idempotency token rather than
    submitting a fresh checkout.
    """

    def __init__(self, step: str, idempotency_token: Optional[str] = None):
        self.step = step
        self.idempotency_token = idempotency_token
        super().__init__(
            f"Checkout outcome unknown: {step} timed out. "
            "Retry with the same idempotency token."
        )
