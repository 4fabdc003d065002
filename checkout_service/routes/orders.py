"""Checkout and order API routes"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ..models.checkout import (
    CheckoutRequest,
    Order,
    OrderListResponse,
    TrackingResponse,
    UpdateOrderStatusRequest,
    UpdatePaymentStatusRequest,
)
from ..models.identity import Requester
from ..database.orders import order_db, parse_order_status
from ..services.checkout import checkout_orchestrator
from ..security.identity import require_operator, require_shopper

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.post("", response_model=Order, status_code=201)
def checkout(
    request: CheckoutRequest,
    response: Response,
    shopper: Requester = Depends(require_shopper),
):
    """
    Check out the caller's cart.

    A retried request carrying the same idempotency_token returns the order
    placed by the first attempt with status 200.
    """
    result = checkout_orchestrator.checkout(
        shopper.shopper_id,
        request.payment_method,
        payment_confirmation=request.payment_confirmation,
        idempotency_token=request.idempotency_token,
    )
    if result.replayed:
        response.status_code = 200
    return result.order


@router.get("", response_model=OrderListResponse)
def list_orders(
    shopper_id: Optional[str] = Query(None, description="Only orders of this shopper"),
    status: Optional[str] = Query(None, description="Only orders in this status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    operator: Requester = Depends(require_operator),
):
    """List orders, newest first (operator only)"""
    order_status = parse_order_status(status) if status else None
    orders, total, pages = order_db.list_orders(
        shopper_id=shopper_id,
        status=order_status,
        page=page,
        limit=limit,
    )
    return OrderListResponse(orders=orders, total=total, page=page, pages=pages)


@router.get("/{order_id}", response_model=Order)
def get_order(
    order_id: str,
    shopper: Requester = Depends(require_shopper),
):
    """Get order details"""
    return order_db.get_order_for(order_id, shopper)


@router.get("/{order_id}/tracking", response_model=TrackingResponse)
def track_order(
    order_id: str,
    shopper: Requester = Depends(require_shopper),
):
    """Tracking number and status of an order"""
    tracking_id, order_status = order_db.tracking(order_id, shopper)
    return TrackingResponse(tracking_id=tracking_id, order_status=order_status)


@router.patch("/{order_id}/status", response_model=Order)
def update_order_status(
    order_id: str,
    request: UpdateOrderStatusRequest,
    operator: Requester = Depends(require_operator),
):
    """Move an order through its lifecycle (operator only)"""
    order = checkout_orchestrator.update_order_status(order_id, request.status)
    logger.info(f"Operator {operator.shopper_id} set order {order_id} to {order.order_status.value}")
    return order


@router.patch("/{order_id}/cancel", response_model=Order)
def cancel_order(
    order_id: str,
    shopper: Requester = Depends(require_shopper),
):
    """Cancel an order that has not been dispatched"""
    return checkout_orchestrator.cancel_order(order_id, shopper)


@router.patch("/{order_id}/payment-status", response_model=Order)
def update_payment_status(
    order_id: str,
    request: UpdatePaymentStatusRequest,
    operator: Requester = Depends(require_operator),
):
    """Settle a cash-on-delivery payment (operator only)"""
    return order_db.update_payment_status(order_id, request.status)


@router.delete("/{order_id}")
def delete_order(
    order_id: str,
    operator: Requester = Depends(require_operator),
):
    """Delete an order (operator only)"""
    order_db.delete_order(order_id)
    return {"message": "Order deleted"}
