"""Orders API router."""
import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from opentelemetry import trace

from auth import Actor, get_current_actor, require_customer
from database import get_db
from dependencies import get_order_service
from schemas import OrderResponse, PlaceOrderRequest
from services.order_service import OrderLine, OrderService

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def place_order(
    request: PlaceOrderRequest,
    db: Session = Depends(get_db),
    customer: Actor = Depends(require_customer),
    order_service: OrderService = Depends(get_order_service)
):
    """Place an order for the authenticated customer."""
    order = await order_service.place_order(
        db,
        customer.user_id,
        [OrderLine(item.product_id, item.quantity) for item in request.items]
    )
    trace.get_current_span().set_attribute("order.id", str(order.id))
    return order_service.describe_order(db, order)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    order_service: OrderService = Depends(get_order_service)
):
    """Get an order owned by the caller (any order for administrators)."""
    order = order_service.get_order(db, order_id, actor.user_id, actor.is_admin)
    return order_service.describe_order(db, order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    order_service: OrderService = Depends(get_order_service)
):
    """Cancel a pending order and restore its stock."""
    order = await order_service.cancel_order(db, order_id, actor.user_id, actor.is_admin)
    return order_service.describe_order(db, order)
