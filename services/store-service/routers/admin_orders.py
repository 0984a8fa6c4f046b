"""Administrative orders API router."""
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from auth import Actor, require_admin
from config import DEFAULT_PAGE_SIZE
from database import get_db
from dependencies import get_order_service
from models import OrderStatus
from schemas import OrderResponse, PagedResponse, UpdateOrderStatusRequest
from services.order_service import OrderService

router = APIRouter(prefix="/api/admin/orders", tags=["admin"])


@router.get("", response_model=PagedResponse[OrderResponse])
async def list_orders(
    page_number: int = Query(1),
    page_size: int = Query(DEFAULT_PAGE_SIZE),
    status: Optional[str] = Query(None, description="Pending, Completed or Cancelled"),
    customer_id: Optional[uuid.UUID] = Query(None),
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    """List all orders, newest first."""
    orders, total = order_service.list_orders(db, page_number, page_size, status, customer_id)
    return PagedResponse[OrderResponse].build(
        order_service.describe_orders(db, orders), total, page_number, page_size
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    order = order_service.get_order(db, order_id, admin.user_id, is_admin=True)
    return order_service.describe_order(db, order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    """Cancel any pending order."""
    order = await order_service.cancel_order(db, order_id, admin.user_id, is_admin=True)
    return order_service.describe_order(db, order)


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    request: UpdateOrderStatusRequest,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    """Set an order's status; moving to Cancelled restores stock."""
    order = order_service.update_order_status(db, order_id, OrderStatus.parse(request.status))
    return order_service.describe_order(db, order)
