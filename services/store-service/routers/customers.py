"""Customer profile API router."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from auth import Actor, require_customer
from config import DEFAULT_PAGE_SIZE
from database import get_db
from dependencies import get_auth_service, get_order_service
from schemas import OrderResponse, PagedResponse, UpdateProfileRequest, UserResponse
from services.auth_service import AuthService
from services.order_service import OrderService

router = APIRouter(prefix="/api/customers", tags=["customers"])


@router.get("/me", response_model=UserResponse)
async def get_profile(
    db: Session = Depends(get_db),
    customer: Actor = Depends(require_customer),
    auth_service: AuthService = Depends(get_auth_service)
):
    return auth_service.get_profile(db, customer.user_id)


@router.put("/me", response_model=UserResponse)
async def update_profile(
    request: UpdateProfileRequest,
    db: Session = Depends(get_db),
    customer: Actor = Depends(require_customer),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Update the caller's name, email and optionally password."""
    return auth_service.update_profile(
        db, customer.user_id, request.name, request.email, request.password
    )


@router.get("/me/orders", response_model=PagedResponse[OrderResponse])
async def list_my_orders(
    page_number: int = Query(1),
    page_size: int = Query(DEFAULT_PAGE_SIZE),
    db: Session = Depends(get_db),
    customer: Actor = Depends(require_customer),
    order_service: OrderService = Depends(get_order_service)
):
    """List the caller's orders, newest first."""
    orders, total = order_service.list_customer_orders(db, customer.user_id, page_number, page_size)
    return PagedResponse[OrderResponse].build(
        order_service.describe_orders(db, orders), total, page_number, page_size
    )
