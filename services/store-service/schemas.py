"""Pydantic schemas for request/response validation."""
import math
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from models import OrderStatus

T = TypeVar("T")


def _check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if not any(c.isupper() for c in value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in value):
        raise ValueError("Password must contain at least one digit")
    return value


# --- Common ---

class ErrorResponse(BaseModel):
    """Structured error body returned for every failed request."""
    status: int
    detail: str
    errors: Optional[List[str]] = None


class PagedResponse(BaseModel, Generic[T]):
    """One page of results."""
    items: List[T]
    page_number: int
    page_size: int
    total_count: int
    total_pages: int
    has_previous_page: bool
    has_next_page: bool

    @classmethod
    def build(cls, items: List, total_count: int, page_number: int, page_size: int) -> "PagedResponse":
        total_pages = math.ceil(total_count / page_size) if page_size else 0
        return cls(
            items=items,
            page_number=page_number,
            page_size=page_size,
            total_count=total_count,
            total_pages=total_pages,
            has_previous_page=page_number > 1,
            has_next_page=page_number < total_pages,
        )


# --- Auth ---

class RegisterRequest(BaseModel):
    """Schema for registering a customer account."""
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def _password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class LoginRequest(BaseModel):
    """Schema for login request."""
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RefreshTokenRequest(BaseModel):
    """Schema for refresh token rotation."""
    access_token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)


class UserResponse(BaseModel):
    """Public view of a user."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    role: str

    @field_validator("role", mode="before")
    @classmethod
    def _role_value(cls, value):
        return getattr(value, "value", value)


class AuthResponse(BaseModel):
    """Schema for a successful authentication."""
    access_token: str
    access_token_expires_at: datetime
    refresh_token: str
    refresh_token_expires_at: datetime
    user: UserResponse


class UpdateProfileRequest(BaseModel):
    """Schema for a customer updating their own profile."""
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: Optional[str] = None

    @field_validator("password")
    @classmethod
    def _optional_password_strength(cls, value: Optional[str]) -> Optional[str]:
        if value:
            return _check_password_strength(value)
        return value


# --- Catalog ---

class CategoryRequest(BaseModel):
    """Schema for creating or updating a category."""
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=200)


class CategoryResponse(BaseModel):
    """Schema for category response."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ProductCreate(BaseModel):
    """Schema for creating a product."""
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    price: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    stock_quantity: int = Field(ge=0)
    category_id: uuid.UUID


class ProductUpdate(ProductCreate):
    """Schema for updating a product."""
    is_active: bool = True


class ProductResponse(BaseModel):
    """Schema for product response."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    price: float
    stock_quantity: int
    category_id: uuid.UUID
    category_name: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


# --- Orders ---

class OrderItemRequest(BaseModel):
    """Requested product and quantity."""
    product_id: uuid.UUID
    quantity: int


class PlaceOrderRequest(BaseModel):
    """Schema for placing an order."""
    items: List[OrderItemRequest]


class UpdateOrderStatusRequest(BaseModel):
    """Schema for an administrative status change."""
    status: str

    @field_validator("status")
    @classmethod
    def _known_status(cls, value: str) -> str:
        return OrderStatus.parse(value).value


class OrderItemResponse(BaseModel):
    """Schema for order item in response."""
    product_id: uuid.UUID
    product_name: str
    quantity: int
    price_at_order: float


class OrderResponse(BaseModel):
    """Schema for order response."""
    id: uuid.UUID
    customer_id: uuid.UUID
    customer_name: str
    customer_email: str
    order_date: datetime
    total_amount: float
    status: str
    items: List[OrderItemResponse]
