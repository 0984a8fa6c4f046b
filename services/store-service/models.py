"""Database models for the store service."""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    """Order lifecycle states."""
    PENDING = "Pending"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @classmethod
    def parse(cls, value: str) -> "OrderStatus":
        """Case-insensitive lookup by value; raises ValueError if unknown."""
        for status in cls:
            if status.value.lower() == value.strip().lower():
                return status
        raise ValueError(f"Unknown order status: {value}")


class UserRole(str, enum.Enum):
    """Actor roles."""
    ADMIN = "Admin"
    CUSTOMER = "Customer"


class TimestampMixin:
    """Identity, audit timestamps and the soft-delete flag shared by all entities."""

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)


class User(TimestampMixin, Base):
    """User model."""
    __tablename__ = "users"

    name = Column(String(200), nullable=False)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(UserRole, values_callable=lambda e: [m.value for m in e]),
                  default=UserRole.CUSTOMER, nullable=False)


class RefreshToken(TimestampMixin, Base):
    """Refresh token issued alongside an access token."""
    __tablename__ = "refresh_tokens"

    token = Column(String(200), nullable=False, unique=True, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    replaced_by_token = Column(String(200), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_expired(self) -> bool:
        expires_at = self.expires_at
        # SQLite drops tzinfo on the way back
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return utcnow() >= expires_at

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None or self.is_expired


class Category(TimestampMixin, Base):
    """Product category model."""
    __tablename__ = "categories"

    name = Column(String(200), nullable=False, index=True)
    description = Column(String(200), nullable=True)


class Product(TimestampMixin, Base):
    """Product model.

    ``version`` is maintained by the ORM on every UPDATE; a write based on a
    stale row raises ``StaleDataError`` instead of overwriting stock.
    """
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("name", "category_id", name="uq_products_name_category"),
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )

    name = Column(String(200), nullable=False, index=True)
    description = Column(String(2000), nullable=True)
    price = Column(Numeric(18, 2), nullable=False)
    category_id = Column(Uuid, ForeignKey("categories.id"), nullable=False, index=True)
    stock_quantity = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class Order(TimestampMixin, Base):
    """Order model.

    Status changes are version-checked like product stock, so two writers
    acting on the same snapshot cannot both cancel the order.
    """
    __tablename__ = "orders"

    customer_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    order_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    total_amount = Column(Numeric(18, 2), nullable=False)
    status = Column(Enum(OrderStatus, values_callable=lambda e: [m.value for m in e]),
                    default=OrderStatus.PENDING, nullable=False, index=True)
    version = Column(Integer, nullable=False)

    # Items are always loaded explicitly (selectinload) by the order store
    items = relationship(
        "OrderItem",
        cascade="all, delete-orphan",
        lazy="raise_on_sql",
        order_by="OrderItem.created_at",
    )

    __mapper_args__ = {"version_id_col": version}


class OrderItem(TimestampMixin, Base):
    """Order line with the product price captured at purchase time."""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price_at_order = Column(Numeric(18, 2), nullable=False)
