"""Order placement, cancellation and status management."""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from opentelemetry import trace

from errors import (
    ConflictError,
    ForbiddenError,
    InsufficientStockError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    UnavailableError,
)
from models import Order, OrderItem, OrderStatus, User, utcnow
from monitoring import (
    order_amount_histogram,
    order_status_changes_counter,
    orders_cancelled_counter,
    orders_placed_counter,
    stock_conflicts_counter,
    stock_rejections_counter,
)
from services.notification_service import NotificationClient, compose_order_message
from services.repository import UnitOfWork, check_paging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderLine:
    """Requested product and quantity."""
    product_id: uuid.UUID
    quantity: int


class OrderService:
    """Service for the order lifecycle and its stock bookkeeping."""

    def __init__(self, notification_client: NotificationClient):
        """
        Initialize order service.

        Args:
            notification_client: Sink for best-effort customer emails
        """
        self.notification_client = notification_client
        self.tracer = trace.get_tracer(__name__)

    async def place_order(
        self,
        db: Session,
        customer_id: uuid.UUID,
        items: Sequence[OrderLine]
    ) -> Order:
        """
        Reserve stock and create a pending order.

        Args:
            db: Database session
            customer_id: Ordering customer
            items: Requested lines

        Returns:
            The committed order with its items

        Raises:
            InvalidInputError: If there are no lines or a quantity is not positive
            NotFoundError: If the customer or any product does not exist
            UnavailableError: If a product is inactive or deleted
            InsufficientStockError: If a line exceeds the remaining stock
            ConflictError: If stock changed concurrently before commit
        """
        if not items:
            raise InvalidInputError("An order must contain at least one item.")
        bad_quantities = [line for line in items if line.quantity <= 0]
        if bad_quantities:
            raise InvalidInputError(
                "One or more validation errors occurred.",
                [f"Quantity for product {line.product_id} must be greater than 0." for line in bad_quantities]
            )

        uow = UnitOfWork(db)
        span = trace.get_current_span()
        span.set_attribute("customer.id", str(customer_id))
        span.set_attribute("order.line_count", len(items))

        customer = uow.users.get_by_id(customer_id)
        if customer is None or customer.is_deleted:
            raise NotFoundError("Customer", customer_id)

        try:
            with self.tracer.start_as_current_span("db.transaction.place_order") as db_span:
                order = self._reserve_stock(uow, customer, items)
                uow.commit()
                db_span.set_attribute("order.id", str(order.id))
                db_span.set_attribute("order.total_amount", float(order.total_amount))
        except StaleDataError as e:
            uow.rollback()
            stock_conflicts_counter.add(1, {"operation": "place_order"})
            logger.warning("Concurrent stock update detected while placing order", extra={
                "customer_id": str(customer_id)
            })
            raise ConflictError("Stock changed while the order was being placed. Please retry.") from e
        except Exception:
            uow.rollback()
            raise

        orders_placed_counter.add(1, {"line_count": str(len(order.items))})
        order_amount_histogram.record(float(order.total_amount))
        logger.info("Order placed", extra={
            "order_id": str(order.id),
            "customer_id": str(customer.id),
            "total_amount": str(order.total_amount),
            "item_count": len(order.items)
        })

        product_names = self._product_names(uow, [order])
        subject, body = compose_order_message("confirmation", order, customer.name, product_names)
        await self._notify(customer.email, subject, body, order)

        return order

    def _reserve_stock(self, uow: UnitOfWork, customer: User, items: Sequence[OrderLine]) -> Order:
        product_ids = {line.product_id for line in items}
        products = uow.products.list_by_ids(product_ids, for_update=True)
        if len(products) != len(product_ids):
            missing = product_ids - {product.id for product in products}
            logger.warning("Order references unknown products", extra={
                "customer_id": str(customer.id),
                "missing_product_ids": [str(product_id) for product_id in missing]
            })
            raise NotFoundError("Product", sorted(missing)[0])

        for product in products:
            if not product.is_active or product.is_deleted:
                stock_rejections_counter.add(1, {"reason": "unavailable"})
                raise UnavailableError(product.name)

        lookup = {product.id: product for product in products}
        remaining = {product.id: product.stock_quantity for product in products}
        total_amount = Decimal("0")
        order_items = []

        for line in items:
            product = lookup[line.product_id]
            if remaining[product.id] < line.quantity:
                stock_rejections_counter.add(1, {"reason": "insufficient_stock"})
                raise InsufficientStockError(product.name, line.quantity, remaining[product.id])

            remaining[product.id] -= line.quantity
            total_amount += product.price * line.quantity
            order_items.append(OrderItem(
                product_id=product.id,
                quantity=line.quantity,
                price_at_order=product.price
            ))

        # Every line passed; apply the decrements
        for product in products:
            product.stock_quantity = remaining[product.id]
            uow.products.update(product)

        order = Order(
            customer_id=customer.id,
            order_date=utcnow(),
            total_amount=total_amount,
            status=OrderStatus.PENDING,
            items=order_items
        )
        uow.orders.add(order)
        return order

    async def cancel_order(
        self,
        db: Session,
        order_id: uuid.UUID,
        requested_by: uuid.UUID,
        is_admin: bool
    ) -> Order:
        """
        Cancel a pending order and restore its stock.

        Args:
            db: Database session
            order_id: Order to cancel
            requested_by: Acting user
            is_admin: Whether the actor is an administrator

        Returns:
            The cancelled order

        Raises:
            NotFoundError: If the order does not exist
            ForbiddenError: If a customer cancels someone else's order
            InvalidStateError: If the order is not pending
            ConflictError: If the order or its stock changed concurrently
        """
        uow = UnitOfWork(db)
        order = uow.orders.get_with_items(order_id, for_update=True)
        if order is None:
            raise NotFoundError("Order", order_id)

        if not is_admin and order.customer_id != requested_by:
            logger.warning("Order cancellation denied", extra={
                "order_id": str(order_id),
                "requested_by": str(requested_by)
            })
            raise ForbiddenError("You are not authorized to cancel this order.")

        if order.status != OrderStatus.PENDING:
            raise InvalidStateError("Only pending orders can be cancelled.")

        try:
            with self.tracer.start_as_current_span("db.transaction.cancel_order") as db_span:
                db_span.set_attribute("order.id", str(order.id))
                self._restore_stock(uow, order)
                order.status = OrderStatus.CANCELLED
                uow.orders.update(order)
                uow.commit()
        except StaleDataError as e:
            uow.rollback()
            stock_conflicts_counter.add(1, {"operation": "cancel_order"})
            raise ConflictError("The order changed while it was being cancelled. Please retry.") from e
        except Exception:
            uow.rollback()
            raise

        orders_cancelled_counter.add(1, {"initiator": "admin" if is_admin else "customer"})
        logger.info("Order cancelled", extra={
            "order_id": str(order.id),
            "requested_by": str(requested_by),
            "is_admin": is_admin
        })

        customer = uow.users.get_by_id(order.customer_id)
        if customer is not None:
            product_names = self._product_names(uow, [order])
            subject, body = compose_order_message("cancellation", order, customer.name, product_names)
            await self._notify(customer.email, subject, body, order)

        return order

    def update_order_status(self, db: Session, order_id: uuid.UUID, new_status: OrderStatus) -> Order:
        """
        Set an order's status as an administrator.

        Moving into Cancelled from any other status restores stock. No other
        transition is validated.

        Args:
            db: Database session
            order_id: Order to update
            new_status: Target status

        Returns:
            The updated (or unchanged) order
        """
        uow = UnitOfWork(db)
        order = uow.orders.get_with_items(order_id, for_update=True)
        if order is None:
            raise NotFoundError("Order", order_id)

        if order.status == new_status:
            return order

        previous_status = order.status
        try:
            with self.tracer.start_as_current_span("db.transaction.update_order_status") as db_span:
                db_span.set_attribute("order.id", str(order.id))
                db_span.set_attribute("order.status.before", previous_status.value)
                db_span.set_attribute("order.status.after", new_status.value)

                if new_status == OrderStatus.CANCELLED:
                    self._restore_stock(uow, order)
                order.status = new_status
                uow.orders.update(order)
                uow.commit()
        except StaleDataError as e:
            uow.rollback()
            stock_conflicts_counter.add(1, {"operation": "update_order_status"})
            raise ConflictError("The order changed while it was being updated. Please retry.") from e
        except Exception:
            uow.rollback()
            raise

        order_status_changes_counter.add(1, {
            "from": previous_status.value,
            "to": new_status.value
        })
        logger.info("Order status updated", extra={
            "order_id": str(order.id),
            "from_status": previous_status.value,
            "to_status": new_status.value
        })
        return order

    def _restore_stock(self, uow: UnitOfWork, order: Order) -> None:
        products = uow.products.list_by_ids(
            [item.product_id for item in order.items], for_update=True
        )
        lookup = {product.id: product for product in products}

        for item in order.items:
            product = lookup.get(item.product_id)
            if product is None:
                logger.warning("Skipping stock restoration for missing product", extra={
                    "order_id": str(order.id),
                    "product_id": str(item.product_id)
                })
                continue
            product.stock_quantity += item.quantity
            uow.products.update(product)

    def get_order(
        self,
        db: Session,
        order_id: uuid.UUID,
        requested_by: uuid.UUID,
        is_admin: bool
    ) -> Order:
        """Fetch an order visible to the actor."""
        order = UnitOfWork(db).orders.get_with_items(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        if not is_admin and order.customer_id != requested_by:
            raise ForbiddenError("You are not authorized to view this order.")
        return order

    def list_customer_orders(
        self,
        db: Session,
        customer_id: uuid.UUID,
        page_number: int,
        page_size: int
    ) -> Tuple[List[Order], int]:
        """Page through a customer's orders, newest first."""
        check_paging(page_number, page_size)
        return UnitOfWork(db).orders.paged_with_items(
            [Order.customer_id == customer_id], page_number, page_size
        )

    def list_orders(
        self,
        db: Session,
        page_number: int,
        page_size: int,
        status: Optional[str] = None,
        customer_id: Optional[uuid.UUID] = None
    ) -> Tuple[List[Order], int]:
        """
        Page through all orders, newest first.

        Args:
            db: Database session
            page_number: 1-based page
            page_size: Items per page
            status: Status name filter (case-insensitive; unknown values are ignored)
            customer_id: Customer filter

        Returns:
            Tuple of (orders, total_count)
        """
        check_paging(page_number, page_size)
        criteria = []
        if status and status.strip():
            try:
                criteria.append(Order.status == OrderStatus.parse(status))
            except ValueError:
                logger.debug("Ignoring unknown order status filter", extra={"status": status})
        if customer_id is not None:
            criteria.append(Order.customer_id == customer_id)

        return UnitOfWork(db).orders.paged_with_items(criteria, page_number, page_size)

    def describe_orders(self, db: Session, orders: Sequence[Order]) -> List[Dict[str, Any]]:
        """
        Build response payloads, batch fetching customers and product names.

        Args:
            db: Database session
            orders: Orders with items loaded

        Returns:
            One dict per order
        """
        uow = UnitOfWork(db)
        customers = uow.users.lookup(order.customer_id for order in orders)
        product_names = self._product_names(uow, orders)

        payloads = []
        for order in orders:
            customer = customers.get(order.customer_id)
            payloads.append({
                "id": order.id,
                "customer_id": order.customer_id,
                "customer_name": customer.name if customer else "",
                "customer_email": customer.email if customer else "",
                "order_date": order.order_date,
                "total_amount": order.total_amount,
                "status": order.status.value,
                "items": [
                    {
                        "product_id": item.product_id,
                        "product_name": product_names.get(item.product_id, ""),
                        "quantity": item.quantity,
                        "price_at_order": item.price_at_order
                    }
                    for item in order.items
                ]
            })
        return payloads

    def describe_order(self, db: Session, order: Order) -> Dict[str, Any]:
        return self.describe_orders(db, [order])[0]

    @staticmethod
    def _product_names(uow: UnitOfWork, orders: Sequence[Order]) -> Dict[uuid.UUID, str]:
        product_ids = {item.product_id for order in orders for item in order.items}
        return {
            product_id: product.name
            for product_id, product in uow.products.lookup(product_ids).items()
        }

    async def _notify(self, recipient: str, subject: str, body: str, order: Order) -> None:
        """Send a notification after commit; failures are logged, never raised."""
        try:
            delivered = await self.notification_client.send_notification(recipient, subject, body)
        except Exception as e:
            logger.warning("Failed to send order notification", extra={
                "order_id": str(order.id),
                "recipient": recipient,
                "error": str(e)
            })
            return

        if not delivered:
            logger.warning("Order notification was not delivered", extra={
                "order_id": str(order.id),
                "recipient": recipient
            })
