"""Notification delivery through the mail relay service."""
import logging
import time
from decimal import Decimal
from typing import Mapping, Optional, Tuple
import uuid

import httpx

from config import NOTIFICATION_FROM_ADDRESS, NOTIFICATION_SERVICE_URL
from models import Order
from monitoring import notification_failures_counter

logger = logging.getLogger(__name__)


class NotificationClient:
    """Client for the outbound email relay."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = NOTIFICATION_SERVICE_URL,
        from_address: str = NOTIFICATION_FROM_ADDRESS
    ):
        """
        Initialize notification client.

        Args:
            http_client: Async HTTP client
            base_url: Mail relay base URL; empty disables delivery
            from_address: Sender address
        """
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.from_address = from_address

    async def send_notification(self, recipient: str, subject: str, body: str) -> bool:
        """
        Send an email through the relay.

        Args:
            recipient: Recipient email address
            subject: Message subject
            body: Plain-text message body

        Returns:
            True if the relay accepted the message
        """
        if not self.base_url:
            logger.warning("Notification not sent: relay not configured", extra={
                "recipient": recipient,
                "subject": subject
            })
            return False

        # HTTPXClientInstrumentor already creates spans for HTTP calls
        start_time = time.time()
        try:
            response = await self.http_client.post(
                f"{self.base_url}/api/notifications/email",
                json={
                    "from": self.from_address,
                    "to": recipient,
                    "subject": subject,
                    "body": body
                }
            )
        except httpx.HTTPError as e:
            notification_failures_counter.add(1, {"reason": "connection"})
            logger.error("Failed to reach notification relay", extra={
                "recipient": recipient,
                "subject": subject,
                "error": str(e)
            })
            return False

        if response.status_code >= 400:
            notification_failures_counter.add(1, {"reason": f"http_{response.status_code}"})
            logger.warning("Notification relay returned error status", extra={
                "status_code": response.status_code,
                "recipient": recipient,
                "subject": subject
            })
            return False

        logger.info("Notification sent", extra={
            "recipient": recipient,
            "subject": subject,
            "duration_ms": int((time.time() - start_time) * 1000)
        })
        return True


def _format_amount(amount: Decimal) -> str:
    return f"${amount:.2f}"


def compose_order_message(
    kind: str,
    order: Order,
    customer_name: Optional[str],
    product_names: Mapping[uuid.UUID, str]
) -> Tuple[str, str]:
    """
    Build subject and plain-text body for an order notification.

    Args:
        kind: "confirmation" or "cancellation"
        order: Order with items loaded
        customer_name: Greeting name
        product_names: Product names by id

    Returns:
        Tuple of (subject, body)
    """
    order_number = order.id.hex
    if kind == "cancellation":
        subject = f"Order Cancellation Confirmation - Order #{order_number}"
        intro = (
            "We have processed the cancellation of your order. The full amount of "
            f"{_format_amount(order.total_amount)} will be refunded to your original payment method."
        )
    else:
        subject = f"Order Confirmation - Order #{order_number}"
        intro = "Thank you for your order! We have received it and it is being processed."

    lines = [
        f"Dear {customer_name or 'Customer'},",
        "",
        intro,
        "",
        f"Order number: {order_number}",
        f"Order date: {order.order_date:%B %d, %Y at %H:%M}",
        f"Status: {order.status.value}",
        "",
    ]
    for item in order.items:
        name = product_names.get(item.product_id, "Product")
        line_total = item.price_at_order * item.quantity
        lines.append(
            f"- {name} x{item.quantity} @ {_format_amount(item.price_at_order)} = {_format_amount(line_total)}"
        )
    lines.extend(["", f"Total amount: {_format_amount(order.total_amount)}"])

    return subject, "\n".join(lines)
