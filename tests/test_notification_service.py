"""Tests for the notification relay client."""

import asyncio
import json
import uuid
from decimal import Decimal

import httpx

from models import Order, OrderItem, OrderStatus, utcnow
from services.notification_service import NotificationClient, compose_order_message


def send(handler, base_url="http://relay.test"):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = NotificationClient(http_client, base_url=base_url, from_address="shop@example.com")
            return await client.send_notification("buyer@example.com", "Hello", "Body")
    return asyncio.run(scenario())


class TestNotificationClient:
    def test_posts_message_to_relay(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(202)

        assert send(handler) is True
        assert requests[0].url == "http://relay.test/api/notifications/email"
        assert json.loads(requests[0].content) == {
            "from": "shop@example.com",
            "to": "buyer@example.com",
            "subject": "Hello",
            "body": "Body",
        }

    def test_error_status_returns_false(self):
        assert send(lambda request: httpx.Response(503)) is False

    def test_connection_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert send(handler) is False

    def test_unconfigured_relay_skips_delivery(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert send(handler, base_url="") is False


class TestComposeOrderMessage:
    def _order(self, status=OrderStatus.PENDING):
        product_id = uuid.uuid4()
        order = Order(
            id=uuid.uuid4(),
            customer_id=uuid.uuid4(),
            order_date=utcnow(),
            total_amount=Decimal("45.00"),
            status=status,
            items=[OrderItem(product_id=product_id, quantity=3, price_at_order=Decimal("15.00"))],
        )
        return order, product_id

    def test_confirmation(self):
        order, product_id = self._order()

        subject, body = compose_order_message("confirmation", order, "Ada", {product_id: "Teapot"})

        assert subject == f"Order Confirmation - Order #{order.id.hex}"
        assert body.startswith("Dear Ada,")
        assert "- Teapot x3 @ $15.00 = $45.00" in body
        assert "Total amount: $45.00" in body

    def test_cancellation(self):
        order, product_id = self._order(OrderStatus.CANCELLED)

        subject, body = compose_order_message("cancellation", order, None, {})

        assert subject == f"Order Cancellation Confirmation - Order #{order.id.hex}"
        assert body.startswith("Dear Customer,")
        assert "refunded" in body
        assert "Status: Cancelled" in body
