"""Tests for application wiring and error translation."""

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from conftest import bearer
from database import init_db
from models import Category, Product, User
from services.order_service import OrderService


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_unknown_route_uses_error_body(client):
    response = client.get("/api/nothing-here")

    assert response.status_code == 404
    assert response.json() == {"status": 404, "detail": "Not Found"}


def test_unexpected_error_is_hidden(client, customer, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(OrderService, "list_customer_orders", explode)
    safe_client = TestClient(client.app, raise_server_exceptions=False)

    response = safe_client.get("/api/customers/me/orders", headers=bearer(customer))

    assert response.status_code == 500
    assert response.json() == {"status": 500, "detail": "An unexpected error occurred."}


def test_seed_database(engine):
    init_db(bind=engine, seed=True)
    init_db(bind=engine, seed=True)

    with Session(bind=engine) as session:
        assert session.scalar(select(func.count()).select_from(User)) == 3
        assert session.scalar(select(func.count()).select_from(Category)) == 5
        assert session.scalar(select(func.count()).select_from(Product)) == 13
