"""Tests for product browsing and catalog administration."""

import json
import uuid

import pytest

from conftest import bearer, make_category, make_product
from config import CATEGORY_CACHE_KEY


class TestPublicProducts:
    def test_search_excludes_unavailable(self, client, db, customer, category):
        make_product(db, category, "Visible")
        make_product(db, category, "Inactive", is_active=False)
        deleted = make_product(db, category, "Deleted")
        deleted.is_deleted = True
        db.commit()

        response = client.get("/api/products", headers=bearer(customer))

        assert response.status_code == 200
        names = [product["name"] for product in response.json()["items"]]
        assert names == ["Visible"]

    def test_filter_and_sort(self, client, db, customer, category):
        books = make_category(db, "Books")
        make_product(db, category, "Desk Lamp", price="45.00")
        make_product(db, category, "Floor Lamp", price="120.00")
        make_product(db, books, "Lamp Repair Guide", price="12.50")

        response = client.get(
            "/api/products",
            params={"name": "lamp", "sort_by": "price", "is_ascending": "true"},
            headers=bearer(customer),
        )
        assert [p["name"] for p in response.json()["items"]] == ["Lamp Repair Guide", "Desk Lamp", "Floor Lamp"]

        response = client.get(
            "/api/products", params={"category_id": str(books.id)}, headers=bearer(customer)
        )
        items = response.json()["items"]
        assert len(items) == 1
        assert items[0]["category_name"] == "Books"

    def test_paging(self, client, db, customer, category):
        for index in range(5):
            make_product(db, category, f"Item {index}")

        response = client.get(
            "/api/products", params={"page_number": 2, "page_size": 2, "sort_by": "name", "is_ascending": "true"},
            headers=bearer(customer),
        )

        data = response.json()
        assert [p["name"] for p in data["items"]] == ["Item 2", "Item 3"]
        assert data["total_pages"] == 3
        assert data["has_previous_page"] is True
        assert data["has_next_page"] is True

    def test_get_inactive_product_is_not_found(self, client, db, customer, category):
        product = make_product(db, category, "Retired", is_active=False)

        response = client.get(f"/api/products/{product.id}", headers=bearer(customer))

        assert response.status_code == 400

    def test_requires_authentication(self, client):
        assert client.get("/api/products").status_code == 401


class TestAdminProducts:
    def test_create_product(self, client, admin, category):
        response = client.post(
            "/api/admin/products",
            json={"name": "Camera", "price": "349.90", "stock_quantity": 12, "category_id": str(category.id)},
            headers=bearer(admin),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["price"] == 349.9
        assert data["is_active"] is True
        assert data["category_name"] == category.name

    def test_create_duplicate_in_category_conflicts(self, client, db, admin, category):
        make_product(db, category, "Camera")

        response = client.post(
            "/api/admin/products",
            json={"name": "camera", "price": "10", "stock_quantity": 1, "category_id": str(category.id)},
            headers=bearer(admin),
        )

        assert response.status_code == 400

    def test_create_in_unknown_category(self, client, admin):
        response = client.post(
            "/api/admin/products",
            json={"name": "Camera", "price": "10", "stock_quantity": 1, "category_id": str(uuid.uuid4())},
            headers=bearer(admin),
        )

        assert response.status_code == 400

    @pytest.mark.parametrize("price,stock", [("0", 1), ("-5", 1), ("10", -1)])
    def test_create_rejects_invalid_values(self, client, admin, category, price, stock):
        response = client.post(
            "/api/admin/products",
            json={"name": "Camera", "price": price, "stock_quantity": stock, "category_id": str(category.id)},
            headers=bearer(admin),
        )

        assert response.status_code == 400

    def test_update_product(self, client, db, admin, category):
        product = make_product(db, category, "Camera", stock=3)

        response = client.put(
            f"/api/admin/products/{product.id}",
            json={
                "name": "Camera Mk II",
                "price": "399.00",
                "stock_quantity": 7,
                "category_id": str(category.id),
                "is_active": False,
            },
            headers=bearer(admin),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Camera Mk II"
        assert data["stock_quantity"] == 7
        assert data["is_active"] is False

    def test_delete_is_soft(self, client, db, customer, admin, category):
        product = make_product(db, category, "Camera")

        response = client.delete(f"/api/admin/products/{product.id}", headers=bearer(admin))

        assert response.status_code == 204
        assert client.get(f"/api/products/{product.id}", headers=bearer(customer)).status_code == 400
        listing = client.get("/api/admin/products", headers=bearer(admin)).json()
        assert listing["total_count"] == 0

    def test_admin_search_includes_inactive(self, client, db, admin, category):
        make_product(db, category, "Active")
        make_product(db, category, "Inactive", is_active=False)

        everything = client.get("/api/admin/products", headers=bearer(admin)).json()
        active_only = client.get(
            "/api/admin/products", params={"include_inactive": "false"}, headers=bearer(admin)
        ).json()

        assert everything["total_count"] == 2
        assert [p["name"] for p in active_only["items"]] == ["Active"]

    def test_customer_is_forbidden(self, client, customer):
        assert client.get("/api/admin/products", headers=bearer(customer)).status_code == 403


class TestAdminCategories:
    def test_list_is_cached_and_invalidated(self, client, db, fake_redis, admin, category):
        response = client.get("/api/admin/categories", headers=bearer(admin))

        assert [c["name"] for c in response.json()] == ["Electronics"]
        cached = json.loads(fake_redis.get(CATEGORY_CACHE_KEY))
        assert cached[0]["name"] == "Electronics"

        client.post("/api/admin/categories", json={"name": "Books"}, headers=bearer(admin))
        assert fake_redis.get(CATEGORY_CACHE_KEY) is None

        response = client.get("/api/admin/categories", headers=bearer(admin))
        assert [c["name"] for c in response.json()] == ["Books", "Electronics"]

    def test_list_served_from_cache(self, client, fake_redis, admin):
        fake_redis.setex(CATEGORY_CACHE_KEY, 60, json.dumps([{
            "id": str(uuid.uuid4()),
            "name": "Cached",
            "description": None,
            "created_at": "2024-01-01T00:00:00+00:00",
            "updated_at": None,
        }]))

        response = client.get("/api/admin/categories", headers=bearer(admin))

        assert [c["name"] for c in response.json()] == ["Cached"]

    def test_duplicate_name_conflicts(self, client, admin, category):
        response = client.post("/api/admin/categories", json={"name": "ELECTRONICS"}, headers=bearer(admin))

        assert response.status_code == 400

    def test_update_category(self, client, admin, category):
        response = client.put(
            f"/api/admin/categories/{category.id}",
            json={"name": "Gadgets", "description": "Small devices"},
            headers=bearer(admin),
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Gadgets"

    def test_delete_blocked_by_active_products(self, client, db, admin, category):
        make_product(db, category, "Camera")

        response = client.delete(f"/api/admin/categories/{category.id}", headers=bearer(admin))

        assert response.status_code == 400

    def test_delete_empty_category(self, client, admin, category):
        response = client.delete(f"/api/admin/categories/{category.id}", headers=bearer(admin))

        assert response.status_code == 204
        assert client.get(f"/api/admin/categories/{category.id}", headers=bearer(admin)).status_code == 400
