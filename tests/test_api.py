"""Tests for the REST API."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from storefront.api import SESSION_COOKIE, create_app
from storefront.catalog import LOAD_DENIED
from storefront.checkout import CART_EMPTY, LOGIN_REQUIRED, ORDER_FAILED
from storefront.config import StorefrontConfig
from storefront.errors import PermissionDeniedError, StoreError

from .conftest import RecordingStore

CONFIG = StorefrontConfig(backend="memory", app_id="test-app")


@pytest.fixture
def api_store():
    return RecordingStore()


@pytest.fixture
def client(api_store):
    with TestClient(create_app(CONFIG, store=api_store)) as client:
        yield client


def first_product(client) -> dict:
    return client.get("/api/products").json()["products"][0]


class TestHealthAndCatalog:
    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["backend"] == "memory"
        assert data["product_count"] == 5

    def test_empty_catalog_is_seeded_on_startup(self, client):
        data = client.get("/api/products").json()

        assert data["count"] == 5
        names = {p["name"] for p in data["products"]}
        assert "Wireless Headphones" in names

    def test_get_product(self, client):
        product = first_product(client)
        response = client.get(f"/api/products/{product['id']}")

        assert response.status_code == 200
        assert response.json() == product

    def test_unknown_product(self, client):
        response = client.get("/api/products/nope")

        assert response.status_code == 404
        assert response.json()["error_type"] == "ProductNotFoundError"

    def test_catalog_permission_error_reaches_sessions(self, api_store):
        api_store.fail_subscribe = PermissionDeniedError(CONFIG.products_collection)

        with TestClient(create_app(CONFIG, store=api_store)) as client:
            health = client.get("/api/health").json()
            session = client.get("/api/session").json()

        assert health["status"] == "degraded"
        assert health["product_count"] == 0
        assert session["advisory"] == LOAD_DENIED


class TestSession:
    def test_first_contact_opens_anonymous_session(self, client):
        response = client.get("/api/session")

        assert response.status_code == 200
        data = response.json()
        assert data["identity_state"] == "anonymous"
        assert data["page"] == "home"
        assert data["loading"] is False
        assert response.cookies.get(SESSION_COOKIE) == data["session_id"]

    def test_cookie_keeps_same_session(self, client):
        first = client.get("/api/session").json()
        second = client.get("/api/session").json()

        assert first["session_id"] == second["session_id"]

    def test_navigate_to_product_detail(self, client):
        product = first_product(client)
        response = client.post(
            "/api/session/view", json={"page": "product_detail", "product_id": product["id"]}
        )

        assert response.status_code == 200
        assert response.json()["selected_product_id"] == product["id"]

    def test_product_detail_requires_product(self, client):
        assert client.post("/api/session/view", json={"page": "product_detail"}).status_code == 400
        response = client.post(
            "/api/session/view", json={"page": "product_detail", "product_id": "nope"}
        )
        assert response.status_code == 404

    def test_dismiss_advisory(self, client):
        client.post("/api/cart/items", json={"product_id": first_product(client)["id"]})
        assert client.get("/api/session").json()["advisory"]

        response = client.delete("/api/session/advisory")

        assert response.json()["advisory"] is None


class TestCart:
    def test_add_update_remove(self, client):
        product = first_product(client)

        response = client.post(
            "/api/cart/items", json={"product_id": product["id"], "quantity": 2}
        )
        assert response.status_code == 201
        cart = response.json()
        assert cart["item_count"] == 2
        assert cart["lines"][0]["name"] == product["name"]
        assert client.get("/api/session").json()["advisory"] == f"{product['name']} added to cart!"

        cart = client.put(f"/api/cart/items/{product['id']}", json={"quantity": 5}).json()
        assert cart["lines"][0]["quantity"] == 5

        cart = client.delete(f"/api/cart/items/{product['id']}").json()
        assert cart == {"lines": [], "item_count": 0, "total": "0.00"}

    def test_update_to_zero_removes(self, client):
        product = first_product(client)
        client.post("/api/cart/items", json={"product_id": product["id"]})

        cart = client.put(f"/api/cart/items/{product['id']}", json={"quantity": 0}).json()

        assert cart["lines"] == []

    def test_total(self, client):
        products = client.get("/api/products").json()["products"]
        by_name = {p["name"]: p for p in products}
        client.post(
            "/api/cart/items",
            json={"product_id": by_name["Portable Bluetooth Speaker"]["id"], "quantity": 3},
        )

        assert client.get("/api/cart").json()["total"] == "149.97"

    def test_rejects_non_positive_quantity(self, client):
        product = first_product(client)
        response = client.post(
            "/api/cart/items", json={"product_id": product["id"], "quantity": 0}
        )

        assert response.status_code == 422

    def test_unknown_product(self, client):
        response = client.post("/api/cart/items", json={"product_id": "nope"})

        assert response.status_code == 404

    def test_carts_are_per_session(self, client):
        product = first_product(client)
        client.post("/api/cart/items", json={"product_id": product["id"]})
        assert client.get("/api/cart").json()["item_count"] == 1

        client.cookies.clear()
        assert client.get("/api/cart").json()["item_count"] == 0


class TestCheckout:
    def test_empty_cart(self, client, api_store):
        orders_before = api_store.create_calls.count(CONFIG.orders_collection)
        response = client.post("/api/checkout")

        assert response.status_code == 400
        assert response.json()["detail"] == CART_EMPTY
        assert api_store.create_calls.count(CONFIG.orders_collection) == orders_before

    def test_logged_out_session_cannot_order(self, client):
        client.post("/api/auth/logout")
        client.post("/api/cart/items", json={"product_id": first_product(client)["id"]})

        response = client.post("/api/checkout")

        assert response.status_code == 401
        assert response.json()["detail"] == LOGIN_REQUIRED

    def test_places_order(self, client):
        product = first_product(client)
        client.post("/api/cart/items", json={"product_id": product["id"], "quantity": 2})
        uid = client.get("/api/session").json()["principal"]["uid"]

        response = client.post("/api/checkout")

        assert response.status_code == 201
        data = response.json()
        assert data["state"] == "confirmed"
        assert data["order"]["user_id"] == uid
        assert data["order"]["status"] == "pending"
        assert data["order"]["items"][0]["quantity"] == 2
        assert data["advisory"] == f"Order placed successfully! Order ID: {data['order']['id']}"

        session = client.get("/api/session").json()
        assert session["page"] == "order_confirmation"
        assert session["cart_item_count"] == 0

    def test_failed_write_keeps_cart(self, client, api_store):
        client.post("/api/cart/items", json={"product_id": first_product(client)["id"]})
        api_store.fail_creates = StoreError("write rejected")

        response = client.post("/api/checkout")

        assert response.status_code == 502
        assert response.json()["detail"] == ORDER_FAILED
        session = client.get("/api/session").json()
        assert session["cart_item_count"] == 1
        assert session["submission_state"] == "idle"


class TestAuth:
    def test_register_login_logout(self, client):
        response = client.post(
            "/api/auth/register", json={"email": "ann@example.com", "password": "secret1"}
        )
        assert response.status_code == 201
        assert response.json()["identity_state"] == "credentialed"

        response = client.post("/api/auth/logout")
        assert response.status_code == 200
        assert response.json()["identity_state"] == "unauthenticated"

        response = client.post(
            "/api/auth/login", json={"email": "ann@example.com", "password": "secret1"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["principal"]["email"] == "ann@example.com"
        assert data["advisory"] == "Login successful!"

    def test_register_failure_shows_provider_message(self, client):
        response = client.post(
            "/api/auth/register", json={"email": "bad", "password": "secret1"}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == (
            "Registration failed: The email address is badly formatted. (auth/invalid-email)"
        )

    def test_login_failure(self, client):
        response = client.post(
            "/api/auth/login", json={"email": "ann@example.com", "password": "secret1"}
        )

        assert response.status_code == 401
        assert response.json()["detail"].startswith("Login failed: ")

    def test_login_from_auth_page_lands_home(self, client):
        client.post("/api/auth/register", json={"email": "ann@example.com", "password": "secret1"})
        client.post("/api/auth/logout")
        client.post("/api/session/view", json={"page": "login"})

        data = client.post(
            "/api/auth/login", json={"email": "ann@example.com", "password": "secret1"}
        ).json()

        assert data["page"] == "home"

    def test_logout_clears_cart(self, client):
        client.post("/api/cart/items", json={"product_id": first_product(client)["id"]})

        data = client.post("/api/auth/logout").json()

        assert data["cart_item_count"] == 0
        assert data["advisory"] == "Logged out successfully."


class TestSessionCookies:
    def test_cookie_set_when_first_request_fails(self, client):
        response = client.post("/api/checkout")

        assert response.status_code == 400
        session_id = response.cookies.get(SESSION_COOKIE)
        assert session_id

        assert client.get("/api/session").json()["session_id"] == session_id
        assert len(client.app.state.storefront.sessions) == 1

    def test_cookie_set_when_first_request_is_invalid(self, client):
        response = client.post("/api/cart/items", json={"product_id": "x", "quantity": 0})

        assert response.status_code == 422
        assert response.cookies.get(SESSION_COOKIE)
        assert len(client.app.state.storefront.sessions) == 1

    def test_sessions_and_tokens_are_bounded(self, api_store):
        config = StorefrontConfig(backend="memory", app_id="test-app", max_sessions=3)

        with TestClient(create_app(config, store=api_store)) as client:
            for _ in range(10):
                client.cookies.clear()
                assert client.get("/api/session").status_code == 200
            storefront = client.app.state.storefront
            live = set(storefront.sessions)

        tokens = asyncio.run(
            api_store.list_documents(f"{config.identity_namespace}/sessions")
        )
        assert len(live) == 3
        # Shutdown closes the remaining sessions too
        assert tokens == []
