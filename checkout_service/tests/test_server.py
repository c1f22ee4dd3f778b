"""Tests for the Checkout Service HTTP API."""

from http import HTTPStatus

import pytest
from fastapi.testclient import TestClient

from checkout_service import __version__
from checkout_service import server
from checkout_service.server import CheckoutState, app

CLIENT = {"X-Client-Id": "7"}
CHARGER = {"product_id": 1, "name": "USB-C Charger", "unit_price": 10.0, "quantity": 2}


def test_version():
    """Testing package Version."""
    assert __version__ == "0.1.0"


@pytest.fixture
def service_state(store, monkeypatch):
    """A fresh service state wired to the fake store API."""
    state = CheckoutState()
    state.configure(store)
    monkeypatch.setattr(server, "state", state)
    return state


@pytest.fixture
def test_client(service_state):
    """Fixture for creating a test client."""
    return TestClient(app)


def test_health_check(test_client):
    response = test_client.get("/health")
    assert response.status_code == HTTPStatus.OK
    assert response.json() == {"status": "healthy"}


def test_readiness_reports_store_api(test_client, store, monkeypatch):
    monkeypatch.setattr(server.settings, "kafka_bootstrap_servers", None)
    response = test_client.get("/health/ready")
    assert response.json() == {"status": "ready", "store_api": True, "kafka": None}

    store.fail.add("ping")
    response = test_client.get("/health/ready")
    assert response.json()["status"] == "not_ready"


def test_cart_requires_client_header(test_client):
    assert test_client.get("/cart").status_code == HTTPStatus.UNAUTHORIZED


def test_cart_edit_flow(test_client):
    response = test_client.post("/cart/items", json=CHARGER, headers=CLIENT)
    assert response.status_code == HTTPStatus.OK
    assert response.json()["subtotal"] == 20.0

    response = test_client.put("/cart/items/1", json={"quantity": 3}, headers=CLIENT)
    assert response.json()["lines"][0]["quantity"] == 3

    assert test_client.put("/cart/items/9", json={"quantity": 1}, headers=CLIENT).status_code == HTTPStatus.NOT_FOUND

    response = test_client.put("/cart/items/1", json={"quantity": 0}, headers=CLIENT)
    assert response.json()["lines"] == []

    test_client.post("/cart/items", json=CHARGER, headers=CLIENT)
    assert test_client.delete("/cart/items/1", headers=CLIENT).json()["lines"] == []
    assert test_client.delete("/cart/items/1", headers=CLIENT).status_code == HTTPStatus.NOT_FOUND


def test_cart_edit_rejected_while_checkout_holds_cart(test_client, service_state):
    test_client.post("/cart/items", json=CHARGER, headers=CLIENT)
    cart = service_state.carts.get(7)
    with cart.freeze():
        response = test_client.post("/cart/items", json=CHARGER, headers=CLIENT)
        assert response.status_code == HTTPStatus.CONFLICT
        assert test_client.get("/cart", headers=CLIENT).json()["locked"] is True
        response = test_client.post("/checkout", headers=CLIENT)
        assert response.status_code == HTTPStatus.CONFLICT
        assert response.json()["fault"] == "in_progress"


def test_checkout_success_clears_cart(test_client, store):
    test_client.post("/cart/items", json=CHARGER, headers=CLIENT)

    response = test_client.post("/checkout", headers=CLIENT)

    assert response.status_code == HTTPStatus.CREATED
    body = response.json()
    assert body["status"] == "success"
    assert body["totals"] == {"subtotal": 20.0, "shipping": 10.0, "total": 30.0}
    assert body["order_id"] in store.orders
    assert test_client.get("/cart", headers=CLIENT).json()["lines"] == []


def test_checkout_stock_fault_keeps_cart(test_client, store):
    test_client.post("/cart/items", json={**CHARGER, "quantity": 9}, headers=CLIENT)

    response = test_client.post("/checkout", headers=CLIENT)

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert "available: 5, in cart: 9" in response.json()["faults"][0]
    assert test_client.get("/cart", headers=CLIENT).json()["lines"][0]["quantity"] == 9


def test_checkout_without_client_is_unauthorized(test_client):
    response = test_client.post("/checkout")
    assert response.status_code == HTTPStatus.UNAUTHORIZED
    assert response.json()["fault"] == "authentication"


def test_checkout_with_empty_cart(test_client):
    response = test_client.post("/checkout", headers=CLIENT)
    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert response.json()["fault"] == "empty_cart"


@pytest.fixture
def operator(monkeypatch):
    """Headers carrying the configured operator token."""
    monkeypatch.setattr(server.settings, "admin_token", "s3cret")
    return {"X-Admin-Token": "s3cret"}


def test_gateway_failure_lists_orphan_and_reconciles(test_client, store, operator):
    test_client.post("/cart/items", json=CHARGER, headers=CLIENT)
    store.fail.add("create_order")

    response = test_client.post("/checkout", headers=CLIENT)

    assert response.status_code == HTTPStatus.BAD_GATEWAY
    assert response.json()["message"] == "The purchase could not be completed. Please try again."
    orphans = test_client.get("/orphans", headers=operator).json()
    assert [o["kind"] for o in orphans] == ["bill"]

    report = test_client.post("/orphans/reconcile", headers=operator).json()
    assert report == {"attempted": 1, "resolved": 1, "remaining": 0}
    assert store.bills == {}
    assert test_client.get("/orphans", headers=operator).json() == []


def test_orphan_endpoints_require_operator_token(test_client, store, operator):
    test_client.post("/cart/items", json=CHARGER, headers=CLIENT)
    store.fail.add("create_order")
    test_client.post("/checkout", headers=CLIENT)

    assert test_client.get("/orphans").status_code == HTTPStatus.UNAUTHORIZED
    assert test_client.get("/orphans", headers=CLIENT).status_code == HTTPStatus.UNAUTHORIZED
    assert test_client.get("/orphans", headers={"X-Admin-Token": "guess"}).status_code == HTTPStatus.FORBIDDEN
    assert test_client.post("/orphans/reconcile").status_code == HTTPStatus.UNAUTHORIZED
    assert test_client.post("/orphans/reconcile", headers={"X-Admin-Token": "guess"}).status_code == HTTPStatus.FORBIDDEN
    assert len(store.bills) == 1


def test_orphan_endpoints_closed_without_configured_token(test_client, monkeypatch):
    monkeypatch.setattr(server.settings, "admin_token", None)
    response = test_client.get("/orphans", headers={"X-Admin-Token": "anything"})
    assert response.status_code == HTTPStatus.FORBIDDEN


def test_products_search_passthrough(test_client):
    response = test_client.get("/products", params={"in_stock_only": "true"})
    assert response.status_code == HTTPStatus.OK
    assert [p["id_key"] for p in response.json()] == [1, 2, 3]


def test_profile_and_order_history(test_client, store):
    test_client.post("/cart/items", json=CHARGER, headers=CLIENT)
    order_id = test_client.post("/checkout", headers=CLIENT).json()["order_id"]
    store.products.pop(1)

    assert test_client.get("/profile", headers=CLIENT).json()["email"] == "ada@example.com"
    assert [o["id_key"] for o in test_client.get("/profile/orders", headers=CLIENT).json()] == [order_id]
    assert len(test_client.get("/profile/bills", headers=CLIENT).json()) == 1

    details = test_client.get(f"/profile/orders/{order_id}/details", headers=CLIENT).json()
    assert details[0]["product_name"] == "Product #1"
    assert details[0]["detail"]["quantity"] == 2


def test_order_details_hidden_from_other_clients(test_client, store):
    test_client.post("/cart/items", json=CHARGER, headers=CLIENT)
    order_id = test_client.post("/checkout", headers=CLIENT).json()["order_id"]

    response = test_client.get(f"/profile/orders/{order_id}/details", headers={"X-Client-Id": "999"})

    assert response.status_code == HTTPStatus.NOT_FOUND
    assert test_client.get("/profile/orders/424242/details", headers=CLIENT).status_code == HTTPStatus.NOT_FOUND


def test_profile_gateway_failure_is_bad_gateway(test_client, store):
    store.fail.add("profile")
    assert test_client.get("/profile/orders", headers=CLIENT).status_code == HTTPStatus.BAD_GATEWAY
