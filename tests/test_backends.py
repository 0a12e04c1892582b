import json

import pytest
from werkzeug.test import Client

from meshpatterns.backends import Addresses, orders_app, products_app, start, users_app


@pytest.fixture
def users():
    return Client(users_app())


@pytest.fixture
def products():
    return Client(products_app())


@pytest.fixture
def orders():
    return Client(orders_app())


def test_list_users(users):
    response = users.get("/users")
    assert response.status_code == 200
    assert [user["name"] for user in response.json] == ["Alice Johnson", "Bob Smith", "Carol Admin"]


def test_get_user_echoes_id(users):
    body = users.get("/users/42").json
    assert body["id"] == "42"
    assert body["name"] == "Alice Johnson"
    assert body["email"] == "alice@example.com"


def test_list_products(products):
    body = products.get("/products").json
    assert [item["id"] for item in body] == ["p1", "p2", "p3"]
    assert body[0]["price"] == 1299.99


def test_get_product(products):
    body = products.get("/products/p7").json
    assert body["id"] == "p7"
    assert body["description"] == "High-performance laptop for developers"


def test_list_orders(orders):
    body = orders.get("/orders").json
    assert [order["status"] for order in body] == ["delivered", "pending"]


def test_get_order(orders):
    body = orders.get("/orders/o5").json
    assert body["id"] == "o5"
    assert body["product"] == "Laptop Pro"
    assert body["total"] == 1299.99


@pytest.mark.parametrize(
    "factory, path",
    [(users_app, "/users"), (products_app, "/products/p1"), (orders_app, "/orders")],
)
def test_json_encoding(factory, path):
    response = Client(factory()).get(path)
    raw = response.get_data()
    assert response.headers["Content-Type"] == "application/json"
    assert raw.endswith(b"\n")
    decoded = json.loads(raw)
    objects = decoded if isinstance(decoded, list) else [decoded]
    for obj in objects:
        assert list(obj) == sorted(obj)


def test_unknown_path_is_not_found(users):
    assert users.get("/users/1/extra").status_code == 404


def test_wrong_method_is_rejected(orders):
    assert orders.post("/orders").status_code == 405


def test_start_returns_addresses():
    assert start("127.0.0.1") == Addresses(
        users="http://localhost:9001",
        products="http://localhost:9002",
        orders="http://localhost:9003",
    )