"""Demo user, product and order services that answer with fixed JSON."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from socketserver import ThreadingMixIn
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from werkzeug.exceptions import HTTPException
from werkzeug.routing import Map, Rule
from werkzeug.wrappers import Response

logger = logging.getLogger(__name__)

_USERS = [
    {"id": "1", "name": "Alice Johnson", "email": "alice@example.com", "role": "customer"},
    {"id": "2", "name": "Bob Smith", "email": "bob@example.com", "role": "customer"},
    {"id": "3", "name": "Carol Admin", "email": "carol@example.com", "role": "admin"},
]

_PRODUCTS = [
    {"id": "p1", "name": "Laptop Pro", "price": 1299.99, "stock": 15},
    {"id": "p2", "name": "Wireless Mouse", "price": 29.99, "stock": 200},
    {"id": "p3", "name": "Mechanical Keyboard", "price": 89.99, "stock": 75},
]

_ORDERS = [
    {"id": "o1", "userID": "1", "product": "Laptop Pro", "status": "delivered", "total": 1299.99},
    {"id": "o2", "userID": "2", "product": "Wireless Mouse", "status": "pending", "total": 29.99},
]


@dataclass(frozen=True)
class Addresses:
    """Base URLs of the three demo services."""

    users: str
    products: str
    orders: str


def _json_response(payload: Any) -> Response:
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False) + "\n"
    return Response(body, content_type="application/json")


class _ServiceApp:
    """WSGI app dispatching to handler callables stored as rule endpoints."""

    def __init__(self, rules: list[Rule]) -> None:
        self._url_map = Map(rules)

    def __call__(self, environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        adapter = self._url_map.bind_to_environ(environ)
        try:
            handler, values = adapter.match()
        except HTTPException as exc:
            return exc(environ, start_response)
        return handler(**values)(environ, start_response)


def users_app() -> _ServiceApp:
    """Return the User Service WSGI app."""

    def list_users() -> Response:
        logger.info("UserService: GET /users")
        return _json_response(_USERS)

    def get_user(item_id: str) -> Response:
        logger.info("UserService: GET /users/{id} id=%s", item_id)
        return _json_response(
            {"id": item_id, "name": "Alice Johnson", "email": "alice@example.com", "role": "customer"}
        )

    return _ServiceApp(
        [
            Rule("/users", methods=["GET"], endpoint=list_users),
            Rule("/users/<item_id>", methods=["GET"], endpoint=get_user),
        ]
    )


def products_app() -> _ServiceApp:
    """Return the Product Service WSGI app."""

    def list_products() -> Response:
        logger.info("ProductService: GET /products")
        return _json_response(_PRODUCTS)

    def get_product(item_id: str) -> Response:
        logger.info("ProductService: GET /products/{id} id=%s", item_id)
        return _json_response(
            {
                "id": item_id,
                "name": "Laptop Pro",
                "price": 1299.99,
                "stock": 15,
                "description": "High-performance laptop for developers",
            }
        )

    return _ServiceApp(
        [
            Rule("/products", methods=["GET"], endpoint=list_products),
            Rule("/products/<item_id>", methods=["GET"], endpoint=get_product),
        ]
    )


def orders_app() -> _ServiceApp:
    """Return the Order Service WSGI app."""

    def list_orders() -> Response:
        logger.info("OrderService: GET /orders")
        return _json_response(_ORDERS)

    def get_order(item_id: str) -> Response:
        logger.info("OrderService: GET /orders/{id} id=%s", item_id)
        return _json_response(
            {
                "id": item_id,
                "userID": "1",
                "product": "Laptop Pro",
                "status": "delivered",
                "total": 1299.99,
            }
        )

    return _ServiceApp(
        [
            Rule("/orders", methods=["GET"], endpoint=list_orders),
            Rule("/orders/<item_id>", methods=["GET"], endpoint=get_order),
        ]
    )


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: object) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


def _serve(label: str, host: str, port: int, app: Callable) -> None:
    try:
        server = make_server(
            host, port, app, server_class=_ThreadingWSGIServer, handler_class=_QuietHandler
        )
    except OSError as exc:
        logger.error("%s crashed error=%s", label, exc)
        return
    logger.info("%s started addr=http://localhost:%d", label, port)
    with server:
        server.serve_forever()


def start(host: str = "") -> Addresses:
    """Run the three demo services in background threads and return their URLs."""
    services = (
        ("User Service", 9001, users_app),
        ("Product Service", 9002, products_app),
        ("Order Service", 9003, orders_app),
    )
    for label, port, factory in services:
        threading.Thread(
            target=_serve, args=(label, host, port, factory()), name=label, daemon=True
        ).start()
    return Addresses(
        users="http://localhost:9001",
        products="http://localhost:9002",
        orders="http://localhost:9003",
    )