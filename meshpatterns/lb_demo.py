"""Demo HTTP service that spreads requests over backends with a chosen algorithm."""

from __future__ import annotations

import argparse
import contextlib
import json
import logging
import sys
import threading
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from socketserver import ThreadingMixIn
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

import requests
from werkzeug.exceptions import HTTPException
from werkzeug.routing import Map, Rule
from werkzeug.wrappers import Request, Response

from .balancer import (
    Backend,
    Balancer,
    IPHash,
    LeastConnections,
    Random,
    RoundRobin,
    WeightedRoundRobin,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8082
DEFAULT_ALGORITHM = "roundrobin"
DEFAULT_TIMEOUT = 10.0
ALGORITHMS = ("roundrobin", "weighted", "leastconn", "iphash", "random")

_UNKNOWN_ALGO = "unknown algo — use: roundrobin, weighted, leastconn, iphash, random"
_DEMO_WEIGHTS = (3, 1, 1)


def _json_response(payload: Any, status: int = 200) -> Response:
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False) + "\n"
    return Response(body, status=status, content_type="application/json")


def _plain_error(status: int, message: str) -> Response:
    response = Response(message + "\n", status=status, content_type="text/plain; charset=utf-8")
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


def _remote_addr(environ: dict[str, Any]) -> str:
    host = environ.get("REMOTE_ADDR", "")
    port = environ.get("REMOTE_PORT", "")
    if not port:
        return host
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class LoadBalancerDemo:
    """WSGI app: ``GET /api?algo=...`` forwards to a backend, ``GET /stats`` reports counts.

    Every algorithm keeps its own state, so switching ``algo`` between requests
    does not disturb the others.
    """

    def __init__(
        self,
        backends: Iterable[Backend],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        items = tuple(backends)
        self._least_conns = LeastConnections(items)
        self._balancers: dict[str, Balancer] = {
            "roundrobin": RoundRobin(items),
            "weighted": WeightedRoundRobin(items),
            "leastconn": self._least_conns,
            "iphash": IPHash(items),
            "random": Random(items),
        }
        self._addresses = [backend.address for backend in items]
        self._counts: Counter[str] = Counter()
        self._lock = threading.Lock()
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            session.trust_env = False
        self._session = session
        self._url_map = Map(
            [
                Rule("/api", methods=["GET"], endpoint="api"),
                Rule("/stats", methods=["GET"], endpoint="stats"),
            ]
        )

    def __call__(self, environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        adapter = self._url_map.bind_to_environ(environ)
        try:
            endpoint, _values = adapter.match()
        except HTTPException as exc:
            return exc(environ, start_response)
        request = Request(environ)
        if endpoint == "api":
            response = self._route(request, environ)
        else:
            response = _json_response(self.stats())
        return response(environ, start_response)

    def stats(self) -> list[dict[str, Any]]:
        """Return how many requests each backend has answered, in backend order."""
        with self._lock:
            return [
                {"backend": f"backend-{position}", "address": address, "count": self._counts[address]}
                for position, address in enumerate(self._addresses, start=1)
            ]

    def _route(self, request: Request, environ: dict[str, Any]) -> Response:
        algo = request.args.get("algo", "") or DEFAULT_ALGORITHM
        balancer = self._balancers.get(algo)
        if balancer is None:
            return _plain_error(400, _UNKNOWN_ALGO)

        try:
            backend_url = balancer.next(_remote_addr(environ))
        except (LookupError, ValueError) as exc:
            return _plain_error(503, f"no backends available: {exc}")

        try:
            upstream = self._session.get(backend_url, timeout=self.timeout)
        except requests.RequestException as exc:
            return _plain_error(502, f"backend error: {exc}")

        with upstream:
            with self._lock:
                self._counts[backend_url] += 1
            if algo == "leastconn":
                self._least_conns.done(backend_url)
            logger.info("routed request algo=%s backend=%s", algo, backend_url)
            try:
                body = upstream.json()
            except ValueError:
                body = None

        return _json_response({"algo": algo, "backend": body})


class _FakeBackend:
    """Backend that answers every request with its name and address."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.address = ""

    def __call__(self, environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        response = _json_response({"backend": self.name, "address": self.address})
        return response(environ, start_response)


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _LoggingHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: object) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


def _start_fake_backends(stack: contextlib.ExitStack) -> list[Backend]:
    backends = []
    for position, weight in enumerate(_DEMO_WEIGHTS, start=1):
        app = _FakeBackend(f"backend-{position}")
        server = make_server(
            "127.0.0.1",
            0,
            app,
            server_class=_ThreadingWSGIServer,
            handler_class=_LoggingHandler,
        )
        app.address = f"http://127.0.0.1:{server.server_port}"
        threading.Thread(target=server.serve_forever, daemon=True).start()
        stack.callback(server.server_close)
        stack.callback(server.shutdown)
        backends.append(Backend(address=app.address, weight=weight))
    return backends


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the load-balancing demo.")
    parser.add_argument("--host", default="", help="interface to listen on (default: all)")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Start three fake backends and the demo balancer; return the exit status."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stdout,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    with contextlib.ExitStack() as stack:
        try:
            backends = _start_fake_backends(stack)
            server = make_server(
                args.host,
                args.port,
                LoadBalancerDemo(backends),
                server_class=_ThreadingWSGIServer,
                handler_class=_LoggingHandler,
            )
        except OSError as exc:
            logger.error("load balancer stopped error=%s", exc)
            return 1

        with server:
            port = server.server_port
            logger.info("Load Balancer demo running url=http://localhost:%d", port)
            logger.info("Try: curl 'http://localhost:%d/api?algo=roundrobin'", port)
            logger.info("Stats: curl http://localhost:%d/stats", port)
            try:
                server.serve_forever()
            except KeyboardInterrupt:
                logger.info("load balancer shutting down")
    return 0