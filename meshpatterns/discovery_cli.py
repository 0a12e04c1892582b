"""Command that runs the service registry with demo instances and cleanup."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from socketserver import ThreadingMixIn
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

import requests

from .discovery_api import DiscoveryApp
from .registry import DEFAULT_HEARTBEAT_TIMEOUT, Instance, RegisterRequest, Registry

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8081
DEFAULT_CLEANUP_INTERVAL = 10.0
_DISCOVERY_TIMEOUT = 5.0

_DEMO_SERVICES = (
    RegisterRequest("user-svc", "localhost:9001", {"version": "1.2.0", "region": "us-east-1"}),
    RegisterRequest("user-svc", "localhost:9011", {"version": "1.2.0", "region": "us-east-1"}),
    RegisterRequest("order-svc", "localhost:9002", {"version": "2.0.1", "region": "us-east-1"}),
    RegisterRequest("product-svc", "localhost:9003", {"version": "3.1.0", "region": "eu-west-1"}),
)


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _LoggingHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: object) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


def register_demo_services(registry: Registry) -> list[Instance]:
    """Register the demo instances and return the ones that were accepted."""
    registered = []
    for request in _DEMO_SERVICES:
        try:
            instance = registry.register(request)
        except Exception as exc:
            logger.error("failed to register demo service name=%s error=%s", request.name, exc)
            continue
        logger.info(
            "registered demo instance id=%s name=%s address=%s",
            instance.id,
            instance.name,
            instance.address,
        )
        registered.append(instance)
    return registered


def run_cleanup(registry: Registry, stop_event: threading.Event, interval: float) -> None:
    """Remove expired instances every ``interval`` seconds until ``stop_event`` is set."""
    while not stop_event.wait(interval):
        for instance_id in registry.remove_expired():
            logger.warning(
                "removed expired instance (heartbeat timeout) instance_id=%s", instance_id
            )


def discover(registry_addr: str, service_name: str) -> str | None:
    """Ask the registry for ``service_name`` and return the first instance's address."""
    url = f"http://{registry_addr}/services/{service_name}"
    try:
        response = requests.get(url, timeout=_DISCOVERY_TIMEOUT)
    except requests.RequestException:
        logger.error("discovery lookup failed service=%s", service_name)
        return None
    if response.status_code != 200:
        logger.error("discovery lookup failed service=%s", service_name)
        return None

    try:
        body = response.json()
    except ValueError:
        return None

    instances = body.get("instances") or []
    if not body.get("count") or not instances:
        logger.warning("no instances found for service=%s", service_name)
        return None

    chosen = instances[0]["address"]
    logger.info(
        "client-side discovery: chose instance service=%s address=%s", service_name, chosen
    )
    return chosen


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the service registry.")
    parser.add_argument("--host", default="", help="interface to listen on (default: all)")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument(
        "--cleanup-interval",
        type=float,
        default=DEFAULT_CLEANUP_INTERVAL,
        help="seconds between scans for expired instances",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the registry server until interrupted; return the exit status."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stdout,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    registry = Registry(DEFAULT_HEARTBEAT_TIMEOUT)
    stop_event = threading.Event()
    cleaner = threading.Thread(
        target=run_cleanup,
        args=(registry, stop_event, args.cleanup_interval),
        daemon=True,
    )
    cleaner.start()
    try:
        register_demo_services(registry)
        try:
            server = make_server(
                args.host,
                args.port,
                DiscoveryApp(registry),
                server_class=_ThreadingWSGIServer,
                handler_class=_LoggingHandler,
            )
        except OSError as exc:
            logger.error("registry stopped error=%s", exc)
            return 1

        with server:
            port = server.server_port
            logger.info("Service Registry running url=http://localhost:%d", port)
            logger.info("See all services -> curl http://localhost:%d/services", port)
            try:
                server.serve_forever()
            except KeyboardInterrupt:
                logger.info("registry shutting down")
        return 0
    finally:
        stop_event.set()
        cleaner.join()