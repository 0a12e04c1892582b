"""WSGI application that exposes a service registry as a JSON HTTP API."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from werkzeug.exceptions import HTTPException
from werkzeug.routing import Map, Rule
from werkzeug.wrappers import Request, Response

from .registry import (
    Instance,
    InstanceNotFoundError,
    RegisterRequest,
    Registry,
    RegistryError,
)

logger = logging.getLogger(__name__)


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is not None and moment.utcoffset() == timedelta(0):
        return moment.astimezone(timezone.utc).replace(tzinfo=None).isoformat() + "Z"
    return moment.isoformat()


def instance_to_dict(instance: Instance) -> dict[str, Any]:
    """Return the JSON shape of an instance; empty metadata is left out."""
    result: dict[str, Any] = {
        "instance_id": instance.id,
        "name": instance.name,
        "address": instance.address,
    }
    if instance.metadata:
        result["metadata"] = dict(instance.metadata)
    result["registered_at"] = _format_time(instance.registered_at)
    return result


def _json_response(payload: Any, status: int = 200) -> Response:
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False) + "\n"
    return Response(body, status=status, mimetype="application/json")


def _error_response(status: int, message: str) -> Response:
    return _json_response({"error": message}, status)


def _optional_string(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _parse_register_body(text: str) -> RegisterRequest:
    try:
        payload, _ = json.JSONDecoder().raw_decode(text.lstrip())
    except json.JSONDecodeError as exc:
        raise ValueError(str(exc)) from exc
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValueError("expected a JSON object")

    metadata = payload.get("metadata")
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict) or not all(
        isinstance(value, str) for value in metadata.values()
    ):
        raise ValueError("field 'metadata' must be an object of strings")

    return RegisterRequest(
        name=_optional_string(payload, "name"),
        address=_optional_string(payload, "address"),
        metadata=metadata,
    )


class DiscoveryApp:
    """Registry HTTP API: health, register, deregister, heartbeat and lookups."""

    def __init__(self, registry: Registry) -> None:
        self.registry = registry
        self._url_map = Map(
            [
                Rule("/health", methods=["GET"], endpoint="health"),
                Rule("/register", methods=["POST"], endpoint="register"),
                Rule("/deregister/<instance_id>", methods=["DELETE"], endpoint="deregister"),
                Rule("/heartbeat/<instance_id>", methods=["PUT"], endpoint="heartbeat"),
                Rule("/services/<name>", methods=["GET"], endpoint="get_by_name"),
                Rule("/services", methods=["GET"], endpoint="get_all"),
            ]
        )
        self._handlers: dict[str, Callable[..., Response]] = {
            "health": self._health,
            "register": self._register,
            "deregister": self._deregister,
            "heartbeat": self._heartbeat,
            "get_by_name": self._get_by_name,
            "get_all": self._get_all,
        }

    def __call__(self, environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        request = Request(environ)
        adapter = self._url_map.bind_to_environ(environ)
        try:
            endpoint, values = adapter.match()
            response = self._handlers[endpoint](request, **values)
        except HTTPException as exc:
            return exc(environ, start_response)
        return response(environ, start_response)

    def _health(self, request: Request) -> Response:
        return _json_response(
            {"status": "ok", "service": "service-registry", "count": self.registry.count()}
        )

    def _register(self, request: Request) -> Response:
        try:
            register_request = _parse_register_body(request.get_data(as_text=True))
        except ValueError as exc:
            return _error_response(400, f"invalid JSON body: {exc}")

        try:
            instance = self.registry.register(register_request)
        except RegistryError as exc:
            return _error_response(400, str(exc))

        logger.info(
            "registered instance id=%s name=%s address=%s",
            instance.id,
            instance.name,
            instance.address,
        )
        return _json_response(instance_to_dict(instance), 201)

    def _deregister(self, request: Request, instance_id: str) -> Response:
        try:
            self.registry.deregister(instance_id)
        except InstanceNotFoundError as exc:
            return _error_response(404, str(exc))
        logger.info("deregistered instance id=%s", instance_id)
        return _json_response({"message": "deregistered", "instance_id": instance_id})

    def _heartbeat(self, request: Request, instance_id: str) -> Response:
        try:
            self.registry.heartbeat(instance_id)
        except InstanceNotFoundError as exc:
            return _error_response(404, str(exc))
        return _json_response({"message": "ok", "instance_id": instance_id})

    def _get_by_name(self, request: Request, name: str) -> Response:
        instances = [instance_to_dict(inst) for inst in self.registry.get_by_name(name)]
        return _json_response({"name": name, "count": len(instances), "instances": instances})

    def _get_all(self, request: Request) -> Response:
        instances = [instance_to_dict(inst) for inst in self.registry.get_all()]
        return _json_response({"count": len(instances), "instances": instances})