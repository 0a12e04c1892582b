"""Pick a backend URL for a request by its path prefix or by a header."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass


class RouteNotFoundError(LookupError):
    """Raised when no routing rule matches a request."""


@dataclass(frozen=True)
class Route:
    """Send paths starting with ``prefix`` to ``backend``."""

    prefix: str
    backend: str


class PathRouter:
    """Routes by URL path prefix; the first matching rule wins."""

    def __init__(self, routes: Iterable[Route]) -> None:
        self.routes = tuple(routes)

    def route(self, path: str) -> str:
        """Return the backend URL for ``path``."""
        for rule in self.routes:
            if path.startswith(rule.prefix):
                return rule.backend
        raise RouteNotFoundError(
            f"no backend route found for path {path!r} — check your routing table"
        )


@dataclass(frozen=True)
class HeaderRoute:
    """Send requests whose routing header equals ``header_value`` to ``backend``."""

    header_value: str
    backend: str


class HeaderRouter:
    """Routes by the value of one request header."""

    def __init__(self, header_name: str, routes: Iterable[HeaderRoute]) -> None:
        self.header_name = header_name
        self.routes = tuple(routes)

    def _header_value(self, headers: Mapping[str, str]) -> str:
        wanted = self.header_name.lower()
        return next(
            (value for key, value in headers.items() if key.lower() == wanted), ""
        )

    def route(self, headers: Mapping[str, str]) -> str:
        """Return the backend URL selected by the routing header in ``headers``."""
        value = self._header_value(headers)
        if not value:
            raise RouteNotFoundError(
                f"missing routing header {self.header_name!r} — "
                "set it to one of the known service names"
            )
        for rule in self.routes:
            if rule.header_value == value:
                return rule.backend
        raise RouteNotFoundError(
            f"no backend found for {self.header_name}: {value!r} — "
            "known values: check your routing table"
        )