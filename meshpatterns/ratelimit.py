"""Per-client sliding-window rate limiting as WSGI middleware."""

from __future__ import annotations

import ipaddress
import threading
import time
from collections.abc import Callable, Iterable
from datetime import timedelta
from typing import Any

from werkzeug.wrappers import Response

_REJECT_MESSAGE = "rate limit exceeded — too many requests, please wait before trying again"
_RETRY_AFTER_SECONDS = "60"


class RateLimiter:
    """Allows at most ``limit`` requests per client within a sliding ``window``.

    ``window`` is a :class:`~datetime.timedelta` or a number of seconds.
    ``clock`` returns the current time in seconds.
    """

    def __init__(
        self,
        limit: int,
        window: timedelta | float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window = window.total_seconds() if isinstance(window, timedelta) else float(window)
        self._clock = clock
        self._requests: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def allow(self, ip: str) -> bool:
        """Record a request from ``ip`` and return whether it is within the limit."""
        with self._lock:
            now = self._clock()
            window_start = now - self.window
            recent = [stamp for stamp in self._requests.get(ip, ()) if stamp > window_start]
            if len(recent) >= self.limit:
                self._requests[ip] = recent
                return False
            recent.append(now)
            self._requests[ip] = recent
            return True


def client_ip(environ: dict[str, Any]) -> str:
    """Return the client address: first X-Forwarded-For entry, else the peer without port."""
    forwarded = environ.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip()

    remote = environ.get("REMOTE_ADDR", "")
    try:
        ipaddress.ip_address(remote)
    except ValueError:
        host, sep, _port = remote.rpartition(":")
        if sep:
            return host
    return remote


class RateLimitMiddleware:
    """Wraps a WSGI app and answers 429 to clients over their limit."""

    def __init__(self, app: Callable, limiter: RateLimiter) -> None:
        self.app = app
        self.limiter = limiter

    def __call__(self, environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        if not self.limiter.allow(client_ip(environ)):
            response = Response(
                _REJECT_MESSAGE + "\n",
                status=429,
                content_type="text/plain; charset=utf-8",
            )
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["Retry-After"] = _RETRY_AFTER_SECONDS
            return response(environ, start_response)
        return self.app(environ, start_response)