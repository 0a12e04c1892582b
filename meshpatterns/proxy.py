"""Reverse proxy that forwards WSGI requests to a backend service."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from http import HTTPStatus
from typing import Any
from urllib.parse import SplitResult, quote, urlsplit, urlunsplit

import requests
from werkzeug.wrappers import Request, Response

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
_CHUNK_SIZE = 64 * 1024
_PATH_SAFE = "/!$&'()*+,;=:@-._~%"

_HOP_BY_HOP = frozenset(
    {
        "connection",
        "proxy-connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)
_FORWARDING = frozenset({"x-forwarded-for", "x-forwarded-host", "x-forwarded-proto"})


def _plain_error(status: int, message: str) -> Response:
    response = Response(message + "\n", status=status, content_type="text/plain; charset=utf-8")
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


def _connection_tokens(value: str) -> set[str]:
    return {token.strip().lower() for token in value.split(",") if token.strip()}


def _join_path(base: str, extra: str) -> str:
    base_slash = base.endswith("/")
    extra_slash = extra.startswith("/")
    if base_slash and extra_slash:
        return base + extra[1:]
    if not base_slash and not extra_slash:
        return f"{base}/{extra}"
    return base + extra


def _outgoing_url(target: SplitResult, environ: dict[str, Any]) -> str:
    raw_path = environ.get("PATH_INFO", "").encode("latin-1", "replace")
    path = _join_path(target.path, quote(raw_path, safe=_PATH_SAFE))
    incoming_query = environ.get("QUERY_STRING", "")
    if target.query and incoming_query:
        query = f"{target.query}&{incoming_query}"
    else:
        query = target.query + incoming_query
    return urlunsplit((target.scheme, target.netloc, path, query, ""))


def _outgoing_headers(request: Request, environ: dict[str, Any]) -> dict[str, str]:
    incoming = request.headers
    skip = _HOP_BY_HOP | _FORWARDING | _connection_tokens(incoming.get("Connection", ""))
    skip |= {"host", "content-length"}
    headers = {name: value for name, value in incoming.items() if name.lower() not in skip}

    if "trailers" in _connection_tokens(incoming.get("Te", "")):
        headers["Te"] = "trailers"

    client = environ.get("REMOTE_ADDR", "")
    if client:
        prior = incoming.get("X-Forwarded-For", "")
        headers["X-Forwarded-For"] = f"{prior}, {client}" if prior else client
    host = incoming.get("Host", "")
    if host:
        headers["X-Forwarded-Host"] = host
    headers["X-Forwarded-Proto"] = "https" if environ.get("wsgi.url_scheme") == "https" else "http"
    headers["X-Forwarded-By"] = "api-gateway"
    return headers


def _status_line(upstream: requests.Response) -> str:
    reason = upstream.reason
    if not reason:
        try:
            reason = HTTPStatus(upstream.status_code).phrase
        except ValueError:
            reason = "Unknown"
    return f"{upstream.status_code} {reason}"


def _response_headers(upstream: requests.Response) -> list[tuple[str, str]]:
    raw_headers = upstream.raw.headers
    skip = _HOP_BY_HOP | _connection_tokens(raw_headers.get("Connection", ""))
    return [(name, value) for name, value in raw_headers.iteritems() if name.lower() not in skip]


def _relay(upstream: requests.Response, session: requests.Session | None) -> Iterator[bytes]:
    try:
        yield from upstream.raw.stream(_CHUNK_SIZE, decode_content=False)
    finally:
        upstream.close()
        if session is not None:
            session.close()


def _new_session() -> requests.Session:
    session = requests.Session()
    session.headers.clear()
    session.trust_env = False
    return session


class ReverseProxy:
    """WSGI app that forwards every request to ``target_url`` and relays the answer.

    The request path and query are appended to the target's own. Unreachable
    backends produce 502, an unparsable target 500.
    """

    def __init__(
        self,
        target_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.target_url = target_url
        self.timeout = timeout
        self._session = session

    def __call__(self, environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        try:
            target = urlsplit(self.target_url)
            target.port  # validates the port part
        except ValueError as exc:
            logger.error("proxy: invalid backend URL url=%s error=%s", self.target_url, exc)
            return _plain_error(500, "gateway configuration error")(environ, start_response)

        request = Request(environ)
        method = environ.get("REQUEST_METHOD", "GET")
        url = _outgoing_url(target, environ)
        headers = _outgoing_headers(request, environ)
        body = request.get_data(cache=False)
        logger.info(
            "proxy: forwarding method=%s path=%s backend=%s",
            method,
            urlsplit(url).path,
            self.target_url,
        )

        owned = self._session is None
        session = _new_session() if owned else self._session
        try:
            upstream = session.request(
                method,
                url,
                headers=headers,
                data=body or None,
                stream=True,
                allow_redirects=False,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            if owned:
                session.close()
            logger.error("proxy: backend failed backend=%s error=%s", self.target_url, exc)
            return _plain_error(502, f"backend service unavailable: {exc}")(
                environ, start_response
            )

        start_response(_status_line(upstream), _response_headers(upstream))
        return _relay(upstream, session if owned else None)


def forward(environ: dict[str, Any], start_response: Callable, target_url: str) -> Iterable[bytes]:
    """Forward one WSGI request to ``target_url`` and return the relayed response."""
    return ReverseProxy(target_url)(environ, start_response)