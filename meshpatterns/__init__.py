"""Load balancers, an in-memory service registry with an HTTP API, request routers, rate limiting, a reverse proxy and sample services for HTTP microservices."""

__version__ = "0.1.0"