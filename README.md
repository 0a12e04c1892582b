# meshpatterns

Small building blocks for microservice setups over HTTP, built on the standard
library, `werkzeug` and `requests`:

- **`meshpatterns.balancer`**: load-balancing strategies behind one `Balancer`
  interface (`next(client_ip)` returns a backend address): `RoundRobin`,
  `WeightedRoundRobin`, `LeastConnections`, `IPHash` (FNV-1a of the client IP,
  see `fnv1a_32`) and `Random`.
- **`meshpatterns.registry`**: a thread-safe in-memory service `Registry` with
  registration, heartbeats and expiry of silent instances.
- **`meshpatterns.discovery_api`**: `DiscoveryApp`, a WSGI application that
  exposes a registry as a JSON API.
- **`meshpatterns.discovery_cli`**: the `meshpatterns-discovery` command, plus
  `discover()` for client-side lookups against a running registry.
- **`meshpatterns.router`**: `PathRouter` (first matching path prefix wins) and
  `HeaderRouter` (routing by the value of one request header).
- **`meshpatterns.ratelimit`**: a sliding-window `RateLimiter` per client and
  `RateLimitMiddleware` for WSGI.
- **`meshpatterns.proxy`**: `ReverseProxy` and `forward` for passing a WSGI
  request on to a backend service.
- **`meshpatterns.backends`**: sample user, product and order services that
  answer with fixed JSON.
- **`meshpatterns.lb_demo`**: `LoadBalancerDemo` and the `meshpatterns-lb-demo`
  command.

## Installing

```
pip install meshpatterns
```

## Load balancing

```python
from meshpatterns.balancer import Backend, RoundRobin, WeightedRoundRobin, LeastConnections

backends = [Backend("b0:9000"), Backend("b1:9001"), Backend("b2:9002")]

rr = RoundRobin(backends)
rr.next("")            # "b0:9000", then "b1:9001", "b2:9002", "b0:9000", ...

lc = LeastConnections(backends)
address = lc.next("")  # the backend with the fewest in-flight requests
lc.active_conns(address)  # 1; -1 for an unknown address
lc.done(address)       # call once the request has finished
```

Every strategy raises `ValueError` when given an empty list of backends.
In `WeightedRoundRobin` a backend with weight 3 gets three consecutive turns in
every cycle; a weight of zero or less counts as one. `IPHash` always sends the
same client IP to the same backend as long as the backend list is unchanged.

## Service registry

```python
from datetime import timedelta
from meshpatterns.registry import Registry, RegisterRequest, InstanceNotFoundError

registry = Registry(timedelta(seconds=30))
instance = registry.register(RegisterRequest(name="user-svc", address="localhost:9001"))
registry.heartbeat(instance.id)
registry.get_by_name("user-svc")
registry.pick_one("user-svc")   # a random instance of that service
registry.remove_expired()       # ids of instances whose heartbeat has lapsed
registry.deregister(instance.id)
```

Instance ids look like `user-svc-1a2b3c4d`. A missing name or address raises
`RegistryError`; unknown instance ids, and `pick_one` for a service with no
instances, raise `InstanceNotFoundError`. The default timeout is 30 seconds,
and a `clock` keyword lets you supply the current time.

`DiscoveryApp(registry)` serves the registry over HTTP:

| Request | Answer |
| --- | --- |
| `GET /health` | `{"status": "ok", "service": "service-registry", "count": n}` |
| `POST /register` with `{"name", "address", "metadata"}` | 201 and the instance; 400 on bad JSON or missing fields |
| `DELETE /deregister/{id}` | 200, or 404 for an unknown id |
| `PUT /heartbeat/{id}` | 200, or 404 for an unknown id |
| `GET /services` | `{"count", "instances"}` |
| `GET /services/{name}` | `{"name", "count", "instances"}`, count 0 if none |

Errors come back as `{"error": "..."}`.

## Routing

```python
from meshpatterns.router import PathRouter, Route, HeaderRouter, HeaderRoute

router = PathRouter([
    Route("/api/users", "http://localhost:9001"),
    Route("/api/products", "http://localhost:9002"),
])
router.route("/api/users/123")   # "http://localhost:9001"

by_header = HeaderRouter("X-Service", [HeaderRoute("users", "http://localhost:9001")])
by_header.route({"X-Service": "users"})   # header names match case-insensitively
```

A path, a missing header or a header value with no matching route raises
`RouteNotFoundError`.

## Rate limiting and proxying

```python
from meshpatterns.proxy import ReverseProxy
from meshpatterns.ratelimit import RateLimiter, RateLimitMiddleware

app = RateLimitMiddleware(ReverseProxy("http://localhost:9001"), RateLimiter(100, 60))
```

`RateLimiter(limit, window)` takes the window as seconds or a `timedelta`.
Clients are told apart by the first `X-Forwarded-For` entry, otherwise by the
peer address (`client_ip`). Over the limit, the middleware answers 429 with
`Retry-After: 60`.

`ReverseProxy` appends the request path and query to the target URL, drops
hop-by-hop headers, sets `X-Forwarded-For`, `X-Forwarded-Host`,
`X-Forwarded-Proto` and `X-Forwarded-By: api-gateway`, and streams the answer
back. An unreachable backend gives 502, an unparsable target URL 500; the
default timeout is 10 seconds.

`meshpatterns.backends.start()` runs the sample services on ports 9001, 9002
and 9003 in background threads and returns their `Addresses`; `users_app()`,
`products_app()` and `orders_app()` give the WSGI apps themselves.

## Commands

Run the service registry on port 8081, pre-filled with a few demo instances:

```
meshpatterns-discovery [--host HOST] [--port PORT] [--cleanup-interval SECONDS]
```

Instances that send no heartbeat for 30 seconds are removed by a scan that runs
every 10 seconds by default.

Run the load-balancing demo on port 8082 with three local sample backends
(weights 3, 1 and 1):

```
meshpatterns-lb-demo [--host HOST] [--port PORT]
```

Then request `GET /api?algo=roundrobin` (or `weighted`, `leastconn`, `iphash`,
`random`; an unknown value gives 400) and see the per-backend counts at
`GET /stats`.

## What is not included

There is no authentication: the package has no token issuing or checking and
no authorization middleware. There is also no ready-made API gateway command;
a gateway is put together from `PathRouter`, `RateLimitMiddleware` and
`ReverseProxy` as shown above. The registry keeps everything in memory and
loses it on restart.