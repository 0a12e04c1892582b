from datetime import timedelta

import pytest
from werkzeug.test import Client

from meshpatterns.ratelimit import RateLimiter, RateLimitMiddleware, client_ip


def ok_app(environ, start_response):
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [b"ok"]


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def make_client(limit):
    limiter = RateLimiter(limit, timedelta(minutes=1))
    return Client(RateLimitMiddleware(ok_app, limiter))


def test_enforces_limit():
    client = make_client(3)
    env = {"REMOTE_ADDR": "10.0.0.1:1234"}
    for _ in range(3):
        assert client.get("/", environ_base=env).status_code == 200

    response = client.get("/", environ_base=env)
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"
    assert "rate limit exceeded" in response.get_data(as_text=True)


def test_separate_limits_per_ip():
    client = make_client(2)
    for _ in range(2):
        client.get("/", environ_base={"REMOTE_ADDR": "192.168.1.1:5000"})

    blocked = client.get("/", environ_base={"REMOTE_ADDR": "192.168.1.1:5000"})
    other = client.get("/", environ_base={"REMOTE_ADDR": "192.168.1.2:5000"})
    assert blocked.status_code == 429
    assert other.status_code == 200


def test_forwarded_header_identifies_client():
    client = make_client(1)
    first = client.get("/", headers={"X-Forwarded-For": "203.0.113.5"})
    second = client.get("/", headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.9"})
    third = client.get("/", headers={"X-Forwarded-For": "203.0.113.6"})
    assert [first.status_code, second.status_code, third.status_code] == [200, 429, 200]


def test_allow_counts_within_window():
    limiter = RateLimiter(2, 60, clock=FakeClock())
    assert [limiter.allow("a") for _ in range(3)] == [True, True, False]


def test_window_slides():
    clock = FakeClock()
    limiter = RateLimiter(2, 60, clock=clock)
    assert limiter.allow("a")
    clock.now += 30
    assert limiter.allow("a")
    assert not limiter.allow("a")

    clock.now += 29.9
    assert not limiter.allow("a")

    clock.now += 0.1
    assert limiter.allow("a")
    assert not limiter.allow("a")


def test_rejected_requests_are_not_recorded():
    clock = FakeClock()
    limiter = RateLimiter(1, 10, clock=clock)
    assert limiter.allow("a")
    for _ in range(5):
        clock.now += 1
        assert not limiter.allow("a")
    clock.now += 5
    assert limiter.allow("a")


def test_zero_limit_rejects_everything():
    limiter = RateLimiter(0, 60, clock=FakeClock())
    assert not limiter.allow("a")


def test_window_accepts_timedelta_and_seconds():
    assert RateLimiter(1, timedelta(minutes=1)).window == RateLimiter(1, 60).window


@pytest.mark.parametrize(
    "environ, expected",
    [
        ({"HTTP_X_FORWARDED_FOR": " 203.0.113.5 , 10.0.0.1"}, "203.0.113.5"),
        ({"HTTP_X_FORWARDED_FOR": "198.51.100.2", "REMOTE_ADDR": "10.0.0.1"}, "198.51.100.2"),
        ({"REMOTE_ADDR": "10.0.0.1:1234"}, "10.0.0.1"),
        ({"REMOTE_ADDR": "10.0.0.1"}, "10.0.0.1"),
        ({"REMOTE_ADDR": "::1"}, "::1"),
        ({"REMOTE_ADDR": "[::1]:8080"}, "[::1]"),
        ({}, ""),
    ],
)
def test_client_ip(environ, expected):
    assert client_ip(environ) == expected