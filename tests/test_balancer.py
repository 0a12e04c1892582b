import threading
from collections import Counter

import pytest

from meshpatterns.balancer import (
    Backend,
    Balancer,
    IPHash,
    LeastConnections,
    Random,
    RoundRobin,
    WeightedRoundRobin,
    fnv1a_32,
)

ADDRESSES = ["b0:9000", "b1:9001", "b2:9002"]


def three_backends():
    return [Backend(address=a, weight=1) for a in ADDRESSES]


def run_concurrently(func, count):
    results = []
    lock = threading.Lock()

    def worker():
        value = func()
        with lock:
            results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


@pytest.mark.parametrize(
    "cls", [RoundRobin, WeightedRoundRobin, LeastConnections, IPHash, Random]
)
@pytest.mark.parametrize("backends", [None, []])
def test_empty_backends_raise(cls, backends):
    with pytest.raises(ValueError, match="at least one backend"):
        cls(backends)


def test_round_robin_cycles_through_backends():
    lb = RoundRobin(three_backends())
    counts = Counter(lb.next("") for _ in range(9))
    assert counts == {a: 3 for a in ADDRESSES}


def test_round_robin_order_starts_at_first():
    lb = RoundRobin(three_backends())
    assert [lb.next("") for _ in range(4)] == ADDRESSES + ["b0:9000"]


def test_round_robin_concurrent_safe():
    lb = RoundRobin(three_backends())
    results = run_concurrently(lambda: lb.next(""), 100)
    assert len(results) == 100
    counts = Counter(results)
    assert set(counts) <= set(ADDRESSES)
    assert max(counts.values()) - min(counts.values()) <= 1


def test_weighted_round_robin_distributes_by_weight():
    backends = [
        Backend("b0:9000", weight=3),
        Backend("b1:9001", weight=1),
        Backend("b2:9002", weight=1),
    ]
    lb = WeightedRoundRobin(backends)
    picks = [lb.next("") for _ in range(5)]
    assert Counter(picks) == {"b0:9000": 3, "b1:9001": 1, "b2:9002": 1}
    assert picks == ["b0:9000", "b0:9000", "b0:9000", "b1:9001", "b2:9002"]


def test_weighted_round_robin_zero_weight_treated_as_one():
    lb = WeightedRoundRobin([Backend("b0:9000", weight=0), Backend("b1:9001", weight=0)])
    counts = Counter(lb.next("") for _ in range(4))
    assert counts == {"b0:9000": 2, "b1:9001": 2}


def test_least_connections_picks_least_loaded():
    lb = LeastConnections(three_backends())
    assert lb.next("") == "b0:9000"
    assert lb.next("") == "b1:9001"
    assert lb.next("") == "b2:9002"


def test_least_connections_done_decrements_count():
    lb = LeastConnections(three_backends())
    addr = lb.next("")
    assert lb.active_conns(addr) == 1
    lb.done(addr)
    assert lb.active_conns(addr) == 0


def test_least_connections_done_never_goes_negative():
    lb = LeastConnections(three_backends())
    lb.done("b0:9000")
    assert lb.active_conns("b0:9000") == 0


def test_least_connections_unknown_address():
    lb = LeastConnections(three_backends())
    lb.done("nowhere:1")
    assert lb.active_conns("nowhere:1") == -1


def test_least_connections_concurrent_safe():
    lb = LeastConnections(three_backends())

    def call():
        addr = lb.next("")
        lb.done(addr)
        return addr

    results = run_concurrently(call, 100)
    assert len(results) == 100
    assert [lb.active_conns(a) for a in ADDRESSES] == [0, 0, 0]


@pytest.mark.parametrize(
    "data, expected",
    [(b"", 0x811C9DC5), (b"a", 0xE40C292C), (b"foobar", 0xBF9CF968)],
)
def test_fnv1a_32_known_vectors(data, expected):
    assert fnv1a_32(data) == expected


def test_ip_hash_same_ip_always_same_backend():
    lb = IPHash(three_backends())
    for ip in ["192.168.1.1", "10.0.0.5", "172.16.0.100"]:
        first = lb.next(ip)
        assert all(lb.next(ip) == first for _ in range(4))


def test_ip_hash_maps_by_fnv_modulo():
    lb = IPHash(three_backends())
    assert lb.next("a") == ADDRESSES[0xE40C292C % 3]


def test_ip_hash_different_ips_reach_multiple_backends():
    lb = IPHash(three_backends())
    seen = {lb.next(f"10.0.0.{i}") for i in range(100)}
    assert len(seen) >= 2
    assert seen <= set(ADDRESSES)


def test_random_always_picks_valid_backend():
    lb = Random(three_backends())
    picks = [lb.next("") for _ in range(50)]
    assert set(picks) <= set(ADDRESSES)


def test_random_concurrent_safe():
    lb = Random(three_backends())
    results = run_concurrently(lambda: lb.next(""), 200)
    assert len(results) == 200
    assert set(results) <= set(ADDRESSES)


def test_all_types_implement_balancer():
    backends = three_backends()
    balancers = [
        RoundRobin(backends),
        WeightedRoundRobin(backends),
        LeastConnections(backends),
        IPHash(backends),
        Random(backends),
    ]
    for lb in balancers:
        assert isinstance(lb, Balancer)
        assert lb.next("127.0.0.1") in ADDRESSES