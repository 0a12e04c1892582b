"""Load-balancing strategies that pick a backend address for each request."""

from __future__ import annotations

import itertools
import random
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193


def fnv1a_32(data: bytes) -> int:
    """Return the 32-bit FNV-1a hash of ``data``."""
    value = _FNV32_OFFSET
    for byte in data:
        value ^= byte
        value = (value * _FNV32_PRIME) & 0xFFFFFFFF
    return value


@dataclass(frozen=True)
class Backend:
    """One server that can handle requests."""

    address: str
    weight: int = 0
    active_conns: int = 0


class Balancer(ABC):
    """Common interface for every load-balancing algorithm."""

    @abstractmethod
    def next(self, client_ip: str) -> str:
        """Return the address of the backend chosen for this request."""


def _require_backends(backends: Iterable[Backend], name: str) -> tuple[Backend, ...]:
    result = tuple(backends or ())
    if not result:
        raise ValueError(f"{name} requires at least one backend")
    return result


class _Cycle:
    """Thread-safe endless rotation over a fixed sequence."""

    def __init__(self, items: tuple[Backend, ...]) -> None:
        self._items = items
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def advance(self) -> Backend:
        with self._lock:
            idx = next(self._counter)
        return self._items[idx % len(self._items)]


class RoundRobin(Balancer):
    """Cycles through backends one by one; the client IP is ignored."""

    def __init__(self, backends: Iterable[Backend]) -> None:
        self._cycle = _Cycle(_require_backends(backends, "round robin"))

    def next(self, client_ip: str) -> str:
        return self._cycle.advance().address


class WeightedRoundRobin(Balancer):
    """Rotates through backends in proportion to their weight.

    A weight of zero or less counts as one.
    """

    def __init__(self, backends: Iterable[Backend]) -> None:
        items = _require_backends(backends, "weighted round robin")
        expanded = tuple(
            backend for backend in items for _ in range(max(backend.weight, 1))
        )
        self._cycle = _Cycle(expanded)

    def next(self, client_ip: str) -> str:
        return self._cycle.advance().address


@dataclass
class _ConnSlot:
    address: str
    active: int = 0


class LeastConnections(Balancer):
    """Routes to the backend with the fewest in-flight requests.

    Every address returned by :meth:`next` must be released with :meth:`done`.
    """

    def __init__(self, backends: Iterable[Backend]) -> None:
        items = _require_backends(backends, "least connections")
        self._slots = [_ConnSlot(backend.address) for backend in items]
        self._lock = threading.Lock()

    def next(self, client_ip: str) -> str:
        with self._lock:
            # min() keeps the first of equal candidates, so ties go to the lowest index.
            chosen = min(self._slots, key=lambda slot: slot.active)
            chosen.active += 1
            return chosen.address

    def _find(self, address: str) -> _ConnSlot | None:
        return next((slot for slot in self._slots if slot.address == address), None)

    def done(self, address: str) -> None:
        """Mark one request to ``address`` as finished."""
        with self._lock:
            slot = self._find(address)
            if slot is not None and slot.active > 0:
                slot.active -= 1

    def active_conns(self, address: str) -> int:
        """Return the in-flight count for ``address``, or -1 if it is unknown."""
        with self._lock:
            slot = self._find(address)
            return -1 if slot is None else slot.active


class IPHash(Balancer):
    """Sends the same client IP to the same backend every time."""

    def __init__(self, backends: Iterable[Backend]) -> None:
        self._backends = _require_backends(backends, "ip hash")

    def next(self, client_ip: str) -> str:
        idx = fnv1a_32(client_ip.encode()) % len(self._backends)
        return self._backends[idx].address


class Random(Balancer):
    """Picks a backend uniformly at random; the client IP is ignored."""

    def __init__(self, backends: Iterable[Backend]) -> None:
        self._backends = _require_backends(backends, "random balancer")

    def next(self, client_ip: str) -> str:
        return random.choice(self._backends).address