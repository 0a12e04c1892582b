"""In-memory, thread-safe registry of running service instances."""

from __future__ import annotations

import random
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

DEFAULT_HEARTBEAT_TIMEOUT = timedelta(seconds=30)


class RegistryError(Exception):
    """Raised when the registry rejects a request."""


class InstanceNotFoundError(RegistryError, LookupError):
    """Raised when an instance or service is not registered."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Instance:
    """One running copy of a service."""

    id: str
    name: str
    address: str
    metadata: dict[str, str] = field(default_factory=dict)
    registered_at: datetime = field(default_factory=_utcnow)
    last_heartbeat: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class RegisterRequest:
    """What a service sends when it registers."""

    name: str
    address: str
    metadata: dict[str, str] = field(default_factory=dict)


class Registry:
    """Central store of service instances keyed by instance id.

    Instances that have not sent a heartbeat within ``heartbeat_timeout``
    are dropped by :meth:`remove_expired`.
    """

    def __init__(
        self,
        heartbeat_timeout: timedelta = DEFAULT_HEARTBEAT_TIMEOUT,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.heartbeat_timeout = heartbeat_timeout
        self._clock = clock
        self._instances: dict[str, Instance] = {}
        self._lock = threading.Lock()

    def register(self, request: RegisterRequest) -> Instance:
        """Add a new instance and return it with its generated id."""
        if not request.name:
            raise RegistryError("service name is required")
        if not request.address:
            raise RegistryError("service address is required")

        now = self._clock()
        with self._lock:
            instance_id = self._new_id(request.name)
            instance = Instance(
                id=instance_id,
                name=request.name,
                address=request.address,
                metadata=dict(request.metadata or {}),
                registered_at=now,
                last_heartbeat=now,
            )
            self._instances[instance_id] = instance
        return instance

    def _new_id(self, name: str) -> str:
        while True:
            candidate = f"{name}-{random.getrandbits(32):08x}"
            if candidate not in self._instances:
                return candidate

    def deregister(self, instance_id: str) -> None:
        """Remove an instance; raise if it is not registered."""
        with self._lock:
            if self._instances.pop(instance_id, None) is None:
                raise InstanceNotFoundError(f"instance {instance_id!r} not found")

    def heartbeat(self, instance_id: str) -> None:
        """Reset the last-seen time of an instance."""
        now = self._clock()
        with self._lock:
            instance = self._instances.get(instance_id)
            if instance is None:
                raise InstanceNotFoundError(
                    f"instance {instance_id!r} not found — "
                    "it may have been removed due to timeout"
                )
            instance.last_heartbeat = now

    def get_by_name(self, name: str) -> list[Instance]:
        """Return every instance registered under ``name``."""
        with self._lock:
            return [inst for inst in self._instances.values() if inst.name == name]

    def get_all(self) -> list[Instance]:
        """Return every registered instance."""
        with self._lock:
            return list(self._instances.values())

    def pick_one(self, name: str) -> Instance:
        """Return a random instance of ``name``; raise if there is none."""
        instances = self.get_by_name(name)
        if not instances:
            raise InstanceNotFoundError(f"no instances registered for service {name!r}")
        return random.choice(instances)

    def remove_expired(self) -> list[str]:
        """Drop instances whose heartbeat is older than the timeout; return their ids."""
        now = self._clock()
        with self._lock:
            expired = [
                instance_id
                for instance_id, inst in self._instances.items()
                if now - inst.last_heartbeat > self.heartbeat_timeout
            ]
            for instance_id in expired:
                del self._instances[instance_id]
        return expired

    def count(self) -> int:
        """Return how many instances are registered."""
        with self._lock:
            return len(self._instances)