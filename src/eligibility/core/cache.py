"""Result cache keyed by criteria fingerprint and input fingerprint."""

from __future__ import annotations

import json
import threading
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Any, Callable, Protocol, runtime_checkable

import redis
import structlog

from ..errors import CacheUnavailableError
from .results import EvaluationResult


@runtime_checkable
class CacheBackend(Protocol):
    """Storage contract used by ``EvaluationCache``."""

    def get(self, key: str) -> EvaluationResult | None:
        ...

    def set(self, key: str, result: EvaluationResult, ttl_seconds: int) -> None:
        ...

    def generation(self, criteria_id: str) -> int:
        ...

    def bump_generation(self, criteria_id: str) -> int:
        ...

    def clear(self) -> None:
        ...

    def size(self) -> int:
        ...


class MemoryCacheBackend:
    """Process-local backend with TTL expiry and oldest-first eviction."""

    def __init__(self, max_entries: int = 10_000, clock: Callable[[], float] = time.monotonic) -> None:
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, EvaluationResult]] = OrderedDict()
        self._generations: dict[str, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> EvaluationResult | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, result = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return result

    def set(self, key: str, result: EvaluationResult, ttl_seconds: int) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (self._clock() + ttl_seconds, result)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def generation(self, criteria_id: str) -> int:
        with self._lock:
            return self._generations.get(criteria_id, 0)

    def bump_generation(self, criteria_id: str) -> int:
        with self._lock:
            value = self._generations.get(criteria_id, 0) + 1
            self._generations[criteria_id] = value
            return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generations.clear()

    def size(self) -> int:
        return len(self)


class RedisCacheBackend:
    """Shared backend storing JSON payloads in Redis."""

    def __init__(self, client: Any, *, namespace: str = "eligibility") -> None:
        self._client = client
        self._namespace = namespace

    @classmethod
    def from_url(cls, url: str, *, namespace: str = "eligibility") -> RedisCacheBackend:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(client, namespace=namespace)

    def get(self, key: str) -> EvaluationResult | None:
        try:
            raw = self._client.get(key)
        except redis.RedisError as exc:
            raise CacheUnavailableError(str(exc)) from exc
        if not raw:
            return None
        return EvaluationResult.from_payload(json.loads(raw))

    def set(self, key: str, result: EvaluationResult, ttl_seconds: int) -> None:
        payload = json.dumps(result.to_payload(), default=str, separators=(",", ":"))
        try:
            self._client.setex(key, ttl_seconds, payload)
        except redis.RedisError as exc:
            raise CacheUnavailableError(str(exc)) from exc

    def generation(self, criteria_id: str) -> int:
        try:
            raw = self._client.get(self._generation_key(criteria_id))
        except redis.RedisError as exc:
            raise CacheUnavailableError(str(exc)) from exc
        return int(raw) if raw else 0

    def bump_generation(self, criteria_id: str) -> int:
        try:
            return int(self._client.incr(self._generation_key(criteria_id)))
        except redis.RedisError as exc:
            raise CacheUnavailableError(str(exc)) from exc

    def clear(self) -> None:
        try:
            keys = list(self._client.scan_iter(match=f"{self._namespace}:*"))
            if keys:
                self._client.delete(*keys)
        except redis.RedisError as exc:
            raise CacheUnavailableError(str(exc)) from exc

    def size(self) -> int:
        generation_prefix = f"{self._namespace}:generation:"
        try:
            return sum(
                1
                for key in self._client.scan_iter(match=f"{self._namespace}:*")
                if not key.startswith(generation_prefix)
            )
        except redis.RedisError as exc:
            raise CacheUnavailableError(str(exc)) from exc

    def _generation_key(self, criteria_id: str) -> str:
        return f"{self._namespace}:generation:{criteria_id}"


@dataclass(slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    writes: int = 0
    invalidations: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class EvaluationCache:
    """Fail-open cache in front of a ``CacheBackend``.

    Keys embed a per-criteria generation counter, so ``invalidate`` makes
    every earlier entry for that criteria unreachable without scanning.
    Backend failures are logged and treated as misses. ``enabled`` is the
    default the engine applies when a caller does not choose explicitly.
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        *,
        ttl_seconds: int = 3600,
        prefix: str = "eligibility",
        enabled: bool = True,
    ) -> None:
        self.backend = backend or MemoryCacheBackend()
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix
        self.enabled = enabled
        self.stats = CacheStats()
        self._lock = threading.Lock()
        self._logger = structlog.get_logger(__name__)

    def get(self, criteria_id: str, criteria_fingerprint: str, input_fingerprint: str) -> EvaluationResult | None:
        try:
            key = self._key(criteria_id, criteria_fingerprint, input_fingerprint)
            result = self.backend.get(key)
        except Exception as exc:  # noqa: BLE001
            self._backend_error("get", criteria_id, exc)
            return None
        self._count("hits" if result is not None else "misses")
        if result is not None:
            self._logger.debug("cache.hit", criteria_id=criteria_id, key=key)
        return result

    def is_cached(self, criteria_id: str, criteria_fingerprint: str, input_fingerprint: str) -> bool:
        """Lookup that leaves hit and miss counters untouched."""
        try:
            key = self._key(criteria_id, criteria_fingerprint, input_fingerprint)
            return self.backend.get(key) is not None
        except Exception as exc:  # noqa: BLE001
            self._backend_error("is_cached", criteria_id, exc)
            return False

    def put(
        self,
        criteria_id: str,
        criteria_fingerprint: str,
        input_fingerprint: str,
        result: EvaluationResult,
    ) -> None:
        try:
            key = self._key(criteria_id, criteria_fingerprint, input_fingerprint)
            self.backend.set(key, result, self.ttl_seconds)
        except Exception as exc:  # noqa: BLE001
            self._backend_error("set", criteria_id, exc)
            return
        self._count("writes")

    def invalidate(self, criteria_id: str) -> None:
        try:
            generation = self.backend.bump_generation(criteria_id)
        except Exception as exc:  # noqa: BLE001
            self._backend_error("invalidate", criteria_id, exc)
            return
        self._count("invalidations")
        self._logger.info("cache.invalidated", criteria_id=criteria_id, generation=generation)

    def flush(self) -> bool:
        """Drop every cached result for every criteria."""
        try:
            self.backend.clear()
        except Exception as exc:  # noqa: BLE001
            self._backend_error("flush", None, exc)
            return False
        self._logger.info("cache.flushed", prefix=self.prefix)
        return True

    def describe(self) -> dict[str, Any]:
        try:
            entries: int | None = self.backend.size()
        except Exception as exc:  # noqa: BLE001
            self._backend_error("size", None, exc)
            entries = None
        with self._lock:
            stats = self.stats.to_dict()
        return {
            "backend": type(self.backend).__name__,
            "enabled": self.enabled,
            "ttl_seconds": self.ttl_seconds,
            "prefix": self.prefix,
            "entries": entries,
            "stats": stats,
        }

    def _key(self, criteria_id: str, criteria_fingerprint: str, input_fingerprint: str) -> str:
        generation = self.backend.generation(criteria_id)
        return f"{self.prefix}:{criteria_id}:g{generation}:{criteria_fingerprint}:{input_fingerprint}"

    def _count(self, name: str) -> None:
        with self._lock:
            setattr(self.stats, name, getattr(self.stats, name) + 1)

    def _backend_error(self, operation: str, criteria_id: str | None, exc: Exception) -> None:
        self._count("errors")
        self._logger.error("cache.backend_error", operation=operation, criteria_id=criteria_id, error=str(exc))
