from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

from app.settings import ServiceSettings


class InMemoryCacheBackend:
    """String key/value cache with per-key expiry, read against an injectable monotonic clock."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[str, float]] = {}

    def _live(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._live(key)

    def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def set_if_absent(self, key: str, value: str, *, ttl_seconds: int) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self._entries[key] = (value, self._clock() + ttl_seconds)
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


def _import_redis() -> Any:
    try:
        import redis  # type: ignore
    except ImportError as exc:
        raise RuntimeError("redis is required for PERMIT_CACHE_BACKEND=redis; install redis>=5") from exc
    return redis


class RedisCacheBackend:
    def __init__(self, *, dsn: str) -> None:
        if not dsn.strip():
            raise ValueError("REDIS_DSN must be provided for redis cache backend")
        self._client = _import_redis().Redis.from_url(dsn.strip(), decode_responses=True)

    def get(self, key: str) -> str | None:
        raw = self._client.get(key)
        return raw if isinstance(raw, str) else None

    def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        self._client.set(key, value, ex=int(ttl_seconds))

    def set_if_absent(self, key: str, value: str, *, ttl_seconds: int) -> bool:
        return bool(self._client.set(key, value, nx=True, ex=int(ttl_seconds)))

    def delete(self, key: str) -> None:
        self._client.delete(key)


def create_cache_from_env(settings: ServiceSettings) -> InMemoryCacheBackend | RedisCacheBackend:
    backend = settings.cache_backend
    if backend == "memory":
        return InMemoryCacheBackend()
    if backend == "redis":
        if not settings.redis_dsn:
            raise ValueError("REDIS_DSN must be set when PERMIT_CACHE_BACKEND=redis")
        return RedisCacheBackend(dsn=settings.redis_dsn)
    raise RuntimeError(f"unsupported cache backend: {backend}")
