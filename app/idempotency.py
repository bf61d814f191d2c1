from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from app.observability import Observability

logger = logging.getLogger(__name__)

UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
IDEMPOTENCY_HEADER = "Idempotency-Key"
CONFLICT_MESSAGE = "Processing..."


@dataclass(frozen=True)
class CachedResponse:
    status_code: int
    headers: dict[str, str]
    body: bytes
    tenant_id: str = ""

    def dumps(self) -> str:
        return json.dumps(
            {
                "status_code": self.status_code,
                "headers": self.headers,
                "body": self.body.decode("utf-8", "surrogateescape"),
                "tenant_id": self.tenant_id,
            },
            ensure_ascii=True,
            sort_keys=True,
        )

    @classmethod
    def loads(cls, raw: str) -> "CachedResponse":
        data = json.loads(raw)
        return cls(
            status_code=int(data["status_code"]),
            headers={str(k): str(v) for k, v in dict(data.get("headers") or {}).items()},
            body=str(data.get("body", "")).encode("utf-8", "surrogateescape"),
            tenant_id=str(data.get("tenant_id", "")),
        )


@dataclass
class IdempotencyTicket:
    """Per-request handle from the check phase; ``processed`` makes save run once."""

    key: str
    cache_key: str
    lock_key: str
    tenant_id: str = ""
    processed: bool = False


@dataclass
class IdempotencyDecision:
    action: str
    ticket: IdempotencyTicket | None = None
    cached: CachedResponse | None = None

    @property
    def is_replay(self) -> bool:
        return self.action == "replay"

    @property
    def is_conflict(self) -> bool:
        return self.action == "conflict"


class IdempotencyCoordinator:
    """Two-phase dedup of unsafe requests over a cache that supports set-if-absent.

    The key is authoritative within a tenant: a repeated key replays the first
    successful response even when the request body differs. A key already
    cached or locked by another tenant is never replayed to the caller; that
    request runs without dedup. Only 2xx responses are cached, and the
    in-flight lock expires on its own if a handler dies.
    """

    def __init__(
        self,
        *,
        cache,
        observability: Observability,
        lock_ttl_seconds: int = 10,
        cache_ttl_seconds: int = 60 * 60 * 24,
    ) -> None:
        self._cache = cache
        self._observability = observability
        self.lock_ttl_seconds = lock_ttl_seconds
        self.cache_ttl_seconds = cache_ttl_seconds

    @staticmethod
    def cache_key(key: str) -> str:
        return f"idempotency:{key}"

    @staticmethod
    def lock_key(key: str) -> str:
        return f"lock:idempotency:{key}"

    def check(self, *, method: str, idempotency_key: str | None, tenant_id: str = "") -> IdempotencyDecision:
        key = (idempotency_key or "").strip()
        if method.upper() not in UNSAFE_METHODS or not key:
            return IdempotencyDecision(action="bypass")
        ticket = IdempotencyTicket(
            key=key,
            cache_key=self.cache_key(key),
            lock_key=self.lock_key(key),
            tenant_id=tenant_id,
        )
        try:
            raw = self._cache.get(ticket.cache_key)
            if raw is not None:
                cached = CachedResponse.loads(raw)
                if cached.tenant_id != tenant_id:
                    logger.warning("idempotency_tenant_mismatch key=%s tenant_id=%s", key, tenant_id)
                    return IdempotencyDecision(action="bypass")
                self._observability.increment("idempotency_hits_total")
                logger.info("idempotency_hit key=%s", key)
                return IdempotencyDecision(action="replay", cached=cached)
            acquired = self._cache.set_if_absent(ticket.lock_key, tenant_id or "1", ttl_seconds=self.lock_ttl_seconds)
            holder = None if acquired else self._cache.get(ticket.lock_key)
        except Exception:
            logger.error("idempotency_check_failed key=%s; proceeding without dedup", key, exc_info=True)
            return IdempotencyDecision(action="bypass")
        if not acquired:
            if tenant_id and holder and holder != tenant_id:
                logger.warning("idempotency_tenant_mismatch key=%s tenant_id=%s", key, tenant_id)
                return IdempotencyDecision(action="bypass")
            self._observability.increment("idempotency_conflicts_total")
            logger.info("idempotency_conflict key=%s", key)
            return IdempotencyDecision(action="conflict")
        return IdempotencyDecision(action="proceed", ticket=ticket)

    def save(
        self,
        ticket: IdempotencyTicket,
        *,
        status_code: int,
        headers: Mapping[str, str],
        body: bytes,
    ) -> None:
        if ticket.processed:
            return
        ticket.processed = True
        try:
            if 200 <= status_code < 300:
                cached = CachedResponse(
                    status_code=status_code,
                    headers=dict(headers),
                    body=body,
                    tenant_id=ticket.tenant_id,
                )
                self._cache.set(ticket.cache_key, cached.dumps(), ttl_seconds=self.cache_ttl_seconds)
        except Exception:
            logger.error("idempotency_save_failed key=%s", ticket.key, exc_info=True)
        finally:
            self.release(ticket)

    def release(self, ticket: IdempotencyTicket) -> None:
        ticket.processed = True
        try:
            self._cache.delete(ticket.lock_key)
        except Exception:
            logger.error("idempotency_lock_release_failed key=%s", ticket.key, exc_info=True)
