from __future__ import annotations

import json
import threading
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from app.settings import ServiceSettings


@dataclass
class QueueMessage:
    """A queued job; ``message_id`` doubles as the job id returned to clients."""

    message_id: str
    tenant_id: str
    queue_name: str
    payload: dict[str, Any]
    attempt: int = 0
    available_at: str | None = None


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:12]}"


def _due(available_at: str | None, now: datetime) -> bool:
    if not available_at:
        return True
    try:
        dt = datetime.fromisoformat(available_at)
    except ValueError:
        return True
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt <= now


def _dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, ensure_ascii=True, separators=(",", ":"))


class InMemoryQueueBackend:
    def __init__(self, *, namespace: str = "permits", clock: Callable[[], datetime] = _utcnow) -> None:
        self._namespace = namespace
        self._clock = clock
        self._lock = threading.RLock()
        self._queues: dict[str, deque[QueueMessage]] = {}
        self._inflight: dict[str, QueueMessage] = {}

    def queue_key(self, *, tenant_id: str, queue_name: str) -> str:
        return f"{self._namespace}:{tenant_id}:queue:{queue_name}"

    def enqueue(
        self,
        *,
        tenant_id: str,
        queue_name: str,
        payload: dict[str, Any],
        available_at: datetime | None = None,
    ) -> QueueMessage:
        due_at = available_at if isinstance(available_at, datetime) else self._clock()
        msg = QueueMessage(
            message_id=_new_job_id(),
            tenant_id=tenant_id,
            queue_name=queue_name,
            payload=dict(payload),
            available_at=due_at.astimezone(UTC).isoformat(),
        )
        with self._lock:
            self._queues.setdefault(self.queue_key(tenant_id=tenant_id, queue_name=queue_name), deque()).append(msg)
        return msg

    def dequeue(self, *, tenant_id: str, queue_name: str) -> QueueMessage | None:
        with self._lock:
            queue = self._queues.get(self.queue_key(tenant_id=tenant_id, queue_name=queue_name))
            if not queue:
                return None
            now = self._clock()
            for _ in range(len(queue)):
                msg = queue.popleft()
                if _due(msg.available_at, now):
                    self._inflight[msg.message_id] = msg
                    return msg
                queue.append(msg)
            return None

    def ack(self, *, tenant_id: str, message_id: str) -> None:
        with self._lock:
            msg = self._inflight.get(message_id)
            if msg is None:
                return
            if msg.tenant_id != tenant_id:
                raise RuntimeError("tenant mismatch for queue message")
            del self._inflight[message_id]

    def nack(
        self,
        *,
        tenant_id: str,
        message_id: str,
        requeue: bool = True,
        delay_ms: int = 0,
    ) -> QueueMessage | None:
        with self._lock:
            msg = self._inflight.get(message_id)
            if msg is None:
                return None
            if msg.tenant_id != tenant_id:
                raise RuntimeError("tenant mismatch for queue message")
            del self._inflight[message_id]
            msg.attempt += 1
            if requeue:
                msg.available_at = (self._clock() + timedelta(milliseconds=max(0, int(delay_ms)))).isoformat()
                key = self.queue_key(tenant_id=tenant_id, queue_name=msg.queue_name)
                self._queues.setdefault(key, deque()).appendleft(msg)
            return msg

    def pending_count(self, *, tenant_id: str, queue_name: str) -> int:
        with self._lock:
            return len(self._queues.get(self.queue_key(tenant_id=tenant_id, queue_name=queue_name), ()))

    def list_tenants(self, *, queue_name: str) -> list[str]:
        with self._lock:
            return sorted({msg.tenant_id for queue in self._queues.values() for msg in queue if msg.queue_name == queue_name})


def _import_redis() -> Any:
    try:
        import redis  # type: ignore
    except ImportError as exc:
        raise RuntimeError("redis is required for PERMIT_QUEUE_BACKEND=redis; install redis>=5") from exc
    return redis


class RedisQueueBackend:
    """Pending list per tenant queue; message bodies stored under their own key."""

    def __init__(
        self,
        *,
        dsn: str,
        namespace: str = "permits",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not dsn.strip():
            raise ValueError("REDIS_DSN must be provided for redis queue backend")
        self._namespace = namespace.strip() or "permits"
        self._clock = clock
        self._lock = threading.RLock()
        self._client = _import_redis().Redis.from_url(dsn.strip(), decode_responses=True)

    def _registry_key(self) -> str:
        return f"{self._namespace}:queue:keys"

    def _pending_key(self, *, tenant_id: str, queue_name: str) -> str:
        return f"{self._namespace}:{tenant_id}:queue:{queue_name}:pending"

    def _msg_key(self, message_id: str) -> str:
        return f"{self._namespace}:msg:{message_id}"

    def _load(self, message_id: str) -> dict[str, Any] | None:
        raw = self._client.get(self._msg_key(message_id))
        if not isinstance(raw, str) or not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _to_message(message_id: str, data: dict[str, Any]) -> QueueMessage:
        return QueueMessage(
            message_id=message_id,
            tenant_id=str(data["tenant_id"]),
            queue_name=str(data["queue_name"]),
            payload=data.get("payload", {}),
            attempt=int(data.get("attempt", 0)),
            available_at=str(data.get("available_at", "")) or None,
        )

    def enqueue(
        self,
        *,
        tenant_id: str,
        queue_name: str,
        payload: dict[str, Any],
        available_at: datetime | None = None,
    ) -> QueueMessage:
        due_at = available_at if isinstance(available_at, datetime) else self._clock()
        message_id = _new_job_id()
        data = {
            "tenant_id": tenant_id,
            "queue_name": queue_name,
            "payload": dict(payload),
            "attempt": 0,
            "status": "pending",
            "available_at": due_at.astimezone(UTC).isoformat(),
        }
        pending_key = self._pending_key(tenant_id=tenant_id, queue_name=queue_name)
        with self._lock:
            self._client.set(self._msg_key(message_id), _dumps(data))
            self._client.rpush(pending_key, message_id)
            self._client.sadd(self._registry_key(), pending_key)
        return self._to_message(message_id, data)

    def dequeue(self, *, tenant_id: str, queue_name: str) -> QueueMessage | None:
        pending_key = self._pending_key(tenant_id=tenant_id, queue_name=queue_name)
        with self._lock:
            now = self._clock()
            for _ in range(int(self._client.llen(pending_key))):
                message_id = self._client.lpop(pending_key)
                if not isinstance(message_id, str) or not message_id:
                    return None
                data = self._load(message_id)
                if data is None:
                    continue
                if not _due(data.get("available_at"), now):
                    self._client.rpush(pending_key, message_id)
                    continue
                data["status"] = "inflight"
                self._client.set(self._msg_key(message_id), _dumps(data))
                return self._to_message(message_id, data)
            return None

    def ack(self, *, tenant_id: str, message_id: str) -> None:
        with self._lock:
            data = self._load(message_id)
            if data is None or data.get("status") != "inflight":
                return
            if data.get("tenant_id") != tenant_id:
                raise RuntimeError("tenant mismatch for queue message")
            self._client.delete(self._msg_key(message_id))

    def nack(
        self,
        *,
        tenant_id: str,
        message_id: str,
        requeue: bool = True,
        delay_ms: int = 0,
    ) -> QueueMessage | None:
        with self._lock:
            data = self._load(message_id)
            if data is None or data.get("status") != "inflight":
                return None
            if data.get("tenant_id") != tenant_id:
                raise RuntimeError("tenant mismatch for queue message")
            data["attempt"] = int(data.get("attempt", 0)) + 1
            if not requeue:
                self._client.delete(self._msg_key(message_id))
                return self._to_message(message_id, data)
            data["status"] = "pending"
            data["available_at"] = (self._clock() + timedelta(milliseconds=max(0, int(delay_ms)))).isoformat()
            self._client.set(self._msg_key(message_id), _dumps(data))
            self._client.lpush(self._pending_key(tenant_id=tenant_id, queue_name=data["queue_name"]), message_id)
            return self._to_message(message_id, data)

    def pending_count(self, *, tenant_id: str, queue_name: str) -> int:
        return int(self._client.llen(self._pending_key(tenant_id=tenant_id, queue_name=queue_name)))

    def list_tenants(self, *, queue_name: str) -> list[str]:
        prefix = f"{self._namespace}:"
        suffix = f":queue:{queue_name}:pending"
        tenants: set[str] = set()
        for key in self._client.smembers(self._registry_key()):
            if not isinstance(key, str) or not key.startswith(prefix) or not key.endswith(suffix):
                continue
            if int(self._client.llen(key)) <= 0:
                continue
            tenant_id = key[len(prefix) : -len(suffix)]
            if tenant_id:
                tenants.add(tenant_id)
        return sorted(tenants)


def create_queue_from_env(settings: ServiceSettings) -> InMemoryQueueBackend | RedisQueueBackend:
    backend = settings.queue_backend
    if backend == "memory":
        return InMemoryQueueBackend(namespace=settings.key_prefix)
    if backend == "redis":
        if not settings.redis_dsn:
            raise ValueError("REDIS_DSN must be set when PERMIT_QUEUE_BACKEND=redis")
        return RedisQueueBackend(dsn=settings.redis_dsn, namespace=settings.key_prefix)
    raise RuntimeError(f"unsupported queue backend: {backend}")
