from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from app.runtime_profile import true_stack_required


def _env_int(env: Mapping[str, str], name: str, *, default: int, minimum: int = 0) -> int:
    raw = str(env.get(name, "")).strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, value)


def _env_bool(env: Mapping[str, str], name: str, *, default: bool) -> bool:
    raw = str(env.get(name, "")).strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _env_str(env: Mapping[str, str], name: str, *, default: str) -> str:
    return str(env.get(name, "")).strip() or default


@dataclass(frozen=True)
class ServiceSettings:
    store_backend: str = "memory"
    postgres_dsn: str = ""
    postgres_apply_ddl: bool = False
    postgres_apply_rls: bool = False
    cache_backend: str = "memory"
    queue_backend: str = "memory"
    redis_dsn: str = ""
    key_prefix: str = "permits"
    idempotency_lock_ttl_seconds: int = 10
    idempotency_cache_ttl_seconds: int = 60 * 60 * 24
    packet_queue_name: str = "packets"
    worker_max_retries: int = 3
    worker_retry_backoff_base_ms: int = 1000
    worker_retry_backoff_max_ms: int = 30000
    object_storage_root: str = "/tmp/permit-packets"
    object_storage_bucket: str = "packets"
    submission_list_limit: int = 20
    seed_defaults: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServiceSettings":
        env = os.environ if environ is None else environ
        settings = cls(
            store_backend=_env_str(env, "PERMIT_STORE_BACKEND", default="memory").lower(),
            postgres_dsn=_env_str(env, "POSTGRES_DSN", default=""),
            postgres_apply_ddl=_env_bool(env, "POSTGRES_APPLY_DDL", default=False),
            postgres_apply_rls=_env_bool(env, "POSTGRES_APPLY_RLS", default=False),
            cache_backend=_env_str(env, "PERMIT_CACHE_BACKEND", default="memory").lower(),
            queue_backend=_env_str(env, "PERMIT_QUEUE_BACKEND", default="memory").lower(),
            redis_dsn=_env_str(env, "REDIS_DSN", default=""),
            key_prefix=_env_str(env, "PERMIT_KEY_PREFIX", default="permits"),
            idempotency_lock_ttl_seconds=_env_int(env, "IDEMPOTENCY_LOCK_TTL_SECONDS", default=10, minimum=1),
            idempotency_cache_ttl_seconds=_env_int(
                env,
                "IDEMPOTENCY_CACHE_TTL_SECONDS",
                default=60 * 60 * 24,
                minimum=1,
            ),
            packet_queue_name=_env_str(env, "PACKET_QUEUE_NAME", default="packets"),
            worker_max_retries=_env_int(env, "WORKER_MAX_RETRIES", default=3, minimum=0),
            worker_retry_backoff_base_ms=_env_int(env, "WORKER_RETRY_BACKOFF_BASE_MS", default=1000, minimum=0),
            worker_retry_backoff_max_ms=_env_int(env, "WORKER_RETRY_BACKOFF_MAX_MS", default=30000, minimum=0),
            object_storage_root=_env_str(env, "OBJECT_STORAGE_ROOT", default="/tmp/permit-packets"),
            object_storage_bucket=_env_str(env, "OBJECT_STORAGE_BUCKET", default="packets"),
            submission_list_limit=_env_int(env, "SUBMISSION_LIST_LIMIT", default=20, minimum=1),
            seed_defaults=_env_bool(env, "PERMIT_SEED_DEFAULTS", default=True),
            log_level=_env_str(env, "LOG_LEVEL", default="INFO"),
        )
        if true_stack_required(env):
            if settings.store_backend != "postgres":
                raise RuntimeError("PERMIT_STORE_BACKEND must be postgres when PERMIT_REQUIRE_TRUESTACK=true")
            if settings.cache_backend != "redis" or settings.queue_backend != "redis":
                raise RuntimeError("cache and queue backends must be redis when PERMIT_REQUIRE_TRUESTACK=true")
        return settings
