from __future__ import annotations

import pytest

from app.runtime_profile import true_stack_required
from app.settings import ServiceSettings


def test_settings_defaults_to_memory_backends():
    settings = ServiceSettings.from_env({})
    assert settings.store_backend == "memory"
    assert settings.cache_backend == "memory"
    assert settings.queue_backend == "memory"
    assert settings.idempotency_lock_ttl_seconds == 10
    assert settings.idempotency_cache_ttl_seconds == 86400
    assert settings.seed_defaults is True


def test_settings_parse_and_clamp_env_values():
    settings = ServiceSettings.from_env(
        {
            "PERMIT_STORE_BACKEND": " Postgres ",
            "POSTGRES_DSN": "postgresql://localhost/permits",
            "POSTGRES_APPLY_DDL": "yes",
            "IDEMPOTENCY_LOCK_TTL_SECONDS": "0",
            "WORKER_MAX_RETRIES": "five",
            "SUBMISSION_LIST_LIMIT": "50",
            "PERMIT_SEED_DEFAULTS": "off",
        }
    )
    assert settings.store_backend == "postgres"
    assert settings.postgres_apply_ddl is True
    assert settings.postgres_apply_rls is False
    assert settings.idempotency_lock_ttl_seconds == 1
    assert settings.worker_max_retries == 3
    assert settings.submission_list_limit == 50
    assert settings.seed_defaults is False


def test_true_stack_profile_flag():
    assert true_stack_required({}) is False
    assert true_stack_required({"PERMIT_REQUIRE_TRUESTACK": "TRUE"}) is True


def test_true_stack_rejects_memory_store():
    with pytest.raises(RuntimeError, match="PERMIT_STORE_BACKEND must be postgres"):
        ServiceSettings.from_env({"PERMIT_REQUIRE_TRUESTACK": "true"})


def test_true_stack_rejects_memory_cache_and_queue():
    with pytest.raises(RuntimeError, match="must be redis"):
        ServiceSettings.from_env(
            {
                "PERMIT_REQUIRE_TRUESTACK": "true",
                "PERMIT_STORE_BACKEND": "postgres",
                "PERMIT_CACHE_BACKEND": "redis",
            }
        )


def test_true_stack_accepts_full_profile():
    settings = ServiceSettings.from_env(
        {
            "PERMIT_REQUIRE_TRUESTACK": "true",
            "PERMIT_STORE_BACKEND": "postgres",
            "PERMIT_CACHE_BACKEND": "redis",
            "PERMIT_QUEUE_BACKEND": "redis",
        }
    )
    assert settings.queue_backend == "redis"
