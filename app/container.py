from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from app.cache_backend import create_cache_from_env
from app.idempotency import IdempotencyCoordinator
from app.object_storage import create_object_storage_from_env
from app.observability import Observability
from app.packet_processor import PacketJobProcessor
from app.packet_renderer import PyMuPdfPacketRenderer
from app.queue_backend import create_queue_from_env
from app.rule_catalog import RuleCatalog
from app.rule_engine import CompletenessScorer, RuleEvaluator
from app.rule_logic import RuleLogicRegistry, build_default_rule_registry
from app.security import JwtSecurityConfig
from app.seed_profiles import seed_default_jurisdictions
from app.settings import ServiceSettings
from app.store import create_store_from_env
from app.submission_service import SubmissionService
from app.worker_runtime import WorkerRuntime, create_worker_runtime_from_env
from app.workflow import WorkflowStateMachine


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class ServiceContainer:
    settings: ServiceSettings
    security: JwtSecurityConfig
    observability: Observability
    store: Any
    cache: Any
    queue: Any
    registry: RuleLogicRegistry
    catalog: RuleCatalog
    evaluator: RuleEvaluator
    workflow: WorkflowStateMachine
    coordinator: IdempotencyCoordinator
    service: SubmissionService
    processor: PacketJobProcessor
    worker: WorkerRuntime


def build_container(
    settings: ServiceSettings,
    *,
    security: JwtSecurityConfig | None = None,
    store: Any = None,
    cache: Any = None,
    queue: Any = None,
    renderer: Any = None,
    object_storage: Any = None,
    registry: RuleLogicRegistry | None = None,
    clock: Callable[[], datetime] = _utcnow,
) -> ServiceContainer:
    """Wire every component explicitly; callers may swap any backend for tests or scripts."""
    observability = Observability(namespace=settings.key_prefix)
    store = store if store is not None else create_store_from_env(settings)
    cache = cache if cache is not None else create_cache_from_env(settings)
    queue = queue if queue is not None else create_queue_from_env(settings)
    registry = registry or build_default_rule_registry()
    object_storage = object_storage or create_object_storage_from_env(settings)
    catalog = RuleCatalog(clock=clock)
    evaluator = RuleEvaluator(registry=registry, observability=observability)
    workflow = WorkflowStateMachine(store=store, observability=observability, clock=clock)
    coordinator = IdempotencyCoordinator(
        cache=cache,
        observability=observability,
        lock_ttl_seconds=settings.idempotency_lock_ttl_seconds,
        cache_ttl_seconds=settings.idempotency_cache_ttl_seconds,
    )
    service = SubmissionService(
        store=store,
        catalog=catalog,
        evaluator=evaluator,
        workflow=workflow,
        queue_backend=queue,
        observability=observability,
        object_storage=object_storage,
        scorer=CompletenessScorer(),
        packet_queue_name=settings.packet_queue_name,
        list_limit=settings.submission_list_limit,
        clock=clock,
    )
    processor = PacketJobProcessor(
        store=store,
        renderer=renderer or PyMuPdfPacketRenderer(),
        object_storage=object_storage,
        workflow=workflow,
        observability=observability,
        max_retries=settings.worker_max_retries,
        retry_backoff_base_ms=settings.worker_retry_backoff_base_ms,
        retry_backoff_max_ms=settings.worker_retry_backoff_max_ms,
        clock=clock,
    )
    worker = create_worker_runtime_from_env(
        processor=processor,
        queue_backend=queue,
        queue_name=settings.packet_queue_name,
    )
    if settings.seed_defaults and getattr(store, "backend_name", "") == "memory":
        seed_default_jurisdictions(store)
    return ServiceContainer(
        settings=settings,
        security=security or JwtSecurityConfig.from_env(),
        observability=observability,
        store=store,
        cache=cache,
        queue=queue,
        registry=registry,
        catalog=catalog,
        evaluator=evaluator,
        workflow=workflow,
        coordinator=coordinator,
        service=service,
        processor=processor,
        worker=worker,
    )
