from __future__ import annotations

import logging
import os
import time
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from typing import Any

from app.settings import _env_int

logger = logging.getLogger(__name__)

_TERMINAL_COUNTERS = {"succeeded": "succeeded", "skipped": "skipped"}


@dataclass
class WorkerRunStats:
    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    retrying: int = 0
    failed: int = 0
    acked: int = 0
    requeued: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)

    def merge(self, other: "WorkerRunStats") -> None:
        for item in fields(self):
            setattr(self, item.name, getattr(self, item.name) + getattr(other, item.name))


class WorkerRuntime:
    """Drains packet jobs, visiting tenants round-robin so one tenant's backlog cannot starve the rest.

    Each visit takes at most ``tenant_burst_limit`` messages from a tenant; one
    ``run_once`` call stops after ``max_messages_per_iteration`` messages or when
    no tenant has a due message left.
    """

    def __init__(
        self,
        *,
        processor: Any,
        queue_backend: Any,
        queue_names: list[str] | None = None,
        tenant_burst_limit: int = 1,
        max_messages_per_iteration: int = 20,
        poll_interval_ms: int = 200,
    ) -> None:
        self.processor = processor
        self.queue_backend = queue_backend
        self.queue_names = list(queue_names or ["packets"])
        self.tenant_burst_limit = max(1, int(tenant_burst_limit))
        self.max_messages_per_iteration = max(1, int(max_messages_per_iteration))
        self.poll_interval_ms = max(1, int(poll_interval_ms))

    def _settle(self, *, tenant_id: str, msg: Any, stats: WorkerRunStats) -> None:
        try:
            outcome = self.processor.process(
                tenant_id=tenant_id,
                job_id=msg.message_id,
                payload=msg.payload,
                attempt=msg.attempt,
            )
        except Exception:
            logger.error("worker_job_crashed job_id=%s tenant_id=%s", msg.message_id, tenant_id, exc_info=True)
            status = "failed"
            retry_after_ms = 0
        else:
            status = outcome.final_status
            retry_after_ms = int(outcome.retry_after_ms)

        if status == "retrying":
            self.queue_backend.nack(
                tenant_id=tenant_id,
                message_id=msg.message_id,
                requeue=True,
                delay_ms=max(0, retry_after_ms),
            )
            stats.retrying += 1
            stats.requeued += 1
            return
        self.queue_backend.ack(tenant_id=tenant_id, message_id=msg.message_id)
        stats.acked += 1
        counter = _TERMINAL_COUNTERS.get(status, "failed")
        setattr(stats, counter, getattr(stats, counter) + 1)

    def _visit_tenant(self, *, queue_name: str, tenant_id: str, stats: WorkerRunStats) -> bool:
        progressed = False
        for _ in range(self.tenant_burst_limit):
            if stats.processed >= self.max_messages_per_iteration:
                break
            msg = self.queue_backend.dequeue(tenant_id=tenant_id, queue_name=queue_name)
            if msg is None:
                break
            stats.processed += 1
            progressed = True
            self._settle(tenant_id=tenant_id, msg=msg, stats=stats)
        return progressed

    def _drain_queue(self, *, queue_name: str, stats: WorkerRunStats) -> None:
        while stats.processed < self.max_messages_per_iteration:
            tenants = self.queue_backend.list_tenants(queue_name=queue_name)
            visited = [self._visit_tenant(queue_name=queue_name, tenant_id=t, stats=stats) for t in tenants]
            if not any(visited):
                return

    def run_once(self) -> dict[str, int]:
        return self._run_once().as_dict()

    def _run_once(self) -> WorkerRunStats:
        stats = WorkerRunStats()
        for queue_name in self.queue_names:
            self._drain_queue(queue_name=queue_name, stats=stats)
        if stats.processed:
            logger.info(
                "worker_iteration processed=%s succeeded=%s retrying=%s failed=%s",
                stats.processed,
                stats.succeeded,
                stats.retrying,
                stats.failed,
            )
        return stats

    def run_forever(self, *, stop_after_iterations: int | None = None) -> dict[str, int]:
        total = WorkerRunStats()
        limit = None if stop_after_iterations is None else max(1, stop_after_iterations)
        iterations = 0
        while limit is None or iterations < limit:
            current = self._run_once()
            total.merge(current)
            iterations += 1
            if current.processed == 0 and (limit is None or iterations < limit):
                time.sleep(self.poll_interval_ms / 1000.0)
        return total.as_dict()


def create_worker_runtime_from_env(
    *,
    processor: Any,
    queue_backend: Any,
    queue_name: str = "packets",
    environ: Mapping[str, str] | None = None,
) -> WorkerRuntime:
    env = os.environ if environ is None else environ
    return WorkerRuntime(
        processor=processor,
        queue_backend=queue_backend,
        queue_names=[queue_name],
        tenant_burst_limit=_env_int(env, "WORKER_TENANT_BURST_LIMIT", default=1, minimum=1),
        max_messages_per_iteration=_env_int(env, "WORKER_MAX_MESSAGES_PER_ITERATION", default=20, minimum=1),
        poll_interval_ms=_env_int(env, "WORKER_POLL_INTERVAL_MS", default=200, minimum=1),
    )
