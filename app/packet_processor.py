from __future__ import annotations

import hashlib
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from app.observability import Observability
from app.workflow import SubmissionState, WorkflowStateMachine

logger = logging.getLogger(__name__)

JOB_TYPE_GENERATE_PDF = "generate-pdf"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class JobOutcome:
    final_status: str
    retry_after_ms: int = 0
    detail: str = ""


class PacketJobProcessor:
    """Renders a VALIDATED submission to PDF and advances it to PACKET_READY.

    Rendering and storage happen outside the unit of work; the packet row and
    the VALIDATED -> PACKET_READY transition are then written together.
    """

    def __init__(
        self,
        *,
        store,
        renderer,
        object_storage,
        workflow: WorkflowStateMachine,
        observability: Observability,
        max_retries: int = 3,
        retry_backoff_base_ms: int = 1000,
        retry_backoff_max_ms: int = 30000,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._renderer = renderer
        self._object_storage = object_storage
        self._workflow = workflow
        self._observability = observability
        self.max_retries = max(0, int(max_retries))
        self.retry_backoff_base_ms = max(0, int(retry_backoff_base_ms))
        self.retry_backoff_max_ms = max(self.retry_backoff_base_ms, int(retry_backoff_max_ms))
        self._clock = clock

    @staticmethod
    def _retry_jitter_ms(*, job_id: str, retry_count: int) -> int:
        digest = hashlib.sha256(f"{job_id}:{retry_count}".encode("utf-8")).digest()
        return int.from_bytes(digest[:2], byteorder="big") % 301

    def retry_backoff_ms(self, *, job_id: str, retry_count: int) -> int:
        normalized_retry = max(1, int(retry_count))
        exponential = self.retry_backoff_base_ms * (2 ** (normalized_retry - 1))
        return min(self.retry_backoff_max_ms, exponential) + self._retry_jitter_ms(
            job_id=job_id,
            retry_count=normalized_retry,
        )

    def _finish(self, status: str, *, job_id: str, detail: str = "", retry_after_ms: int = 0) -> JobOutcome:
        self._observability.increment("packet_jobs_total", status=status)
        return JobOutcome(final_status=status, retry_after_ms=retry_after_ms, detail=detail)

    def _skip_reason(self, submission: dict[str, Any] | None, packet: dict[str, Any] | None) -> str:
        if submission is None:
            return "submission_missing"
        if packet is not None:
            return "packet_exists"
        if submission["state"] != SubmissionState.VALIDATED.value:
            return f"state_{submission['state']}"
        return ""

    def process(self, *, tenant_id: str, job_id: str, payload: dict[str, Any], attempt: int = 0) -> JobOutcome:
        job_type = str(payload.get("job_type") or JOB_TYPE_GENERATE_PDF)
        submission_id = str(payload.get("submission_id") or "")
        if job_type != JOB_TYPE_GENERATE_PDF or not submission_id:
            logger.error("packet_job_invalid job_id=%s job_type=%s", job_id, job_type)
            return self._finish("failed", job_id=job_id, detail="invalid_payload")

        with self._store.unit_of_work(tenant_id=tenant_id) as uow:
            submission = uow.submissions.get(tenant_id=tenant_id, submission_id=submission_id)
            packet = uow.packets.get(tenant_id=tenant_id, submission_id=submission_id)
            results = uow.rule_results.list(tenant_id=tenant_id, submission_id=submission_id)
        reason = self._skip_reason(submission, packet)
        if reason:
            logger.info("packet_job_skipped job_id=%s submission_id=%s reason=%s", job_id, submission_id, reason)
            return self._finish("skipped", job_id=job_id, detail=reason)

        try:
            content = self._renderer.render(submission, results, generated_at=self._clock())
            storage_uri = self._object_storage.put_object(
                tenant_id=tenant_id,
                object_type="packets",
                object_id=submission_id,
                filename=f"{submission_id}.pdf",
                content_bytes=content,
                content_type="application/pdf",
            )
        except Exception as exc:
            retry_count = int(attempt) + 1
            if retry_count <= self.max_retries:
                delay_ms = self.retry_backoff_ms(job_id=job_id, retry_count=retry_count)
                logger.warning(
                    "packet_job_retrying job_id=%s submission_id=%s retry=%s delay_ms=%s error=%s",
                    job_id,
                    submission_id,
                    retry_count,
                    delay_ms,
                    exc,
                )
                return self._finish("retrying", job_id=job_id, detail=str(exc), retry_after_ms=delay_ms)
            logger.error("packet_job_failed job_id=%s submission_id=%s", job_id, submission_id, exc_info=True)
            return self._finish("failed", job_id=job_id, detail=str(exc))

        with self._store.unit_of_work(tenant_id=tenant_id) as uow:
            current = uow.submissions.get(tenant_id=tenant_id, submission_id=submission_id, for_update=True)
            reason = self._skip_reason(current, uow.packets.get(tenant_id=tenant_id, submission_id=submission_id))
            if reason:
                logger.info("packet_job_skipped job_id=%s submission_id=%s reason=%s", job_id, submission_id, reason)
                return self._finish("skipped", job_id=job_id, detail=reason)
            uow.packets.create(
                tenant_id=tenant_id,
                packet={
                    "packet_id": f"pkt_{uuid.uuid4().hex[:12]}",
                    "submission_id": submission_id,
                    "storage_uri": storage_uri,
                    "size_bytes": len(content),
                    "created_at": self._clock().isoformat(),
                },
            )
            self._workflow.system_transition(uow, submission_id=submission_id, target=SubmissionState.PACKET_READY)
        logger.info(
            "packet_job_succeeded job_id=%s submission_id=%s size_bytes=%s",
            job_id,
            submission_id,
            len(content),
        )
        return self._finish("succeeded", job_id=job_id)
