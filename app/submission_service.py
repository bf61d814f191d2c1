from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from app.errors import InvalidStateError, NotFoundError
from app.observability import Observability
from app.packet_processor import JOB_TYPE_GENERATE_PDF
from app.rule_catalog import RuleCatalog
from app.rule_engine import CompletenessScorer, RuleEvaluator
from app.rule_types import RuleContext, RuleResult, RuleSet
from app.security import Actor
from app.workflow import SubmissionState, WorkflowStateMachine, ensure_packet_can_be_requested

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _submission_view(
    submission: dict[str, Any],
    results: list[RuleResult] | None = None,
    packet: dict[str, Any] | None = None,
) -> dict[str, Any]:
    view = dict(submission)
    if results is not None:
        view["rule_results"] = [x.as_dict() for x in results]
    if packet is not None or results is not None:
        view["packet"] = packet
    return view


class SubmissionService:
    def __init__(
        self,
        *,
        store,
        catalog: RuleCatalog,
        evaluator: RuleEvaluator,
        workflow: WorkflowStateMachine,
        queue_backend,
        observability: Observability,
        object_storage=None,
        scorer: CompletenessScorer | None = None,
        packet_queue_name: str = "packets",
        list_limit: int = 20,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._evaluator = evaluator
        self._scorer = scorer or CompletenessScorer()
        self._workflow = workflow
        self._queue_backend = queue_backend
        self._observability = observability
        self._object_storage = object_storage
        self.packet_queue_name = packet_queue_name
        self.list_limit = list_limit
        self._clock = clock

    def _evaluate(self, context: RuleContext, rule_set: RuleSet) -> tuple[list[RuleResult], float]:
        results = self._evaluator.evaluate(context, rule_set)
        return results, self._scorer.score(results)

    def _require(self, uow, submission_id: str, *, for_update: bool = False) -> dict[str, Any]:
        submission = uow.submissions.get(tenant_id=uow.tenant_id, submission_id=submission_id, for_update=for_update)
        if submission is None:
            raise NotFoundError()
        return submission

    def create(self, *, actor: Actor, jurisdiction_code: str, details: dict[str, Any]) -> dict[str, Any]:
        context = RuleContext.from_details(details)
        now = self._clock()
        with self._store.unit_of_work(tenant_id=actor.tenant_id) as uow:
            jurisdiction, rule_set = self._catalog.resolve_active_rule_set(
                uow.jurisdictions,
                jurisdiction_code,
                as_of=now,
            )
            results, score = self._evaluate(context, rule_set)
            submission = uow.submissions.create(
                tenant_id=actor.tenant_id,
                submission={
                    "submission_id": f"sub_{uuid.uuid4().hex[:12]}",
                    "jurisdiction_id": jurisdiction.jurisdiction_id,
                    "jurisdiction_code": jurisdiction.code,
                    "project_name": context.project_name,
                    "state": SubmissionState.DRAFT.value,
                    "completeness_score": score,
                    "submission_details": context.to_details(),
                    "rule_set_id": rule_set.rule_set_id,
                    "rule_set_version": rule_set.version,
                    "created_at": now.isoformat(),
                    "updated_at": now.isoformat(),
                },
            )
            uow.rule_results.replace_all(
                tenant_id=actor.tenant_id,
                submission_id=submission["submission_id"],
                results=results,
            )
            if score == 1.0:
                submission = self._workflow.apply_in_unit_of_work(
                    uow,
                    submission_id=submission["submission_id"],
                    target=SubmissionState.VALIDATED,
                    actor=actor.subject,
                )
        self._observability.increment("submissions_created_total", jurisdiction=jurisdiction.code)
        logger.info(
            "submission_created submission_id=%s tenant_id=%s jurisdiction=%s score=%s state=%s",
            submission["submission_id"],
            actor.tenant_id,
            jurisdiction.code,
            score,
            submission["state"],
        )
        return _submission_view(submission, results, None)

    def update(self, *, actor: Actor, submission_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        with self._store.unit_of_work(tenant_id=actor.tenant_id) as uow:
            existing = self._require(uow, submission_id, for_update=True)
            if existing["state"] != SubmissionState.DRAFT.value:
                raise InvalidStateError("Only DRAFT submissions can be edited.", state=existing["state"])
            merged = {
                **dict(existing.get("submission_details") or {}),
                **updates,
                "project_name": existing["project_name"],
            }
            context = RuleContext.from_details(merged)
            _, rule_set = self._catalog.resolve_for_jurisdiction_id(
                uow.jurisdictions,
                existing["jurisdiction_id"],
                as_of=self._clock(),
            )
            results, score = self._evaluate(context, rule_set)
            existing.update(
                completeness_score=score,
                submission_details=context.to_details(),
                rule_set_id=rule_set.rule_set_id,
                rule_set_version=rule_set.version,
                updated_at=self._clock().isoformat(),
            )
            updated = uow.submissions.update(tenant_id=actor.tenant_id, submission=existing)
            uow.rule_results.replace_all(tenant_id=actor.tenant_id, submission_id=submission_id, results=results)
        logger.info("submission_updated submission_id=%s score=%s", submission_id, score)
        return _submission_view(updated, results, None)

    def get(self, *, actor: Actor, submission_id: str) -> dict[str, Any]:
        with self._store.unit_of_work(tenant_id=actor.tenant_id) as uow:
            submission = self._require(uow, submission_id)
            results = uow.rule_results.list(tenant_id=actor.tenant_id, submission_id=submission_id)
            packet = uow.packets.get(tenant_id=actor.tenant_id, submission_id=submission_id)
        return _submission_view(submission, results, packet)

    def packet_content(self, *, actor: Actor, submission_id: str) -> tuple[dict[str, Any], bytes]:
        with self._store.unit_of_work(tenant_id=actor.tenant_id) as uow:
            self._require(uow, submission_id)
            packet = uow.packets.get(tenant_id=actor.tenant_id, submission_id=submission_id)
        if packet is None:
            raise NotFoundError("packet not found")
        return packet, self._object_storage.get_object(storage_uri=packet["storage_uri"])

    def list(self, *, actor: Actor) -> list[dict[str, Any]]:
        with self._store.unit_of_work(tenant_id=actor.tenant_id) as uow:
            return uow.submissions.list(tenant_id=actor.tenant_id, limit=self.list_limit)

    def list_events(self, *, actor: Actor, submission_id: str) -> list[dict[str, Any]]:
        with self._store.unit_of_work(tenant_id=actor.tenant_id) as uow:
            self._require(uow, submission_id)
            return uow.events.list(tenant_id=actor.tenant_id, submission_id=submission_id)

    def transition(self, *, actor: Actor, submission_id: str, target: SubmissionState) -> dict[str, Any]:
        return self._workflow.transition(
            tenant_id=actor.tenant_id,
            submission_id=submission_id,
            target=target,
            actor=actor.subject,
        )

    def request_packet(self, *, actor: Actor, submission_id: str) -> dict[str, Any]:
        with self._store.unit_of_work(tenant_id=actor.tenant_id) as uow:
            submission = self._require(uow, submission_id)
        ensure_packet_can_be_requested(submission)
        msg = self._queue_backend.enqueue(
            tenant_id=actor.tenant_id,
            queue_name=self.packet_queue_name,
            payload={
                "job_type": JOB_TYPE_GENERATE_PDF,
                "submission_id": submission_id,
                "tenant_id": actor.tenant_id,
            },
        )
        logger.info("packet_requested submission_id=%s job_id=%s", submission_id, msg.message_id)
        return {"job_id": msg.message_id, "submission_id": submission_id}

    def active_rule_set(self, *, jurisdiction_code: str, as_of: datetime | None = None) -> dict[str, Any]:
        with self._store.unit_of_work(tenant_id="system") as uow:
            jurisdiction, rule_set = self._catalog.resolve_active_rule_set(
                uow.jurisdictions,
                jurisdiction_code,
                as_of=as_of,
            )
        return {
            "jurisdiction": {
                "jurisdiction_id": jurisdiction.jurisdiction_id,
                "code": jurisdiction.code,
                "name": jurisdiction.name,
            },
            "rule_set": rule_set.as_dict(),
        }
