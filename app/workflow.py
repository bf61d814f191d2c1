from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from app.errors import ConflictError, IllegalTransitionError, InvalidStateError, NotFoundError
from app.observability import Observability

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
EVENT_STATE_TRANSITION = "STATE_TRANSITION"


class SubmissionState(str, Enum):
    DRAFT = "DRAFT"
    VALIDATED = "VALIDATED"
    PACKET_READY = "PACKET_READY"
    SUBMITTED = "SUBMITTED"
    POLLING = "POLLING"
    APPROVED = "APPROVED"
    NEEDS_INFO = "NEEDS_INFO"


# POLLING has outgoing edges but nothing transitions into it yet
ALLOWED_TRANSITIONS: dict[SubmissionState, frozenset[SubmissionState]] = {
    SubmissionState.DRAFT: frozenset({SubmissionState.VALIDATED}),
    SubmissionState.VALIDATED: frozenset({SubmissionState.PACKET_READY}),
    SubmissionState.PACKET_READY: frozenset({SubmissionState.SUBMITTED}),
    SubmissionState.SUBMITTED: frozenset({SubmissionState.APPROVED, SubmissionState.NEEDS_INFO}),
    SubmissionState.POLLING: frozenset({SubmissionState.APPROVED, SubmissionState.NEEDS_INFO}),
    SubmissionState.APPROVED: frozenset(),
    SubmissionState.NEEDS_INFO: frozenset({SubmissionState.DRAFT}),
}

_PACKET_INCOMPLETE_STATES = frozenset({SubmissionState.DRAFT, SubmissionState.NEEDS_INFO})
_PACKET_EXISTS_STATES = frozenset(
    {
        SubmissionState.PACKET_READY,
        SubmissionState.SUBMITTED,
        SubmissionState.POLLING,
        SubmissionState.APPROVED,
    }
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def check_transition(submission: Mapping[str, Any], target: SubmissionState) -> None:
    """Raise IllegalTransitionError unless ``submission`` may move to ``target``.

    The VALIDATED completeness guard is checked before the table so that an
    incomplete DRAFT gets the more specific reason.
    """
    current = SubmissionState(str(submission["state"]))
    if target == SubmissionState.VALIDATED:
        score = float(submission.get("completeness_score", 0.0))
        if score != 1.0:
            raise IllegalTransitionError(
                code="WF_TRANSITION_INCOMPLETE_SUBMISSION",
                message=(
                    f"cannot transition to VALIDATED: completeness score {score:.2f} is below 1.0; "
                    "all required rules must pass"
                ),
                from_state=current.value,
                to_state=target.value,
            )
    if target not in ALLOWED_TRANSITIONS[current]:
        raise IllegalTransitionError(
            code="WF_STATE_TRANSITION_INVALID",
            message=f"invalid transition: {current.value} -> {target.value}",
            from_state=current.value,
            to_state=target.value,
        )


def can_transition(submission: Mapping[str, Any], target: SubmissionState) -> bool:
    try:
        check_transition(submission, target)
    except IllegalTransitionError:
        return False
    return True


def ensure_packet_can_be_requested(submission: Mapping[str, Any]) -> None:
    state = SubmissionState(str(submission["state"]))
    if state in _PACKET_INCOMPLETE_STATES:
        raise InvalidStateError(
            "Cannot generate packet: Submission is incomplete or in DRAFT.",
            state=state.value,
        )
    if state in _PACKET_EXISTS_STATES:
        raise ConflictError("Packet already exists. Please download the existing packet.")


class WorkflowStateMachine:
    def __init__(
        self,
        *,
        store,
        observability: Observability,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._observability = observability
        self._clock = clock

    def transition(self, *, tenant_id: str, submission_id: str, target: SubmissionState, actor: str) -> dict[str, Any]:
        with self._store.unit_of_work(tenant_id=tenant_id) as uow:
            return self.apply_in_unit_of_work(uow, submission_id=submission_id, target=target, actor=actor)

    def system_transition(self, uow, *, submission_id: str, target: SubmissionState) -> dict[str, Any]:
        return self.apply_in_unit_of_work(uow, submission_id=submission_id, target=target, actor=SYSTEM_ACTOR)

    def apply_in_unit_of_work(
        self,
        uow,
        *,
        submission_id: str,
        target: SubmissionState,
        actor: str,
    ) -> dict[str, Any]:
        submission = uow.submissions.get(tenant_id=uow.tenant_id, submission_id=submission_id, for_update=True)
        if submission is None:
            raise NotFoundError()
        check_transition(submission, target)
        from_state = str(submission["state"])
        now = self._clock().isoformat()
        submission["state"] = target.value
        submission["updated_at"] = now
        updated = uow.submissions.update(tenant_id=uow.tenant_id, submission=submission)
        uow.events.append(
            tenant_id=uow.tenant_id,
            event={
                "event_id": f"evt_{uuid.uuid4().hex[:12]}",
                "submission_id": submission_id,
                "event_type": EVENT_STATE_TRANSITION,
                "from_state": from_state,
                "to_state": target.value,
                "metadata": {"actor": actor},
                "created_at": now,
            },
        )
        self._observability.increment("state_transitions_total", from_state=from_state, to_state=target.value)
        logger.info(
            "state_transition submission_id=%s from=%s to=%s actor=%s",
            submission_id,
            from_state,
            target.value,
            actor,
        )
        return updated
