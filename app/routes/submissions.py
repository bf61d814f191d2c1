from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from app.routes._deps import actor_from_request, container_from_request, trace_id_from_request
from app.schemas import CreateSubmissionRequest, TransitionRequest, UpdateSubmissionRequest, success_envelope

router = APIRouter(prefix="/api/v1", tags=["submissions"])


@router.post("/submissions")
def create_submission(payload: CreateSubmissionRequest, request: Request):
    service = container_from_request(request).service
    details = payload.model_dump(mode="json", exclude={"jurisdiction_code"})
    data = service.create(
        actor=actor_from_request(request),
        jurisdiction_code=payload.jurisdiction_code,
        details=details,
    )
    return JSONResponse(
        status_code=201,
        content=success_envelope(data, trace_id_from_request(request)),
    )


@router.get("/submissions")
def list_submissions(request: Request):
    service = container_from_request(request).service
    items = service.list(actor=actor_from_request(request))
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/submissions/{submission_id}")
def get_submission(submission_id: str, request: Request):
    service = container_from_request(request).service
    data = service.get(actor=actor_from_request(request), submission_id=submission_id)
    return success_envelope(data, trace_id_from_request(request))


@router.patch("/submissions/{submission_id}")
def update_submission(submission_id: str, payload: UpdateSubmissionRequest, request: Request):
    service = container_from_request(request).service
    data = service.update(
        actor=actor_from_request(request),
        submission_id=submission_id,
        updates=payload.updates(),
    )
    return success_envelope(data, trace_id_from_request(request))


@router.post("/submissions/{submission_id}/transition")
def transition_submission(submission_id: str, payload: TransitionRequest, request: Request):
    service = container_from_request(request).service
    data = service.transition(
        actor=actor_from_request(request),
        submission_id=submission_id,
        target=payload.target_state,
    )
    return success_envelope(data, trace_id_from_request(request))


@router.post("/submissions/{submission_id}/generate-packet")
def generate_packet(submission_id: str, request: Request):
    service = container_from_request(request).service
    data = service.request_packet(actor=actor_from_request(request), submission_id=submission_id)
    return JSONResponse(
        status_code=202,
        content=success_envelope(data, trace_id_from_request(request), message="packet generation queued"),
    )


@router.get("/submissions/{submission_id}/packet")
def download_packet(submission_id: str, request: Request):
    service = container_from_request(request).service
    packet, content = service.packet_content(actor=actor_from_request(request), submission_id=submission_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={
            "content-disposition": f'attachment; filename="{submission_id}.pdf"',
            "x-packet-id": packet["packet_id"],
        },
    )


@router.get("/submissions/{submission_id}/events")
def list_submission_events(submission_id: str, request: Request):
    service = container_from_request(request).service
    items = service.list_events(actor=actor_from_request(request), submission_id=submission_id)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))
