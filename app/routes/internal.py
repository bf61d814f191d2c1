from __future__ import annotations

from fastapi import APIRouter, Header, Request

from app.errors import ApiError
from app.routes._deps import container_from_request, trace_id_from_request
from app.schemas import success_envelope

router = APIRouter(prefix="/api/v1/internal", tags=["internal"])


def _require_internal_debug(x_internal_debug: str | None) -> None:
    if x_internal_debug != "true":
        raise ApiError(
            code="AUTH_FORBIDDEN",
            message="internal endpoint forbidden",
            error_class="security_sensitive",
            retryable=False,
            http_status=403,
        )


@router.post("/worker/drain-once")
def internal_worker_drain_once(
    request: Request,
    x_internal_debug: str | None = Header(default=None, alias="x-internal-debug"),
):
    _require_internal_debug(x_internal_debug)
    container = container_from_request(request)
    data = container.worker.run_once()
    data["queue_name"] = container.settings.packet_queue_name
    return success_envelope(data, trace_id_from_request(request))
