from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query, Request

from app.routes._deps import container_from_request, trace_id_from_request
from app.schemas import success_envelope

router = APIRouter(prefix="/api/v1", tags=["jurisdictions"])


@router.get("/jurisdictions/{jurisdiction_code}/active-rule-set")
def get_active_rule_set(
    jurisdiction_code: str,
    request: Request,
    as_of: datetime | None = Query(default=None),
):
    service = container_from_request(request).service
    data = service.active_rule_set(jurisdiction_code=jurisdiction_code, as_of=as_of)
    return success_envelope(data, trace_id_from_request(request))
