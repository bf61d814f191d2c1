from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from app.workflow import SubmissionState


class SubmissionDetails(BaseModel):
    has_architectural_plans: bool
    has_structural_calcs: bool
    building_height: float = Field(ge=0)
    setback_front: float = Field(ge=0)
    setback_side: float = Field(ge=0)
    setback_rear: float = Field(ge=0)
    fire_egress_count: int = Field(ge=0)
    lot_area: float | None = None
    impervious_area: float | None = Field(default=None, ge=0)
    heritage_trees_removed: bool | None = None
    zoning_district: str | None = None
    proposed_use: str | None = None


_REQUIRED_DETAIL_FIELDS = frozenset(
    name for name, field in SubmissionDetails.model_fields.items() if field.is_required()
)


class CreateSubmissionRequest(SubmissionDetails):
    project_name: str = Field(min_length=1)
    jurisdiction_code: str = Field(min_length=1, max_length=16)


class UpdateSubmissionRequest(BaseModel):
    has_architectural_plans: bool | None = None
    has_structural_calcs: bool | None = None
    building_height: float | None = Field(default=None, ge=0)
    setback_front: float | None = Field(default=None, ge=0)
    setback_side: float | None = Field(default=None, ge=0)
    setback_rear: float | None = Field(default=None, ge=0)
    fire_egress_count: int | None = Field(default=None, ge=0)
    lot_area: float | None = None
    impervious_area: float | None = Field(default=None, ge=0)
    heritage_trees_removed: bool | None = None
    zoning_district: str | None = None
    proposed_use: str | None = None

    def updates(self) -> dict[str, Any]:
        """Only fields the client sent; an explicit null clears an optional field."""
        data = self.model_dump(mode="json", exclude_unset=True)
        return {k: v for k, v in data.items() if v is not None or k not in _REQUIRED_DETAIL_FIELDS}


class TransitionRequest(BaseModel):
    target_state: SubmissionState


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
