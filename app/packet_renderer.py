from __future__ import annotations

import io
from datetime import datetime
from typing import Any

from app.errors import ApiError
from app.rule_types import RuleResult

_MARGIN = 72
_LINE_HEIGHT = 16


def packet_lines(
    submission: dict[str, Any],
    results: list[RuleResult],
    *,
    generated_at: datetime,
) -> list[tuple[str, float]]:
    """Text lines of the packet, each with its font size."""
    score_pct = round(float(submission.get("completeness_score", 0.0)) * 100)
    lines: list[tuple[str, float]] = [
        ("Permit Submission Packet", 18),
        ("", 11),
        (f"Project: {submission.get('project_name', '')}", 11),
        (f"Jurisdiction: {submission.get('jurisdiction_code', '')}", 11),
        (f"Submission ID: {submission.get('submission_id', '')}", 11),
        (f"State: {submission.get('state', '')}", 11),
        (f"Completeness score: {score_pct}%", 11),
        (f"Generated: {generated_at.date().isoformat()}", 11),
        ("", 11),
        ("Rule results", 14),
    ]
    if not results:
        lines.append(("No rules were evaluated.", 11))
    for result in results:
        status = "PASS" if result.passed else "FAIL"
        lines.append((f"[{status}] {result.rule_key} ({result.severity.value})", 11))
        lines.append((f"    {result.message}", 10))
    return lines


class PyMuPdfPacketRenderer:
    content_type = "application/pdf"

    def render(
        self,
        submission: dict[str, Any],
        results: list[RuleResult],
        *,
        generated_at: datetime,
    ) -> bytes:
        try:
            import pymupdf
        except ImportError:
            raise ApiError(
                code="PACKET_RENDERER_DEPENDENCY_MISSING",
                message="pymupdf is required for packet rendering",
                error_class="permanent",
                retryable=False,
                http_status=500,
            ) from None

        doc = pymupdf.open()
        try:
            page = doc.new_page()
            y = _MARGIN
            for text, fontsize in packet_lines(submission, results, generated_at=generated_at):
                if y > page.rect.height - _MARGIN:
                    page = doc.new_page()
                    y = _MARGIN
                if text:
                    page.insert_text((_MARGIN, y), text, fontsize=fontsize)
                y += _LINE_HEIGHT + max(0, fontsize - 11)
            buf = io.BytesIO()
            doc.save(buf)
        finally:
            doc.close()
        return buf.getvalue()
