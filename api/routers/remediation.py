"""
Remediation API: build and download a student's intervention plan PDF.
"""
import logging

from fastapi import APIRouter, HTTPException, Response
from pydantic import BaseModel

from core.database import FetchError, fetch_results
from core.remediation_report import (
    STATUS_BUSY,
    STATUS_FAILED,
    STATUS_NO_WEAK_SKILLS,
    InProgressRegistry,
    generate_student_report,
)
from core.normalizer import clean_filters
from core.text_generator import get_default_generator

logger = logging.getLogger(__name__)

router = APIRouter()

# One generation per student across requests served by this process
registry = InProgressRegistry()

_STATUS_HTTP = {
    STATUS_NO_WEAK_SKILLS: (422, "no_weak_skills"),
    STATUS_BUSY: (409, "busy"),
    STATUS_FAILED: (500, "export_failed"),
}


class RemediationReportBody(BaseModel):
    student_name: str
    class_name: str = ""
    unit: str = ""
    component: str | None = None
    school_year: str | None = None
    semester: str | None = None


@router.post("/remediation/report")
def post_remediation_report(body: RemediationReportBody):
    """Return the plan as ``application/pdf``.

    ``X-Plan-Source`` tells whether the plan came from the text generator
    (``generated``) or the deterministic builder (``fallback``).
    """
    filters = clean_filters({
        "student_name": body.student_name,
        "class_name": body.class_name,
        "unit": body.unit,
        "component": body.component,
        "school_year": body.school_year,
        "semester": body.semester,
    })
    try:
        rows = fetch_results(filters)
    except FetchError as e:
        logger.warning("remediation fetch failed for %s: %s", body.student_name, e)
        raise HTTPException(
            status_code=503,
            detail={"message": "Result store unavailable", "code": "store_unavailable"},
        )

    outcome = generate_student_report(
        (body.student_name, body.class_name, body.unit),
        rows,
        generate=get_default_generator(),
        registry=registry,
    )
    if not outcome.ok:
        status_code, code = _STATUS_HTTP[outcome.status]
        raise HTTPException(status_code=status_code, detail={"message": outcome.message, "code": code})

    return Response(
        content=outcome.content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{outcome.filename}"',
            "X-Plan-Source": outcome.plan_source,
        },
    )
