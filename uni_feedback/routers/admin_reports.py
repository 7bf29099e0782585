from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from uni_feedback.database import get_db
from uni_feedback.services.reporting_service import ReportingService
from uni_feedback.utils.auth import require_admin
from uni_feedback.utils.dates import get_current_school_year
from uni_feedback.utils.excel_export import make_filename

router = APIRouter(prefix="/admin/reports", tags=["Admin - Reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def xlsx_response(data: bytes, prefix: str) -> StreamingResponse:
    filename = make_filename(prefix)
    return StreamingResponse(
        iter([data]),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/courses/{course_id}")
def course_report(
    course_id: int,
    school_year: Optional[int] = Query(None, description="defaults to the current school year"),
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    year = school_year or get_current_school_year()
    data = ReportingService(db).build_course_report(course_id, year)
    return xlsx_response(data, f"course_{course_id}_{year}")


@router.get("/degrees/{degree_id}")
def degree_report(
    degree_id: int,
    school_year: Optional[int] = Query(None, description="defaults to the current school year"),
    curriculum_year: Optional[int] = Query(None, ge=1),
    terms: Optional[List[str]] = Query(None, description="e.g. terms=1st Semester&terms=P1"),
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    year = school_year or get_current_school_year()
    data = ReportingService(db).build_degree_report(degree_id, year, curriculum_year=curriculum_year, terms=terms)
    return xlsx_response(data, f"degree_{degree_id}_{year}")
