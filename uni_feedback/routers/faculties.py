from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from uni_feedback.database import get_db
from uni_feedback.models.course import Course
from uni_feedback.models.degree import Degree
from uni_feedback.models.faculty import Faculty
from uni_feedback.services.degree_service import DegreeService
from uni_feedback.utils.errors import NotFoundError

router = APIRouter(prefix="/faculties", tags=["Faculties"])


def faculty_dict(f: Faculty) -> dict:
    return {
        "id": f.id,
        "name": f.name,
        "shortName": f.short_name,
        "slug": f.slug,
        "url": f.url,
        "logo": f.logo,
        "emailSuffixes": f.email_suffixes or [],
    }


@router.get("")
def list_faculties(
    acronym: Optional[str] = Query(None, description="faculty short name"),
    db: Session = Depends(get_db),
):
    q = db.query(Faculty)
    if acronym:
        q = q.filter(Faculty.short_name == acronym)
    return [faculty_dict(f) for f in q.order_by(Faculty.id.asc()).all()]


@router.get("/{faculty_id}")
def faculty_details(faculty_id: int, db: Session = Depends(get_db)):
    f = db.query(Faculty).filter(Faculty.id == faculty_id).first()
    if not f:
        raise NotFoundError("Faculty not found")

    rows = (
        db.query(Degree, func.count(Course.id))
        .outerjoin(Course, Course.degree_id == Degree.id)
        .filter(Degree.faculty_id == faculty_id)
        .group_by(Degree.id)
        .order_by(Degree.name.asc())
        .all()
    )
    out = faculty_dict(f)
    out["degrees"] = [
        {
            "id": d.id,
            "externalId": d.external_id,
            "type": d.type,
            "name": d.name,
            "acronym": d.acronym,
            "campus": d.campus,
            "courseCount": n,
        }
        for d, n in rows
    ]
    return out


@router.get("/{faculty_id}/degrees")
def faculty_degrees(
    faculty_id: int,
    onlyWithCourses: bool = Query(True),
    db: Session = Depends(get_db),
):
    return DegreeService(db).get_degrees_with_counts(faculty_id=faculty_id, only_with_courses=onlyWithCourses)
