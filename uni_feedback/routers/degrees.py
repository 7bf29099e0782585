from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from uni_feedback.database import get_db
from uni_feedback.models.course import Course
from uni_feedback.models.course_group import CourseGroup
from uni_feedback.models.degree import Degree
from uni_feedback.services.course_feedback_service import CourseFeedbackService
from uni_feedback.services.degree_service import DegreeService
from uni_feedback.utils.errors import NotFoundError

router = APIRouter(prefix="/degrees", tags=["Degrees"])


@router.get("")
def list_degrees(
    faculty: Optional[str] = Query(None, description="faculty short name"),
    onlyWithCourses: bool = Query(True),
    db: Session = Depends(get_db),
):
    return DegreeService(db).get_degrees_with_counts(faculty_short_name=faculty, only_with_courses=onlyWithCourses)


@router.get("/{degree_id}/courses")
def degree_courses(
    degree_id: int,
    acronym: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    if not db.query(Degree.id).filter(Degree.id == degree_id).first():
        raise NotFoundError("Degree not found")

    q = db.query(Course).filter(Course.degree_id == degree_id)
    if acronym:
        q = q.filter(func.lower(Course.acronym) == acronym.lower())
    courses = q.order_by(Course.acronym.asc()).all()
    return CourseFeedbackService(db).course_summaries(courses)


@router.get("/{degree_id}/courseGroups")
def degree_course_groups(degree_id: int, db: Session = Depends(get_db)):
    if not db.query(Degree.id).filter(Degree.id == degree_id).first():
        raise NotFoundError("Degree not found")

    groups = db.query(CourseGroup).filter(CourseGroup.degree_id == degree_id).order_by(CourseGroup.name.asc()).all()
    return [
        {
            "id": g.id,
            "name": g.name,
            "degreeId": g.degree_id,
            "courseIds": sorted(c.id for c in g.courses),
        }
        for g in groups
    ]
