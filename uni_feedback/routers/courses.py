import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from uni_feedback.database import get_db
from uni_feedback.models.course import Course
from uni_feedback.models.degree import Degree
from uni_feedback.models.faculty import Faculty
from uni_feedback.schemas.feedback import FeedbackCreate
from uni_feedback.services.course_feedback_service import CourseFeedbackService
from uni_feedback.services.feedback_service import FeedbackService
from uni_feedback.utils.auth import get_current_user, get_optional_user
from uni_feedback.utils.errors import NotFoundError

logger = logging.getLogger("app.courses")

router = APIRouter(prefix="/courses", tags=["Courses"])


@router.get("")
def list_courses(
    acronym: Optional[str] = Query(None),
    degreeId: Optional[int] = Query(None),
    faculty: Optional[str] = Query(None, description="faculty short name"),
    degree: Optional[str] = Query(None, description="degree acronym"),
    db: Session = Depends(get_db),
):
    q = db.query(Course)
    if acronym:
        q = q.filter(func.lower(Course.acronym) == acronym.lower())
    if degreeId:
        q = q.filter(Course.degree_id == degreeId)
    if faculty or degree:
        q = q.join(Degree, Course.degree_id == Degree.id)
        if faculty:
            q = q.join(Faculty, Degree.faculty_id == Faculty.id).filter(Faculty.short_name == faculty)
        if degree:
            q = q.filter(Degree.acronym == degree)

    courses = q.order_by(Course.id.asc()).all()
    return CourseFeedbackService(db).course_summaries(courses)


@router.get("/{course_id}")
def course_details(course_id: int, db: Session = Depends(get_db)):
    row = (
        db.query(Course, Degree)
        .outerjoin(Degree, Course.degree_id == Degree.id)
        .filter(Course.id == course_id)
        .first()
    )
    if not row:
        raise NotFoundError("Course not found")
    c, d = row

    stats = CourseFeedbackService(db).get_course_feedback_stats(course_id)
    return {
        "id": c.id,
        "name": c.name,
        "acronym": c.acronym,
        "description": c.description,
        "degreeId": c.degree_id,
        "url": c.url,
        "ects": c.ects,
        "curriculumYear": c.curriculum_year,
        "terms": c.terms or [],
        "assessment": c.assessment,
        "bibliography": c.bibliography,
        "hasMandatoryExam": c.has_mandatory_exam,
        "degree": None if d is None else {
            "id": d.id,
            "name": d.name,
            "acronym": d.acronym,
            "facultyId": d.faculty_id,
        },
        "rating": stats["rating"],
        "feedbackCount": stats["feedbackCount"],
    }


@router.get("/{course_id}/feedback")
def course_feedback(course_id: int, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    if not db.query(Course.id).filter(Course.id == course_id).first():
        raise NotFoundError("Course not found")
    return CourseFeedbackService(db).get_course_feedback_with_details(course_id, user.id if user else None)


@router.post("/{course_id}/feedback", status_code=201)
def submit_feedback(
    course_id: int,
    body: FeedbackCreate,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    fb, points = FeedbackService(db).submit(
        user,
        course_id,
        school_year=body.school_year,
        rating=body.rating,
        workload_rating=body.workload_rating,
        comment=body.comment,
    )
    return JSONResponse(
        status_code=201,
        content={"message": "Feedback submitted successfully", "id": fb.id, "pointsEarned": points},
    )
