import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, and_
from sqlalchemy.orm import Session

from uni_feedback.database import get_db
from uni_feedback.models.course import Course
from uni_feedback.models.degree import Degree
from uni_feedback.models.faculty import Faculty
from uni_feedback.models.feedback import Feedback
from uni_feedback.models.feedback_analysis import FeedbackAnalysis
from uni_feedback.models.point_registry import PointRegistry, SUBMIT_FEEDBACK
from uni_feedback.models.user import User
from uni_feedback.schemas.feedback import AdminFeedbackUpdate, UnapproveIn, AnalysisUpdateIn
from uni_feedback.services.email_service import EmailService
from uni_feedback.services.feedback_service import FeedbackService, clean_comment
from uni_feedback.utils.admin_changes import apply_changes, notify_admin_change
from uni_feedback.utils.auth import require_admin
from uni_feedback.utils.dates import isoformat
from uni_feedback.utils.errors import AppError, NotFoundError, ValidationError
from uni_feedback.utils.pagination import paginate, page_payload

logger = logging.getLogger("app.admin")

router = APIRouter(prefix="/admin/feedback", tags=["Admin - Feedback"])


def analysis_dict(a: Optional[FeedbackAnalysis]):
    if a is None:
        return None
    return {
        "hasTeaching": a.has_teaching,
        "hasAssessment": a.has_assessment,
        "hasMaterials": a.has_materials,
        "hasTips": a.has_tips,
        "wordCount": a.word_count,
        "reviewedAt": isoformat(a.reviewed_at),
    }


def feedback_row(fb, user_email, course, degree, faculty, analysis, points) -> dict:
    return {
        "id": fb.id,
        "userId": fb.user_id,
        "email": user_email or fb.email,
        "schoolYear": fb.school_year,
        "rating": fb.rating,
        "workloadRating": fb.workload_rating,
        "comment": fb.comment,
        "approved": fb.approved_at is not None,
        "approvedAt": isoformat(fb.approved_at),
        "deletedAt": isoformat(fb.deleted_at),
        "createdAt": isoformat(fb.created_at),
        "updatedAt": isoformat(fb.updated_at),
        "courseId": fb.course_id,
        "courseName": course.name if course else None,
        "courseAcronym": course.acronym if course else None,
        "degreeId": degree.id if degree else None,
        "degreeName": degree.name if degree else None,
        "degreeAcronym": degree.acronym if degree else None,
        "facultyId": faculty.id if faculty else None,
        "facultyName": faculty.name if faculty else None,
        "facultyShortName": faculty.short_name if faculty else None,
        "analysis": analysis_dict(analysis),
        "points": points,
    }


def feedback_query(db: Session):
    points = (
        db.query(func.sum(PointRegistry.amount))
        .filter(
            PointRegistry.source_type == SUBMIT_FEEDBACK,
            PointRegistry.reference_id == Feedback.id,
            PointRegistry.user_id == Feedback.user_id,
        )
        .correlate(Feedback)
        .scalar_subquery()
    )
    return (
        db.query(Feedback, User.email, Course, Degree, Faculty, FeedbackAnalysis, points)
        .outerjoin(User, Feedback.user_id == User.id)
        .outerjoin(Course, Feedback.course_id == Course.id)
        .outerjoin(Degree, Course.degree_id == Degree.id)
        .outerjoin(Faculty, Degree.faculty_id == Faculty.id)
        .outerjoin(FeedbackAnalysis, FeedbackAnalysis.feedback_id == Feedback.id)
    )


def get_feedback(db: Session, feedback_id: int) -> Feedback:
    fb = db.query(Feedback).filter(Feedback.id == feedback_id).first()
    if not fb:
        raise NotFoundError("Feedback not found")
    return fb


@router.get("")
def admin_list_feedback(
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
    course_id: Optional[int] = Query(None),
    degree_id: Optional[int] = Query(None),
    faculty_id: Optional[int] = Query(None),
    email: Optional[str] = Query(None),
    approved: Optional[bool] = Query(None),
    rating: Optional[int] = Query(None, ge=1, le=5),
    workload_rating: Optional[int] = Query(None, ge=1, le=5),
    has_comment: Optional[bool] = Query(None),
    school_year: Optional[int] = Query(None),
    created_after: Optional[datetime] = Query(None),
    reviewed: Optional[bool] = Query(None),
    include_deleted: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    q = feedback_query(db)

    if course_id:
        q = q.filter(Feedback.course_id == course_id)
    if degree_id:
        q = q.filter(Course.degree_id == degree_id)
    if faculty_id:
        q = q.filter(Degree.faculty_id == faculty_id)
    if email:
        s = f"%{email.strip().lower()}%"
        q = q.filter(or_(func.lower(User.email).like(s), func.lower(Feedback.email).like(s)))
    if approved is not None:
        q = q.filter(Feedback.approved_at.isnot(None) if approved else Feedback.approved_at.is_(None))
    if rating is not None:
        q = q.filter(Feedback.rating == rating)
    if workload_rating is not None:
        q = q.filter(Feedback.workload_rating == workload_rating)
    if has_comment is not None:
        if has_comment:
            q = q.filter(and_(Feedback.comment.isnot(None), Feedback.comment != ""))
        else:
            q = q.filter(or_(Feedback.comment.is_(None), Feedback.comment == ""))
    if school_year is not None:
        q = q.filter(Feedback.school_year == school_year)
    if created_after is not None:
        if created_after.tzinfo is not None:
            created_after = created_after.astimezone(timezone.utc).replace(tzinfo=None)
        q = q.filter(Feedback.created_at > created_after)
    if reviewed is not None:
        q = q.filter(FeedbackAnalysis.reviewed_at.isnot(None) if reviewed else FeedbackAnalysis.reviewed_at.is_(None))
    if not include_deleted:
        q = q.filter(Feedback.deleted_at.is_(None))

    rows, total = paginate(q.order_by(Feedback.created_at.desc(), Feedback.id.desc()), page, limit)
    return page_payload([feedback_row(*r) for r in rows], total, page, limit)


@router.post("/recalculate-points")
def admin_recalculate_points(db: Session = Depends(get_db), admin=Depends(require_admin)):
    result = FeedbackService(db).recalculate_all_points()
    logger.info("Points recalculated by %s: %s", admin.id, result["message"])
    return result


@router.post("/populate-analysis")
def admin_populate_analysis(db: Session = Depends(get_db), admin=Depends(require_admin)):
    return FeedbackService(db).populate_missing_analysis()


@router.get("/{feedback_id}")
def admin_feedback_details(feedback_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    row = feedback_query(db).filter(Feedback.id == feedback_id).first()
    if not row:
        raise NotFoundError("Feedback not found")
    out = feedback_row(*row)
    out["originalComment"] = row[0].original_comment
    return out


@router.put("/{feedback_id}")
def admin_update_feedback(
    feedback_id: int,
    body: AdminFeedbackUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    data = body.model_dump(exclude_unset=True)
    if not data:
        raise ValidationError("No update fields provided")

    fb = get_feedback(db, feedback_id)
    if "comment" in data:
        data["comment"] = clean_comment(data["comment"])
    for required in ("rating", "school_year"):
        if required in data and data[required] is None:
            raise ValidationError(f"{required} cannot be null")

    changes = apply_changes(fb, data)
    db.commit()
    db.refresh(fb)

    if changes:
        logger.info("Feedback %s updated by %s: %s", fb.id, admin.id, sorted(changes))
        notify_admin_change(admin, "feedback", fb.id, f"Feedback #{fb.id}", "updated", changes=changes)

    return {
        "id": fb.id,
        "schoolYear": fb.school_year,
        "rating": fb.rating,
        "workloadRating": fb.workload_rating,
        "comment": fb.comment,
        "approved": fb.approved_at is not None,
        "updatedAt": isoformat(fb.updated_at),
        "message": "Feedback updated successfully",
    }


@router.post("/{feedback_id}/approve")
def admin_approve_feedback(feedback_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    fb = get_feedback(db, feedback_id)
    changed = FeedbackService(db).approve(fb)
    if changed:
        logger.info("Feedback %s approved by %s", fb.id, admin.id)
        notify_admin_change(admin, "feedback", fb.id, f"Feedback #{fb.id}", "approved")

    return {
        "id": fb.id,
        "approved": True,
        "approvedAt": isoformat(fb.approved_at),
        "message": "Feedback approved successfully" if changed else "Feedback is already approved",
    }


@router.post("/{feedback_id}/unapprove")
def admin_unapprove_feedback(
    feedback_id: int,
    body: UnapproveIn,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    message = body.message.strip()
    if not message:
        raise ValidationError("Message is required")

    fb = get_feedback(db, feedback_id)
    try:
        changed = FeedbackService(db).unapprove(fb, message, EmailService())
    except Exception:
        db.rollback()
        logger.exception("Unapproval email failed for feedback %s", feedback_id)
        raise AppError("Failed to send unapproval email. Unapproval cancelled. Please try again.", status_code=500)

    if changed:
        logger.info("Feedback %s unapproved by %s", fb.id, admin.id)
        notify_admin_change(admin, "feedback", fb.id, f"Feedback #{fb.id}", "unapproved", item=message)

    return {
        "id": fb.id,
        "approved": False,
        "approvedAt": None,
        "message": "Feedback unapproved successfully" if changed else "Feedback is already unapproved",
    }


@router.put("/{feedback_id}/analysis")
def admin_update_analysis(
    feedback_id: int,
    body: AnalysisUpdateIn,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    fb = get_feedback(db, feedback_id)
    row, points, created = FeedbackService(db).update_analysis(fb, body.model_dump())
    logger.info("Analysis for feedback %s reviewed by %s points=%s", fb.id, admin.id, points)

    return {
        "feedbackId": fb.id,
        "analysis": analysis_dict(row),
        "points": points,
        "message": "Analysis created successfully" if created else "Analysis updated successfully",
    }
