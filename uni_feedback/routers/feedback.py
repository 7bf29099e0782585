import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from uni_feedback.database import get_db
from uni_feedback.models.course import Course
from uni_feedback.models.degree import Degree
from uni_feedback.models.faculty import Faculty
from uni_feedback.models.feedback import Feedback, visible_feedback_filter
from uni_feedback.models.feedback_flag import FeedbackFlag
from uni_feedback.models.helpful_vote import HelpfulVote
from uni_feedback.models.user import User
from uni_feedback.schemas.feedback import FeedbackEdit, ReportIn, CategorizeIn, FeedbackOut, AnalysisOut
from uni_feedback.services.ai_service import AIService, AIServiceError
from uni_feedback.services.feedback_service import FeedbackService
from uni_feedback.services.notification_service import NotificationService
from uni_feedback.utils.auth import get_current_user
from uni_feedback.utils.errors import AppError, NotFoundError, UnauthorizedError

logger = logging.getLogger("app.feedback")

router = APIRouter(prefix="/feedback", tags=["Feedback"])


def analysis_payload(row):
    if row is None:
        return None
    return AnalysisOut.model_validate(row).model_dump(by_alias=True, mode="json")


def get_visible_feedback(db: Session, feedback_id: int) -> Feedback:
    fb = db.query(Feedback).filter(Feedback.id == feedback_id, *visible_feedback_filter()).first()
    if not fb:
        raise NotFoundError("Feedback not found")
    return fb


@router.post("/categorize")
def categorize(body: CategorizeIn, db: Session = Depends(get_db)):
    """Categorization preview; nothing about the feedback is stored."""
    try:
        categories = AIService(db).categorize_feedback(body.comment)
        db.commit()
    except AIServiceError as e:
        db.rollback()
        logger.warning("Categorization preview failed: %s", e)
        raise AppError("Failed to categorize feedback", status_code=502)

    return {
        "categories": {
            "hasTeaching": categories["has_teaching"],
            "hasAssessment": categories["has_assessment"],
            "hasMaterials": categories["has_materials"],
            "hasTips": categories["has_tips"],
        }
    }


@router.get("/{feedback_id}/edit")
def get_feedback_for_edit(feedback_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    row = (
        db.query(Feedback, Course, Faculty)
        .join(Course, Feedback.course_id == Course.id)
        .join(Degree, Course.degree_id == Degree.id)
        .join(Faculty, Degree.faculty_id == Faculty.id)
        .filter(Feedback.id == feedback_id, Feedback.user_id == user.id, Feedback.deleted_at.is_(None))
        .first()
    )
    if not row:
        raise UnauthorizedError("You can only edit your own feedback")
    fb, course, faculty = row

    return {
        "feedback": {
            "id": fb.id,
            "rating": fb.rating,
            "workloadRating": fb.workload_rating,
            "comment": fb.comment,
            "schoolYear": fb.school_year,
            "approvedAt": fb.approved_at.isoformat() if fb.approved_at else None,
            "courseId": course.id,
            "courseName": course.name,
            "courseCode": course.acronym,
            "facultyShortName": faculty.short_name,
        }
    }


@router.put("/{feedback_id}")
def edit_feedback(
    feedback_id: int,
    body: FeedbackEdit,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = FeedbackService(db).edit(user, feedback_id, body.rating, body.workload_rating, body.comment)
    return {
        "message": result["message"],
        "feedback": FeedbackOut.model_validate(result["feedback"]).model_dump(by_alias=True, mode="json"),
        "analysis": analysis_payload(result["analysis"]),
        "points": result["points"],
    }


@router.delete("/{feedback_id}")
def delete_feedback(feedback_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    deleted = FeedbackService(db).soft_delete(user, feedback_id)
    if not deleted:
        return {"message": "Feedback already deleted"}
    logger.info("Feedback deleted id=%s user_id=%s", feedback_id, user.id)
    return {"message": "Feedback deleted successfully"}


@router.post("/{feedback_id}/helpful")
def add_helpful_vote(feedback_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    get_visible_feedback(db, feedback_id)

    exists = (
        db.query(HelpfulVote)
        .filter(HelpfulVote.user_id == user.id, HelpfulVote.feedback_id == feedback_id)
        .first()
    )
    if exists:
        return {"message": "Already voted as helpful"}

    db.add(HelpfulVote(user_id=user.id, feedback_id=feedback_id))
    db.commit()
    return {"message": "Marked as helpful"}


@router.delete("/{feedback_id}/helpful")
def remove_helpful_vote(feedback_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    db.query(HelpfulVote).filter(
        HelpfulVote.user_id == user.id, HelpfulVote.feedback_id == feedback_id
    ).delete(synchronize_session=False)
    db.commit()
    return {"message": "Vote removed"}


@router.post("/{feedback_id}/report", status_code=201)
def report_feedback(
    feedback_id: int,
    body: ReportIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    fb = get_visible_feedback(db, feedback_id)

    flag = FeedbackFlag(user_id=user.id, feedback_id=fb.id, category=body.category, details=body.details)
    db.add(flag)
    db.commit()
    db.refresh(flag)
    logger.info("Feedback reported id=%s report_id=%s category=%s", fb.id, flag.id, body.category)

    try:
        NotificationService().feedback_reported(flag.id, fb.id, body.category, body.details, user.id, fb.comment)
    except Exception:
        logger.exception("Report notification failed report_id=%s", flag.id)

    return JSONResponse(status_code=201, content={"message": "Report submitted successfully"})
