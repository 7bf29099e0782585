import logging
from typing import Optional

from sqlalchemy.orm import Session

from uni_feedback.config import settings
from uni_feedback.models.course import Course
from uni_feedback.models.degree import Degree
from uni_feedback.models.faculty import Faculty
from uni_feedback.models.feedback import Feedback, AUTO_APPROVED_AT
from uni_feedback.models.feedback_analysis import FeedbackAnalysis
from uni_feedback.models.point_registry import SUBMIT_FEEDBACK
from uni_feedback.models.user import User
from uni_feedback.services.ai_service import AIService
from uni_feedback.services.notification_service import NotificationService
from uni_feedback.services.point_service import PointService, calculate_feedback_points
from uni_feedback.utils.dates import utcnow, get_current_school_year, count_words
from uni_feedback.utils.email_validation import email_matches_suffixes
from uni_feedback.utils.errors import BusinessLogicError, NotFoundError, UnauthorizedError

logger = logging.getLogger("app.feedback")

ANALYSIS_FIELDS = ("has_teaching", "has_assessment", "has_materials", "has_tips", "word_count")


def clean_comment(comment: Optional[str]) -> Optional[str]:
    if comment is None:
        return None
    comment = comment.strip()
    return comment or None


class FeedbackService:
    """Feedback writes: submit, edit, delete and moderation side effects (analysis, points)."""

    def __init__(self, db: Session, ai: Optional[AIService] = None, notifier: Optional[NotificationService] = None):
        self.db = db
        self.ai = ai or AIService(db)
        self.points = PointService(db)
        self.notifier = notifier or NotificationService()

    def get_analysis(self, feedback_id: int) -> Optional[FeedbackAnalysis]:
        return self.db.query(FeedbackAnalysis).filter(FeedbackAnalysis.feedback_id == feedback_id).first()

    def store_analysis(self, feedback_id: int, analysis: dict, reviewed: Optional[bool] = None) -> FeedbackAnalysis:
        """
        Upsert. reviewed=True stamps reviewed_at on first moderator review,
        reviewed=False clears it, None leaves it alone.
        """
        row = self.get_analysis(feedback_id)
        now = utcnow()
        if row is None:
            row = FeedbackAnalysis(feedback_id=feedback_id)
            self.db.add(row)
        for f in ANALYSIS_FIELDS:
            setattr(row, f, analysis[f])

        if reviewed is True and row.reviewed_at is None:
            row.reviewed_at = now
        elif reviewed is False:
            row.reviewed_at = None
        self.db.flush()
        return row

    def _course_chain(self, course_id: int):
        course = self.db.query(Course).filter(Course.id == course_id).first()
        if not course:
            raise NotFoundError("Course not found")
        if not course.degree_id:
            raise NotFoundError("Course has no associated degree")
        degree = self.db.query(Degree).filter(Degree.id == course.degree_id).first()
        if not degree:
            raise NotFoundError("Degree not found")
        if not degree.faculty_id:
            raise NotFoundError("Degree has no associated faculty")
        faculty = self.db.query(Faculty).filter(Faculty.id == degree.faculty_id).first()
        if not faculty:
            raise NotFoundError("Faculty not found")
        return course, degree, faculty

    def submit(self, user: User, course_id: int, school_year: int, rating: int,
               workload_rating: int, comment: Optional[str]):
        """Returns (feedback, points earned)."""
        if school_year > get_current_school_year():
            raise BusinessLogicError("Cannot submit feedback for a future school year")

        course, degree, faculty = self._course_chain(course_id)

        if settings.VALIDATE_EMAIL_SUFFIX and not email_matches_suffixes(user.email, faculty.email_suffixes):
            suffixes = [f"@{s}" for s in faculty.email_suffixes]
            if len(suffixes) == 1:
                raise BusinessLogicError(f"Email must end with {suffixes[0]}")
            raise BusinessLogicError(f"Email must end with one of: {', '.join(suffixes)}")

        comment = clean_comment(comment)
        fb = Feedback(
            user_id=user.id,
            school_year=school_year,
            course_id=course_id,
            rating=rating,
            workload_rating=workload_rating,
            comment=comment,
            original_comment=comment,
            approved_at=AUTO_APPROVED_AT,
        )
        self.db.add(fb)
        self.db.commit()

        # best effort: the feedback is already saved
        points = 0
        try:
            analysis = self.ai.analyze_comment(comment)
            self.store_analysis(fb.id, analysis)
            points = calculate_feedback_points(analysis)
            if points > 0:
                self.points.award_feedback_points(user.id, fb.id, points)
            self.points.maybe_award_referral(user.id, fb.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            points = 0
            logger.exception("Failed to award points for feedback %s", fb.id)

        logger.info("Feedback submitted id=%s course_id=%s user_id=%s points=%s", fb.id, course_id, user.id, points)

        try:
            self.notifier.course_review_received(
                user.email, school_year, course, degree, rating, workload_rating, comment
            )
        except Exception:
            logger.exception("Review notification failed feedback_id=%s", fb.id)

        return fb, points

    def get_owned(self, user: User, feedback_id: int, include_deleted: bool = False) -> Feedback:
        q = self.db.query(Feedback).filter(Feedback.id == feedback_id, Feedback.user_id == user.id)
        if not include_deleted:
            q = q.filter(Feedback.deleted_at.is_(None))
        fb = q.first()
        if not fb:
            raise UnauthorizedError("You can only edit your own feedback")
        return fb

    def current_points(self, user_id: int, feedback_id: int) -> int:
        return self.points.get_points_for_entry(user_id, SUBMIT_FEEDBACK, feedback_id) or 0

    def edit(self, user: User, feedback_id: int, rating: int, workload_rating: int, comment: Optional[str]) -> dict:
        fb = self.get_owned(user, feedback_id)
        new_comment = clean_comment(comment)

        if fb.rating == rating and fb.workload_rating == workload_rating and fb.comment == new_comment:
            return {
                "message": "No changes detected",
                "feedback": fb,
                "analysis": self.get_analysis(fb.id),
                "points": self.current_points(user.id, fb.id),
            }

        if fb.comment != new_comment:
            analysis = self.ai.analyze_comment(new_comment)
            self.store_analysis(fb.id, analysis, reviewed=False)
            points = self.points.update_feedback_points(user.id, fb.id, analysis)
        else:
            points = self.current_points(user.id, fb.id)

        fb.rating = rating
        fb.workload_rating = workload_rating
        fb.comment = new_comment
        fb.updated_at = utcnow()
        self.db.commit()
        logger.info("Feedback edited id=%s user_id=%s", fb.id, user.id)

        return {
            "message": "Feedback updated successfully",
            "feedback": fb,
            "analysis": self.get_analysis(fb.id),
            "points": points,
        }

    def soft_delete(self, user: User, feedback_id: int) -> bool:
        """False when it was already deleted."""
        fb = self.db.query(Feedback).filter(Feedback.id == feedback_id, Feedback.user_id == user.id).first()
        if not fb:
            raise UnauthorizedError("You do not have permission to delete this feedback")
        if fb.deleted_at is not None:
            return False

        fb.deleted_at = utcnow()
        self.db.commit()
        try:
            self.points.zero_out_feedback_points(user.id, fb.id, "Feedback deleted by user")
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Failed to remove points for deleted feedback %s", fb.id)
        return True

    # ---------- moderation ----------

    def approve(self, fb: Feedback) -> bool:
        """False when already approved."""
        if fb.approved_at is not None:
            return False
        fb.approved_at = utcnow()
        self.db.commit()
        if fb.user_id:
            try:
                self.points.restore_feedback_points(fb.user_id, fb.id)
                self.db.commit()
            except Exception:
                self.db.rollback()
                logger.exception("Failed to restore points for feedback %s", fb.id)
        return True

    def unapprove(self, fb: Feedback, message: str, email_service) -> bool:
        """
        False when already unapproved. The author is emailed first; if that
        fails nothing changes and the error propagates.
        """
        if fb.approved_at is None:
            return False

        recipient = fb.email
        if fb.user_id:
            recipient = self.db.query(User.email).filter(User.id == fb.user_id).scalar() or recipient
        if recipient:
            course_name = self.db.query(Course.name).filter(Course.id == fb.course_id).scalar() or "a course"
            email_service.send_feedback_unapproved_email(recipient, course_name, message)
        else:
            logger.info("Feedback %s has no email, skipping unapproval email", fb.id)

        fb.approved_at = None
        self.db.commit()
        if fb.user_id:
            try:
                self.points.zero_out_feedback_points(fb.user_id, fb.id, "Feedback unapproved by admin")
                self.db.commit()
            except Exception:
                self.db.rollback()
                logger.exception("Failed to zero out points for feedback %s", fb.id)
        return True

    def update_analysis(self, fb: Feedback, flags: dict) -> tuple:
        """Moderator correction; returns (analysis, points or None, created)."""
        created = self.get_analysis(fb.id) is None
        analysis = dict(flags, word_count=count_words(fb.comment))
        row = self.store_analysis(fb.id, analysis, reviewed=True)

        points = None
        if fb.approved_at is not None and fb.user_id:
            points = self.points.update_feedback_points(fb.user_id, fb.id, analysis)
        self.db.commit()
        return row, points, created

    def recalculate_all_points(self) -> dict:
        rows = (
            self.db.query(Feedback, FeedbackAnalysis)
            .join(FeedbackAnalysis, FeedbackAnalysis.feedback_id == Feedback.id)
            .filter(Feedback.approved_at.isnot(None), Feedback.user_id.isnot(None), Feedback.deleted_at.is_(None))
            .all()
        )
        created = updated = unchanged = 0
        for fb, analysis in rows:
            existing = self.points.get_points_for_entry(fb.user_id, SUBMIT_FEEDBACK, fb.id)
            new_points = calculate_feedback_points(analysis)
            if existing is None:
                self.points.award_feedback_points(fb.user_id, fb.id, new_points)
                created += 1
            elif existing != new_points:
                self.points.update_feedback_points(fb.user_id, fb.id, analysis)
                updated += 1
            else:
                unchanged += 1
        self.db.commit()

        parts = []
        if created:
            parts.append(f"{created} created")
        if updated:
            parts.append(f"{updated} updated")
        if unchanged:
            parts.append(f"{unchanged} unchanged")
        message = f"Points recalculated: {', '.join(parts)}" if parts else "No feedback to process"
        logger.info(message)
        return {"created": created, "updated": updated, "unchanged": unchanged, "message": message}

    def populate_missing_analysis(self) -> dict:
        """Backfill analysis rows for feedback that never got one (left unreviewed)."""
        rows = (
            self.db.query(Feedback)
            .outerjoin(FeedbackAnalysis, FeedbackAnalysis.feedback_id == Feedback.id)
            .filter(FeedbackAnalysis.feedback_id.is_(None))
            .order_by(Feedback.id.asc())
            .all()
        )
        if not rows:
            return {"created": 0, "message": "All feedbacks already have analysis records"}

        created = failed = 0
        for fb in rows:
            try:
                self.store_analysis(fb.id, self.ai.analyze_comment(fb.comment))
                self.db.commit()
                created += 1
            except Exception:
                self.db.rollback()
                failed += 1
                logger.exception("Failed to populate analysis for feedback %s", fb.id)

        plural = "" if created == 1 else "s"
        if failed:
            message = f"Created {created} analysis record{plural} ({failed} failed)"
        else:
            message = f"Successfully created {created} feedback analysis record{plural}"
        logger.info(message)
        return {"created": created, "message": message}
