from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from uni_feedback.models.course import Course
from uni_feedback.models.degree import Degree
from uni_feedback.models.faculty import Faculty
from uni_feedback.models.feedback import Feedback
from uni_feedback.models.feedback_analysis import FeedbackAnalysis
from uni_feedback.models.point_registry import PointRegistry, SUBMIT_FEEDBACK, REFERRAL
from uni_feedback.models.user import User
from uni_feedback.services.point_service import PointService
from uni_feedback.utils.dates import utcnow, isoformat

RECENT_FEEDBACK_DAYS = 7


class StatsService:
    def __init__(self, db: Session):
        self.db = db

    def _count(self, column, *filters) -> int:
        return self.db.query(func.count(column)).filter(*filters).scalar() or 0

    def admin_stats(self) -> dict:
        since = utcnow() - timedelta(days=RECENT_FEEDBACK_DAYS)
        return {
            "totalUsers": self._count(User.id),
            "totalCourses": self._count(Course.id),
            "totalFeedback": self._count(Feedback.id, Feedback.deleted_at.is_(None)),
            "totalDegrees": self._count(Degree.id),
            "totalFaculties": self._count(Faculty.id),
            "recentFeedbackCount": self._count(
                Feedback.id, Feedback.deleted_at.is_(None), Feedback.created_at >= since
            ),
        }

    def _points_sum(self, user_id: int, source_type: str) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(PointRegistry.amount), 0))
            .filter(PointRegistry.user_id == user_id, PointRegistry.source_type == source_type)
            .scalar()
        )
        return int(total or 0)

    def user_stats(self, user_id: int) -> dict:
        points = PointService(self.db)
        return {
            "totalPoints": points.get_user_total_points(user_id),
            "feedbackCount": self._count(Feedback.id, Feedback.user_id == user_id, Feedback.deleted_at.is_(None)),
            "feedbackPoints": self._points_sum(user_id, SUBMIT_FEEDBACK),
            "referralCount": points.get_referral_count(user_id),
            "referralPoints": self._points_sum(user_id, REFERRAL),
        }

    def user_feedback(self, user_id: int) -> list[dict]:
        rows = (
            self.db.query(Feedback, Course, FeedbackAnalysis, PointRegistry.amount)
            .join(Course, Feedback.course_id == Course.id)
            .outerjoin(FeedbackAnalysis, FeedbackAnalysis.feedback_id == Feedback.id)
            .outerjoin(
                PointRegistry,
                (PointRegistry.reference_id == Feedback.id)
                & (PointRegistry.source_type == SUBMIT_FEEDBACK)
                & (PointRegistry.user_id == user_id),
            )
            .filter(Feedback.user_id == user_id, Feedback.deleted_at.is_(None))
            .order_by(Feedback.created_at.desc(), Feedback.id.desc())
            .all()
        )

        out = []
        for f, c, a, points in rows:
            out.append({
                "id": f.id,
                "courseId": f.course_id,
                "courseName": c.name,
                "courseCode": c.acronym,
                "schoolYear": f.school_year,
                "rating": f.rating,
                "workloadRating": f.workload_rating,
                "comment": f.comment,
                "points": points,
                "approvedAt": isoformat(f.approved_at),
                "createdAt": isoformat(f.created_at),
                "updatedAt": isoformat(f.updated_at),
                "analysis": None if a is None else {
                    "hasTeaching": a.has_teaching,
                    "hasAssessment": a.has_assessment,
                    "hasMaterials": a.has_materials,
                    "hasTips": a.has_tips,
                    "wordCount": a.word_count,
                },
            })
        return out
