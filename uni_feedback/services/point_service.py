import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from uni_feedback.models.feedback import Feedback
from uni_feedback.models.feedback_analysis import FeedbackAnalysis
from uni_feedback.models.point_registry import PointRegistry, SUBMIT_FEEDBACK, REFERRAL
from uni_feedback.models.user import User

logger = logging.getLogger("app.points")

MIN_WORDS_FOR_POINTS = 20
BASE_FEEDBACK_POINTS = 4
POINTS_PER_CATEGORY = 4

CATEGORY_FIELDS = ("has_teaching", "has_assessment", "has_materials", "has_tips")


def _get(analysis, field):
    if isinstance(analysis, dict):
        return analysis.get(field)
    return getattr(analysis, field)


def calculate_feedback_points(analysis) -> int:
    """
    < 20 words -> 0
    otherwise 4 base + 4 per detected category (max 20)
    """
    if (_get(analysis, "word_count") or 0) < MIN_WORDS_FOR_POINTS:
        return 0
    categories = sum(1 for f in CATEGORY_FIELDS if _get(analysis, f))
    return BASE_FEEDBACK_POINTS + categories * POINTS_PER_CATEGORY


def calculate_referral_points(referral_count: int) -> int:
    # referral_count is the number awarded before this one
    if referral_count < 5:
        return 10
    if referral_count < 15:
        return 5
    return 1


class PointService:
    def __init__(self, db: Session):
        self.db = db

    def get_user_total_points(self, user_id: int) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(PointRegistry.amount), 0))
            .filter(PointRegistry.user_id == user_id)
            .scalar()
        )
        return int(total or 0)

    def _feedback_entry(self, user_id: int, feedback_id: int) -> Optional[PointRegistry]:
        return (
            self.db.query(PointRegistry)
            .filter(
                PointRegistry.user_id == user_id,
                PointRegistry.source_type == SUBMIT_FEEDBACK,
                PointRegistry.reference_id == feedback_id,
            )
            .first()
        )

    def award_feedback_points(self, user_id: int, feedback_id: int, points: int):
        self.db.add(PointRegistry(
            user_id=user_id,
            amount=points,
            source_type=SUBMIT_FEEDBACK,
            reference_id=feedback_id,
            comment=f"Awarded {points} points for feedback #{feedback_id}",
        ))
        self.db.flush()

    def is_user_first_feedback(self, user_id: int, current_feedback_id: int) -> bool:
        others = (
            self.db.query(func.count(Feedback.id))
            .filter(Feedback.user_id == user_id, Feedback.id != current_feedback_id)
            .scalar()
        )
        return (others or 0) == 0

    def zero_out_feedback_points(self, user_id: int, feedback_id: int, reason: str):
        entry = self._feedback_entry(user_id, feedback_id)
        if entry:
            entry.amount = 0
            entry.comment = reason
            self.db.flush()

    def restore_feedback_points(self, user_id: int, feedback_id: int):
        analysis = self.db.query(FeedbackAnalysis).filter(FeedbackAnalysis.feedback_id == feedback_id).first()
        if not analysis:
            logger.warning("No analysis found for feedback %s, points not restored", feedback_id)
            return
        entry = self._feedback_entry(user_id, feedback_id)
        if entry:
            entry.amount = calculate_feedback_points(analysis)
            entry.comment = "Points restored after re-approval"
            self.db.flush()

    def update_feedback_points(self, user_id: int, feedback_id: int, analysis) -> int:
        """Upsert the feedback's ledger entry from a new analysis; returns the points."""
        points = calculate_feedback_points(analysis)
        entry = self._feedback_entry(user_id, feedback_id)
        if entry:
            entry.amount = points
            entry.comment = f"Updated to {points} points after analysis change"
            self.db.flush()
        else:
            self.award_feedback_points(user_id, feedback_id, points)
        return points

    def has_received_referral_points_for(self, referrer_id: int, new_user_id: int) -> bool:
        n = (
            self.db.query(func.count(PointRegistry.id))
            .filter(
                PointRegistry.user_id == referrer_id,
                PointRegistry.source_type == REFERRAL,
                PointRegistry.reference_id == new_user_id,
            )
            .scalar()
        )
        return (n or 0) > 0

    def get_referral_count(self, user_id: int) -> int:
        n = (
            self.db.query(func.count(PointRegistry.id))
            .filter(PointRegistry.user_id == user_id, PointRegistry.source_type == REFERRAL)
            .scalar()
        )
        return n or 0

    def award_referral_points(self, referrer_id: int, new_user_id: int, points: int):
        count = self.get_referral_count(referrer_id)
        self.db.add(PointRegistry(
            user_id=referrer_id,
            amount=points,
            source_type=REFERRAL,
            reference_id=new_user_id,
            comment=f"Referral #{count + 1}",
        ))
        self.db.flush()

    def maybe_award_referral(self, user_id: int, feedback_id: int) -> int:
        """Referral bonus for the referrer, only on the referred user's first feedback."""
        if not self.is_user_first_feedback(user_id, feedback_id):
            return 0
        referrer_id = self.db.query(User.referred_by_user_id).filter(User.id == user_id).scalar()
        if not referrer_id:
            return 0
        if self.has_received_referral_points_for(referrer_id, user_id):
            return 0
        points = calculate_referral_points(self.get_referral_count(referrer_id))
        self.award_referral_points(referrer_id, user_id, points)
        logger.info("Referral points awarded referrer=%s referee=%s points=%s", referrer_id, user_id, points)
        return points

    def get_points_for_entry(self, user_id: Optional[int], source_type: str, reference_id: int) -> Optional[int]:
        if not user_id or not reference_id:
            return None
        row = (
            self.db.query(PointRegistry.amount)
            .filter(
                PointRegistry.user_id == user_id,
                PointRegistry.source_type == source_type,
                PointRegistry.reference_id == reference_id,
            )
            .first()
        )
        return row[0] if row else None
