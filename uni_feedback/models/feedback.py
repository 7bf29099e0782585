from datetime import datetime

from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow

# Auto-approved submissions carry this fixed approval date (Dec 16, 1999 04:30 UTC)
AUTO_APPROVED_AT = datetime(1999, 12, 16, 4, 30)


class Feedback(Base):
    __tablename__ = "feedback"

    id = Column(Integer, primary_key=True, index=True)

    # null user_id: legacy anonymous email-only submission
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    email = Column(Text)

    school_year = Column(Integer)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    workload_rating = Column(Integer)
    comment = Column(Text)
    original_comment = Column(Text)

    # null: pending moderation, hidden from public pages
    approved_at = Column(DateTime)
    # soft delete
    deleted_at = Column(DateTime)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_public(self) -> bool:
        return self.approved_at is not None and self.deleted_at is None


def visible_feedback_filter():
    """Approved and not soft-deleted."""
    return (Feedback.approved_at.isnot(None), Feedback.deleted_at.is_(None))
