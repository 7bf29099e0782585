from sqlalchemy import Column, Integer, DateTime, ForeignKey

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow


class HelpfulVote(Base):
    __tablename__ = "helpful_votes"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    feedback_id = Column(Integer, ForeignKey("feedback.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
