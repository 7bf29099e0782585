from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow


class FeedbackAnalysis(Base):
    __tablename__ = "feedback_analysis"

    feedback_id = Column(Integer, ForeignKey("feedback.id", ondelete="CASCADE"), primary_key=True)
    has_teaching = Column(Boolean, nullable=False, default=False)
    has_assessment = Column(Boolean, nullable=False, default=False)
    has_materials = Column(Boolean, nullable=False, default=False)
    has_tips = Column(Boolean, nullable=False, default=False)
    word_count = Column(Integer, nullable=False)

    # set the first time a moderator confirms or corrects the categories
    reviewed_at = Column(DateTime)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
