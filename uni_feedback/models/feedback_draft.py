from sqlalchemy import Column, Integer, String, DateTime, JSON

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow


class FeedbackDraft(Base):
    __tablename__ = "feedback_drafts"

    id = Column(Integer, primary_key=True)
    code = Column(String(16), unique=True, nullable=False, index=True)
    # {rating, workloadRating, comment}, all optional
    data = Column(JSON, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    ip_address = Column(String(64))
    created_at = Column(DateTime, default=utcnow, nullable=False)
