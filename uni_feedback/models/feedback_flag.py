from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow

REPORT_CATEGORY_LABELS = {
    "harassment_hate_speech": "Harassment / Hate Speech",
    "spam_irrelevant": "Spam / Irrelevant",
    "inaccurate_information": "Inaccurate Information",
    "privacy_violation": "Privacy Violation",
    "outdated_content": "Outdated Content",
    "other": "Other",
}


class FeedbackFlag(Base):
    __tablename__ = "feedback_flags"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    feedback_id = Column(Integer, ForeignKey("feedback.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(String(32), nullable=False)
    details = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    moderated_at = Column(DateTime)
