from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow

SUBMIT_FEEDBACK = "submit_feedback"
REFERRAL = "referral"


class PointRegistry(Base):
    __tablename__ = "point_registry"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    # submit_feedback -> reference_id is a feedback id; referral -> the referred user id
    source_type = Column(String(32), nullable=False)
    reference_id = Column(Integer)
    comment = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
