from sqlalchemy import Column, Integer, String, DateTime

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow


class OtpToken(Base):
    __tablename__ = "otp_tokens"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    code_hash = Column(String(64), nullable=False)
    referral_code = Column(String(16))
    attempts = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)
