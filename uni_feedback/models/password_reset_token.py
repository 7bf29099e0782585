from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # hash only, never the plain token
    token_hash = Column(String(64), unique=True, nullable=False)

    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
