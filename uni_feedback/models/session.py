from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow


class AuthSession(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    access_token_hash = Column(String(64), nullable=False, index=True)
    refresh_token_hash = Column(String(64), nullable=False, unique=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
