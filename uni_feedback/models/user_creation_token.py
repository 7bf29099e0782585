from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow


class UserCreationToken(Base):
    __tablename__ = "user_creation_tokens"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False)
    token_hash = Column(String(64), unique=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow)
