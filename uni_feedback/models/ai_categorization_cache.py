from sqlalchemy import Column, Integer, String, Boolean, DateTime

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow


class AiCategorizationCache(Base):
    __tablename__ = "ai_categorization_cache"

    # sha256 of the normalized comment
    comment_hash = Column(String(64), primary_key=True)

    has_teaching = Column(Boolean, nullable=False)
    has_assessment = Column(Boolean, nullable=False)
    has_materials = Column(Boolean, nullable=False)
    has_tips = Column(Boolean, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_accessed_at = Column(DateTime, default=utcnow, nullable=False)
    hit_count = Column(Integer, nullable=False, default=0)
