from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.orm import relationship

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow


class Faculty(Base):
    __tablename__ = "faculties"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    short_name = Column(String(32), nullable=False, index=True)
    slug = Column(String(64))

    logo = Column(Text)
    banner = Column(Text)
    logo_horizontal = Column(Text)

    url = Column(Text, nullable=False)
    # e.g. ["tecnico.ulisboa.pt"]
    email_suffixes = Column(JSON)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    degrees = relationship("Degree", back_populates="faculty")
