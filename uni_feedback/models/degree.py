from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow


class Degree(Base):
    __tablename__ = "degrees"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(64))
    # Bologna Degree / Master / ...
    type = Column(String(64), nullable=False)
    name = Column(Text, nullable=False)
    acronym = Column(String(32), nullable=False, index=True)
    slug = Column(String(64))
    campus = Column(String(64), nullable=False)
    description = Column(Text)
    url = Column(Text)

    faculty_id = Column(Integer, ForeignKey("faculties.id"), index=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    faculty = relationship("Faculty", back_populates="degrees")
    courses = relationship("Course", back_populates="degree")
