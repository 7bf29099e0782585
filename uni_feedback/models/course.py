from sqlalchemy import Column, Integer, String, Text, Float, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)

    # changes every academic year on the source catalogue
    external_id = Column(String(64))
    name = Column(Text, nullable=False)
    acronym = Column(String(32), nullable=False, index=True)
    slug = Column(String(64))

    degree_id = Column(Integer, ForeignKey("degrees.id"), index=True)

    ects = Column(Float)
    curriculum_year = Column(Integer)
    # e.g. ["1st Semester", "P1"]
    terms = Column(JSON)

    url = Column(Text)
    description = Column(Text)
    bibliography = Column(Text)
    assessment = Column(Text)
    has_mandatory_exam = Column(Boolean)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # relationship
    degree = relationship("Degree", back_populates="courses")
