from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Table
from sqlalchemy.orm import relationship

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow

course_group_courses = Table(
    "course_group_courses",
    Base.metadata,
    Column("course_group_id", Integer, ForeignKey("course_groups.id", ondelete="CASCADE"), primary_key=True),
    Column("course_id", Integer, ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
)


class CourseGroup(Base):
    __tablename__ = "course_groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    degree_id = Column(Integer, ForeignKey("degrees.id"), nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    courses = relationship("Course", secondary=course_group_courses)
