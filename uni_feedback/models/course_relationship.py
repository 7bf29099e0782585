from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow

IDENTICAL = "identical"


class CourseRelationship(Base):
    """
    source -> target edge. With type "identical" the target's feedback is
    aggregated into the source (cross-listed or renamed courses).
    """

    __tablename__ = "course_relationships"
    __table_args__ = (
        Index("idx_course_relationships_source_relationship", "source_course_id", "relationship_type"),
        Index("idx_course_relationships_target_relationship", "target_course_id", "relationship_type"),
    )

    source_course_id = Column(Integer, ForeignKey("courses.id"), primary_key=True)
    target_course_id = Column(Integer, ForeignKey("courses.id"), primary_key=True)
    relationship_type = Column(String(32), primary_key=True, default=IDENTICAL)
    created_at = Column(DateTime, default=utcnow)
