from collections import defaultdict
from typing import Optional

from sqlalchemy.orm import Session

from uni_feedback.models.course import Course
from uni_feedback.models.degree import Degree
from uni_feedback.models.faculty import Faculty
from uni_feedback.services.course_feedback_service import CourseFeedbackService


class DegreeService:
    def __init__(self, db: Session):
        self.db = db
        self.feedback = CourseFeedbackService(db)

    def get_degrees_with_counts(
        self,
        faculty_id: Optional[int] = None,
        faculty_short_name: Optional[str] = None,
        only_with_courses: bool = True,
    ) -> list[dict]:
        q = self.db.query(Degree)
        if faculty_id:
            q = q.filter(Degree.faculty_id == faculty_id)
        if faculty_short_name:
            q = q.join(Faculty, Degree.faculty_id == Faculty.id).filter(Faculty.short_name == faculty_short_name)
        degrees = q.order_by(Degree.name.asc()).all()

        courses_by_degree = defaultdict(list)
        if degrees:
            for cid, did in (
                self.db.query(Course.id, Course.degree_id)
                .filter(Course.degree_id.in_([d.id for d in degrees]))
                .all()
            ):
                courses_by_degree[did].append(cid)

        feedback_counts = self.feedback.count_feedback_by_group(
            {d.id: courses_by_degree.get(d.id, []) for d in degrees}
        )

        out = []
        for d in degrees:
            course_ids = courses_by_degree.get(d.id, [])
            if only_with_courses and not course_ids:
                continue
            out.append({
                "id": d.id,
                "externalId": d.external_id,
                "type": d.type,
                "name": d.name,
                "acronym": d.acronym,
                "slug": d.slug,
                "facultyId": d.faculty_id,
                "courseCount": len(course_ids),
                "feedbackCount": feedback_counts.get(d.id, 0),
            })
        return out
