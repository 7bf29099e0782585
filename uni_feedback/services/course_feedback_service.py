from collections import defaultdict
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from uni_feedback.models.course import Course
from uni_feedback.models.course_relationship import CourseRelationship, IDENTICAL
from uni_feedback.models.degree import Degree
from uni_feedback.models.feedback import Feedback, visible_feedback_filter
from uni_feedback.models.helpful_vote import HelpfulVote
from uni_feedback.utils.dates import isoformat


class CourseFeedbackService:
    """
    Feedback aggregation over "identical" course relationships:
    a course's feedback = its own + every identical target's, public rows only.
    """

    def __init__(self, db: Session):
        self.db = db

    def identical_targets(self, course_ids: Optional[Iterable[int]] = None) -> dict[int, set]:
        q = self.db.query(CourseRelationship.source_course_id, CourseRelationship.target_course_id).filter(
            CourseRelationship.relationship_type == IDENTICAL
        )
        if course_ids is not None:
            ids = list(course_ids)
            if not ids:
                return {}
            q = q.filter(CourseRelationship.source_course_id.in_(ids))

        targets = defaultdict(set)
        for source, target in q.all():
            targets[source].add(target)
        return targets

    def relevant_course_ids(self, course_id: int) -> list[int]:
        ids = {course_id}
        ids |= self.identical_targets([course_id]).get(course_id, set())
        return sorted(ids)

    def _per_course_totals(self, course_ids) -> dict[int, tuple]:
        """course_id -> (feedback count, rating sum) over public feedback."""
        if not course_ids:
            return {}
        rows = (
            self.db.query(Feedback.course_id, func.count(Feedback.id), func.sum(Feedback.rating))
            .filter(Feedback.course_id.in_(list(course_ids)), *visible_feedback_filter())
            .group_by(Feedback.course_id)
            .all()
        )
        return {cid: (int(n or 0), int(s or 0)) for cid, n, s in rows}

    def stats_for_courses(self, course_ids: Iterable[int]) -> dict[int, dict]:
        """Batched version of get_course_feedback_stats."""
        course_ids = list(course_ids)
        targets = self.identical_targets(course_ids)

        needed = set(course_ids)
        for t in targets.values():
            needed |= t
        totals = self._per_course_totals(needed)

        out = {}
        for cid in course_ids:
            count, rating_sum = 0, 0
            for rid in {cid} | targets.get(cid, set()):
                n, s = totals.get(rid, (0, 0))
                count += n
                rating_sum += s
            out[cid] = {"rating": rating_sum / count if count else 0, "feedbackCount": count}
        return out

    def get_course_feedback_stats(self, course_id: int) -> dict:
        return self.stats_for_courses([course_id])[course_id]

    def count_feedback_by_group(self, groups: dict) -> dict:
        """{key: course ids} -> {key: public feedback count}, identical targets included."""
        all_ids = set()
        for ids in groups.values():
            all_ids |= set(ids)
        targets = self.identical_targets(all_ids)

        expanded = {}
        for key, ids in groups.items():
            ids = set(ids)
            for cid in list(ids):
                ids |= targets.get(cid, set())
            expanded[key] = ids

        needed = set()
        for ids in expanded.values():
            needed |= ids
        totals = self._per_course_totals(needed)
        # one course per feedback row: summing over distinct course ids never double counts
        return {key: sum(totals.get(cid, (0, 0))[0] for cid in ids) for key, ids in expanded.items()}

    def get_course_feedback_with_details(self, course_id: int, user_id: Optional[int] = None) -> list[dict]:
        ids = self.relevant_course_ids(course_id)
        rows = (
            self.db.query(Feedback, Course, Degree)
            .join(Course, Feedback.course_id == Course.id)
            .outerjoin(Degree, Course.degree_id == Degree.id)
            .filter(Feedback.course_id.in_(ids), *visible_feedback_filter())
            .order_by(Feedback.created_at.desc(), Feedback.id.desc())
            .all()
        )
        feedback_ids = [f.id for f, _, _ in rows]

        helpful = {}
        voted = set()
        if feedback_ids:
            helpful = dict(
                self.db.query(HelpfulVote.feedback_id, func.count())
                .filter(HelpfulVote.feedback_id.in_(feedback_ids))
                .group_by(HelpfulVote.feedback_id)
                .all()
            )
            if user_id is not None:
                voted = {
                    fid for (fid,) in self.db.query(HelpfulVote.feedback_id)
                    .filter(HelpfulVote.user_id == user_id, HelpfulVote.feedback_id.in_(feedback_ids))
                    .all()
                }

        result = []
        for f, c, d in rows:
            result.append({
                "id": f.id,
                "courseId": f.course_id,
                "rating": f.rating,
                "workloadRating": f.workload_rating,
                "comment": f.comment,
                "schoolYear": f.school_year,
                "createdAt": isoformat(f.created_at),
                "course": {"id": c.id, "name": c.name, "acronym": c.acronym},
                "degree": {"id": d.id, "name": d.name, "acronym": d.acronym} if d else None,
                "isFromDifferentCourse": f.course_id != course_id,
                "helpfulCount": int(helpful.get(f.id, 0)),
                "isHelpful": f.id in voted,
            })
        return result

    def course_summaries(self, courses) -> list[dict]:
        """List rows for courses with aggregated rating and feedback count."""
        stats = self.stats_for_courses([c.id for c in courses])
        return [
            {
                "id": c.id,
                "name": c.name,
                "acronym": c.acronym,
                "url": c.url,
                "degreeId": c.degree_id,
                "ects": c.ects,
                "curriculumYear": c.curriculum_year,
                "terms": c.terms or [],
                "rating": stats[c.id]["rating"],
                "feedbackCount": stats[c.id]["feedbackCount"],
            }
            for c in courses
        ]
