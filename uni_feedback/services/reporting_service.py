import logging
from collections import defaultdict
from typing import Optional

from sqlalchemy.orm import Session

from uni_feedback.models.course import Course
from uni_feedback.models.degree import Degree
from uni_feedback.models.feedback import Feedback, visible_feedback_filter
from uni_feedback.utils.dates import isoformat
from uni_feedback.utils.errors import NotFoundError
from uni_feedback.utils.excel_export import sheets_to_xlsx_bytes

logger = logging.getLogger("app.reports")

WORKLOAD_LABELS = ["Very heavy", "Heavy", "Moderate", "Light", "Very light"]

# rating >= 3.8 is "high"; workload < 2.5 is "heavy" (1 = very heavy)
HIGH_RATING = 3.8
HEAVY_WORKLOAD = 2.5


def workload_label(rating) -> str:
    if rating is None:
        return "Unknown"
    idx = int(round(rating)) - 1
    return WORKLOAD_LABELS[idx] if 0 <= idx < len(WORKLOAD_LABELS) else "Unknown"


def calculate_stats(items) -> dict:
    """items: objects with rating / workload_rating."""
    dist = {i: 0 for i in range(1, 6)}
    workload_dist = {i: 0 for i in range(1, 6)}
    rating_sum = 0
    workload_sum = 0
    workload_count = 0

    for it in items:
        rating_sum += it.rating
        dist[it.rating] = dist.get(it.rating, 0) + 1
        if it.workload_rating is not None:
            workload_sum += it.workload_rating
            workload_count += 1
            workload_dist[it.workload_rating] = workload_dist.get(it.workload_rating, 0) + 1

    count = len(items)
    return {
        "count": count,
        "avg_rating": round(rating_sum / count, 2) if count else None,
        "avg_workload": round(workload_sum / workload_count, 2) if workload_count else None,
        "workload_count": workload_count,
        "distribution": dist,
        "workload_distribution": workload_dist,
    }


def classify_course(avg_rating, avg_workload) -> Optional[str]:
    if avg_rating is None or avg_workload is None:
        return None
    high_rating = avg_rating >= HIGH_RATING
    heavy = avg_workload < HEAVY_WORKLOAD
    if high_rating and heavy:
        return "gold_standard"
    if high_rating:
        return "optimal_efficiency"
    if heavy:
        return "critical_friction"
    return "under_engaged"


def _distribution_rows(stats) -> list[dict]:
    return [
        {
            "Score": i,
            "Rating count": stats["distribution"].get(i, 0),
            "Workload count": stats["workload_distribution"].get(i, 0),
            "Workload label": WORKLOAD_LABELS[i - 1],
        }
        for i in range(1, 6)
    ]


class ReportingService:
    """Course and degree (semester) reports as xlsx workbooks."""

    def __init__(self, db: Session):
        self.db = db

    def _course_feedback(self, course_ids, school_year: int):
        return (
            self.db.query(Feedback)
            .filter(
                Feedback.course_id.in_(list(course_ids)),
                Feedback.school_year == school_year,
                *visible_feedback_filter(),
            )
            .order_by(Feedback.created_at.desc(), Feedback.id.desc())
            .all()
        )

    def build_course_report(self, course_id: int, school_year: int) -> bytes:
        course = self.db.query(Course).filter(Course.id == course_id).first()
        if not course:
            raise NotFoundError("Course not found")
        degree = self.db.query(Degree).filter(Degree.id == course.degree_id).first()

        items = self._course_feedback([course_id], school_year)
        stats = calculate_stats(items)

        summary = {
            "Course": f"{course.acronym} - {course.name}",
            "Degree": degree.name if degree else None,
            "ECTS": course.ects,
            "School year": f"{school_year}/{school_year + 1}",
            "Responses": stats["count"],
            "Average rating": stats["avg_rating"],
            "Average workload": stats["avg_workload"],
            "Workload": workload_label(stats["avg_workload"]),
        }
        submissions = [
            {
                "ID": f.id,
                "Rating": f.rating,
                "Workload": workload_label(f.workload_rating) if f.workload_rating else None,
                "Date": isoformat(f.created_at),
                "Comment": f.comment,
            }
            for f in items
        ]
        logger.info("Course report built course_id=%s year=%s responses=%s", course_id, school_year, stats["count"])
        return sheets_to_xlsx_bytes(
            {"Distribution": _distribution_rows(stats), "Submissions": submissions},
            summary=summary,
        )

    def build_degree_report(self, degree_id: int, school_year: int,
                            curriculum_year: Optional[int] = None, terms: Optional[list] = None) -> bytes:
        degree = self.db.query(Degree).filter(Degree.id == degree_id).first()
        if not degree:
            raise NotFoundError("Degree not found")

        courses = self.db.query(Course).filter(Course.degree_id == degree_id).order_by(Course.acronym.asc()).all()
        if curriculum_year is not None:
            courses = [c for c in courses if c.curriculum_year == curriculum_year]
        if terms:
            courses = [c for c in courses if c.terms and any(t in terms for t in c.terms)]

        by_course = defaultdict(list)
        if courses:
            for f in self._course_feedback([c.id for c in courses], school_year):
                by_course[f.course_id].append(f)

        index = []
        comments = []
        total = 0
        with_comments = 0
        for c in courses:
            items = by_course.get(c.id, [])
            stats = calculate_stats(items)
            total += stats["count"]
            row = {
                "Code": c.acronym,
                "Course": c.name,
                "ECTS": c.ects,
                "Responses": stats["count"],
                "Average rating": stats["avg_rating"],
                "Average workload": stats["avg_workload"],
                "Workload": workload_label(stats["avg_workload"]),
                "Classification": classify_course(stats["avg_rating"], stats["avg_workload"]),
            }
            for i in range(1, 6):
                row[f"Rating {i}"] = stats["distribution"].get(i, 0)
            index.append(row)

            for f in items:
                if f.comment:
                    with_comments += 1
                    comments.append({"Code": c.acronym, "Rating": f.rating, "Workload": f.workload_rating,
                                     "Comment": f.comment})

        summary = {
            "Degree": f"{degree.acronym} - {degree.name}",
            "School year": f"{school_year}/{school_year + 1}",
            "Curriculum year": curriculum_year,
            "Terms": ", ".join(terms) if terms else None,
            "Courses": len(courses),
            "Total feedback": total,
            "Feedback with comments": with_comments,
        }
        logger.info("Degree report built degree_id=%s year=%s courses=%s", degree_id, school_year, len(courses))
        return sheets_to_xlsx_bytes({"Courses": index, "Comments": comments}, summary=summary)
