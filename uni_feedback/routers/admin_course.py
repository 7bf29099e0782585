import logging
from typing import Optional

import pandas as pd
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from uni_feedback.database import get_db
from uni_feedback.models.course import Course
from uni_feedback.models.degree import Degree
from uni_feedback.models.faculty import Faculty
from uni_feedback.models.feedback import Feedback
from uni_feedback.schemas.catalog import CourseOut, CourseUpdate, TermIn
from uni_feedback.utils.admin_changes import apply_changes, notify_admin_change
from uni_feedback.utils.auth import require_admin
from uni_feedback.utils.dates import isoformat
from uni_feedback.utils.errors import NotFoundError, ValidationError
from uni_feedback.utils.pagination import paginate, page_payload

logger = logging.getLogger("app.admin")

router = APIRouter(prefix="/admin/courses", tags=["Admin - Courses"])


def to_str(v):
    if v is None or pd.isna(v):
        return None
    s = str(v).strip()
    return None if s == "" or s.lower() == "nan" else s


def to_int(v):
    if v is None or pd.isna(v):
        return None
    try:
        return int(float(v))
    except (TypeError, ValueError):
        return None


def to_float(v):
    if v is None or pd.isna(v):
        return None
    try:
        return float(str(v).replace(",", "."))
    except (TypeError, ValueError):
        return None


def parse_terms(text):
    # "1st Semester; P1" -> ["1st Semester", "P1"]
    s = to_str(text)
    if not s:
        return []
    parts = [p.strip() for p in s.replace(",", ";").split(";")]
    return sorted({p for p in parts if p})


def find_header_row(df_raw: pd.DataFrame) -> int:
    # first row with an "Acronym" cell is the header
    for i in range(min(30, len(df_raw))):
        row = [str(c).strip().lower() for c in df_raw.iloc[i].tolist()]
        if "acronym" in row:
            return i
    return -1


def get_course(db: Session, course_id: int) -> Course:
    c = db.query(Course).filter(Course.id == course_id).first()
    if not c:
        raise NotFoundError("Course not found")
    return c


@router.get("")
def admin_list_courses(
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
    search: Optional[str] = Query(None, description="name or acronym"),
    degree_id: Optional[int] = Query(None),
    faculty_id: Optional[int] = Query(None),
    term: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    feedback_count = (
        db.query(func.count(Feedback.id))
        .filter(Feedback.course_id == Course.id, Feedback.deleted_at.is_(None))
        .correlate(Course)
        .scalar_subquery()
    )
    q = (
        db.query(Course, Degree, feedback_count)
        .outerjoin(Degree, Course.degree_id == Degree.id)
    )
    if search:
        s = f"%{search.strip().lower()}%"
        q = q.filter(or_(func.lower(Course.name).like(s), func.lower(Course.acronym).like(s)))
    if degree_id:
        q = q.filter(Course.degree_id == degree_id)
    if faculty_id:
        q = q.filter(Degree.faculty_id == faculty_id)

    q = q.order_by(Course.acronym.asc(), Course.id.asc())
    if term:
        # terms is a JSON list; filter in Python so SQLite and Postgres behave the same
        rows = [r for r in q.all() if term in (r[0].terms or [])]
        total = len(rows)
        rows = rows[(page - 1) * limit: page * limit]
    else:
        rows, total = paginate(q, page, limit)

    data = [
        {
            "id": c.id,
            "name": c.name,
            "acronym": c.acronym,
            "ects": c.ects,
            "curriculumYear": c.curriculum_year,
            "terms": c.terms or [],
            "degreeId": c.degree_id,
            "degreeName": d.name if d else None,
            "degreeAcronym": d.acronym if d else None,
            "feedbackCount": n or 0,
            "createdAt": isoformat(c.created_at),
        }
        for c, d, n in rows
    ]
    return page_payload(data, total, page, limit)


@router.get("/terms")
def admin_all_terms(db: Session = Depends(get_db), admin=Depends(require_admin)):
    terms = set()
    for (values,) in db.query(Course.terms).filter(Course.terms.isnot(None)).all():
        terms.update(values or [])
    return {"terms": sorted(terms)}


@router.post("/import")
def import_courses(
    degree_id: int = Form(...),
    file: UploadFile = File(...),
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Upsert the courses of one degree from an .xlsx sheet.
    Rows are matched on acronym; columns: Acronym, Name, ECTS,
    Curriculum Year, Terms, URL, Description.
    """
    degree = db.query(Degree).filter(Degree.id == degree_id).first()
    if not degree:
        raise NotFoundError("Degree not found")

    try:
        df_raw = pd.read_excel(file.file, header=None)
    except Exception:
        logger.warning("Unreadable course import file %s", file.filename, exc_info=True)
        raise ValidationError("Cannot read Excel file")

    header_i = find_header_row(df_raw)
    if header_i == -1:
        raise ValidationError("Cannot find header row in Excel")

    header = [str(c).strip().lower() for c in df_raw.iloc[header_i].tolist()]
    df = df_raw.iloc[header_i + 1:].copy()
    df.columns = header
    df = df.reset_index(drop=True)

    existing = {c.acronym.lower(): c for c in db.query(Course).filter(Course.degree_id == degree.id).all()}

    inserted = updated = skipped = 0
    try:
        for _, row in df.iterrows():
            acronym = to_str(row.get("acronym"))
            name = to_str(row.get("name"))
            if not acronym or not name:
                skipped += 1
                continue

            values = {
                "name": name,
                "ects": to_float(row.get("ects")),
                "curriculum_year": to_int(row.get("curriculum year")),
                "terms": parse_terms(row.get("terms")),
                "url": to_str(row.get("url")),
                "description": to_str(row.get("description")),
            }
            # blank cells never wipe existing data
            values = {k: v for k, v in values.items() if v not in (None, [])}

            course = existing.get(acronym.lower())
            if course is None:
                course = Course(acronym=acronym, degree_id=degree.id, **values)
                db.add(course)
                existing[acronym.lower()] = course
                inserted += 1
            elif apply_changes(course, values):
                updated += 1

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Course import degree_id=%s by %s: inserted=%s updated=%s skipped=%s",
        degree.id, admin.id, inserted, updated, skipped,
    )
    notify_admin_change(
        admin, "degree", degree.id, degree.name, "imported",
        item=f"{inserted} new / {updated} updated courses",
    )
    return {
        "message": "Import completed!",
        "inserted": inserted,
        "updated": updated,
        "skipped": skipped,
    }


@router.get("/{course_id}")
def admin_course_details(course_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    row = (
        db.query(Course, Degree, Faculty)
        .outerjoin(Degree, Course.degree_id == Degree.id)
        .outerjoin(Faculty, Degree.faculty_id == Faculty.id)
        .filter(Course.id == course_id)
        .first()
    )
    if not row:
        raise NotFoundError("Course not found")
    c, d, f = row

    out = CourseOut.model_validate(c).model_dump(by_alias=True, mode="json")
    out.update({
        "terms": c.terms or [],
        "degreeName": d.name if d else None,
        "degreeAcronym": d.acronym if d else None,
        "facultyId": d.faculty_id if d else None,
        "facultyName": f.name if f else None,
        "facultyShortName": f.short_name if f else None,
        "totalFeedbackCount": db.query(func.count(Feedback.id)).filter(Feedback.course_id == c.id).scalar() or 0,
    })
    return out


@router.put("/{course_id}")
def admin_update_course(
    course_id: int,
    body: CourseUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    c = get_course(db, course_id)

    data = body.model_dump(exclude_unset=True)
    for required in ("name", "acronym"):
        if required in data and not (data[required] or "").strip():
            raise ValidationError(f"{required} cannot be empty")

    changes = apply_changes(c, data)
    db.commit()
    db.refresh(c)

    if changes:
        logger.info("Course %s updated by %s: %s", c.id, admin.id, sorted(changes))
        notify_admin_change(admin, "course", c.id, c.name, "updated", changes=changes)
    return CourseOut.model_validate(c).model_dump(by_alias=True, mode="json")


@router.get("/{course_id}/terms")
def admin_course_terms(course_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    c = get_course(db, course_id)
    return {"courseId": c.id, "terms": c.terms or []}


@router.post("/{course_id}/terms")
def admin_add_course_term(
    course_id: int,
    body: TermIn,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    c = get_course(db, course_id)
    term = body.term.strip()
    if not term:
        raise ValidationError("Term cannot be empty")

    current = list(c.terms or [])
    if term in current:
        raise ValidationError("Term already exists")

    c.terms = sorted(current + [term])
    db.commit()

    notify_admin_change(admin, "course", c.id, c.name, "added", item=f"term {term}")
    return {"courseId": c.id, "terms": c.terms, "message": "Term added successfully"}


@router.delete("/{course_id}/terms/{term}")
def admin_remove_course_term(
    course_id: int,
    term: str,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    c = get_course(db, course_id)

    current = list(c.terms or [])
    if term not in current:
        raise ValidationError("Term not found")

    c.terms = [t for t in current if t != term]
    db.commit()

    notify_admin_change(admin, "course", c.id, c.name, "removed", item=f"term {term}")
    return {"courseId": c.id, "terms": c.terms, "message": "Term removed successfully"}
