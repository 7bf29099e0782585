import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from uni_feedback.database import get_db
from uni_feedback.models.course import Course
from uni_feedback.models.course_group import CourseGroup
from uni_feedback.models.degree import Degree
from uni_feedback.models.faculty import Faculty
from uni_feedback.models.user import User, DELETED_EMAIL_DOMAIN
from uni_feedback.schemas.catalog import (
    FacultyOut,
    FacultyUpdate,
    EmailSuffixIn,
    DegreeOut,
    DegreeUpdate,
    CourseGroupCreate,
    CourseGroupUpdate,
)
from uni_feedback.services.stats_service import StatsService
from uni_feedback.utils.admin_changes import apply_changes, notify_admin_change
from uni_feedback.utils.auth import require_admin, require_superuser
from uni_feedback.utils.dates import isoformat
from uni_feedback.utils.errors import NotFoundError, ValidationError
from uni_feedback.utils.pagination import paginate, page_payload

logger = logging.getLogger("app.admin")

router = APIRouter(prefix="/admin", tags=["Admin"])


def like(term: str) -> str:
    return f"%{term.strip().lower()}%"


@router.get("/stats")
def admin_stats(db: Session = Depends(get_db), admin=Depends(require_admin)):
    return StatsService(db).admin_stats()


# ---------- users ----------

@router.get("/users")
def admin_list_users(
    db: Session = Depends(get_db),
    admin=Depends(require_superuser),
    search: Optional[str] = Query(None, description="email or username"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    q = db.query(User).filter(~User.email.like(f"%@{DELETED_EMAIL_DOMAIN}"))
    if search:
        q = q.filter(or_(func.lower(User.email).like(like(search)), func.lower(User.username).like(like(search))))

    users, total = paginate(q.order_by(User.created_at.desc(), User.id.desc()), page, limit)
    data = [
        {
            "id": u.id,
            "email": u.email,
            "username": u.username,
            "role": u.role,
            "superuser": bool(u.superuser),
            "createdAt": isoformat(u.created_at),
        }
        for u in users
    ]
    return page_payload(data, total, page, limit)


@router.get("/suggestions/degrees")
def degree_suggestions(
    faculty_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    q = db.query(Degree.id, Degree.name, Degree.acronym)
    if faculty_id:
        q = q.filter(Degree.faculty_id == faculty_id)
    return [{"id": i, "name": n, "acronym": a} for i, n, a in q.order_by(Degree.name.asc()).all()]


# ---------- faculties ----------

def get_faculty(db: Session, faculty_id: int) -> Faculty:
    f = db.query(Faculty).filter(Faculty.id == faculty_id).first()
    if not f:
        raise NotFoundError("Faculty not found")
    return f


@router.get("/faculties")
def admin_list_faculties(
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    q = db.query(Faculty)
    if search:
        q = q.filter(or_(func.lower(Faculty.name).like(like(search)), func.lower(Faculty.short_name).like(like(search))))

    faculties, total = paginate(q.order_by(Faculty.name.asc()), page, limit)
    counts = dict(
        db.query(Degree.faculty_id, func.count(Degree.id))
        .filter(Degree.faculty_id.in_([f.id for f in faculties]))
        .group_by(Degree.faculty_id)
        .all()
    ) if faculties else {}

    data = []
    for f in faculties:
        row = FacultyOut.model_validate(f).model_dump(by_alias=True)
        row["degreeCount"] = counts.get(f.id, 0)
        data.append(row)
    return page_payload(data, total, page, limit)


@router.put("/faculties/{faculty_id}")
def admin_update_faculty(
    faculty_id: int,
    body: FacultyUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    f = get_faculty(db, faculty_id)

    data = body.model_dump(exclude_unset=True)
    for required in ("name", "short_name", "url"):
        if required in data and not (data[required] or "").strip():
            raise ValidationError(f"{required} cannot be empty")

    changes = apply_changes(f, data)
    db.commit()
    db.refresh(f)

    if changes:
        logger.info("Faculty %s updated by %s: %s", f.id, admin.id, sorted(changes))
        notify_admin_change(admin, "faculty", f.id, f.name, "updated", changes=changes)
    return FacultyOut.model_validate(f).model_dump(by_alias=True)


@router.get("/faculties/{faculty_id}/email-suffixes")
def admin_get_email_suffixes(faculty_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    f = get_faculty(db, faculty_id)
    return {"facultyId": f.id, "emailSuffixes": f.email_suffixes or []}


@router.post("/faculties/{faculty_id}/email-suffixes")
def admin_add_email_suffix(
    faculty_id: int,
    body: EmailSuffixIn,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    f = get_faculty(db, faculty_id)
    suffix = body.suffix.strip().lower().lstrip("@")
    if not suffix:
        raise ValidationError("Email suffix cannot be empty")

    current = list(f.email_suffixes or [])
    if suffix in current:
        raise ValidationError("Email suffix already exists")

    # reassign so the JSON column is flagged dirty
    f.email_suffixes = sorted(current + [suffix])
    db.commit()

    notify_admin_change(admin, "faculty", f.id, f.name, "added", item=f"email suffix @{suffix}")
    return {"facultyId": f.id, "emailSuffixes": f.email_suffixes, "message": "Email suffix added successfully"}


@router.delete("/faculties/{faculty_id}/email-suffixes/{suffix}")
def admin_remove_email_suffix(
    faculty_id: int,
    suffix: str,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    f = get_faculty(db, faculty_id)
    suffix = suffix.strip().lower().lstrip("@")

    current = list(f.email_suffixes or [])
    if suffix not in current:
        raise ValidationError("Email suffix not found")

    f.email_suffixes = sorted(s for s in current if s != suffix)
    db.commit()

    notify_admin_change(admin, "faculty", f.id, f.name, "removed", item=f"email suffix @{suffix}")
    return {"facultyId": f.id, "emailSuffixes": f.email_suffixes, "message": "Email suffix removed successfully"}


# ---------- degrees ----------

@router.get("/degrees")
def admin_list_degrees(
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
    search: Optional[str] = Query(None, description="name or acronym"),
    faculty_id: Optional[int] = Query(None),
    type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    course_count = (
        db.query(func.count(Course.id)).filter(Course.degree_id == Degree.id).correlate(Degree).scalar_subquery()
    )
    q = db.query(Degree, Faculty, course_count).outerjoin(Faculty, Degree.faculty_id == Faculty.id)
    if search:
        q = q.filter(or_(func.lower(Degree.name).like(like(search)), func.lower(Degree.acronym).like(like(search))))
    if faculty_id:
        q = q.filter(Degree.faculty_id == faculty_id)
    if type:
        q = q.filter(Degree.type == type)

    rows, total = paginate(q.order_by(Degree.name.asc(), Degree.id.asc()), page, limit)
    data = [
        {
            "id": d.id,
            "name": d.name,
            "acronym": d.acronym,
            "type": d.type,
            "facultyId": d.faculty_id,
            "facultyName": f.name if f else None,
            "facultyShortName": f.short_name if f else None,
            "courseCount": n or 0,
            "createdAt": isoformat(d.created_at),
        }
        for d, f, n in rows
    ]
    return page_payload(data, total, page, limit)


@router.get("/degrees/types")
def admin_degree_types(db: Session = Depends(get_db), admin=Depends(require_admin)):
    rows = db.query(Degree.type).distinct().order_by(Degree.type.asc()).all()
    return {"types": [t for (t,) in rows if t]}


@router.get("/degrees/{degree_id}")
def admin_degree_details(degree_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    row = (
        db.query(Degree, Faculty)
        .outerjoin(Faculty, Degree.faculty_id == Faculty.id)
        .filter(Degree.id == degree_id)
        .first()
    )
    if not row:
        raise NotFoundError("Degree not found")
    d, f = row

    out = DegreeOut.model_validate(d).model_dump(by_alias=True)
    out["facultyName"] = f.name if f else None
    out["facultyShortName"] = f.short_name if f else None
    out["courseCount"] = db.query(func.count(Course.id)).filter(Course.degree_id == d.id).scalar() or 0
    out["courseGroupCount"] = (
        db.query(func.count(CourseGroup.id)).filter(CourseGroup.degree_id == d.id).scalar() or 0
    )
    return out


@router.put("/degrees/{degree_id}")
def admin_update_degree(
    degree_id: int,
    body: DegreeUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    d = db.query(Degree).filter(Degree.id == degree_id).first()
    if not d:
        raise NotFoundError("Degree not found")

    data = body.model_dump(exclude_unset=True)
    for required in ("type", "name", "acronym", "campus"):
        if required in data and not (data[required] or "").strip():
            raise ValidationError(f"{required} cannot be empty")
    if data.get("faculty_id") is not None:
        get_faculty(db, data["faculty_id"])

    changes = apply_changes(d, data)
    db.commit()
    db.refresh(d)

    if changes:
        logger.info("Degree %s updated by %s: %s", d.id, admin.id, sorted(changes))
        notify_admin_change(admin, "degree", d.id, d.name, "updated", changes=changes)
    return DegreeOut.model_validate(d).model_dump(by_alias=True)


# ---------- course groups ----------

def course_group_dict(g: CourseGroup) -> dict:
    return {
        "id": g.id,
        "name": g.name,
        "degreeId": g.degree_id,
        "courseIds": sorted(c.id for c in g.courses),
        "createdAt": isoformat(g.created_at),
        "updatedAt": isoformat(g.updated_at),
    }


def load_courses(db: Session, course_ids) -> list[Course]:
    if not course_ids:
        return []
    courses = db.query(Course).filter(Course.id.in_(set(course_ids))).all()
    missing = set(course_ids) - {c.id for c in courses}
    if missing:
        raise ValidationError(f"Courses not found: {', '.join(str(i) for i in sorted(missing))}")
    return courses


@router.get("/course-groups")
def admin_list_course_groups(
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
    search: Optional[str] = Query(None),
    degree_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    q = db.query(CourseGroup)
    if search:
        q = q.filter(func.lower(CourseGroup.name).like(like(search)))
    if degree_id:
        q = q.filter(CourseGroup.degree_id == degree_id)

    groups, total = paginate(q.order_by(CourseGroup.name.asc(), CourseGroup.id.asc()), page, limit)
    return page_payload([course_group_dict(g) for g in groups], total, page, limit)


@router.post("/course-groups", status_code=201)
def admin_create_course_group(
    body: CourseGroupCreate,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    name = body.name.strip()
    if not name:
        raise ValidationError("Name is required")
    d = db.query(Degree).filter(Degree.id == body.degree_id).first()
    if not d:
        raise NotFoundError("Degree not found")

    g = CourseGroup(name=name, degree_id=d.id, courses=load_courses(db, body.course_ids))
    db.add(g)
    db.commit()
    db.refresh(g)

    logger.info("Course group %s created by %s", g.id, admin.id)
    notify_admin_change(admin, "course group", g.id, g.name, "created")
    return JSONResponse(status_code=201, content=course_group_dict(g))


@router.put("/course-groups/{group_id}")
def admin_update_course_group(
    group_id: int,
    body: CourseGroupUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    g = db.query(CourseGroup).filter(CourseGroup.id == group_id).first()
    if not g:
        raise NotFoundError("Course group not found")

    changes = {}
    if body.name is not None:
        name = body.name.strip()
        if not name:
            raise ValidationError("Name cannot be empty")
        changes.update(apply_changes(g, {"name": name}))
    if body.course_ids is not None:
        old_ids = sorted(c.id for c in g.courses)
        g.courses = load_courses(db, body.course_ids)
        new_ids = sorted(c.id for c in g.courses)
        if old_ids != new_ids:
            changes["courses"] = (old_ids, new_ids)

    db.commit()
    db.refresh(g)

    if changes:
        notify_admin_change(admin, "course group", g.id, g.name, "updated", changes=changes)
    return course_group_dict(g)
