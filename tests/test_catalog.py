from uni_feedback.models.course import Course
from uni_feedback.models.course_group import CourseGroup
from uni_feedback.models.course_relationship import CourseRelationship, IDENTICAL
from uni_feedback.models.degree import Degree
from uni_feedback.models.feedback import Feedback, AUTO_APPROVED_AT
from uni_feedback.utils.dates import utcnow


def add_feedback(db, course, rating, approved=True, deleted=False, comment=None, school_year=2023):
    fb = Feedback(
        email="legacy@uni.pt",
        course_id=course.id,
        rating=rating,
        workload_rating=3,
        school_year=school_year,
        comment=comment,
        approved_at=AUTO_APPROVED_AT if approved else None,
        deleted_at=utcnow() if deleted else None,
    )
    db.add(fb)
    db.commit()
    return fb


def test_root(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json() == {"message": "Uni Feedback API is running!"}


def test_list_faculties(client, catalog):
    r = client.get("/faculties")
    assert r.status_code == 200
    data = r.json()
    assert len(data) == 1
    assert data[0]["shortName"] == "SE"
    assert data[0]["emailSuffixes"] == ["uni.pt"]

    r = client.get("/faculties", params={"acronym": "NOPE"})
    assert r.json() == []


def test_faculty_details(client, catalog):
    r = client.get(f"/faculties/{catalog.faculty.id}")
    assert r.status_code == 200
    body = r.json()
    assert body["name"] == "School of Engineering"
    counts = {d["acronym"]: d["courseCount"] for d in body["degrees"]}
    assert counts == {"LEIC": 1, "MDS": 1}

    r = client.get("/faculties/9999")
    assert r.status_code == 404
    assert r.json()["error"] == "Faculty not found"


def test_degrees_only_with_courses(client, catalog, db):
    db.add(Degree(type="Master", name="Empty Degree", acronym="EMPTY", campus="Main", faculty_id=catalog.faculty.id))
    db.commit()

    acronyms = {d["acronym"] for d in client.get("/degrees").json()}
    assert acronyms == {"LEIC", "MDS"}

    r = client.get("/degrees", params={"onlyWithCourses": "false", "faculty": "SE"})
    assert {d["acronym"] for d in r.json()} == {"LEIC", "MDS", "EMPTY"}

    r = client.get(f"/faculties/{catalog.faculty.id}/degrees", params={"onlyWithCourses": "false"})
    assert len(r.json()) == 3


def test_degree_feedback_counts_follow_identical_courses(client, catalog, db):
    add_feedback(db, catalog.course, 3)
    add_feedback(db, catalog.twin, 5)

    counts = {d["acronym"]: d["feedbackCount"] for d in client.get("/degrees").json()}
    # LEIC's course aggregates the twin, MDS only sees its own
    assert counts == {"LEIC": 2, "MDS": 1}


def test_degree_feedback_counts_shared_target_counted_once(client, catalog, db):
    sibling = Course(name="Algorithms (evening)", acronym="ALG-EV", degree_id=catalog.degree.id, ects=6)
    db.add(sibling)
    db.flush()
    db.add(CourseRelationship(source_course_id=sibling.id, target_course_id=catalog.twin.id,
                              relationship_type=IDENTICAL))
    db.commit()
    add_feedback(db, catalog.course, 3)
    add_feedback(db, catalog.twin, 5)

    counts = {d["acronym"]: d["feedbackCount"] for d in client.get("/degrees").json()}
    assert counts == {"LEIC": 2, "MDS": 1}


def test_degree_courses(client, catalog):
    r = client.get(f"/degrees/{catalog.degree.id}/courses")
    assert r.status_code == 200
    assert [c["acronym"] for c in r.json()] == ["ALG"]

    r = client.get(f"/degrees/{catalog.degree.id}/courses", params={"acronym": "alg"})
    assert len(r.json()) == 1

    r = client.get("/degrees/9999/courses")
    assert r.status_code == 404


def test_degree_course_groups(client, catalog, db):
    group = CourseGroup(name="Core", degree_id=catalog.degree.id)
    group.courses.append(catalog.course)
    db.add(group)
    db.commit()

    r = client.get(f"/degrees/{catalog.degree.id}/courseGroups")
    assert r.status_code == 200
    assert r.json() == [{"id": group.id, "name": "Core", "degreeId": catalog.degree.id, "courseIds": [catalog.course.id]}]


def test_course_stats_aggregate_identical_and_hide_non_public(client, catalog, db):
    add_feedback(db, catalog.course, 3)
    add_feedback(db, catalog.twin, 5)
    add_feedback(db, catalog.course, 1, approved=False)
    add_feedback(db, catalog.course, 1, deleted=True)

    r = client.get(f"/courses/{catalog.course.id}")
    assert r.status_code == 200
    body = r.json()
    assert body["feedbackCount"] == 2
    assert body["rating"] == 4
    assert body["degree"]["acronym"] == "LEIC"

    # relationships are one-way
    r = client.get(f"/courses/{catalog.twin.id}")
    assert r.json()["feedbackCount"] == 1
    assert r.json()["rating"] == 5


def test_course_without_feedback_has_zero_rating(client, catalog):
    body = client.get(f"/courses/{catalog.course.id}").json()
    assert body["feedbackCount"] == 0
    assert body["rating"] == 0


def test_course_not_found(client):
    r = client.get("/courses/9999")
    assert r.status_code == 404
    assert r.json()["error"] == "Course not found"

    r = client.get("/courses/9999/feedback")
    assert r.status_code == 404


def test_list_courses_filters(client, catalog):
    r = client.get("/courses")
    assert {c["acronym"] for c in r.json()} == {"ALG", "ALG-OLD"}

    r = client.get("/courses", params={"faculty": "SE", "degree": "MDS"})
    assert [c["acronym"] for c in r.json()] == ["ALG-OLD"]

    r = client.get("/courses", params={"acronym": "alg"})
    assert [c["acronym"] for c in r.json()] == ["ALG"]


def test_course_feedback_marks_foreign_rows(client, catalog, db):
    own = add_feedback(db, catalog.course, 4, comment="Solid course.")
    foreign = add_feedback(db, catalog.twin, 2, comment="Hard exam.")
    add_feedback(db, catalog.course, 1, approved=False, comment="Hidden.")

    r = client.get(f"/courses/{catalog.course.id}/feedback")
    assert r.status_code == 200
    rows = {f["id"]: f for f in r.json()}
    assert set(rows) == {own.id, foreign.id}
    assert rows[own.id]["isFromDifferentCourse"] is False
    assert rows[foreign.id]["isFromDifferentCourse"] is True
    assert rows[foreign.id]["course"]["acronym"] == "ALG-OLD"
    assert rows[foreign.id]["degree"]["acronym"] == "MDS"
    assert rows[own.id]["helpfulCount"] == 0
    assert rows[own.id]["isHelpful"] is False


def test_course_feedback_without_degree(client, db):
    orphan = Course(name="Free Elective", acronym="FREE", ects=3)
    db.add(orphan)
    db.commit()
    fb = add_feedback(db, orphan, 5, comment="Fun.")

    rows = client.get(f"/courses/{orphan.id}/feedback").json()
    assert [f["id"] for f in rows] == [fb.id]
    assert rows[0]["degree"] is None
    assert rows[0]["course"]["acronym"] == "FREE"
