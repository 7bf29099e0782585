from datetime import timedelta

from uni_feedback.models.feedback import Feedback
from uni_feedback.models.feedback_analysis import FeedbackAnalysis
from uni_feedback.models.feedback_draft import FeedbackDraft
from uni_feedback.models.feedback_flag import FeedbackFlag
from uni_feedback.utils.dates import get_current_school_year

from conftest import LONG_COMMENT, login_student


def submit(client, course_id, **overrides):
    body = {"schoolYear": get_current_school_year(), "rating": 4, "workloadRating": 3, "comment": LONG_COMMENT}
    body.update(overrides)
    return client.post(f"/courses/{course_id}/feedback", json=body)


def test_submit_requires_login(client, catalog):
    r = submit(client, catalog.course.id)
    assert r.status_code == 401


def test_submit_awards_points_from_analysis(client, catalog, db):
    login_student(client)
    r = submit(client, catalog.course.id)
    assert r.status_code == 201
    body = r.json()
    assert body["message"] == "Feedback submitted successfully"
    # 4 base + teaching + assessment
    assert body["pointsEarned"] == 12

    fb = db.query(Feedback).filter(Feedback.id == body["id"]).first()
    assert fb.approved_at is not None
    assert fb.original_comment == LONG_COMMENT

    analysis = db.query(FeedbackAnalysis).filter(FeedbackAnalysis.feedback_id == fb.id).first()
    assert analysis.has_teaching and analysis.has_assessment
    assert not analysis.has_materials and not analysis.has_tips
    assert analysis.reviewed_at is None

    stats = client.get("/auth/stats").json()["stats"]
    assert stats["totalPoints"] == 12
    assert stats["feedbackCount"] == 1


def test_short_comment_earns_nothing(client, catalog):
    login_student(client)
    r = submit(client, catalog.course.id, comment="Too short to count.")
    assert r.status_code == 201
    assert r.json()["pointsEarned"] == 0


def test_ai_outage_still_saves_feedback(client, catalog, ai_categories):
    ai_categories["fail"] = True
    login_student(client)
    r = submit(client, catalog.course.id)
    assert r.status_code == 201
    # no categories detected, only the base points
    assert r.json()["pointsEarned"] == 4


def test_submit_future_school_year(client, catalog):
    login_student(client)
    r = submit(client, catalog.course.id, schoolYear=get_current_school_year() + 1)
    assert r.status_code == 400
    assert r.json()["error"] == "Cannot submit feedback for a future school year"


def test_submit_validates_ratings(client, catalog):
    login_student(client)
    r = submit(client, catalog.course.id, rating=6)
    assert r.status_code == 400
    assert r.json()["error"].startswith("rating")


def test_submit_unknown_course(client, catalog):
    login_student(client)
    r = submit(client, 9999)
    assert r.status_code == 404
    assert r.json()["error"] == "Course not found"


def test_referrer_paid_once_on_first_feedback(client, catalog):
    referrer = login_student(client, "ref@uni.pt")
    client.cookies.clear()

    login_student(client, "friend@uni.pt", referral_code=referrer["referralCode"])
    submit(client, catalog.course.id)
    submit(client, catalog.twin.id)
    client.cookies.clear()

    login_student(client, "ref@uni.pt")
    stats = client.get("/auth/stats").json()["stats"]
    assert stats["referralCount"] == 1
    assert stats["referralPoints"] == 10
    assert stats["totalPoints"] == 10


def test_my_feedback_lists_points(client, catalog):
    login_student(client)
    fid = submit(client, catalog.course.id).json()["id"]

    rows = client.get("/auth/feedback").json()["feedback"]
    assert [f["id"] for f in rows] == [fid]
    assert rows[0]["points"] == 12
    assert rows[0]["courseCode"] == "ALG"
    assert rows[0]["analysis"]["hasTeaching"] is True


def test_get_feedback_for_edit(client, catalog):
    login_student(client)
    fid = submit(client, catalog.course.id).json()["id"]

    r = client.get(f"/feedback/{fid}/edit")
    assert r.status_code == 200
    fb = r.json()["feedback"]
    assert fb["courseCode"] == "ALG"
    assert fb["facultyShortName"] == "SE"
    assert fb["comment"] == LONG_COMMENT

    client.cookies.clear()
    login_student(client, "intruder@uni.pt")
    r = client.get(f"/feedback/{fid}/edit")
    assert r.status_code == 401
    assert r.json()["error"] == "You can only edit your own feedback"


def test_edit_feedback(client, catalog, ai_categories):
    login_student(client)
    fid = submit(client, catalog.course.id).json()["id"]

    body = {"rating": 4, "workloadRating": 3, "comment": LONG_COMMENT}
    r = client.put(f"/feedback/{fid}", json=body)
    assert r.status_code == 200
    assert r.json()["message"] == "No changes detected"
    assert r.json()["points"] == 12

    # new text is re-analysed and re-scored
    ai_categories.update(has_materials=True, has_tips=True)
    body["comment"] = LONG_COMMENT + " The labs are worth attending too."
    r = client.put(f"/feedback/{fid}", json=body)
    assert r.status_code == 200
    data = r.json()
    assert data["message"] == "Feedback updated successfully"
    assert data["points"] == 20
    assert data["analysis"]["hasTips"] is True
    assert data["analysis"]["reviewedAt"] is None
    assert data["feedback"]["comment"] == body["comment"]

    r = client.put(f"/feedback/{fid}", json=dict(body, rating=2))
    assert r.json()["feedback"]["rating"] == 2
    assert r.json()["points"] == 20


def test_delete_feedback(client, catalog):
    login_student(client)
    fid = submit(client, catalog.course.id).json()["id"]

    client.cookies.clear()
    login_student(client, "other@uni.pt")
    r = client.delete(f"/feedback/{fid}")
    assert r.status_code == 401

    client.cookies.clear()
    login_student(client)
    r = client.delete(f"/feedback/{fid}")
    assert r.json()["message"] == "Feedback deleted successfully"
    r = client.delete(f"/feedback/{fid}")
    assert r.json()["message"] == "Feedback already deleted"

    stats = client.get("/auth/stats").json()["stats"]
    assert stats["totalPoints"] == 0
    assert stats["feedbackCount"] == 0

    assert client.get(f"/courses/{catalog.course.id}/feedback").json() == []


def test_helpful_votes(client, catalog):
    login_student(client)
    fid = submit(client, catalog.course.id).json()["id"]

    r = client.post(f"/feedback/{fid}/helpful")
    assert r.json()["message"] == "Marked as helpful"
    r = client.post(f"/feedback/{fid}/helpful")
    assert r.json()["message"] == "Already voted as helpful"

    row = client.get(f"/courses/{catalog.course.id}/feedback").json()[0]
    assert row["helpfulCount"] == 1
    assert row["isHelpful"] is True

    r = client.delete(f"/feedback/{fid}/helpful")
    assert r.json()["message"] == "Vote removed"
    row = client.get(f"/courses/{catalog.course.id}/feedback").json()[0]
    assert row["helpfulCount"] == 0
    assert row["isHelpful"] is False

    r = client.post("/feedback/9999/helpful")
    assert r.status_code == 404


def test_report_feedback(client, catalog, db):
    login_student(client)
    fid = submit(client, catalog.course.id).json()["id"]

    r = client.post(f"/feedback/{fid}/report", json={"category": "spam_irrelevant", "details": "short"})
    assert r.status_code == 400

    r = client.post(f"/feedback/{fid}/report", json={"category": "made_up", "details": "x" * 30})
    assert r.status_code == 400

    details = "This review talks about a different course entirely."
    r = client.post(f"/feedback/{fid}/report", json={"category": "spam_irrelevant", "details": details})
    assert r.status_code == 201
    assert r.json()["message"] == "Report submitted successfully"

    flag = db.query(FeedbackFlag).filter(FeedbackFlag.feedback_id == fid).first()
    assert flag.category == "spam_irrelevant"
    assert flag.details == details


def test_categorize_preview(client, ai_categories):
    r = client.post("/feedback/categorize", json={"comment": "Great teacher, hard exams."})
    assert r.status_code == 200
    assert r.json() == {
        "categories": {"hasTeaching": True, "hasAssessment": True, "hasMaterials": False, "hasTips": False}
    }

    ai_categories["fail"] = True
    r = client.post("/feedback/categorize", json={"comment": "Something new entirely."})
    assert r.status_code == 502
    assert r.json()["error"] == "Failed to categorize feedback"


def test_categorize_uses_cache(client, ai_categories):
    client.post("/feedback/categorize", json={"comment": "Cached   comment"})
    ai_categories["fail"] = True
    # same text modulo case and whitespace
    r = client.post("/feedback/categorize", json={"comment": "cached comment"})
    assert r.status_code == 200
    assert r.json()["categories"]["hasTeaching"] is True


def test_draft_roundtrip(client):
    r = client.post("/feedback-drafts", json={"rating": 4, "workloadRating": 2, "comment": "Half written"})
    assert r.status_code == 201
    code = r.json()["code"]
    assert len(code) == 8
    assert "0" not in code and "O" not in code and "1" not in code

    r = client.get(f"/feedback-drafts/{code.lower()}")
    assert r.status_code == 200
    assert r.json()["data"] == {"rating": 4, "workloadRating": 2, "comment": "Half written"}


def test_expired_draft(client, db):
    code = client.post("/feedback-drafts", json={"rating": 3}).json()["code"]
    draft = db.query(FeedbackDraft).filter(FeedbackDraft.code == code).first()
    draft.expires_at = draft.expires_at - timedelta(days=2)
    db.commit()

    r = client.get(f"/feedback-drafts/{code}")
    assert r.status_code == 404
    assert r.json()["error"] == "Draft not found or expired"


def test_draft_validates_rating(client):
    r = client.post("/feedback-drafts", json={"rating": 9})
    assert r.status_code == 400
