import os
import tempfile
from types import SimpleNamespace

import pytest

# settings and the module-level engine are built at import time
_IMPORT_DIR = tempfile.mkdtemp(prefix="uni_feedback_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{_IMPORT_DIR}/import.db"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["COOKIE_SECURE"] = "false"
os.environ["LOG_DIR"] = ""
os.environ["OPENROUTER_API_KEY"] = ""
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["TELEGRAM_CHAT_ID"] = ""
os.environ["VALIDATE_EMAIL_SUFFIX"] = "false"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from uni_feedback.database import Base, get_db, make_engine  # noqa: E402
from uni_feedback.main import app  # noqa: E402
from uni_feedback.models.course import Course  # noqa: E402
from uni_feedback.models.course_relationship import CourseRelationship, IDENTICAL  # noqa: E402
from uni_feedback.models.degree import Degree  # noqa: E402
from uni_feedback.models.faculty import Faculty  # noqa: E402
from uni_feedback.models.user import ADMIN, SUPER_ADMIN  # noqa: E402
from uni_feedback.services import auth_service  # noqa: E402
from uni_feedback.services.ai_service import AIService, AIServiceError  # noqa: E402
from uni_feedback.services.auth_service import AuthService  # noqa: E402
from uni_feedback.services.email_service import EmailService  # noqa: E402

OTP_CODE = "123456"
ADMIN_PASSWORD = "Admin#Pass1"

# a comment long enough (>= 20 words) to earn points
LONG_COMMENT = (
    "The professor explains every topic clearly and the weekly exercises match the exam well, "
    "so start the project early and read the slides before each lecture to keep up."
)


@pytest.fixture()
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture()
def outbox(monkeypatch):
    """Every email the app sends, as dicts (to, subject, text)."""
    sent = []

    def fake_send(self, to, subject, text):
        sent.append({"to": to, "subject": subject, "text": text})

    monkeypatch.setattr(EmailService, "send", fake_send)
    return sent


@pytest.fixture()
def magic_links(monkeypatch):
    """email -> last plain magic link token."""
    tokens = {}

    def fake_send_magic_link(self, email, token):
        tokens[email] = token

    monkeypatch.setattr(EmailService, "send_magic_link_email", fake_send_magic_link)
    return tokens


@pytest.fixture()
def ai_categories(monkeypatch):
    """
    Mutable categorization result used instead of OpenRouter.
    Set ai_categories["fail"] = True to make the API call fail.
    """
    state = {
        "fail": False,
        "has_teaching": True,
        "has_assessment": True,
        "has_materials": False,
        "has_tips": False,
    }

    def fake_request(self, comment):
        if state["fail"]:
            raise AIServiceError("offline")
        return {k: v for k, v in state.items() if k != "fail"}

    monkeypatch.setattr(AIService, "_request_categories", fake_request)
    return state


@pytest.fixture()
def client(session_factory, outbox, ai_categories, monkeypatch):
    monkeypatch.setattr(auth_service, "generate_otp", lambda length=6: OTP_CODE)

    def override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def catalog(db):
    faculty = Faculty(name="School of Engineering", short_name="SE", url="https://se.uni.pt", email_suffixes=["uni.pt"])
    db.add(faculty)
    db.flush()

    degree = Degree(type="Bachelor", name="Computer Science", acronym="LEIC", campus="Main", faculty_id=faculty.id)
    other_degree = Degree(type="Master", name="Data Science", acronym="MDS", campus="Main", faculty_id=faculty.id)
    db.add_all([degree, other_degree])
    db.flush()

    course = Course(name="Algorithms", acronym="ALG", degree_id=degree.id, ects=6, curriculum_year=1,
                    terms=["1st Semester"])
    twin = Course(name="Algorithms (old plan)", acronym="ALG-OLD", degree_id=other_degree.id, ects=6,
                  curriculum_year=1, terms=["1st Semester"])
    db.add_all([course, twin])
    db.flush()

    db.add(CourseRelationship(source_course_id=course.id, target_course_id=twin.id, relationship_type=IDENTICAL))
    db.commit()
    return SimpleNamespace(faculty=faculty, degree=degree, other_degree=other_degree, course=course, twin=twin)


def login_student(client, email="alice@uni.pt", referral_code=None):
    body = {"email": email}
    if referral_code:
        body["referralCode"] = referral_code
    r = client.post("/auth/otp/request", json=body)
    assert r.status_code == 200, r.text
    r = client.post("/auth/otp/verify", json={"email": email, "otp": OTP_CODE})
    assert r.status_code == 200, r.text
    return r.json()["user"]


def create_admin(db, email="admin@uni.pt", role=ADMIN):
    user = AuthService(db).create_user(email=email, username=email.split("@")[0], role=role, password=ADMIN_PASSWORD)
    db.commit()
    return user


def login_admin(client, db, email="admin@uni.pt", superuser=False):
    create_admin(db, email=email, role=SUPER_ADMIN if superuser else ADMIN)
    r = client.post("/auth/login", json={"email": email, "password": ADMIN_PASSWORD})
    assert r.status_code == 200, r.text
    return r.json()["user"]
