from datetime import timedelta

import pytest

from uni_feedback.config import REFRESH_COOKIE
from uni_feedback.models.feedback import Feedback
from uni_feedback.models.magic_link import MagicLinkToken
from uni_feedback.models.otp_token import OtpToken
from uni_feedback.models.user import User, SUPER_ADMIN
from uni_feedback.models.user_creation_token import UserCreationToken

from conftest import ADMIN_PASSWORD, OTP_CODE, create_admin, login_admin, login_student


def test_otp_request_requires_university_email(client, catalog):
    r = client.post("/auth/otp/request", json={"email": "someone@gmail.com"})
    assert r.status_code == 400
    assert r.json()["error"] == "Please use your university email address."


@pytest.mark.parametrize("email", ["not-an-email", "a..b@uni.pt", "a@uni..pt", ".a@uni.pt", "a@uni.pt<"])
def test_otp_request_rejects_malformed_email(client, catalog, email):
    r = client.post("/auth/otp/request", json={"email": email})
    assert r.status_code == 400
    assert r.json()["error"].startswith("email")


def test_email_is_trimmed_and_lowercased(client, catalog, db):
    r = client.post("/auth/otp/request", json={"email": "  Trim.Me@Uni.PT "})
    assert r.status_code == 200
    assert db.query(OtpToken).filter(OtpToken.email == "trim.me@uni.pt").count() == 1


def test_otp_login_creates_student_and_sets_cookies(client, catalog, outbox):
    user = login_student(client, "Alice@uni.pt")
    assert user["email"] == "alice@uni.pt"
    assert user["username"] == "alice"
    assert user["role"] == "student"
    assert len(user["referralCode"]) == 8

    # the code was emailed
    assert any(m["to"] == "alice@uni.pt" and OTP_CODE in m["text"] for m in outbox)

    r = client.get("/auth/profile")
    assert r.status_code == 200
    assert r.json()["user"]["id"] == user["id"]


def test_otp_request_cooldown(client, catalog):
    r = client.post("/auth/otp/request", json={"email": "bob@uni.pt"})
    assert r.status_code == 200

    r = client.post("/auth/otp/request", json={"email": "bob@uni.pt"})
    assert r.status_code == 429
    body = r.json()
    assert body["error"] == "Please wait before requesting another code."
    assert 0 < body["retryAfterSeconds"] <= 60


def test_otp_wrong_code_counts_attempts(client, catalog):
    client.post("/auth/otp/request", json={"email": "carol@uni.pt"})

    r = client.post("/auth/otp/verify", json={"email": "carol@uni.pt", "otp": "000000"})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid code"
    assert r.json()["attemptsRemaining"] == 4

    for _ in range(4):
        client.post("/auth/otp/verify", json={"email": "carol@uni.pt", "otp": "000000"})

    # even the right code is refused once attempts are used up
    r = client.post("/auth/otp/verify", json={"email": "carol@uni.pt", "otp": OTP_CODE})
    assert r.status_code == 400
    assert r.json()["error"] == "Too many attempts. Please request a new code."


def test_otp_code_is_single_use(client, catalog):
    login_student(client, "dave@uni.pt")
    r = client.post("/auth/otp/verify", json={"email": "dave@uni.pt", "otp": OTP_CODE})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid or expired code"


def test_otp_expired_code(client, catalog, db):
    client.post("/auth/otp/request", json={"email": "erin@uni.pt"})
    row = db.query(OtpToken).filter(OtpToken.email == "erin@uni.pt").first()
    row.expires_at = row.expires_at - timedelta(hours=1)
    db.commit()

    r = client.post("/auth/otp/verify", json={"email": "erin@uni.pt", "otp": OTP_CODE})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid or expired code"


def test_otp_with_referral_code_links_referrer(client, catalog, db):
    referrer = login_student(client, "ref@uni.pt")
    client.cookies.clear()

    new_user = login_student(client, "newbie@uni.pt", referral_code=referrer["referralCode"])
    row = db.query(User).filter(User.id == new_user["id"]).first()
    assert row.referred_by_user_id == referrer["id"]


def test_unknown_referral_code_is_ignored(client, catalog, db):
    user = login_student(client, "solo@uni.pt", referral_code="zzzzzzzz")
    row = db.query(User).filter(User.id == user["id"]).first()
    assert row.referred_by_user_id is None


def test_referral_codes_are_case_sensitive(client, catalog, db):
    referrer = login_student(client, "ref@uni.pt")
    client.cookies.clear()

    user = login_student(client, "shouty@uni.pt", referral_code=referrer["referralCode"].upper())
    row = db.query(User).filter(User.id == user["id"]).first()
    assert row.referred_by_user_id is None


def test_malformed_referral_code_is_dropped(client, catalog, db, magic_links):
    code = "NOT-A-VALID-REFERRAL-CODE-AT-ALL"
    r = client.post("/auth/otp/request", json={"email": "long@uni.pt", "referralCode": code})
    assert r.status_code == 200
    row = db.query(OtpToken).filter(OtpToken.email == "long@uni.pt").first()
    assert row.referral_code is None

    r = client.post("/auth/magic-links", json={"email": "long@uni.pt", "referralCode": code})
    assert r.status_code == 200
    row = db.query(MagicLinkToken).filter(MagicLinkToken.email == "long@uni.pt").first()
    assert row.referral_code is None


def test_magic_link_flow(client, catalog, magic_links):
    r = client.post("/auth/magic-links", json={"email": "mia@uni.pt"})
    assert r.status_code == 200
    request_id = r.json()["requestId"]

    # not clicked yet
    r = client.post("/auth/magic-links/verify", json={"requestId": request_id})
    assert r.json() == {"status": "pending"}

    r = client.post("/auth/magic-links/use", json={"token": magic_links["mia@uni.pt"]})
    assert r.status_code == 200
    assert r.json()["user"]["email"] == "mia@uni.pt"

    # the polling device signs in too, and can poll again for a while
    client.cookies.clear()
    r = client.post("/auth/magic-links/verify", json={"requestId": request_id})
    assert r.json()["user"]["email"] == "mia@uni.pt"
    r = client.post("/auth/magic-links/verify", json={"requestId": request_id})
    assert r.json()["user"]["email"] == "mia@uni.pt"

    # tokens are single use
    r = client.post("/auth/magic-links/use", json={"token": magic_links["mia@uni.pt"]})
    assert r.status_code == 400
    assert r.json()["error"] == "The link you provided is invalid or has already been used."


def test_magic_link_rate_limit_is_silent(client, catalog, magic_links):
    for _ in range(5):
        r = client.post("/auth/magic-links", json={"email": "spam@uni.pt"})
        assert "requestId" in r.json()

    r = client.post("/auth/magic-links", json={"email": "spam@uni.pt"})
    assert r.status_code == 200
    assert "requestId" not in r.json()
    assert r.json()["message"] == "If your email is valid, you will receive a sign-in link shortly."


def magic_link_row(db, request_id):
    db.expire_all()
    return db.query(MagicLinkToken).filter(MagicLinkToken.request_id == request_id).first()


def test_magic_link_stale_click_stays_pending(client, catalog, db, magic_links):
    request_id = client.post("/auth/magic-links", json={"email": "leo@uni.pt"}).json()["requestId"]
    client.post("/auth/magic-links/use", json={"token": magic_links["leo@uni.pt"]})
    client.cookies.clear()

    row = magic_link_row(db, request_id)
    row.used_at = row.used_at - timedelta(minutes=11)
    db.commit()

    r = client.post("/auth/magic-links/verify", json={"requestId": request_id})
    assert r.json() == {"status": "pending"}


def test_magic_link_verification_window_closes(client, catalog, db, magic_links):
    request_id = client.post("/auth/magic-links", json={"email": "leo@uni.pt"}).json()["requestId"]
    client.post("/auth/magic-links/use", json={"token": magic_links["leo@uni.pt"]})
    client.cookies.clear()
    r = client.post("/auth/magic-links/verify", json={"requestId": request_id})
    assert r.json()["user"]["email"] == "leo@uni.pt"

    row = magic_link_row(db, request_id)
    assert row.verified_at is not None
    row.verified_at = row.verified_at - timedelta(minutes=6)
    db.commit()

    r = client.post("/auth/magic-links/verify", json={"requestId": request_id})
    assert r.json() == {"status": "pending"}


def test_magic_link_request_id_reuse_window(client, catalog, db, magic_links):
    first = client.post("/auth/magic-links", json={"email": "leo@uni.pt"}).json()["requestId"]
    again = client.post("/auth/magic-links", json={"email": "leo@uni.pt", "requestId": first}).json()["requestId"]
    assert again == first

    db.expire_all()
    for row in db.query(MagicLinkToken).filter(MagicLinkToken.request_id == first).all():
        row.created_at = row.created_at - timedelta(hours=2)
    db.commit()

    fresh = client.post("/auth/magic-links", json={"email": "leo@uni.pt", "requestId": first}).json()["requestId"]
    assert fresh != first


def test_expired_magic_link_returns_request_id(client, catalog, db, magic_links):
    request_id = client.post("/auth/magic-links", json={"email": "leo@uni.pt"}).json()["requestId"]
    row = magic_link_row(db, request_id)
    row.expires_at = row.expires_at - timedelta(minutes=20)
    db.commit()

    r = client.post("/auth/magic-links/use", json={"token": magic_links["leo@uni.pt"]})
    assert r.status_code == 400
    assert r.json()["requestId"] == request_id

    # too old to resume polling
    row = magic_link_row(db, request_id)
    row.created_at = row.created_at - timedelta(hours=2)
    db.commit()

    r = client.post("/auth/magic-links/use", json={"token": magic_links["leo@uni.pt"]})
    assert r.status_code == 400
    assert "requestId" not in r.json()


def test_password_login(client, db):
    create_admin(db, "root@uni.pt")

    r = client.post("/auth/login", json={"email": "root@uni.pt", "password": "wrong"})
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid email or password"

    r = client.post("/auth/login", json={"email": "root@uni.pt", "password": ADMIN_PASSWORD})
    assert r.status_code == 200
    assert r.json()["user"]["role"] == "admin"


def test_students_cannot_password_login(client, catalog):
    login_student(client, "nopass@uni.pt")
    client.cookies.clear()
    r = client.post("/auth/login", json={"email": "nopass@uni.pt", "password": "Whatever#1"})
    assert r.status_code == 401


def test_profile_requires_auth(client):
    r = client.get("/auth/profile")
    assert r.status_code == 401
    assert r.json()["error"] == "Authentication required"


def test_refresh_rotates_tokens(client, catalog):
    login_student(client, "ruth@uni.pt")
    old_refresh = client.cookies.get(REFRESH_COOKIE)

    r = client.post("/auth/refresh")
    assert r.status_code == 200
    assert r.json()["user"]["email"] == "ruth@uni.pt"
    assert client.cookies.get(REFRESH_COOKIE) != old_refresh

    r = client.get("/auth/profile")
    assert r.status_code == 200

    # the rotated-out refresh token is dead
    client.cookies.clear()
    r = client.post("/auth/refresh", headers={"Cookie": f"{REFRESH_COOKIE}={old_refresh}"})
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid refresh token"


def test_refresh_without_cookie(client):
    r = client.post("/auth/refresh")
    assert r.status_code == 401
    assert r.json()["error"] == "No refresh token provided"


def test_logout_ends_session(client, catalog):
    login_student(client, "leo@uni.pt")
    r = client.post("/auth/logout")
    assert r.status_code == 200
    assert r.json()["message"] == "Logout successful"

    r = client.get("/auth/profile")
    assert r.status_code == 401


def test_forgot_and_reset_password(client, db, monkeypatch):
    from uni_feedback.services.email_service import EmailService

    tokens = {}
    monkeypatch.setattr(
        EmailService, "send_password_reset_email",
        lambda self, email, username, token: tokens.setdefault(email, token),
    )
    create_admin(db, "forgetful@uni.pt")

    r = client.post("/auth/forgot-password", json={"email": "forgetful@uni.pt"})
    assert r.status_code == 200
    token = tokens["forgetful@uni.pt"]

    r = client.post("/auth/reset-password", json={"token": token, "password": "New#Pass9", "confirmPassword": "Nope"})
    assert r.status_code == 400
    assert r.json()["error"] == "Passwords do not match"

    r = client.post("/auth/reset-password", json={"token": token, "password": "weak", "confirmPassword": "weak"})
    assert r.status_code == 400
    assert "at least 8 characters" in r.json()["error"]

    r = client.post("/auth/reset-password", json={"token": token, "password": "New#Pass9", "confirmPassword": "New#Pass9"})
    assert r.status_code == 200
    assert r.json()["message"] == "Password reset successful"

    r = client.post("/auth/reset-password", json={"token": token, "password": "New#Pass9", "confirmPassword": "New#Pass9"})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid or expired reset token"

    r = client.post("/auth/login", json={"email": "forgetful@uni.pt", "password": "New#Pass9"})
    assert r.status_code == 200


def test_forgot_password_unknown_email_same_answer(client):
    r = client.post("/auth/forgot-password", json={"email": "ghost@uni.pt"})
    assert r.status_code == 200
    assert r.json()["message"].startswith("If an account with that email exists")


def test_invite_requires_superuser(client, db):
    login_admin(client, db, "plain-admin@uni.pt")
    r = client.post("/auth/invite", json={"email": "new-admin@uni.pt"})
    assert r.status_code == 403


def test_invite_and_create_account(client, db, monkeypatch):
    from uni_feedback.services.email_service import EmailService

    tokens = {}
    monkeypatch.setattr(EmailService, "send_invitation_email", lambda self, email, token: tokens.setdefault(email, token))
    login_admin(client, db, "boss@uni.pt", superuser=True)

    r = client.post("/auth/invite", json={"email": "boss@uni.pt"})
    assert r.status_code == 400
    assert r.json()["error"] == "User with this email already exists"

    r = client.post("/auth/invite", json={"email": "helper@uni.pt"})
    assert r.status_code == 200
    token = tokens["helper@uni.pt"]
    client.cookies.clear()

    body = {"token": token, "username": "helper", "password": "Helper#99", "confirmPassword": "Helper#99"}
    r = client.post("/auth/create-account", json=body)
    assert r.status_code == 200
    assert r.json()["user"]["role"] == "admin"

    row = db.query(UserCreationToken).filter(UserCreationToken.email == "helper@uni.pt").first()
    db.refresh(row)
    assert row.used_at is not None

    r = client.post("/auth/create-account", json=body)
    assert r.status_code == 404
    assert r.json()["error"] == "Invalid or expired invitation token"


def test_delete_account_anonymises_feedback(client, catalog, db):
    user = login_student(client, "leaving@uni.pt")
    r = client.post(f"/courses/{catalog.course.id}/feedback", json={"schoolYear": 2020, "rating": 4, "workloadRating": 3})
    assert r.status_code == 201
    feedback_id = r.json()["id"]

    r = client.delete("/auth/profile")
    assert r.status_code == 200
    assert r.json()["message"] == "Account deleted successfully"

    assert db.query(User).filter(User.email == "leaving@uni.pt").first() is None
    fb = db.query(Feedback).filter(Feedback.id == feedback_id).first()
    assert fb.user_id != user["id"]
    owner = db.query(User).filter(User.id == fb.user_id).first()
    assert owner.email.endswith("@deleted.local")

    r = client.get("/auth/profile")
    assert r.status_code == 401


def test_superuser_role_flag(client, db):
    user = login_admin(client, db, "super@uni.pt", superuser=True)
    assert user["role"] == SUPER_ADMIN
