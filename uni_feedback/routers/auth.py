import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from uni_feedback.config import OTP_CONFIG, REFRESH_COOKIE
from uni_feedback.database import get_db
from uni_feedback.models.user import User
from uni_feedback.models.session import AuthSession
from uni_feedback.schemas.auth import (
    OtpRequestIn,
    OtpVerifyIn,
    MagicLinkRequestIn,
    MagicLinkUseIn,
    MagicLinkVerifyIn,
    LoginIn,
    ForgotPasswordIn,
    ResetPasswordIn,
    InviteIn,
    CreateAccountIn,
)
from uni_feedback.services.auth_service import AuthService, IssuedSession
from uni_feedback.services.email_service import EmailService
from uni_feedback.services.stats_service import StatsService
from uni_feedback.utils.auth import (
    oauth2_scheme,
    extract_access_token,
    find_session_by_access_token,
    get_current_session,
    get_current_user,
    require_superuser,
)
from uni_feedback.utils.cookies import set_auth_cookies, clear_auth_cookies
from uni_feedback.utils.email_validation import is_university_email
from uni_feedback.utils.errors import ValidationError, UnauthorizedError, NotFoundError, RateLimitError
from uni_feedback.utils.hashing import validate_password
from uni_feedback.utils.referral import validate_referral_code_format

logger = logging.getLogger("app.auth")

router = APIRouter(prefix="/auth", tags=["Auth"])

UNIVERSITY_EMAIL_REQUIRED = "Please use your university email address."


def user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "role": user.role,
        "superuser": bool(user.superuser),
        "referralCode": user.referral_code,
    }


def start_session(response: Response, issued: IssuedSession) -> dict:
    set_auth_cookies(response, issued.access_token, issued.refresh_token, issued.session.expires_at)
    return {"user": user_payload(issued.user)}


def check_new_password(password: str, confirm_password: str):
    if password != confirm_password:
        raise ValidationError("Passwords do not match")
    errors = validate_password(password)
    if errors:
        raise ValidationError(". ".join(errors))


def usable_referral_code(code):
    # malformed codes are dropped, not rejected
    return code if validate_referral_code_format(code) else None


# ---------- OTP (students) ----------

@router.post("/otp/request")
def request_otp(body: OtpRequestIn, db: Session = Depends(get_db)):
    if not is_university_email(db, body.email):
        raise ValidationError(UNIVERSITY_EMAIL_REQUIRED)

    auth = AuthService(db)
    limit = auth.check_otp_rate_limit(body.email)
    if not limit.allowed:
        raise RateLimitError(
            "Please wait before requesting another code.",
            extra={"retryAfterSeconds": limit.retry_after_seconds},
        )

    code = auth.create_otp_token(body.email, usable_referral_code(body.referral_code))
    db.commit()

    ttl_minutes = int(OTP_CONFIG["TTL"].total_seconds() // 60)
    EmailService().send_otp_email(body.email, code, ttl_minutes)
    logger.info("OTP requested for %s", body.email)

    return {"message": "If your email is valid, you will receive a verification code shortly."}


@router.post("/otp/verify")
def verify_otp(body: OtpVerifyIn, response: Response, db: Session = Depends(get_db)):
    issued = AuthService(db).verify_otp_token(body.email, body.otp)
    db.commit()
    logger.info("OTP login user_id=%s", issued.user.id)
    return start_session(response, issued)


# ---------- magic links (deprecated, kept for old clients) ----------

@router.post("/magic-links")
def request_magic_link(body: MagicLinkRequestIn, db: Session = Depends(get_db)):
    if not is_university_email(db, body.email):
        raise ValidationError(UNIVERSITY_EMAIL_REQUIRED)

    auth = AuthService(db)
    payload = {"message": "If your email is valid, you will receive a sign-in link shortly."}

    # over the limit looks the same as success
    if not auth.check_magic_link_rate_limit(body.email):
        db.commit()
        logger.warning("Magic link rate limit hit for %s", body.email)
        return payload

    token, request_id = auth.create_magic_link_token(
        body.email, body.request_id, usable_referral_code(body.referral_code)
    )
    db.commit()
    EmailService().send_magic_link_email(body.email, token)

    payload["requestId"] = request_id
    return payload


@router.post("/magic-links/use")
def use_magic_link(body: MagicLinkUseIn, response: Response, db: Session = Depends(get_db)):
    auth = AuthService(db)
    issued = auth.use_magic_link_token(body.token)
    if not issued:
        extra = {}
        request_id = auth.expired_token_request_id(body.token)
        if request_id:
            extra["requestId"] = request_id
        raise ValidationError("The link you provided is invalid or has already been used.", extra=extra)

    db.commit()
    return start_session(response, issued)


@router.post("/magic-links/verify")
def verify_magic_link(body: MagicLinkVerifyIn, response: Response, db: Session = Depends(get_db)):
    issued = AuthService(db).verify_magic_link_by_request_id(body.request_id)
    # invalid, expired, not clicked yet and already consumed all look the same
    if not issued:
        return {"status": "pending"}

    db.commit()
    return start_session(response, issued)


# ---------- password login (admins) ----------

@router.post("/login")
def login(body: LoginIn, response: Response, db: Session = Depends(get_db)):
    auth = AuthService(db)
    user = auth.verify_credentials(body.email, body.password)
    if not user:
        raise UnauthorizedError("Invalid email or password")

    issued = auth.create_session(user)
    db.commit()
    logger.info("Password login user_id=%s", user.id)
    return start_session(response, issued)


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    bearer=Depends(oauth2_scheme),
    db: Session = Depends(get_db),
):
    # logging out with a stale token still clears the cookies
    token = extract_access_token(request, bearer)
    if token:
        s = find_session_by_access_token(db, token)
        if s:
            AuthService(db).delete_session(s)
            db.commit()
    clear_auth_cookies(response)
    return {"message": "Logout successful"}


@router.post("/refresh")
def refresh(request: Request, response: Response, db: Session = Depends(get_db)):
    refresh_token = request.cookies.get(REFRESH_COOKIE)
    if not refresh_token:
        raise UnauthorizedError("No refresh token provided")

    issued = AuthService(db).refresh_session(refresh_token)
    if not issued:
        raise UnauthorizedError("Invalid refresh token")

    db.commit()
    return start_session(response, issued)


@router.post("/forgot-password")
def forgot_password(body: ForgotPasswordIn, db: Session = Depends(get_db)):
    auth = AuthService(db)
    user = auth.find_user_by_email(body.email)
    if user and user.password_hash:
        token = auth.create_password_reset_token(user)
        db.commit()
        EmailService().send_password_reset_email(user.email, user.username, token)
        logger.info("Password reset requested user_id=%s", user.id)

    # same answer whether or not the account exists
    return {"message": "If an account with that email exists, a password reset link has been sent."}


@router.post("/reset-password")
def reset_password(body: ResetPasswordIn, db: Session = Depends(get_db)):
    check_new_password(body.password, body.confirm_password)

    if not AuthService(db).use_password_reset_token(body.token, body.password):
        raise ValidationError("Invalid or expired reset token")
    db.commit()
    return {"message": "Password reset successful"}


@router.post("/invite")
def invite(body: InviteIn, db: Session = Depends(get_db), admin: User = Depends(require_superuser)):
    auth = AuthService(db)
    if auth.find_user_by_email(body.email):
        raise ValidationError("User with this email already exists")

    token = auth.create_user_creation_token(body.email, admin.id)
    db.commit()
    EmailService().send_invitation_email(body.email, token)
    logger.info("Invitation sent to %s by user_id=%s", body.email, admin.id)
    return {"message": "Invitation sent successfully"}


@router.post("/create-account")
def create_account(body: CreateAccountIn, response: Response, db: Session = Depends(get_db)):
    check_new_password(body.password, body.confirm_password)
    username = body.username.strip()
    if not username:
        raise ValidationError("Username is required")

    auth = AuthService(db)
    user = auth.use_user_creation_token(body.token, username, body.password)
    if not user:
        raise NotFoundError("Invalid or expired invitation token")

    issued = auth.create_session(user)
    db.commit()
    return start_session(response, issued)


# ---------- current user ----------

@router.get("/profile")
def profile(user: User = Depends(get_current_user)):
    return {"user": user_payload(user)}


@router.delete("/profile")
def delete_account(
    response: Response,
    s: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    user_id = s.user_id
    AuthService(db).delete_user_account(user_id)
    db.commit()
    clear_auth_cookies(response)
    return {"message": "Account deleted successfully"}


@router.get("/stats")
def my_stats(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"stats": StatsService(db).user_stats(user.id)}


@router.get("/feedback")
def my_feedback(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"feedback": StatsService(db).user_feedback(user.id)}
