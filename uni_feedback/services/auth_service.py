import logging
from typing import NamedTuple, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from uni_feedback.config import (
    OTP_CONFIG,
    MAGIC_LINK_CONFIG,
    RATE_LIMIT_CONFIG,
    REFRESH_TOKEN_STUDENT_TTL,
    REFRESH_TOKEN_ADMIN_TTL,
    PASSWORD_RESET_TTL,
    USER_CREATION_TTL,
)
from uni_feedback.models.feedback import Feedback
from uni_feedback.models.magic_link import MagicLinkToken, MagicLinkRateLimit
from uni_feedback.models.otp_token import OtpToken
from uni_feedback.models.password_reset_token import PasswordResetToken
from uni_feedback.models.point_registry import PointRegistry
from uni_feedback.models.session import AuthSession
from uni_feedback.models.user import User, STUDENT, ADMIN, DELETED_EMAIL_DOMAIN
from uni_feedback.models.user_creation_token import UserCreationToken
from uni_feedback.services.notification_service import NotificationService
from uni_feedback.utils.auth import create_access_token
from uni_feedback.utils.dates import utcnow
from uni_feedback.utils.errors import ValidationError
from uni_feedback.utils.hashing import hash_password, verify_password
from uni_feedback.utils.referral import (
    generate_unique_referral_code,
    find_user_by_referral_code,
    validate_referral_code_format,
)
from uni_feedback.utils.tokens import generate_secure_token, generate_request_id, generate_otp, hash_token

logger = logging.getLogger("app.auth")


class IssuedSession(NamedTuple):
    session: AuthSession
    access_token: str
    refresh_token: str
    user: User


class RateLimitResult(NamedTuple):
    allowed: bool
    retry_after_seconds: Optional[int] = None


def refresh_ttl_for(role: str):
    return REFRESH_TOKEN_STUDENT_TTL if role == STUDENT else REFRESH_TOKEN_ADMIN_TTL


class AuthService:
    def __init__(self, db: Session, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService()

    # ---------- users ----------

    def find_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.lower()).first()

    def find_user_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def create_user(
        self,
        email: str,
        username: str,
        role: str = STUDENT,
        password: Optional[str] = None,
        referral_code: Optional[str] = None,
    ) -> User:
        referred_by = None
        if validate_referral_code_format(referral_code):
            referrer = find_user_by_referral_code(self.db, referral_code)
            # unknown codes are ignored
            if referrer:
                referred_by = referrer.id

        user = User(
            email=email.lower(),
            username=username,
            role=role,
            password_hash=hash_password(password) if password else None,
            referral_code=generate_unique_referral_code(self.db),
            referred_by_user_id=referred_by,
        )
        self.db.add(user)
        self.db.flush()
        logger.info("User created id=%s role=%s referred_by=%s", user.id, role, referred_by)
        return user

    def find_or_create_student(self, email: str, referral_code: Optional[str] = None) -> User:
        user = self.find_user_by_email(email)
        if user:
            return user
        user = self.create_user(email=email, username=email.split("@")[0], referral_code=referral_code)
        try:
            self.notifier.new_signup(user.email)
        except Exception:
            logger.exception("Signup notification failed user_id=%s", user.id)
        return user

    def verify_credentials(self, email: str, password: str) -> Optional[User]:
        user = self.find_user_by_email(email)
        if not user or not user.password_hash:
            return None
        return user if verify_password(password, user.password_hash) else None

    # ---------- sessions ----------

    def cleanup_expired_sessions(self, user_id: int):
        self.db.query(AuthSession).filter(
            AuthSession.user_id == user_id, AuthSession.expires_at < utcnow()
        ).delete(synchronize_session=False)

    def _mint_tokens(self, s: AuthSession, user: User):
        access_token = create_access_token({"sub": str(user.id), "sid": s.id})
        refresh_token = generate_secure_token(48)
        s.access_token_hash = hash_token(access_token)
        s.refresh_token_hash = hash_token(refresh_token)
        s.expires_at = utcnow() + refresh_ttl_for(user.role)
        return access_token, refresh_token

    def create_session(self, user: User) -> IssuedSession:
        self.cleanup_expired_sessions(user.id)

        # hashes are placeholders until the id (embedded in the JWT) exists
        s = AuthSession(
            user_id=user.id,
            access_token_hash="",
            refresh_token_hash=generate_secure_token(16),
            expires_at=utcnow(),
        )
        self.db.add(s)
        self.db.flush()

        access_token, refresh_token = self._mint_tokens(s, user)
        self.db.flush()
        return IssuedSession(s, access_token, refresh_token, user)

    def find_session_by_refresh_token(self, refresh_token: str) -> Optional[AuthSession]:
        return (
            self.db.query(AuthSession)
            .filter(AuthSession.refresh_token_hash == hash_token(refresh_token))
            .first()
        )

    def refresh_session(self, refresh_token: str) -> Optional[IssuedSession]:
        """Rotates both tokens; expiry is pushed out by the role's refresh TTL."""
        s = self.find_session_by_refresh_token(refresh_token)
        if not s or s.expires_at <= utcnow():
            return None
        user = self.find_user_by_id(s.user_id)
        if not user:
            return None

        access_token, new_refresh = self._mint_tokens(s, user)
        self.db.flush()
        return IssuedSession(s, access_token, new_refresh, user)

    def delete_session(self, s: AuthSession):
        self.db.delete(s)
        self.db.flush()

    # ---------- password reset / invites ----------

    def create_password_reset_token(self, user: User) -> str:
        token = generate_secure_token(32)
        self.db.add(PasswordResetToken(
            user_id=user.id,
            token_hash=hash_token(token),
            expires_at=utcnow() + PASSWORD_RESET_TTL,
        ))
        self.db.flush()
        return token

    def use_password_reset_token(self, token: str, new_password: str) -> bool:
        row = (
            self.db.query(PasswordResetToken)
            .filter(
                PasswordResetToken.token_hash == hash_token(token),
                PasswordResetToken.expires_at > utcnow(),
                PasswordResetToken.used_at.is_(None),
            )
            .first()
        )
        if not row:
            return False
        user = self.find_user_by_id(row.user_id)
        if not user:
            return False

        user.password_hash = hash_password(new_password)
        row.used_at = utcnow()
        self.db.flush()
        return True

    def create_user_creation_token(self, email: str, created_by: int) -> str:
        token = generate_secure_token(32)
        self.db.add(UserCreationToken(
            email=email.lower(),
            token_hash=hash_token(token),
            expires_at=utcnow() + USER_CREATION_TTL,
            created_by=created_by,
        ))
        self.db.flush()
        return token

    def use_user_creation_token(self, token: str, username: str, password: str) -> Optional[User]:
        row = (
            self.db.query(UserCreationToken)
            .filter(
                UserCreationToken.token_hash == hash_token(token),
                UserCreationToken.expires_at > utcnow(),
                UserCreationToken.used_at.is_(None),
            )
            .first()
        )
        if not row:
            return None

        # invited users are admins
        user = self.create_user(email=row.email, username=username, role=ADMIN, password=password)
        row.used_at = utcnow()
        self.db.flush()
        return user

    # ---------- account deletion ----------

    def delete_user_account(self, user_id: int):
        """
        GDPR anonymisation: a fresh deleted-user row takes over feedback,
        points, invites sent and referees; then the user row is removed
        (sessions and reset tokens go with it).
        """
        ts = int(utcnow().timestamp() * 1000)
        anon = User(
            email=f"deleted-user-{ts}-{user_id}@{DELETED_EMAIL_DOMAIN}",
            username="deleted-user",
            password_hash=None,
            role=STUDENT,
            superuser=False,
            referral_code=None,
            referred_by_user_id=None,
        )
        self.db.add(anon)
        self.db.flush()

        self.db.query(Feedback).filter(Feedback.user_id == user_id).update(
            {Feedback.user_id: anon.id}, synchronize_session=False
        )
        self.db.query(PointRegistry).filter(PointRegistry.user_id == user_id).update(
            {PointRegistry.user_id: anon.id}, synchronize_session=False
        )
        self.db.query(UserCreationToken).filter(UserCreationToken.created_by == user_id).update(
            {UserCreationToken.created_by: anon.id}, synchronize_session=False
        )
        self.db.query(User).filter(User.referred_by_user_id == user_id).update(
            {User.referred_by_user_id: anon.id}, synchronize_session=False
        )
        self.db.query(AuthSession).filter(AuthSession.user_id == user_id).delete(synchronize_session=False)
        self.db.query(PasswordResetToken).filter(PasswordResetToken.user_id == user_id).delete(
            synchronize_session=False
        )
        self.db.query(User).filter(User.id == user_id).delete(synchronize_session=False)
        self.db.flush()
        self.db.expire_all()
        logger.info("User %s anonymised into %s", user_id, anon.id)
        return anon

    # ---------- OTP ----------

    def check_otp_rate_limit(self, email: str) -> RateLimitResult:
        latest = (
            self.db.query(func.max(OtpToken.created_at))
            .filter(OtpToken.email == email.lower())
            .scalar()
        )
        if latest is None:
            return RateLimitResult(True)

        elapsed = utcnow() - latest
        cooldown = OTP_CONFIG["RESEND_COOLDOWN"]
        if elapsed < cooldown:
            remaining = int((cooldown - elapsed).total_seconds()) + 1
            return RateLimitResult(False, min(remaining, int(cooldown.total_seconds())))
        return RateLimitResult(True)

    def create_otp_token(self, email: str, referral_code: Optional[str] = None) -> str:
        """Invalidates outstanding codes for the email and returns a new plain code."""
        email = email.lower()
        now = utcnow()
        self.db.query(OtpToken).filter(OtpToken.email == email, OtpToken.used_at.is_(None)).update(
            {OtpToken.used_at: now}, synchronize_session=False
        )

        code = generate_otp(OTP_CONFIG["LENGTH"])
        self.db.add(OtpToken(
            email=email,
            code_hash=hash_token(code),
            referral_code=referral_code,
            attempts=0,
            expires_at=now + OTP_CONFIG["TTL"],
            created_at=now,
        ))
        self.db.flush()
        return code

    def verify_otp_token(self, email: str, code: str) -> IssuedSession:
        """Raises ValidationError (400) on every failure; wrong codes report attemptsRemaining."""
        email = email.lower()
        row = (
            self.db.query(OtpToken)
            .filter(OtpToken.email == email, OtpToken.used_at.is_(None))
            .order_by(OtpToken.created_at.desc(), OtpToken.id.desc())
            .first()
        )
        if not row or row.expires_at <= utcnow():
            raise ValidationError("Invalid or expired code")

        max_attempts = OTP_CONFIG["MAX_ATTEMPTS"]
        if row.attempts >= max_attempts:
            raise ValidationError("Too many attempts. Please request a new code.")

        if row.code_hash != hash_token(code):
            row.attempts += 1
            self.db.commit()
            raise ValidationError(
                "Invalid code",
                extra={"attemptsRemaining": max(max_attempts - row.attempts, 0)},
            )

        row.used_at = utcnow()
        user = self.find_or_create_student(email, row.referral_code)
        return self.create_session(user)

    # ---------- magic links (deprecated) ----------

    def check_magic_link_rate_limit(self, email: str) -> bool:
        email = email.lower()
        now = utcnow()
        cfg = RATE_LIMIT_CONFIG["MAGIC_LINK"]

        rec = self.db.query(MagicLinkRateLimit).filter(MagicLinkRateLimit.email == email).first()
        if not rec:
            self.db.add(MagicLinkRateLimit(email=email, request_count=1, window_start=now))
            self.db.flush()
            return True

        if rec.window_start < now - cfg["WINDOW"]:
            rec.request_count = 1
            rec.window_start = now
            self.db.flush()
            return True

        if rec.request_count < cfg["MAX_REQUESTS"]:
            rec.request_count += 1
            self.db.flush()
            return True

        return False

    def create_magic_link_token(self, email: str, reuse_request_id: Optional[str] = None,
                                referral_code: Optional[str] = None):
        """Returns (plain token, request_id)."""
        email = email.lower()
        now = utcnow()

        request_id = None
        if reuse_request_id:
            earliest = (
                self.db.query(func.min(MagicLinkToken.created_at))
                .filter(MagicLinkToken.request_id == reuse_request_id, MagicLinkToken.email == email)
                .scalar()
            )
            if earliest is not None and earliest > now - MAGIC_LINK_CONFIG["REQUEST_ID_REUSE_WINDOW"]:
                request_id = reuse_request_id

        if not request_id:
            request_id = generate_request_id()

        token = generate_secure_token(32)
        self.db.add(MagicLinkToken(
            email=email,
            token_hash=hash_token(token),
            request_id=request_id,
            referral_code=referral_code,
            expires_at=now + MAGIC_LINK_CONFIG["TTL"],
            created_at=now,
        ))
        self.db.flush()
        return token, request_id

    def use_magic_link_token(self, token: str) -> Optional[IssuedSession]:
        row = (
            self.db.query(MagicLinkToken)
            .filter(
                MagicLinkToken.token_hash == hash_token(token),
                MagicLinkToken.expires_at > utcnow(),
                MagicLinkToken.used_at.is_(None),
            )
            .first()
        )
        if not row:
            return None

        user = self.find_or_create_student(row.email, row.referral_code)
        issued = self.create_session(user)
        row.used_at = utcnow()
        self.db.flush()
        return issued

    def expired_token_request_id(self, token: str) -> Optional[str]:
        """requestId of an unused, expired token created recently enough to resume polling."""
        row = (
            self.db.query(MagicLinkToken)
            .filter(MagicLinkToken.token_hash == hash_token(token), MagicLinkToken.used_at.is_(None))
            .first()
        )
        now = utcnow()
        if not row or row.expires_at >= now:
            return None
        if row.created_at > now - MAGIC_LINK_CONFIG["EXPIRED_TOKEN_REQUESTID_WINDOW"]:
            return row.request_id
        return None

    def verify_magic_link_by_request_id(self, request_id: str) -> Optional[IssuedSession]:
        """
        Polling check. Freshness is judged on the EARLIEST used_at of the
        request id, so re-requesting links can't extend the window.
        Every failure is None.
        """
        now = utcnow()
        freshness_start = now - MAGIC_LINK_CONFIG["TOKEN_USAGE_FRESHNESS_WINDOW"]
        idempotency_start = now - MAGIC_LINK_CONFIG["VERIFICATION_IDEMPOTENCY_WINDOW"]

        earliest_used = (
            self.db.query(func.min(MagicLinkToken.used_at))
            .filter(MagicLinkToken.request_id == request_id, MagicLinkToken.used_at.isnot(None))
            .scalar()
        )
        if earliest_used is None or earliest_used <= freshness_start:
            return None

        row = (
            self.db.query(MagicLinkToken)
            .filter(
                MagicLinkToken.request_id == request_id,
                MagicLinkToken.used_at.isnot(None),
                MagicLinkToken.used_at > freshness_start,
                or_(MagicLinkToken.verified_at.is_(None), MagicLinkToken.verified_at > idempotency_start),
            )
            .first()
        )
        if not row:
            return None

        user = self.find_user_by_email(row.email)
        if not user:
            logger.error("Magic link request %s used but user %s is missing", request_id, row.email)
            return None

        issued = self.create_session(user)
        if row.verified_at is None:
            row.verified_at = now
        self.db.flush()
        return issued
