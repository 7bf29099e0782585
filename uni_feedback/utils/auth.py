import secrets
from typing import Optional

from jose import jwt, JWTError
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from uni_feedback.config import settings, ACCESS_COOKIE, ACCESS_TOKEN_TTL
from uni_feedback.database import get_db
from uni_feedback.models.session import AuthSession
from uni_feedback.models.user import User
from uni_feedback.utils.dates import utcnow
from uni_feedback.utils.errors import UnauthorizedError, ForbiddenError
from uni_feedback.utils.tokens import hash_token

# Bearer header is the fallback when the access cookie is absent
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def create_access_token(data: dict, expires_delta=ACCESS_TOKEN_TTL):
    to_encode = data.copy()
    expire = utcnow() + expires_delta
    # jti keeps tokens minted in the same second distinct
    to_encode.update({"exp": expire, "jti": secrets.token_hex(8)})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


def extract_access_token(request: Request, bearer: Optional[str]) -> Optional[str]:
    return request.cookies.get(ACCESS_COOKIE) or bearer


def find_session_by_access_token(db: Session, token: str) -> Optional[AuthSession]:
    payload = decode_access_token(token)
    if not payload or payload.get("sid") is None:
        return None

    s = (
        db.query(AuthSession)
        .filter(
            AuthSession.id == payload["sid"],
            AuthSession.access_token_hash == hash_token(token),
            AuthSession.expires_at > utcnow(),
        )
        .first()
    )
    if not s or str(s.user_id) != str(payload.get("sub")):
        return None
    return s


def get_current_session(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> AuthSession:
    token = extract_access_token(request, bearer)
    if not token:
        raise UnauthorizedError("Authentication required")

    s = find_session_by_access_token(db, token)
    if not s:
        raise UnauthorizedError("Invalid or expired session")
    return s


def get_current_user(s: AuthSession = Depends(get_current_session), db: Session = Depends(get_db)) -> User:
    user = db.query(User).filter(User.id == s.user_id).first()
    if not user:
        raise UnauthorizedError("User not found")
    return user


def get_optional_user(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    token = extract_access_token(request, bearer)
    if not token:
        return None
    s = find_session_by_access_token(db, token)
    if not s:
        return None
    return db.query(User).filter(User.id == s.user_id).first()


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user


def require_superuser(user: User = Depends(get_current_user)) -> User:
    if not user.is_superuser:
        raise ForbiddenError("Superuser access required")
    return user
