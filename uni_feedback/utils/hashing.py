import re

from passlib.context import CryptContext
from fastapi import HTTPException

from uni_feedback.config import PASSWORD_MIN_LENGTH, PASSWORD_SPECIAL_CHARS

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_SPECIAL_RE = re.compile("[" + re.escape(PASSWORD_SPECIAL_CHARS) + "]")


def _check_bcrypt_len(password: str):
    if len(password.encode("utf-8")) > 72:
        raise HTTPException(status_code=400, detail="Password too long (bcrypt max 72 bytes)")


def hash_password(password: str):
    _check_bcrypt_len(password)
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str):
    if not hashed_password:
        return False
    _check_bcrypt_len(plain_password)
    return pwd_context.verify(plain_password, hashed_password)


def validate_password(password: str) -> list[str]:
    """Returns the list of broken rules; empty means the password is acceptable."""
    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not _SPECIAL_RE.search(password):
        errors.append("Password must contain at least one special character")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    return errors
