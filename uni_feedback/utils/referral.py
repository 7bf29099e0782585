import re
from typing import Optional

from sqlalchemy.orm import Session

from uni_feedback.models.user import User
from uni_feedback.utils.tokens import random_code

# no 0/o/1/i
REFERRAL_CODE_CHARS = "abcdefghjklmnpqrstuvwxyz23456789"
REFERRAL_CODE_LENGTH = 8

_FORMAT_RE = re.compile(r"^[a-z0-9]{6,8}$")


def generate_referral_code(length: int = REFERRAL_CODE_LENGTH) -> str:
    return random_code(REFERRAL_CODE_CHARS, length)


def generate_unique_referral_code(db: Session, max_attempts: int = 5) -> str:
    for _ in range(max_attempts):
        code = generate_referral_code()
        if not db.query(User.id).filter(User.referral_code == code).first():
            return code
    raise RuntimeError("Failed to generate unique referral code after multiple attempts")


def validate_referral_code_format(code: Optional[str]) -> bool:
    return bool(code) and bool(_FORMAT_RE.match(code))


def find_user_by_referral_code(db: Session, code: str) -> Optional[User]:
    return db.query(User).filter(User.referral_code == code).first()
