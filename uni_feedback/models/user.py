from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow

STUDENT = "student"
ADMIN = "admin"
SUPER_ADMIN = "super_admin"
ROLES = (STUDENT, ADMIN, SUPER_ADMIN)

DELETED_EMAIL_DOMAIN = "deleted.local"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False)
    username = Column(String(255), nullable=False)
    # students sign in with OTP and never get a password
    password_hash = Column(Text, nullable=True)
    role = Column(String(20), nullable=False, default=STUDENT)
    # legacy flag, kept alongside role=super_admin
    superuser = Column(Boolean, default=False)
    referral_code = Column(String(16), unique=True)
    referred_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role in (ADMIN, SUPER_ADMIN) or bool(self.superuser)

    @property
    def is_superuser(self) -> bool:
        return self.role == SUPER_ADMIN or bool(self.superuser)
