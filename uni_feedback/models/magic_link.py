from sqlalchemy import Column, Integer, String, DateTime

from uni_feedback.database import Base
from uni_feedback.utils.dates import utcnow


class MagicLinkToken(Base):
    __tablename__ = "magic_link_tokens"

    id = Column(Integer, primary_key=True)
    # email, not user id: the user may not exist yet
    email = Column(String(255), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False)
    # shared across re-sent links so a polling device keeps working
    request_id = Column(String(128), index=True)
    referral_code = Column(String(16))
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime)  # email link clicked
    verified_at = Column(DateTime)  # request_id polled successfully
    created_at = Column(DateTime, default=utcnow, nullable=False)


class MagicLinkRateLimit(Base):
    __tablename__ = "magic_link_rate_limits"

    email = Column(String(255), primary_key=True)
    request_count = Column(Integer, nullable=False, default=0)
    window_start = Column(DateTime, nullable=False)
