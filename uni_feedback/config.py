from datetime import timedelta
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- DB ---
    DATABASE_URL: Optional[str] = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_NAME: str = "uni_feedback"

    # --- Tokens ---
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    COOKIE_SECURE: bool = True

    # --- Frontends ---
    WEBSITE_URL: str = "http://localhost:5173"
    DASHBOARD_URL: str = "http://localhost:5174"
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:5174",
        "https://uni-feedback.com",
        "https://istfeedback.com",
    ]

    # --- Feature flags ---
    VALIDATE_EMAIL_SUFFIX: bool = False

    # --- Integrations ---
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_MODEL: str = "openai/gpt-4o-mini"
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""
    MAIL_FROM: str = "Uni Feedback <noreply@uni-feedback.com>"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


settings = Settings()


# Token lifetimes
ACCESS_TOKEN_TTL = timedelta(minutes=15)
REFRESH_TOKEN_STUDENT_TTL = timedelta(days=30)
REFRESH_TOKEN_ADMIN_TTL = timedelta(days=7)
PASSWORD_RESET_TTL = timedelta(hours=24)
USER_CREATION_TTL = timedelta(days=7)
FEEDBACK_DRAFT_TTL = timedelta(hours=24)

OTP_CONFIG = {
    "LENGTH": 6,
    "TTL": timedelta(minutes=10),
    "MAX_ATTEMPTS": 5,
    "RESEND_COOLDOWN": timedelta(seconds=60),
}

MAGIC_LINK_CONFIG = {
    "TTL": timedelta(minutes=15),
    # a requestId may be carried over to new tokens for this long after its first use
    "REQUEST_ID_REUSE_WINDOW": timedelta(hours=1),
    # polling only succeeds if the email link was clicked this recently
    "TOKEN_USAGE_FRESHNESS_WINDOW": timedelta(minutes=10),
    # a verified requestId can be polled again from another device within this window
    "VERIFICATION_IDEMPOTENCY_WINDOW": timedelta(minutes=5),
    # expired tokens younger than this still hand back their requestId
    "EXPIRED_TOKEN_REQUESTID_WINDOW": timedelta(hours=1),
}

RATE_LIMIT_CONFIG = {
    "MAGIC_LINK": {"MAX_REQUESTS": 5, "WINDOW": timedelta(minutes=15)},
}

AUTH_COOKIE_NAME = "uni-feedback-auth"
ACCESS_COOKIE = f"{AUTH_COOKIE_NAME}-access"
REFRESH_COOKIE = f"{AUTH_COOKIE_NAME}-refresh"
REFRESH_COOKIE_PATH = "/auth/refresh"

PASSWORD_MIN_LENGTH = 8
PASSWORD_SPECIAL_CHARS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"
