from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from uni_feedback.schemas.base import CamelModel


class EmailIn(CamelModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def _strip_email(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v):
        return v.lower()


class OtpRequestIn(EmailIn):
    referral_code: Optional[str] = None


class OtpVerifyIn(EmailIn):
    otp: str = Field(..., min_length=6, max_length=6)


class MagicLinkRequestIn(EmailIn):
    request_id: Optional[str] = None
    referral_code: Optional[str] = None


class MagicLinkUseIn(BaseModel):
    token: str = Field(..., min_length=1)


class MagicLinkVerifyIn(CamelModel):
    request_id: str = Field(..., min_length=1)


class LoginIn(EmailIn):
    password: str = Field(..., min_length=1)


class ForgotPasswordIn(EmailIn):
    pass


class ResetPasswordIn(CamelModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    confirm_password: str = Field(..., min_length=1)


class InviteIn(EmailIn):
    pass


class CreateAccountIn(CamelModel):
    token: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)
    confirm_password: str = Field(..., min_length=1)
