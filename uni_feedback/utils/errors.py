from typing import Optional

from fastapi import HTTPException


class AppError(HTTPException):
    """HTTPException with a default status/message; `extra` is merged into the JSON body."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None, extra: Optional[dict] = None):
        super().__init__(
            status_code=status_code or self.status_code,
            detail=message or self.default_message,
        )
        self.extra = extra or {}


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not Found"


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class BusinessLogicError(AppError):
    status_code = 400
    default_message = "Request could not be processed"


class UnauthorizedError(AppError):
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Forbidden"


class RateLimitError(AppError):
    status_code = 429
    default_message = "Too many requests"
