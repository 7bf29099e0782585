import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from uni_feedback.config import FEEDBACK_DRAFT_TTL
from uni_feedback.database import get_db
from uni_feedback.models.feedback_draft import FeedbackDraft
from uni_feedback.schemas.feedback import DraftData
from uni_feedback.utils.dates import utcnow
from uni_feedback.utils.errors import AppError, NotFoundError
from uni_feedback.utils.tokens import random_code

logger = logging.getLogger("app.drafts")

router = APIRouter(prefix="/feedback-drafts", tags=["Feedback drafts"])

# no 0/O or 1
DRAFT_CODE_ALPHABET = "ABCDEFGHIJKLMNPQRSTUVWXYZ23456789"
DRAFT_CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 10


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def generate_draft_code(db: Session) -> str:
    for _ in range(MAX_CODE_ATTEMPTS):
        code = random_code(DRAFT_CODE_ALPHABET, DRAFT_CODE_LENGTH)
        if not db.query(FeedbackDraft.id).filter(FeedbackDraft.code == code).first():
            return code
    raise AppError("Failed to generate a unique draft code")


@router.post("", status_code=201)
def create_draft(body: DraftData, request: Request, db: Session = Depends(get_db)):
    """Stash a half-written review so it can be resumed after signing in."""
    draft = FeedbackDraft(
        code=generate_draft_code(db),
        data=body.model_dump(by_alias=True, exclude_none=True),
        expires_at=utcnow() + FEEDBACK_DRAFT_TTL,
        ip_address=client_ip(request),
    )
    db.add(draft)
    db.commit()
    logger.info("Feedback draft created code=%s", draft.code)

    return JSONResponse(
        status_code=201,
        content={"code": draft.code, "expiresAt": draft.expires_at.isoformat()},
    )


@router.get("/{code}")
def get_draft(code: str, db: Session = Depends(get_db)):
    draft = (
        db.query(FeedbackDraft)
        .filter(FeedbackDraft.code == code.upper(), FeedbackDraft.expires_at > utcnow())
        .first()
    )
    if not draft:
        raise NotFoundError("Draft not found or expired")
    return {"code": draft.code, "data": draft.data, "expiresAt": draft.expires_at.isoformat()}
