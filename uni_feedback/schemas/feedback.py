from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from uni_feedback.models.feedback_flag import REPORT_CATEGORY_LABELS
from uni_feedback.schemas.base import CamelModel

ReportCategory = Literal[tuple(REPORT_CATEGORY_LABELS)]


class FeedbackCreate(CamelModel):
    school_year: int
    rating: int = Field(..., ge=1, le=5)
    workload_rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class FeedbackEdit(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    workload_rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class ReportIn(CamelModel):
    category: ReportCategory
    details: str = Field(..., min_length=20, max_length=2000)


class CategorizeIn(CamelModel):
    comment: str = Field(..., min_length=1)


class FeedbackOut(CamelModel):
    id: int
    course_id: int
    school_year: Optional[int] = None
    rating: int
    workload_rating: Optional[int] = None
    comment: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AnalysisOut(CamelModel):
    has_teaching: bool
    has_assessment: bool
    has_materials: bool
    has_tips: bool
    word_count: int
    reviewed_at: Optional[datetime] = None


class DraftData(CamelModel):
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    workload_rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=10000)


class AdminFeedbackUpdate(CamelModel):
    school_year: Optional[int] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    workload_rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: Optional[str] = None


class UnapproveIn(CamelModel):
    message: str = Field(..., min_length=1, max_length=5000)


class AnalysisUpdateIn(CamelModel):
    has_teaching: bool
    has_assessment: bool
    has_materials: bool
    has_tips: bool
