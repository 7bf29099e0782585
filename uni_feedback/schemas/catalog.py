from datetime import datetime
from typing import List, Optional

from pydantic import Field

from uni_feedback.schemas.base import CamelModel


class FacultyOut(CamelModel):
    id: int
    name: str
    short_name: str
    slug: Optional[str] = None
    url: Optional[str] = None
    logo: Optional[str] = None
    banner: Optional[str] = None
    logo_horizontal: Optional[str] = None
    email_suffixes: Optional[List[str]] = None


class FacultyUpdate(CamelModel):
    name: Optional[str] = None
    short_name: Optional[str] = None
    slug: Optional[str] = None
    url: Optional[str] = None
    logo: Optional[str] = None
    banner: Optional[str] = None
    logo_horizontal: Optional[str] = None


class EmailSuffixIn(CamelModel):
    suffix: str = Field(..., min_length=1, max_length=255)


class DegreeOut(CamelModel):
    id: int
    external_id: Optional[str] = None
    type: str
    name: str
    acronym: str
    slug: Optional[str] = None
    campus: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    faculty_id: Optional[int] = None


class DegreeUpdate(CamelModel):
    type: Optional[str] = None
    name: Optional[str] = None
    acronym: Optional[str] = None
    slug: Optional[str] = None
    campus: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    faculty_id: Optional[int] = None


class CourseOut(CamelModel):
    id: int
    external_id: Optional[str] = None
    name: str
    acronym: str
    slug: Optional[str] = None
    degree_id: Optional[int] = None
    ects: Optional[float] = None
    curriculum_year: Optional[int] = None
    terms: Optional[List[str]] = None
    url: Optional[str] = None
    description: Optional[str] = None
    bibliography: Optional[str] = None
    assessment: Optional[str] = None
    has_mandatory_exam: Optional[bool] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CourseUpdate(CamelModel):
    name: Optional[str] = None
    acronym: Optional[str] = None
    slug: Optional[str] = None
    ects: Optional[float] = Field(default=None, ge=0)
    curriculum_year: Optional[int] = Field(default=None, ge=1)
    url: Optional[str] = None
    description: Optional[str] = None
    bibliography: Optional[str] = None
    assessment: Optional[str] = None
    has_mandatory_exam: Optional[bool] = None


class TermIn(CamelModel):
    term: str = Field(..., min_length=1, max_length=64)


class CourseGroupCreate(CamelModel):
    name: str = Field(..., max_length=255)
    degree_id: int
    course_ids: List[int] = Field(default_factory=list)


class CourseGroupUpdate(CamelModel):
    name: Optional[str] = Field(default=None, max_length=255)
    course_ids: Optional[List[int]] = None
