"""
Submission / Assignment API Schemas (Pydantic)
"""
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator


def _split_keywords(value):
    if value is None:
        return None
    if isinstance(value, str):
        value = value.split(",")
    return [str(k).strip() for k in value if str(k).strip()]


class SubmissionCreate(BaseModel):
    """Request schema for creating a submission (draft unless submit=true)."""
    event_id: int
    title: str = Field(default="", max_length=500)
    abstract: str = ""
    keywords: Union[List[str], str] = Field(default_factory=list)
    corresponding_author: str = Field(default="", max_length=255)
    co_authors: Optional[str] = None
    pdf_url: Optional[str] = Field(default=None, max_length=1000)
    pdf_filename: Optional[str] = Field(default=None, max_length=255)
    pdf_size: Optional[int] = Field(default=None, ge=0)
    submit: bool = False

    @field_validator("keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, v):
        return _split_keywords(v) or []


class SubmissionUpdate(BaseModel):
    """Partial edit; omitted fields keep their value."""
    title: Optional[str] = Field(default=None, max_length=500)
    abstract: Optional[str] = None
    keywords: Optional[Union[List[str], str]] = None
    corresponding_author: Optional[str] = Field(default=None, max_length=255)
    co_authors: Optional[str] = None
    pdf_url: Optional[str] = Field(default=None, max_length=1000)
    pdf_filename: Optional[str] = Field(default=None, max_length=255)
    pdf_size: Optional[int] = Field(default=None, ge=0)

    @field_validator("keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, v):
        return _split_keywords(v)


class SubmissionResponse(BaseModel):
    id: int
    event_id: int
    owner_id: int
    title: str
    abstract: str
    keywords: List[str]
    corresponding_author: str
    co_authors: Optional[str] = None
    pdf_url: Optional[str] = None
    pdf_filename: Optional[str] = None
    pdf_size: Optional[int] = None
    status: str
    submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DecisionRequest(BaseModel):
    decision: str = Field(..., pattern=r"^(accept|reject|revise)$")
    comments: Optional[str] = None


class StatusLogResponse(BaseModel):
    id: int
    submission_id: int
    action: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    actor_id: Optional[int] = None
    comments: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AggregateOutcomeResponse(BaseModel):
    mean_score: Optional[float] = None
    accept_count: int
    reject_count: int
    completed_review_count: int
    total_assigned_count: int


class AssignmentCreate(BaseModel):
    reviewer_id: int
    due_date: Optional[datetime] = None


class AssignmentResponse(BaseModel):
    id: int
    submission_id: int
    reviewer_id: int
    assigned_by: int
    assigned_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    status: str

    class Config:
        from_attributes = True
