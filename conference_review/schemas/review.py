"""
Review API Schemas (Pydantic)

Range checks for scores live in the review service so the same rules
apply to every caller; these models only shape the payload.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from conference_review.schemas.submission import AggregateOutcomeResponse


class ReviewPayload(BaseModel):
    """Fields a reviewer may send; None means keep the stored value."""
    originality_score: Optional[Any] = None
    methodology_score: Optional[Any] = None
    clarity_score: Optional[Any] = None
    contribution_score: Optional[Any] = None
    strengths: Optional[str] = None
    weaknesses: Optional[str] = None
    comments_to_authors: Optional[str] = None
    comments_to_committee: Optional[str] = None
    recommendation: Optional[str] = None
    is_completed: bool = False

    def fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"is_completed"})


class ReviewResponse(BaseModel):
    id: int
    submission_id: int
    reviewer_id: int
    originality_score: Optional[int] = None
    methodology_score: Optional[int] = None
    clarity_score: Optional[int] = None
    contribution_score: Optional[int] = None
    overall_score: Optional[float] = None
    strengths: Optional[str] = None
    weaknesses: Optional[str] = None
    comments_to_authors: Optional[str] = None
    comments_to_committee: Optional[str] = None
    recommendation: Optional[str] = None
    is_completed: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubmissionReviewsResponse(BaseModel):
    submission_id: int
    reviews: List[ReviewResponse]
    aggregate: AggregateOutcomeResponse
