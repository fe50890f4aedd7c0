"""
Review API Routes

Reviewer workspace (own assignments and reviews) and the committee's
per-submission review listing.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from conference_review.database import get_db
from conference_review.rbac import Actor, get_current_actor
from conference_review.schemas.review import (
    ReviewPayload, ReviewResponse, SubmissionReviewsResponse
)
from conference_review.schemas.submission import AssignmentResponse
from conference_review.services import assignment_service, review_service

router = APIRouter(prefix="/api/reviews", tags=["Reviews"])


@router.get("/assignments", response_model=List[AssignmentResponse])
async def my_assignments(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    assignments = await assignment_service.list_assignments_for_reviewer(db, actor.id)
    return [a.to_dict() for a in assignments]


@router.get("/submissions/{submission_id}", response_model=Optional[ReviewResponse])
async def my_review(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    review = await review_service.get_review_for_reviewer(db, submission_id, actor.id)
    return review.to_dict() if review else None


@router.put("/submissions/{submission_id}", response_model=ReviewResponse)
async def save_review(
    submission_id: int,
    body: ReviewPayload,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Save a draft, or complete the review with is_completed=true."""
    review = await review_service.submit_review(
        db, submission_id, actor.id, body.fields(), is_completed=body.is_completed
    )
    return review.to_dict()


@router.get("/submissions/{submission_id}/all", response_model=SubmissionReviewsResponse)
async def all_reviews(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    reviews, aggregate = await review_service.list_reviews_for_submission(db, submission_id, actor)
    return {
        "submission_id": submission_id,
        "reviews": [r.to_dict() for r in reviews],
        "aggregate": aggregate.to_dict(),
    }


@router.delete("/{review_id}")
async def delete_review(
    review_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    await review_service.delete_review(db, review_id, actor)
    return {"success": True, "review_id": review_id}
