"""
Submission API Routes

Thin HTTP layer over the lifecycle and assignment services.
Authorization and status rules live in the services; errors surface
through the APIError handler registered in main.py.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from conference_review.database import get_db
from conference_review.rbac import Actor, get_current_actor, require_admin
from conference_review.schemas.submission import (
    AggregateOutcomeResponse, AssignmentCreate, AssignmentResponse, DecisionRequest,
    StatusLogResponse, SubmissionCreate, SubmissionResponse, SubmissionUpdate
)
from conference_review.services import assignment_service, lifecycle_service

router = APIRouter(prefix="/api/submissions", tags=["Submissions"])
assignments_router = APIRouter(prefix="/api/assignments", tags=["Assignments"])


# =============================================================================
# Author endpoints
# =============================================================================

@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def create_submission(
    body: SubmissionCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    submission = await lifecycle_service.create_submission(
        db, actor, body.model_dump(exclude={"submit"}), submit=body.submit
    )
    return submission.to_dict()


@router.get("", response_model=List[SubmissionResponse])
async def list_submissions(
    event_id: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Admins see every submission, reviewers also see the ones assigned to them."""
    submissions = await lifecycle_service.list_visible_submissions(
        db, actor, event_id=event_id, status=status_filter
    )
    return [s.to_dict() for s in submissions]


@router.get("/events/{event_id}/counts")
async def count_by_status(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    require_admin(actor, "view submission statistics")
    return {"event_id": event_id, "counts": await lifecycle_service.count_by_status(db, event_id)}


@router.get("/{submission_id}", response_model=SubmissionResponse)
async def get_submission(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    submission = await lifecycle_service.get_submission_for_actor(db, submission_id, actor)
    return submission.to_dict()


@router.patch("/{submission_id}", response_model=SubmissionResponse)
async def update_submission(
    submission_id: int,
    body: SubmissionUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    submission = await lifecycle_service.update_submission(
        db, submission_id, actor, body.model_dump(exclude_none=True)
    )
    return submission.to_dict()


@router.delete("/{submission_id}")
async def delete_submission(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    kind = await lifecycle_service.delete_submission(db, submission_id, actor)
    return {"success": True, "submission_id": submission_id, "deletion": kind.value}


@router.post("/{submission_id}/submit", response_model=SubmissionResponse)
async def submit_submission(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    submission = await lifecycle_service.submit(db, submission_id, actor)
    return submission.to_dict()


@router.post("/{submission_id}/resubmit", response_model=SubmissionResponse)
async def resubmit_submission(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    submission = await lifecycle_service.resubmit(db, submission_id, actor)
    return submission.to_dict()


@router.get("/{submission_id}/history", response_model=List[StatusLogResponse])
async def get_status_history(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    await lifecycle_service.get_submission_for_actor(db, submission_id, actor)
    logs = await lifecycle_service.get_status_history(db, submission_id)
    return [log.to_dict() for log in logs]


# =============================================================================
# Committee endpoints
# =============================================================================

@router.post("/{submission_id}/start-review", response_model=SubmissionResponse)
async def start_review(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    submission = await lifecycle_service.admin_start_review(db, submission_id, actor)
    return submission.to_dict()


@router.post("/{submission_id}/decision", response_model=SubmissionResponse)
async def decide(
    submission_id: int,
    body: DecisionRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Accept, reject or request a revision.
    A 502 NOTIFICATION_FAILED response still means the decision was saved.
    """
    submission = await lifecycle_service.admin_decide(
        db, submission_id, actor, body.decision, comments=body.comments
    )
    return submission.to_dict()


@router.get("/{submission_id}/aggregate", response_model=AggregateOutcomeResponse)
async def get_aggregate(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    require_admin(actor, "view aggregate scores")
    outcome = await lifecycle_service.compute_aggregate(db, submission_id)
    return outcome.to_dict()


@router.post(
    "/{submission_id}/assignments",
    response_model=AssignmentResponse,
    status_code=status.HTTP_201_CREATED
)
async def assign_reviewer(
    submission_id: int,
    body: AssignmentCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    assignment = await assignment_service.assign_reviewer(
        db, submission_id, body.reviewer_id, actor, due_date=body.due_date
    )
    return assignment.to_dict()


@router.get("/{submission_id}/assignments", response_model=List[AssignmentResponse])
async def list_assignments(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    require_admin(actor, "view assignments")
    await lifecycle_service.get_submission(db, submission_id)
    assignments = await assignment_service.list_assignments_for_submission(db, submission_id)
    return [a.to_dict() for a in assignments]


@assignments_router.delete("/{assignment_id}")
async def remove_assignment(
    assignment_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
) -> Dict[str, Any]:
    await assignment_service.remove_assignment(db, assignment_id, actor)
    return {"success": True, "assignment_id": assignment_id}
