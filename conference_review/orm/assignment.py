"""
conference_review/orm/assignment.py
Reviewer-to-submission assignments
"""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, DateTime, ForeignKey,
    Index, UniqueConstraint, Enum as SQLEnum
)

from conference_review.orm.base import Base


class AssignmentStatus(str, PyEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ReviewAssignment(Base):
    """
    Binds one reviewer to one submission.

    status mirrors the pair's Review and is only written by
    assignment_service.mirror_review_state().
    """
    __tablename__ = "review_assignments"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(
        Integer,
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False
    )
    reviewer_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    assigned_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    assigned_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    due_date = Column(DateTime, nullable=True)

    status = Column(SQLEnum(AssignmentStatus), nullable=False, default=AssignmentStatus.PENDING)

    __table_args__ = (
        UniqueConstraint('submission_id', 'reviewer_id', name='uq_assignment_submission_reviewer'),
        Index('idx_assignment_reviewer', 'reviewer_id'),
        Index('idx_assignment_submission', 'submission_id'),
    )

    def __repr__(self):
        return (
            f"<ReviewAssignment(id={self.id}, submission={self.submission_id}, "
            f"reviewer={self.reviewer_id}, status={self.status})>"
        )

    def to_dict(self):
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "reviewer_id": self.reviewer_id,
            "assigned_by": self.assigned_by,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "status": self.status.value if self.status else None,
        }
