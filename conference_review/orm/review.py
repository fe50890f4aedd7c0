"""
conference_review/orm/review.py
Per-reviewer evaluation of a submission
"""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, Float, Boolean, DateTime, Text, ForeignKey,
    Index, UniqueConstraint, Enum as SQLEnum
)

from conference_review.orm.base import Base


class ReviewRecommendation(str, PyEnum):
    ACCEPT = "accept"
    REJECT = "reject"


# Criterion columns, in display order
SCORE_FIELDS = (
    "originality_score",
    "methodology_score",
    "clarity_score",
    "contribution_score",
)

TEXT_FIELDS = (
    "strengths",
    "weaknesses",
    "comments_to_authors",
    "comments_to_committee",
)

MIN_SCORE = 1
MAX_SCORE = 5


class Review(Base):
    """
    One review per (submission, reviewer).
    Read-only once is_completed is set.
    """
    __tablename__ = "reviews"

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

    # Criterion scores (1-5), optional until set
    originality_score = Column(Integer, nullable=True)
    methodology_score = Column(Integer, nullable=True)
    clarity_score = Column(Integer, nullable=True)
    contribution_score = Column(Integer, nullable=True)

    # Mean of the criterion scores that are set
    overall_score = Column(Float, nullable=True)

    strengths = Column(Text, nullable=True)
    weaknesses = Column(Text, nullable=True)
    comments_to_authors = Column(Text, nullable=True)
    comments_to_committee = Column(Text, nullable=True)

    recommendation = Column(SQLEnum(ReviewRecommendation), nullable=True)
    is_completed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('submission_id', 'reviewer_id', name='uq_review_submission_reviewer'),
        Index('idx_review_submission', 'submission_id'),
    )

    def scores(self) -> dict:
        return {field: getattr(self, field) for field in SCORE_FIELDS}

    def __repr__(self):
        return (
            f"<Review(id={self.id}, submission={self.submission_id}, "
            f"reviewer={self.reviewer_id}, completed={self.is_completed})>"
        )

    def to_dict(self, include_committee_comments: bool = True):
        data = {
            "id": self.id,
            "submission_id": self.submission_id,
            "reviewer_id": self.reviewer_id,
            **self.scores(),
            "overall_score": self.overall_score,
            "strengths": self.strengths,
            "weaknesses": self.weaknesses,
            "comments_to_authors": self.comments_to_authors,
            "recommendation": self.recommendation.value if self.recommendation else None,
            "is_completed": self.is_completed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }
        if include_committee_comments:
            data["comments_to_committee"] = self.comments_to_committee
        return data
