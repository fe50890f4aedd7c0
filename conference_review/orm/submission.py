"""
conference_review/orm/submission.py
Paper submissions and their lifecycle audit log
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, UniqueConstraint, Enum as SQLEnum
from datetime import datetime
from enum import Enum as PyEnum

from conference_review.core.db_types import StringList
from conference_review.orm.base import Base


class SubmissionStatus(str, PyEnum):
    """Submission lifecycle status"""
    DRAFT = "draft"                            # Being edited by the author
    SUBMITTED = "submitted"                    # Waiting for the committee
    UNDER_REVIEW = "under_review"              # Review round opened by an admin
    ACCEPTED = "accepted"                      # Terminal
    REJECTED = "rejected"                      # Terminal
    REVISION_REQUESTED = "revision_requested"  # Back with the author


class Submission(Base):
    """
    An author's paper entry for one event.
    The status column is only ever written through compare-and-set updates
    in the lifecycle service.
    """
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)

    # Events are managed outside the review core
    event_id = Column(Integer, nullable=False, index=True)
    owner_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Paper details
    title = Column(String(500), nullable=False, default="")
    abstract = Column(Text, nullable=False, default="")
    keywords = Column(StringList, nullable=False, default=list)
    corresponding_author = Column(String(255), nullable=False, default="")
    co_authors = Column(Text, nullable=True)

    # Blob reference (opaque to the core)
    pdf_url = Column(String(1000), nullable=True)
    pdf_filename = Column(String(255), nullable=True)
    pdf_size = Column(Integer, nullable=True)  # Size in bytes

    status = Column(SQLEnum(SubmissionStatus), default=SubmissionStatus.DRAFT, nullable=False, index=True)
    submitted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # One submission per author per event
    __table_args__ = (
        UniqueConstraint('owner_id', 'event_id', name='uq_submission_owner_event'),
    )

    def __repr__(self):
        return f"<Submission(id={self.id}, event={self.event_id}, status={self.status})>"

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "owner_id": self.owner_id,
            "title": self.title,
            "abstract": self.abstract,
            "keywords": list(self.keywords or []),
            "corresponding_author": self.corresponding_author,
            "co_authors": self.co_authors,
            "pdf_url": self.pdf_url,
            "pdf_filename": self.pdf_filename,
            "pdf_size": self.pdf_size,
            "status": self.status.value if self.status else None,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }


class SubmissionStatusLog(Base):
    """
    Audit log for lifecycle actions (submit, decide, delete, ...).
    submission_id carries no foreign key so hard deletes stay traceable.
    """
    __tablename__ = "submission_status_logs"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, nullable=False, index=True)

    action = Column(String(50), nullable=False)
    from_status = Column(String(30), nullable=True)
    to_status = Column(String(30), nullable=True)
    actor_id = Column(Integer, nullable=True)
    comments = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "action": self.action,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "comments": self.comments,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }
