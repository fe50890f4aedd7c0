from .base import Base

from .user import User
from .submission import Submission, SubmissionStatus, SubmissionStatusLog
from .assignment import ReviewAssignment, AssignmentStatus
from .review import Review, ReviewRecommendation


__all__ = [
    "Base",
    "User",
    "Submission",
    "SubmissionStatus",
    "SubmissionStatusLog",
    "ReviewAssignment",
    "AssignmentStatus",
    "Review",
    "ReviewRecommendation",
]
