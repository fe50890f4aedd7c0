"""
conference_review
Submission review lifecycle core for the conference portal.
"""

__version__ = "1.0.0"
