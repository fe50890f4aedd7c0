"""
conference_review/orm/user.py
Portal user as seen by the review core

Accounts are owned by the identity service; the core only needs the
role list (reviewer checks) and the contact fields (notifications).
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime

from conference_review.core.db_types import StringList
from conference_review.orm.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    email = Column(String(255), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    affiliation = Column(String(255), nullable=True)

    # Subset of {"user", "reviewer", "admin"}
    roles = Column(StringList, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def has_role(self, role: str) -> bool:
        return getattr(role, "value", role) in (self.roles or [])

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, roles={self.roles})>"

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "affiliation": self.affiliation,
            "roles": list(self.roles or []),
        }
