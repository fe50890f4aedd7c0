"""
conference_review/rbac.py
Actor identity and role checks

The identity service authenticates users and issues bearer tokens whose
claims carry the user id (`sub`) and role list (`roles`). The core trusts
those claims and only checks role membership and ownership, always through
the pure predicates below.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from conference_review.config.settings import settings
from conference_review.errors import ErrorCode, ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 30

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


class Role(str, Enum):
    USER = "user"
    REVIEWER = "reviewer"
    ADMIN = "admin"


def parse_roles(raw: Optional[Iterable[str]]) -> FrozenSet[Role]:
    """Keep known role names, drop anything else."""
    roles = set()
    for value in raw or []:
        try:
            roles.add(Role(str(getattr(value, "value", value)).strip().lower()))
        except ValueError:
            logger.debug(f"Ignoring unknown role {value!r}")
    return frozenset(roles)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller: user id plus role set."""
    id: int
    roles: FrozenSet[Role] = field(default_factory=frozenset)

    @classmethod
    def of(cls, user_id: int, *roles: str) -> "Actor":
        return cls(id=int(user_id), roles=parse_roles(roles))


# ================= PREDICATES =================

def has_role(actor: Actor, role: Role) -> bool:
    return role in actor.roles


def is_admin(actor: Actor) -> bool:
    return has_role(actor, Role.ADMIN)


def is_reviewer(actor: Actor) -> bool:
    return has_role(actor, Role.REVIEWER)


def is_owner(actor: Actor, resource) -> bool:
    return resource is not None and getattr(resource, "owner_id", None) == actor.id


def require_admin(actor: Actor, action: str = "perform this action") -> None:
    if not is_admin(actor):
        logger.warning(f"[FORBIDDEN] user={actor.id} needs admin to {action}")
        raise ForbiddenError(f"Admin role required to {action}", code=ErrorCode.FORBIDDEN)


def require_owner(actor: Actor, resource, resource_name: str = "submission") -> None:
    if not is_owner(actor, resource):
        logger.warning(f"[FORBIDDEN] user={actor.id} is not the owner of this {resource_name}")
        raise ForbiddenError(
            f"This {resource_name} does not belong to you",
            code=ErrorCode.OWNERSHIP_VIOLATION
        )


# ================= TOKEN UTILS =================

def create_access_token(user_id: int, roles: Iterable[str], expires_delta: Optional[timedelta] = None) -> str:
    """Issue a token in the identity service's format (tests and tooling)."""
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": str(user_id),
        "roles": [getattr(r, "value", r) for r in roles],
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate JWT token"""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


async def get_current_actor(token: Optional[str] = Depends(oauth2_scheme)) -> Actor:
    """FastAPI dependency: bearer token -> Actor."""
    if not token:
        raise UnauthorizedError("Authentication required", code=ErrorCode.AUTH_REQUIRED)

    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        raise UnauthorizedError()

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise UnauthorizedError()

    return Actor(id=user_id, roles=parse_roles(payload.get("roles")))
