"""
Shared fixtures: in-memory database, users, actors and a recording mail sender.
"""
from typing import AsyncGenerator, List

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from conference_review.config.settings import settings
from conference_review.orm import Base, User
from conference_review.rbac import Actor
from conference_review.services import lifecycle_service, notification_service
from conference_review.services.notification_service import (
    DecisionNotifier, EmailDeliveryError, EmailMessage, EmailSender
)

TEST_DATABASE_URL = "sqlite+aiosqlite://"

VALID_SUBMISSION = {
    "event_id": 1,
    "title": "Sparse Attention for Long Documents",
    "abstract": "We study sparse attention patterns for documents beyond 32k tokens.",
    "keywords": ["attention", "long context"],
    "corresponding_author": "Ada Lovelace",
    "co_authors": "Charles Babbage",
    "pdf_url": "https://blobs.example.org/submissions/paper.pdf",
    "pdf_filename": "paper.pdf",
    "pdf_size": 204800,
}


class RecordingEmailSender(EmailSender):
    """Keeps every message; raises when `fail` is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        if self.fail:
            raise EmailDeliveryError("provider unavailable")
        self.sent.append(message)

    def templates(self) -> List[str]:
        return [m.template for m in self.sent]


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session


@pytest.fixture
def sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def notifier(sender) -> DecisionNotifier:
    return DecisionNotifier(sender)


@pytest.fixture(autouse=True)
def _recording_notifier(monkeypatch, notifier):
    """Route every default notifier lookup to the recording sender."""
    monkeypatch.setattr(notification_service, "_notifier", notifier)
    monkeypatch.setattr(settings, "EMAIL_NOTIFICATIONS_ENABLED", True)


async def _make_user(db: AsyncSession, email: str, first: str, last: str, roles: List[str]) -> User:
    user = User(email=email, first_name=first, last_name=last, roles=roles)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def author(db_session) -> User:
    return await _make_user(db_session, "ada@example.org", "Ada", "Lovelace", ["user"])


@pytest_asyncio.fixture
async def other_author(db_session) -> User:
    return await _make_user(db_session, "grace@example.org", "Grace", "Hopper", ["user"])


@pytest_asyncio.fixture
async def admin(db_session) -> User:
    return await _make_user(db_session, "chair@example.org", "Program", "Chair", ["user", "admin"])


@pytest_asyncio.fixture
async def reviewer(db_session) -> User:
    return await _make_user(db_session, "alan@example.org", "Alan", "Turing", ["user", "reviewer"])


@pytest_asyncio.fixture
async def second_reviewer(db_session) -> User:
    return await _make_user(db_session, "barbara@example.org", "Barbara", "Liskov", ["user", "reviewer"])


def actor_for(user: User) -> Actor:
    return Actor.of(user.id, *user.roles)


@pytest.fixture
def author_actor(author) -> Actor:
    return actor_for(author)


@pytest.fixture
def admin_actor(admin) -> Actor:
    return actor_for(admin)


@pytest.fixture
def reviewer_actor(reviewer) -> Actor:
    return actor_for(reviewer)


@pytest_asyncio.fixture
async def draft(db_session, author_actor):
    """A complete draft owned by `author`."""
    return await lifecycle_service.create_submission(db_session, author_actor, dict(VALID_SUBMISSION))


@pytest_asyncio.fixture
async def submitted(db_session, draft, author_actor):
    return await lifecycle_service.submit(db_session, draft.id, author_actor)


@pytest_asyncio.fixture
async def under_review(db_session, submitted, admin_actor):
    return await lifecycle_service.admin_start_review(db_session, submitted.id, admin_actor)
