"""Shared fixtures and utilities for tests."""

import os

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("JSON_LOGS", "false")
os.environ.setdefault("FRONTEND_URL", "http://app.test")

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import database.models  # noqa: F401
from api.services import notifications as notification_service
from api.services.talents import find_by_user
from database.engine import Base, get_db
from database.models import (
    Application,
    ApplicationStatus,
    Job,
    JobStatus,
    Notification,
    NotificationPriority,
    NotificationType,
    Talent,
    User,
    UserRole,
)


class RecordingEmailQueue:
    """Collects outbound emails instead of publishing them to Celery."""

    def __init__(self):
        self.sent = []

    def enqueue(self, email):
        self.sent.append(email)


@pytest.fixture(autouse=True)
def email_queue(monkeypatch):
    queue = RecordingEmailQueue()
    monkeypatch.setattr(notification_service, "email_queue", queue)
    return queue


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs behave
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


class Seed:
    """Creates committed rows for tests."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def _save(self, obj):
        async with self.session_factory() as session:
            session.add(obj)
            await session.commit()
        return obj

    async def user(self, role: UserRole = UserRole.TALENT, is_active: bool = True, **kwargs) -> User:
        n = self._next()
        return await self._save(
            User(
                email=kwargs.pop("email", f"{role.value}{n}@example.com"),
                first_name=kwargs.pop("first_name", role.value.title()),
                last_name=kwargs.pop("last_name", f"Number{n}"),
                role=role,
                is_active=is_active,
                **kwargs,
            )
        )

    async def talent(self, user: User = None, **kwargs) -> Talent:
        user = user or await self.user(UserRole.TALENT)
        return await self._save(
            Talent(user_id=user.id, headline=kwargs.pop("headline", "Backend engineer"), **kwargs)
        )

    async def applicant(self, **kwargs) -> User:
        """A talent user with a profile."""
        user = await self.user(UserRole.TALENT, **kwargs)
        await self.talent(user)
        return user

    async def recruiter(self, **kwargs) -> User:
        return await self.user(UserRole.RECRUITER, **kwargs)

    async def admin(self, **kwargs) -> User:
        return await self.user(UserRole.ADMIN, **kwargs)

    async def job(
        self,
        recruiter: User = None,
        status: JobStatus = JobStatus.ACTIVE,
        **kwargs,
    ) -> Job:
        recruiter = recruiter or await self.recruiter()
        return await self._save(
            Job(
                recruiter_id=recruiter.id,
                title=kwargs.pop("title", "Python Developer"),
                company_name=kwargs.pop("company_name", "Acme Corp"),
                status=status,
                **kwargs,
            )
        )

    async def notification(self, recipient: User, **kwargs) -> Notification:
        now = datetime.now(timezone.utc)
        return await self._save(
            Notification(
                recipient_id=recipient.id,
                type=kwargs.pop("type", NotificationType.SYSTEM_MESSAGE),
                title=kwargs.pop("title", "Hello"),
                message=kwargs.pop("message", "Welcome aboard"),
                priority=kwargs.pop("priority", NotificationPriority.LOW),
                expires_at=kwargs.pop("expires_at", now + timedelta(days=30)),
                **kwargs,
            )
        )

    async def application(
        self,
        job: Job,
        applicant: User,
        status: ApplicationStatus = ApplicationStatus.PENDING,
    ) -> Application:
        """Insert an application directly, bypassing intake and counters."""
        async with self.session_factory() as session:
            talent = await find_by_user(session, applicant.id)
            application = Application(
                job_id=job.id,
                applicant_id=applicant.id,
                talent_id=talent.id,
                is_withdrawn=status == ApplicationStatus.WITHDRAWN,
            )
            application.record(status, applicant.id)
            session.add(application)
            await session.commit()
        return application


@pytest.fixture
def seed(session_factory):
    return Seed(session_factory)


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP client against the app, with ``get_db`` bound to the test database."""
    from api.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
