"""
Tests for the application state machine.
"""

from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import insert, select, update

from api.services import applications, lifecycle
from core.errors import (
    Conflict,
    Forbidden,
    InvalidStatus,
    InvalidTransition,
    NotFound,
)
from database.models import (
    Application,
    ApplicationStatus,
    ApplicationTimelineEntry,
    Job,
    Notification,
    NotificationType,
    User,
)

S = ApplicationStatus


async def reload(session_factory, application_id):
    async with session_factory() as s:
        return await lifecycle.load_application(s, application_id)


async def job_counts(session_factory, job_id):
    async with session_factory() as s:
        job = await s.get(Job, job_id)
        return job.application_counts.as_dict()


async def notifications_for(session_factory, user_id):
    async with session_factory() as s:
        result = await s.execute(
            select(Notification)
            .where(Notification.recipient_id == user_id)
            .order_by(Notification.id)
        )
        return list(result.scalars().all())


@pytest_asyncio.fixture
async def world(seed, session_factory):
    """An active job with one pending application."""
    recruiter = await seed.recruiter()
    job = await seed.job(recruiter)
    applicant = await seed.applicant()
    async with session_factory() as s:
        application = await applications.apply(s, job.id, applicant, cover_letter="Hello")
    return SimpleNamespace(
        recruiter=recruiter, job=job, applicant=applicant, application=application
    )


class TestParseStatus:
    """Target status parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("shortlisted", S.SHORTLISTED),
        ("Shortlisted", S.SHORTLISTED),
        (" offered ", S.OFFERED),
        (S.REJECTED, S.REJECTED),
    ])
    def test_known_statuses(self, raw, expected):
        assert lifecycle.parse_status(raw) == expected

    @pytest.mark.parametrize("raw", ["hired", "", None, "short-listed-ish"])
    def test_unknown_status_is_invalid(self, raw):
        with pytest.raises(InvalidStatus) as exc_info:
            lifecycle.parse_status(raw)
        assert exc_info.value.code == "INVALID_STATUS"

    @pytest.mark.asyncio
    async def test_invalid_status_wins_over_missing_application(self, session):
        with pytest.raises(InvalidStatus):
            await lifecycle.transition(session, 123456, "hired", SimpleNamespace(id=1))


class TestTransition:
    """Moving an application between statuses."""

    @pytest.mark.asyncio
    async def test_recruiter_shortlists(self, world, session, session_factory, email_queue):
        application = await lifecycle.transition(
            session, world.application.id, "shortlisted", world.recruiter, notes="Strong CV"
        )

        assert application.status == S.SHORTLISTED
        assert application.version == world.application.version + 1

        stored = await reload(session_factory, application.id)
        assert stored.status == S.SHORTLISTED
        assert [e.status for e in stored.timeline] == [S.PENDING, S.SHORTLISTED]
        assert stored.timeline[-1].notes == "Strong CV"
        assert stored.timeline[-1].updated_by == world.recruiter.id
        assert stored.updated_by == world.recruiter.id

        assert await job_counts(session_factory, world.job.id) == {
            "total": 1, "shortlisted": 1, "rejected": 0,
        }

        sent = await notifications_for(session_factory, world.applicant.id)
        assert len(sent) == 1
        assert sent[0].type == NotificationType.APPLICATION_STATUS_CHANGE
        assert "Python Developer" in sent[0].message
        assert "shortlisted" in sent[0].message

        # One email for the apply, one for the shortlist
        assert [e.to for e in email_queue.sent] == [world.recruiter.email, world.applicant.email]

    @pytest.mark.asyncio
    async def test_ordering_is_not_enforced(self, world, session, session_factory):
        await lifecycle.transition(session, world.application.id, S.OFFERED, world.recruiter)
        await lifecycle.transition(session, world.application.id, S.SHORTLISTED, world.recruiter)
        await lifecycle.transition(session, world.application.id, S.REVIEWED, world.recruiter)

        stored = await reload(session_factory, world.application.id)
        assert [e.status for e in stored.timeline] == [
            S.PENDING, S.OFFERED, S.SHORTLISTED, S.REVIEWED,
        ]
        assert await job_counts(session_factory, world.job.id) == {
            "total": 1, "shortlisted": 0, "rejected": 0,
        }

    @pytest.mark.asyncio
    async def test_admin_may_move_any_application(self, world, seed, session):
        admin = await seed.admin()

        application = await lifecycle.transition(
            session, world.application.id, S.REJECTED, admin
        )

        assert application.status == S.REJECTED

    @pytest.mark.asyncio
    async def test_same_status_is_recorded_without_counter_change(
        self, world, session, session_factory
    ):
        await lifecycle.transition(session, world.application.id, S.SHORTLISTED, world.recruiter)
        await lifecycle.transition(session, world.application.id, S.SHORTLISTED, world.recruiter)

        stored = await reload(session_factory, world.application.id)
        assert len(stored.timeline) == 3
        assert await job_counts(session_factory, world.job.id) == {
            "total": 1, "shortlisted": 1, "rejected": 0,
        }
        # One notification per event, no coalescing
        assert len(await notifications_for(session_factory, world.applicant.id)) == 2

    @pytest.mark.asyncio
    async def test_unknown_application(self, world, session):
        with pytest.raises(NotFound):
            await lifecycle.transition(session, 987654, S.REVIEWED, world.recruiter)


class TestTerminalStates:
    """No transitions out of accepted, rejected or withdrawn."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("terminal", [S.ACCEPTED, S.REJECTED])
    async def test_recruiter_terminals_are_final(self, world, session, session_factory, terminal):
        await lifecycle.transition(session, world.application.id, terminal, world.recruiter)

        for target in (S.REVIEWED, S.SHORTLISTED, S.REJECTED, S.ACCEPTED):
            with pytest.raises(InvalidTransition):
                await lifecycle.transition(session, world.application.id, target, world.recruiter)
        with pytest.raises(InvalidTransition):
            await lifecycle.transition(session, world.application.id, S.WITHDRAWN, world.applicant)

        stored = await reload(session_factory, world.application.id)
        assert stored.status == terminal
        assert len(stored.timeline) == 2

    @pytest.mark.asyncio
    async def test_withdrawn_is_final(self, world, session):
        await lifecycle.withdraw(session, world.application.id, world.applicant)

        with pytest.raises(InvalidTransition) as exc_info:
            await lifecycle.transition(session, world.application.id, S.REVIEWED, world.recruiter)
        assert exc_info.value.status_code == 409


class TestActorRestrictions:
    """Who may set which status."""

    @pytest.mark.asyncio
    async def test_recruiter_cannot_withdraw(self, world, session, session_factory):
        with pytest.raises(Forbidden):
            await lifecycle.transition(session, world.application.id, S.WITHDRAWN, world.recruiter)

        stored = await reload(session_factory, world.application.id)
        assert stored.status == S.PENDING
        assert stored.is_withdrawn is False

    @pytest.mark.asyncio
    async def test_admin_cannot_withdraw_for_applicant(self, world, seed, session):
        admin = await seed.admin()
        with pytest.raises(Forbidden):
            await lifecycle.transition(session, world.application.id, S.WITHDRAWN, admin)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", [S.REVIEWED, S.SHORTLISTED, S.OFFERED, S.ACCEPTED])
    async def test_applicant_cannot_promote_themself(self, world, session, target):
        with pytest.raises(Forbidden):
            await lifecycle.transition(session, world.application.id, target, world.applicant)

    @pytest.mark.asyncio
    async def test_other_recruiter_is_forbidden(self, world, seed, session, session_factory):
        outsider = await seed.recruiter()
        with pytest.raises(Forbidden):
            await lifecycle.transition(session, world.application.id, S.SHORTLISTED, outsider)

        assert await job_counts(session_factory, world.job.id) == {
            "total": 1, "shortlisted": 0, "rejected": 0,
        }

    @pytest.mark.asyncio
    async def test_nobody_may_set_pending(self, world, session):
        for actor in (world.recruiter, world.applicant):
            with pytest.raises(Forbidden):
                await lifecycle.transition(session, world.application.id, S.PENDING, actor)

    @pytest.mark.asyncio
    async def test_inactive_recruiter_is_forbidden(self, seed, session, session_factory):
        recruiter = await seed.recruiter(is_active=False)
        job = await seed.job(recruiter)
        applicant = await seed.applicant()
        application = await seed.application(job, applicant)

        with pytest.raises(Forbidden):
            await lifecycle.transition(session, application.id, S.REVIEWED, recruiter)


class TestWithdraw:
    """Applicant withdrawal."""

    @pytest.mark.asyncio
    async def test_withdraw_sets_flags_and_notifies_recruiter(
        self, world, session, session_factory, email_queue
    ):
        application = await lifecycle.withdraw(session, world.application.id, world.applicant)

        assert application.status == S.WITHDRAWN
        assert application.is_withdrawn is True
        assert application.withdrawn_at is not None
        assert application.withdrawn_reason == lifecycle.DEFAULT_WITHDRAW_NOTE

        stored = await reload(session_factory, application.id)
        assert stored.timeline[-1].notes == "Application withdrawn by applicant"
        assert stored.timeline[-1].updated_by == world.applicant.id

        recruiter_inbox = await notifications_for(session_factory, world.recruiter.id)
        assert [n.type for n in recruiter_inbox] == [
            NotificationType.JOB_APPLICATION,
            NotificationType.APPLICATION_STATUS_CHANGE,
        ]
        assert recruiter_inbox[-1].title == "Application Withdrawn"
        assert recruiter_inbox[-1].message.endswith(
            f"has withdrawn their application for {world.job.title}"
        )
        assert await notifications_for(session_factory, world.applicant.id) == []
        # Withdrawal sends no email
        assert len(email_queue.sent) == 1

    @pytest.mark.asyncio
    async def test_withdraw_from_shortlist_releases_bucket(self, world, session, session_factory):
        await lifecycle.transition(session, world.application.id, S.INTERVIEWED, world.recruiter)
        await lifecycle.withdraw(session, world.application.id, world.applicant, reason="Took another offer")

        stored = await reload(session_factory, world.application.id)
        assert stored.withdrawn_reason == "Took another offer"
        assert await job_counts(session_factory, world.job.id) == {
            "total": 1, "shortlisted": 0, "rejected": 0,
        }


class TestOptimisticConcurrency:
    """Stale writes surface as Conflict."""

    @pytest.mark.asyncio
    async def test_expected_version_mismatch(self, world, session, session_factory):
        await lifecycle.transition(session, world.application.id, S.REVIEWED, world.recruiter)

        with pytest.raises(Conflict) as exc_info:
            await lifecycle.transition(
                session,
                world.application.id,
                S.SHORTLISTED,
                world.recruiter,
                expected_version=world.application.version,
            )
        assert exc_info.value.retryable is True

        stored = await reload(session_factory, world.application.id)
        assert stored.status == S.REVIEWED

    @pytest.mark.asyncio
    async def test_matching_expected_version_succeeds(self, world, session):
        application = await lifecycle.transition(
            session,
            world.application.id,
            S.REVIEWED,
            world.recruiter,
            expected_version=world.application.version,
        )
        assert application.status == S.REVIEWED

    @pytest.mark.asyncio
    async def test_concurrent_writer_detected_on_flush(
        self, world, session, session_factory, monkeypatch
    ):
        original = lifecycle.load_application

        async def load_then_race(s, application_id):
            application = await original(s, application_id)
            # Someone else commits a transition between our read and our write
            await s.execute(
                update(Application)
                .where(Application.id == application_id)
                .values(version=Application.version + 1)
                .execution_options(synchronize_session=False)
            )
            return application

        monkeypatch.setattr(lifecycle, "load_application", load_then_race)

        with pytest.raises(Conflict):
            await lifecycle.transition(session, world.application.id, S.SHORTLISTED, world.recruiter)

        monkeypatch.setattr(lifecycle, "load_application", original)
        stored = await reload(session_factory, world.application.id)
        assert stored.status == S.PENDING
        assert len(stored.timeline) == 1
        assert await job_counts(session_factory, world.job.id) == {
            "total": 1, "shortlisted": 0, "rejected": 0,
        }

    @pytest.mark.asyncio
    async def test_same_status_move_bumps_version(self, world, session, session_factory):
        reviewed = await lifecycle.transition(
            session, world.application.id, S.REVIEWED, world.recruiter
        )
        seen = reviewed.version

        await lifecycle.transition(session, world.application.id, S.REVIEWED, world.recruiter)

        with pytest.raises(Conflict):
            await lifecycle.transition(
                session,
                world.application.id,
                S.SHORTLISTED,
                world.recruiter,
                expected_version=seen,
            )

        stored = await reload(session_factory, world.application.id)
        assert stored.version == seen + 1
        assert [e.status for e in stored.timeline] == [S.PENDING, S.REVIEWED, S.REVIEWED]

    @pytest.mark.asyncio
    async def test_concurrent_timeline_append_is_conflict(
        self, world, session, session_factory, monkeypatch
    ):
        original = lifecycle.load_application

        async def load_then_append(s, application_id):
            application = await original(s, application_id)
            # Another writer appended the next entry without touching the row
            await s.execute(
                insert(ApplicationTimelineEntry).values(
                    application_id=application_id,
                    sequence=len(application.timeline) + 1,
                    status=S.PENDING,
                    updated_by=world.recruiter.id,
                )
            )
            return application

        monkeypatch.setattr(lifecycle, "load_application", load_then_append)
        actor = await session.get(User, world.recruiter.id)

        with pytest.raises(Conflict) as exc_info:
            await lifecycle.transition(session, world.application.id, S.REVIEWED, actor)
        assert exc_info.value.retryable is True

        monkeypatch.setattr(lifecycle, "load_application", original)
        stored = await reload(session_factory, world.application.id)
        assert stored.status == S.PENDING
        assert len(stored.timeline) == 1
        assert stored.version == world.application.version


class TestTimelineImmutability:
    """Timeline entries are insert-only."""

    @pytest.mark.asyncio
    async def test_editing_an_entry_is_rejected(self, world, session):
        result = await session.execute(
            select(ApplicationTimelineEntry).where(
                ApplicationTimelineEntry.application_id == world.application.id
            )
        )
        entry = result.scalar_one()
        entry.notes = "rewritten history"

        with pytest.raises(ValueError, match="append-only"):
            await session.flush()
        await session.rollback()

    def test_status_matches_last_entry_after_record(self):
        application = Application(job_id=1, applicant_id=2, talent_id=3)
        application.record(S.PENDING, 2)
        application.record(S.REVIEWED, 9, notes="Seen")

        assert application.status == application.last_timeline_status == S.REVIEWED
        assert [e.sequence for e in application.timeline] == [1, 2]
