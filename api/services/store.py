"""
Transaction boundary for lifecycle operations.

Each lifecycle operation runs inside one ``unit_of_work``: everything it
writes is committed together or rolled back together, and store failures
come out as ``core.errors`` kinds instead of driver exceptions.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator
import logging

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from core.errors import Conflict, LifecycleError, Unavailable

logger = logging.getLogger(__name__)

# Fragments that identify the one-active-application-per-job constraint
DUPLICATE_APPLICATION_MARKERS = (
    "uq_application_job_applicant_active",
    "applications.job_id, applications.applicant_id",
)


def is_duplicate_application(exc: IntegrityError) -> bool:
    """True when ``exc`` is a violation of the (job, applicant) unique index."""
    message = str(exc.orig) if exc.orig is not None else str(exc)
    return any(marker in message for marker in DUPLICATE_APPLICATION_MARKERS)


TIMELINE_SEQUENCE_MARKERS = (
    "uq_application_timeline_sequence",
    "application_timeline.application_id, application_timeline.sequence",
)


def is_timeline_race(exc: IntegrityError) -> bool:
    """True when another writer appended the same timeline sequence first."""
    message = str(exc.orig) if exc.orig is not None else str(exc)
    return any(marker in message for marker in TIMELINE_SEQUENCE_MARKERS)


def is_store_unavailable(exc: Exception) -> bool:
    if isinstance(exc, (OperationalError, PoolTimeoutError, TimeoutError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


async def _safe_rollback(session: AsyncSession) -> None:
    try:
        await session.rollback()
    except Exception:
        logger.warning("Rollback failed after lifecycle error", exc_info=True)


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Commit on success, roll back on any failure.

    Raises:
        Conflict: an optimistic-concurrency check failed on flush/commit
        Unavailable: the store could not be reached or timed out
    """
    try:
        yield session
        await session.commit()
    except LifecycleError:
        await _safe_rollback(session)
        raise
    except StaleDataError as exc:
        await _safe_rollback(session)
        logger.warning(f"Stale write rejected: {exc}")
        raise Conflict() from exc
    except IntegrityError as exc:
        await _safe_rollback(session)
        if is_timeline_race(exc):
            logger.warning("Concurrent timeline append rejected")
            raise Conflict() from exc
        raise
    except Exception as exc:
        await _safe_rollback(session)
        if is_store_unavailable(exc):
            logger.error("Record store unavailable", exc_info=True)
            raise Unavailable() from exc
        raise
