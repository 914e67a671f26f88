"""
Application Models

A talent's application to a job, plus its append-only status timeline.
Status changes go through ``api.services.lifecycle.transition``; nothing else
writes ``Application.status``.
"""

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy import (
    String,
    Boolean,
    ForeignKey,
    BigInteger,
    Date,
    DateTime,
    func,
    Text,
    Float,
    Enum as SQLEnum,
    Index,
    UniqueConstraint,
    event,
    text,
)
from database.engine import Base, IdType
from datetime import date, datetime, timezone
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from database.models.jobs import Job
    from database.models.talents import Talent
    from database.models.users import User


# ==================== Application Enums ===================== #
class ApplicationStatus(str, PyEnum):
    """Canonical statuses for a job application."""

    PENDING = "pending"
    REVIEWED = "reviewed"
    SHORTLISTED = "shortlisted"
    INTERVIEWED = "interviewed"
    OFFERED = "offered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"

    def is_terminal(self) -> bool:
        return self in APPLICATION_STATUS_TERMINALS

    def in_shortlisted_family(self) -> bool:
        return self in SHORTLISTED_FAMILY

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @classmethod
    def try_parse(cls, value: str) -> "ApplicationStatus | None":
        if value is None:
            return None
        try:
            normalized = str(value).strip().lower().replace(" ", "_").replace("-", "_")
            return cls(normalized)
        except ValueError:
            return None


class SalaryPeriod(str, PyEnum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# Helpers
APPLICATION_STATUS_TERMINALS = frozenset(
    {
        ApplicationStatus.ACCEPTED,
        ApplicationStatus.REJECTED,
        ApplicationStatus.WITHDRAWN,
    }
)

# Backs Job.applications_shortlisted
SHORTLISTED_FAMILY = frozenset(
    {
        ApplicationStatus.SHORTLISTED,
        ApplicationStatus.INTERVIEWED,
        ApplicationStatus.OFFERED,
    }
)

# Statuses a recruiter (job owner) or admin may set
RECRUITER_STATUSES = frozenset(
    {
        ApplicationStatus.REVIEWED,
        ApplicationStatus.SHORTLISTED,
        ApplicationStatus.INTERVIEWED,
        ApplicationStatus.OFFERED,
        ApplicationStatus.ACCEPTED,
        ApplicationStatus.REJECTED,
    }
)

# Statuses only the applicant may set
APPLICANT_STATUSES = frozenset({ApplicationStatus.WITHDRAWN})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ==================== Application Model ===================== #
class Application(Base):
    """
    Job application - one talent applying to one job.
    At most one non-withdrawn application may exist per (job, applicant);
    enforced by the partial unique index below, not by application code.
    """

    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)

    job_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    applicant_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    talent_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("talents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[ApplicationStatus] = mapped_column(
        SQLEnum(ApplicationStatus, native_enum=False, length=50),
        nullable=False,
        default=ApplicationStatus.PENDING,
        index=True,
    )

    cover_letter: Mapped[str | None] = mapped_column(Text)

    # Expected salary
    expected_salary_amount: Mapped[float | None] = mapped_column(Float)
    expected_salary_currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="USD"
    )
    expected_salary_period: Mapped[SalaryPeriod] = mapped_column(
        SQLEnum(SalaryPeriod, native_enum=False, length=20),
        nullable=False,
        default=SalaryPeriod.MONTHLY,
    )

    # Availability
    available_from: Mapped[date | None] = mapped_column(Date)
    notice_period_days: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )

    # Withdrawal
    is_withdrawn: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    withdrawn_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    withdrawn_reason: Mapped[str | None] = mapped_column(Text)

    # Optimistic concurrency counter, bumped by every UPDATE
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    updated_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id")
    )

    # Relationships
    job: Mapped["Job"] = relationship("Job", back_populates="applications")
    applicant: Mapped["User"] = relationship("User", foreign_keys=[applicant_id])
    talent: Mapped["Talent"] = relationship("Talent")
    timeline: Mapped[list["ApplicationTimelineEntry"]] = relationship(
        "ApplicationTimelineEntry",
        back_populates="application",
        order_by="ApplicationTimelineEntry.sequence",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    __table_args__ = (
        Index(
            "uq_application_job_applicant_active",
            "job_id",
            "applicant_id",
            unique=True,
            postgresql_where=text("NOT is_withdrawn"),
            sqlite_where=text("is_withdrawn = 0"),
        ),
        Index("idx_application_job_status", "job_id", "status"),
        Index("idx_application_applicant_status", "applicant_id", "status"),
        Index("idx_application_created_at", "created_at"),
    )

    def record(
        self,
        status: ApplicationStatus,
        updated_by: int,
        notes: str | None = None,
        at: datetime | None = None,
    ) -> "ApplicationTimelineEntry":
        """
        Set ``status`` and append the matching timeline entry.

        ``updated_at`` is always flagged so a repeated status still issues a
        versioned UPDATE and bumps ``version``.
        """
        at = at or utcnow()
        entry = ApplicationTimelineEntry(
            sequence=len(self.timeline) + 1,
            status=status,
            date=at,
            notes=notes,
            updated_by=updated_by,
        )
        self.status = status
        self.updated_by = updated_by
        self.updated_at = at
        flag_modified(self, "updated_at")
        self.timeline.append(entry)
        return entry

    @property
    def last_timeline_status(self) -> ApplicationStatus | None:
        return self.timeline[-1].status if self.timeline else None


# ==================== Application Timeline ===================== #
class ApplicationTimelineEntry(Base):
    """
    One immutable entry of an application's audit trail.
    Entries are only ever inserted; ``sequence`` orders them.
    """

    __tablename__ = "application_timeline"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[ApplicationStatus] = mapped_column(
        SQLEnum(ApplicationStatus, native_enum=False, length=50),
        nullable=False,
    )
    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    notes: Mapped[str | None] = mapped_column(Text)
    updated_by: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )

    application: Mapped["Application"] = relationship(
        "Application", back_populates="timeline"
    )

    __table_args__ = (
        UniqueConstraint(
            "application_id", "sequence", name="uq_application_timeline_sequence"
        ),
    )


@event.listens_for(ApplicationTimelineEntry, "before_update")
def _reject_timeline_update(mapper, connection, target):
    raise ValueError("Application timeline entries are append-only")
