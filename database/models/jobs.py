"""
Jobs Module

Job postings owned by a recruiter. The ``applications_*`` columns are a
cached aggregate over the Application rows of the job; they are only ever
changed through atomic increments issued by ``api.services.counters``.
"""

from dataclasses import dataclass
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Boolean,
    ForeignKey,
    BigInteger,
    DateTime,
    func,
    Text,
    Enum as SQLEnum,
    Index,
    CheckConstraint,
)
from database.engine import Base, IdType
from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from database.models.applications import Application
    from database.models.users import User


# ==================== Job Enums ===================== #
class JobStatus(str, PyEnum):
    """Job posting status."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"
    EXPIRED = "expired"

    @property
    def accepts_applications(self) -> bool:
        return self is JobStatus.ACTIVE


class JobVisibility(str, PyEnum):
    """Who can see the posting."""

    PUBLIC = "public"
    PRIVATE = "private"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ApplicationCounts:
    """Snapshot of a job's cached application counters."""

    total: int = 0
    shortlisted: int = 0
    rejected: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "shortlisted": self.shortlisted,
            "rejected": self.rejected,
        }


# ==================== Job Model ===================== #
class Job(Base):
    """A job posting owned by exactly one recruiter."""

    __tablename__ = "jobs"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    recruiter_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    company_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    location: Mapped[str | None] = mapped_column(String(200))

    status: Mapped[JobStatus] = mapped_column(
        SQLEnum(JobStatus, native_enum=False, length=50),
        nullable=False,
        default=JobStatus.DRAFT,
        index=True,
    )
    visibility: Mapped[JobVisibility] = mapped_column(
        SQLEnum(JobVisibility, native_enum=False, length=50),
        nullable=False,
        default=JobVisibility.PUBLIC,
        index=True,
    )
    is_urgent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Cached counters, see api.services.counters
    applications_total: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default="0"
    )
    applications_shortlisted: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default="0"
    )
    applications_rejected: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default="0"
    )

    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    recruiter: Mapped["User"] = relationship("User")
    applications: Mapped[list["Application"]] = relationship(
        "Application",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("applications_total >= 0", name="ck_job_applications_total"),
        CheckConstraint(
            "applications_shortlisted >= 0", name="ck_job_applications_shortlisted"
        ),
        CheckConstraint(
            "applications_rejected >= 0", name="ck_job_applications_rejected"
        ),
        Index("idx_job_status_visibility", "status", "visibility"),
    )

    @property
    def application_counts(self) -> ApplicationCounts:
        return ApplicationCounts(
            total=self.applications_total,
            shortlisted=self.applications_shortlisted,
            rejected=self.applications_rejected,
        )

    def is_managed_by(self, user: "User") -> bool:
        """Owner recruiter or a platform admin."""
        return user.is_admin or user.id == self.recruiter_id
