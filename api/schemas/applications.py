"""Application-related Pydantic schemas."""

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from api.schemas.common import TimestampMixin
from database.models.applications import Application, ApplicationStatus, SalaryPeriod


class ExpectedSalary(BaseModel):
    """Salary expectation attached to an application."""

    amount: Optional[float] = Field(None, ge=0, description="Expected amount")
    currency: str = Field(default="USD", min_length=3, max_length=3, description="ISO 4217 currency")
    period: SalaryPeriod = Field(default=SalaryPeriod.MONTHLY, description="Pay period")

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().upper()
        return v


class Availability(BaseModel):
    start_date: Optional[date] = Field(None, description="Earliest start date")
    notice_period_days: int = Field(default=0, ge=0, le=90, description="Notice period in days")


class ApplicationCreate(BaseModel):
    """Schema for applying to a job."""

    cover_letter: Optional[str] = Field(None, max_length=2000, description="Cover letter")
    expected_salary: Optional[ExpectedSalary] = None
    availability: Optional[Availability] = None


class StatusUpdate(BaseModel):
    """
    Schema for moving an application to a new status.

    ``status`` stays a plain string so unknown values are reported as
    INVALID_STATUS by the lifecycle rather than as a schema error.
    """

    status: str = Field(min_length=1, max_length=50, description="Target status")
    notes: Optional[str] = Field(None, max_length=1000, description="Timeline note")
    expected_version: Optional[int] = Field(
        None, ge=1, description="Version the caller last saw; stale values are rejected"
    )


class WithdrawRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000, description="Why the application is withdrawn")
    expected_version: Optional[int] = Field(None, ge=1)


class TimelineEntryResponse(BaseModel):
    """One entry of an application's status history."""

    sequence: int
    status: ApplicationStatus
    date: datetime
    notes: Optional[str] = None
    updated_by: int

    class Config:
        from_attributes = True


class ApplicationResponse(TimestampMixin):
    """Schema for application response."""

    id: int = Field(description="Unique application identifier")
    job_id: int
    applicant_id: int
    talent_id: int
    status: ApplicationStatus
    cover_letter: Optional[str] = None
    expected_salary: Optional[ExpectedSalary] = None
    availability: Availability
    is_withdrawn: bool = False
    withdrawn_at: Optional[datetime] = None
    withdrawn_reason: Optional[str] = None
    version: int = Field(description="Optimistic concurrency version")

    @classmethod
    def from_model(cls, application: Application) -> "ApplicationResponse":
        salary = None
        if application.expected_salary_amount is not None:
            salary = ExpectedSalary(
                amount=application.expected_salary_amount,
                currency=application.expected_salary_currency,
                period=application.expected_salary_period,
            )
        return cls(
            id=application.id,
            job_id=application.job_id,
            applicant_id=application.applicant_id,
            talent_id=application.talent_id,
            status=application.status,
            cover_letter=application.cover_letter,
            expected_salary=salary,
            availability=Availability(
                start_date=application.available_from,
                notice_period_days=application.notice_period_days,
            ),
            is_withdrawn=application.is_withdrawn,
            withdrawn_at=application.withdrawn_at,
            withdrawn_reason=application.withdrawn_reason,
            version=application.version,
            created_at=application.created_at,
            updated_at=application.updated_at,
        )


class ApplicationDetailResponse(ApplicationResponse):
    """Application plus its full timeline."""

    timeline: list[TimelineEntryResponse] = Field(default_factory=list)

    @classmethod
    def from_model(cls, application: Application) -> "ApplicationDetailResponse":
        base = ApplicationResponse.from_model(application)
        return cls(
            **base.model_dump(),
            timeline=[
                TimelineEntryResponse.model_validate(entry)
                for entry in application.timeline
            ],
        )


class ApplicationCountsResponse(BaseModel):
    """Cached per-job application counters."""

    job_id: int
    total: int = Field(ge=0)
    shortlisted: int = Field(ge=0)
    rejected: int = Field(ge=0)
