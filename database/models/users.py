from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Boolean,
    DateTime,
    func,
    Enum as SQLEnum,
)
from database.engine import Base, IdType
from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from database.models.talents import Talent


# ==================== User Role ===================== #
class UserRole(str, PyEnum):
    TALENT = "talent"  # job seeker, applies to jobs
    RECRUITER = "recruiter"  # owns job postings and evaluates applications
    ADMIN = "admin"  # platform admin with full access


class User(Base):
    """
    Identity and role. The lifecycle engine only uses users as addressing
    targets (recruiter of a job, applicant, notification recipient/sender).
    """

    __tablename__: str = "users"
    __mapper_args__ = {"eager_defaults": True}
    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, native_enum=False, length=50),
        nullable=False,
        default=UserRole.TALENT,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    talent_profile: Mapped["Talent | None"] = relationship(
        "Talent", back_populates="user", uselist=False
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
