"""
Talent profiles.

Read-only collaborator for the lifecycle engine: an application snapshots
which profile it was submitted with, nothing here is mutated by applying.
"""

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    ForeignKey,
    BigInteger,
    DateTime,
    func,
    Text,
    JSON,
)
from database.engine import Base, IdType
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from database.models.users import User


class Talent(Base):
    """Talent profile, 1:1 with a User."""

    __tablename__ = "talents"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )

    headline: Mapped[str | None] = mapped_column(String(200))
    bio: Mapped[str | None] = mapped_column(Text)
    skills: Mapped[list[str] | None] = mapped_column(JSON)
    experience_years: Mapped[int | None] = mapped_column(BigInteger)
    location: Mapped[str | None] = mapped_column(String(200))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    user: Mapped["User"] = relationship("User", back_populates="talent_profile")
