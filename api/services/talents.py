"""Talent profile lookups."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models.talents import Talent


async def find_by_user(session: AsyncSession, user_id: int) -> Optional[Talent]:
    """The talent profile owned by ``user_id``, if the user has one."""
    result = await session.execute(select(Talent).where(Talent.user_id == user_id))
    return result.scalar_one_or_none()
