"""Cohort and cohort membership queries using SQLAlchemy Core."""

from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncConnection

from ..tables import cohort_members, cohorts


async def get_cohort(
    conn: AsyncConnection,
    cohort_id: int,
) -> dict[str, Any] | None:
    result = await conn.execute(select(cohorts).where(cohorts.c.cohort_id == cohort_id))
    row = result.mappings().first()
    return dict(row) if row else None


async def cohort_exists(conn: AsyncConnection, cohort_id: int) -> bool:
    result = await conn.execute(
        select(cohorts.c.cohort_id).where(cohorts.c.cohort_id == cohort_id)
    )
    return result.first() is not None


async def get_cohort_member_ids(conn: AsyncConnection, cohort_id: int) -> set[int]:
    """Get the user ids currently in a cohort."""
    result = await conn.execute(
        select(cohort_members.c.user_id).where(cohort_members.c.cohort_id == cohort_id)
    )
    return {row[0] for row in result}


async def add_cohort_member(
    conn: AsyncConnection,
    cohort_id: int,
    user_id: int,
) -> bool:
    """Add a user to a cohort. Returns False if they were already a member."""
    stmt = insert(cohort_members).values(cohort_id=cohort_id, user_id=user_id)
    stmt = stmt.on_conflict_do_nothing(index_elements=["cohort_id", "user_id"])
    result = await conn.execute(stmt)
    return result.rowcount > 0


async def remove_cohort_member(
    conn: AsyncConnection,
    cohort_id: int,
    user_id: int,
) -> bool:
    """Remove a user from a cohort. Returns False if they were not a member."""
    result = await conn.execute(
        delete(cohort_members)
        .where(cohort_members.c.cohort_id == cohort_id)
        .where(cohort_members.c.user_id == user_id)
    )
    return result.rowcount > 0
