"""Exclusion queries using SQLAlchemy Core."""

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncConnection

from ..tables import exclusions


async def get_excluded_user_ids(conn: AsyncConnection, course_id: int) -> set[int]:
    """Users excluded from cohort sync in a course."""
    result = await conn.execute(
        select(exclusions.c.user_id).where(exclusions.c.course_id == course_id)
    )
    return {row[0] for row in result}


async def get_excluded_course_ids(conn: AsyncConnection, user_id: int) -> set[int]:
    """Courses a user is excluded from."""
    result = await conn.execute(
        select(exclusions.c.course_id).where(exclusions.c.user_id == user_id)
    )
    return {row[0] for row in result}


async def add_exclusion(conn: AsyncConnection, user_id: int, course_id: int) -> bool:
    """Insert an exclusion. Returns False if it already existed."""
    stmt = insert(exclusions).values(user_id=user_id, course_id=course_id)
    stmt = stmt.on_conflict_do_nothing(index_elements=["user_id", "course_id"])
    result = await conn.execute(stmt)
    return result.rowcount > 0


async def remove_exclusion(conn: AsyncConnection, user_id: int, course_id: int) -> bool:
    """Delete an exclusion. Returns False if there was none."""
    result = await conn.execute(
        delete(exclusions)
        .where(exclusions.c.user_id == user_id)
        .where(exclusions.c.course_id == course_id)
    )
    return result.rowcount > 0
