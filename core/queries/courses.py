"""Course and role lookups using SQLAlchemy Core."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncConnection

from ..enums import EnrolmentStatus
from ..tables import courses, role_capabilities, roles, user_enrolments


async def get_course(
    conn: AsyncConnection,
    course_id: int,
) -> dict[str, Any] | None:
    result = await conn.execute(select(courses).where(courses.c.course_id == course_id))
    row = result.mappings().first()
    return dict(row) if row else None


async def course_exists(conn: AsyncConnection, course_id: int) -> bool:
    result = await conn.execute(
        select(courses.c.course_id).where(courses.c.course_id == course_id)
    )
    return result.first() is not None


async def get_role(
    conn: AsyncConnection,
    role_id: int,
) -> dict[str, Any] | None:
    result = await conn.execute(select(roles).where(roles.c.role_id == role_id))
    row = result.mappings().first()
    return dict(row) if row else None


async def get_user_capabilities_in_course(
    conn: AsyncConnection,
    user_id: int,
    course_id: int,
) -> set[str]:
    """
    Capabilities granted to a user in a course through the roles of their
    active enrolments there.
    """
    result = await conn.execute(
        select(role_capabilities.c.capability)
        .join(user_enrolments, user_enrolments.c.role_id == role_capabilities.c.role_id)
        .where(user_enrolments.c.user_id == user_id)
        .where(user_enrolments.c.course_id == course_id)
        .where(user_enrolments.c.status == EnrolmentStatus.active)
        .distinct()
    )
    return {row[0] for row in result}
