"""User enrolment queries using SQLAlchemy Core."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from ..tables import sync_instances, user_enrolments


async def get_enrolments_for_course_role(
    conn: AsyncConnection,
    course_id: int,
    role_id: int,
) -> list[dict[str, Any]]:
    """All enrolments in a course with a role, whatever method owns them."""
    result = await conn.execute(
        select(user_enrolments)
        .where(user_enrolments.c.course_id == course_id)
        .where(user_enrolments.c.role_id == role_id)
        .order_by(user_enrolments.c.enrolment_id)
    )
    return [dict(row) for row in result.mappings()]


async def get_instance_enrolments(
    conn: AsyncConnection,
    instance_id: int,
) -> list[dict[str, Any]]:
    result = await conn.execute(
        select(user_enrolments)
        .where(user_enrolments.c.instance_id == instance_id)
        .order_by(user_enrolments.c.enrolment_id)
    )
    return [dict(row) for row in result.mappings()]


async def get_user_sync_enrolments(
    conn: AsyncConnection,
    user_id: int,
    course_id: int,
) -> list[dict[str, Any]]:
    """A user's enrolments in a course that belong to any sync instance."""
    result = await conn.execute(
        select(user_enrolments)
        .join(
            sync_instances,
            sync_instances.c.instance_id == user_enrolments.c.instance_id,
        )
        .where(user_enrolments.c.user_id == user_id)
        .where(sync_instances.c.course_id == course_id)
        .order_by(user_enrolments.c.enrolment_id)
    )
    return [dict(row) for row in result.mappings()]


async def insert_enrolment(conn: AsyncConnection, **values: Any) -> int:
    """Create an enrolment record and return its id."""
    result = await conn.execute(
        insert(user_enrolments)
        .values(**values)
        .returning(user_enrolments.c.enrolment_id)
    )
    return result.scalar_one()


async def update_enrolment(
    conn: AsyncConnection,
    enrolment_id: int,
    **updates: Any,
) -> bool:
    updates["updated_at"] = datetime.now(timezone.utc)
    result = await conn.execute(
        update(user_enrolments)
        .where(user_enrolments.c.enrolment_id == enrolment_id)
        .values(**updates)
    )
    return result.rowcount > 0


async def delete_enrolment(conn: AsyncConnection, enrolment_id: int) -> bool:
    result = await conn.execute(
        delete(user_enrolments).where(user_enrolments.c.enrolment_id == enrolment_id)
    )
    return result.rowcount > 0


async def enrolment_exists(conn: AsyncConnection, **filters: Any) -> bool:
    """Check for an enrolment matching column=value filters."""
    conditions = [user_enrolments.c[name] == value for name, value in filters.items()]
    result = await conn.execute(
        select(user_enrolments.c.enrolment_id).where(and_(*conditions)).limit(1)
    )
    return result.first() is not None


async def set_instance_enrolments_role(
    conn: AsyncConnection,
    instance_id: int,
    role_id: int,
) -> int:
    """Move every enrolment of an instance to a new role."""
    result = await conn.execute(
        update(user_enrolments)
        .where(user_enrolments.c.instance_id == instance_id)
        .values(role_id=role_id, updated_at=datetime.now(timezone.utc))
    )
    return result.rowcount


async def set_instance_enrolments_group(
    conn: AsyncConnection,
    instance_id: int,
    group_id: int | None,
) -> int:
    """Point every enrolment of an instance at a group."""
    result = await conn.execute(
        update(user_enrolments)
        .where(user_enrolments.c.instance_id == instance_id)
        .values(group_id=group_id, updated_at=datetime.now(timezone.utc))
    )
    return result.rowcount


async def delete_instance_enrolments(conn: AsyncConnection, instance_id: int) -> int:
    result = await conn.execute(
        delete(user_enrolments).where(user_enrolments.c.instance_id == instance_id)
    )
    return result.rowcount
