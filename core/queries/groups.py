"""Course group queries using SQLAlchemy Core."""

from typing import Any

from sqlalchemy import delete, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncConnection

from ..tables import groups, groups_users, sync_instances, user_enrolments


async def group_exists_in_course(
    conn: AsyncConnection,
    group_id: int,
    course_id: int,
) -> bool:
    result = await conn.execute(
        select(groups.c.group_id)
        .where(groups.c.group_id == group_id)
        .where(groups.c.course_id == course_id)
    )
    return result.first() is not None


async def get_course_group_names(conn: AsyncConnection, course_id: int) -> set[str]:
    result = await conn.execute(
        select(groups.c.group_name).where(groups.c.course_id == course_id)
    )
    return {row[0] for row in result}


async def create_group(
    conn: AsyncConnection,
    course_id: int,
    group_name: str,
) -> dict[str, Any]:
    """Create a new group and return the created record."""
    result = await conn.execute(
        insert(groups)
        .values(course_id=course_id, group_name=group_name)
        .returning(groups)
    )
    row = result.mappings().first()
    return dict(row)


async def get_group_member_ids(conn: AsyncConnection, group_id: int) -> set[int]:
    result = await conn.execute(
        select(groups_users.c.user_id).where(groups_users.c.group_id == group_id)
    )
    return {row[0] for row in result}


async def add_user_to_group(
    conn: AsyncConnection,
    group_id: int,
    user_id: int,
    instance_id: int | None = None,
) -> bool:
    """
    Add a user to a group. Returns False if they were already a member.

    instance_id marks the sync instance adding the member. An existing
    membership keeps the marker it was added with.
    """
    stmt = insert(groups_users).values(
        group_id=group_id, user_id=user_id, instance_id=instance_id
    )
    stmt = stmt.on_conflict_do_nothing(index_elements=["group_id", "user_id"])
    result = await conn.execute(stmt)
    return result.rowcount > 0


async def add_users_to_group(
    conn: AsyncConnection,
    group_id: int,
    user_ids: list[int],
    instance_id: int | None = None,
) -> int:
    """Bulk add_user_to_group. Returns how many users were newly added."""
    if not user_ids:
        return 0
    stmt = insert(groups_users).values(
        [
            {"group_id": group_id, "user_id": user_id, "instance_id": instance_id}
            for user_id in user_ids
        ]
    )
    stmt = stmt.on_conflict_do_nothing(index_elements=["group_id", "user_id"])
    result = await conn.execute(stmt)
    return result.rowcount


async def release_group_members(
    conn: AsyncConnection,
    group_id: int,
    user_ids: list[int],
) -> int:
    """
    Remove memberships added by cohort sync from a group.

    A membership stays when it was added by hand (no instance_id) or when the
    user still has an enrolment that places them in the group, either through
    the enrolment's own group or through its sync instance's group. Delete the
    releasing enrolment first.

    Returns how many memberships were removed.
    """
    if not user_ids:
        return 0
    claimed = (
        select(user_enrolments.c.enrolment_id)
        .select_from(
            user_enrolments.outerjoin(
                sync_instances,
                user_enrolments.c.instance_id == sync_instances.c.instance_id,
            )
        )
        .where(user_enrolments.c.user_id == groups_users.c.user_id)
        .where(
            or_(
                user_enrolments.c.group_id == group_id,
                sync_instances.c.group_id == group_id,
            )
        )
        .correlate(groups_users)
        .exists()
    )
    result = await conn.execute(
        delete(groups_users)
        .where(groups_users.c.group_id == group_id)
        .where(groups_users.c.user_id.in_(user_ids))
        .where(groups_users.c.instance_id.is_not(None))
        .where(~claimed)
    )
    return result.rowcount
