"""Sync instance queries using SQLAlchemy Core."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from ..enums import GroupMode, InstanceStatus
from ..tables import sync_instances


async def get_instance(
    conn: AsyncConnection,
    instance_id: int,
) -> dict[str, Any] | None:
    result = await conn.execute(
        select(sync_instances).where(sync_instances.c.instance_id == instance_id)
    )
    row = result.mappings().first()
    return dict(row) if row else None


async def find_instance_for_triple(
    conn: AsyncConnection,
    course_id: int,
    role_id: int,
    cohort_id: int,
    exclude_instance_id: int | None = None,
) -> dict[str, Any] | None:
    """Find the instance already syncing this (course, role, cohort), if any."""
    query = (
        select(sync_instances)
        .where(sync_instances.c.course_id == course_id)
        .where(sync_instances.c.role_id == role_id)
        .where(sync_instances.c.cohort_id == cohort_id)
    )
    if exclude_instance_id is not None:
        query = query.where(sync_instances.c.instance_id != exclude_instance_id)
    result = await conn.execute(query)
    row = result.mappings().first()
    return dict(row) if row else None


async def list_instances(
    conn: AsyncConnection,
    course_id: int | None = None,
    exclude_course_id: int | None = None,
) -> list[dict[str, Any]]:
    """List instances for one course, or every course when course_id is None."""
    query = select(sync_instances).order_by(
        sync_instances.c.course_id, sync_instances.c.instance_id
    )
    if course_id is not None:
        query = query.where(sync_instances.c.course_id == course_id)
    if exclude_course_id is not None:
        query = query.where(sync_instances.c.course_id != exclude_course_id)
    result = await conn.execute(query)
    return [dict(row) for row in result.mappings()]


async def list_enabled_instances(
    conn: AsyncConnection,
    course_id: int | None = None,
    cohort_id: int | None = None,
    exclude_course_id: int | None = None,
) -> list[dict[str, Any]]:
    """List enabled instances, optionally narrowed to a course and/or cohort."""
    query = (
        select(sync_instances)
        .where(sync_instances.c.status == InstanceStatus.enabled)
        .order_by(sync_instances.c.instance_id)
    )
    if course_id is not None:
        query = query.where(sync_instances.c.course_id == course_id)
    if cohort_id is not None:
        query = query.where(sync_instances.c.cohort_id == cohort_id)
    if exclude_course_id is not None:
        query = query.where(sync_instances.c.course_id != exclude_course_id)
    result = await conn.execute(query)
    return [dict(row) for row in result.mappings()]


async def insert_instance(
    conn: AsyncConnection,
    course_id: int,
    cohort_id: int,
    role_id: int,
    group_mode: GroupMode,
    group_id: int | None,
    name: str,
    status: InstanceStatus,
    unenrol_action: str,
) -> dict[str, Any]:
    """Create a new sync instance and return the created record."""
    result = await conn.execute(
        insert(sync_instances)
        .values(
            course_id=course_id,
            cohort_id=cohort_id,
            role_id=role_id,
            group_mode=group_mode,
            group_id=group_id,
            name=name,
            status=status,
            unenrol_action=unenrol_action,
        )
        .returning(sync_instances)
    )
    row = result.mappings().first()
    return dict(row)


async def update_instance(
    conn: AsyncConnection,
    instance_id: int,
    **updates: Any,
) -> dict[str, Any] | None:
    """Update an instance and return the updated record."""
    updates["updated_at"] = datetime.now(timezone.utc)
    result = await conn.execute(
        update(sync_instances)
        .where(sync_instances.c.instance_id == instance_id)
        .values(**updates)
        .returning(sync_instances)
    )
    row = result.mappings().first()
    return dict(row) if row else None


async def set_instance_group(
    conn: AsyncConnection,
    instance_id: int,
    group_id: int,
) -> None:
    """Rewrite a create-new instance to the group that was created for it."""
    await conn.execute(
        update(sync_instances)
        .where(sync_instances.c.instance_id == instance_id)
        .values(
            group_mode=GroupMode.existing,
            group_id=group_id,
            updated_at=datetime.now(timezone.utc),
        )
    )


async def delete_instance(conn: AsyncConnection, instance_id: int) -> bool:
    result = await conn.execute(
        delete(sync_instances).where(sync_instances.c.instance_id == instance_id)
    )
    return result.rowcount > 0
