"""
Sync instance administration.

Create / update / delete / list the cohort -> course/role/group rules the
reconciler works from. Every function takes the caller's connection so a
route can run the whole operation inside one transaction; validation errors
are raised before anything is written.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncConnection

from .config import get_default_unenrol_action, get_site_course_id
from .enums import INSTANCE_STATUS_CODES, GroupMode, InstanceStatus, UnenrolAction
from .exceptions import DuplicateSyncInstance, InvalidScope, InvalidStatus, NotFound
from .queries import cohorts as cohort_queries
from .queries import courses as course_queries
from .queries import enrolments as enrolment_queries
from .queries import groups as group_queries
from .queries import instances as instance_queries
from .sync_types import GroupTarget, SyncInstance

logger = logging.getLogger(__name__)


def parse_instance_status(value: Any) -> InstanceStatus:
    """
    Accept an InstanceStatus, its name, or the 0/1 wire code.

    Raises:
        InvalidStatus: anything else (bools included, they are not codes)
    """
    if isinstance(value, InstanceStatus):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        if value in INSTANCE_STATUS_CODES:
            return INSTANCE_STATUS_CODES[value]
    elif isinstance(value, str):
        try:
            return InstanceStatus(value)
        except ValueError:
            pass
    raise InvalidStatus(value, INSTANCE_STATUS_CODES)


def parse_group_code(code: int | None) -> GroupTarget:
    """Decode the API group id (0 none, -1 create new, >0 existing group)."""
    try:
        return GroupTarget.from_code(code)
    except ValueError:
        raise NotFound("group", "id", code)


async def require_course(
    conn: AsyncConnection,
    course_id: int,
    site_course_id: int | None = None,
) -> dict[str, Any]:
    """
    Load a course that can hold sync instances.

    Raises:
        InvalidScope: course_id is the site course
        NotFound: course does not exist
    """
    if site_course_id is None:
        site_course_id = get_site_course_id()
    if course_id == site_course_id:
        raise InvalidScope(course_id)
    course = await course_queries.get_course(conn, course_id)
    if not course:
        raise NotFound("course", "id", course_id)
    return course


async def _require_role(conn: AsyncConnection, role_id: int) -> dict[str, Any]:
    role = await course_queries.get_role(conn, role_id)
    if not role:
        raise NotFound("role", "id", role_id)
    return role


async def _require_group_in_course(
    conn: AsyncConnection,
    group: GroupTarget,
    course_id: int,
) -> None:
    if group.mode != GroupMode.existing:
        return
    if not await group_queries.group_exists_in_course(conn, group.group_id, course_id):
        raise NotFound("group", "id", group.group_id)


async def _require_unique_triple(
    conn: AsyncConnection,
    course_id: int,
    role_id: int,
    cohort_id: int,
    exclude_instance_id: int | None = None,
) -> None:
    existing = await instance_queries.find_instance_for_triple(
        conn, course_id, role_id, cohort_id, exclude_instance_id=exclude_instance_id
    )
    if existing:
        raise DuplicateSyncInstance(existing["instance_id"], role_id)


async def create_instance(
    conn: AsyncConnection,
    course_id: int,
    cohort_id: int,
    role_id: int,
    group: GroupTarget | None = None,
    name: str = "",
    status: Any = InstanceStatus.enabled,
    unenrol_action: UnenrolAction | None = None,
    site_course_id: int | None = None,
) -> SyncInstance:
    """
    Create a sync instance.

    Validation order: site course, course, cohort, role, group, status,
    duplicate triple.

    Raises:
        InvalidScope: course_id is the site course
        NotFound: course, cohort, role or group missing
        InvalidStatus: status is not enabled/disabled
        DuplicateSyncInstance: an instance already exists for the triple
    """
    if site_course_id is None:
        site_course_id = get_site_course_id()
    group = group or GroupTarget.none()

    await require_course(conn, course_id, site_course_id)
    cohort = await cohort_queries.get_cohort(conn, cohort_id)
    if not cohort:
        raise NotFound("cohort", "id", cohort_id)
    role = await _require_role(conn, role_id)
    await _require_group_in_course(conn, group, course_id)
    status = parse_instance_status(status)
    await _require_unique_triple(conn, course_id, role_id, cohort_id)

    if not name:
        name = f"{cohort['cohort_name']} ({role['short_name']})"

    row = await instance_queries.insert_instance(
        conn,
        course_id=course_id,
        cohort_id=cohort_id,
        role_id=role_id,
        group_mode=group.mode,
        group_id=group.group_id,
        name=name,
        status=status,
        unenrol_action=unenrol_action or get_default_unenrol_action(),
    )
    instance = SyncInstance.from_row(row)
    logger.info(
        f"Created sync instance {instance.instance_id}: cohort {cohort_id} -> "
        f"course {course_id} as role {role_id}"
    )
    return instance


async def get_instance(
    conn: AsyncConnection,
    instance_id: int,
    site_course_id: int | None = None,
) -> SyncInstance:
    """Load an instance, treating instances on the site course as missing."""
    if site_course_id is None:
        site_course_id = get_site_course_id()
    row = await instance_queries.get_instance(conn, instance_id)
    if not row or row["course_id"] == site_course_id:
        raise NotFound("enrolment instance", "id", instance_id)
    return SyncInstance.from_row(row)


async def update_instance(
    conn: AsyncConnection,
    instance_id: int,
    name: str | None = None,
    status: Any = None,
    role_id: int | None = None,
    group: GroupTarget | None = None,
    unenrol_action: UnenrolAction | None = None,
    site_course_id: int | None = None,
) -> tuple[SyncInstance, list[str]]:
    """
    Update the supplied fields of an instance.

    A role change moves the instance's enrolments to the new role. A group
    change moves the group memberships of the instance's users; switching to
    create-new leaves them groupless until the next sync creates the group.

    Returns:
        (instance, changed field names). An empty list means nothing changed.
    """
    current = await get_instance(conn, instance_id, site_course_id)

    if status is not None:
        status = parse_instance_status(status)
    if role_id is not None and role_id != current.role_id:
        await _require_role(conn, role_id)
        await _require_unique_triple(
            conn, current.course_id, role_id, current.cohort_id, exclude_instance_id=instance_id
        )
    if group is not None:
        await _require_group_in_course(conn, group, current.course_id)

    updates: dict[str, Any] = {}
    if name and name != current.name:
        updates["name"] = name
    if status is not None and status != current.status:
        updates["status"] = status
    if role_id is not None and role_id != current.role_id:
        updates["role_id"] = role_id
    if group is not None and group != current.group:
        updates["group_mode"] = group.mode
        updates["group_id"] = group.group_id
    if unenrol_action is not None and unenrol_action != current.unenrol_action:
        updates["unenrol_action"] = unenrol_action

    if not updates:
        return current, []

    if "role_id" in updates:
        moved = await enrolment_queries.set_instance_enrolments_role(conn, instance_id, role_id)
        logger.info(f"Moved {moved} enrolment(s) of instance {instance_id} to role {role_id}")

    row = await instance_queries.update_instance(conn, instance_id, **updates)

    if "group_mode" in updates:
        await _move_group_members(conn, current, group)

    logger.info(f"Updated sync instance {instance_id}: {sorted(updates)}")
    return SyncInstance.from_row(row), sorted(updates)


async def _move_group_members(
    conn: AsyncConnection,
    current: SyncInstance,
    group: GroupTarget,
) -> None:
    """
    Move the instance's users to its new group.

    Runs after the instance row has its new group, so the old group is only
    kept for users another enrolment still places there.
    """
    records = await enrolment_queries.get_instance_enrolments(conn, current.instance_id)
    new_group_id = group.concrete_id

    await enrolment_queries.set_instance_enrolments_group(
        conn, current.instance_id, new_group_id
    )
    if new_group_id is not None:
        await group_queries.add_users_to_group(
            conn,
            new_group_id,
            [r["user_id"] for r in records],
            instance_id=current.instance_id,
        )
    await _release_memberships(conn, records, current.group.concrete_id)


async def _release_memberships(
    conn: AsyncConnection,
    records: list[dict[str, Any]],
    fallback_group_id: int | None,
) -> int:
    by_group: dict[int, list[int]] = {}
    for record in records:
        group_id = record["group_id"] or fallback_group_id
        if group_id is not None:
            by_group.setdefault(group_id, []).append(record["user_id"])

    released = 0
    for group_id, user_ids in by_group.items():
        released += await group_queries.release_group_members(conn, group_id, user_ids)
    return released


async def delete_instance(
    conn: AsyncConnection,
    instance_id: int,
    site_course_id: int | None = None,
) -> SyncInstance:
    """Delete an instance, its enrolments and their group memberships."""
    instance = await get_instance(conn, instance_id, site_course_id)

    records = await enrolment_queries.get_instance_enrolments(conn, instance_id)
    removed = await enrolment_queries.delete_instance_enrolments(conn, instance_id)
    released = await _release_memberships(conn, records, instance.group.concrete_id)
    await instance_queries.delete_instance(conn, instance_id)
    logger.info(
        f"Deleted sync instance {instance_id}, {removed} enrolment(s) "
        f"and {released} group membership(s)"
    )
    return instance


async def list_instances(
    conn: AsyncConnection,
    course_id: int | None = None,
    site_course_id: int | None = None,
) -> list[SyncInstance]:
    """
    List instances of a course, or of every course when course_id is None.

    Raises:
        InvalidScope: course_id is the site course
        NotFound: course does not exist
    """
    if site_course_id is None:
        site_course_id = get_site_course_id()
    if course_id is not None:
        await require_course(conn, course_id, site_course_id)
    rows = await instance_queries.list_instances(
        conn, course_id=course_id, exclude_course_id=site_course_id
    )
    return [SyncInstance.from_row(row) for row in rows]
