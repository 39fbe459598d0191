"""
Collaborator stores used by the reconciler.

The reconciler only talks to these narrow protocols. The Sql* classes are the
production implementations; each call opens its own connection (reads) or
transaction (writes), so every per-user mutation commits on its own.
"""

import logging
from typing import Any, Protocol

from .database import get_connection, get_transaction
from .queries import cohorts as cohort_queries
from .queries import courses as course_queries
from .queries import enrolments as enrolment_queries
from .queries import exclusions as exclusion_queries
from .queries import groups as group_queries
from .queries import instances as instance_queries
from .queries import users as user_queries
from .sync_types import EnrolmentRecord, SyncInstance

logger = logging.getLogger(__name__)

# Upper bound on "{name} cohort {increment}" probing for a free group name
MAX_GROUP_NAME_INCREMENT = 1000


# =============================================================================
# Protocols
# =============================================================================


class CohortStore(Protocol):
    async def members_of(self, cohort_id: int) -> set[int]: ...

    async def exists(self, cohort_id: int) -> bool: ...

    async def name_of(self, cohort_id: int) -> str: ...


class EnrolmentStore(Protocol):
    async def records_for(self, course_id: int, role_id: int) -> list[EnrolmentRecord]: ...

    async def create(self, record: EnrolmentRecord) -> int: ...

    async def update(self, enrolment_id: int, fields: dict[str, Any]) -> None: ...

    async def delete(self, enrolment_id: int) -> None: ...

    async def exists(self, **filters: Any) -> bool: ...


class GroupStore(Protocol):
    async def ensure_group(self, course_id: int, name_template: str) -> int: ...

    async def add_member(self, group_id: int, user_id: int, instance_id: int) -> bool: ...

    async def remove_member(self, group_id: int, user_id: int) -> bool:
        """Drop a cohort-sync membership no remaining enrolment places the user in."""
        ...

    async def members_of(self, group_id: int) -> set[int]: ...


class ExclusionStore(Protocol):
    async def excluded_users(self, course_id: int) -> set[int]: ...

    async def courses_for(self, user_id: int) -> set[int]: ...

    async def add(self, user_id: int, course_id: int) -> bool: ...

    async def remove(self, user_id: int, course_id: int) -> bool: ...


class SyncInstanceStore(Protocol):
    async def list_enabled(
        self,
        course_id: int | None = None,
        cohort_id: int | None = None,
    ) -> list[SyncInstance]: ...

    async def get(self, instance_id: int) -> SyncInstance | None: ...

    async def set_group(self, instance_id: int, group_id: int) -> None: ...


class LookupStore(Protocol):
    async def course_exists(self, course_id: int) -> bool: ...

    async def user_exists(self, user_id: int) -> bool: ...


class CapabilityChecker(Protocol):
    async def has_capability(self, capability: str, course_id: int, user_id: int) -> bool: ...


# =============================================================================
# SQL implementations
# =============================================================================


class SqlCohortStore:
    async def members_of(self, cohort_id: int) -> set[int]:
        async with get_connection() as conn:
            return await cohort_queries.get_cohort_member_ids(conn, cohort_id)

    async def exists(self, cohort_id: int) -> bool:
        async with get_connection() as conn:
            return await cohort_queries.cohort_exists(conn, cohort_id)

    async def name_of(self, cohort_id: int) -> str:
        async with get_connection() as conn:
            cohort = await cohort_queries.get_cohort(conn, cohort_id)
        return cohort["cohort_name"] if cohort else f"Cohort {cohort_id}"


class SqlEnrolmentStore:
    async def records_for(self, course_id: int, role_id: int) -> list[EnrolmentRecord]:
        async with get_connection() as conn:
            rows = await enrolment_queries.get_enrolments_for_course_role(
                conn, course_id, role_id
            )
        return [EnrolmentRecord.from_row(row) for row in rows]

    async def create(self, record: EnrolmentRecord) -> int:
        async with get_transaction() as conn:
            return await enrolment_queries.insert_enrolment(
                conn,
                instance_id=record.instance_id,
                user_id=record.user_id,
                course_id=record.course_id,
                role_id=record.role_id,
                group_id=record.group_id,
                status=record.status,
                time_start=record.time_start,
                time_end=record.time_end,
            )

    async def update(self, enrolment_id: int, fields: dict[str, Any]) -> None:
        async with get_transaction() as conn:
            await enrolment_queries.update_enrolment(conn, enrolment_id, **fields)

    async def delete(self, enrolment_id: int) -> None:
        async with get_transaction() as conn:
            await enrolment_queries.delete_enrolment(conn, enrolment_id)

    async def exists(self, **filters: Any) -> bool:
        async with get_connection() as conn:
            return await enrolment_queries.enrolment_exists(conn, **filters)


class SqlGroupStore:
    async def ensure_group(self, course_id: int, name_template: str) -> int:
        """Create a group named by the first free increment of name_template."""
        async with get_transaction() as conn:
            taken = await group_queries.get_course_group_names(conn, course_id)
            for increment in range(1, MAX_GROUP_NAME_INCREMENT + 1):
                name = name_template.replace("{increment}", str(increment))
                if name not in taken:
                    break
            group = await group_queries.create_group(conn, course_id, name)

        logger.info(f"Created group {group['group_id']} '{name}' in course {course_id}")
        return group["group_id"]

    async def add_member(self, group_id: int, user_id: int, instance_id: int) -> bool:
        async with get_transaction() as conn:
            return await group_queries.add_user_to_group(
                conn, group_id, user_id, instance_id=instance_id
            )

    async def remove_member(self, group_id: int, user_id: int) -> bool:
        async with get_transaction() as conn:
            removed = await group_queries.release_group_members(conn, group_id, [user_id])
        return removed > 0

    async def members_of(self, group_id: int) -> set[int]:
        async with get_connection() as conn:
            return await group_queries.get_group_member_ids(conn, group_id)


class SqlExclusionStore:
    async def excluded_users(self, course_id: int) -> set[int]:
        async with get_connection() as conn:
            return await exclusion_queries.get_excluded_user_ids(conn, course_id)

    async def courses_for(self, user_id: int) -> set[int]:
        async with get_connection() as conn:
            return await exclusion_queries.get_excluded_course_ids(conn, user_id)

    async def add(self, user_id: int, course_id: int) -> bool:
        async with get_transaction() as conn:
            return await exclusion_queries.add_exclusion(conn, user_id, course_id)

    async def remove(self, user_id: int, course_id: int) -> bool:
        async with get_transaction() as conn:
            return await exclusion_queries.remove_exclusion(conn, user_id, course_id)


class SqlSyncInstanceStore:
    def __init__(self, site_course_id: int):
        self.site_course_id = site_course_id

    async def list_enabled(
        self,
        course_id: int | None = None,
        cohort_id: int | None = None,
    ) -> list[SyncInstance]:
        async with get_connection() as conn:
            rows = await instance_queries.list_enabled_instances(
                conn,
                course_id=course_id,
                cohort_id=cohort_id,
                exclude_course_id=self.site_course_id,
            )
        return [SyncInstance.from_row(row) for row in rows]

    async def get(self, instance_id: int) -> SyncInstance | None:
        async with get_connection() as conn:
            row = await instance_queries.get_instance(conn, instance_id)
        return SyncInstance.from_row(row) if row else None

    async def set_group(self, instance_id: int, group_id: int) -> None:
        async with get_transaction() as conn:
            await instance_queries.set_instance_group(conn, instance_id, group_id)


class SqlLookupStore:
    async def course_exists(self, course_id: int) -> bool:
        async with get_connection() as conn:
            return await course_queries.course_exists(conn, course_id)

    async def user_exists(self, user_id: int) -> bool:
        async with get_connection() as conn:
            return await user_queries.user_exists(conn, user_id)
