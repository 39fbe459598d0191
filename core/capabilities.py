"""
Capability checks for the admin surface.

Site admins hold every capability. Other users hold a capability in a course
when one of their active enrolments there carries a role granted it.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncConnection

from .database import get_connection
from .exceptions import PermissionDenied
from .queries import courses as course_queries
from .queries import users as user_queries
from .stores import CapabilityChecker

logger = logging.getLogger(__name__)

# Needed in the course context to create, update or delete a sync instance
REQUIRED_INSTANCE_CAPABILITIES = (
    "course:enrolconfig",
    "cohortsync:config",
    "cohort:view",
    "course:managegroups",
    "role:assign",
)


async def user_has_capability(
    conn: AsyncConnection,
    capability: str,
    course_id: int,
    user_id: int,
) -> bool:
    if await user_queries.is_admin(conn, user_id):
        return True
    granted = await course_queries.get_user_capabilities_in_course(conn, user_id, course_id)
    return capability in granted


class SqlCapabilityChecker:
    async def has_capability(self, capability: str, course_id: int, user_id: int) -> bool:
        async with get_connection() as conn:
            return await user_has_capability(conn, capability, course_id, user_id)


async def require_capabilities(
    checker: CapabilityChecker,
    course_id: int,
    user_id: int,
    capabilities=REQUIRED_INSTANCE_CAPABILITIES,
) -> None:
    """
    Raise PermissionDenied naming the first capability the user lacks.
    """
    for capability in capabilities:
        if not await checker.has_capability(capability, course_id, user_id):
            logger.warning(
                f"User {user_id} denied in course {course_id}: missing {capability}"
            )
            raise PermissionDenied(capability, course_id)


def get_capability_checker() -> CapabilityChecker:
    """FastAPI dependency; tests override it with a stub checker."""
    return SqlCapabilityChecker()
