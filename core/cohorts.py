"""
Cohort membership changes.

Cohorts are owned outside the sync service; these hooks record a membership
change and then run the incremental sync for that user.
"""

import logging
from typing import Any

from .database import get_transaction
from .exceptions import NotFound
from .queries import cohorts as cohort_queries
from .queries import users as user_queries
from .sync import sync_after_cohort_change

logger = logging.getLogger(__name__)


async def _validate_member(conn, cohort_id: int, user_id: int) -> None:
    if not await cohort_queries.cohort_exists(conn, cohort_id):
        raise NotFound("cohort", "id", cohort_id)
    if not await user_queries.user_exists(conn, user_id):
        raise NotFound("user", "id", user_id)


async def add_cohort_member(cohort_id: int, user_id: int) -> dict[str, Any]:
    """
    Add a user to a cohort, then sync their enrolments.

    Returns:
        {"changed": bool, "sync": <sync result>}
    """
    async with get_transaction() as conn:
        await _validate_member(conn, cohort_id, user_id)
        changed = await cohort_queries.add_cohort_member(conn, cohort_id, user_id)

    if changed:
        logger.info(f"User {user_id} joined cohort {cohort_id}")
    # Also sync when already a member: catches up a sync that failed earlier
    return {"changed": changed, "sync": await sync_after_cohort_change(cohort_id, user_id)}


async def remove_cohort_member(cohort_id: int, user_id: int) -> dict[str, Any]:
    """
    Remove a user from a cohort, then sync their enrolments.

    Returns:
        {"changed": bool, "sync": <sync result>}
    """
    async with get_transaction() as conn:
        if not await cohort_queries.cohort_exists(conn, cohort_id):
            raise NotFound("cohort", "id", cohort_id)
        changed = await cohort_queries.remove_cohort_member(conn, cohort_id, user_id)

    if changed:
        logger.info(f"User {user_id} left cohort {cohort_id}")
    return {"changed": changed, "sync": await sync_after_cohort_change(cohort_id, user_id)}
