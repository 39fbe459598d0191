"""
Sync entry points for cohort enrolments.

Wraps the process-wide Reconciler for the web API, the scheduler and the
cohort membership event hooks.

All syncs are diff-based and idempotent - they compare desired state with
actual state and only make changes for differences.

Main entry points:
- sync_all() - Reconcile every course (scheduled task)
- sync_course(course_id) - Reconcile one course
- sync_cohort_member(cohort_id, user_id) - Incremental sync for one user
- sync_after_cohort_change(cohort_id, user_id) - Event hook, never raises
"""

import logging
from typing import Any

import sentry_sdk

from .config import (
    get_group_name_template,
    get_site_course_id,
    get_store_timeout_seconds,
    get_sync_max_concurrency,
    is_event_sync_enabled,
)
from .reconciler import Reconciler
from .stores import (
    SqlCohortStore,
    SqlEnrolmentStore,
    SqlExclusionStore,
    SqlGroupStore,
    SqlLookupStore,
    SqlSyncInstanceStore,
)

logger = logging.getLogger(__name__)


_reconciler: Reconciler | None = None


def get_reconciler() -> Reconciler:
    """Get or create the Reconciler singleton shared by every caller."""
    global _reconciler
    if _reconciler is None:
        site_course_id = get_site_course_id()
        _reconciler = Reconciler(
            cohorts=SqlCohortStore(),
            enrolments=SqlEnrolmentStore(),
            groups=SqlGroupStore(),
            exclusions=SqlExclusionStore(),
            instances=SqlSyncInstanceStore(site_course_id),
            lookup=SqlLookupStore(),
            site_course_id=site_course_id,
            store_timeout=get_store_timeout_seconds(),
            max_concurrency=get_sync_max_concurrency(),
            group_name_template=get_group_name_template(),
        )
    return _reconciler


def set_reconciler(reconciler: Reconciler | None) -> None:
    """Replace the singleton (tests inject one built on in-memory stores)."""
    global _reconciler
    _reconciler = reconciler


# ============================================================================
# SYNC FUNCTIONS
# ============================================================================


async def sync_all() -> dict[str, Any]:
    """Reconcile every course with enabled sync instances."""
    report = await get_reconciler().reconcile(None)
    return report.to_dict()


async def sync_course(course_id: int) -> dict[str, Any]:
    """
    Reconcile one course.

    Raises:
        InvalidScope: course_id is the site course
        NotFound: course does not exist
    """
    report = await get_reconciler().reconcile(course_id)
    return report.to_dict()


async def sync_cohort_member(cohort_id: int, user_id: int) -> dict[str, Any]:
    """Sync one user's enrolments for every enabled instance of a cohort."""
    report = await get_reconciler().sync_cohort_member(cohort_id, user_id)
    return report.to_dict()


async def sync_after_cohort_change(cohort_id: int, user_id: int) -> dict[str, Any]:
    """
    Sync a user's enrolments after they joined or left a cohort.

    Call this AFTER the membership change is committed. Errors are captured
    in the result, not raised; failed syncs are scheduled for retry.

    Returns:
        The sync report dict, {"skipped": True} when event sync is disabled,
        or {"error": "..."} when the sync itself failed.
    """
    from .scheduler import schedule_sync_retry

    if not is_event_sync_enabled():
        logger.info(f"Event sync disabled, cohort {cohort_id} user {user_id} waits for the next full sync")
        return {"skipped": True}

    logger.info(f"Syncing user {user_id} after cohort {cohort_id} membership change")
    try:
        result = await sync_cohort_member(cohort_id, user_id)
    except Exception as e:
        logger.error(f"Cohort sync failed for cohort {cohort_id} user {user_id}: {e}")
        sentry_sdk.capture_exception(e)
        schedule_sync_retry(
            sync_type="cohort_member", target_id=cohort_id, attempt=0, user_id=user_id
        )
        return {"error": str(e)}

    if result.get("errors"):
        schedule_sync_retry(
            sync_type="cohort_member", target_id=cohort_id, attempt=0, user_id=user_id
        )
    return result
