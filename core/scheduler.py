"""
APScheduler-based job scheduler for cohort sync.

Runs the periodic full sync ("cohort enrolment sync task") and retries failed
event-driven syncs with exponential backoff. Jobs are persisted to PostgreSQL
so pending retries survive restarts; they only store ids, and the sync reads
fresh state when it runs.
"""

import logging
import random
from datetime import datetime, timedelta, timezone

from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .config import get_sync_interval_minutes
from .database import get_sync_database_url, is_configured

logger = logging.getLogger(__name__)


_scheduler: AsyncIOScheduler | None = None

FULL_SYNC_JOB_ID = "cohort_sync_full"

JOB_DEFAULTS = {
    "coalesce": True,  # Combine missed runs into one
    "max_instances": 1,
    "misfire_grace_time": 3600,  # Allow 1 hour late execution
}


# =============================================================================
# Scheduler initialization and shutdown
# =============================================================================


def _get_database_url() -> str:
    """Get sync database URL for APScheduler (it uses sync SQLAlchemy)."""
    if not is_configured():
        return ""
    database_url = get_sync_database_url()

    # Add connection timeout to prevent hanging when DB is unavailable
    if "?" not in database_url:
        database_url += "?connect_timeout=5"
    elif "connect_timeout" not in database_url:
        database_url += "&connect_timeout=5"

    return database_url


def init_scheduler(skip_if_db_unavailable: bool = True) -> AsyncIOScheduler | None:
    """
    Initialize and start the APScheduler, and register the periodic full sync.

    Call this during app startup (in FastAPI lifespan).

    Args:
        skip_if_db_unavailable: If True, fall back to an in-memory job store
                                when the DB is unreachable instead of failing.
    """
    global _scheduler

    if _scheduler is not None:
        return _scheduler

    database_url = _get_database_url()

    jobstores = {}
    if database_url:
        jobstores["default"] = SQLAlchemyJobStore(
            url=database_url,
            tablename="apscheduler_jobs",
        )

    _scheduler = AsyncIOScheduler(jobstores=jobstores, job_defaults=JOB_DEFAULTS)

    try:
        _scheduler.start()
        print("Cohort sync scheduler started")
    except Exception as e:
        if skip_if_db_unavailable and "timeout" in str(e).lower():
            print("Warning: Could not connect to database for scheduler: timeout expired")
            print("  └─ Scheduler running in memory-only mode (jobs won't persist)")
            _scheduler = AsyncIOScheduler(jobstores={}, job_defaults=JOB_DEFAULTS)
            _scheduler.start()
            print("Cohort sync scheduler started (memory-only)")
        else:
            raise

    schedule_full_sync()
    return _scheduler


def shutdown_scheduler() -> None:
    """
    Shutdown the scheduler gracefully.

    Call this during app shutdown.
    """
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=True)
        _scheduler = None
        print("Cohort sync scheduler stopped")


# =============================================================================
# Periodic full sync
# =============================================================================


def schedule_full_sync(interval_minutes: int | None = None) -> bool:
    """
    Register (or replace) the interval job that reconciles every course.

    Returns False when the scheduler is not running or the interval is 0.
    """
    if not _scheduler:
        logger.warning("Scheduler not initialized, cannot schedule full sync")
        return False

    if interval_minutes is None:
        interval_minutes = get_sync_interval_minutes()
    if interval_minutes <= 0:
        logger.info("Periodic cohort sync disabled (SYNC_INTERVAL_MINUTES=0)")
        return False

    _scheduler.add_job(
        _execute_full_sync,
        trigger="interval",
        minutes=interval_minutes,
        id=FULL_SYNC_JOB_ID,
        replace_existing=True,
    )
    logger.info(f"Scheduled full cohort sync every {interval_minutes} minute(s)")
    return True


async def _execute_full_sync() -> None:
    """Run reconcile for all courses. Called by APScheduler; never raises."""
    import sentry_sdk
    from core.sync import sync_all

    try:
        result = await sync_all()
        if result.get("errors"):
            logger.warning(
                f"Scheduled cohort sync finished with {len(result['errors'])} error(s)"
            )
    except Exception as e:
        logger.error(f"Scheduled cohort sync failed: {e}")
        sentry_sdk.capture_exception(e)


# =============================================================================
# Sync retries
# =============================================================================


def get_retry_delay(attempt: int, include_jitter: bool = True) -> float:
    """
    Calculate retry delay using exponential backoff with cap.

    Args:
        attempt: Zero-based attempt number (0 = first retry)
        include_jitter: Add random jitter to prevent thundering herd

    Returns:
        Delay in seconds (1, 2, 4, 8, 16, 32, 64, 128, 256, 512, 1024, 1800, 1800...)
    """
    base_delay = min(2**attempt, 1800)  # Cap at 30 minutes
    if include_jitter:
        jitter = random.uniform(0, min(base_delay * 0.1, 60))
        return base_delay + jitter
    return float(base_delay)


def _retry_job_id(sync_type: str, target_id: int | None, user_id: int | None) -> str:
    parts = ["sync_retry", sync_type]
    if target_id is not None:
        parts.append(str(target_id))
    if user_id is not None:
        parts.append(str(user_id))
    return "_".join(parts)


def schedule_sync_retry(
    sync_type: str,
    target_id: int | None,
    attempt: int,
    user_id: int | None = None,
) -> None:
    """
    Schedule a retry for a failed sync operation.

    Args:
        sync_type: One of "cohort_member", "course", "all"
        target_id: Cohort id for cohort_member, course id for course, None for all
        attempt: Current attempt number (for backoff calculation)
        user_id: For cohort_member syncs, the user whose membership changed
    """
    if not _scheduler:
        logger.warning(f"Scheduler not available, cannot retry {sync_type} sync")
        return

    delay = get_retry_delay(attempt)
    run_at = datetime.now(timezone.utc) + timedelta(seconds=delay)

    _scheduler.add_job(
        _execute_sync_retry,
        trigger="date",
        run_date=run_at,
        id=_retry_job_id(sync_type, target_id, user_id),
        replace_existing=True,  # Don't stack retries
        kwargs={
            "sync_type": sync_type,
            "target_id": target_id,
            "attempt": attempt + 1,
            "user_id": user_id,
        },
    )
    logger.info(
        f"Scheduled {sync_type} sync retry for {target_id} in {delay:.1f}s (attempt {attempt + 1})"
    )


MAX_SYNC_RETRY_ATTEMPTS = 12  # ~6 hours with exponential backoff (caps at 30min)


async def _execute_sync_retry(
    sync_type: str,
    target_id: int | None,
    attempt: int,
    user_id: int | None = None,
) -> None:
    """
    Execute a sync retry. Called by APScheduler.

    If sync fails again, schedules another retry (up to MAX_SYNC_RETRY_ATTEMPTS).
    """
    import sentry_sdk
    from core.sync import sync_all, sync_cohort_member, sync_course

    if attempt > MAX_SYNC_RETRY_ATTEMPTS:
        logger.error(
            f"Sync {sync_type} for {target_id} exceeded max retries ({MAX_SYNC_RETRY_ATTEMPTS}), giving up"
        )
        sentry_sdk.capture_message(
            f"Sync permanently failed after {MAX_SYNC_RETRY_ATTEMPTS} attempts: {sync_type} {target_id}"
        )
        return

    if sync_type not in ("cohort_member", "course", "all"):
        logger.error(f"Unknown sync type: {sync_type}")
        return

    try:
        if sync_type == "cohort_member":
            result = await sync_cohort_member(target_id, user_id)
        elif sync_type == "course":
            result = await sync_course(target_id)
        else:
            result = await sync_all()

        if result.get("errors"):
            logger.warning(
                f"Sync {sync_type} for {target_id} had failures, scheduling retry (attempt {attempt})"
            )
            schedule_sync_retry(sync_type, target_id, attempt, user_id)
        else:
            logger.info(f"Sync {sync_type} for {target_id} succeeded on attempt {attempt}")

    except Exception as e:
        logger.error(f"Sync {sync_type} for {target_id} failed: {e}")
        sentry_sdk.capture_exception(e)
        schedule_sync_retry(sync_type, target_id, attempt, user_id)
