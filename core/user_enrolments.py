"""Status and time window updates for users' cohort-sync enrolments."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncConnection

from .enums import ENROLMENT_STATUS_CODES, EnrolmentStatus
from .exceptions import InvalidStatus, NotFound
from .queries import enrolments as enrolment_queries
from .queries import instances as instance_queries
from .queries import users as user_queries

logger = logging.getLogger(__name__)


@dataclass
class EnrolmentUpdate:
    user_id: int
    course_id: int
    status: Any = None
    time_start: datetime | None = None
    time_end: datetime | None = None


def parse_enrolment_status(value: Any) -> EnrolmentStatus:
    """Accept an EnrolmentStatus, its name, or the 0/1 wire code."""
    if isinstance(value, EnrolmentStatus):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        if value in ENROLMENT_STATUS_CODES:
            return ENROLMENT_STATUS_CODES[value]
    elif isinstance(value, str):
        try:
            return EnrolmentStatus(value)
        except ValueError:
            pass
    raise InvalidStatus(value, ENROLMENT_STATUS_CODES)


async def update_user_enrolments(
    conn: AsyncConnection,
    updates: list[EnrolmentUpdate],
) -> list[int]:
    """
    Apply status / time window updates to users' cohort-sync enrolments.

    Each item applies to every enrolment the user holds in the course through
    a sync instance. Items are processed in order; the first invalid one raises
    and the caller's transaction rolls back the whole batch.

    Returns:
        Ids of the updated enrolment records (empty when nothing changed)

    Raises:
        NotFound: user missing, course without sync instances, or user without
            cohort-sync enrolments in the course
        InvalidStatus: status is not active/suspended
    """
    updated_ids = []

    for item in updates:
        if not await user_queries.user_exists(conn, item.user_id):
            raise NotFound("user", "id", item.user_id)

        course_instances = await instance_queries.list_instances(conn, course_id=item.course_id)
        if not course_instances:
            raise NotFound("cohort sync instance", "course id", item.course_id)

        records = await enrolment_queries.get_user_sync_enrolments(
            conn, item.user_id, item.course_id
        )
        if not records:
            raise NotFound("user enrolment", "user id", item.user_id)

        fields: dict[str, Any] = {}
        if item.status is not None:
            fields["status"] = parse_enrolment_status(item.status)
        if item.time_start is not None:
            fields["time_start"] = item.time_start
        if item.time_end is not None:
            fields["time_end"] = item.time_end
        if not fields:
            continue

        for record in records:
            await enrolment_queries.update_enrolment(conn, record["enrolment_id"], **fields)
            updated_ids.append(record["enrolment_id"])

        logger.info(
            f"Updated {len(records)} enrolment(s) of user {item.user_id} "
            f"in course {item.course_id}: {sorted(fields)}"
        )

    return updated_ids
