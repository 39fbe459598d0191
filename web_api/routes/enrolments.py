"""
User enrolment routes.

Endpoints:
- POST /api/enrolments/update - Update status / time window of users' cohort-sync enrolments
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from core.database import get_transaction
from core.exceptions import CohortSyncError
from core.user_enrolments import EnrolmentUpdate, update_user_enrolments
from web_api.auth import require_admin

router = APIRouter(prefix="/api/enrolments", tags=["enrolments"])


class EnrolmentUpdateItem(BaseModel):
    user_id: int
    course_id: int
    status: int | str | None = None  # 0 active, 1 suspended
    time_start: datetime | None = None
    time_end: datetime | None = None


class UpdateEnrolmentsRequest(BaseModel):
    """Request body for updating user enrolments."""

    enrolments: list[EnrolmentUpdateItem]


@router.post("/update")
async def update_enrolments_endpoint(
    request: UpdateEnrolmentsRequest,
    admin: dict = Depends(require_admin),
) -> dict[str, Any]:
    """
    Update users' cohort-sync enrolments. All items succeed or none do.
    """
    updates = [EnrolmentUpdate(**item.model_dump()) for item in request.enrolments]
    try:
        async with get_transaction() as conn:
            updated_ids = await update_user_enrolments(conn, updates)
    except CohortSyncError as e:
        raise HTTPException(e.status_code, str(e))

    return {
        "message": "User enrolments updated" if updated_ids else "No changes",
        "enrolment_ids": updated_ids,
    }
