"""
Cohort membership routes.

Called by the system that owns cohorts whenever membership changes. Each
change is followed by an incremental sync of that user's enrolments.

Endpoints:
- POST /api/cohorts/{cohort_id}/members - Add a user to a cohort
- DELETE /api/cohorts/{cohort_id}/members/{user_id} - Remove a user from a cohort
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from core.cohorts import add_cohort_member, remove_cohort_member
from core.exceptions import CohortSyncError
from web_api.auth import require_admin

router = APIRouter(prefix="/api/cohorts", tags=["cohorts"])


class MemberRequest(BaseModel):
    """Request body for member operations."""

    user_id: int


@router.post("/{cohort_id}/members")
async def add_member_endpoint(
    cohort_id: int,
    request: MemberRequest,
    admin: dict = Depends(require_admin),
) -> dict[str, Any]:
    try:
        result = await add_cohort_member(cohort_id, request.user_id)
    except CohortSyncError as e:
        raise HTTPException(e.status_code, str(e))

    return {"cohort_id": cohort_id, "user_id": request.user_id, **result}


@router.delete("/{cohort_id}/members/{user_id}")
async def remove_member_endpoint(
    cohort_id: int,
    user_id: int,
    admin: dict = Depends(require_admin),
) -> dict[str, Any]:
    try:
        result = await remove_cohort_member(cohort_id, user_id)
    except CohortSyncError as e:
        raise HTTPException(e.status_code, str(e))

    return {"cohort_id": cohort_id, "user_id": user_id, **result}
