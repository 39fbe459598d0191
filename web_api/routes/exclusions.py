"""
Exclusion routes.

All endpoints require admin authentication. Exclusions take effect at the
next sync of the course.

Endpoints:
- GET /api/exclusions/{user_id} - Courses a user is excluded from
- PUT /api/exclusions/{user_id} - Replace a user's exclusions
- POST /api/exclusions - Exclude a user from a course
- DELETE /api/exclusions - Remove an exclusion
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from core.exceptions import CohortSyncError
from core.reconciler import Reconciler
from core.sync import get_reconciler
from web_api.auth import require_admin

router = APIRouter(prefix="/api/exclusions", tags=["exclusions"])


class ExclusionRequest(BaseModel):
    """Request body for adding or removing one exclusion."""

    user_id: int
    course_id: int


class SetExclusionsRequest(BaseModel):
    course_ids: list[int]


@router.get("/{user_id}")
async def list_exclusions_endpoint(
    user_id: int,
    admin: dict = Depends(require_admin),
    reconciler: Reconciler = Depends(get_reconciler),
) -> dict[str, Any]:
    try:
        course_ids = await reconciler.list_exclusions(user_id)
    except CohortSyncError as e:
        raise HTTPException(e.status_code, str(e))

    return {"user_id": user_id, "course_ids": sorted(course_ids)}


@router.put("/{user_id}")
async def set_exclusions_endpoint(
    user_id: int,
    request: SetExclusionsRequest,
    admin: dict = Depends(require_admin),
    reconciler: Reconciler = Depends(get_reconciler),
) -> dict[str, Any]:
    """Exclude the user from exactly the given courses."""
    try:
        added, removed = await reconciler.set_exclusions(user_id, request.course_ids)
    except CohortSyncError as e:
        raise HTTPException(e.status_code, str(e))

    return {
        "user_id": user_id,
        "course_ids": sorted(set(request.course_ids)),
        "added": sorted(added),
        "removed": sorted(removed),
    }


@router.post("")
async def add_exclusion_endpoint(
    request: ExclusionRequest,
    admin: dict = Depends(require_admin),
    reconciler: Reconciler = Depends(get_reconciler),
) -> dict[str, Any]:
    try:
        added = await reconciler.add_exclusion(request.user_id, request.course_id)
    except CohortSyncError as e:
        raise HTTPException(e.status_code, str(e))

    return {"user_id": request.user_id, "course_id": request.course_id, "added": added}


@router.delete("")
async def remove_exclusion_endpoint(
    request: ExclusionRequest,
    admin: dict = Depends(require_admin),
    reconciler: Reconciler = Depends(get_reconciler),
) -> dict[str, Any]:
    try:
        removed = await reconciler.remove_exclusion(request.user_id, request.course_id)
    except CohortSyncError as e:
        raise HTTPException(e.status_code, str(e))

    return {"user_id": request.user_id, "course_id": request.course_id, "removed": removed}
