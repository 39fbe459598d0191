"""
Manual sync routes.

All endpoints require admin authentication.

Endpoints:
- POST /api/sync/courses/{course_id} - Reconcile one course
- POST /api/sync/all - Reconcile every course
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from core.exceptions import CohortSyncError
from core.reconciler import Reconciler
from core.sync import get_reconciler
from web_api.auth import require_admin

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("/courses/{course_id}")
async def sync_course_endpoint(
    course_id: int,
    admin: dict = Depends(require_admin),
    reconciler: Reconciler = Depends(get_reconciler),
) -> dict[str, Any]:
    """
    Reconcile one course. Per-user failures are listed in "errors"; the
    request still succeeds.
    """
    try:
        report = await reconciler.reconcile(course_id)
    except CohortSyncError as e:
        raise HTTPException(e.status_code, str(e))

    return report.to_dict()


@router.post("/all")
async def sync_all_endpoint(
    admin: dict = Depends(require_admin),
    reconciler: Reconciler = Depends(get_reconciler),
) -> dict[str, Any]:
    report = await reconciler.reconcile(None)
    return report.to_dict()
