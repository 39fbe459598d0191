"""
Sync instance routes.

Create/update/delete check the instance capabilities in the course context.
Listing spans courses, so it requires a site admin.

Endpoints:
- GET /api/instances?course_id= - List instances (-1 or omitted = all courses)
- POST /api/instances - Create an instance
- PATCH /api/instances/{instance_id} - Update an instance
- DELETE /api/instances/{instance_id} - Delete an instance and its enrolments
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from core.capabilities import get_capability_checker, require_capabilities
from core.database import get_connection, get_transaction
from core.enums import UnenrolAction
from core.exceptions import CohortSyncError
from core.instances import (
    create_instance,
    delete_instance,
    get_instance,
    list_instances,
    parse_group_code,
    require_course,
    update_instance,
)
from core.stores import CapabilityChecker
from web_api.auth import get_current_user, require_admin

router = APIRouter(prefix="/api/instances", tags=["instances"])

LIST_ALL_COURSES = -1


class CreateInstanceRequest(BaseModel):
    """Request body for creating a sync instance."""

    course_id: int
    cohort_id: int
    role_id: int
    group_id: int = 0  # 0 none, -1 create new, >0 existing group
    name: str = ""
    status: int | str = 0
    unenrol_action: UnenrolAction | None = None


class UpdateInstanceRequest(BaseModel):
    """Request body for updating a sync instance. Omitted fields are kept."""

    name: str | None = None
    status: int | str | None = None
    role_id: int | None = None
    group_id: int | None = None
    unenrol_action: UnenrolAction | None = None


@router.get("")
async def list_instances_endpoint(
    course_id: int = LIST_ALL_COURSES,
    admin: dict = Depends(require_admin),
) -> dict[str, Any]:
    scope = None if course_id == LIST_ALL_COURSES else course_id
    try:
        async with get_connection() as conn:
            instances = await list_instances(conn, scope)
    except CohortSyncError as e:
        raise HTTPException(e.status_code, str(e))

    return {
        "id": course_id,
        "message": f"Found {len(instances)} cohort sync instance(s)",
        "instances": [instance.to_dict() for instance in instances],
    }


@router.post("", status_code=201)
async def create_instance_endpoint(
    request: CreateInstanceRequest,
    user: dict = Depends(get_current_user),
    checker: CapabilityChecker = Depends(get_capability_checker),
) -> dict[str, Any]:
    """
    Create a sync instance. The first sync happens on the next reconcile of
    the course (or call POST /api/sync/courses/{course_id}).
    """
    try:
        async with get_transaction() as conn:
            await require_course(conn, request.course_id)
            await require_capabilities(checker, request.course_id, user["user_id"])
            instance = await create_instance(
                conn,
                course_id=request.course_id,
                cohort_id=request.cohort_id,
                role_id=request.role_id,
                group=parse_group_code(request.group_id),
                name=request.name,
                status=request.status,
                unenrol_action=request.unenrol_action,
            )
    except CohortSyncError as e:
        raise HTTPException(e.status_code, str(e))

    return {
        "id": instance.instance_id,
        "message": "Cohort sync instance created",
        "instance": instance.to_dict(),
    }


@router.patch("/{instance_id}")
async def update_instance_endpoint(
    instance_id: int,
    request: UpdateInstanceRequest,
    user: dict = Depends(get_current_user),
    checker: CapabilityChecker = Depends(get_capability_checker),
) -> dict[str, Any]:
    fields = request.model_dump(exclude_unset=True)
    try:
        async with get_transaction() as conn:
            current = await get_instance(conn, instance_id)
            await require_capabilities(checker, current.course_id, user["user_id"])

            if not fields:
                return {
                    "id": instance_id,
                    "message": "No changes",
                    "instance": current.to_dict(),
                }

            group = None
            if fields.get("group_id") is not None:
                group = parse_group_code(fields["group_id"])

            instance, changed = await update_instance(
                conn,
                instance_id,
                name=fields.get("name"),
                status=fields.get("status"),
                role_id=fields.get("role_id"),
                group=group,
                unenrol_action=fields.get("unenrol_action"),
            )
    except CohortSyncError as e:
        raise HTTPException(e.status_code, str(e))

    return {
        "id": instance_id,
        "message": "Cohort sync instance updated" if changed else "No changes",
        "changed": changed,
        "instance": instance.to_dict(),
    }


@router.delete("/{instance_id}")
async def delete_instance_endpoint(
    instance_id: int,
    user: dict = Depends(get_current_user),
    checker: CapabilityChecker = Depends(get_capability_checker),
) -> dict[str, Any]:
    try:
        async with get_transaction() as conn:
            current = await get_instance(conn, instance_id)
            await require_capabilities(checker, current.course_id, user["user_id"])
            instance = await delete_instance(conn, instance_id)
    except CohortSyncError as e:
        raise HTTPException(e.status_code, str(e))

    return {
        "id": instance_id,
        "message": "Cohort sync instance deleted",
        "instance": instance.to_dict(),
    }
