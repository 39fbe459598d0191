"""Exception types raised by cohort sync operations.

Each error carries the HTTP status code the web API answers with, so routes
can translate them without a lookup table.
"""


class CohortSyncError(Exception):
    """Base exception for cohort sync errors."""

    status_code = 400


class NotFound(CohortSyncError):
    """A course, cohort, role, group, user, enrolment or instance is missing."""

    status_code = 404

    def __init__(self, object_name: str, key: str = "id", value=None):
        self.object_name = object_name
        self.key = key
        self.value = value
        super().__init__(f"Could not find {object_name} with {key} {value}")


class InvalidScope(CohortSyncError):
    """The site pseudo-course was used as a sync target or scope."""

    def __init__(self, course_id: int):
        self.course_id = course_id
        super().__init__(f"Course {course_id} is the site course and cannot be synced")


class DuplicateSyncInstance(CohortSyncError):
    """A sync instance already exists for the (course, role, cohort) triple."""

    status_code = 409

    def __init__(self, instance_id: int, role_id: int):
        self.instance_id = instance_id
        self.role_id = role_id
        super().__init__(
            f"Sync instance {instance_id} is already synchronised with role {role_id}"
        )


class InvalidStatus(CohortSyncError):
    """A status value outside its closed enum."""

    def __init__(self, value, allowed: dict):
        self.value = value
        self.allowed = allowed
        choices = ", ".join(f"{code} - {status.value}" for code, status in allowed.items())
        super().__init__(f"Invalid status {value!r}. Possible values are: {choices}")


class PermissionDenied(CohortSyncError):
    """The acting user is missing a required capability."""

    status_code = 403

    def __init__(self, capability: str, course_id: int | None = None):
        self.capability = capability
        self.course_id = course_id
        super().__init__(f"User is missing the required capability '{capability}'")


class ExternalStoreFailure(CohortSyncError):
    """A collaborator store call failed or timed out."""

    status_code = 502

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None and str(cause) else ""
        super().__init__(f"Store call {operation} failed{detail}")
