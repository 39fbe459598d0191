"""Value types shared by the reconciler, its stores and the admin API."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .enums import (
    ChangeAction,
    EnrolmentStatus,
    GroupMode,
    InstanceStatus,
    UnenrolAction,
)

# Wire values for the group target used by the admin API
GROUP_CODE_NONE = 0
GROUP_CODE_CREATE_NEW = -1


@dataclass(frozen=True)
class GroupTarget:
    """Which course group synced users are placed in.

    Exactly one of: no group, a group created on first enrolment, or an
    existing group id.
    """

    mode: GroupMode = GroupMode.none
    group_id: int | None = None

    def __post_init__(self):
        if (self.mode == GroupMode.existing) != (self.group_id is not None):
            raise ValueError(f"group_id {self.group_id!r} does not match mode {self.mode.value}")

    @classmethod
    def none(cls) -> "GroupTarget":
        return cls(GroupMode.none)

    @classmethod
    def create_new(cls) -> "GroupTarget":
        return cls(GroupMode.create_new)

    @classmethod
    def existing(cls, group_id: int) -> "GroupTarget":
        return cls(GroupMode.existing, group_id)

    @classmethod
    def from_code(cls, code: int | None) -> "GroupTarget":
        """Decode the API integer: 0 = none, -1 = create new, >0 = group id."""
        if code is None or code == GROUP_CODE_NONE:
            return cls.none()
        if code == GROUP_CODE_CREATE_NEW:
            return cls.create_new()
        if code > 0:
            return cls.existing(code)
        raise ValueError(f"Invalid group id {code}")

    def to_code(self) -> int:
        if self.mode == GroupMode.existing:
            return self.group_id
        if self.mode == GroupMode.create_new:
            return GROUP_CODE_CREATE_NEW
        return GROUP_CODE_NONE

    @property
    def concrete_id(self) -> int | None:
        return self.group_id if self.mode == GroupMode.existing else None


@dataclass
class SyncInstance:
    """A configured cohort -> course/role/group synchronization rule."""

    instance_id: int
    course_id: int
    cohort_id: int
    role_id: int
    group: GroupTarget = field(default_factory=GroupTarget)
    name: str = ""
    status: InstanceStatus = InstanceStatus.enabled
    unenrol_action: UnenrolAction = UnenrolAction.unenrol

    @property
    def key(self) -> tuple[int, int, int]:
        """The (course, role, cohort) triple that identifies this rule."""
        return (self.course_id, self.role_id, self.cohort_id)

    @property
    def enabled(self) -> bool:
        return self.status == InstanceStatus.enabled

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SyncInstance":
        return cls(
            instance_id=row["instance_id"],
            course_id=row["course_id"],
            cohort_id=row["cohort_id"],
            role_id=row["role_id"],
            group=GroupTarget(GroupMode(row["group_mode"]), row.get("group_id")),
            name=row.get("name") or "",
            status=InstanceStatus(row["status"]),
            unenrol_action=UnenrolAction(row["unenrol_action"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.instance_id,
            "courseid": self.course_id,
            "cohortid": self.cohort_id,
            "roleid": self.role_id,
            "groupid": self.group.to_code(),
            "name": self.name,
            "status": self.status.value,
            "unenrol_action": self.unenrol_action.value,
        }


@dataclass
class EnrolmentRecord:
    """A roster entry. instance_id is None for records owned by other methods."""

    user_id: int
    course_id: int
    role_id: int
    instance_id: int | None = None
    group_id: int | None = None
    status: EnrolmentStatus = EnrolmentStatus.active
    time_start: datetime | None = None
    time_end: datetime | None = None
    enrolment_id: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "EnrolmentRecord":
        return cls(
            enrolment_id=row["enrolment_id"],
            instance_id=row.get("instance_id"),
            user_id=row["user_id"],
            course_id=row["course_id"],
            role_id=row["role_id"],
            group_id=row.get("group_id"),
            status=EnrolmentStatus(row["status"]),
            time_start=row.get("time_start"),
            time_end=row.get("time_end"),
        )


@dataclass(frozen=True)
class Change:
    """One per-user mutation planned by the diff."""

    action: ChangeAction
    user_id: int
    enrolment_id: int | None = None
    group_id: int | None = None


@dataclass
class SyncError:
    """A failure recorded during reconciliation.

    user_id is None for instance-level reads; instance_id is None when the
    instance list itself could not be read."""

    instance_id: int | None
    user_id: int | None
    action: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "user_id": self.user_id,
            "action": self.action,
            "message": self.message,
        }


@dataclass
class InstanceReport:
    """Mutation counts for one sync instance."""

    instance_id: int
    course_id: int
    enrolled: int = 0
    unenrolled: int = 0
    suspended: int = 0
    reactivated: int = 0
    group_changes: int = 0
    unchanged: int = 0

    @property
    def mutations(self) -> int:
        return (
            self.enrolled
            + self.unenrolled
            + self.suspended
            + self.reactivated
            + self.group_changes
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "course_id": self.course_id,
            "enrolled": self.enrolled,
            "unenrolled": self.unenrolled,
            "suspended": self.suspended,
            "reactivated": self.reactivated,
            "group_changes": self.group_changes,
            "unchanged": self.unchanged,
        }


@dataclass
class SyncReport:
    """Result of a reconcile run."""

    course_id: int | None = None
    instances: dict[int, InstanceReport] = field(default_factory=dict)
    errors: list[SyncError] = field(default_factory=list)
    cancelled: bool = False

    def for_instance(self, instance: SyncInstance) -> InstanceReport:
        if instance.instance_id not in self.instances:
            self.instances[instance.instance_id] = InstanceReport(
                instance_id=instance.instance_id,
                course_id=instance.course_id,
            )
        return self.instances[instance.instance_id]

    @property
    def mutations(self) -> int:
        return sum(r.mutations for r in self.instances.values())

    def merge(self, other: "SyncReport") -> None:
        self.instances.update(other.instances)
        self.errors.extend(other.errors)
        self.cancelled = self.cancelled or other.cancelled

    def totals(self) -> dict[str, int]:
        keys = ("enrolled", "unenrolled", "suspended", "reactivated", "group_changes")
        return {k: sum(getattr(r, k) for r in self.instances.values()) for k in keys}

    def to_dict(self) -> dict[str, Any]:
        return {
            "course_id": self.course_id,
            "instances": [r.to_dict() for r in self.instances.values()],
            "totals": self.totals(),
            "errors": [e.to_dict() for e in self.errors],
            "cancelled": self.cancelled,
        }
