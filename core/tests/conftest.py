"""In-memory store doubles for reconciler tests."""

import asyncio
import dataclasses
from typing import Any

import pytest

from core.enums import GroupMode, InstanceStatus, UnenrolAction
from core.reconciler import Reconciler
from core.sync_types import EnrolmentRecord, GroupTarget, SyncInstance

SITE_COURSE_ID = 1


class FakeCohortStore:
    def __init__(self):
        self.members: dict[int, set[int]] = {}
        self.names: dict[int, str] = {}

    async def members_of(self, cohort_id: int) -> set[int]:
        return set(self.members.get(cohort_id, set()))

    async def exists(self, cohort_id: int) -> bool:
        return cohort_id in self.members

    async def name_of(self, cohort_id: int) -> str:
        return self.names.get(cohort_id, f"Cohort {cohort_id}")


class FakeEnrolmentStore:
    def __init__(self):
        self.records: dict[int, EnrolmentRecord] = {}
        self.fail_for: set[int] = set()
        self.create_delay = 0.0
        self.create_calls = 0
        self.on_create = None
        self._next_id = 1

    def add(self, **kwargs) -> EnrolmentRecord:
        """Insert a record directly (e.g. a manual enrolment)."""
        record = EnrolmentRecord(enrolment_id=self._next_id, **kwargs)
        self.records[self._next_id] = record
        self._next_id += 1
        return record

    def for_user(self, user_id: int) -> list[EnrolmentRecord]:
        return [r for r in self.records.values() if r.user_id == user_id]

    async def records_for(self, course_id: int, role_id: int) -> list[EnrolmentRecord]:
        return [
            dataclasses.replace(r)
            for r in self.records.values()
            if r.course_id == course_id and r.role_id == role_id
        ]

    async def create(self, record: EnrolmentRecord) -> int:
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if record.user_id in self.fail_for:
            raise RuntimeError(f"cannot enrol user {record.user_id}")
        for existing in self.records.values():
            if existing.instance_id == record.instance_id and existing.user_id == record.user_id:
                raise RuntimeError("duplicate key value violates unique constraint")
        self.create_calls += 1
        created = self.add(**{
            f.name: getattr(record, f.name)
            for f in dataclasses.fields(record)
            if f.name != "enrolment_id"
        })
        if self.on_create:
            self.on_create(created)
        return created.enrolment_id

    async def update(self, enrolment_id: int, fields: dict[str, Any]) -> None:
        self.records[enrolment_id] = dataclasses.replace(self.records[enrolment_id], **fields)

    async def delete(self, enrolment_id: int) -> None:
        self.records.pop(enrolment_id, None)

    async def exists(self, **filters: Any) -> bool:
        return any(
            all(getattr(r, name) == value for name, value in filters.items())
            for r in self.records.values()
        )


class FakeGroupStore:
    """Group memberships with the sync instance that added each one."""

    def __init__(self, enrolments: "FakeEnrolmentStore", instances: "FakeInstanceStore"):
        self.enrolments = enrolments
        self.instances = instances
        self.members: dict[int, set[int]] = {}
        self.added_by: dict[tuple[int, int], int | None] = {}
        self.names: dict[int, str] = {}
        self.ensure_calls = 0
        self._next_id = 100

    def add_group(self, name: str = "Group") -> int:
        group_id = self._next_id
        self._next_id += 1
        self.members[group_id] = set()
        self.names[group_id] = name
        return group_id

    def join(self, group_id: int, user_id: int, instance_id: int | None = None) -> None:
        """Add a member directly; instance_id None is a member added by hand."""
        self.members.setdefault(group_id, set()).add(user_id)
        self.added_by[(group_id, user_id)] = instance_id

    def _claimed(self, group_id: int, user_id: int) -> bool:
        for record in self.enrolments.for_user(user_id):
            if record.group_id == group_id:
                return True
            instance = self.instances.instances.get(record.instance_id)
            if instance is not None and instance.group.concrete_id == group_id:
                return True
        return False

    async def ensure_group(self, course_id: int, name_template: str) -> int:
        self.ensure_calls += 1
        return self.add_group(name_template.replace("{increment}", "1"))

    async def add_member(self, group_id: int, user_id: int, instance_id: int) -> bool:
        if user_id in self.members.get(group_id, set()):
            return False
        self.join(group_id, user_id, instance_id)
        return True

    async def remove_member(self, group_id: int, user_id: int) -> bool:
        if user_id not in self.members.get(group_id, set()):
            return False
        if self.added_by.get((group_id, user_id)) is None:
            return False
        if self._claimed(group_id, user_id):
            return False
        self.members[group_id].discard(user_id)
        del self.added_by[(group_id, user_id)]
        return True

    async def members_of(self, group_id: int) -> set[int]:
        return set(self.members.get(group_id, set()))



class FakeExclusionStore:
    def __init__(self):
        self.pairs: set[tuple[int, int]] = set()

    async def excluded_users(self, course_id: int) -> set[int]:
        return {user_id for user_id, c in self.pairs if c == course_id}

    async def courses_for(self, user_id: int) -> set[int]:
        return {course_id for u, course_id in self.pairs if u == user_id}

    async def add(self, user_id: int, course_id: int) -> bool:
        if (user_id, course_id) in self.pairs:
            return False
        self.pairs.add((user_id, course_id))
        return True

    async def remove(self, user_id: int, course_id: int) -> bool:
        if (user_id, course_id) not in self.pairs:
            return False
        self.pairs.discard((user_id, course_id))
        return True


class FakeInstanceStore:
    def __init__(self):
        self.instances: dict[int, SyncInstance] = {}

    async def list_enabled(self, course_id=None, cohort_id=None) -> list[SyncInstance]:
        return [
            dataclasses.replace(i)
            for i in self.instances.values()
            if i.enabled
            and i.course_id != SITE_COURSE_ID
            and (course_id is None or i.course_id == course_id)
            and (cohort_id is None or i.cohort_id == cohort_id)
        ]

    async def get(self, instance_id: int) -> SyncInstance | None:
        instance = self.instances.get(instance_id)
        return dataclasses.replace(instance) if instance else None

    async def set_group(self, instance_id: int, group_id: int) -> None:
        self.instances[instance_id] = dataclasses.replace(
            self.instances[instance_id], group=GroupTarget.existing(group_id)
        )


class FakeLookupStore:
    def __init__(self):
        self.courses: set[int] = {SITE_COURSE_ID}
        self.users: set[int] = set()

    async def course_exists(self, course_id: int) -> bool:
        return course_id in self.courses

    async def user_exists(self, user_id: int) -> bool:
        return user_id in self.users


class World:
    """A course/cohort setup wired to a Reconciler over in-memory stores."""

    def __init__(self, **reconciler_kwargs):
        self.cohorts = FakeCohortStore()
        self.enrolments = FakeEnrolmentStore()
        self.instances = FakeInstanceStore()
        self.groups = FakeGroupStore(self.enrolments, self.instances)
        self.exclusions = FakeExclusionStore()
        self.lookup = FakeLookupStore()
        self.reconciler = Reconciler(
            self.cohorts,
            self.enrolments,
            self.groups,
            self.exclusions,
            self.instances,
            self.lookup,
            site_course_id=SITE_COURSE_ID,
            **reconciler_kwargs,
        )
        self._next_instance_id = 1

    def add_cohort(self, cohort_id: int, members=(), name: str | None = None) -> None:
        self.cohorts.members[cohort_id] = set(members)
        if name:
            self.cohorts.names[cohort_id] = name
        self.lookup.users.update(members)

    def add_instance(
        self,
        course_id: int,
        cohort_id: int,
        role_id: int = 5,
        group: GroupTarget | None = None,
        unenrol_action: UnenrolAction = UnenrolAction.unenrol,
        status: InstanceStatus = InstanceStatus.enabled,
    ) -> SyncInstance:
        instance = SyncInstance(
            instance_id=self._next_instance_id,
            course_id=course_id,
            cohort_id=cohort_id,
            role_id=role_id,
            group=group or GroupTarget.none(),
            status=status,
            unenrol_action=unenrol_action,
        )
        self.instances.instances[instance.instance_id] = instance
        self.lookup.courses.add(course_id)
        self._next_instance_id += 1
        return instance

    def enrolled(self, instance: SyncInstance, status=None) -> set[int]:
        """Users with a record owned by the instance (optionally in a status)."""
        return {
            r.user_id
            for r in self.enrolments.records.values()
            if r.instance_id == instance.instance_id and (status is None or r.status == status)
        }

    def state(self) -> set[tuple]:
        """Comparable snapshot of enrolments and group memberships."""
        records = {
            (r.instance_id, r.user_id, r.course_id, r.role_id, r.status.value)
            for r in self.enrolments.records.values()
        }
        memberships = {
            ("group", group_id, user_id)
            for group_id, members in self.groups.members.items()
            for user_id in members
        }
        return records | memberships

    def group_mode(self, instance: SyncInstance) -> GroupMode:
        return self.instances.instances[instance.instance_id].group.mode


@pytest.fixture
def world():
    return World()


@pytest.fixture
def make_world():
    """Factory for extra worlds or ones with custom reconciler settings."""
    return World
