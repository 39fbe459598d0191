"""
Cohort membership reconciler.

Converges course enrolments with cohort membership minus exclusions, for one
course or every course with enabled sync instances.

The diff (plan_changes) is pure and synchronous. Suspension points are only
the store calls, each bounded by a timeout. Every per-user mutation is an
independent unit: failures are recorded in the SyncReport and the rest of the
batch carries on.

Main entry points:
- Reconciler.reconcile(course_id) - full diff-and-apply for a course or all courses
- Reconciler.sync_cohort_member(cohort_id, user_id) - same diff for one user
- Reconciler.add_exclusion / remove_exclusion / list_exclusions / set_exclusions
"""

import asyncio
import dataclasses
import logging
import weakref
from collections.abc import Awaitable, Iterable

import sentry_sdk

from .enums import ChangeAction, EnrolmentStatus, GroupMode, UnenrolAction
from .exceptions import CohortSyncError, ExternalStoreFailure, InvalidScope, NotFound
from .stores import (
    CohortStore,
    EnrolmentStore,
    ExclusionStore,
    GroupStore,
    LookupStore,
    SyncInstanceStore,
)
from .sync_types import (
    Change,
    EnrolmentRecord,
    GroupTarget,
    InstanceReport,
    SyncError,
    SyncInstance,
    SyncReport,
)

logger = logging.getLogger(__name__)

DEFAULT_GROUP_NAME_TEMPLATE = "{name} cohort {increment}"


# ============================================================================
# DIFF - pure functions, no I/O
# ============================================================================


def desired_members(members: Iterable[int], excluded: Iterable[int]) -> set[int]:
    """Users that should be enrolled: cohort members minus excluded users."""
    return set(members) - set(excluded)


def plan_changes(
    instance: SyncInstance,
    desired: set[int],
    records: list[EnrolmentRecord],
    group_members: set[int] | None = None,
) -> list[Change]:
    """
    Compute the per-user mutations that converge an instance to desired.

    Only records owned by the instance are considered; manual enrolments and
    records of other instances for the same course/role are never touched.

    Args:
        instance: The sync instance, with a concrete group if it has one
        desired: Users that should hold an active enrolment
        records: Enrolment records for the instance's course and role
        group_members: Current members of the instance's group (None = unknown)

    Returns:
        Changes ordered by user id, enrolments first, then removals.
    """
    owned = {r.user_id: r for r in records if r.instance_id == instance.instance_id}
    group_id = instance.group.concrete_id
    changes = []

    for user_id in sorted(desired):
        record = owned.get(user_id)
        if record is None:
            changes.append(Change(ChangeAction.enrol, user_id, group_id=group_id))
        elif record.status == EnrolmentStatus.suspended:
            changes.append(
                Change(ChangeAction.reactivate, user_id, record.enrolment_id, group_id)
            )
        elif (
            group_id is not None
            and group_members is not None
            and user_id not in group_members
        ):
            changes.append(
                Change(ChangeAction.add_to_group, user_id, record.enrolment_id, group_id)
            )

    for user_id in sorted(set(owned) - desired):
        record = owned[user_id]
        if instance.unenrol_action == UnenrolAction.suspend:
            if record.status == EnrolmentStatus.active:
                changes.append(
                    Change(ChangeAction.suspend, user_id, record.enrolment_id)
                )
        else:
            changes.append(
                Change(
                    ChangeAction.unenrol,
                    user_id,
                    record.enrolment_id,
                    record.group_id or group_id,
                )
            )

    return changes


# ============================================================================
# RECONCILER
# ============================================================================


class Reconciler:
    """
    Applies plan_changes against the collaborator stores.

    One Reconciler is shared per process (see core.sync.get_reconciler) so
    that full and event-driven runs use the same lock registry: at most one
    diff-and-apply is in flight per (course, role, cohort) triple.
    """

    def __init__(
        self,
        cohorts: CohortStore,
        enrolments: EnrolmentStore,
        groups: GroupStore,
        exclusions: ExclusionStore,
        instances: SyncInstanceStore,
        lookup: LookupStore,
        *,
        site_course_id: int,
        store_timeout: float = 30.0,
        max_concurrency: int = 4,
        group_name_template: str = DEFAULT_GROUP_NAME_TEMPLATE,
    ):
        self.cohorts = cohorts
        self.enrolments = enrolments
        self.groups = groups
        self.exclusions = exclusions
        self.instances = instances
        self.lookup = lookup
        self.site_course_id = site_course_id
        self.store_timeout = store_timeout
        self.max_concurrency = max(1, max_concurrency)
        self.group_name_template = group_name_template
        # Entries disappear once no run holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[tuple[int, int, int], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, instance: SyncInstance) -> asyncio.Lock:
        lock = self._locks.get(instance.key)
        if lock is None:
            lock = self._locks[instance.key] = asyncio.Lock()
        return lock

    async def _call(self, operation: str, awaitable: Awaitable):
        """Await a store call with the timeout, as ExternalStoreFailure on error."""
        try:
            return await asyncio.wait_for(awaitable, self.store_timeout)
        except asyncio.TimeoutError as e:
            raise ExternalStoreFailure(
                operation, TimeoutError(f"timed out after {self.store_timeout}s")
            ) from e
        except CohortSyncError:
            raise
        except Exception as e:
            raise ExternalStoreFailure(operation, e) from e

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    async def reconcile(
        self,
        course_id: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncReport:
        """
        Reconcile every enabled sync instance of a course (None = all courses).

        Raises:
            InvalidScope: course_id is the site course
            NotFound: course_id does not exist
        """
        if course_id is not None:
            if course_id == self.site_course_id:
                raise InvalidScope(course_id)
            exists = await self._call(
                "lookup.course_exists", self.lookup.course_exists(course_id)
            )
            if not exists:
                raise NotFound("course", "id", course_id)

        report = SyncReport(course_id=course_id)
        try:
            instances = await self._call(
                "instances.list_enabled", self.instances.list_enabled(course_id=course_id)
            )
        except ExternalStoreFailure as e:
            logger.error(f"Could not list sync instances for course {course_id}: {e}")
            sentry_sdk.capture_exception(e)
            report.errors.append(SyncError(None, None, "list_instances", str(e)))
            return report

        await self._run_instances(instances, report, cancel_event)

        totals = report.totals()
        logger.info(
            f"Reconciled {len(report.instances)} sync instance(s) "
            f"(course {course_id if course_id is not None else 'all'}): {totals}, "
            f"{len(report.errors)} error(s)"
        )
        return report

    async def sync_cohort_member(
        self,
        cohort_id: int,
        user_id: int,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncReport:
        """
        Incremental reconcile for one (cohort, user) pair.

        Runs the same diff as reconcile, restricted to user_id, for every
        enabled instance of the cohort.
        """
        report = SyncReport()
        try:
            instances = await self._call(
                "instances.list_enabled", self.instances.list_enabled(cohort_id=cohort_id)
            )
        except ExternalStoreFailure as e:
            logger.error(f"Could not list sync instances for cohort {cohort_id}: {e}")
            sentry_sdk.capture_exception(e)
            report.errors.append(SyncError(None, user_id, "list_instances", str(e)))
            return report

        await self._run_instances(instances, report, cancel_event, only_user=user_id)
        return report

    async def _run_instances(
        self,
        instances: list[SyncInstance],
        report: SyncReport,
        cancel_event: asyncio.Event | None,
        only_user: int | None = None,
    ) -> None:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(instance: SyncInstance) -> None:
            async with semaphore:
                await self._sync_instance(instance, report, cancel_event, only_user)

        targets = []
        for instance in instances:
            if instance.course_id == self.site_course_id:
                logger.warning(
                    f"Skipping sync instance {instance.instance_id} on the site course"
                )
                continue
            if not instance.enabled:
                continue
            targets.append(instance)

        await asyncio.gather(*(run(instance) for instance in targets))

    async def _sync_instance(
        self,
        instance: SyncInstance,
        report: SyncReport,
        cancel_event: asyncio.Event | None,
        only_user: int | None = None,
    ) -> None:
        async with self.lock_for(instance):
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                return

            counts = report.for_instance(instance)
            try:
                members = await self._call(
                    "cohorts.members_of", self.cohorts.members_of(instance.cohort_id)
                )
                excluded = await self._call(
                    "exclusions.excluded_users",
                    self.exclusions.excluded_users(instance.course_id),
                )
                records = await self._call(
                    "enrolments.records_for",
                    self.enrolments.records_for(instance.course_id, instance.role_id),
                )
                desired = desired_members(members, excluded)
                if only_user is not None:
                    desired &= {only_user}
                    records = [r for r in records if r.user_id == only_user]

                instance = await self._resolve_group(instance, desired)
                if instance is None:
                    return

                group_members = None
                if instance.group.concrete_id is not None and desired:
                    group_members = await self._call(
                        "groups.members_of",
                        self.groups.members_of(instance.group.concrete_id),
                    )
            except ExternalStoreFailure as e:
                logger.error(f"Sync instance {instance.instance_id} skipped: {e}")
                sentry_sdk.capture_exception(e)
                report.errors.append(
                    SyncError(instance.instance_id, only_user, "read", str(e))
                )
                return

            changes = plan_changes(instance, desired, records, group_members)
            counts.unchanged += len(desired) - sum(
                1 for change in changes if change.user_id in desired
            )

            for change in changes:
                if cancel_event is not None and cancel_event.is_set():
                    report.cancelled = True
                    logger.info(
                        f"Sync instance {instance.instance_id} cancelled with "
                        f"{len(changes)} change(s) planned"
                    )
                    return
                await self._apply_shielded(instance, change, report, counts)

    async def _resolve_group(
        self,
        instance: SyncInstance,
        desired: set[int],
    ) -> SyncInstance | None:
        """
        Create the group of a CreateNew instance before its first enrolment.

        Re-reads the instance under the lock, so a group created by an earlier
        run is reused. Returns None if the instance was deleted or disabled meanwhile.
        """
        if instance.group.mode != GroupMode.create_new or not desired:
            return instance

        fresh = await self._call("instances.get", self.instances.get(instance.instance_id))
        if fresh is None or not fresh.enabled:
            logger.warning(f"Sync instance {instance.instance_id} was deleted or disabled")
            return None
        if fresh.group.mode != GroupMode.create_new:
            return fresh

        cohort_name = await self._call(
            "cohorts.name_of", self.cohorts.name_of(instance.cohort_id)
        )
        name_template = self.group_name_template.replace("{name}", cohort_name)
        group_id = await self._call(
            "groups.ensure_group",
            self.groups.ensure_group(instance.course_id, name_template),
        )
        await self._call(
            "instances.set_group", self.instances.set_group(instance.instance_id, group_id)
        )
        logger.info(
            f"Sync instance {instance.instance_id} now uses new group {group_id}"
        )
        return dataclasses.replace(fresh, group=GroupTarget.existing(group_id))

    async def _apply_shielded(
        self,
        instance: SyncInstance,
        change: Change,
        report: SyncReport,
        counts: InstanceReport,
    ) -> None:
        """Run one mutation to completion even if the caller is cancelled."""
        task = asyncio.ensure_future(self._apply_change(instance, change, report, counts))
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            await asyncio.wait([task])
            report.cancelled = True
            raise

    async def _apply_change(
        self,
        instance: SyncInstance,
        change: Change,
        report: SyncReport,
        counts: InstanceReport,
    ) -> None:
        try:
            if change.action == ChangeAction.enrol:
                record = EnrolmentRecord(
                    user_id=change.user_id,
                    course_id=instance.course_id,
                    role_id=instance.role_id,
                    instance_id=instance.instance_id,
                    group_id=change.group_id,
                )
                await self._call("enrolments.create", self.enrolments.create(record))
                counts.enrolled += 1
                await self._add_to_group(instance, change, counts)

            elif change.action == ChangeAction.reactivate:
                fields = {"status": EnrolmentStatus.active}
                if change.group_id is not None:
                    fields["group_id"] = change.group_id
                await self._call(
                    "enrolments.update",
                    self.enrolments.update(change.enrolment_id, fields),
                )
                counts.reactivated += 1
                await self._add_to_group(instance, change, counts)

            elif change.action == ChangeAction.add_to_group:
                await self._add_to_group(instance, change, counts)

            elif change.action == ChangeAction.suspend:
                await self._call(
                    "enrolments.update",
                    self.enrolments.update(
                        change.enrolment_id, {"status": EnrolmentStatus.suspended}
                    ),
                )
                counts.suspended += 1

            elif change.action == ChangeAction.unenrol:
                await self._call("enrolments.delete", self.enrolments.delete(change.enrolment_id))
                counts.unenrolled += 1
                # Memberships still claimed by another enrolment stay
                group_ids = {change.group_id, instance.group.concrete_id} - {None}
                for group_id in sorted(group_ids):
                    removed = await self._call(
                        "groups.remove_member",
                        self.groups.remove_member(group_id, change.user_id),
                    )
                    if removed:
                        counts.group_changes += 1

        except Exception as e:
            logger.error(
                f"Failed to {change.action.value} user {change.user_id} "
                f"(sync instance {instance.instance_id}): {e}"
            )
            sentry_sdk.capture_exception(e)
            report.errors.append(
                SyncError(instance.instance_id, change.user_id, change.action.value, str(e))
            )

    async def _add_to_group(
        self,
        instance: SyncInstance,
        change: Change,
        counts: InstanceReport,
    ) -> None:
        if change.group_id is None:
            return
        added = await self._call(
            "groups.add_member",
            self.groups.add_member(change.group_id, change.user_id, instance.instance_id),
        )
        if added:
            counts.group_changes += 1

    # ------------------------------------------------------------------
    # Exclusions
    # ------------------------------------------------------------------

    async def add_exclusion(self, user_id: int, course_id: int) -> bool:
        """
        Exclude a user from cohort sync in a course. Idempotent.

        Takes effect at the next reconcile of the course.

        Raises:
            NotFound: user or course does not exist
        """
        if not await self._call("lookup.user_exists", self.lookup.user_exists(user_id)):
            raise NotFound("user", "id", user_id)
        if not await self._call("lookup.course_exists", self.lookup.course_exists(course_id)):
            raise NotFound("course", "id", course_id)

        added = await self._call("exclusions.add", self.exclusions.add(user_id, course_id))
        if added:
            logger.info(f"Excluded user {user_id} from cohort sync in course {course_id}")
        return added

    async def remove_exclusion(self, user_id: int, course_id: int) -> bool:
        """Remove an exclusion. Idempotent; False if there was none."""
        removed = await self._call(
            "exclusions.remove", self.exclusions.remove(user_id, course_id)
        )
        if removed:
            logger.info(f"Removed exclusion of user {user_id} in course {course_id}")
        return removed

    async def list_exclusions(self, user_id: int) -> set[int]:
        return await self._call("exclusions.courses_for", self.exclusions.courses_for(user_id))

    async def set_exclusions(
        self,
        user_id: int,
        course_ids: Iterable[int],
    ) -> tuple[set[int], set[int]]:
        """
        Replace a user's exclusions with course_ids.

        Returns:
            (added, removed) course id sets
        """
        target = set(course_ids)
        current = await self.list_exclusions(user_id)

        added = set()
        for course_id in sorted(target - current):
            if await self.add_exclusion(user_id, course_id):
                added.add(course_id)

        removed = set()
        for course_id in sorted(current - target):
            if await self.remove_exclusion(user_id, course_id):
                removed.add(course_id)

        return added, removed
