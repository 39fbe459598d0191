"""Tests for the sync entry points and the cohort change hook."""

import pytest
from unittest.mock import AsyncMock, patch

from core.sync import get_reconciler, set_reconciler, sync_after_cohort_change, sync_course


class TestReconcilerSingleton:
    def test_returns_same_instance(self, world):
        set_reconciler(world.reconciler)

        assert get_reconciler() is world.reconciler
        assert get_reconciler() is get_reconciler()


class TestSyncCourse:
    @pytest.mark.asyncio
    async def test_returns_report_dict(self, world):
        world.add_cohort(20, {1, 2})
        world.add_instance(10, 20)
        set_reconciler(world.reconciler)

        result = await sync_course(10)

        assert result["course_id"] == 10
        assert result["totals"]["enrolled"] == 2
        assert result["errors"] == []
        assert result["cancelled"] is False


class TestSyncAfterCohortChange:
    """The event hook never raises; failed syncs are retried."""

    @pytest.fixture(autouse=True)
    def event_sync_enabled(self, monkeypatch):
        monkeypatch.delenv("SYNC_ON_COHORT_EVENTS", raising=False)

    @pytest.mark.asyncio
    async def test_syncs_the_user(self, world):
        world.add_cohort(20, {1})
        instance = world.add_instance(10, 20)
        set_reconciler(world.reconciler)

        with patch("core.scheduler.schedule_sync_retry") as mock_retry:
            result = await sync_after_cohort_change(20, 1)

        assert world.enrolled(instance) == {1}
        assert result["totals"]["enrolled"] == 1
        mock_retry.assert_not_called()

    @pytest.mark.asyncio
    async def test_skipped_when_event_sync_disabled(self, world, monkeypatch):
        monkeypatch.setenv("SYNC_ON_COHORT_EVENTS", "false")
        world.add_cohort(20, {1})
        instance = world.add_instance(10, 20)
        set_reconciler(world.reconciler)

        result = await sync_after_cohort_change(20, 1)

        assert result == {"skipped": True}
        assert world.enrolled(instance) == set()

    @pytest.mark.asyncio
    async def test_schedules_retry_on_partial_failure(self, world):
        world.add_cohort(20, {1})
        world.add_instance(10, 20)
        world.enrolments.fail_for = {1}
        set_reconciler(world.reconciler)

        with patch("core.scheduler.schedule_sync_retry") as mock_retry:
            result = await sync_after_cohort_change(20, 1)

        assert len(result["errors"]) == 1
        mock_retry.assert_called_once_with(
            sync_type="cohort_member", target_id=20, attempt=0, user_id=1
        )

    @pytest.mark.asyncio
    async def test_exception_is_captured_and_retried(self):
        with (
            patch(
                "core.sync.sync_cohort_member",
                new_callable=AsyncMock,
                side_effect=ConnectionError("db down"),
            ),
            patch("core.scheduler.schedule_sync_retry") as mock_retry,
            patch("core.sync.sentry_sdk") as mock_sentry,
        ):
            result = await sync_after_cohort_change(20, 1)

        assert result == {"error": "db down"}
        mock_sentry.capture_exception.assert_called_once()
        mock_retry.assert_called_once()
