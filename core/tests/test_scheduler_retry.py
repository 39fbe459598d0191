"""Tests for sync retry scheduling and the periodic full sync."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from core.scheduler import (
    FULL_SYNC_JOB_ID,
    MAX_SYNC_RETRY_ATTEMPTS,
    _execute_full_sync,
    _execute_sync_retry,
    get_retry_delay,
    schedule_full_sync,
    schedule_sync_retry,
)


class TestGetRetryDelay:
    """Test exponential backoff calculation."""

    def test_first_attempt_is_1_second(self):
        """First retry should be ~1 second."""
        delay = get_retry_delay(attempt=0)
        assert 1 <= delay <= 1.1  # 1s + up to 10% jitter

    def test_exponential_growth(self):
        """Delay should double each attempt."""
        assert get_retry_delay(attempt=0, include_jitter=False) == 1
        assert get_retry_delay(attempt=1, include_jitter=False) == 2
        assert get_retry_delay(attempt=2, include_jitter=False) == 4

    def test_caps_at_30_minutes(self):
        delay = get_retry_delay(attempt=20, include_jitter=False)
        assert delay == 1800

    def test_includes_jitter_by_default(self):
        """Should add random jitter to prevent thundering herd."""
        delays = [get_retry_delay(attempt=5) for _ in range(10)]
        assert len(set(delays)) > 1


class TestScheduleSyncRetry:
    """Test retry job scheduling."""

    def test_schedules_job_per_cohort_member(self):
        mock_scheduler = MagicMock()

        with patch("core.scheduler._scheduler", mock_scheduler):
            schedule_sync_retry(sync_type="cohort_member", target_id=5, attempt=0, user_id=7)

        mock_scheduler.add_job.assert_called_once()
        call_kwargs = mock_scheduler.add_job.call_args[1]
        assert call_kwargs["id"] == "sync_retry_cohort_member_5_7"
        assert call_kwargs["replace_existing"] is True
        assert call_kwargs["kwargs"] == {
            "sync_type": "cohort_member",
            "target_id": 5,
            "attempt": 1,
            "user_id": 7,
        }

    def test_full_sync_retry_id(self):
        mock_scheduler = MagicMock()

        with patch("core.scheduler._scheduler", mock_scheduler):
            schedule_sync_retry(sync_type="all", target_id=None, attempt=2)

        assert mock_scheduler.add_job.call_args[1]["id"] == "sync_retry_all"

    def test_does_nothing_when_scheduler_unavailable(self):
        with patch("core.scheduler._scheduler", None):
            # Should not raise
            schedule_sync_retry(sync_type="course", target_id=10, attempt=0)


class TestExecuteSyncRetry:
    @pytest.mark.asyncio
    async def test_success_does_not_reschedule(self):
        with (
            patch("core.sync.sync_course", new_callable=AsyncMock, return_value={"errors": []}) as mock_sync,
            patch("core.scheduler.schedule_sync_retry") as mock_retry,
        ):
            await _execute_sync_retry("course", 10, attempt=1)

        mock_sync.assert_awaited_once_with(10)
        mock_retry.assert_not_called()

    @pytest.mark.asyncio
    async def test_partial_failure_reschedules(self):
        result = {"errors": [{"user_id": 7}]}
        with (
            patch("core.sync.sync_cohort_member", new_callable=AsyncMock, return_value=result),
            patch("core.scheduler.schedule_sync_retry") as mock_retry,
        ):
            await _execute_sync_retry("cohort_member", 5, attempt=3, user_id=7)

        mock_retry.assert_called_once_with("cohort_member", 5, 3, 7)

    @pytest.mark.asyncio
    async def test_exception_reschedules(self):
        with (
            patch("core.sync.sync_all", new_callable=AsyncMock, side_effect=ConnectionError("down")),
            patch("core.scheduler.schedule_sync_retry") as mock_retry,
            patch("sentry_sdk.capture_exception") as mock_capture,
        ):
            await _execute_sync_retry("all", None, attempt=2)

        mock_capture.assert_called_once()
        mock_retry.assert_called_once_with("all", None, 2, None)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        with (
            patch("core.sync.sync_course", new_callable=AsyncMock) as mock_sync,
            patch("sentry_sdk.capture_message") as mock_message,
        ):
            await _execute_sync_retry("course", 10, attempt=MAX_SYNC_RETRY_ATTEMPTS + 1)

        mock_sync.assert_not_called()
        mock_message.assert_called_once()


class TestFullSync:
    def test_schedules_interval_job(self):
        mock_scheduler = MagicMock()

        with patch("core.scheduler._scheduler", mock_scheduler):
            assert schedule_full_sync(interval_minutes=15) is True

        call_kwargs = mock_scheduler.add_job.call_args[1]
        assert call_kwargs["id"] == FULL_SYNC_JOB_ID
        assert call_kwargs["trigger"] == "interval"
        assert call_kwargs["minutes"] == 15

    def test_zero_interval_disables(self):
        mock_scheduler = MagicMock()

        with patch("core.scheduler._scheduler", mock_scheduler):
            assert schedule_full_sync(interval_minutes=0) is False

        mock_scheduler.add_job.assert_not_called()

    @pytest.mark.asyncio
    async def test_full_sync_job_never_raises(self):
        with (
            patch("core.sync.sync_all", new_callable=AsyncMock, side_effect=RuntimeError("boom")),
            patch("sentry_sdk.capture_exception") as mock_capture,
        ):
            await _execute_full_sync()

        mock_capture.assert_called_once()
