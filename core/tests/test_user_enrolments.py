"""Tests for bulk updates of cohort-sync enrolments."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest

from core.enums import EnrolmentStatus
from core.exceptions import InvalidStatus, NotFound
from core.user_enrolments import EnrolmentUpdate, parse_enrolment_status, update_user_enrolments


@pytest.fixture
def queries():
    with (
        patch("core.queries.users.user_exists", new_callable=AsyncMock, return_value=True) as user_exists,
        patch(
            "core.queries.instances.list_instances",
            new_callable=AsyncMock,
            return_value=[{"instance_id": 7}],
        ) as list_instances,
        patch(
            "core.queries.enrolments.get_user_sync_enrolments",
            new_callable=AsyncMock,
            return_value=[{"enrolment_id": 31}, {"enrolment_id": 32}],
        ) as get_records,
        patch("core.queries.enrolments.update_enrolment", new_callable=AsyncMock) as update,
    ):
        yield {
            "user_exists": user_exists,
            "list_instances": list_instances,
            "get_user_sync_enrolments": get_records,
            "update_enrolment": update,
        }


class TestParseEnrolmentStatus:
    def test_codes_and_names(self):
        assert parse_enrolment_status(0) == EnrolmentStatus.active
        assert parse_enrolment_status(1) == EnrolmentStatus.suspended
        assert parse_enrolment_status("suspended") == EnrolmentStatus.suspended

    def test_rejects_unknown(self):
        with pytest.raises(InvalidStatus):
            parse_enrolment_status(3)


class TestUpdateUserEnrolments:
    @pytest.mark.asyncio
    async def test_updates_every_sync_enrolment_of_the_user(self, queries):
        conn = MagicMock()
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)

        ids = await update_user_enrolments(
            conn, [EnrolmentUpdate(user_id=3, course_id=10, status=1, time_start=start)]
        )

        assert ids == [31, 32]
        fields = {"status": EnrolmentStatus.suspended, "time_start": start}
        assert queries["update_enrolment"].call_args_list == [
            call(conn, 31, **fields),
            call(conn, 32, **fields),
        ]

    @pytest.mark.asyncio
    async def test_item_without_fields_is_skipped(self, queries):
        ids = await update_user_enrolments(MagicMock(), [EnrolmentUpdate(user_id=3, course_id=10)])

        assert ids == []
        queries["update_enrolment"].assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_user(self, queries):
        queries["user_exists"].return_value = False

        with pytest.raises(NotFound) as exc_info:
            await update_user_enrolments(MagicMock(), [EnrolmentUpdate(3, 10, status=0)])

        assert exc_info.value.object_name == "user"

    @pytest.mark.asyncio
    async def test_course_without_instances(self, queries):
        queries["list_instances"].return_value = []

        with pytest.raises(NotFound) as exc_info:
            await update_user_enrolments(MagicMock(), [EnrolmentUpdate(3, 10, status=0)])

        assert exc_info.value.object_name == "cohort sync instance"

    @pytest.mark.asyncio
    async def test_user_without_sync_enrolments(self, queries):
        queries["get_user_sync_enrolments"].return_value = []

        with pytest.raises(NotFound) as exc_info:
            await update_user_enrolments(MagicMock(), [EnrolmentUpdate(3, 10, status=0)])

        assert exc_info.value.object_name == "user enrolment"

    @pytest.mark.asyncio
    async def test_invalid_status_stops_the_batch(self, queries):
        updates = [EnrolmentUpdate(3, 10, status=0), EnrolmentUpdate(4, 10, status=9)]

        with pytest.raises(InvalidStatus):
            await update_user_enrolments(MagicMock(), updates)
