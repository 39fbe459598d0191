"""Tests for cohort membership hooks."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core.cohorts import add_cohort_member, remove_cohort_member
from core.exceptions import NotFound


@asynccontextmanager
async def fake_transaction():
    yield MagicMock()


@pytest.fixture
def cohort_queries():
    with (
        patch("core.cohorts.get_transaction", fake_transaction),
        patch("core.queries.cohorts.cohort_exists", new_callable=AsyncMock, return_value=True) as exists,
        patch("core.queries.users.user_exists", new_callable=AsyncMock, return_value=True) as user_exists,
        patch("core.queries.cohorts.add_cohort_member", new_callable=AsyncMock, return_value=True) as add,
        patch("core.queries.cohorts.remove_cohort_member", new_callable=AsyncMock, return_value=True) as remove,
        patch(
            "core.cohorts.sync_after_cohort_change",
            new_callable=AsyncMock,
            return_value={"errors": []},
        ) as sync,
    ):
        yield {
            "cohort_exists": exists,
            "user_exists": user_exists,
            "add": add,
            "remove": remove,
            "sync": sync,
        }


class TestAddCohortMember:
    @pytest.mark.asyncio
    async def test_adds_then_syncs(self, cohort_queries):
        result = await add_cohort_member(20, 3)

        assert result == {"changed": True, "sync": {"errors": []}}
        cohort_queries["sync"].assert_awaited_once_with(20, 3)

    @pytest.mark.asyncio
    async def test_existing_member_still_syncs(self, cohort_queries):
        cohort_queries["add"].return_value = False

        result = await add_cohort_member(20, 3)

        assert result["changed"] is False
        cohort_queries["sync"].assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_user(self, cohort_queries):
        cohort_queries["user_exists"].return_value = False

        with pytest.raises(NotFound):
            await add_cohort_member(20, 3)

        cohort_queries["add"].assert_not_called()
        cohort_queries["sync"].assert_not_called()


class TestRemoveCohortMember:
    @pytest.mark.asyncio
    async def test_removes_then_syncs(self, cohort_queries):
        result = await remove_cohort_member(20, 3)

        assert result["changed"] is True
        cohort_queries["sync"].assert_awaited_once_with(20, 3)

    @pytest.mark.asyncio
    async def test_unknown_cohort(self, cohort_queries):
        cohort_queries["cohort_exists"].return_value = False

        with pytest.raises(NotFound):
            await remove_cohort_member(20, 3)
