"""Tests for capability checks."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from core.capabilities import (
    REQUIRED_INSTANCE_CAPABILITIES,
    require_capabilities,
    user_has_capability,
)
from core.exceptions import PermissionDenied


class StubChecker:
    def __init__(self, granted):
        self.granted = set(granted)
        self.checked = []

    async def has_capability(self, capability, course_id, user_id):
        self.checked.append(capability)
        return capability in self.granted


class TestUserHasCapability:
    @pytest.mark.asyncio
    async def test_admin_has_everything(self):
        with (
            patch("core.queries.users.is_admin", new_callable=AsyncMock, return_value=True),
            patch(
                "core.queries.courses.get_user_capabilities_in_course",
                new_callable=AsyncMock,
            ) as mock_caps,
        ):
            assert await user_has_capability(MagicMock(), "role:assign", 10, 3)

        mock_caps.assert_not_called()

    @pytest.mark.asyncio
    async def test_granted_through_course_role(self):
        with (
            patch("core.queries.users.is_admin", new_callable=AsyncMock, return_value=False),
            patch(
                "core.queries.courses.get_user_capabilities_in_course",
                new_callable=AsyncMock,
                return_value={"cohort:view"},
            ),
        ):
            assert await user_has_capability(MagicMock(), "cohort:view", 10, 3)
            assert not await user_has_capability(MagicMock(), "role:assign", 10, 3)


class TestRequireCapabilities:
    @pytest.mark.asyncio
    async def test_passes_with_all_capabilities(self):
        checker = StubChecker(REQUIRED_INSTANCE_CAPABILITIES)

        await require_capabilities(checker, 10, 3)

        assert checker.checked == list(REQUIRED_INSTANCE_CAPABILITIES)

    @pytest.mark.asyncio
    async def test_names_first_missing_capability(self):
        checker = StubChecker({"course:enrolconfig", "cohortsync:config"})

        with pytest.raises(PermissionDenied) as exc_info:
            await require_capabilities(checker, 10, 3)

        assert exc_info.value.capability == "cohort:view"
        assert exc_info.value.status_code == 403
