"""Tests for the user enrolment update endpoint."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

from core.exceptions import InvalidStatus
from core.enums import ENROLMENT_STATUS_CODES
from web_api.routes.enrolments import router


@asynccontextmanager
async def fake_transaction():
    yield MagicMock()


@patch("web_api.routes.enrolments.get_transaction", fake_transaction)
class TestUpdateEnrolments:
    @patch("web_api.routes.enrolments.update_user_enrolments", new_callable=AsyncMock)
    def test_updates(self, mock_update, make_client):
        mock_update.return_value = [31]

        response = make_client(router).post(
            "/api/enrolments/update",
            json={"enrolments": [{"user_id": 3, "course_id": 10, "status": 1}]},
        )

        assert response.status_code == 200
        assert response.json() == {"message": "User enrolments updated", "enrolment_ids": [31]}
        updates = mock_update.call_args.args[1]
        assert (updates[0].user_id, updates[0].course_id, updates[0].status) == (3, 10, 1)

    @patch("web_api.routes.enrolments.update_user_enrolments", new_callable=AsyncMock)
    def test_invalid_status_is_400(self, mock_update, make_client):
        mock_update.side_effect = InvalidStatus(7, ENROLMENT_STATUS_CODES)

        response = make_client(router).post(
            "/api/enrolments/update",
            json={"enrolments": [{"user_id": 3, "course_id": 10, "status": 7}]},
        )

        assert response.status_code == 400
