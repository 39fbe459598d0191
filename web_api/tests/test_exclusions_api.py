"""Tests for the exclusion endpoints."""

from core.exceptions import NotFound
from web_api.routes.exclusions import router


class TestExclusionEndpoints:
    def test_list(self, make_client, reconciler):
        reconciler.list_exclusions.return_value = {12, 10}

        response = make_client(router).get("/api/exclusions/3")

        assert response.status_code == 200
        assert response.json() == {"user_id": 3, "course_ids": [10, 12]}

    def test_replace(self, make_client, reconciler):
        reconciler.set_exclusions.return_value = ({12}, {11})

        response = make_client(router).put("/api/exclusions/3", json={"course_ids": [10, 12, 10]})

        assert response.json() == {
            "user_id": 3,
            "course_ids": [10, 12],
            "added": [12],
            "removed": [11],
        }
        reconciler.set_exclusions.assert_awaited_once_with(3, [10, 12, 10])

    def test_add(self, make_client, reconciler):
        response = make_client(router).post("/api/exclusions", json={"user_id": 3, "course_id": 10})

        assert response.status_code == 200
        assert response.json()["added"] is True
        reconciler.add_exclusion.assert_awaited_once_with(3, 10)

    def test_add_unknown_course_is_404(self, make_client, reconciler):
        reconciler.add_exclusion.side_effect = NotFound("course", "id", 404)

        response = make_client(router).post("/api/exclusions", json={"user_id": 3, "course_id": 404})

        assert response.status_code == 404

    def test_remove(self, make_client, reconciler):
        reconciler.remove_exclusion.return_value = False

        response = make_client(router).request(
            "DELETE", "/api/exclusions", json={"user_id": 3, "course_id": 10}
        )

        assert response.status_code == 200
        assert response.json()["removed"] is False
