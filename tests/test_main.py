"""
Tests for the application middleware and handlers in jovitools.main.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from conftest import create_mock_invite
from jovitools.main import REQUEST_ID_HEADER, route_template
from jovitools.observability.metrics import metrics


class TestRequestId:
    def test_incoming_request_id_is_echoed(self, anonymous_client: TestClient):
        response = anonymous_client.get("/", headers={REQUEST_ID_HEADER: "req-abc123"})

        assert response.status_code == 200
        assert response.headers[REQUEST_ID_HEADER] == "req-abc123"

    def test_request_id_generated_when_absent(self, anonymous_client: TestClient):
        first = anonymous_client.get("/").headers[REQUEST_ID_HEADER]
        second = anonymous_client.get("/").headers[REQUEST_ID_HEADER]

        assert len(first) == 32
        assert first != second


class TestRouteTemplate:
    def test_matched_route(self):
        request = SimpleNamespace(scope={"route": SimpleNamespace(path="/v1/invites/{code}")})
        assert route_template(request) == "/v1/invites/{code}"

    def test_unmatched(self):
        assert route_template(SimpleNamespace(scope={})) == "unmatched"

    def test_metrics_use_template_not_raw_path(self, anonymous_client: TestClient):
        """Invite codes never become metric label values."""
        invite = create_mock_invite()
        with (
            patch("jovitools.api.routes.InviteService") as MockService,
            patch.object(metrics, "record_http_request") as record,
        ):
            MockService.return_value.lookup = AsyncMock(return_value=invite)
            anonymous_client.get("/v1/invites/SECRET99")

        endpoint, method, status_code, _ = record.call_args.args
        assert endpoint == "/v1/invites/{code}"
        assert (method, status_code) == ("GET", 200)

    def test_unknown_path_is_unmatched(self, anonymous_client: TestClient):
        with patch.object(metrics, "record_http_request") as record:
            response = anonymous_client.get("/wp-admin/setup.php")

        assert response.status_code == 404
        assert record.call_args.args[0] == "unmatched"


class TestValidationErrors:
    def test_rejected_input_is_not_echoed(self, user_client: TestClient):
        response = user_client.post(
            "/generate-image", json={"prompt": "gato", "aspect_ratio": "hunter2-secret"}
        )

        assert response.status_code == 422
        errors = response.json()["detail"]
        assert errors
        assert all(set(error) <= {"type", "loc", "msg"} for error in errors)
        assert "hunter2-secret" not in response.text
