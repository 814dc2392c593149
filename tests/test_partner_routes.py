"""
Tests for the partner (sócio) API routes.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from fastapi.testclient import TestClient

from conftest import create_mock_profile
from jovitools.exceptions import AccessDeniedError, PartnerLimitError
from jovitools.models.domain import AccessState
from jovitools.services.access_rules import describe_access
from jovitools.services.partners import PartnerClientView


class TestPartnerRoutes:
    """Tests for /partner/clients."""

    def test_plain_user_forbidden(self, user_client: TestClient):
        response = user_client.get("/partner/clients")
        assert response.status_code == 403

    def test_create_client(self, partner_client: TestClient, partner_user):
        client = create_mock_profile(
            user_id=None,
            email="joao@example.com",
            access_expires_at=datetime.now(UTC) + timedelta(days=30),
            partner_id=partner_user.profile.id,
        )
        with patch("jovitools.api.partner_routes.PartnerService") as MockService:
            MockService.return_value.create_client = AsyncMock(return_value=client)
            response = partner_client.post(
                "/partner/clients",
                json={"email": "Joao@Example.com", "name": "João", "plan_days": 30},
            )

        assert response.status_code == 201
        assert response.json()["masked_email"] == "jo***@example.com"
        kwargs = MockService.return_value.create_client.await_args.kwargs
        assert kwargs["partner_id"] == partner_user.profile.id
        assert kwargs["email"] == "joao@example.com"

    def test_limit_reached(self, partner_client: TestClient, partner_user):
        with patch("jovitools.api.partner_routes.PartnerService") as MockService:
            MockService.return_value.create_client = AsyncMock(
                side_effect=PartnerLimitError(partner_user.profile.id, 50)
            )
            response = partner_client.post(
                "/partner/clients",
                json={"email": "x@example.com", "name": "X", "plan_days": 30},
            )

        assert response.status_code == 409

    def test_invalid_plan_rejected(self, partner_client: TestClient):
        response = partner_client.post(
            "/partner/clients", json={"email": "x@example.com", "name": "X", "plan_days": 45}
        )
        assert response.status_code == 422

    def test_list_clients(self, partner_client: TestClient):
        now = datetime.now(UTC)
        expires = now + timedelta(days=90)
        view = PartnerClientView(
            profile_id=uuid4(),
            name="João",
            masked_email="jo***@example.com",
            masked_whatsapp="*******4321",
            has_access=True,
            access_expires_at=expires,
            access=describe_access(AccessState(True, expires), now),
            created_at=now,
        )
        with patch("jovitools.api.partner_routes.PartnerService") as MockService:
            MockService.return_value.list_clients = AsyncMock(return_value=[view])
            MockService.return_value.max_clients = 50
            response = partner_client.get("/partner/clients")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["limit"] == 50
        assert data["clients"][0]["masked_whatsapp"] == "*******4321"

    def test_foreign_client_forbidden(self, partner_client: TestClient):
        with patch("jovitools.api.partner_routes.PartnerService") as MockService:
            MockService.return_value.set_client_access = AsyncMock(
                side_effect=AccessDeniedError("Client belongs to another partner")
            )
            response = partner_client.patch(
                f"/partner/clients/{uuid4()}", json={"has_access": False}
            )

        assert response.status_code == 403

    def test_admin_passes_admin_flag(self, admin_client: TestClient):
        client = create_mock_profile()
        with patch("jovitools.api.partner_routes.PartnerService") as MockService:
            MockService.return_value.renew_client = AsyncMock(return_value=client)
            response = admin_client.post(
                f"/partner/clients/{client.id}/renew", json={"plan_days": 90}
            )

        assert response.status_code == 200
        assert MockService.return_value.renew_client.await_args.kwargs["is_admin"] is True
