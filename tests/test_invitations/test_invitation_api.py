"""Tests for the invitation API endpoints."""

from datetime import UTC, datetime, timedelta, timezone
from unittest.mock import patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from opshub.db.models import Invitation, InvitationStatus, Organization, User
from opshub.email.service import DeliveryResult


@pytest.fixture(autouse=True)
def mock_email():
    """Never talk to a real SMTP server."""
    with patch("opshub.email.service.get_email_service") as mocked:
        mocked.return_value.send_invitation_email.return_value = DeliveryResult(success=True)
        mocked.return_value.check_configuration.return_value = {
            "configured": False,
            "missing": ["smtp_host"],
            "host": "",
            "port": 465,
            "from_email": "noreply@example.com",
            "use_tls": True,
        }
        yield mocked


def _pending(db: Session, organization: Organization, inviter: User, email: str) -> Invitation:
    inv = Invitation(
        organization_id=organization.id,
        invited_by_id=inviter.id,
        email=email,
        token=uuid4().hex + uuid4().hex,
        status=InvitationStatus.PENDING,
        pending_email=email,
        expires_at=datetime.now(UTC) + timedelta(days=7),
    )
    db.add(inv)
    db.commit()
    db.refresh(inv)
    return inv


class TestCreateInvitation:
    """Tests for POST /api/invitations."""

    def test_create_success(self, admin_client: TestClient, organization):
        response = admin_client.post(
            "/api/invitations",
            json={"email": "new@acme.test", "department": "Customer Support", "message": "Hi"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Invitation sent successfully"
        assert data["invitation"]["email"] == "new@acme.test"
        assert data["invitation"]["status"] == "pending"
        assert data["invitation"]["department"] == "Customer Support"
        assert data["invitation"]["organization_id"] == organization.id
        assert "token" not in data["invitation"]

    def test_create_uses_request_base_url(self, admin_client: TestClient, mock_email):
        admin_client.post("/api/invitations", json={"email": "link@acme.test"})

        args = mock_email.return_value.send_invitation_email.call_args.args
        assert args[1] == "http://testserver"

    def test_create_offset_expiry_returned_in_utc(self, admin_client: TestClient):
        eastern = timezone(timedelta(hours=-5))
        expires = datetime.now(eastern) + timedelta(hours=3)

        response = admin_client.post(
            "/api/invitations",
            json={"email": "offset@acme.test", "expiresAt": expires.isoformat()},
        )

        assert response.status_code == 201
        invitation = response.json()["invitation"]
        for field in ("expires_at", "created_at"):
            assert datetime.fromisoformat(invitation[field]).utcoffset() == timedelta(0)
        returned = datetime.fromisoformat(invitation["expires_at"])
        assert abs(returned - expires) < timedelta(seconds=1)

    def test_create_invalid_email(self, admin_client: TestClient):
        response = admin_client.post("/api/invitations", json={"email": "not-an-email"})

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["error"][0]["field"] == "email"

    def test_create_duplicate(self, admin_client: TestClient):
        admin_client.post("/api/invitations", json={"email": "twice@acme.test"})
        response = admin_client.post("/api/invitations", json={"email": "twice@acme.test"})

        assert response.status_code == 409
        assert response.json() == {
            "success": False,
            "message": "An invitation has already been sent to this email address",
        }

    def test_create_unknown_role(self, admin_client: TestClient):
        response = admin_client.post(
            "/api/invitations", json={"email": "r@acme.test", "role": str(uuid4())}
        )
        assert response.status_code == 404

    def test_create_forbidden_for_member(self, member_client: TestClient):
        response = member_client.post("/api/invitations", json={"email": "m@acme.test"})

        assert response.status_code == 403
        assert response.json()["success"] is False

    def test_create_requires_authentication(self, client: TestClient):
        response = client.post("/api/invitations", json={"email": "anon@acme.test"})

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Not authenticated"}

    def test_create_with_bearer_token(self, client: TestClient, admin_user):
        from opshub.auth.utils import create_access_token

        token = create_access_token(admin_user.id, admin_user.organization_id, admin_user.email)
        response = client.post(
            "/api/invitations",
            json={"email": "bearer@acme.test"},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 201


class TestListAndGet:
    """Tests for GET endpoints."""

    def test_list(self, admin_client: TestClient, db, organization, admin_user):
        _pending(db, organization, admin_user, "a@acme.test")
        _pending(db, organization, admin_user, "b@acme.test")

        response = admin_client.get("/api/invitations")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert {i["email"] for i in data["invitations"]} == {"a@acme.test", "b@acme.test"}

    def test_list_other_organization_forbidden(self, admin_client: TestClient, other_organization):
        response = admin_client.get(
            "/api/invitations", params={"organizationId": other_organization.id}
        )
        assert response.status_code == 403

    def test_super_admin_filters_by_organization(
        self, super_admin_client: TestClient, db, organization, other_organization, super_admin
    ):
        _pending(db, organization, super_admin, "a@acme.test")
        _pending(db, other_organization, super_admin, "b@globex.test")

        response = super_admin_client.get(
            "/api/invitations", params={"organizationId": other_organization.id}
        )

        emails = [i["email"] for i in response.json()["invitations"]]
        assert emails == ["b@globex.test"]

    def test_get(self, admin_client: TestClient, db, organization, admin_user):
        inv = _pending(db, organization, admin_user, "one@acme.test")

        response = admin_client.get(f"/api/invitations/{inv.id}")

        assert response.status_code == 200
        assert response.json()["invitation"]["id"] == inv.id

    def test_get_missing(self, admin_client: TestClient):
        response = admin_client.get(f"/api/invitations/{uuid4()}")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Invitation not found"}


class TestLifecycleEndpoints:
    """Tests for update, resend, cancel and delete."""

    def test_update(self, admin_client: TestClient, db, organization, admin_user):
        inv = _pending(db, organization, admin_user, "u@acme.test")

        response = admin_client.put(f"/api/invitations/{inv.id}", json={"message": "Updated"})

        assert response.status_code == 200
        assert response.json()["invitation"]["message"] == "Updated"

    def test_update_invalid_status(self, admin_client: TestClient, db, organization, admin_user):
        inv = _pending(db, organization, admin_user, "u@acme.test")

        response = admin_client.put(f"/api/invitations/{inv.id}", json={"status": "accepted"})

        assert response.status_code == 400

    def test_resend(self, admin_client: TestClient, db, organization, admin_user, mock_email):
        inv = _pending(db, organization, admin_user, "again@acme.test")
        old_token = inv.token

        response = admin_client.post(f"/api/invitations/{inv.id}/resend")

        assert response.status_code == 200
        assert response.json()["message"] == "Invitation resent successfully"
        db.refresh(inv)
        assert inv.token != old_token
        mock_email.return_value.send_invitation_email.assert_called_once()

    def test_resend_cancelled(self, admin_client: TestClient, db, organization, admin_user):
        inv = _pending(db, organization, admin_user, "c@acme.test")
        admin_client.post(f"/api/invitations/{inv.id}/cancel")

        response = admin_client.post(f"/api/invitations/{inv.id}/resend")

        assert response.status_code == 409

    def test_cancel_twice(self, admin_client: TestClient, db, organization, admin_user):
        inv = _pending(db, organization, admin_user, "c@acme.test")

        first = admin_client.post(f"/api/invitations/{inv.id}/cancel")
        second = admin_client.post(f"/api/invitations/{inv.id}/cancel")

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["invitation"]["status"] == "cancelled"

    def test_delete(self, admin_client: TestClient, db, organization, admin_user):
        inv = _pending(db, organization, admin_user, "d@acme.test")
        inv_id = inv.id

        response = admin_client.delete(f"/api/invitations/{inv_id}")

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Invitation deleted successfully"}
        assert admin_client.get(f"/api/invitations/{inv_id}").status_code == 404

    def test_audit_trail(self, admin_client: TestClient, db, organization, admin_user):
        inv = _pending(db, organization, admin_user, "t@acme.test")
        admin_client.post(f"/api/invitations/{inv.id}/resend")
        admin_client.post(f"/api/invitations/{inv.id}/cancel")

        response = admin_client.get(f"/api/invitations/{inv.id}/audit")

        actions = [e["action"] for e in response.json()["entries"]]
        assert set(actions) == {"Invitation Resent", "Invitation Cancelled"}


class TestPublicEndpoints:
    """Tests for accept and token preview, which need no authentication."""

    def test_preview(self, client: TestClient, db, organization, admin_user):
        inv = _pending(db, organization, admin_user, "p@acme.test")

        response = client.get(f"/api/invitations/token/{inv.token}")

        assert response.status_code == 200
        data = response.json()["invitation"]
        assert data["email"] == "p@acme.test"
        assert data["organization_name"] == "Acme Support"

    def test_accept(self, client: TestClient, db, organization, admin_user):
        inv = _pending(db, organization, admin_user, "join@acme.test")

        response = client.post(
            "/api/invitations/accept",
            json={"token": inv.token, "fullName": "Jo Joiner", "password": "secret123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["token"]
        assert data["user"]["email"] == "join@acme.test"
        assert data["user"]["role"] == "member"
        assert data["invitation"]["status"] == "accepted"

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.status_code == 200
        assert me.json()["email"] == "join@acme.test"

    def test_accept_twice(self, client: TestClient, db, organization, admin_user):
        inv = _pending(db, organization, admin_user, "join@acme.test")
        body = {"token": inv.token, "fullName": "Jo Joiner", "password": "secret123"}

        client.post("/api/invitations/accept", json=body)
        response = client.post("/api/invitations/accept", json=body)

        assert response.status_code == 404
        assert response.json()["message"] == "Invitation not found, expired, or already used"

    def test_accept_missing_fields(self, client: TestClient):
        response = client.post("/api/invitations/accept", json={"token": "abc"})

        assert response.status_code == 400
        assert response.json()["success"] is False


def test_email_config(admin_client: TestClient):
    """Test the SMTP configuration check endpoint."""
    response = admin_client.get("/api/invitations/email-config")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["configured"] is False
    assert "smtp_password" not in data


def test_unknown_route_uses_envelope(client: TestClient):
    """Test that routing errors are rendered in the error envelope."""
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert response.json()["success"] is False
