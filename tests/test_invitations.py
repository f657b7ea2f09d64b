import smtplib
from datetime import datetime, timedelta, timezone

import pytest

from fleetcommand.models.models import AuditLog, Invitation, Profile
from fleetcommand.services import mailer
from conftest import PASSWORD


@pytest.fixture
def outbox(monkeypatch):
    """Capture invitation mails instead of talking to SMTP."""
    sent = []

    def _send(email, role, token, origin=None):
        sent.append({"email": email, "role": role, "token": token, "origin": origin})
        return True

    monkeypatch.setattr("fleetcommand.auth.router.send_invitation_email", _send)
    return sent


def invite(client, headers, email="new.tech@example.com", role="technician"):
    return client.post("/auth/invitations", json={"email": email, "role": role}, headers=headers)


class TestCreateInvitation:
    def test_requires_auth(self, client, outbox):
        assert invite(client, {}).status_code == 401

    @pytest.mark.parametrize("who", ["supervisor", "technician", "viewer"])
    def test_requires_admin(self, request, client, outbox, who):
        _, headers = request.getfixturevalue(who)
        assert invite(client, headers).status_code == 403
        assert outbox == []

    def test_creates_pending_invitation(self, client, db, admin, outbox):
        profile, headers = admin
        resp = invite(client, {**headers, "Origin": "https://fleet.example.com"}, email="New.Tech@Example.com")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["email_sent"] is True

        inv = db.query(Invitation).one()
        assert inv.email == "new.tech@example.com"
        assert inv.status == "pending"
        assert inv.invited_by == profile.id
        assert len(inv.token) >= 32
        assert outbox == [{
            "email": "new.tech@example.com",
            "role": "technician",
            "token": inv.token,
            "origin": "https://fleet.example.com",
        }]
        assert db.query(AuditLog).filter(AuditLog.action == "INVITE").count() == 1

    def test_existing_user_is_409(self, client, admin, technician, outbox):
        tech, _ = technician
        _, headers = admin
        assert invite(client, headers, email=tech.email).status_code == 409

    def test_bad_payload_is_422(self, client, admin, outbox):
        _, headers = admin
        assert invite(client, headers, email="not-an-email").status_code == 422
        assert invite(client, headers, role="owner").status_code == 422
        assert client.post("/auth/invitations", json={"role": "viewer"}, headers=headers).status_code == 422

    def test_mail_not_configured_still_creates(self, client, db, admin):
        _, headers = admin
        resp = invite(client, headers)
        assert resp.status_code == 200
        assert resp.json()["email_sent"] is False
        assert db.query(Invitation).count() == 1


class TestAcceptInvitation:
    def _token(self, client, admin, outbox, role="technician"):
        _, headers = admin
        invite(client, headers, role=role)
        return outbox[-1]["token"]

    def test_validate(self, client, admin, outbox):
        token = self._token(client, admin, outbox)
        resp = client.get(f"/auth/invitations/{token}")
        assert resp.status_code == 200
        assert resp.json()["email"] == "new.tech@example.com"
        assert resp.json()["role"] == "technician"

    def test_unknown_token_is_404(self, client):
        assert client.get("/auth/invitations/nope").status_code == 404

    def test_register_creates_internal_user_with_invited_role(self, client, db, admin, outbox):
        token = self._token(client, admin, outbox, role="supervisor")
        resp = client.post(
            "/auth/register",
            json={"invitation_token": token, "full_name": "New Tech", "password": PASSWORD},
        )
        assert resp.status_code == 201
        access = resp.json()["access_token"]

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {access}"}).json()
        assert me["email"] == "new.tech@example.com"
        assert me["role"] == "supervisor"
        assert me["tenant_type"] == "internal"
        assert me["capabilities"]["can_approve"] is True

        inv = db.query(Invitation).one()
        db.refresh(inv)
        assert inv.status == "accepted"
        assert inv.accepted_at is not None

    def test_token_is_single_use(self, client, admin, outbox):
        token = self._token(client, admin, outbox)
        body = {"invitation_token": token, "full_name": "New Tech", "password": PASSWORD}
        assert client.post("/auth/register", json=body).status_code == 201
        assert client.post("/auth/register", json=body).status_code == 400
        assert client.get(f"/auth/invitations/{token}").status_code == 400

    def test_expired_invitation(self, client, db, admin, outbox):
        token = self._token(client, admin, outbox)
        inv = db.query(Invitation).one()
        inv.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        db.commit()

        resp = client.post(
            "/auth/register",
            json={"invitation_token": token, "full_name": "New Tech", "password": PASSWORD},
        )
        assert resp.status_code == 400
        db.refresh(inv)
        assert inv.status == "expired"
        assert db.query(Profile).filter(Profile.email == "new.tech@example.com").count() == 0

    def test_weak_password_is_422(self, client, admin, outbox):
        token = self._token(client, admin, outbox)
        resp = client.post(
            "/auth/register",
            json={"invitation_token": token, "full_name": "New Tech", "password": "weak"},
        )
        assert resp.status_code == 422


class TestLogin:
    def test_login_and_refresh(self, client, technician):
        profile, _ = technician
        resp = client.post("/auth/login", json={"email": profile.email.upper(), "password": PASSWORD})
        assert resp.status_code == 200
        tokens = resp.json()

        refreshed = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 200
        assert refreshed.json()["token_type"] == "bearer"

    def test_bad_password(self, client, technician):
        profile, _ = technician
        resp = client.post("/auth/login", json={"email": profile.email, "password": "Wr0ng!pass"})
        assert resp.status_code == 401

    def test_refresh_token_is_not_an_access_token(self, client, technician):
        profile, _ = technician
        tokens = client.post("/auth/login", json={"email": profile.email, "password": PASSWORD}).json()
        resp = client.get("/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
        assert resp.status_code == 401

    def test_access_token_cannot_refresh(self, client, technician):
        _, headers = technician
        token = headers["Authorization"].split()[1]
        assert client.post("/auth/refresh", json={"refresh_token": token}).status_code == 400

    def test_garbage_token(self, client):
        assert client.get("/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401


class TestMailer:
    def test_link_prefers_origin(self):
        assert mailer.invitation_link("abc", "https://fleet.example.com/") == "https://fleet.example.com/auth?invitation=abc"
        assert mailer.invitation_link("abc").endswith("/auth?invitation=abc")

    def test_message_mentions_role_and_expiry(self):
        subject, text, html = mailer.invitation_message("technician", "https://x/auth?invitation=t", 7)
        assert "invited" in subject
        assert "technician" in text
        assert "7 days" in text
        assert 'href="https://x/auth?invitation=t"' in html

    def test_unconfigured_smtp_skips(self, monkeypatch):
        monkeypatch.setattr("fleetcommand.services.mailer.settings.smtp_host", None)
        assert mailer.send_email("a@example.com", "s", "t") is False

    def test_delivery_failure_is_logged_not_raised(self, monkeypatch):
        def _boom(*args, **kwargs):
            raise smtplib.SMTPException("relay refused")

        monkeypatch.setattr(mailer, "send_email", _boom)
        assert mailer.send_invitation_email("a@example.com", "viewer", "tok") is False
