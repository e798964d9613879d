"""HTTP tests for the auth, menu and admin routers."""

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from warden.core.config import settings
from warden.core.exceptions import WardenError
from warden.core.security import RequireAction
from warden.db.stores import credential_store
from warden.main import warden_exception_handler
from warden.schemas.schemas import Principal
from warden.services.account_token_service import EMAIL_CONFIRMATION, PASSWORD_RESET
from warden.services.session_service import session_service

from tests.helpers import PASSWORD

COOKIE = settings.REFRESH_COOKIE_NAME


def _login(client, email="alice@example.com", password=PASSWORD, **kwargs):
    return client.post("/api/auth/login", json={"email": email, "password": password}, **kwargs)


def _bearer(response):
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def _refresh_with(client, token):
    client.cookies.clear()
    return client.post("/api/auth/refresh", headers={"Cookie": f"{COOKIE}={token}"})


class TestLogin:

    def test_refresh_token_only_travels_in_the_cookie(self, client, user):
        response = _login(client)

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["email"] == "alice@example.com"
        assert body["user"]["roles"] == ["User"]
        assert "refresh_token" not in body

        set_cookie = response.headers["set-cookie"].lower()
        assert set_cookie.startswith(f"{COOKIE}=")
        assert "httponly" in set_cookie
        assert "path=/api/auth" in set_cookie
        assert "samesite=strict" in set_cookie
        assert f"max-age={settings.REFRESH_TOKEN_EXPIRY_DAYS * 86400}" in set_cookie

    def test_forwarded_address_is_used_behind_a_trusted_proxy(self, client, db, user, monkeypatch):
        monkeypatch.setattr(settings, "TRUSTED_PROXIES", ["testclient"])

        _login(client, headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.1", "User-Agent": "pytest-agent/1.0"})

        [credential] = session_service.list_active(db, user.id)
        assert credential.ip == "203.0.113.5"
        assert credential.device_info == "pytest-agent/1.0"

    def test_forwarded_header_from_untrusted_peer_is_ignored(self, client, db, user):
        _login(client, headers={"X-Forwarded-For": "203.0.113.5"})

        [credential] = session_service.list_active(db, user.id)
        assert credential.ip == "testclient"

    def test_bad_credentials(self, client, user):
        wrong = _login(client, password="nope")
        unknown = _login(client, email="ghost@example.com")

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert COOKIE not in wrong.cookies

    def test_unconfirmed_account_is_forbidden(self, client, make_user):
        make_user("pending@example.com", email_confirmed=False)

        assert _login(client, email="pending@example.com").status_code == 403

    def test_request_validation(self, client, roles):
        response = client.post("/api/auth/register", json={"email": "a@b.co", "password": "short"})
        assert response.status_code == 422

    def test_overlong_passwords(self, client, user):
        login = _login(client, password="x" * 100)
        register = client.post(
            "/api/auth/register", json={"email": "long@example.com", "password": "y" * 100},
        )

        assert login.status_code == 401
        assert register.status_code == 422


class TestRefresh:

    def test_rotates_cookie_and_returns_new_access_token(self, client, user):
        login = _login(client)
        first = client.cookies.get(COOKIE)

        response = client.post("/api/auth/refresh")

        assert response.status_code == 200
        assert "refresh_token" not in response.json()
        assert response.json()["access_token"] != login.json()["access_token"]
        assert client.cookies.get(COOKIE) not in (None, first)

    def test_replay_is_rejected_like_any_bad_token(self, client, db, user):
        _login(client)
        stolen = client.cookies.get(COOKIE)
        client.post("/api/auth/refresh")
        current = client.cookies.get(COOKIE)

        replay = _refresh_with(client, stolen)
        garbage = _refresh_with(client, "garbage")
        missing = client.post("/api/auth/refresh")

        for response in (replay, garbage, missing):
            assert response.status_code == 401
            assert response.json() == {"detail": "Not authenticated"}
        assert 'max-age=0' in replay.headers["set-cookie"].lower()

        # The legitimate holder has been signed out as well
        assert _refresh_with(client, current).status_code == 401
        db.expire_all()
        assert session_service.list_active(db, user.id) == []

    def test_disabled_account(self, client, db, user):
        _login(client)
        user.is_active = False
        db.commit()

        response = client.post("/api/auth/refresh")

        assert response.status_code == 403
        assert "max-age=0" in response.headers["set-cookie"].lower()


class TestLogout:

    def test_revokes_and_clears_cookie(self, client, db, user):
        _login(client)
        token = client.cookies.get(COOKIE)

        response = client.post("/api/auth/logout")

        assert response.status_code == 200
        assert "max-age=0" in response.headers["set-cookie"].lower()
        db.expire_all()
        assert session_service.list_active(db, user.id) == []
        assert _refresh_with(client, token).status_code == 401

    def test_succeeds_without_cookie(self, client):
        response = client.post("/api/auth/logout")
        assert response.status_code == 200
        assert response.json() == {"message": "Logged out successfully"}

    def test_succeeds_when_storage_fails(self, client, user, monkeypatch):
        from warden.core.exceptions import InfrastructureError

        _login(client)

        def broken(*args, **kwargs):
            raise InfrastructureError("database down")

        monkeypatch.setattr(session_service, "logout", broken)
        assert client.post("/api/auth/logout").status_code == 200


class TestAccount:

    def test_me_requires_a_bearer_token(self, client):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_me(self, client, user):
        response = client.get("/api/auth/me", headers=_bearer(_login(client)))

        assert response.status_code == 200
        assert response.json()["id"] == user.id

    def test_register_signs_in(self, client, roles):
        response = client.post(
            "/api/auth/register",
            json={"email": "new@example.com", "password": "long-enough-pw"},
        )

        assert response.status_code == 200
        assert response.json()["user"]["email_confirmed"] is False
        assert client.cookies.get(COOKIE)

    def test_register_duplicate(self, client, user):
        response = client.post(
            "/api/auth/register",
            json={"email": "alice@example.com", "password": "long-enough-pw"},
        )
        assert response.status_code == 409

    def test_external_login(self, client, roles):
        response = client.post(
            "/api/auth/external-login",
            json={"provider": "google", "provider_key": "g-1", "email": "ext@example.com"},
        )

        assert response.status_code == 200
        assert response.json()["user"]["email_confirmed"] is True

    def test_change_password_signs_out_everywhere(self, client, db, user):
        headers = _bearer(_login(client))
        session_service.issue_session(db, user.id, device="other")

        response = client.post(
            "/api/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "another-long-one"},
            headers=headers,
        )

        assert response.status_code == 200
        db.expire_all()
        assert session_service.list_active(db, user.id) == []
        assert _login(client, password="another-long-one").status_code == 200


class TestAccountLinks:

    def test_register_confirm_then_login(self, client, roles, outbox):
        client.post(
            "/api/auth/register",
            json={"email": "new@example.com", "password": "long-enough-pw"},
        )
        assert _login(client, "new@example.com", "long-enough-pw").status_code == 403

        token = outbox.last_token("new@example.com", EMAIL_CONFIRMATION)
        confirmed = client.post(
            "/api/auth/confirm-email", json={"email": "new@example.com", "token": token},
        )
        replayed = client.post(
            "/api/auth/confirm-email", json={"email": "new@example.com", "token": "wrong"},
        )

        assert confirmed.status_code == 200
        # Already confirmed: nothing left to check the token against
        assert replayed.status_code == 200
        assert _login(client, "new@example.com", "long-enough-pw").status_code == 200

    def test_bad_confirmation_token(self, client, make_user):
        make_user("pending@example.com", email_confirmed=False)

        response = client.post(
            "/api/auth/confirm-email", json={"email": "pending@example.com", "token": "wrong"},
        )

        assert response.status_code == 422
        assert response.json() == {"detail": "Invalid or expired token"}

    def test_resend_and_forgot_answer_the_same_for_unknown_accounts(self, client, make_user, outbox):
        make_user("pending@example.com", email_confirmed=False)

        for path in ("/api/auth/resend-confirmation", "/api/auth/forgot-password"):
            known = client.post(path, json={"email": "pending@example.com"})
            unknown = client.post(path, json={"email": "ghost@example.com"})
            assert known.status_code == unknown.status_code == 200
            assert known.json() == unknown.json()

        assert [purpose for _, purpose, _ in outbox.sent] == [EMAIL_CONFIRMATION, PASSWORD_RESET]

    def test_reset_password_signs_out_everywhere(self, client, db, user, outbox):
        _login(client)
        client.post("/api/auth/forgot-password", json={"email": "alice@example.com"})
        token = outbox.last_token("alice@example.com", PASSWORD_RESET)

        response = client.post(
            "/api/auth/reset-password",
            json={"email": "alice@example.com", "token": token, "new_password": "brand-new-pass"},
        )

        assert response.status_code == 200
        assert "max-age=0" in response.headers["set-cookie"].lower()
        db.expire_all()
        assert session_service.list_active(db, user.id) == []
        assert _login(client).status_code == 401
        assert _login(client, password="brand-new-pass").status_code == 200

    def test_reset_password_validation(self, client, user):
        too_long = client.post(
            "/api/auth/reset-password",
            json={"email": "alice@example.com", "token": "t", "new_password": "x" * 100},
        )
        bad_token = client.post(
            "/api/auth/reset-password",
            json={"email": "alice@example.com", "token": "t", "new_password": "brand-new-pass"},
        )

        assert too_long.status_code == 422
        assert bad_token.status_code == 422
        assert _login(client).status_code == 200


class TestMenu:

    @pytest.fixture
    def site(self, tree):
        general = tree.section("General", is_visible_to_all=True)
        tree.item(general, "Dashboard", route="/dashboard", is_visible_to_all=True)
        reports = tree.section("Reports")
        sales = tree.item(reports, "Sales", route="/reports/sales")
        export = tree.action(sales, "export")
        tree.grant("Auditor", reports, sales)
        tree.enable("Auditor", export)
        tree.commit()

    def test_menu_follows_token_roles(self, client, make_user, site):
        make_user("plain@example.com")
        make_user("audit@example.com", role_names=("User", "Auditor"))

        plain = client.get("/api/menu", headers=_bearer(_login(client, "plain@example.com")))
        auditor = client.get("/api/menu", headers=_bearer(_login(client, "audit@example.com")))

        assert [s["name"] for s in plain.json()["sections"]] == ["General"]
        sections = auditor.json()["sections"]
        assert [s["name"] for s in sections] == ["General", "Reports"]
        assert sections[1]["items"][0]["actions"] == ["export"]

    def test_route_and_action_checks(self, client, make_user, site):
        make_user("audit@example.com", role_names=("Auditor",))
        headers = _bearer(_login(client, "audit@example.com"))

        route = client.get("/api/menu/route-access", params={"route": "/reports/sales"}, headers=headers)
        action = client.get(
            "/api/menu/action-access",
            params={"route": "/reports/sales", "action": "delete"},
            headers=headers,
        )

        assert route.json() == {"route": "/reports/sales", "action": None, "allowed": True}
        assert action.json()["allowed"] is False

    def test_requires_authentication(self, client):
        assert client.get("/api/menu").status_code == 401
        assert client.get("/api/menu", headers={"Authorization": "Bearer junk"}).status_code == 401


class TestAdmin:

    @pytest.fixture
    def admin_headers(self, client, make_user):
        make_user("root@example.com", role_names=("Admin", "User"))
        return _bearer(_login(client, "root@example.com"))

    def test_non_admin_is_forbidden(self, client, user):
        headers = _bearer(_login(client))

        assert client.get("/api/admin/menu", headers=headers).status_code == 403
        assert client.get("/api/admin/audit", headers=headers).status_code == 403

    def test_structure_and_role_permissions(self, client, tree, roles, admin_headers):
        section = tree.section("Ops")
        item = tree.item(section, "Jobs", route="/ops/jobs")
        tree.commit()
        role_id = roles["User"].id

        structure = client.get("/api/admin/menu", headers=admin_headers)
        assert structure.status_code == 200
        assert structure.json()["sections"][0]["items"][0]["route"] == "/ops/jobs"

        update = client.put(
            f"/api/admin/roles/{role_id}/permissions",
            json={"navigation": [
                {"node_id": section.id, "has_access": True},
                {"node_id": item.id, "has_access": True},
            ]},
            headers=admin_headers,
        )
        assert update.status_code == 200

        perms = client.get(f"/api/admin/roles/{role_id}/permissions", headers=admin_headers).json()
        assert perms["sections"][0]["has_access"] is True
        assert perms["sections"][0]["items"][0]["has_access"] is True

    def test_unknown_role_or_node(self, client, admin_headers):
        assert client.get("/api/admin/roles/999/permissions", headers=admin_headers).status_code == 404
        response = client.put(
            "/api/admin/roles/1/permissions",
            json={"navigation": [{"node_id": 999, "has_access": True}]},
            headers=admin_headers,
        )
        assert response.status_code == 404

    def test_user_list_detail_and_create(self, client, roles, user, admin_headers):
        listed = client.get("/api/admin/users", params={"search": "alice"}, headers=admin_headers)
        detail = client.get(f"/api/admin/users/{user.id}", headers=admin_headers)
        missing = client.get("/api/admin/users/999", headers=admin_headers)
        created = client.post(
            "/api/admin/users",
            json={"email": "aud@example.com", "password": "long-enough-pw", "role_name": "Auditor"},
            headers=admin_headers,
        )

        assert listed.json()["total"] == 1
        assert [u["email"] for u in listed.json()["items"]] == ["alice@example.com"]
        assert detail.json()["roles"] == ["User"]
        assert missing.status_code == 404
        assert created.status_code == 201
        assert created.json()["roles"] == ["Auditor"]
        assert _login(client, "aud@example.com", "long-enough-pw").status_code == 200

    def test_confirm_email_for_a_user(self, client, make_user, admin_headers):
        pending = make_user("pending@example.com", email_confirmed=False)

        response = client.post(f"/api/admin/users/{pending.id}/confirm-email", headers=admin_headers)

        assert response.json()["email_confirmed"] is True
        assert _login(client, "pending@example.com").status_code == 200

    def test_revoke_sessions_and_disable(self, client, db, user, admin_headers):
        session_service.issue_session(db, user.id)
        session_service.issue_session(db, user.id)

        revoked = client.post(f"/api/admin/users/{user.id}/revoke-sessions", headers=admin_headers)
        assert revoked.json() == {"user_id": user.id, "revoked": 2}

        disabled = client.put(
            f"/api/admin/users/{user.id}/enabled", json={"enabled": False}, headers=admin_headers,
        )
        assert disabled.json()["is_active"] is False
        assert _login(client).status_code == 403

    def test_audit_trail(self, client, admin_headers):
        response = client.get(
            "/api/admin/audit", params={"action": "session.issued"}, headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["logs"][0]["action"] == "session.issued"


class TestRequireAction:

    @pytest.fixture
    def guarded(self):
        guarded_app = FastAPI()
        guarded_app.add_exception_handler(WardenError, warden_exception_handler)

        @guarded_app.post("/reports/export")
        async def export(principal: Principal = Depends(RequireAction("/reports", "export"))):
            return {"user_id": principal.user_id}

        with TestClient(guarded_app) as guarded_client:
            yield guarded_client

    def test_allows_and_denies_by_action_grant(self, client, guarded, tree, make_user):
        reports = tree.item(tree.section("S"), "Reports", route="/reports")
        tree.enable("Auditor", tree.action(reports, "export"))
        tree.commit()
        auditor = make_user("audit@example.com", role_names=("Auditor",))
        make_user("plain@example.com")

        allowed = guarded.post(
            "/reports/export", headers=_bearer(_login(client, "audit@example.com")),
        )
        denied = guarded.post(
            "/reports/export", headers=_bearer(_login(client, "plain@example.com")),
        )

        assert allowed.json() == {"user_id": auditor.id}
        assert denied.status_code == 403


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_unknown_credential_store_row_is_untouched_by_logout(client, db, user):
    issued = session_service.issue_session(db, user.id)
    client.cookies.clear()

    client.post("/api/auth/logout", headers={"Cookie": f"{COOKIE}=not-issued"})

    db.expire_all()
    assert credential_store.get(db, issued.credential_id).revoked_at is None


def test_request_id_is_echoed_and_auth_responses_are_not_cached(client):
    auth = client.post("/api/auth/logout", headers={"X-Request-Id": "trace-123"})
    health = client.get("/api/health")

    assert auth.headers["x-request-id"] == "trace-123"
    assert auth.headers["cache-control"] == "no-store"
    assert health.headers["x-request-id"]
    assert "cache-control" not in health.headers
