# ================================
# AUTH API TESTS (tests/test_api_auth.py)
# ================================

from fastapi.testclient import TestClient

from backoffice.config import settings
from backoffice.core.security import verify_password
from backoffice.main import app
from backoffice.models.audit import AuditLog
from backoffice.models.user import PasswordResetToken, User, UserSession

from config import API_PREFIX, DEFAULT_PASSWORD, fetch_csrf_token, login

class TestLogin:
    """Form login, session cookie and who-am-I"""

    def test_login_opens_session(self, client, db, make_user, make_role, make_permission):
        role = make_role("editor", [make_permission("products", "read")])
        make_user("editor@example.com", roles=[role])

        response = login(client, "Editor@Example.com")

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["authenticated"] is True
        assert body["user"]["email"] == "editor@example.com"
        assert body["user"]["roles"][0]["name"] == "editor"
        assert body["permissions"] == ["products:read"]

        cookie_header = response.headers["set-cookie"].lower()
        assert f"{settings.SESSION_COOKIE_NAME}=".lower() in cookie_header
        assert "httponly" in cookie_header
        assert db.query(UserSession).count() == 1

        me = client.get(f"{API_PREFIX}/auth/me").json()
        assert me["authenticated"] is True
        assert me["user"]["email"] == "editor@example.com"

    def test_admin_sees_every_active_permission(self, client, make_user, make_permission):
        make_permission("products", "read")
        make_permission("users", "manage")
        make_permission("banners", "delete", is_active=False)
        make_user("root@example.com", is_admin=True)

        body = login(client, "root@example.com").json()

        assert body["user"]["is_admin"] is True
        assert body["permissions"] == ["products:read", "users:manage"]

    def test_wrong_password_and_unknown_email_look_the_same(self, client, db, make_user):
        make_user("editor@example.com")

        wrong_password = login(client, "editor@example.com", "Wrong1234")
        unknown_email = login(client, "nobody@example.com", "Wrong1234")

        for response in (wrong_password, unknown_email):
            assert response.status_code == 401
            assert response.json()["detail"] == "Invalid email or password"
            assert response.json()["error_code"] == "INVALID_CREDENTIALS"

        reasons = sorted(
            entry.details["reason"]
            for entry in db.query(AuditLog).filter(AuditLog.action == "LOGIN_FAILED").all()
        )
        assert reasons == ["invalid_password", "user_not_found"]
        assert db.query(UserSession).count() == 0

    def test_deactivated_account_cannot_log_in(self, client, make_user):
        make_user("gone@example.com", is_active=False)

        response = login(client, "gone@example.com")

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_login_requires_csrf_token(self, client, make_user):
        make_user("editor@example.com")
        fetch_csrf_token(client)

        response = client.post(
            f"{API_PREFIX}/auth/login",
            data={"email": "editor@example.com", "password": DEFAULT_PASSWORD}
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "CSRF_INVALID"

    def test_sixth_attempt_within_window_is_throttled(self, client, db, make_user):
        make_user("editor@example.com")

        statuses = [login(client, "editor@example.com", "Wrong1234").status_code for _ in range(6)]

        assert statuses == [401] * 5 + [429]

        response = login(client, "editor@example.com")
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1
        body = response.json()
        assert body["message"] == "Too many requests. Please wait before retrying."
        assert body["retry_after"] == int(response.headers["Retry-After"])
        assert db.query(AuditLog).filter(AuditLog.action == "RATE_LIMITED").count() == 2

    def test_login_replaces_the_previous_session(self, client, db, make_user):
        make_user("editor@example.com")
        login(client, "editor@example.com")
        old_token = client.cookies.get(settings.SESSION_COOKIE_NAME)

        assert login(client, "editor@example.com").status_code == 200

        new_token = client.cookies.get(settings.SESSION_COOKIE_NAME)
        assert new_token != old_token
        assert db.query(UserSession).count() == 1
        assert db.query(UserSession).filter(UserSession.token == old_token).count() == 0
        assert client.get(f"{API_PREFIX}/auth/me").json()["authenticated"] is True

    def test_anonymous_who_am_i(self, client):
        response = client.get(f"{API_PREFIX}/auth/me")

        assert response.status_code == 200
        assert response.json() == {"authenticated": False, "user": None, "permissions": []}

class TestLogout:

    def test_logout_destroys_session(self, client, db, make_user):
        make_user("editor@example.com")
        login(client, "editor@example.com")
        token = fetch_csrf_token(client)

        response = client.post(f"{API_PREFIX}/auth/logout", headers={"X-CSRF-Token": token})

        assert response.status_code == 200
        assert response.json()["message"] == "Logged out successfully"
        assert db.query(UserSession).count() == 0
        assert client.get(f"{API_PREFIX}/auth/me").json()["authenticated"] is False

        again = client.post(f"{API_PREFIX}/auth/logout", headers={"X-CSRF-Token": token})
        assert again.status_code == 200

class TestRegistration:

    def test_register_creates_user_without_roles(self, client, db):
        response = client.post(f"{API_PREFIX}/auth/register", data={
            "name": "New User",
            "email": "new@example.com",
            "password": "Secret123",
            "csrf_token": fetch_csrf_token(client)
        })

        assert response.status_code == 201, response.text
        assert response.json()["roles"] == []
        user = db.query(User).filter(User.email == "new@example.com").one()
        assert user.is_admin is False

    def test_duplicate_email_conflicts(self, client, make_user):
        make_user("taken@example.com")

        response = client.post(f"{API_PREFIX}/auth/register", data={
            "name": "Someone",
            "email": "taken@example.com",
            "password": "Secret123",
            "csrf_token": fetch_csrf_token(client)
        })

        assert response.status_code == 409
        assert response.json()["error_code"] == "EMAIL_EXISTS"

    def test_weak_password_is_rejected(self, client):
        response = client.post(f"{API_PREFIX}/auth/register", data={
            "name": "Someone",
            "email": "someone@example.com",
            "password": "short",
            "csrf_token": fetch_csrf_token(client)
        })

        assert response.status_code == 422

class TestPasswordReset:

    def test_unknown_email_gets_the_generic_answer(self, client, db):
        response = client.post(f"{API_PREFIX}/auth/password/forgot", data={
            "email": "nobody@example.com",
            "csrf_token": fetch_csrf_token(client)
        })

        assert response.status_code == 200
        assert response.json()["message"].startswith("If an account with that email exists")
        assert db.query(PasswordResetToken).count() == 0

    def test_reset_flow_ends_old_sessions(self, client, db, make_user):
        user = make_user("editor@example.com")
        assert login(client, "editor@example.com").status_code == 200

        forgot = client.post(f"{API_PREFIX}/auth/password/forgot", data={
            "email": "editor@example.com",
            "csrf_token": fetch_csrf_token(client)
        })
        assert forgot.status_code == 200
        reset_token = db.query(PasswordResetToken).filter(PasswordResetToken.used_at.is_(None)).one().token

        reset = client.post(f"{API_PREFIX}/auth/password/reset", data={
            "token": reset_token,
            "password": "NewSecret456",
            "csrf_token": fetch_csrf_token(client)
        })
        assert reset.status_code == 200, reset.text

        db.refresh(user)
        assert verify_password("NewSecret456", user.password_hash)
        assert db.query(UserSession).filter(UserSession.user_id == user.id).count() == 0
        assert client.get(f"{API_PREFIX}/auth/me").json()["authenticated"] is False
        assert login(client, "editor@example.com", "NewSecret456").status_code == 200

        reused = client.post(f"{API_PREFIX}/auth/password/reset", data={
            "token": reset_token,
            "password": "Another789",
            "csrf_token": fetch_csrf_token(client)
        })
        assert reused.status_code == 422
        assert reused.json()["error_code"] == "INVALID_RESET_TOKEN"

class TestChangePassword:

    def _change(self, client, current, new, confirm=None):
        return client.post(f"{API_PREFIX}/auth/password/change", data={
            "current_password": current,
            "password": new,
            "confirm_password": confirm if confirm is not None else new,
            "csrf_token": fetch_csrf_token(client)
        })

    def test_change_keeps_this_session_and_ends_the_others(self, client, db, make_user):
        user = make_user("editor@example.com")
        other_browser = TestClient(app)
        assert login(other_browser, "editor@example.com").status_code == 200
        assert login(client, "editor@example.com").status_code == 200

        response = self._change(client, DEFAULT_PASSWORD, "NewSecret456")

        assert response.status_code == 200, response.text
        assert response.json()["message"] == "Password changed successfully"
        db.refresh(user)
        assert verify_password("NewSecret456", user.password_hash)
        assert db.query(UserSession).filter(UserSession.user_id == user.id).count() == 1
        assert client.get(f"{API_PREFIX}/auth/me").json()["authenticated"] is True
        assert other_browser.get(f"{API_PREFIX}/auth/me").json()["authenticated"] is False

        entry = db.query(AuditLog).filter(AuditLog.action == "PASSWORD_CHANGED").one()
        assert entry.details["sessions_ended"] == 1
        assert login(other_browser, "editor@example.com").status_code == 401
        assert login(other_browser, "editor@example.com", "NewSecret456").status_code == 200

    def test_wrong_current_password_is_rejected(self, client, db, make_user):
        user = make_user("editor@example.com")
        login(client, "editor@example.com")
        old_hash = user.password_hash

        response = self._change(client, "Wrong1234", "NewSecret456")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_PASSWORD"
        db.refresh(user)
        assert user.password_hash == old_hash
        entry = db.query(AuditLog).filter(AuditLog.action == "PASSWORD_CHANGE_FAILED").one()
        assert entry.user_id == user.id
        assert entry.details["reason"] == "invalid_current_password"
        assert client.get(f"{API_PREFIX}/auth/me").json()["authenticated"] is True

    def test_new_password_must_follow_policy_and_match(self, client, db, make_user):
        user = make_user("editor@example.com")
        login(client, "editor@example.com")
        old_hash = user.password_hash

        weak = self._change(client, DEFAULT_PASSWORD, "short")
        mismatch = self._change(client, DEFAULT_PASSWORD, "NewSecret456", confirm="NewSecret789")

        assert weak.status_code == 422
        assert mismatch.status_code == 422
        db.refresh(user)
        assert user.password_hash == old_hash
        assert db.query(AuditLog).filter(AuditLog.action == "PASSWORD_CHANGED").count() == 0

    def test_anonymous_caller_is_refused(self, client):
        response = self._change(client, DEFAULT_PASSWORD, "NewSecret456")

        assert response.status_code == 401
        assert response.json()["error_code"] == "AUTH_REQUIRED"

    def test_change_requires_csrf_token(self, client, make_user):
        make_user("editor@example.com")
        login(client, "editor@example.com")

        response = client.post(f"{API_PREFIX}/auth/password/change", data={
            "current_password": DEFAULT_PASSWORD,
            "password": "NewSecret456",
            "confirm_password": "NewSecret456"
        })

        assert response.status_code == 403
        assert response.json()["error_code"] == "CSRF_INVALID"

class TestBrowserRedirects:

    def test_anonymous_browser_goes_to_sign_in(self, client):
        response = client.get(
            f"{API_PREFIX}/rbac/permissions",
            headers={"Accept": "text/html"},
            follow_redirects=False
        )

        assert response.status_code == 303
        assert response.headers["location"].startswith(f"{settings.LOGIN_PATH}?next=")

    def test_forbidden_browser_goes_to_access_denied_view(self, client, make_user):
        make_user("editor@example.com")
        login(client, "editor@example.com")

        response = client.get(f"{API_PREFIX}/users", headers={"Accept": "text/html"}, follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == f"{settings.ACCESS_DENIED_PATH}?resource=users&action=read"

        view = client.get(response.headers["location"])
        assert view.status_code == 200
        assert view.json()["required_permission"] == "users:read"

    def test_api_clients_get_status_codes(self, client):
        response = client.get(f"{API_PREFIX}/rbac/permissions")

        assert response.status_code == 401
        assert response.json()["error_code"] == "AUTH_REQUIRED"

class TestHealth:

    def test_health_and_security_headers(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Request-ID" in response.headers
