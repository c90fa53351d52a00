# ================================
# CSRF TESTS (tests/test_csrf.py)
# ================================

import pytest

from backoffice.config import settings
from backoffice.core.exceptions import CSRFError
from backoffice.core.security import constant_time_equals
from backoffice.models.audit import AuditLog
from backoffice.services.csrf_service import CSRFService

from config import API_PREFIX, fetch_csrf_token

TOKEN = "a" * 64

class TestValidate:
    """Double-submit comparison"""

    def test_exact_match_is_accepted(self):
        CSRFService.validate(TOKEN, TOKEN)

    @pytest.mark.parametrize("submitted", [
        None,
        "",
        "a" * 63,
        "a" * 63 + "b",
        "b" + "a" * 63,
        TOKEN + "a",
        TOKEN.upper(),
    ])
    def test_anything_else_is_rejected(self, submitted):
        with pytest.raises(CSRFError):
            CSRFService.validate(TOKEN, submitted)

    def test_missing_cookie_is_rejected(self):
        with pytest.raises(CSRFError) as exc_info:
            CSRFService.validate(None, TOKEN)
        assert exc_info.value.error_code == "CSRF_COOKIE_MISSING"

    def test_missing_submission_never_passes(self):
        with pytest.raises(CSRFError) as exc_info:
            CSRFService.validate(TOKEN, None)
        assert exc_info.value.error_code == "CSRF_TOKEN_MISSING"

    def test_empty_values_never_compare_equal(self):
        assert not constant_time_equals("", "")
        assert not constant_time_equals(None, None)
        assert constant_time_equals("abc", "abc")

class TestTokenEndpoint:

    def test_issues_script_readable_cookie(self, client):
        response = client.get(f"{API_PREFIX}/auth/csrf")

        assert response.status_code == 200
        token = response.json()["csrf_token"]
        assert len(token) == settings.CSRF_TOKEN_BYTES * 2
        int(token, 16)

        cookie_header = response.headers["set-cookie"]
        assert f"{settings.CSRF_COOKIE_NAME}={token}" in cookie_header
        assert "httponly" not in cookie_header.lower()
        assert "samesite=strict" in cookie_header.lower()
        assert f"Max-Age={settings.CSRF_MAX_AGE_SECONDS}" in cookie_header
        assert client.cookies.get(settings.CSRF_COOKIE_NAME) == token

    def test_fetch_is_idempotent(self, client):
        first = fetch_csrf_token(client)
        second = fetch_csrf_token(client)

        assert first == second

    def test_rotate_issues_a_new_token(self, client):
        first = fetch_csrf_token(client)

        response = client.get(f"{API_PREFIX}/auth/csrf", params={"rotate": "true"})

        assert response.json()["csrf_token"] != first
        assert client.cookies.get(settings.CSRF_COOKIE_NAME) == response.json()["csrf_token"]

class TestProtectedSubmission:
    """Logout is a state-changing form action guarded by the token"""

    def test_current_token_in_header_is_accepted(self, client):
        token = fetch_csrf_token(client)

        response = client.post(f"{API_PREFIX}/auth/logout", headers={"X-CSRF-Token": token})

        assert response.status_code == 200

    def test_current_token_in_form_field_is_accepted(self, client):
        token = fetch_csrf_token(client)

        response = client.post(f"{API_PREFIX}/auth/logout", data={"csrf_token": token})

        assert response.status_code == 200

    def test_stale_token_is_rejected(self, client):
        stale = fetch_csrf_token(client)
        client.get(f"{API_PREFIX}/auth/csrf", params={"rotate": "true"})

        response = client.post(f"{API_PREFIX}/auth/logout", headers={"X-CSRF-Token": stale})

        assert response.status_code == 403
        body = response.json()
        assert body["error_code"] == "CSRF_INVALID"
        assert body["detail"] == "Invalid or missing security token. Please refresh the page and try again."

    def test_missing_token_is_rejected_and_audited(self, client, db):
        fetch_csrf_token(client)

        response = client.post(f"{API_PREFIX}/auth/logout")

        assert response.status_code == 403
        entry = db.query(AuditLog).filter(AuditLog.action == "CSRF_REJECTED").one()
        assert entry.details["reason"] == "CSRF_TOKEN_MISSING"
        assert entry.details["path"] == f"{API_PREFIX}/auth/logout"

    def test_missing_cookie_is_rejected(self, client):
        response = client.post(f"{API_PREFIX}/auth/logout", headers={"X-CSRF-Token": TOKEN})

        assert response.status_code == 403
