# ================================
# RBAC API TESTS (tests/test_api_rbac.py)
# ================================

import pytest

from backoffice.main import app
from backoffice.models.audit import AuditLog
from backoffice.models.rbac import Permission, RolePermission
from backoffice.services.rate_limiter import InMemoryCounterStore, RateLimiter, RateLimitPolicy, get_rate_limiter

from config import API_PREFIX, csrf_headers, login

@pytest.fixture
def admin_client(client, make_user):
    make_user("root@example.com", is_admin=True)
    assert login(client, "root@example.com").status_code == 200
    return client

class TestPermissionEndpoints:

    def test_create_and_list(self, admin_client):
        created = admin_client.post(
            f"{API_PREFIX}/rbac/permissions",
            json={"resource": "Reports", "action": "export", "description": "Export reports"},
            headers=csrf_headers(admin_client)
        )

        assert created.status_code == 201, created.text
        assert created.json()["name"] == "reports:export"

        listed = admin_client.get(f"{API_PREFIX}/rbac/permissions").json()
        assert [p["name"] for p in listed] == ["reports:export"]

    def test_duplicate_conflicts(self, admin_client, make_permission):
        make_permission("reports", "export")

        response = admin_client.post(
            f"{API_PREFIX}/rbac/permissions",
            json={"resource": "reports", "action": "export"},
            headers=csrf_headers(admin_client)
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "PERMISSION_EXISTS"

    def test_delete_referenced_permission_is_refused(self, admin_client, db, make_role, make_permission):
        permission = make_permission("appointments", "delete")
        make_role("staff", [permission])

        response = admin_client.delete(
            f"{API_PREFIX}/rbac/permissions/{permission.id}",
            headers=csrf_headers(admin_client)
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "PERMISSION_IN_USE"
        assert body["blocking_roles"] == ["staff"]
        assert '"appointments:delete"' in body["detail"]
        assert db.query(Permission).filter(Permission.id == permission.id).count() == 1
        assert db.query(RolePermission).filter(RolePermission.permission_id == permission.id).count() == 1

    def test_delete_unreferenced_permission(self, admin_client, db, make_permission):
        permission = make_permission("banners", "delete")

        response = admin_client.delete(
            f"{API_PREFIX}/rbac/permissions/{permission.id}",
            headers=csrf_headers(admin_client)
        )

        assert response.status_code == 200
        assert db.query(Permission).count() == 0

    def test_soft_disable(self, admin_client, make_permission):
        permission = make_permission("banners", "delete")

        response = admin_client.put(
            f"{API_PREFIX}/rbac/permissions/{permission.id}",
            json={"is_active": False},
            headers=csrf_headers(admin_client)
        )

        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert admin_client.get(f"{API_PREFIX}/rbac/permissions").json() == []

    def test_role_editors_can_read_the_catalogue(self, client, make_user, make_role, make_permission):
        make_permission("products", "read")
        make_user("designer@example.com", roles=[make_role("designer", [make_permission("roles", "create")])])
        login(client, "designer@example.com")

        response = client.get(f"{API_PREFIX}/rbac/permissions")

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["products:read", "roles:create"]

class TestGuardOrder:
    """Rate limit, then CSRF, then permission, before any write"""

    def test_missing_csrf_blocks_admin(self, admin_client, db):
        response = admin_client.post(f"{API_PREFIX}/rbac/permissions", json={"resource": "reports", "action": "export"})

        assert response.status_code == 403
        assert response.json()["error_code"] == "CSRF_INVALID"
        assert db.query(Permission).count() == 0

    def test_anonymous_with_valid_csrf_needs_authentication(self, client, db):
        response = client.post(
            f"{API_PREFIX}/rbac/permissions",
            json={"resource": "reports", "action": "export"},
            headers=csrf_headers(client)
        )

        assert response.status_code == 401
        assert db.query(Permission).count() == 0

    def test_missing_permission_is_denied_and_audited(self, client, db, make_user, make_role, make_permission):
        editor = make_role("editor", [make_permission("products", "read")])
        user = make_user("editor@example.com", roles=[editor])
        login(client, "editor@example.com")

        response = client.post(
            f"{API_PREFIX}/rbac/permissions",
            json={"resource": "reports", "action": "export"},
            headers=csrf_headers(client)
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "Permission denied: create on permissions"
        assert db.query(Permission).filter(Permission.resource == "reports").count() == 0

        entry = db.query(AuditLog).filter(AuditLog.action == "ACCESS_DENIED").one()
        assert entry.user_id == user.id
        assert entry.resource_type == "permissions"
        assert entry.details["action"] == "create"
        assert entry.created_at is not None

    def test_throttled_before_anything_else(self, admin_client, db):
        tight = RateLimiter(
            InMemoryCounterStore(),
            api_policy=RateLimitPolicy("api", 1, 60),
            auth_policy=RateLimitPolicy("auth", 5, 60)
        )
        app.dependency_overrides[get_rate_limiter] = lambda: tight
        headers = csrf_headers(admin_client)

        first = admin_client.post(f"{API_PREFIX}/rbac/permissions", json={"resource": "reports", "action": "export"}, headers=headers)
        second = admin_client.post(f"{API_PREFIX}/rbac/permissions", json={"resource": "reports", "action": "import"}, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 429
        assert "Retry-After" in second.headers
        assert db.query(Permission).count() == 1

class TestRoleEndpoints:

    def test_create_role(self, admin_client, make_permission):
        read = make_permission("products", "read")

        response = admin_client.post(
            f"{API_PREFIX}/rbac/roles",
            json={"name": "editor", "description": "Edits", "permission_ids": [str(read.id)]},
            headers=csrf_headers(admin_client)
        )

        assert response.status_code == 201, response.text
        body = response.json()
        assert [p["name"] for p in body["permissions"]] == ["products:read"]
        assert body["user_count"] == 0

    def test_reserved_name_is_rejected(self, admin_client, make_permission):
        read = make_permission("products", "read")

        response = admin_client.post(
            f"{API_PREFIX}/rbac/roles",
            json={"name": "Admin", "permission_ids": [str(read.id)]},
            headers=csrf_headers(admin_client)
        )

        assert response.status_code == 422

    def test_update_replaces_permissions(self, admin_client, make_role, make_permission):
        read = make_permission("products", "read")
        update = make_permission("products", "update")
        role = make_role("editor", [read])

        response = admin_client.put(
            f"{API_PREFIX}/rbac/roles/{role.id}",
            json={"permission_ids": [str(update.id)]},
            headers=csrf_headers(admin_client)
        )

        assert response.status_code == 200
        assert [p["name"] for p in response.json()["permissions"]] == ["products:update"]

    def test_delete_role_in_use_conflicts(self, admin_client, make_user, make_role, make_permission):
        role = make_role("editor", [make_permission("products", "read")])
        make_user("editor@example.com", roles=[role])

        response = admin_client.delete(f"{API_PREFIX}/rbac/roles/{role.id}", headers=csrf_headers(admin_client))

        assert response.status_code == 409
        assert response.json()["error_code"] == "ROLE_IN_USE"

        detail = admin_client.get(f"{API_PREFIX}/rbac/roles/{role.id}").json()
        assert detail["is_active"] is True
        assert detail["user_count"] == 1

    def test_delete_unused_role(self, admin_client, make_role, make_permission):
        role = make_role("editor", [make_permission("products", "read")])

        response = admin_client.delete(f"{API_PREFIX}/rbac/roles/{role.id}", headers=csrf_headers(admin_client))

        assert response.status_code == 200
        assert admin_client.get(f"{API_PREFIX}/rbac/roles").json() == []

class TestMyPermissions:

    def test_editor_sees_own_permissions(self, client, make_user, make_role, make_permission):
        role = make_role("editor", [make_permission("products", "read"), make_permission("products", "update")])
        make_user("editor@example.com", roles=[role])
        login(client, "editor@example.com")

        body = client.get(f"{API_PREFIX}/rbac/me/permissions").json()

        assert body["is_admin"] is False
        assert body["roles"] == ["editor"]
        assert body["permissions"] == ["products:read", "products:update"]

    def test_requires_login(self, client):
        assert client.get(f"{API_PREFIX}/rbac/me/permissions").status_code == 401
