"""セッション・ロール管理 API のユニットテスト

AuthSession はインメモリ実装の IdentityProvider / UserRepository で組み立てる（conftest.api）。
"""

from dataclasses import replace
from unittest.mock import MagicMock

from mineaction.domain.models import RoleDefinition, UserRecord
from mineaction.entrypoints.api.app import app
from mineaction.entrypoints.api.deps import get_config, get_session_factory
from mineaction.services.role_registry import RoleRegistry
from mineaction.services.session import AuthSession

from conftest import API_IDENTITIES, FakeIdentityProvider, bearer


class TestSignIn:
    """POST /api/session のテスト"""

    def test_first_sign_in_creates_operator(self, api):
        """初回サインインでユーザーレコードが Operator で作成される"""
        # Arrange
        api.users.records.pop("uid-olga")

        # Act
        response = api.client.post("/api/session", json={"id_token": "operator-token"})

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["uid"] == "uid-olga"
        assert data["role"] == "Operator"
        assert data["state"] == "authenticated"
        assert [r["name"] for r in data["roles"]] == ["Admin", "Supervisor", "Operator"]
        assert api.users.records["uid-olga"].role == "Operator"

    def test_existing_role_is_kept(self, api):
        response = api.client.post("/api/session", json={"id_token": "supervisor-token"})

        assert response.json()["role"] == "Supervisor"
        assert api.users.records["uid-alice"].role == "Supervisor"

    def test_invalid_token(self, api):
        response = api.client.post("/api/session", json={"id_token": "forged"})

        assert response.status_code == 401


class TestCurrentSession:
    def test_get_session(self, api):
        response = api.client.get("/api/session", headers=bearer("admin"))

        assert response.status_code == 200
        assert response.json()["display_name"] == "Ada"

    def test_missing_bearer(self, api):
        response = api.client.get("/api/session")

        assert response.status_code in (401, 403)

    def test_invalid_bearer(self, api):
        response = api.client.get("/api/session", headers={"Authorization": "Bearer forged"})

        assert response.status_code == 401

    def test_sign_out(self, api):
        response = api.client.delete("/api/session", headers=bearer("operator"))

        assert response.status_code == 204


class TestSetOwnRole:
    """PUT /api/session/role のテスト"""

    def test_self_assignment(self, api):
        response = api.client.put(
            "/api/session/role", json={"role": "Supervisor"}, headers=bearer("operator")
        )

        assert response.status_code == 200
        assert response.json()["role"] == "Supervisor"
        assert api.users.records["uid-olga"].role == "Supervisor"

    def test_unknown_role(self, api):
        response = api.client.put(
            "/api/session/role", json={"role": "Overlord"}, headers=bearer("operator")
        )

        assert response.status_code == 400

    def test_disabled_self_assignment_forbidden_for_non_admin(self, api):
        app.dependency_overrides[get_config] = lambda: replace(
            api.config, allow_self_role_assignment=False
        )

        response = api.client.put(
            "/api/session/role", json={"role": "Admin"}, headers=bearer("operator")
        )

        assert response.status_code == 403
        assert api.users.records["uid-olga"].role == "Operator"

    def test_disabled_self_assignment_allowed_for_admin(self, api):
        app.dependency_overrides[get_config] = lambda: replace(
            api.config, allow_self_role_assignment=False
        )

        response = api.client.put(
            "/api/session/role", json={"role": "Supervisor"}, headers=bearer("admin")
        )

        assert response.status_code == 200


class TestAccessCheck:
    """GET /api/access/check のテスト（2つの判定を並べて返す）"""

    def test_guard_and_registry_are_independent(self, api):
        """Supervisor: /reports はガードで許可、レジストリでも許可"""
        response = api.client.get(
            "/api/access/check", params={"path": "/reports"}, headers=bearer("supervisor")
        )

        data = response.json()
        assert data["outcome"] == "allow"
        assert data["matched"] == ["/reports"]
        assert data["has_route_access"] is True

    def test_operator_projects(self, api):
        """Operator: /projects/7 はガードで許可されるが、レジストリの routes には含まれない"""
        response = api.client.get(
            "/api/access/check", params={"path": "/projects/7"}, headers=bearer("operator")
        )

        data = response.json()
        assert data["outcome"] == "allow"
        assert data["has_route_access"] is False

    def test_operator_settings_redirects(self, api):
        response = api.client.get(
            "/api/access/check", params={"path": "/settings"}, headers=bearer("operator")
        )

        data = response.json()
        assert data["outcome"] == "redirect_unauthorized"
        assert data["redirect_to"] == "/unauthorized"


class TestRoles:
    """ロール・ユーザー管理 API のテスト"""

    def test_list_roles_includes_custom(self, api):
        api.roles.roles = [RoleDefinition(id="role-1", name="Medic", routes=("/medical",))]

        response = api.client.get("/api/roles", headers=bearer("operator"))

        assert [r["name"] for r in response.json()] == ["Admin", "Supervisor", "Operator", "Medic"]

    def test_create_role(self, api):
        response = api.client.post(
            "/api/roles",
            json={"name": "Medic", "description": "Field medic", "routes": ["/medical"]},
            headers=bearer("admin"),
        )

        assert response.status_code == 201
        assert response.json()["routes"] == ["/medical"]
        assert api.roles.find_by_name("Medic") is not None

    def test_create_duplicate_role(self, api):
        response = api.client.post("/api/roles", json={"name": "Admin"}, headers=bearer("admin"))

        assert response.status_code == 409

    def test_create_blank_role(self, api):
        response = api.client.post("/api/roles", json={"name": "  "}, headers=bearer("admin"))

        assert response.status_code == 400

    def test_create_role_requires_admin(self, api):
        response = api.client.post("/api/roles", json={"name": "Medic"}, headers=bearer("supervisor"))

        assert response.status_code == 403

    def test_update_builtin_routes_is_not_found(self, api):
        response = api.client.put(
            "/api/roles/admin/routes", json={"routes": []}, headers=bearer("admin")
        )

        assert response.status_code == 404

    def test_update_custom_routes(self, api):
        api.roles.roles = [RoleDefinition(id="role-1", name="Medic", routes=())]

        response = api.client.put(
            "/api/roles/role-1/routes", json={"routes": ["/medical"]}, headers=bearer("admin")
        )

        assert response.status_code == 200
        assert api.roles.roles[0].routes == ("/medical",)

    def test_admin_changes_user_role(self, api):
        response = api.client.put(
            "/api/users/uid-olga/role", json={"role": "Supervisor"}, headers=bearer("admin")
        )

        assert response.status_code == 200
        assert response.json()["role"] == "Supervisor"

    def test_change_role_of_unknown_user(self, api):
        response = api.client.put(
            "/api/users/uid-nobody/role", json={"role": "Supervisor"}, headers=bearer("admin")
        )

        assert response.status_code == 404

    def test_list_users(self, api):
        api.users.records["uid-zed"] = UserRecord(uid="uid-zed", role=None)

        response = api.client.get("/api/users", headers=bearer("admin"))

        assert {u["uid"] for u in response.json()} == {"uid-admin", "uid-alice", "uid-olga", "uid-zed"}


class TestRoleResolutionFailure:
    def test_role_fetch_failure_gives_null_role(self, api):
        """ロール取得に失敗してもサインインは成功し role は null になる"""
        broken_users = MagicMock()
        broken_users.get_user.side_effect = RuntimeError("firestore unavailable")
        app.dependency_overrides[get_session_factory] = lambda: (
            lambda: AuthSession(FakeIdentityProvider(API_IDENTITIES), broken_users, RoleRegistry(api.roles))
        )

        response = api.client.post("/api/session", json={"id_token": "operator-token"})

        assert response.status_code == 200
        assert response.json()["role"] is None
        assert response.json()["state"] == "authenticated_no_role"

        projects = api.client.get("/api/projects", headers=bearer("operator"))
        assert projects.status_code == 403
