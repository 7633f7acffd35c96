"""
Roles, permissions and user-role API tests.
"""

import pytest

from siteworks.services.permission_service import get_user_roles


# ═════════════════════════════════════════════════════════════════════════════
# Catalog
# ═════════════════════════════════════════════════════════════════════════════


class TestCatalog:
    def test_roles_hierarchy(self, client):
        roles = client.get("/api/v1/roles").get_json()["roles"]
        assert roles[0] == {"role": "owner", "level": 11, "label": "Owner"}
        assert len(roles) == 11

    def test_list_permissions_filters(self, client):
        body = client.get("/api/v1/permissions?category=finance").get_json()
        assert {p["id"] for p in body["items"]} == {"finance:read", "finance:write", "finance:delete", "finance:admin"}
        assert body["total"] == 4

        body = client.get("/api/v1/permissions?type=navigation").get_json()
        assert all(p["type"] == "navigation" for p in body["items"])
        assert body["total"] == 5

    def test_invalid_type_filter(self, client):
        assert client.get("/api/v1/permissions?type=menu").status_code == 400

    def test_get_permission(self, client):
        res = client.get("/api/v1/permissions/system:admin")
        assert res.status_code == 200
        assert res.get_json()["roles"] == ["admin", "owner"]
        missing = client.get("/api/v1/permissions/nope:nope")
        assert missing.status_code == 404
        assert missing.get_json()["error"] == "Permission not found"


class TestPermissionAdmin:
    def test_admin_can_edit_roles(self, client, admin_headers, user_headers):
        res = client.put("/api/v1/permissions/dashboard:read", json={"roles": ["manager"]}, headers=admin_headers)
        assert res.status_code == 200
        assert res.get_json()["roles"] == ["manager"]

        check = client.post("/api/v1/permissions/check", json={"permission_id": "dashboard:read"},
                            headers=user_headers).get_json()
        assert check["has_permission"] is False
        assert check["reason"] == "denied"

    def test_non_admin_cannot_edit(self, client, manager_headers):
        res = client.put("/api/v1/permissions/dashboard:read", json={"roles": ["temporary"]},
                         headers=manager_headers)
        assert res.status_code == 403

    def test_put_validation(self, client, admin_headers):
        res = client.put("/api/v1/permissions/x:y", json={"roles": ["wizard"]}, headers=admin_headers)
        assert res.status_code == 400
        assert res.get_json()["details"] == {"roles": ["wizard"]}

    def test_delete(self, client, admin_headers):
        assert client.delete("/api/v1/permissions/dashboard:read", headers=admin_headers).status_code == 200
        assert client.get("/api/v1/permissions/dashboard:read").status_code == 404
        assert client.delete("/api/v1/permissions/dashboard:read", headers=admin_headers).status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Checks
# ═════════════════════════════════════════════════════════════════════════════


class TestCheck:
    def test_single_for_caller(self, client, manager_headers):
        body = client.post("/api/v1/permissions/check", json={"permission_id": "project:create"},
                           headers=manager_headers).get_json()
        assert body == {"permission_id": "project:create", "has_permission": True, "reason": "granted"}

    def test_not_found_vs_denied(self, client):
        missing = client.post("/api/v1/permissions/check",
                              json={"permission_id": "missing-id", "roles": []}).get_json()
        denied = client.post("/api/v1/permissions/check",
                             json={"permission_id": "system:admin", "roles": ["user"]}).get_json()
        assert missing["has_permission"] is False and denied["has_permission"] is False
        assert missing["reason"] == "not_found"
        assert denied["reason"] == "denied"
        assert missing["message"] != denied["message"]

    @pytest.mark.parametrize("mode, expected", [("all", False), ("any", True)])
    def test_batch(self, client, mode, expected):
        body = client.post("/api/v1/permissions/check", json={
            "permission_ids": ["project:read", "project:create"], "mode": mode, "roles": ["user"],
        }).get_json()
        assert body["has_permission"] is expected
        assert body["results"] == {"project:read": True, "project:create": False}

    def test_missing_ids(self, client):
        res = client.post("/api/v1/permissions/check", json={})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_bad_mode(self, client):
        res = client.post("/api/v1/permissions/check", json={"permission_ids": ["a"], "mode": "most"})
        assert res.status_code == 400

    def test_me_permissions_navigation(self, client, temp_headers):
        body = client.get("/api/v1/me/permissions", headers=temp_headers).get_json()
        assert body["effective_level"] == 1
        nav = {p["id"] for p in body["navigation"]}
        assert nav == {"navigation:home", "navigation:project", "navigation:account"}
        assert "project:create" not in body["permissions"]


# ═════════════════════════════════════════════════════════════════════════════
# Users & role assignments
# ═════════════════════════════════════════════════════════════════════════════


class TestUsers:
    def test_profile_upsert(self, client, auth_headers):
        headers = auth_headers("fresh-uid")
        res = client.post("/api/v1/users", json={"email": "fresh@acme-construction.com", "display_name": "Fresh"},
                          headers=headers)
        assert res.status_code == 201
        body = res.get_json()
        assert body["uid"] == "fresh-uid"
        assert body["roles"] == ["user"]

        res = client.post("/api/v1/users", json={}, headers=headers)
        assert res.status_code == 200
        assert res.get_json()["login_count"] == 2

    def test_profile_requires_token(self, client):
        assert client.post("/api/v1/users", json={}).status_code == 401

    def test_profile_bad_email(self, client, auth_headers):
        res = client.post("/api/v1/users", json={"email": "nope"}, headers=auth_headers("x-uid"))
        assert res.status_code == 400

    def test_owner_bootstrap(self, client, auth_headers):
        client.post("/api/v1/users", json={}, headers=auth_headers("owner-uid"))
        assert get_user_roles("owner-uid") == ("owner",)

    def test_list_user_roles(self, client, manager_headers, user_headers, make_user):
        make_user("multi", "safety", "coord")
        body = client.get("/api/v1/users/multi/roles", headers=manager_headers).get_json()
        assert [r["role"] for r in body["roles"]] == ["coord", "safety"]
        assert body["effective_level"] == 5
        assert client.get("/api/v1/users/multi/roles", headers=user_headers).status_code == 403


class TestRoleAssignment:
    def test_admin_assigns_and_revokes(self, client, admin_headers, make_user):
        make_user("target", "user")
        res = client.post("/api/v1/users/target/roles", json={"role": "foreman"}, headers=admin_headers)
        assert res.status_code == 201
        assert res.get_json()["assigned_by"] == "admin-1"
        assert "foreman" in get_user_roles("target")

        res = client.delete("/api/v1/users/target/roles/foreman", headers=admin_headers)
        assert res.status_code == 200
        assert "foreman" not in get_user_roles("target")
        assert client.delete("/api/v1/users/target/roles/foreman", headers=admin_headers).status_code == 404

    def test_manager_cannot_assign(self, client, manager_headers, make_user):
        make_user("target", "user")
        res = client.post("/api/v1/users/target/roles", json={"role": "coord"}, headers=manager_headers)
        assert res.status_code == 403
        assert res.get_json()["details"]["required_role"] == "admin"

    def test_cannot_grant_above_own_level(self, client, admin_headers, owner_headers, make_user):
        make_user("target", "user")
        assert client.post("/api/v1/users/target/roles", json={"role": "owner"},
                           headers=admin_headers).status_code == 403
        assert client.post("/api/v1/users/target/roles", json={"role": "owner"},
                           headers=owner_headers).status_code == 201

    def test_unknown_role_and_user(self, client, admin_headers):
        assert client.post("/api/v1/users/ghost/roles", json={"role": "wizard"},
                           headers=admin_headers).status_code == 400
        assert client.post("/api/v1/users/ghost/roles", json={"role": "user"},
                           headers=admin_headers).status_code == 404

    def test_expiring_assignment(self, client, admin_headers, make_user):
        make_user("target", "user")
        res = client.post("/api/v1/users/target/roles",
                          json={"role": "coord", "expires_at": "2020-01-01T00:00:00Z"}, headers=admin_headers)
        assert res.status_code == 201
        assert get_user_roles("target") == ("user",)

        res = client.post("/api/v1/users/target/roles", json={"role": "coord", "expires_at": "soon"},
                          headers=admin_headers)
        assert res.status_code == 400

    def test_cannot_revoke_above_own_level(self, client, admin_headers, owner_headers):
        res = client.delete("/api/v1/users/boss/roles/owner", headers=admin_headers)
        assert res.status_code == 403
        assert get_user_roles("boss") == ("owner",)

        res = client.delete("/api/v1/users/admin-1/roles/admin", headers=owner_headers)
        assert res.status_code == 200
        assert "admin" not in get_user_roles("admin-1")

    def test_revoke_unknown_role(self, client, admin_headers):
        res = client.delete("/api/v1/users/admin-1/roles/wizard", headers=admin_headers)
        assert res.status_code == 400
        assert res.get_json()["details"] == {"role": "wizard"}
