"""
Admin API tests.

Verifies:
- only admins reach /api/admin
- role and subscription flag edits; free_downloads_used is read-only
"""

from quotemaster.extensions import db


class TestAdminAccess:

    def test_non_admin_forbidden(self, client, user_headers):
        assert client.get("/api/admin/users", headers=user_headers).status_code == 403
        assert client.get("/api/admin/companies", headers=user_headers).status_code == 403
        assert client.put("/api/admin/users/1", headers=user_headers, json={"role": "admin"}).status_code == 403

    def test_unauthenticated(self, client, db_session):
        assert client.get("/api/admin/users").status_code == 401

    def test_list_users(self, client, user, other_user, admin_headers):
        resp = client.get("/api/admin/users", headers=admin_headers)
        assert resp.status_code == 200
        emails = {u["email"] for u in resp.json["items"]}
        assert {"ana@example.com", "bruno@example.com", "admin@example.com"} <= emails
        assert resp.json["count"] == len(resp.json["items"])

    def test_list_companies(self, client, company, other_company, admin_headers):
        resp = client.get("/api/admin/companies", headers=admin_headers)
        assert resp.status_code == 200
        assert {c["name"] for c in resp.json["items"]} == {"Festas & Cia", "Bruno Eventos"}


class TestUpdateUser:

    def test_grant_subscription_flag(self, client, user, admin_headers):
        resp = client.put(f"/api/admin/users/{user.id}", headers=admin_headers,
                          json={"has_active_subscription": True})
        assert resp.status_code == 200
        assert resp.json["user"]["has_active_subscription"] is True

    def test_promote_to_admin(self, client, user, admin_headers):
        resp = client.put(f"/api/admin/users/{user.id}", headers=admin_headers, json={"role": "ADMIN"})
        assert resp.status_code == 200
        assert resp.json["user"]["role"] == "admin"

    def test_free_downloads_used_is_read_only(self, client, make_user, admin_headers):
        spent = make_user("spent@example.com", free_downloads_used=1)
        resp = client.put(f"/api/admin/users/{spent.id}", headers=admin_headers,
                          json={"free_downloads_used": 0})
        assert resp.status_code == 400

        db.session.refresh(spent)
        assert spent.free_downloads_used == 1

    def test_invalid_role(self, client, user, admin_headers):
        resp = client.put(f"/api/admin/users/{user.id}", headers=admin_headers, json={"role": "superuser"})
        assert resp.status_code == 400

    def test_unknown_field(self, client, user, admin_headers):
        resp = client.put(f"/api/admin/users/{user.id}", headers=admin_headers, json={"password_hash": "x"})
        assert resp.status_code == 400

    def test_missing_user(self, client, admin_headers):
        resp = client.put("/api/admin/users/999999", headers=admin_headers, json={"role": "user"})
        assert resp.status_code == 404

    def test_ban_locks_out_user(self, client, user, user_headers, admin_headers):
        resp = client.put(f"/api/admin/users/{user.id}", headers=admin_headers, json={"role": "banned"})
        assert resp.status_code == 200
        assert client.get("/api/auth/user", headers=user_headers).status_code == 401
