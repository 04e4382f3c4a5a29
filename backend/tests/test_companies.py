"""
Company profile API tests.

One company per user; only its owner (or an admin) can edit it.
"""


class TestCompanies:

    def test_me_is_404_until_created(self, client, user_headers):
        assert client.get("/api/companies/me", headers=user_headers).status_code == 404

        created = client.post("/api/companies", headers=user_headers,
                              json={"name": "Festas & Cia", "logo_url": "https://cdn.example.com/l.png"})
        assert created.status_code == 201
        assert created.json["company"]["name"] == "Festas & Cia"

        me = client.get("/api/companies/me", headers=user_headers)
        assert me.status_code == 200
        assert me.json["company"]["id"] == created.json["company"]["id"]

    def test_name_required(self, client, user_headers):
        resp = client.post("/api/companies", headers=user_headers, json={"logo_url": "x"})
        assert resp.status_code == 400

    def test_blank_name_rejected(self, client, user_headers):
        resp = client.post("/api/companies", headers=user_headers, json={"name": ""})
        assert resp.status_code == 400

    def test_second_company_conflicts(self, client, user_headers, company):
        resp = client.post("/api/companies", headers=user_headers, json={"name": "Outra"})
        assert resp.status_code == 409

    def test_owner_updates(self, client, user_headers, company):
        resp = client.put(f"/api/companies/{company.id}", headers=user_headers, json={"name": "Festas Ltda"})
        assert resp.status_code == 200
        assert resp.json["company"]["name"] == "Festas Ltda"

    def test_other_user_cannot_update(self, client, other_headers, company):
        resp = client.put(f"/api/companies/{company.id}", headers=other_headers, json={"name": "Hijack"})
        assert resp.status_code == 403

    def test_admin_can_update(self, client, admin_headers, company):
        resp = client.put(f"/api/companies/{company.id}", headers=admin_headers, json={"logo_url": None})
        assert resp.status_code == 200

    def test_update_missing(self, client, user_headers):
        resp = client.put("/api/companies/999999", headers=user_headers, json={"name": "x"})
        assert resp.status_code == 404

    def test_list_scoped_to_caller(self, client, user_headers, admin_headers, company, other_company):
        mine = client.get("/api/companies", headers=user_headers)
        assert [c["name"] for c in mine.json["items"]] == ["Festas & Cia"]

        everyone = client.get("/api/companies", headers=admin_headers)
        assert everyone.json["count"] == 2
