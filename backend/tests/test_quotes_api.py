"""
Quote API tests.

Verifies:
- quote and item CRUD with server-side derived fields
- ownership: 404 for missing quotes, 403 for other users' quotes, admin access
- write validation (negative values, owned > needed, discount range, variants)
- finalized quotes have read-only items
"""

import re

import pytest

from quotemaster.extensions import db
from quotemaster.models import QuoteDraft, QuoteItem


def _item_payload(**overrides):
    data = {"description": "Cadeira", "unit_price": "100", "needed_quantity": 5, "owned_quantity": 2}
    data.update(overrides)
    return data


class TestQuoteCrud:

    def test_create_requires_company(self, client, user_headers):
        resp = client.post("/api/quotes", json={"title": "Sem empresa"}, headers=user_headers)
        assert resp.status_code == 400
        assert resp.json["details"]["code"] == "COMPANY_REQUIRED"

    def test_create_assigns_code_and_defaults(self, client, user_headers, company):
        resp = client.post("/api/quotes", json={"title": "Casamento"}, headers=user_headers)
        assert resp.status_code == 201

        quote = resp.json["quote"]
        assert re.fullmatch(r"QT-\d{6}-001", quote["code"])
        assert quote["status"] == "draft"
        assert quote["template_variant"] == "variant_a"
        assert quote["currency"] == "BRL"
        assert quote["company_id"] == company.id
        assert quote["total"] == "0.00"
        assert quote["items"] == []

    def test_codes_increment(self, client, user_headers, company):
        codes = [
            client.post("/api/quotes", json={"title": f"Q{n}"}, headers=user_headers).json["quote"]["code"]
            for n in range(3)
        ]
        assert [c[-3:] for c in codes] == ["001", "002", "003"]

    def test_create_ignores_status(self, client, user_headers, company):
        resp = client.post("/api/quotes", json={"title": "X", "status": "finalized"}, headers=user_headers)
        assert resp.json["quote"]["status"] == "draft"

    def test_create_requires_title(self, client, user_headers, company):
        resp = client.post("/api/quotes", json={"client_name": "Carla"}, headers=user_headers)
        assert resp.status_code == 400

    @pytest.mark.parametrize("payload", [
        {"title": "X", "discount": 150},
        {"title": "X", "discount": -1},
        {"title": "X", "discount": "abc"},
        {"title": "X", "template_variant": "variant_z"},
        {"title": "X", "client_email": "not-an-email"},
        {"title": "X", "created_by_user_id_typo": 1},
    ])
    def test_create_validation(self, client, user_headers, company, payload):
        resp = client.post("/api/quotes", json=payload, headers=user_headers)
        assert resp.status_code == 400

    def test_get_with_items(self, client, user_headers, quote):
        resp = client.get(f"/api/quotes/{quote.id}", headers=user_headers)
        assert resp.status_code == 200
        data = resp.json["quote"]
        assert data["subtotal"] == "300.00"
        assert data["total"] == "270.00"
        assert len(data["items"]) == 1
        assert data["items"][0]["buy_quantity"] == 3

    def test_missing_quote_is_404(self, client, user_headers):
        resp = client.get("/api/quotes/99999", headers=user_headers)
        assert resp.status_code == 404

    def test_other_users_quote_is_403(self, client, other_headers, quote):
        assert client.get(f"/api/quotes/{quote.id}", headers=other_headers).status_code == 403
        assert client.put(f"/api/quotes/{quote.id}", json={"title": "mine"}, headers=other_headers).status_code == 403
        assert client.delete(f"/api/quotes/{quote.id}", headers=other_headers).status_code == 403

    def test_admin_can_read_any_quote(self, client, admin_headers, quote):
        assert client.get(f"/api/quotes/{quote.id}", headers=admin_headers).status_code == 200

    def test_update_discount_refreshes_snapshot(self, client, user_headers, quote):
        resp = client.put(f"/api/quotes/{quote.id}", json={"discount": "50"}, headers=user_headers)
        assert resp.status_code == 200
        assert resp.json["quote"]["total"] == "150.00"
        assert resp.json["quote"]["discount"] == "50.00"

    def test_update_echoed_immutable_fields_are_ignored(self, client, user_headers, quote):
        original_code = quote.code
        resp = client.put(
            f"/api/quotes/{quote.id}",
            json={"code": "HACKED", "created_by_user_id": 999, "title": "Novo título"},
            headers=user_headers,
        )
        assert resp.status_code == 200
        assert resp.json["quote"]["code"] == original_code
        assert resp.json["quote"]["title"] == "Novo título"

    def test_update_unknown_field_rejected(self, client, user_headers, quote):
        resp = client.put(f"/api/quotes/{quote.id}", json={"free_downloads_used": 0}, headers=user_headers)
        assert resp.status_code == 400

    def test_delete_cascades_items(self, client, user_headers, quote):
        quote_id = quote.id
        resp = client.delete(f"/api/quotes/{quote_id}", headers=user_headers)
        assert resp.status_code == 200
        db.session.expire_all()
        assert db.session.get(QuoteDraft, quote_id) is None
        assert db.session.query(QuoteItem).filter_by(quote_draft_id=quote_id).count() == 0


class TestQuoteListing:

    def test_users_see_own_quotes_newest_first(self, client, user_headers, other_headers, company, other_company):
        client.post("/api/quotes", json={"title": "Primeiro"}, headers=user_headers)
        client.post("/api/quotes", json={"title": "Segundo"}, headers=user_headers)
        client.post("/api/quotes", json={"title": "Do Bruno"}, headers=other_headers)

        resp = client.get("/api/quotes", headers=user_headers)
        assert resp.status_code == 200
        assert [q["title"] for q in resp.json["items"]] == ["Segundo", "Primeiro"]

    def test_admin_sees_all(self, client, user_headers, other_headers, admin_headers, company, other_company):
        client.post("/api/quotes", json={"title": "A"}, headers=user_headers)
        client.post("/api/quotes", json={"title": "B"}, headers=other_headers)

        resp = client.get("/api/quotes", headers=admin_headers)
        assert resp.json["count"] == 2

    def test_filter_by_status(self, client, user_headers, quote):
        client.put(f"/api/quotes/{quote.id}", json={"status": "finalized"}, headers=user_headers)
        client.post("/api/quotes", json={"title": "Rascunho"}, headers=user_headers)

        finalized = client.get("/api/quotes?status=finalized", headers=user_headers).json["items"]
        drafts = client.get("/api/quotes?status=draft", headers=user_headers).json["items"]
        assert [q["id"] for q in finalized] == [quote.id]
        assert [q["title"] for q in drafts] == ["Rascunho"]

    def test_bad_date_filter(self, client, user_headers):
        resp = client.get("/api/quotes?created_from=yesterday", headers=user_headers)
        assert resp.status_code == 400


class TestQuoteItems:

    def test_add_item_derives_fields(self, client, user_headers, company):
        quote_id = client.post("/api/quotes", json={"title": "X", "discount": 10}, headers=user_headers).json["quote"]["id"]

        resp = client.post(f"/api/quotes/{quote_id}/items", json=_item_payload(), headers=user_headers)
        assert resp.status_code == 201
        item = resp.json["item"]
        assert item["buy_quantity"] == 3
        assert item["total"] == "300.00"
        assert item["position"] == 0
        assert resp.json["quote"]["subtotal"] == "300.00"
        assert resp.json["quote"]["total"] == "270.00"

    def test_client_cannot_set_derived_fields(self, client, user_headers, quote):
        resp = client.post(
            f"/api/quotes/{quote.id}/items",
            json=_item_payload(buy_quantity=99, total="1.00"),
            headers=user_headers,
        )
        assert resp.status_code == 201
        assert resp.json["item"]["buy_quantity"] == 3
        assert resp.json["item"]["total"] == "300.00"

    def test_non_numeric_values_price_as_zero(self, client, user_headers, quote):
        resp = client.post(
            f"/api/quotes/{quote.id}/items",
            json={"description": "Brinde", "unit_price": "abc", "needed_quantity": 2},
            headers=user_headers,
        )
        assert resp.status_code == 201
        assert resp.json["item"]["unit_price"] == "0.00"
        assert resp.json["item"]["total"] == "0.00"

    @pytest.mark.parametrize("payload", [
        _item_payload(unit_price=-1),
        _item_payload(needed_quantity=-1),
        _item_payload(owned_quantity=-1),
        _item_payload(needed_quantity=2, owned_quantity=3),
        _item_payload(needed_quantity=2.5),
    ])
    def test_item_validation(self, client, user_headers, quote, payload):
        resp = client.post(f"/api/quotes/{quote.id}/items", json=payload, headers=user_headers)
        assert resp.status_code == 400

    def test_update_item_recomputes(self, client, user_headers, quote):
        item_id = quote.items[0].id
        resp = client.put(
            f"/api/quotes/{quote.id}/items/{item_id}",
            json={"owned_quantity": 0},
            headers=user_headers,
        )
        assert resp.status_code == 200
        assert resp.json["item"]["buy_quantity"] == 5
        assert resp.json["item"]["total"] == "500.00"
        assert resp.json["quote"]["total"] == "450.00"

    def test_update_checks_owned_against_stored_needed(self, client, user_headers, quote):
        item_id = quote.items[0].id
        resp = client.put(
            f"/api/quotes/{quote.id}/items/{item_id}",
            json={"owned_quantity": 6},
            headers=user_headers,
        )
        assert resp.status_code == 400

    def test_update_description_only(self, client, user_headers, quote):
        item_id = quote.items[0].id
        resp = client.put(
            f"/api/quotes/{quote.id}/items/{item_id}",
            json={"description": "Cadeira Tiffany"},
            headers=user_headers,
        )
        assert resp.status_code == 200
        assert resp.json["item"]["description"] == "Cadeira Tiffany"
        assert resp.json["item"]["total"] == "300.00"

    def test_delete_item_refreshes_totals(self, client, user_headers, quote):
        item_id = quote.items[0].id
        resp = client.delete(f"/api/quotes/{quote.id}/items/{item_id}", headers=user_headers)
        assert resp.status_code == 200
        assert resp.json["quote"]["total"] == "0.00"

    def test_item_of_another_quote_is_404(self, client, user_headers, quote, company):
        other_id = client.post("/api/quotes", json={"title": "Outro"}, headers=user_headers).json["quote"]["id"]
        item_id = quote.items[0].id
        resp = client.put(f"/api/quotes/{other_id}/items/{item_id}", json={"description": "x"}, headers=user_headers)
        assert resp.status_code == 404

    def test_finalized_items_are_read_only(self, client, user_headers, quote):
        item_id = quote.items[0].id
        client.put(f"/api/quotes/{quote.id}", json={"status": "finalized"}, headers=user_headers)

        assert client.post(f"/api/quotes/{quote.id}/items", json=_item_payload(), headers=user_headers).status_code == 409
        assert client.put(
            f"/api/quotes/{quote.id}/items/{item_id}", json={"owned_quantity": 0}, headers=user_headers
        ).status_code == 409
        assert client.delete(f"/api/quotes/{quote.id}/items/{item_id}", headers=user_headers).status_code == 409

        # Reopening makes them editable again
        client.put(f"/api/quotes/{quote.id}", json={"status": "draft"}, headers=user_headers)
        assert client.delete(f"/api/quotes/{quote.id}/items/{item_id}", headers=user_headers).status_code == 200

    def test_list_items(self, client, user_headers, other_headers, quote):
        resp = client.get(f"/api/quotes/{quote.id}/items", headers=user_headers)
        assert resp.json["count"] == 1
        assert client.get(f"/api/quotes/{quote.id}/items", headers=other_headers).status_code == 403


class TestPricingEndpoints:

    def test_quote_totals(self, client, user_headers, quote):
        resp = client.get(f"/api/quotes/{quote.id}/totals", headers=user_headers)
        assert resp.status_code == 200
        assert resp.json["totals"] == {
            "subtotal": "300.00",
            "discount_percent": "10",
            "discount_amount": "30.00",
            "total": "270.00",
        }

    def test_preview_totals(self, client, user_headers):
        resp = client.post(
            "/api/quotes/preview-totals",
            json={
                "items": [
                    {"unitPrice": "100", "neededQuantity": 5, "ownedQuantity": 2},
                    {"unit_price": "oops", "needed_quantity": 1},
                ],
                "discount": 10,
            },
            headers=user_headers,
        )
        assert resp.status_code == 200
        assert resp.json["items"][0]["buy_quantity"] == 3
        assert resp.json["items"][1]["total"] == "0.00"
        assert resp.json["totals"]["total"] == "270.00"

    def test_preview_rejects_non_list(self, client, user_headers):
        resp = client.post("/api/quotes/preview-totals", json={"items": "nope"}, headers=user_headers)
        assert resp.status_code == 400

    def test_item_suggestions_are_scoped_to_caller(self, client, user_headers, other_headers, quote, other_company):
        other_quote = client.post("/api/quotes", json={"title": "B"}, headers=other_headers).json["quote"]["id"]
        client.post(f"/api/quotes/{other_quote}/items", json=_item_payload(description="Cadeira secreta"), headers=other_headers)
        client.post(f"/api/quotes/{quote.id}/items", json=_item_payload(description="Cadeira"), headers=user_headers)

        resp = client.get("/api/quotes/item-suggestions?q=cad", headers=user_headers)
        assert resp.status_code == 200
        assert resp.json["items"] == ["Cadeira"]

    def test_empty_suggestion_query(self, client, user_headers):
        resp = client.get("/api/quotes/item-suggestions?q=", headers=user_headers)
        assert resp.json["items"] == []
