"""
Quote document renderer tests.

The renderer is stateless: plain dicts stand in for quote and company rows.
"""

from datetime import date
from decimal import Decimal

import pytest

from quotemaster.services.document_renderer import (
    TEMPLATE_VARIANTS,
    format_decimal,
    format_issue_date,
    format_money,
    get_palette,
    render_quote_document,
)
from quotemaster.services.pricing import compute_totals


@pytest.fixture
def quote_data():
    return {
        "code": "QT-202610-001",
        "title": "Festa de aniversário",
        "client_name": "Carla",
        "client_email": "carla@example.com",
        "discount": "10",
        "currency": "BRL",
        "template_variant": "variant_a",
        "note": "Entrega no sábado",
        "items": [
            {"description": "Cadeira", "unit_price": "100", "needed_quantity": 5, "owned_quantity": 2},
        ],
    }


class TestFormatting:

    @pytest.mark.parametrize("value,expected", [
        (Decimal("0"), "0,00"),
        (Decimal("1234.5"), "1.234,50"),
        (Decimal("1234567.891"), "1.234.567,89"),
        (Decimal("0.005"), "0,01"),
        (Decimal("-1234.5"), "-1.234,50"),
    ])
    def test_pt_br_decimal(self, value, expected):
        assert format_decimal(value, "pt_BR") == expected

    def test_money_brl(self):
        assert format_money(Decimal("270"), "BRL", "pt_BR") == "R$ 270,00"

    def test_money_usd_en_us(self):
        assert format_money(Decimal("1234.5"), "USD", "en_US") == "$1,234.50"

    def test_en_us_grouping(self):
        assert format_decimal(Decimal("9876543.21"), "en_US") == "9,876,543.21"

    def test_unknown_currency_uses_code(self):
        assert format_money(Decimal("1"), "JPY", "pt_BR") == "JPY 1,00"

    def test_issue_date_pt_br(self):
        assert format_issue_date(date(2026, 10, 18), "pt_BR") == "18/10/2026"


class TestPalette:

    def test_unknown_variant_falls_back_to_classic(self):
        assert get_palette("variant_z") == TEMPLATE_VARIANTS["variant_a"]
        assert get_palette(None).name == "classic"
        assert get_palette(42).name == "classic"

    def test_elegant_is_dark(self):
        assert get_palette("variant_c").dark_theme is True


class TestRenderQuoteDocument:

    def test_reference_quote(self, quote_data):
        html = render_quote_document(quote_data, issued_on=date(2026, 10, 18))

        assert "QT-202610-001" in html
        assert "Data: 18/10/2026" in html
        assert "Carla" in html
        assert "Cadeira" in html
        assert "R$ 100,00" in html
        assert "R$ 300,00" in html
        assert "Desconto (10%):" in html
        assert "-R$ 30,00" in html
        assert "R$ 270,00" in html
        assert "Economia: R$ 200,00" in html
        assert "Entrega no sábado" in html
        assert "Sua Empresa" in html

    def test_totals_passed_in_are_used(self, quote_data):
        totals = compute_totals(quote_data["items"], 50)
        html = render_quote_document(quote_data, totals)
        assert "R$ 150,00" in html
        assert "Desconto (50%):" in html

    def test_empty_items_render_placeholder(self, quote_data):
        quote_data["items"] = []
        quote_data["discount"] = 0
        html = render_quote_document(quote_data)

        assert "Nenhum item adicionado" in html
        assert "R$ 0,00" in html
        assert "Desconto (" not in html

    def test_missing_client_and_note(self, quote_data):
        quote_data.update(client_name=None, client_email="", note="   ")
        html = render_quote_document(quote_data)

        assert html.count("N/A") == 2
        assert "Observações:" not in html

    def test_company_name_and_logo(self, quote_data):
        html = render_quote_document(quote_data, company={"name": "Festas & Cia", "logo_url": None})
        assert "Festas &amp; Cia" in html

        html = render_quote_document(quote_data, company={"name": "Festas", "logo_url": "https://cdn.example.com/logo.png"})
        assert 'src="https://cdn.example.com/logo.png"' in html

    def test_dark_variant_inverts_logo(self, quote_data):
        html = render_quote_document(
            quote_data,
            company={"name": "X", "logo_url": "https://cdn.example.com/logo.png"},
            variant="variant_c",
        )
        assert 'class="template-elegant"' in html
        assert "logo inverted" in html

    def test_unknown_variant_renders_classic(self, quote_data):
        quote_data["template_variant"] = "does-not-exist"
        html = render_quote_document(quote_data)
        assert 'class="template-classic"' in html

    def test_user_text_is_escaped(self, quote_data):
        quote_data["items"][0]["description"] = "<script>alert(1)</script>"
        html = render_quote_document(quote_data)
        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;" in html

    def test_no_savings_when_nothing_owned(self, quote_data):
        quote_data["items"][0]["owned_quantity"] = 0
        html = render_quote_document(quote_data)
        assert "Economia:" not in html
