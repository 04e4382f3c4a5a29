# Overview: Renders a quote into self-contained, print-ready HTML.

"""
Quote Document Renderer

Stateless: takes a quote, its computed totals and the company profile and
returns an HTML string the browser can print (or save) as a PDF. Binary PDF
generation stays with the client's print pipeline.

TEMPLATE VARIANTS:
variant_a classic (default), variant_b modern, variant_c elegant (dark:
text and background roles swapped), variant_d creative, variant_e
minimalist. Unknown or missing variants render with the classic palette.

NUMBER FORMATTING:
Money always has exactly two decimals with the locale's separators
(pt_BR: "R$ 1.234,56"). The locale is a presentation setting
(CURRENCY_LOCALE), not part of the computed totals.

DEGRADATION:
Missing company, client, note or items never raise; placeholders are
rendered instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping

from jinja2 import Environment, PackageLoader, select_autoescape

from .pricing import LineItem, QuoteTotals, compute_totals, round_money
from quotemaster.time_utils import utcnow


DEFAULT_VARIANT = "variant_a"
DEFAULT_LOCALE = "pt_BR"
DEFAULT_CURRENCY = "BRL"


@dataclass(frozen=True)
class Palette:
    name: str
    main: str
    dark: str
    light: str
    bg: str
    bg_grad: str
    header_grad: str
    text: str = "#333"
    text_alt: str = "#333"
    dark_theme: bool = False
    # Code badge text color (the minimalist orange badge needs dark text)
    badge_text: str = "white"


TEMPLATE_VARIANTS: dict[str, Palette] = {
    "variant_a": Palette(
        name="classic",
        main="#2563eb", dark="#1e40af", light="#e0e7ff", bg="#eff6ff",
        bg_grad="linear-gradient(135deg, #eff6ff 0%, #dbeafe 100%)",
        header_grad="linear-gradient(135deg, #2563eb 0%, #3b82f6 100%)",
    ),
    "variant_b": Palette(
        name="modern",
        main="#7c3aed", dark="#6b21a8", light="#e9d5ff", bg="#faf5ff",
        bg_grad="linear-gradient(135deg, #faf5ff 0%, #f3e8ff 100%)",
        header_grad="linear-gradient(135deg, #7c3aed 0%, #8b5cf6 100%)",
    ),
    "variant_c": Palette(
        name="elegant",
        main="#c59d5f", dark="#2d3748", light="#4a5568", bg="#2d3748",
        bg_grad="#2d3748",
        header_grad="linear-gradient(135deg, #4a5568 0%, #2d3748 100%)",
        text="#f7fafc", text_alt="#a0aec0", dark_theme=True,
    ),
    "variant_d": Palette(
        name="creative",
        main="#047857", dark="#065f46", light="#d1fae5", bg="#f0fdf4",
        bg_grad="linear-gradient(135deg, #f0fdf4 0%, #d1fae5 100%)",
        header_grad="linear-gradient(135deg, #059669 0%, #10b981 100%)",
    ),
    "variant_e": Palette(
        name="minimalist",
        main="#f97316", dark="#1f2937", light="#e5e7eb", bg="#f9fafb",
        bg_grad="#f9fafb", header_grad="#1f2937", badge_text="#1f2937",
    ),
}

VARIANT_NAMES = {key: palette.name for key, palette in TEMPLATE_VARIANTS.items()}


@dataclass(frozen=True)
class NumberFormat:
    thousands: str
    decimal: str
    date_pattern: str


LOCALES: dict[str, NumberFormat] = {
    "pt_BR": NumberFormat(thousands=".", decimal=",", date_pattern="%d/%m/%Y"),
    "en_US": NumberFormat(thousands=",", decimal=".", date_pattern="%m/%d/%Y"),
    "en_GB": NumberFormat(thousands=",", decimal=".", date_pattern="%d/%m/%Y"),
    "de_DE": NumberFormat(thousands=".", decimal=",", date_pattern="%d.%m.%Y"),
}

# (symbol, separator between symbol and amount)
CURRENCY_SYMBOLS: dict[str, tuple[str, str]] = {
    "BRL": ("R$", " "),
    "USD": ("$", ""),
    "EUR": ("€", " "),
    "GBP": ("£", ""),
}


def get_palette(variant: str | None) -> Palette:
    """Palette for a variant key; anything unknown gets the classic palette."""
    if not isinstance(variant, str):
        return TEMPLATE_VARIANTS[DEFAULT_VARIANT]
    return TEMPLATE_VARIANTS.get(variant, TEMPLATE_VARIANTS[DEFAULT_VARIANT])


def _number_format(locale: str | None) -> NumberFormat:
    return LOCALES.get(locale or DEFAULT_LOCALE, LOCALES[DEFAULT_LOCALE])


def format_decimal(value: Any, locale: str | None = DEFAULT_LOCALE) -> str:
    """1234.5 -> '1.234,50' (pt_BR). Always two decimals."""
    fmt = _number_format(locale)
    amount = round_money(value if isinstance(value, Decimal) else Decimal(str(value or 0)))
    # 1,234.50 -> 1.234,50
    s = f"{amount:,.2f}"
    s = s.replace(",", " ").replace(".", fmt.decimal).replace(" ", fmt.thousands)
    return s


def format_money(value: Any, currency: str | None = DEFAULT_CURRENCY, locale: str | None = DEFAULT_LOCALE) -> str:
    """1234.5 -> 'R$ 1.234,50'. Unknown currencies fall back to the ISO code."""
    code = (currency or DEFAULT_CURRENCY).upper()
    symbol, spacer = CURRENCY_SYMBOLS.get(code, (code, " "))
    return f"{symbol}{spacer}{format_decimal(value, locale)}"


def format_quantity(value: Any) -> str:
    return str(int(value or 0))


def format_issue_date(day: date | None = None, locale: str | None = DEFAULT_LOCALE) -> str:
    day = day or utcnow().date()
    return day.strftime(_number_format(locale).date_pattern)


def _field(source: Any, name: str, default: Any = None) -> Any:
    if source is None:
        return default
    if isinstance(source, Mapping):
        return source.get(name, default)
    return getattr(source, name, default)


_env = Environment(
    loader=PackageLoader("quotemaster", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def _row(item: LineItem, currency: str, locale: str) -> dict:
    return {
        "description": item.description,
        "unit_price": format_money(item.unit_price, currency, locale),
        "needed_quantity": format_quantity(item.needed_quantity),
        "owned_quantity": format_quantity(item.owned_quantity),
        "buy_quantity": format_quantity(item.buy_quantity),
        "total": format_money(item.line_total, currency, locale),
        "savings": format_money(item.savings, currency, locale) if item.savings > 0 else None,
    }


def render_quote_document(
    quote: Any,
    totals: QuoteTotals | None = None,
    company: Any = None,
    *,
    items: Iterable[Any] | None = None,
    variant: str | None = None,
    locale: str | None = DEFAULT_LOCALE,
    issued_on: date | None = None,
) -> str:
    """
    Render the quote as a complete HTML document.

    quote may be a QuoteDraft row or a mapping; items default to quote.items
    and may be rows, mappings or LineItem values. totals are computed from
    the items when not given. variant overrides quote.template_variant.
    """
    locale = locale or DEFAULT_LOCALE
    if items is None:
        items = _field(quote, "items", None) or []
    line_items = [LineItem.from_any(item) for item in items]

    discount = _field(quote, "discount", 0)
    if totals is None:
        totals = compute_totals(line_items, discount)

    currency = _field(quote, "currency", None) or DEFAULT_CURRENCY
    palette = get_palette(variant if variant is not None else _field(quote, "template_variant"))

    company_name = _field(company, "name") or "Sua Empresa"
    logo_url = _field(company, "logo_url") or None

    discount_percent = totals.discount_percent
    context = {
        "palette": palette,
        "code": _field(quote, "code") or "",
        "title": _field(quote, "title") or "",
        "client_name": _field(quote, "client_name") or "N/A",
        "client_email": _field(quote, "client_email") or "N/A",
        "note": (_field(quote, "note") or "").strip(),
        "company_name": company_name,
        "logo_url": logo_url,
        "issue_date": format_issue_date(issued_on, locale),
        "rows": [_row(item, currency, locale) for item in line_items],
        "subtotal": format_money(totals.subtotal, currency, locale),
        "has_discount": discount_percent > 0,
        "discount_percent": f"{discount_percent.normalize():f}".replace(".", _number_format(locale).decimal),
        "discount_amount": format_money(totals.discount_amount, currency, locale),
        "total": format_money(totals.total, currency, locale),
    }
    return _env.get_template("quote_document.html").render(**context)
