from datetime import date
from decimal import Decimal

import pytest

from cotizador.exceptions import CurrencyFormatError
from cotizador.money import CurrencyConfig, format_money
from cotizador.pdf import FIRST_ROW_OFFSET, MARGIN, MIN_ROW_HEIGHT, QuotationPdfRenderer
from cotizador.schemas import QuotationDetail, QuotationLineOut

LONG_NAME = "Servicio de integracion y configuracion de equipos en sitio " * 4


def make_quotation(lines, total=None):
    items = [
        QuotationLineOut(
            id=index,
            name=name,
            type_name="Servicios",
            price=Decimal(price),
            quantity=quantity,
            total=Decimal(price) * quantity,
        )
        for index, (name, price, quantity) in enumerate(lines, start=1)
    ]
    if total is None:
        total = sum((line.total for line in items), Decimal("0"))
    return QuotationDetail(
        id="COT_20250102_103000",
        cliente_id=1,
        cliente_nombre="Acme",
        fecha=date(2025, 1, 2),
        total=total,
        items=items,
    )


def test_render_returns_pdf_bytes():
    quotation = make_quotation([("Windows 10 Pro", "1500.00", 1)])
    pdf_bytes = QuotationPdfRenderer().render(quotation)
    assert pdf_bytes.startswith(b"%PDF")
    assert pdf_bytes.rstrip().endswith(b"%%EOF")


def test_short_quotation_fits_one_page():
    quotation = make_quotation([("Licencia", "100.00", 2), ("Cable", "50.00", 3)])

    _, layout = QuotationPdfRenderer().render_with_layout(quotation)

    assert layout.pages == 1
    assert layout.total_text == "Total: $350.00"
    assert [row.total for row in layout.rows] == ["$200.00", "$150.00"]
    assert [row.quantity for row in layout.rows] == ["2", "3"]
    assert all(row.height == MIN_ROW_HEIGHT for row in layout.rows)
    assert layout.rows[1].top == layout.rows[0].top + MIN_ROW_HEIGHT


def test_long_descriptions_break_pages_without_splitting_rows():
    renderer = QuotationPdfRenderer()
    quotation = make_quotation([(LONG_NAME, "10.00", 1)] * 12)

    _, layout = renderer.render_with_layout(quotation)

    assert layout.pages >= 2
    assert len(layout.rows) == 12
    assert all(len(row.description) > 1 for row in layout.rows)
    for row in layout.rows:
        assert row.top + row.height <= renderer.bottom_limit
    continuation = [row for row in layout.rows if row.page == 2]
    assert continuation[0].top == MARGIN
    assert [row.page for row in layout.rows] == sorted(row.page for row in layout.rows)
    assert layout.total_text == "Total: " + format_money(Decimal("120.00"))
    assert layout.total_page == layout.pages


def test_repeated_table_header_on_continuation_pages():
    renderer = QuotationPdfRenderer(repeat_table_header=True)
    _, layout = renderer.render_with_layout(make_quotation([(LONG_NAME, "10.00", 1)] * 12))

    continuation = [row for row in layout.rows if row.page == 2]
    assert continuation[0].top == MARGIN + FIRST_ROW_OFFSET


def test_oversized_row_stays_on_first_page():
    renderer = QuotationPdfRenderer()
    _, layout = renderer.render_with_layout(make_quotation([(LONG_NAME * 20, "1.00", 1)]))

    assert layout.rows[0].page == 1
    assert layout.rows[0].top + layout.rows[0].height > renderer.bottom_limit


def test_currency_configuration_is_applied():
    renderer = QuotationPdfRenderer(CurrencyConfig("es_CL", "CLP"))
    _, layout = renderer.render_with_layout(make_quotation([("Contenedor", "1234.50", 2)]))
    assert layout.rows[0].price == "$1.234,50"
    assert layout.total_text == "Total: $2.469,00"


def test_negative_amount_is_rejected():
    with pytest.raises(CurrencyFormatError):
        QuotationPdfRenderer().render(make_quotation([("Descuento", "-10.00", 1)]))
