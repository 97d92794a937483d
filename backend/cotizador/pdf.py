from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Tuple

from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import getAscentDescent
from reportlab.pdfgen import canvas

from .money import CurrencyConfig, DEFAULT_CURRENCY, format_money
from .schemas import QuotationDetail

logger = logging.getLogger(__name__)

MARGIN = 50
FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
TITLE_SIZE = 20
BODY_SIZE = 12
TOTAL_SIZE = 14
LEADING_FACTOR = 1.2

# (titulo, ancho, alineacion)
COLUMNS: Tuple[Tuple[str, float, str], ...] = (
    ("Descripción", 250, "left"),
    ("Precio", 100, "right"),
    ("Cantidad", 80, "center"),
    ("Total", 100, "right"),
)
TABLE_WIDTH = sum(width for _, width, _ in COLUMNS)
HEADER_RULE_OFFSET = 20
FIRST_ROW_OFFSET = 30
MIN_ROW_HEIGHT = 25
ROW_PADDING = 10


def _leading(size: float) -> float:
    return size * LEADING_FACTOR


def _format_date(value: date) -> str:
    return f"{value.day}/{value.month}/{value.year}"


@dataclass
class RowPlacement:
    page: int
    top: float
    height: float
    description: List[str]
    price: str
    quantity: str
    total: str


@dataclass
class PdfLayout:
    pages: int = 1
    rows: List[RowPlacement] = field(default_factory=list)
    total_text: str = ""
    total_page: int = 1


class QuotationPdfRenderer:
    """Dibuja una cotizacion resuelta como PDF de diseño fijo.

    El cursor vertical se maneja desde el borde superior de la pagina. Una fila nunca
    se parte entre paginas: si no cabe completa, se abre una pagina nueva antes de
    dibujarla.
    """

    def __init__(
        self,
        currency: CurrencyConfig = DEFAULT_CURRENCY,
        *,
        repeat_table_header: bool = False,
        pagesize: Tuple[float, float] = letter,
        author: str = "Cotizador",
    ) -> None:
        self.currency = currency
        self.repeat_table_header = repeat_table_header
        self.pagesize = pagesize
        self.author = author

    @property
    def page_height(self) -> float:
        return self.pagesize[1]

    @property
    def bottom_limit(self) -> float:
        return self.page_height - MARGIN

    def render(self, quotation: QuotationDetail) -> bytes:
        pdf_bytes, _ = self.render_with_layout(quotation)
        return pdf_bytes

    def render_with_layout(self, quotation: QuotationDetail) -> Tuple[bytes, PdfLayout]:
        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=self.pagesize)
        pdf.setTitle(f"Cotizacion {quotation.id}")
        pdf.setAuthor(self.author)
        layout = PdfLayout()

        y = self._draw_header(pdf, quotation)
        y = self._draw_table_header(pdf, y)
        page_start = y

        desc_width = COLUMNS[0][1]
        for line in quotation.items:
            line_total = Decimal(line.price) * line.quantity
            price_text = format_money(line.price, self.currency)
            total_text = format_money(line_total, self.currency)
            description = simpleSplit(line.name, FONT, BODY_SIZE, desc_width) or [""]
            row_height = max(MIN_ROW_HEIGHT, len(description) * _leading(BODY_SIZE) + ROW_PADDING)

            if y + row_height > self.bottom_limit and y > page_start:
                pdf.showPage()
                layout.pages += 1
                y = MARGIN
                if self.repeat_table_header:
                    y = self._draw_table_header(pdf, y)
                page_start = y

            self._draw_row(pdf, y, description, price_text, str(line.quantity), total_text)
            layout.rows.append(
                RowPlacement(
                    page=layout.pages,
                    top=y,
                    height=row_height,
                    description=description,
                    price=price_text,
                    quantity=str(line.quantity),
                    total=total_text,
                )
            )
            y += row_height

        layout.total_text = f"Total: {format_money(quotation.total, self.currency)}"
        y += _leading(BODY_SIZE)
        if y + _leading(TOTAL_SIZE) > self.bottom_limit:
            pdf.showPage()
            layout.pages += 1
            y = MARGIN
        self._text(pdf, layout.total_text, MARGIN, y, TABLE_WIDTH, "right", FONT_BOLD, TOTAL_SIZE)
        layout.total_page = layout.pages

        pdf.save()
        logger.info(
            "PDF de cotizacion %s generado: %d filas, %d paginas",
            quotation.id,
            len(layout.rows),
            layout.pages,
        )
        return buffer.getvalue(), layout

    def _text(
        self,
        pdf: canvas.Canvas,
        text: str,
        x: float,
        top: float,
        width: float,
        align: str,
        font: str = FONT,
        size: float = BODY_SIZE,
    ) -> None:
        ascent, _ = getAscentDescent(font, size)
        baseline = self.page_height - top - ascent
        pdf.setFont(font, size)
        if align == "right":
            pdf.drawRightString(x + width, baseline, text)
        elif align == "center":
            pdf.drawCentredString(x + width / 2, baseline, text)
        else:
            pdf.drawString(x, baseline, text)

    def _draw_header(self, pdf: canvas.Canvas, quotation: QuotationDetail) -> float:
        content_width = self.pagesize[0] - 2 * MARGIN
        y = MARGIN
        self._text(pdf, "COTIZACIÓN", MARGIN, y, content_width, "center", FONT, TITLE_SIZE)
        y += _leading(TITLE_SIZE) * 2
        for label in (
            f"Número: {quotation.id}",
            f"Fecha: {_format_date(quotation.fecha)}",
            f"Cliente: {quotation.cliente_nombre}",
        ):
            self._text(pdf, label, MARGIN, y, content_width, "left")
            y += _leading(BODY_SIZE)
        return y + _leading(BODY_SIZE)

    def _draw_table_header(self, pdf: canvas.Canvas, top: float) -> float:
        x = MARGIN
        for title, width, align in COLUMNS:
            self._text(pdf, title, x, top, width, align, FONT_BOLD)
            x += width
        rule_y = self.page_height - (top + HEADER_RULE_OFFSET)
        pdf.line(MARGIN, rule_y, MARGIN + TABLE_WIDTH, rule_y)
        return top + FIRST_ROW_OFFSET

    def _draw_row(
        self,
        pdf: canvas.Canvas,
        top: float,
        description: List[str],
        price: str,
        quantity: str,
        total: str,
    ) -> None:
        x = MARGIN
        desc_width = COLUMNS[0][1]
        for offset, text in enumerate(description):
            self._text(pdf, text, x, top + offset * _leading(BODY_SIZE), desc_width, "left")
        x += desc_width
        for text, (_, width, align) in zip((price, quantity, total), COLUMNS[1:]):
            self._text(pdf, text, x, top, width, align)
            x += width
