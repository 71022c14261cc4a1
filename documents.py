"""PDF rendering for quotations."""
import html
import io
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, List, Optional

import requests
from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from currency import format_price, unit_label
from exceptions import DocumentRenderError
from logger import get_logger
from schemas import CompanyInfo, QuotationDraft

logger = get_logger(__name__)

BRAND = colors.HexColor("#1F4E79")
MUTED = colors.HexColor("#646464")
DISCOUNT_RED = colors.HexColor("#C80000")
STRIPE = colors.HexColor("#F2F5F9")
FOOTER_TEXT = "Thank you for your business!"
TITLE = "PRICE QUOTATION"
LOGO_MAX_HEIGHT = 18 * mm
LOGO_MAX_WIDTH = 45 * mm

LogoLoader = Callable[[str], Optional[bytes]]


def export_filename(customer_name: str, now: Optional[datetime] = None) -> str:
    """``quotation-<customer-slug>-<epoch millis>.pdf``"""
    now = now or datetime.now()
    slug = re.sub(r"\s+", "-", customer_name.strip()).lower()
    slug = re.sub(r"[^\w.-]", "", slug)
    return f"quotation-{slug}-{int(now.timestamp() * 1000)}.pdf"


def fetch_logo(ref: str, timeout: float = 10.0) -> Optional[bytes]:
    """Read logo bytes from an http(s) URL or a local path."""
    if ref.startswith(("http://", "https://")):
        response = requests.get(ref, timeout=timeout)
        response.raise_for_status()
        return response.content
    path = Path(ref)
    if path.is_file():
        return path.read_bytes()
    return None


def _logo_flowable(ref: Optional[str], loader: LogoLoader) -> Optional[Image]:
    if not ref:
        return None
    try:
        data = loader(ref)
        if not data:
            return None
        width, height = ImageReader(io.BytesIO(data)).getSize()
        scale = min(LOGO_MAX_WIDTH / float(width), LOGO_MAX_HEIGHT / float(height))
        return Image(io.BytesIO(data), width=width * scale, height=height * scale)
    except Exception as e:
        logger.warning("Rendering without logo %s: %s", ref, e)
        return None


def _styles():
    base = getSampleStyleSheet()
    return {
        "company": ParagraphStyle("Company", parent=base["Normal"], fontName="Helvetica-Bold",
                                  fontSize=20, leading=24),
        "muted": ParagraphStyle("Muted", parent=base["Normal"], fontSize=10, leading=14,
                                textColor=MUTED),
        "title": ParagraphStyle("Title", parent=base["Normal"], fontName="Helvetica-Bold",
                                fontSize=24, leading=28, textColor=BRAND, alignment=TA_RIGHT),
        "date": ParagraphStyle("Date", parent=base["Normal"], fontSize=10, textColor=MUTED,
                               alignment=TA_RIGHT),
        "customer": ParagraphStyle("Customer", parent=base["Normal"], fontSize=12, leading=16),
        "cell": ParagraphStyle("Cell", parent=base["Normal"], fontSize=10, leading=12),
    }


def _draw_footer(canvas_obj, document) -> None:
    canvas_obj.saveState()
    canvas_obj.setFont("Helvetica-Oblique", 9)
    canvas_obj.setFillColor(colors.HexColor("#969696"))
    page_width, _ = document.pagesize
    canvas_obj.drawCentredString(page_width / 2.0, 15 * mm, FOOTER_TEXT)
    canvas_obj.restoreState()


def render_quotation_pdf(
    quotation: QuotationDraft,
    company: CompanyInfo,
    currency: str = "USD",
    logo_loader: LogoLoader = fetch_logo,
    today: Optional[date] = None,
) -> bytes:
    """Build the quotation PDF and return its bytes."""
    styles = _styles()
    today = today or date.today()

    def money(amount) -> str:
        return format_price(amount, currency)

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=20 * mm,
        rightMargin=20 * mm,
        topMargin=20 * mm,
        bottomMargin=25 * mm,
        title=f"Quotation - {quotation.customer_name}",
        author=company.name,
    )
    elements: List[Any] = []

    # Header
    company_block: List[Any] = []
    logo = _logo_flowable(company.logo, logo_loader)
    if logo is not None:
        logo.hAlign = "LEFT"
        company_block += [logo, Spacer(1, 3 * mm)]
    company_block += [
        Paragraph(html.escape(company.name), styles["company"]),
        Paragraph(html.escape(company.address), styles["muted"]),
        Paragraph(f"Phone: {html.escape(company.phone)}", styles["muted"]),
        Paragraph(f"Email: {html.escape(company.email)}", styles["muted"]),
    ]
    title_block = [
        Paragraph(TITLE, styles["title"]),
        Spacer(1, 2 * mm),
        Paragraph(f"Date: {today.strftime('%d-%m-%Y')}", styles["date"]),
    ]
    header = Table([[company_block, title_block]], colWidths=[95 * mm, 75 * mm])
    header.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("LEFTPADDING", (0, 0), (-1, -1), 0),
        ("RIGHTPADDING", (0, 0), (-1, -1), 0),
    ]))
    elements += [header, Spacer(1, 10 * mm)]

    elements.append(Paragraph(
        f"<b>Customer:</b> {html.escape(quotation.customer_name)}", styles["customer"]
    ))
    elements.append(Spacer(1, 6 * mm))

    # Line items
    rows: List[List[Any]] = [["Product", "Unit Price", "Quantity", "Total"]]
    for item in quotation.items:
        rows.append([
            Paragraph(html.escape(item.product.name), styles["cell"]),
            f"{money(item.product.unit_price)} / {unit_label(item.product.unit_type)}",
            str(item.quantity),
            money(item.line_total),
        ])
    table = Table(rows, colWidths=[70 * mm, 40 * mm, 30 * mm, 40 * mm], repeatRows=1)
    table_style = [
        ("BACKGROUND", (0, 0), (-1, 0), BRAND),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("ALIGN", (2, 0), (2, -1), "CENTER"),
        ("ALIGN", (3, 0), (3, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("TOPPADDING", (0, 0), (-1, -1), 5),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
    ]
    for row in range(2, len(rows), 2):
        table_style.append(("BACKGROUND", (0, row), (-1, row), STRIPE))
    table.setStyle(TableStyle(table_style))
    elements += [table, Spacer(1, 8 * mm)]

    # Totals
    totals: List[List[str]] = [["Subtotal:", money(quotation.subtotal)]]
    totals_style = [
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
    ]
    if quotation.discount > 0:
        totals.append([
            f"Discount ({quotation.discount.normalize():f}%):",
            f"-{money(quotation.subtotal - quotation.total)}",
        ])
        totals_style.append(("TEXTCOLOR", (0, 1), (-1, 1), DISCOUNT_RED))
    totals.append(["Total:", money(quotation.total)])
    last = len(totals) - 1
    totals_style += [
        ("FONTNAME", (0, last), (-1, last), "Helvetica-Bold"),
        ("FONTSIZE", (0, last), (-1, last), 14),
        ("TEXTCOLOR", (0, last), (-1, last), BRAND),
        ("TOPPADDING", (0, last), (-1, last), 6),
        ("LINEABOVE", (0, last), (-1, last), 0.75, BRAND),
    ]
    totals_table = Table(totals, colWidths=[40 * mm, 40 * mm], hAlign="RIGHT")
    totals_table.setStyle(TableStyle(totals_style))
    elements.append(totals_table)

    try:
        doc.build(elements, onFirstPage=_draw_footer, onLaterPages=_draw_footer)
    except Exception as e:
        raise DocumentRenderError(f"Could not render quotation PDF: {e}") from e
    return buffer.getvalue()
