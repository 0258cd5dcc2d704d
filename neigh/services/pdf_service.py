# neigh/services/pdf_service.py
from __future__ import annotations

import logging
from io import BytesIO
from xml.sax.saxutils import escape

from flask import current_app
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

log = logging.getLogger(__name__)


def _fmt_date(d) -> str:
    return d.strftime("%Y-%m-%d") if d else "-"


def _party_lines(label: str, user) -> list[str]:
    if not user:
        return [f"<b>{label}</b>", "-"]
    lines = [f"<b>{label}</b>", escape(user.name or ""), escape(user.email or "")]
    addr = user.address or {}
    if addr:
        lines.append(", ".join(escape(str(addr[k])) for k in ("street", "city", "postal_code", "country") if addr.get(k)))
    return lines


def render_invoice_pdf(invoice, *, receipt: bool = False) -> bytes:
    """Invoice (or, once paid, receipt) as an A4 PDF."""
    buf = BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=A4, leftMargin=18 * mm, rightMargin=18 * mm,
                            topMargin=18 * mm, bottomMargin=18 * mm,
                            title=invoice.invoice_number)
    styles = getSampleStyleSheet()
    app_name = current_app.config.get("APP_NAME", "Neigh")
    title = "Receipt" if receipt else "Invoice"

    story = [
        Paragraph(app_name, styles["Title"]),
        Paragraph(f"{title} {invoice.invoice_number}", styles["Heading2"]),
        Paragraph(
            f"Issued: {_fmt_date(invoice.issued_at)} &nbsp;&nbsp; Due: {_fmt_date(invoice.due_at)}"
            f" &nbsp;&nbsp; Status: {invoice.status.upper()}",
            styles["Normal"],
        ),
        Spacer(1, 6 * mm),
    ]

    parties = Table(
        [[Paragraph("<br/>".join(_party_lines("From", invoice.contractor)), styles["Normal"]),
          Paragraph("<br/>".join(_party_lines("Bill to", invoice.client)), styles["Normal"])]],
        colWidths=[87 * mm, 87 * mm],
    )
    story += [parties, Spacer(1, 8 * mm)]

    rows = [["Item", "Qty", "Unit price", "Total"]]
    for it in invoice.items:
        rows.append([Paragraph(escape(it.name or ""), styles["Normal"]), str(it.quantity), f"{it.price}", f"{it.line_total}"])
    rows.append(["", "", "Subtotal", f"{invoice.subtotal}"])
    rows.append(["", "", "Tax", f"{invoice.tax}"])
    rows.append(["", "", "Total", f"{invoice.total_price}"])

    items = Table(rows, colWidths=[94 * mm, 20 * mm, 30 * mm, 30 * mm], repeatRows=1)
    items.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f1f5f9")),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("LINEBELOW", (0, 0), (-1, 0), 0.5, colors.grey),
        ("LINEABOVE", (2, -3), (-1, -3), 0.5, colors.grey),
        ("FONTNAME", (2, -1), (-1, -1), "Helvetica-Bold"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    story.append(items)

    if receipt and invoice.paid_at:
        story += [Spacer(1, 6 * mm),
                  Paragraph(f"Paid on {_fmt_date(invoice.paid_at)}. Thank you!", styles["Normal"])]

    doc.build(story)
    log.debug("PDF: rendered %s (%s)", invoice.invoice_number, title.lower())
    return buf.getvalue()
