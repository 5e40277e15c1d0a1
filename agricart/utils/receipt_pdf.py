# agricart/utils/receipt_pdf.py

from __future__ import annotations

import io
from datetime import date, datetime

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

from ..config import company_context


def _fmt_date(d):
    if not d:
        return "-"
    if isinstance(d, (datetime, date)):
        return d.strftime("%Y-%m-%d")
    return str(d)


def _money(v, currency="KES"):
    if v is None:
        return "-"
    try:
        return f"{currency} {float(v):,.2f}"
    except (TypeError, ValueError):
        return f"{currency} {v}"


def _enum_value(v):
    try:
        return v.value
    except AttributeError:
        return v


def render_order_receipt_pdf(order) -> bytes:
    """
    Render a payment receipt for one order (NO DB writes).
    Line items come from the order snapshot, never the live products.
    Returns PDF bytes.
    """
    company = company_context()
    currency = company["CURRENCY"]

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    width, height = A4

    # --- Brand colors ---
    LEAF = colors.HexColor("#2f7d32")
    GRAY = colors.HexColor("#6b7280")
    DARK = colors.HexColor("#111827")
    BORDER = colors.HexColor("#e5e7eb")

    # --- Header bar ---
    c.setFillColor(LEAF)
    c.rect(0, height - 28 * mm, width, 28 * mm, stroke=0, fill=1)

    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 16)
    c.drawString(18 * mm, height - 16 * mm, company["COMPANY_NAME"])

    c.setFont("Helvetica", 9)
    c.drawString(18 * mm, height - 22 * mm, company["COMPANY_TAGLINE"])

    # --- Receipt meta (top right) ---
    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(width - 18 * mm, height - 14 * mm, f"RECEIPT ORD-{order.id}")

    c.setFont("Helvetica", 9)
    status = _enum_value(order.status)
    c.drawRightString(
        width - 18 * mm,
        height - 20 * mm,
        f"Status: {status} • Paid: {_fmt_date(order.paid_at)}",
    )

    y = height - 38 * mm

    # --- Buyer / payment cards ---
    c.setFillColor(DARK)
    c.setFont("Helvetica-Bold", 11)
    c.drawString(18 * mm, y, "Ship To")
    c.drawString(width / 2 + 2 * mm, y, "Payment")
    y -= 6 * mm

    c.setStrokeColor(BORDER)
    c.setFillColor(colors.white)
    c.roundRect(18 * mm, y - 30 * mm, (width / 2 - 22 * mm), 30 * mm, 6, stroke=1, fill=1)

    buyer = order.user
    c.setFillColor(DARK)
    c.setFont("Helvetica-Bold", 10)
    c.drawString(22 * mm, y - 8 * mm, getattr(buyer, "name", None) or "-")

    c.setFont("Helvetica", 9)
    line_y = y - 14 * mm
    for line in (
        order.shipping_address,
        f"{order.shipping_city} {order.shipping_postal_code}, {order.shipping_country}",
        order.shipping_phone,
    ):
        if line:
            c.drawString(22 * mm, line_y, str(line)[:60])
            line_y -= 5 * mm

    right_x = width / 2 + 2 * mm
    c.setStrokeColor(BORDER)
    c.setFillColor(colors.white)
    c.roundRect(right_x, y - 30 * mm, (width - right_x - 18 * mm), 30 * mm, 6, stroke=1, fill=1)

    c.setFillColor(DARK)
    c.setFont("Helvetica", 9)
    c.drawString(right_x + 4 * mm, y - 10 * mm, f"Method: {order.payment_method}")
    c.drawString(right_x + 4 * mm, y - 15 * mm, f"Reference: {order.payment_result_id or '-'}")
    c.drawString(right_x + 4 * mm, y - 20 * mm, f"Result: {order.payment_result_status or '-'}")
    if order.payment_result_phone:
        c.setFillColor(GRAY)
        c.drawString(right_x + 4 * mm, y - 25 * mm, f"Phone: {order.payment_result_phone}")
        c.setFillColor(DARK)

    y -= 40 * mm

    # --- Items table ---
    data = [["Item", "Farm", "Qty", "Unit Price", "Line Total"]]
    for it in order.items:
        data.append([
            (it.name or "-")[:48],
            (it.farm_name or "-")[:28],
            str(it.quantity),
            _money(it.price, currency),
            _money(it.line_total, currency),
        ])

    table = Table(
        data,
        colWidths=[64 * mm, 38 * mm, 14 * mm, 28 * mm, 30 * mm],
        hAlign="LEFT",
    )
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f3f4f6")),
        ("TEXTCOLOR", (0, 0), (-1, 0), DARK),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("GRID", (0, 0), (-1, -1), 0.5, BORDER),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("PADDING", (0, 0), (-1, -1), 6),
    ]))

    _, th = table.wrapOn(c, width - 36 * mm, height)
    table.drawOn(c, 18 * mm, y - th)

    y = y - th - 10 * mm

    # --- Totals ---
    block_x = width - 18 * mm
    rows = [
        ("Items", order.items_price),
        ("Tax", order.tax_price),
        ("Shipping", order.shipping_price),
    ]
    c.setFont("Helvetica", 9)
    for label, value in rows:
        c.setFillColor(GRAY)
        c.drawRightString(block_x, y, label)
        c.setFillColor(DARK)
        c.drawRightString(block_x - 40 * mm, y, _money(value, currency))
        y -= 6 * mm

    c.setFont("Helvetica-Bold", 10)
    c.drawRightString(block_x, y - 2 * mm, "Total")
    c.drawRightString(block_x - 40 * mm, y - 2 * mm, _money(order.total_price, currency))

    # --- Footer ---
    c.setFillColor(BORDER)
    c.rect(0, 0, width, 12 * mm, stroke=0, fill=1)

    c.setFillColor(colors.HexColor("#374151"))
    c.setFont("Helvetica", 8)
    c.drawString(
        18 * mm,
        4 * mm,
        f"{company['COMPANY_NAME']} • {company['COMPANY_ADDRESS']} • {company['COMPANY_EMAIL']}",
    )
    c.setFillColor(GRAY)
    c.drawRightString(width - 18 * mm, 4 * mm, f"Generated: {_fmt_date(date.today())}")

    c.showPage()
    c.save()

    pdf = buf.getvalue()
    buf.close()
    return pdf
