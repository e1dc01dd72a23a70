from __future__ import annotations

import io
from datetime import datetime, timezone

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from app.models.booking import Booking
from app.models.package import Package

# lowest baseline for body text; the footer sits below it
BOTTOM_MARGIN = 70


def _new_page(c: canvas.Canvas, h: float) -> float:
    c.showPage()
    c.setFont("Helvetica", 11)
    return h - 60


def render_voucher_pdf_bytes(*, booking: Booking, package: Package, traveler_name: str) -> bytes:
    """Return A4 PDF bytes for a booking voucher. Pure function."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    _, h = A4
    currency = (booking.currency or "usd").upper()

    # Header
    c.setFont("Helvetica-Bold", 18)
    c.drawString(40, h - 60, "Travel Agency Booking Voucher")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 80, f"Booking Reference: {booking.booking_ref}")
    c.drawString(40, h - 96, f"Status: {booking.status}")

    # Traveler block
    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, h - 130, "Lead traveler")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 148, traveler_name or "(Not provided)")

    # Trip block
    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, h - 185, "Trip")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 203, f"Package: {package.name}")
    c.drawString(40, h - 219, f"From: {booking.start_date.isoformat()}")
    c.drawString(40, h - 235, f"To:   {booking.end_date.isoformat()}  ({booking.duration} nights)")
    c.drawString(40, h - 251, f"Travelers: {booking.adults} adults, {booking.children} children")

    y = h - 285
    services = booking.additional_services or []
    if services:
        c.setFont("Helvetica-Bold", 12)
        c.drawString(40, y, "Additional services")
        c.setFont("Helvetica", 11)
        for s in services:
            y -= 16
            if y < BOTTOM_MARGIN:
                y = _new_page(c, h)
            c.drawString(40, y, f"- {s.get('name', '')}: {s.get('price', 0)} {currency}")
        y -= 30

    # payment block plus special requests needs ~90pt above the footer
    if y - 90 < BOTTOM_MARGIN:
        y = _new_page(c, h)

    # Payment
    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, y, "Payment")
    c.setFont("Helvetica", 11)
    c.drawString(40, y - 18, f"Unit price: {booking.price} {currency}")
    c.drawString(40, y - 34, f"Total: {booking.total_amount} {currency}")
    c.drawString(40, y - 50, f"Method: {booking.payment_method}   Status: {booking.payment_status}")

    if booking.special_requests:
        c.drawString(40, y - 80, f"Special requests: {booking.special_requests[:90]}")

    # Footer
    c.setFont("Helvetica", 9)
    c.drawString(40, 40, "Please present this voucher at check-in.")
    c.drawString(40, 26, f"Generated: {datetime.now(timezone.utc).isoformat()}")

    c.showPage()
    c.save()
    return buf.getvalue()
