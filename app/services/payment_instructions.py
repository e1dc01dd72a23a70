"""Manual bank-transfer instructions and the scannable code for pay-later bookings."""
import base64
import io
import json

import qrcode

from app.core.config import settings
from app.models.booking import Booking
from app.models.package import Package


def build_payment_details(booking: Booking) -> dict:
    return {
        "amount": str(booking.total_amount),
        "reference": booking.booking_ref,
        "accountName": settings.BANK_ACCOUNT_NAME,
        "accountNumber": settings.BANK_ACCOUNT_NUMBER,
        "bankName": settings.BANK_NAME,
    }


def qr_payload(booking: Booking, package: Package) -> dict:
    return {
        "bookingId": booking.id,
        "package": package.name,
        "date": booking.start_date.isoformat(),
        "travelers": booking.adults,
        "amount": str(booking.total_amount),
        "reference": booking.booking_ref,
    }


def render_qr_data_url(payload: dict) -> str:
    img = qrcode.make(json.dumps(payload, separators=(",", ":")))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("utf-8")
