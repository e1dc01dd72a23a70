"""Customer e-mails for booking lifecycle events.

Sending is best-effort: a failure is logged and the booking operation that
triggered it carries on.
"""
import logging

from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.models.package import Package
from app.models.user import User
from app.services.email_service import queue_email

logger = logging.getLogger(__name__)

SIGNATURE = "Best regards,\nTravel Agency Team"


class Notifier:
    def __init__(self, db: Session):
        self.db = db

    def send(self, to_email: str, subject: str, body: str, booking_ref: str = "",
             attachments: list[tuple[str, bytes, str]] | None = None) -> bool:
        try:
            queue_email(self.db, to_email, subject, body, related_booking_ref=booking_ref, attachments=attachments)
            return True
        except Exception:
            logger.exception("Could not queue %r for %s (booking %s)", subject, to_email, booking_ref or "-")
            try:
                self.db.rollback()
            except Exception:
                logger.exception("Rollback after failed notification also failed")
            return False

    def booking_confirmed(self, user: User, booking: Booking, package: Package) -> bool:
        body = (
            f"Dear {user.full_name or user.email},\n\n"
            f"Thank you for booking with us! Your booking for {package.name} has been confirmed.\n\n"
            f"Booking Details:\n"
            f"  Reference: {booking.booking_ref}\n"
            f"  Package: {package.name}\n"
            f"  Start Date: {booking.start_date.isoformat()}\n"
            f"  End Date: {booking.end_date.isoformat()}\n"
            f"  Travelers: {booking.adults} adults, {booking.children} children\n"
            f"  Total Amount: {booking.total_amount} {booking.currency.upper()}\n\n"
            f"We're looking forward to providing you with an amazing travel experience!\n\n"
            f"{SIGNATURE}\n"
        )
        return self.send(user.email, "Booking Confirmation - Travel Agency", body, booking.booking_ref)

    def booking_received(self, user: User, booking: Booking, package: Package, payment_details: dict) -> bool:
        body = (
            f"Dear {user.full_name or user.email},\n\n"
            f"We have reserved {package.name} for {booking.adults} traveler(s) on {booking.start_date.isoformat()}.\n"
            f"Please complete the payment by bank transfer:\n\n"
            f"  Amount: {payment_details['amount']} {booking.currency.upper()}\n"
            f"  Reference: {payment_details['reference']}\n"
            f"  Account Name: {payment_details['accountName']}\n"
            f"  Account Number: {payment_details['accountNumber']}\n"
            f"  Bank: {payment_details['bankName']}\n\n"
            f"{SIGNATURE}\n"
        )
        return self.send(user.email, "Booking Received - Payment Instructions", body, booking.booking_ref)

    def booking_cancelled(self, user: User, booking: Booking) -> bool:
        body = (
            f"Dear {user.full_name or user.email},\n\n"
            f"Your booking {booking.booking_ref} has been cancelled as requested.\n"
            f"If you have any questions, please contact our customer support.\n\n"
            f"{SIGNATURE}\n"
        )
        return self.send(user.email, "Booking Cancellation - Travel Agency", body, booking.booking_ref)

    def booking_updated(self, user: User, booking: Booking) -> bool:
        body = (
            f"Dear {user.full_name or user.email},\n\n"
            f"Your booking status has been updated to {booking.status}.\n"
            f"If you have any questions, please contact our customer support.\n\n"
            f"{SIGNATURE}\n"
        )
        return self.send(user.email, "Booking Update - Travel Agency", body, booking.booking_ref)
