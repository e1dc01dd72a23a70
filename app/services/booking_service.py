"""Booking lifecycle: pricing, checkout, payment reconciliation, cancellation,
admin updates and statistics.

Two payment modes share one creation routine (``_record_booking``):

* ``GATEWAY``: a hosted checkout session is created first; the booking is
  written only once the gateway reports the session as paid.
* ``MANUAL_TRANSFER``: the booking is written immediately with payment pending
  and the caller gets bank-transfer instructions plus a QR code. The owner may
  later settle it by card through a payment intent tagged with the booking id.

The gateway and the notifier are injected so tests can substitute them.
"""
from __future__ import annotations

import enum
import json
import logging
import random
import string
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import extract, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    Conflict,
    Forbidden,
    GatewayError,
    InvalidInput,
    NotFound,
    PaymentNotSuccessful,
    PersistenceError,
)
from app.models.booking import Booking
from app.models.package import Package
from app.models.user import User
from app.schemas.booking import CheckoutRequest, DirectBookingRequest
from app.services.audit_service import log_audit
from app.services.notifications import Notifier
from app.services.payment_gateway import (
    CheckoutSession,
    CheckoutSessionRequest,
    GatewayEvent,
    GatewaySession,
    PaymentGateway,
    PaymentIntent,
    PaymentIntentRequest,
    session_from_payload,
)
from app.services.payment_instructions import build_payment_details, qr_payload, render_qr_data_url
from app.services.pricing import compute_total, from_minor_units, to_decimal, to_minor_units
from app.services.voucher_service import render_voucher_pdf_bytes

logger = logging.getLogger(__name__)

GATEWAY_ACTOR = "stripe"

# Stripe rejects metadata values longer than this
METADATA_VALUE_LIMIT = 500


class PaymentMode(str, enum.Enum):
    GATEWAY = "gateway"
    MANUAL_TRANSFER = "manual_transfer"


# status, payment_status, payment_method at creation
_INITIAL_STATE = {
    PaymentMode.GATEWAY: ("confirmed", "paid", "credit_card"),
    PaymentMode.MANUAL_TRANSFER: ("confirmed", "pending", "bank_transfer"),
}


@dataclass
class BookingDraft:
    package: Package
    user: User
    unit_price: Decimal
    start_date: date
    end_date: date
    adults: int
    children: int = 0
    additional_services: list[dict] = field(default_factory=list)
    special_requests: str = ""

    @property
    def total(self) -> Decimal:
        return compute_total(self.unit_price, self.adults, self.children, self.additional_services)


@dataclass
class DirectBookingResult:
    booking: Booking
    qr_code: str
    payment_details: dict


def make_booking_ref() -> str:
    return "TRV-" + "".join(random.choices(string.ascii_uppercase + string.digits, k=8))


def _parse_int(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a whole number")


def _parse_date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be an ISO date (YYYY-MM-DD)")


def _services_to_plain(services) -> list[dict]:
    out = []
    for s in services or []:
        data = s.model_dump() if hasattr(s, "model_dump") else dict(s)
        out.append({
            "name": str(data.get("name") or ""),
            "price": str(to_decimal(data.get("price") or 0)),
            "description": str(data.get("description") or ""),
        })
    return out


def _split_metadata(key: str, value: str) -> dict[str, str]:
    """Spread a long value over ``key``, ``key_1``, ``key_2``... within the per-value limit."""
    parts = [value[i:i + METADATA_VALUE_LIMIT] for i in range(0, len(value), METADATA_VALUE_LIMIT)] or [""]
    out = {key: parts[0]}
    for n, part in enumerate(parts[1:], start=1):
        out[f"{key}_{n}"] = part
    return out


def _join_metadata(meta: dict, key: str) -> str:
    value = meta.get(key) or ""
    n = 1
    while f"{key}_{n}" in meta:
        value += meta[f"{key}_{n}"]
        n += 1
    return value


class BookingService:
    def __init__(self, db: Session, notifier: Notifier, gateway: PaymentGateway | None = None):
        self.db = db
        self.notifier = notifier
        self.gateway = gateway

    # ---- collaborators -------------------------------------------------

    def _require_gateway(self) -> PaymentGateway:
        if self.gateway is None:
            raise GatewayError("No payment gateway configured")
        return self.gateway

    def get_package(self, package_id: str) -> Package:
        pkg = self.db.get(Package, package_id) if package_id else None
        if not pkg:
            raise NotFound("No package found with that ID")
        return pkg

    def _find_user_by_email(self, email: str) -> User | None:
        if not email:
            return None
        return self.db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()

    def _commit(self) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Ledger write failed")
            raise PersistenceError(f"Ledger write failed: {e}") from e

    # ---- shared creation -----------------------------------------------

    def _allocate_ref(self) -> str:
        for _ in range(10):
            ref = make_booking_ref()
            if not self.db.query(Booking.id).filter(Booking.booking_ref == ref).first():
                return ref
        raise PersistenceError("could not allocate booking reference")

    def _record_booking(self, draft: BookingDraft, mode: PaymentMode, *, actor_id: str,
                        payment_id: str | None = None, checkout_session_id: str | None = None) -> Booking:
        if draft.end_date < draft.start_date:
            raise InvalidInput("End date cannot be before start date")
        status, payment_status, payment_method = _INITIAL_STATE[mode]
        booking = Booking(
            id=str(uuid.uuid4()),
            booking_ref=self._allocate_ref(),
            package_id=draft.package.id,
            user_id=draft.user.id,
            price=draft.unit_price,
            total_amount=draft.total,
            currency=settings.CURRENCY.lower(),
            additional_services=draft.additional_services,
            start_date=draft.start_date,
            end_date=draft.end_date,
            adults=draft.adults,
            children=draft.children,
            status=status,
            payment_status=payment_status,
            payment_method=payment_method,
            payment_id=payment_id,
            checkout_session_id=checkout_session_id,
            special_requests=draft.special_requests or "",
        )
        self.db.add(booking)
        log_audit(self.db, actor_user_id=actor_id, action="booking.created", entity_type="booking",
                  entity_id=booking.id, details={"ref": booking.booking_ref, "mode": mode.value,
                                                 "total": str(booking.total_amount)})
        self._commit()
        self.db.refresh(booking)
        logger.info("Booking %s created (%s) for package %s, total %s", booking.booking_ref, mode.value,
                    booking.package_id, booking.total_amount)
        return booking

    # ---- checkout (gateway mode) ---------------------------------------

    def create_checkout_session(self, actor: User, package_id: str, body: CheckoutRequest) -> CheckoutSession:
        pkg = self.get_package(package_id)

        start = body.startDate or body.travelDate
        end = body.endDate or body.travelDate or body.startDate
        if not start or not end:
            raise InvalidInput("Please provide travel dates")
        if end < start:
            raise InvalidInput("End date cannot be before start date")

        if body.travelers is not None and body.travelers.adults is not None:
            adults, children = body.travelers.adults, body.travelers.children
        elif body.numberOfTravelers is not None:
            adults, children = body.numberOfTravelers, 0
        else:
            raise InvalidInput("Please provide the number of travelers")

        services = _services_to_plain(body.additionalServices)
        total = compute_total(pkg.price, adults, children, services)
        currency = settings.CURRENCY.lower()

        req = CheckoutSessionRequest(
            success_url=f"{settings.API_PUBLIC_URL.rstrip('/')}/api/v1/bookings/checkout-success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.CLIENT_URL.rstrip('/')}/packages/{pkg.id}",
            customer_email=actor.email,
            client_reference_id=pkg.id,
            item_name=f"{pkg.name} Tour",
            item_description=pkg.summary or "",
            amount_minor=to_minor_units(total),
            currency=currency,
            metadata={
                "startDate": start.isoformat(),
                "endDate": end.isoformat(),
                "adults": str(adults),
                "children": str(children),
                **_split_metadata("additionalServices", json.dumps(services)),
                **_split_metadata("specialRequests", body.specialRequests or ""),
                "unitPrice": str(pkg.price),
                "userId": actor.id,
            },
        )
        session = self._require_gateway().create_checkout_session(req)
        log_audit(self.db, actor_user_id=actor.id, action="checkout.session_created", entity_type="checkout_session",
                  entity_id=session.id, details={"packageId": pkg.id, "total": str(total)})
        self._commit()
        return session

    def handle_checkout_success(self, session_id: str) -> Booking:
        """Redirect path: re-verify the session with the gateway before trusting it."""
        if not session_id:
            raise InvalidInput("Missing session_id")
        session = self._require_gateway().retrieve_session(session_id)
        return self.reconcile_session(session)

    def reconcile_session(self, session: GatewaySession) -> Booking:
        if not session.is_paid:
            raise PaymentNotSuccessful("Payment not successful")

        existing = self._booking_for_session(session.id)
        if existing:
            logger.info("Session %s already reconciled into %s", session.id, existing.booking_ref)
            return existing

        pkg = self.get_package(session.client_reference_id)
        user = self._find_user_by_email(session.customer_email)
        if user is None and session.metadata.get("userId"):
            user = self.db.get(User, session.metadata["userId"])
        if user is None:
            raise NotFound("No user found for this payment")

        meta = session.metadata
        try:
            services = json.loads(_join_metadata(meta, "additionalServices") or "[]")
        except ValueError:
            raise InvalidInput("Checkout session metadata is malformed")
        draft = BookingDraft(
            package=pkg,
            user=user,
            unit_price=to_decimal(meta.get("unitPrice") or pkg.price),
            start_date=_parse_date(meta.get("startDate"), "startDate"),
            end_date=_parse_date(meta.get("endDate") or meta.get("startDate"), "endDate"),
            adults=_parse_int(meta.get("adults"), "adults"),
            children=_parse_int(meta.get("children") or 0, "children"),
            additional_services=_services_to_plain(services),
            special_requests=_join_metadata(meta, "specialRequests"),
        )

        expected_minor = to_minor_units(draft.total)
        if expected_minor != session.amount_total:
            logger.error("Session %s paid %s %s but booking prices to %s", session.id,
                         from_minor_units(session.amount_total), session.currency, draft.total)
            log_audit(self.db, actor_user_id=GATEWAY_ACTOR, action="checkout.amount_mismatch",
                      entity_type="checkout_session", entity_id=session.id,
                      details={"paid": session.amount_total, "expected": expected_minor})

        try:
            booking = self._record_booking(draft, PaymentMode.GATEWAY, actor_id=GATEWAY_ACTOR,
                                           payment_id=session.payment_intent or None,
                                           checkout_session_id=session.id)
        except IntegrityError:
            # concurrent delivery of the same session won the unique index
            existing = self._booking_for_session(session.id)
            if existing:
                return existing
            logger.exception("Booking insert for session %s failed", session.id)
            raise PersistenceError("Booking insert failed")

        self.notifier.booking_confirmed(user, booking, pkg)
        return booking

    def _booking_for_session(self, session_id: str) -> Booking | None:
        if not session_id:
            return None
        return self.db.query(Booking).filter(Booking.checkout_session_id == session_id).first()

    def _booking_for_intent(self, intent_id: str, metadata: dict) -> Booking | None:
        booking_id = metadata.get("bookingId")
        if booking_id:
            booking = self.db.get(Booking, str(booking_id))
            if booking:
                return booking
        if not intent_id:
            return None
        return self.db.query(Booking).filter(Booking.payment_id == intent_id).first()

    def _mark_payment_failed(self, booking: Booking | None, reference: str) -> dict:
        if booking is None:
            return {"result": "ignored", "reason": f"no booking for {reference}"}
        if booking.payment_status != "paid":
            booking.payment_status = "failed"
            log_audit(self.db, actor_user_id=GATEWAY_ACTOR, action="payment.failed", entity_type="booking",
                      entity_id=booking.id, details={"reference": reference})
            self._commit()
        return {"result": "payment_failed", "bookingId": booking.id}

    def handle_event(self, event: GatewayEvent) -> dict:
        """Apply a signature-verified gateway event to the ledger."""
        obj = event.object or {}
        if event.type in ("checkout.session.completed", "checkout.session.async_payment_succeeded"):
            try:
                booking = self.reconcile_session(session_from_payload(obj))
            except PaymentNotSuccessful:
                # async payment methods complete later with async_payment_succeeded
                return {"result": "ignored", "reason": "session not paid"}
            return {"result": "booked", "bookingId": booking.id}

        if event.type == "checkout.session.async_payment_failed":
            return self._mark_payment_failed(self._booking_for_session(str(obj.get("id") or "")), str(obj.get("id")))

        if event.type in ("payment_intent.succeeded", "payment_intent.payment_failed"):
            intent_id = str(obj.get("id") or "")
            booking = self._booking_for_intent(intent_id, obj.get("metadata") or {})
            if event.type == "payment_intent.payment_failed":
                return self._mark_payment_failed(booking, intent_id)
            if booking is None:
                return {"result": "ignored", "reason": f"no booking for {intent_id}"}
            if booking.payment_status != "paid":
                received = obj.get("amount_received") or obj.get("amount")
                if received is not None and int(received) != to_minor_units(booking.total_amount):
                    logger.error("Payment intent %s settled %s but booking %s totals %s", intent_id,
                                 from_minor_units(received), booking.booking_ref, booking.total_amount)
                    log_audit(self.db, actor_user_id=GATEWAY_ACTOR, action="payment.amount_mismatch",
                              entity_type="booking", entity_id=booking.id,
                              details={"paid": int(received), "expected": to_minor_units(booking.total_amount)})
                booking.payment_status = "paid"
                booking.payment_id = intent_id
                log_audit(self.db, actor_user_id=GATEWAY_ACTOR, action="payment.succeeded", entity_type="booking",
                          entity_id=booking.id, details={"paymentIntent": intent_id})
                self._commit()
                logger.info("Booking %s settled by payment intent %s", booking.booking_ref, intent_id)
            return {"result": "paid", "bookingId": booking.id}

        logger.info("Unhandled gateway event type %s", event.type)
        return {"result": "ignored", "reason": f"unhandled event {event.type}"}

    # ---- direct booking (manual transfer mode) -------------------------

    def create_direct_booking(self, actor: User, package_id: str, body: DirectBookingRequest) -> DirectBookingResult:
        pkg = self.get_package(package_id)
        if not body.travelDate or not body.numberOfTravelers:
            raise InvalidInput("Please provide travel date and number of travelers")

        draft = BookingDraft(
            package=pkg,
            user=actor,
            unit_price=to_decimal(pkg.price),
            start_date=body.travelDate,
            end_date=body.travelDate,
            adults=body.numberOfTravelers,
            special_requests=body.specialRequests or "",
        )
        try:
            booking = self._record_booking(draft, PaymentMode.MANUAL_TRANSFER, actor_id=actor.id)
        except IntegrityError:
            logger.exception("Direct booking insert for package %s failed", pkg.id)
            raise PersistenceError("Booking insert failed")

        details = build_payment_details(booking)
        qr_code = render_qr_data_url(qr_payload(booking, pkg))
        self.notifier.booking_received(actor, booking, pkg, details)
        return DirectBookingResult(booking=booking, qr_code=qr_code, payment_details=details)

    def create_payment_intent(self, actor: User, booking_id: str) -> PaymentIntent:
        """Card payment for a pay-later booking. The amount is always the stored total."""
        b = self._load(booking_id)
        if b.user_id != actor.id:
            raise Forbidden("You can only pay for your own bookings")
        if b.status == "cancelled":
            raise Conflict("This booking is cancelled")
        if b.payment_status == "paid":
            raise Conflict("This booking is already paid")

        pkg = self.db.get(Package, b.package_id)
        intent = self._require_gateway().create_payment_intent(PaymentIntentRequest(
            amount_minor=to_minor_units(b.total_amount),
            currency=b.currency or settings.CURRENCY.lower(),
            description=f"{pkg.name if pkg else 'Tour'} booking {b.booking_ref}",
            receipt_email=actor.email,
            metadata={"bookingId": b.id, "bookingRef": b.booking_ref, "userId": actor.id},
        ))
        log_audit(self.db, actor_user_id=actor.id, action="payment.intent_created", entity_type="booking",
                  entity_id=b.id, details={"paymentIntent": intent.id, "amount": str(b.total_amount)})
        self._commit()
        return intent

    # ---- reads ---------------------------------------------------------

    def _load(self, booking_id: str) -> Booking:
        b = self.db.get(Booking, booking_id) if booking_id else None
        if not b:
            raise NotFound("No booking found with that ID")
        return b

    def get_booking(self, actor: User, booking_id: str) -> Booking:
        b = self._load(booking_id)
        if b.user_id != actor.id and not actor.is_admin:
            raise Forbidden("You can only view your own bookings")
        return b

    def list_for_user(self, actor: User) -> list[Booking]:
        return (self.db.query(Booking).filter(Booking.user_id == actor.id)
                .order_by(Booking.created_at.desc()).all())

    def list_all(self) -> list[Booking]:
        return self.db.query(Booking).order_by(Booking.created_at.desc()).all()

    def render_voucher(self, actor: User, booking_id: str) -> bytes:
        b = self.get_booking(actor, booking_id)
        pkg = self.get_package(b.package_id)
        owner = self.db.get(User, b.user_id)
        return render_voucher_pdf_bytes(booking=b, package=pkg, traveler_name=owner.full_name if owner else "")

    # ---- mutations -----------------------------------------------------

    def cancel_booking(self, actor: User, booking_id: str) -> Booking:
        b = self._load(booking_id)
        if b.user_id != actor.id and not actor.is_admin:
            raise Forbidden("You can only cancel your own bookings")
        if b.status == "cancelled":
            raise Conflict("This booking is already cancelled")

        previous = b.status
        b.status = "cancelled"
        log_audit(self.db, actor_user_id=actor.id, action="booking.cancelled", entity_type="booking",
                  entity_id=b.id, details={"from": previous})
        self._commit()
        logger.info("Booking %s cancelled by %s", b.booking_ref, actor.id)

        owner = self.db.get(User, b.user_id)
        if owner:
            self.notifier.booking_cancelled(owner, b)
        return b

    _UPDATE_FIELDS = {
        "status": "status",
        "paymentStatus": "payment_status",
        "paymentMethod": "payment_method",
        "startDate": "start_date",
        "endDate": "end_date",
        "adults": "adults",
        "children": "children",
        "specialRequests": "special_requests",
    }

    def update_booking(self, actor: User, booking_id: str, changes: dict) -> Booking:
        """Admin partial update. Any successful update notifies the booking's user."""
        if not actor.is_admin:
            raise Forbidden("Only administrators can update bookings")
        b = self._load(booking_id)

        merged = {attr: getattr(b, attr) for attr in self._UPDATE_FIELDS.values()}
        for key, value in changes.items():
            if key not in self._UPDATE_FIELDS:
                raise InvalidInput(f"Field {key} cannot be updated")
            merged[self._UPDATE_FIELDS[key]] = value

        if merged["adults"] is None or merged["adults"] < 1:
            raise InvalidInput("At least one adult traveler is required")
        if merged["children"] is None or merged["children"] < 0:
            raise InvalidInput("Number of children cannot be negative")
        if merged["end_date"] < merged["start_date"]:
            raise InvalidInput("End date cannot be before start date")

        travelers_changed = (merged["adults"], merged["children"]) != (b.adults, b.children)
        before = {attr: str(getattr(b, attr)) for attr in merged}
        for attr, value in merged.items():
            setattr(b, attr, value)
        if travelers_changed:
            b.total_amount = compute_total(b.price, b.adults, b.children, b.additional_services or [])

        log_audit(self.db, actor_user_id=actor.id, action="booking.updated", entity_type="booking", entity_id=b.id,
                  details={"changes": {k: {"old": before[k], "new": str(v)} for k, v in merged.items() if before[k] != str(v)}})
        self._commit()
        self.db.refresh(b)
        logger.info("Booking %s updated by admin %s", b.booking_ref, actor.id)

        owner = self.db.get(User, b.user_id)
        if owner:
            self.notifier.booking_updated(owner, b)
        return b

    # ---- statistics ----------------------------------------------------

    def monthly_stats(self) -> list[dict]:
        month = extract("month", Booking.start_date)
        rows = (
            self.db.query(month.label("month"), func.count(Booking.id), func.sum(Booking.total_amount))
            .filter(Booking.status != "cancelled")
            .group_by(month)
            .order_by(month)
            .all()
        )
        return [
            {"month": int(m), "numBookings": int(n), "totalRevenue": to_decimal(total or 0)}
            for m, n, total in rows
        ]
