"""Payment gateway adapter.

The booking core talks to ``PaymentGateway``; ``StripeGateway`` is the
production implementation on top of Stripe hosted Checkout and PaymentIntents
(used to settle pay-later bookings by card). Everything that
leaves this module is a plain dataclass, so the core never touches SDK objects.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

import stripe

from app.core.errors import GatewayError, InvalidSignature

logger = logging.getLogger(__name__)


@dataclass
class StripeConfig:
    secret_key: str
    webhook_secret: str = ""
    currency: str = "usd"


@dataclass
class CheckoutSessionRequest:
    success_url: str
    cancel_url: str
    customer_email: str
    client_reference_id: str    # package id, the correlation token
    item_name: str
    item_description: str
    amount_minor: int
    currency: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class CheckoutSession:
    id: str
    url: str


@dataclass
class GatewaySession:
    id: str
    payment_status: str         # paid | unpaid | no_payment_required
    client_reference_id: str
    customer_email: str
    amount_total: int           # minor units
    currency: str
    payment_intent: str
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


@dataclass
class PaymentIntentRequest:
    amount_minor: int
    currency: str
    description: str
    receipt_email: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class PaymentIntent:
    id: str
    client_secret: str


@dataclass
class GatewayEvent:
    id: str
    type: str
    object: dict


class PaymentGateway:
    """Contract consumed by BookingService. Implementations raise GatewayError."""

    def create_checkout_session(self, req: CheckoutSessionRequest) -> CheckoutSession:
        raise NotImplementedError

    def retrieve_session(self, session_id: str) -> GatewaySession:
        raise NotImplementedError

    def create_payment_intent(self, req: PaymentIntentRequest) -> PaymentIntent:
        raise NotImplementedError

    def construct_event(self, payload: bytes, signature: str | None) -> GatewayEvent:
        raise NotImplementedError


def _plain(obj) -> dict:
    """SDK object -> nested plain dicts."""
    if obj is None:
        return {}
    if isinstance(obj, dict) and not hasattr(obj, "to_dict_recursive"):
        return obj
    for attr in ("to_dict_recursive", "to_dict"):
        fn = getattr(obj, attr, None)
        if callable(fn):
            return fn()
    return dict(obj)


def session_from_payload(data: dict) -> GatewaySession:
    customer_email = data.get("customer_email") or (data.get("customer_details") or {}).get("email") or ""
    intent = data.get("payment_intent") or ""
    if isinstance(intent, dict):
        intent = intent.get("id") or ""
    return GatewaySession(
        id=str(data.get("id") or ""),
        payment_status=str(data.get("payment_status") or ""),
        client_reference_id=str(data.get("client_reference_id") or ""),
        customer_email=str(customer_email).lower(),
        amount_total=int(data.get("amount_total") or 0),
        currency=str(data.get("currency") or ""),
        payment_intent=str(intent),
        metadata={str(k): "" if v is None else str(v) for k, v in (data.get("metadata") or {}).items()},
    )


class StripeGateway(PaymentGateway):
    def __init__(self, cfg: StripeConfig):
        if not cfg.secret_key:
            raise GatewayError("Stripe is not configured (missing STRIPE_SECRET_KEY)")
        self.cfg = cfg

    def create_checkout_session(self, req: CheckoutSessionRequest) -> CheckoutSession:
        try:
            session = stripe.checkout.Session.create(
                api_key=self.cfg.secret_key,
                mode="payment",
                payment_method_types=["card"],
                success_url=req.success_url,
                cancel_url=req.cancel_url,
                customer_email=req.customer_email,
                client_reference_id=req.client_reference_id,
                line_items=[{
                    "price_data": {
                        "currency": req.currency.lower(),
                        "product_data": {"name": req.item_name[:100], "description": req.item_description[:500] or req.item_name[:100]},
                        "unit_amount": req.amount_minor,
                    },
                    "quantity": 1,
                }],
                metadata=req.metadata,
            )
        except stripe.StripeError as e:
            logger.error("Stripe session create failed for package %s: %s", req.client_reference_id, e)
            raise GatewayError(f"Stripe session create failed: {e}") from e
        return CheckoutSession(id=session.id, url=session.url)

    def retrieve_session(self, session_id: str) -> GatewaySession:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.cfg.secret_key)
        except stripe.StripeError as e:
            logger.error("Stripe session retrieve failed for %s: %s", session_id, e)
            raise GatewayError(f"Stripe session retrieve failed: {e}") from e
        return session_from_payload(_plain(session))

    def create_payment_intent(self, req: PaymentIntentRequest) -> PaymentIntent:
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.cfg.secret_key,
                amount=req.amount_minor,
                currency=req.currency.lower(),
                description=req.description[:500],
                receipt_email=req.receipt_email or None,
                automatic_payment_methods={"enabled": True},
                metadata=req.metadata,
            )
        except stripe.StripeError as e:
            logger.error("Stripe payment intent create failed for booking %s: %s", req.metadata.get("bookingId"), e)
            raise GatewayError(f"Stripe payment intent create failed: {e}") from e
        return PaymentIntent(id=intent.id, client_secret=intent.client_secret)

    def construct_event(self, payload: bytes, signature: str | None) -> GatewayEvent:
        if not self.cfg.webhook_secret:
            raise InvalidSignature("STRIPE_WEBHOOK_SECRET is not set; refusing unverified webhook")
        if not signature:
            raise InvalidSignature("Missing Stripe-Signature header")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.cfg.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignature(f"Invalid Stripe signature: {e}") from e
        except ValueError as e:
            raise InvalidSignature(f"Malformed webhook payload: {e}") from e
        data = _plain(event)
        return GatewayEvent(
            id=str(data.get("id") or ""),
            type=str(data.get("type") or ""),
            object=(data.get("data") or {}).get("object") or {},
        )
