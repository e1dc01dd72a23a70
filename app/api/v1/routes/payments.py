import logging

from fastapi import APIRouter, Depends, Request

from app.api.deps import get_checkout_service, get_current_user
from app.core.errors import InvalidSignature
from app.models.user import User
from app.schemas.payments import PaymentIntentCreate
from app.services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-payment-intent")
def create_payment_intent(body: PaymentIntentCreate, me: User = Depends(get_current_user),
                          svc: BookingService = Depends(get_checkout_service)):
    """Card payment for one of the caller's pay-later bookings; the webhook settles it."""
    intent = svc.create_payment_intent(me, body.bookingId)
    return {"status": "success", "clientSecret": intent.client_secret, "paymentIntentId": intent.id}


@router.post("/webhook")
async def stripe_webhook(req: Request, svc: BookingService = Depends(get_checkout_service)):
    """Signed gateway events. Nothing is read from the body until the signature verifies."""
    body = await req.body()
    try:
        event = svc.gateway.construct_event(body, req.headers.get("stripe-signature"))
    except InvalidSignature as e:
        logger.warning("Rejected webhook: %s", e.message)
        raise
    result = svc.handle_event(event)
    return {"received": True, **result}
