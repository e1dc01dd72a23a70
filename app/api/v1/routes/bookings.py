from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse, Response
from app.api.deps import get_booking_service, get_checkout_service, get_current_user, require_roles
from app.core.config import settings
from app.models.user import User, ROLE_ADMIN
from app.schemas.booking import BookingOut, BookingUpdate, CheckoutRequest, DirectBookingRequest, MonthlyStat
from app.services.booking_service import BookingService

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _one(b) -> dict:
    return {"status": "success", "data": {"booking": BookingOut.from_booking(b)}}


def _many(items) -> dict:
    return {"status": "success", "results": len(items), "data": {"bookings": [BookingOut.from_booking(b) for b in items]}}


@router.post("/checkout-session/{package_id}")
def create_checkout_session(package_id: str, body: CheckoutRequest,
                            me: User = Depends(get_current_user),
                            svc: BookingService = Depends(get_checkout_service)):
    session = svc.create_checkout_session(me, package_id, body)
    return {"status": "success", "session": {"id": session.id, "url": session.url}}


@router.get("/checkout-success")
def checkout_success(session_id: str = "", svc: BookingService = Depends(get_checkout_service)):
    """Gateway redirect target. The session is re-read from the gateway before anything is booked."""
    booking = svc.handle_checkout_success(session_id)
    return RedirectResponse(url=f"{settings.CLIENT_URL.rstrip('/')}/bookings/{booking.id}", status_code=303)


@router.post("/create/{package_id}", status_code=201)
def create_direct_booking(package_id: str, body: DirectBookingRequest,
                          me: User = Depends(get_current_user),
                          svc: BookingService = Depends(get_booking_service)):
    result = svc.create_direct_booking(me, package_id, body)
    return {
        "status": "success",
        "data": {
            "booking": BookingOut.from_booking(result.booking),
            "qrCode": result.qr_code,
            "paymentDetails": result.payment_details,
        },
    }


@router.get("/my-bookings")
def my_bookings(me: User = Depends(get_current_user), svc: BookingService = Depends(get_booking_service)):
    return _many(svc.list_for_user(me))


@router.patch("/cancel/{booking_id}")
def cancel_booking(booking_id: str, me: User = Depends(get_current_user),
                   svc: BookingService = Depends(get_booking_service)):
    return _one(svc.cancel_booking(me, booking_id))


@router.get("/stats")
def booking_stats(me: User = Depends(require_roles(ROLE_ADMIN)), svc: BookingService = Depends(get_booking_service)):
    return {"status": "success", "data": {"stats": [MonthlyStat(**s) for s in svc.monthly_stats()]}}


@router.get("")
def list_bookings(me: User = Depends(require_roles(ROLE_ADMIN)), svc: BookingService = Depends(get_booking_service)):
    return _many(svc.list_all())


@router.get("/{booking_id}")
def get_booking(booking_id: str, me: User = Depends(get_current_user),
                svc: BookingService = Depends(get_booking_service)):
    return _one(svc.get_booking(me, booking_id))


@router.patch("/{booking_id}")
def update_booking(booking_id: str, body: BookingUpdate,
                   me: User = Depends(require_roles(ROLE_ADMIN)),
                   svc: BookingService = Depends(get_booking_service)):
    return _one(svc.update_booking(me, booking_id, body.model_dump(exclude_unset=True, exclude_none=True)))


@router.get("/{booking_id}/voucher")
def download_voucher(booking_id: str, me: User = Depends(get_current_user),
                     svc: BookingService = Depends(get_booking_service)):
    pdf = svc.render_voucher(me, booking_id)
    return Response(content=pdf, media_type="application/pdf",
                    headers={"Content-Disposition": f'attachment; filename="booking-{booking_id}.pdf"'})
