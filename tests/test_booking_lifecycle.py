import json
import re
from datetime import date
from decimal import Decimal

import pytest

from app.core.errors import Conflict, Forbidden, InvalidInput, NotFound, PersistenceError
from app.models.booking import Booking
from app.schemas.booking import DirectBookingRequest
from app.services import notifications


def _direct(service, user, package, travel_date="2025-01-10", travelers=2):
    return service.create_direct_booking(
        user, package.id, DirectBookingRequest(travelDate=travel_date, numberOfTravelers=travelers)
    ).booking


def test_direct_booking_is_confirmed_with_payment_pending(service, user, package, sent_emails):
    result = service.create_direct_booking(
        user, package.id, DirectBookingRequest(travelDate="2025-03-15", numberOfTravelers=3)
    )
    b = result.booking

    assert b.status == "confirmed"
    assert b.payment_status == "pending"
    assert b.payment_method == "bank_transfer"
    assert b.total_amount == Decimal("3000")
    assert b.start_date == b.end_date == date(2025, 3, 15)
    assert (b.adults, b.children) == (3, 0)
    assert result.qr_code.startswith("data:image/png;base64,")
    assert result.payment_details["reference"] == b.booking_ref
    assert Decimal(result.payment_details["amount"]) == Decimal("3000")
    assert result.payment_details["accountNumber"]
    assert sent_emails[0]["subject"] == "Booking Received - Payment Instructions"


def test_direct_booking_requires_date_and_travelers(service, user, package):
    with pytest.raises(InvalidInput):
        service.create_direct_booking(user, package.id, DirectBookingRequest(numberOfTravelers=2))
    with pytest.raises(InvalidInput):
        service.create_direct_booking(user, package.id, DirectBookingRequest(travelDate="2025-03-15"))


def test_direct_booking_unknown_package(service, user):
    with pytest.raises(NotFound):
        service.create_direct_booking(user, "nope", DirectBookingRequest(travelDate="2025-03-15", numberOfTravelers=1))


def test_owner_cancels_then_second_cancel_conflicts(service, user, package, db, sent_emails):
    b = _direct(service, user, package)

    cancelled = service.cancel_booking(user, b.id)
    assert cancelled.status == "cancelled"
    assert cancelled.payment_status == "pending"
    assert sent_emails[-1]["subject"] == "Booking Cancellation - Travel Agency"

    with pytest.raises(Conflict):
        service.cancel_booking(user, b.id)
    assert db.get(Booking, b.id).status == "cancelled"


def test_stranger_cannot_cancel(service, user, other_user, package, db):
    b = _direct(service, user, package)
    with pytest.raises(Forbidden):
        service.cancel_booking(other_user, b.id)
    assert db.get(Booking, b.id).status == "confirmed"


def test_admin_can_cancel_any_booking(service, user, admin, package):
    b = _direct(service, user, package)
    assert service.cancel_booking(admin, b.id).status == "cancelled"


def test_cancel_unknown_booking(service, user):
    with pytest.raises(NotFound):
        service.cancel_booking(user, "missing")


def test_cancellation_survives_notifier_crash(service, user, package, db, monkeypatch):
    b = _direct(service, user, package)

    def _broken_queue(*args, **kwargs):
        raise RuntimeError("email table locked")

    monkeypatch.setattr(notifications, "queue_email", _broken_queue)
    service.cancel_booking(user, b.id)
    assert db.get(Booking, b.id).status == "cancelled"


def test_admin_update_notifies_and_recomputes_total(service, user, admin, package, sent_emails):
    b = _direct(service, user, package, travelers=2)

    updated = service.update_booking(admin, b.id, {"adults": 3, "children": 2, "specialRequests": "Late check-in"})

    assert updated.total_amount == Decimal("4400")
    assert updated.special_requests == "Late check-in"
    assert sent_emails[-1]["subject"] == "Booking Update - Travel Agency"
    assert "confirmed" in sent_emails[-1]["body"]


def test_admin_update_of_unrelated_field_still_notifies(service, user, admin, package, sent_emails):
    b = _direct(service, user, package)
    before = len(sent_emails)
    service.update_booking(admin, b.id, {"paymentStatus": "paid"})
    assert len(sent_emails) == before + 1


def test_admin_update_validation(service, user, admin, package):
    b = _direct(service, user, package)
    with pytest.raises(InvalidInput):
        service.update_booking(admin, b.id, {"adults": 0})
    with pytest.raises(InvalidInput):
        service.update_booking(admin, b.id, {"endDate": date(2024, 12, 31)})
    with pytest.raises(InvalidInput):
        service.update_booking(admin, b.id, {"totalAmount": 1})


def test_only_admin_updates(service, user, package):
    b = _direct(service, user, package)
    with pytest.raises(Forbidden):
        service.update_booking(user, b.id, {"status": "completed"})


def test_owner_and_admin_read_but_stranger_cannot(service, user, other_user, admin, package):
    b = _direct(service, user, package)
    assert service.get_booking(user, b.id).id == b.id
    assert service.get_booking(admin, b.id).id == b.id
    with pytest.raises(Forbidden):
        service.get_booking(other_user, b.id)


def test_monthly_stats_skip_cancelled(service, user, admin, package):
    _direct(service, user, package, travel_date="2025-01-10", travelers=1)
    dropped = _direct(service, user, package, travel_date="2025-01-20", travelers=1)
    _direct(service, user, package, travel_date="2025-02-05", travelers=2)
    service.cancel_booking(admin, dropped.id)

    stats = service.monthly_stats()

    assert [(s["month"], s["numBookings"]) for s in stats] == [(1, 1), (2, 1)]
    assert stats[0]["totalRevenue"] == Decimal("1000")
    assert stats[1]["totalRevenue"] == Decimal("2000")


def test_voucher_is_a_pdf(service, user, package):
    b = _direct(service, user, package)
    pdf = service.render_voucher(user, b.id)
    assert pdf.startswith(b"%PDF")


def test_lifecycle_events_are_audited(service, user, package, db):
    from app.models.audit_log import AuditLog

    b = _direct(service, user, package)
    service.cancel_booking(user, b.id)
    actions = sorted(a.action for a in db.query(AuditLog).filter(AuditLog.entity_id == b.id))
    assert actions == ["booking.cancelled", "booking.created"]
    details = json.loads(db.query(AuditLog).filter(AuditLog.action == "booking.cancelled").one().details_json)
    assert details == {"from": "confirmed"}


def _page_count(pdf: bytes) -> int:
    return len(re.findall(rb"/Type\s*/Page(?!s)", pdf))


def test_voucher_with_many_services_breaks_onto_new_pages(service, user, package, db):
    b = _direct(service, user, package)
    assert _page_count(service.render_voucher(user, b.id)) == 1

    b.additional_services = [{"name": f"Extra {i}", "price": "10", "description": ""} for i in range(60)]
    db.commit()

    assert _page_count(service.render_voucher(user, b.id)) >= 2


def test_direct_booking_ref_collision_is_a_persistence_error(service, user, package, db, monkeypatch):
    taken = _direct(service, user, package).booking_ref
    monkeypatch.setattr(service, "_allocate_ref", lambda: taken)

    with pytest.raises(PersistenceError):
        _direct(service, user, package)
    assert db.query(Booking).count() == 1
