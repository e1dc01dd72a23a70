import json
from decimal import Decimal

from app.models.booking import Booking
from tests.conftest import auth

WEBHOOK = "/api/v1/payments/webhook"
SIGNED = {"stripe-signature": "t=1,v1=valid", "content-type": "application/json"}


def _start_checkout(client, user, package):
    r = client.post(
        f"/api/v1/bookings/checkout-session/{package.id}",
        json={"travelDate": "2025-05-02", "numberOfTravelers": 2},
        headers=auth(user),
    )
    assert r.status_code == 200, r.text
    return r.json()["session"]


def test_checkout_requires_login(client, package):
    r = client.post(f"/api/v1/bookings/checkout-session/{package.id}", json={"travelDate": "2025-05-02", "numberOfTravelers": 2})
    assert r.status_code == 401


def test_checkout_unknown_package_is_404(client, user, gateway):
    r = client.post("/api/v1/bookings/checkout-session/missing", json={"travelDate": "2025-05-02", "numberOfTravelers": 2}, headers=auth(user))
    assert r.status_code == 404
    assert r.json()["detail"] == "No package found with that ID"
    assert gateway.requests == []


def test_checkout_missing_travelers_is_400(client, user, package):
    r = client.post(f"/api/v1/bookings/checkout-session/{package.id}", json={"travelDate": "2025-05-02"}, headers=auth(user))
    assert r.status_code == 400


def test_gateway_error_is_generic_502(client, user, package, gateway):
    gateway.fail_create = True
    r = client.post(f"/api/v1/bookings/checkout-session/{package.id}", json={"travelDate": "2025-05-02", "numberOfTravelers": 2}, headers=auth(user))
    assert r.status_code == 502
    assert "card network" not in r.json()["detail"]
    assert "try again" in r.json()["detail"]


def test_success_redirect_books_once(client, user, package, gateway, db):
    session = _start_checkout(client, user, package)
    gateway.pay(session["id"])

    r = client.get(f"/api/v1/bookings/checkout-success?session_id={session['id']}", follow_redirects=False)
    assert r.status_code == 303
    booking = db.query(Booking).one()
    assert r.headers["location"].endswith(f"/bookings/{booking.id}")

    r = client.get(f"/api/v1/bookings/checkout-success?session_id={session['id']}", follow_redirects=False)
    assert r.status_code == 303
    assert db.query(Booking).count() == 1


def test_success_redirect_for_unpaid_session_is_400(client, user, package, db):
    session = _start_checkout(client, user, package)
    r = client.get(f"/api/v1/bookings/checkout-success?session_id={session['id']}", follow_redirects=False)
    assert r.status_code == 400
    assert r.json()["detail"] == "Payment not successful"
    assert db.query(Booking).count() == 0


def test_webhook_rejects_bad_signature(client, user, package, gateway, db):
    session = _start_checkout(client, user, package)
    paid = gateway.pay(session["id"])
    event = {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {"id": paid.id, "payment_status": "paid"}}}

    r = client.post(WEBHOOK, content=json.dumps(event), headers={"stripe-signature": "t=1,v1=forged"})
    assert r.status_code == 400
    assert db.query(Booking).count() == 0


def test_webhook_completed_event_creates_booking(client, user, package, gateway, db):
    session = _start_checkout(client, user, package)
    paid = gateway.pay(session["id"])
    event = {
        "id": "evt_2",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": paid.id,
            "payment_status": "paid",
            "client_reference_id": package.id,
            "customer_email": user.email,
            "amount_total": paid.amount_total,
            "payment_intent": paid.payment_intent,
            "metadata": paid.metadata,
        }},
    }

    r = client.post(WEBHOOK, content=json.dumps(event), headers=SIGNED)
    assert r.status_code == 200
    assert r.json()["received"] is True
    assert r.json()["result"] == "booked"

    r = client.post(WEBHOOK, content=json.dumps(event), headers=SIGNED)
    assert r.status_code == 200
    b = db.query(Booking).one()
    assert b.payment_status == "paid"
    assert b.total_amount == Decimal("2000")


def test_direct_booking_route(client, user, package):
    r = client.post(f"/api/v1/bookings/create/{package.id}", json={"travelDate": "2025-08-01", "numberOfTravelers": 2}, headers=auth(user))
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["booking"]["status"] == "confirmed"
    assert data["booking"]["paymentStatus"] == "pending"
    assert Decimal(data["booking"]["totalAmount"]) == Decimal("2000")
    assert data["qrCode"].startswith("data:image/png;base64,")
    assert data["paymentDetails"]["reference"] == data["booking"]["bookingRef"]


def test_my_bookings_and_cancel(client, user, other_user, package):
    r = client.post(f"/api/v1/bookings/create/{package.id}", json={"travelDate": "2025-08-01", "numberOfTravelers": 1}, headers=auth(user))
    booking_id = r.json()["data"]["booking"]["id"]

    mine = client.get("/api/v1/bookings/my-bookings", headers=auth(user)).json()
    assert mine["results"] == 1
    assert client.get("/api/v1/bookings/my-bookings", headers=auth(other_user)).json()["results"] == 0

    assert client.patch(f"/api/v1/bookings/cancel/{booking_id}", headers=auth(other_user)).status_code == 403
    r = client.patch(f"/api/v1/bookings/cancel/{booking_id}", headers=auth(user))
    assert r.status_code == 200
    assert r.json()["data"]["booking"]["status"] == "cancelled"
    r = client.patch(f"/api/v1/bookings/cancel/{booking_id}", headers=auth(user))
    assert r.status_code == 409
    assert r.json()["detail"] == "This booking is already cancelled"


def test_admin_routes_are_guarded(client, user, admin, package):
    r = client.post(f"/api/v1/bookings/create/{package.id}", json={"travelDate": "2025-08-01", "numberOfTravelers": 1}, headers=auth(user))
    booking_id = r.json()["data"]["booking"]["id"]

    assert client.get("/api/v1/bookings", headers=auth(user)).status_code == 403
    assert client.get("/api/v1/bookings/stats", headers=auth(user)).status_code == 403
    assert client.patch(f"/api/v1/bookings/{booking_id}", json={"status": "completed"}, headers=auth(user)).status_code == 403

    assert client.get("/api/v1/bookings", headers=auth(admin)).json()["results"] == 1
    stats = client.get("/api/v1/bookings/stats", headers=auth(admin)).json()["data"]["stats"]
    assert stats[0]["month"] == 8
    assert stats[0]["numBookings"] == 1

    r = client.patch(f"/api/v1/bookings/{booking_id}", json={"status": "completed"}, headers=auth(admin))
    assert r.status_code == 200
    assert r.json()["data"]["booking"]["status"] == "completed"


def test_admin_update_rejects_unknown_fields(client, user, admin, package):
    r = client.post(f"/api/v1/bookings/create/{package.id}", json={"travelDate": "2025-08-01", "numberOfTravelers": 1}, headers=auth(user))
    booking_id = r.json()["data"]["booking"]["id"]
    r = client.patch(f"/api/v1/bookings/{booking_id}", json={"totalAmount": 1}, headers=auth(admin))
    assert r.status_code == 422


def test_owner_reads_booking_and_voucher(client, user, other_user, package):
    r = client.post(f"/api/v1/bookings/create/{package.id}", json={"travelDate": "2025-08-01", "numberOfTravelers": 1}, headers=auth(user))
    booking_id = r.json()["data"]["booking"]["id"]

    assert client.get(f"/api/v1/bookings/{booking_id}", headers=auth(user)).status_code == 200
    assert client.get(f"/api/v1/bookings/{booking_id}", headers=auth(other_user)).status_code == 403

    r = client.get(f"/api/v1/bookings/{booking_id}/voucher", headers=auth(user))
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.content.startswith(b"%PDF")


def test_overlong_special_requests_is_422(client, user, package, gateway):
    r = client.post(f"/api/v1/bookings/checkout-session/{package.id}",
                    json={"travelDate": "2025-05-02", "numberOfTravelers": 2, "specialRequests": "x" * 501},
                    headers=auth(user))
    assert r.status_code == 422
    assert gateway.requests == []
