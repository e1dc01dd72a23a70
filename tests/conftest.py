import json
import os
import uuid
from decimal import Decimal

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_payment_gateway
from app.core.errors import GatewayError, InvalidSignature
from app.core.security import create_access_token, hash_password
from app.db.session import Base, get_db
from app.main import app
from app.models.audit_log import AuditLog  # noqa: F401
from app.models.booking import Booking  # noqa: F401
from app.models.destination import Destination
from app.models.email_log import EmailLog  # noqa: F401
from app.models.package import Package
from app.models.user import User
from app.services import email_service
from app.services.notifications import Notifier
from app.services.booking_service import BookingService
from app.services.payment_gateway import (
    CheckoutSession,
    GatewayEvent,
    GatewaySession,
    PaymentGateway,
    PaymentIntent,
)


class FakeGateway(PaymentGateway):
    """In-memory stand-in for Stripe hosted checkout."""

    def __init__(self):
        self.requests = []
        self.sessions: dict[str, GatewaySession] = {}
        self.fail_create = False
        self.intents = []

    def create_checkout_session(self, req):
        if self.fail_create:
            raise GatewayError("card network unavailable")
        sid = f"cs_test_{len(self.requests) + 1}"
        self.requests.append(req)
        self.sessions[sid] = GatewaySession(
            id=sid,
            payment_status="unpaid",
            client_reference_id=req.client_reference_id,
            customer_email=req.customer_email,
            amount_total=req.amount_minor,
            currency=req.currency,
            payment_intent=f"pi_test_{len(self.requests)}",
            metadata=dict(req.metadata),
        )
        return CheckoutSession(id=sid, url=f"https://checkout.stripe.test/{sid}")

    def pay(self, session_id: str) -> GatewaySession:
        s = self.sessions[session_id]
        s.payment_status = "paid"
        return s

    def retrieve_session(self, session_id):
        if session_id not in self.sessions:
            raise GatewayError(f"No such checkout.session: {session_id}")
        return self.sessions[session_id]

    def create_payment_intent(self, req):
        self.intents.append(req)
        pid = f"pi_direct_{len(self.intents)}"
        return PaymentIntent(id=pid, client_secret=f"{pid}_secret")

    def construct_event(self, payload, signature):
        if signature != "t=1,v1=valid":
            raise InvalidSignature("Invalid Stripe signature")
        data = json.loads(payload)
        return GatewayEvent(id=data["id"], type=data["type"], object=data["data"]["object"])


@pytest.fixture()
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Capture outgoing mail instead of talking to SMTP."""
    outbox = []

    def _fake_send(to_email, subject, body, attachments):
        outbox.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(email_service, "send_email", _fake_send)
    return outbox


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def service(db, gateway):
    return BookingService(db, Notifier(db), gateway=gateway)


@pytest.fixture()
def client(db, gateway):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_user(db, email: str, role: str = "user", name: str = "") -> User:
    u = User(
        id=str(uuid.uuid4()),
        email=email,
        full_name=name or email.split("@")[0].title(),
        role=role,
        password_hash=hash_password("password123"),
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def user(db):
    return make_user(db, "traveler@example.com", name="Ada Traveler")


@pytest.fixture()
def other_user(db):
    return make_user(db, "someone@example.com")


@pytest.fixture()
def admin(db):
    return make_user(db, "admin@example.com", role="admin")


@pytest.fixture()
def package(db):
    dest = Destination(id=str(uuid.uuid4()), name="Bali", country="Indonesia")
    db.add(dest)
    pkg = Package(
        id=str(uuid.uuid4()),
        name="Bali Bliss Adventure",
        destination_id=dest.id,
        duration=7,
        max_group_size=10,
        difficulty="medium",
        price=Decimal("1000"),
        summary="A 7-day adventure exploring the best of Bali",
    )
    db.add(pkg)
    db.commit()
    return pkg
