import math
from datetime import date, datetime, timezone
from decimal import Decimal
from sqlalchemy import String, Integer, Date, DateTime, Numeric, Text, JSON, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.db.session import Base


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("adults >= 1", name="ck_bookings_adults_min"),
        CheckConstraint("children >= 0", name="ck_bookings_children_min"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_ref: Mapped[str] = mapped_column(String(20), unique=True, index=True)

    package_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2))         # unit price at time of booking
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(3), default="usd")
    additional_services: Mapped[list] = mapped_column(JSON, default=list)  # [{name, price, description}]

    start_date: Mapped[date] = mapped_column(Date, index=True)
    end_date: Mapped[date] = mapped_column(Date)

    adults: Mapped[int] = mapped_column(Integer, default=1)
    children: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending, confirmed, cancelled, completed
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")     # pending, paid, refunded, failed
    payment_method: Mapped[str] = mapped_column(String(20), default="credit_card") # credit_card, paypal, bank_transfer, cash
    payment_id: Mapped[str] = mapped_column(String(120), nullable=True, index=True)
    checkout_session_id: Mapped[str] = mapped_column(String(255), nullable=True, unique=True)

    special_requests: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def duration(self) -> int:
        return math.ceil((self.end_date - self.start_date).total_seconds() / 86400)
