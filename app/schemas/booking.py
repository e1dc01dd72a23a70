from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.booking import Booking


class AdditionalService(BaseModel):
    name: str = Field(max_length=100)
    price: Decimal = Decimal("0")
    description: str = Field(default="", max_length=200)


class Travelers(BaseModel):
    adults: Optional[int] = None
    children: int = 0


class CheckoutRequest(BaseModel):
    """Either startDate/endDate or a single travelDate; either travelers or numberOfTravelers (all adults)."""
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    travelDate: Optional[date] = None
    travelers: Optional[Travelers] = None
    numberOfTravelers: Optional[int] = None
    additionalServices: List[AdditionalService] = Field(default=[], max_length=10)
    specialRequests: str = Field(default="", max_length=500)


class DirectBookingRequest(BaseModel):
    travelDate: Optional[date] = None
    numberOfTravelers: Optional[int] = None
    specialRequests: str = Field(default="", max_length=500)


class BookingUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Optional[Literal["pending", "confirmed", "cancelled", "completed"]] = None
    paymentStatus: Optional[Literal["pending", "paid", "refunded", "failed"]] = None
    paymentMethod: Optional[Literal["credit_card", "paypal", "bank_transfer", "cash"]] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    adults: Optional[int] = None
    children: Optional[int] = None
    specialRequests: Optional[str] = None


class TravelersOut(BaseModel):
    adults: int
    children: int


class BookingOut(BaseModel):
    id: str
    bookingRef: str
    packageId: str
    userId: str
    price: Decimal
    totalAmount: Decimal
    currency: str
    additionalServices: List[AdditionalService] = []
    startDate: date
    endDate: date
    duration: int
    travelers: TravelersOut
    status: str
    paymentStatus: str
    paymentMethod: str
    paymentId: Optional[str] = None
    specialRequests: str = ""
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_booking(cls, b: Booking) -> "BookingOut":
        return cls(
            id=b.id,
            bookingRef=b.booking_ref,
            packageId=b.package_id,
            userId=b.user_id,
            price=b.price,
            totalAmount=b.total_amount,
            currency=b.currency,
            additionalServices=[AdditionalService(**s) for s in (b.additional_services or [])],
            startDate=b.start_date,
            endDate=b.end_date,
            duration=b.duration,
            travelers=TravelersOut(adults=b.adults, children=b.children),
            status=b.status,
            paymentStatus=b.payment_status,
            paymentMethod=b.payment_method,
            paymentId=b.payment_id,
            specialRequests=b.special_requests or "",
            createdAt=b.created_at,
            updatedAt=b.updated_at,
        )


class MonthlyStat(BaseModel):
    month: int
    numBookings: int
    totalRevenue: Decimal
