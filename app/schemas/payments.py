from pydantic import BaseModel


class PaymentIntentCreate(BaseModel):
    bookingId: str
