from decimal import Decimal
from pydantic import BaseModel

class DestinationOut(BaseModel):
    id: str
    name: str
    country: str = ""
    summary: str = ""
    imageCover: str = ""

class PackageOut(BaseModel):
    id: str
    name: str
    destinationId: str
    duration: int
    maxGroupSize: int
    difficulty: str
    price: Decimal
    summary: str = ""
    imageCover: str = ""
    featured: bool = False
