# salon_booking/schemas/services.py
from pydantic import BaseModel
from decimal import Decimal


class ServiceResponse(BaseModel):
    ref: str
    name: str
    duration_minutes: int
    price: Decimal
