# backend/teachtape/schemas/checkout.py
from typing import Optional

from pydantic import EmailStr, Field

from .base import StandardizedModel, StrictRequestModel


class CheckoutRequest(StrictRequestModel):
    listing_id: str = Field(..., min_length=1, max_length=26)
    coach_id: str = Field(..., min_length=1, max_length=26)
    buyer_email: Optional[EmailStr] = Field(
        None, description="Required for guest checkout; defaults to the caller's email"
    )
    buyer_name: Optional[str] = Field(None, max_length=200)


class CheckoutResponse(StandardizedModel):
    url: str
    booking_id: str
    session_id: str
