"""
Schemas for offer negotiation endpoints.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from .base import BaseSchema


class OfferCreate(BaseSchema):
    product_id: str = Field(..., alias="productId", min_length=1)
    offer_amount: Decimal = Field(..., alias="offerAmount", gt=0)
    message: Optional[str] = Field(None, max_length=1000)


class OfferCounter(BaseSchema):
    new_amount: Decimal = Field(..., alias="newAmount", gt=0)
    message: Optional[str] = Field(None, max_length=1000)


class OfferReject(BaseSchema):
    reason: Optional[str] = Field(None, max_length=1000)


class OfferRead(BaseSchema):
    id: str
    product_id: str
    buyer_id: str
    seller_id: str
    original_price: float
    offer_amount: float
    offer_percentage: Optional[float] = None
    message: Optional[str] = None
    status: str
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    payment_status: Optional[str] = None
    payment_deadline: Optional[datetime] = None
    purchase_id: Optional[str] = None
    created_at: Optional[datetime] = None
