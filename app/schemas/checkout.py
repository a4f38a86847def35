"""
Schemas for checkout endpoints. Field names follow the front end's camelCase.
"""

from typing import Optional

from pydantic import Field

from app.core.enums import DeliveryMethod
from .base import BaseSchema


class CheckoutRequest(BaseSchema):
    product_id: str = Field(..., alias="productId", min_length=1)
    delivery_method: DeliveryMethod = Field(..., alias="deliveryMethod")


class OfferCheckoutRequest(BaseSchema):
    offer_id: str = Field(..., alias="offerId", min_length=1)
    delivery_method: Optional[DeliveryMethod] = Field(None, alias="deliveryMethod")


class AppliedVoucher(BaseSchema):
    id: str
    discount: float
    description: Optional[str] = None


class CheckoutResponse(BaseSchema):
    session_id: str = Field(..., alias="sessionId")
    url: str
    voucher: Optional[AppliedVoucher] = None


class PaymentIntentRequest(BaseSchema):
    product_id: str = Field(..., alias="productId", min_length=1)
    delivery_method: DeliveryMethod = Field(DeliveryMethod.UBER_EXPRESS, alias="deliveryMethod")


class PaymentIntentUpdateRequest(BaseSchema):
    payment_intent_id: str = Field(..., alias="paymentIntentId", min_length=1)
    product_id: str = Field(..., alias="productId", min_length=1)
    delivery_method: DeliveryMethod = Field(..., alias="deliveryMethod")
