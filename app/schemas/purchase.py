"""
Schemas for purchase and payout endpoints.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from .base import BaseSchema


class PurchaseRead(BaseSchema):
    id: str
    order_number: str
    buyer_id: str
    seller_id: str
    product_id: str
    offer_id: Optional[str] = None
    item_price: float
    shipping_cost: float
    buyer_fee: float
    voucher_discount: float
    total_amount: float
    delivery_method: Optional[str] = None
    delivery_description: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None
    status: str
    payment_status: str
    funds_status: str
    funds_release_at: Optional[datetime] = None
    buyer_confirmed_at: Optional[datetime] = None
    payout_status: str
    created_at: Optional[datetime] = None


class PayoutTriggerRequest(BaseSchema):
    purchase_id: Optional[str] = Field(None, alias="purchaseId")
