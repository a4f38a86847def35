"""
Centralized marketplace fee and delivery calculations.

All amounts are Decimal in major units (AUD) and rounded half-up to cents.
Stripe takes minor units, see to_minor_units().
"""

import random
import string
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from app.core.enums import DeliveryMethod, VoucherStatus

CENT = Decimal("0.01")

PLATFORM_FEE_PERCENTAGE = Decimal("0.03")   # taken from the seller
BUYER_FEE_PERCENTAGE = Decimal("0.005")     # added to the buyer's total

ESCROW_HOLD_DAYS = 7
OFFER_EXPIRY_DAYS = 7
OFFER_PAYMENT_WINDOW_HOURS = 48
CHECKOUT_SESSION_TTL_MINUTES = 30

DELIVERY_FEES = {
    DeliveryMethod.UBER_EXPRESS.value: Decimal("15.00"),
    DeliveryMethod.AUSPOST.value: Decimal("12.00"),
    DeliveryMethod.PICKUP.value: Decimal("0.00"),
}

DELIVERY_DESCRIPTIONS = {
    DeliveryMethod.UBER_EXPRESS.value: "Uber Express (1-hour delivery)",
    DeliveryMethod.AUSPOST.value: "Australia Post (2-5 business days)",
    DeliveryMethod.PICKUP.value: "Local Pickup",
    DeliveryMethod.SHIPPING.value: "Standard Shipping",
}


@dataclass(frozen=True)
class DeliveryQuote:
    method: str
    cost: Decimal
    description: str


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value) -> int:
    """
    Convert a major-unit amount to integer cents.

    Examples:
        1000 -> 100000
        5.005 -> 501
    """
    return int((to_decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_buyer_fee(item_price) -> Decimal:
    """0.5% service fee charged to the buyer on the item price."""
    return round_money(to_decimal(item_price) * BUYER_FEE_PERCENTAGE)


def calculate_platform_fee(amount) -> Decimal:
    """3% platform fee withheld from the seller."""
    return round_money(to_decimal(amount) * PLATFORM_FEE_PERCENTAGE)


def calculate_seller_payout(item_price) -> Decimal:
    return round_money(to_decimal(item_price) - calculate_platform_fee(item_price))


def calculate_payout_amount(seller_payout_amount, total_amount) -> Decimal:
    """
    Net amount to transfer to the seller.

    A stored seller_payout_amount wins; otherwise the platform fee is taken
    off the purchase total.
    """
    if seller_payout_amount is not None:
        return round_money(seller_payout_amount)
    return round_money(to_decimal(total_amount) * (1 - PLATFORM_FEE_PERCENTAGE))


def quote_delivery(method: str, shipping_available: bool = False, shipping_cost=None) -> DeliveryQuote:
    """
    Price a delivery method for a product.

    Raises:
        ValueError: for an unknown delivery method
    """
    if method == DeliveryMethod.SHIPPING.value:
        cost = round_money(shipping_cost) if shipping_available and shipping_cost else Decimal("0.00")
    elif method in DELIVERY_FEES:
        cost = DELIVERY_FEES[method]
    else:
        raise ValueError(f"Unknown delivery method: {method}")
    return DeliveryQuote(method=method, cost=cost, description=DELIVERY_DESCRIPTIONS[method])


def delivery_options(shipping_available: bool = False, shipping_cost=None) -> List[Dict]:
    """Every delivery method with its price, for the embedded checkout picker."""
    options = []
    for method in DeliveryMethod:
        quote = quote_delivery(method.value, shipping_available, shipping_cost)
        options.append({
            "id": quote.method,
            "label": quote.description,
            "cost": float(quote.cost),
            "available": shipping_available if method == DeliveryMethod.SHIPPING else True,
        })
    return options


def select_best_voucher(vouchers: Iterable, item_price, now: Optional[datetime] = None):
    """
    Pick the single voucher worth the most that the item price qualifies for.

    A voucher qualifies when it is active, unexpired and its minimum purchase
    is met by the item price. Returns None when nothing qualifies.
    """
    price_cents = to_minor_units(item_price)
    best = None
    for voucher in vouchers:
        if voucher.status != VoucherStatus.ACTIVE.value:
            continue
        if now is not None and voucher.expires_at is not None and voucher.expires_at <= now:
            continue
        if (voucher.min_purchase_cents or 0) > price_cents:
            continue
        if best is None or voucher.amount_cents > best.amount_cents:
            best = voucher
    return best


def voucher_discount(voucher, item_price) -> Decimal:
    """Discount in major units, capped at the item price."""
    if voucher is None:
        return Decimal("0.00")
    discount = round_money(Decimal(voucher.amount_cents) / 100)
    return min(discount, round_money(item_price))


def calculate_offer_percentage(offer_amount, original_price) -> Decimal:
    """Offer as a percentage of the asking price, e.g. 800 on 1000 -> 80.00"""
    price = to_decimal(original_price)
    if price <= 0:
        return Decimal("0.00")
    return round_money(to_decimal(offer_amount) / price * 100)


def escrow_release_time(created_at: datetime) -> datetime:
    return created_at + timedelta(days=ESCROW_HOLD_DAYS)


def generate_order_number(now: datetime) -> str:
    """Human readable order reference, e.g. ORD-20250114-K3Z9Q"""
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=5))
    return f"ORD-{now.strftime('%Y%m%d')}-{suffix}"
