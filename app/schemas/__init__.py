"""
Schema exports for the application.
"""

# Base schemas
from .base import BaseSchema

# Checkout schemas
from .checkout import CheckoutRequest, OfferCheckoutRequest, CheckoutResponse, AppliedVoucher

# Offer schemas
from .offer import OfferCreate, OfferCounter, OfferReject, OfferRead

# Purchase and payout schemas
from .purchase import PurchaseRead, PayoutTriggerRequest
