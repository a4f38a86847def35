"""
Core module exports.
"""
from .enums import (
    ListingStatus,
    FundsStatus,
    PayoutStatus,
    ConnectStatus,
    OfferStatus,
    DeliveryMethod,
    CheckoutFlow
)

from .exceptions import (
    MarketplaceServiceError,
    NotFoundError,
    ProductNotFoundError,
    PurchaseNotFoundError,
    OfferNotFoundError,
    UserNotFoundError,
    ValidationError,
    PermissionDeniedError,
    PaymentPlatformError,
    StripeAPIError,
    WebhookSignatureError,
    PayoutError
)
