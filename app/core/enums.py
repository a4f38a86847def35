"""
Shared enums and constants used across the application.

Values are stored lower-case in the database, matching what the front end
and Stripe metadata already carry.
"""

from enum import Enum


class ListingStatus(str, Enum):
    """Product listing status"""
    ACTIVE = "active"
    PENDING = "pending"
    SOLD = "sold"
    DRAFT = "draft"
    ARCHIVED = "archived"


class PurchaseStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class FundsStatus(str, Enum):
    """Escrow state of the money behind a purchase"""
    HELD = "held"
    RELEASED = "released"
    AUTO_RELEASED = "auto_released"
    DISPUTED = "disputed"
    REFUNDED = "refunded"

    @classmethod
    def releasable(cls):
        return (cls.RELEASED.value, cls.AUTO_RELEASED.value)


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ConnectStatus(str, Enum):
    """Seller's Stripe Connect account status as cached on the user row"""
    NOT_CONNECTED = "not_connected"
    PENDING = "pending"
    ACTIVE = "active"
    RESTRICTED = "restricted"


class OfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COUNTERED = "countered"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @classmethod
    def open_states(cls):
        """States a seller may still act on"""
        return (cls.PENDING.value, cls.COUNTERED.value)


class OfferPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class OfferAction(str, Enum):
    CREATED = "created"
    COUNTERED = "countered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class DeliveryMethod(str, Enum):
    UBER_EXPRESS = "uber_express"
    AUSPOST = "auspost"
    PICKUP = "pickup"
    SHIPPING = "shipping"


class CheckoutFlow(str, Enum):
    """Which Stripe surface took the payment; carried in the metadata"""
    CHECKOUT_SESSION = "checkout_session"
    PAYMENT_INTENT = "payment_intent"


class VoucherStatus(str, Enum):
    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
