from .activity_log import ActivityLog
from .product import Product
from .user import User
from .offer import Offer, OfferHistory
from .purchase import Purchase
from .seller_payout import SellerPayout
from .voucher import Voucher

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'ActivityLog',
    'Product',
    'User',
    'Offer',
    'OfferHistory',
    'Purchase',
    'SellerPayout',
    'Voucher',
]
